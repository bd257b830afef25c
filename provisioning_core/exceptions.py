"""
Consolidated exception system with error codes, context, and correlation support.

Every error raised by the provisioning core derives from BaseError, which carries
a standardized error code, an HTTP-like status, the originating cause and a
correlation id, and logs itself on construction.
"""

import threading
import traceback
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

_thread_local = threading.local()

GENERIC_PUBLIC_MESSAGE = "The request could not be completed. No changes were saved."


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # System errors (1xxx)
    INTERNAL_ERROR = "1000"
    DATABASE_ERROR = "1001"
    CONNECTION_ERROR = "1002"
    CONFIGURATION_ERROR = "1003"
    TIMEOUT_ERROR = "1004"
    TRANSACTION_ABORTED = "1005"

    # Validation errors (2xxx)
    VALIDATION_FAILED = "2000"
    INVALID_FORMAT = "2001"
    MISSING_REQUIRED = "2002"
    TYPE_MISMATCH = "2003"
    CONSTRAINT_VIOLATION = "2004"

    # Resource errors (3xxx)
    NOT_FOUND = "3000"
    DUPLICATE = "3001"
    CONFLICT = "3002"
    LIMIT_EXCEEDED = "3005"
    TENANT_NOT_FOUND = "3006"
    PLAN_NOT_FOUND = "3007"

    # Business logic errors (4xxx)
    BUSINESS_RULE_VIOLATION = "4000"
    INVALID_STATE_TRANSITION = "4001"
    PERMISSION_DENIED = "4003"
    PRECONDITION_FAILED = "4004"
    TENANT_SUSPENDED = "4005"


class BaseError(Exception):
    """Base exception with context, error codes, logging, and error chaining."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        cause: Optional[BaseException] = None,
        **context: Any,
    ):
        """
        Initialize base error with rich context.

        Args:
            message: Human-readable error message
            error_code: Standardized error code from ErrorCode enum
            status_code: HTTP status code for API responses
            cause: Original exception that caused this error
            **context: Additional context information
        """
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.error_id = str(uuid.uuid4())
        self.context = context

        correlation_id = get_correlation_id()
        if correlation_id:
            self.context["correlation_id"] = correlation_id

        self.context["error_id"] = self.error_id

        if cause:
            self.context["cause"] = {
                "type": type(cause).__name__,
                "message": str(cause),
                "traceback": traceback.format_exception(type(cause), cause, cause.__traceback__),
            }

        self._log_error()

        super().__init__(message)

    def _log_error(self) -> None:
        """Log error with appropriate level based on status code."""
        # Imported here: the logger module depends on config, which must not import us back
        from .utils.logger import get_logger

        logger = get_logger()

        log_data = {
            "error_id": self.error_id,
            "error_code": self.error_code.value,
            "status_code": self.status_code,
            "error_message": self.message,
            "timestamp": self.timestamp,
            "context": {k: v for k, v in self.context.items() if k not in ["cause", "traceback"]},
        }

        if "correlation_id" in self.context:
            log_data["correlation_id"] = self.context["correlation_id"]

        if self.status_code >= 500:
            logger.error(
                f"Error {self.error_code.value}: {self.message}", extra=log_data, exc_info=self.cause
            )
        elif self.status_code >= 400:
            logger.warning(f"Client error {self.error_code.value}: {self.message}", extra=log_data)
        else:
            logger.info(f"Error {self.error_code.value}: {self.message}", extra=log_data)

    @property
    def public_message(self) -> str:
        """Message safe to show to the caller; server-side failures stay generic."""
        if self.status_code >= 500:
            return GENERIC_PUBLIC_MESSAGE
        return self.message

    def to_dict(
        self, include_cause: bool = False, include_traceback: bool = False
    ) -> Dict[str, Any]:
        """
        Convert to dict for API responses.

        The message is the public message; causes are only included on request.
        """
        public_context = {}
        if self.status_code < 500:
            public_context = {
                k: v
                for k, v in self.context.items()
                if k not in ["cause", "error_id", "correlation_id"]
            }

        result: Dict[str, Any] = {
            "error": {
                "id": self.error_id,
                "code": self.error_code.value,
                "message": self.public_message,
                "timestamp": self.timestamp,
                "context": public_context,
            }
        }

        if "correlation_id" in self.context:
            result["error"]["correlation_id"] = self.context["correlation_id"]

        if include_cause and "cause" in self.context:
            result["error"]["cause"] = {
                "type": self.context["cause"]["type"],
                "message": self.context["cause"]["message"],
            }
            if include_traceback:
                result["error"]["cause"]["traceback"] = self.context["cause"]["traceback"]

        return result

    def add_context(self, **kwargs: Any) -> "BaseError":
        """Add additional context to the error (fluent interface)."""
        self.context.update(kwargs)
        return self

    @property
    def error_chain(self) -> List[BaseException]:
        """Get the full chain of errors."""
        chain: List[BaseException] = [self]
        current = self.cause
        while current:
            chain.append(current)
            current = getattr(current, "cause", None)
        return chain


# Layer-specific base exceptions
class RepositoryError(BaseError):
    """Repository layer errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.DATABASE_ERROR,
        status_code: int = 500,
        cause: Optional[BaseException] = None,
        **context,
    ):
        super().__init__(message, error_code, status_code, cause, **context)


class ServiceError(BaseError):
    """Service layer errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        operation: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **context,
    ):
        if operation:
            context["operation"] = operation
        super().__init__(message, error_code, 500, cause, **context)


class ValidationError(BaseError):
    """Input failed validation before any write was attempted."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        cause: Optional[BaseException] = None,
        **context,
    ):
        self.field = field
        if field:
            context["field"] = field
        super().__init__(message, error_code, 400, cause, **context)


class NotFoundError(RepositoryError):
    """A tenant-scoped record does not exist in the bound partition."""

    def __init__(self, message: str, cause: Optional[BaseException] = None, **context):
        super().__init__(
            message, error_code=ErrorCode.NOT_FOUND, status_code=404, cause=cause, **context
        )


class DuplicateEntityError(RepositoryError):
    """A uniqueness constraint was violated; ``field`` names the conflicting column."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **context,
    ):
        self.field = field
        if field:
            context["field"] = field
        super().__init__(
            message, error_code=ErrorCode.DUPLICATE, status_code=409, cause=cause, **context
        )


class TenantNotFoundError(BaseError):
    """No institution matches the given tenant identifier."""

    def __init__(self, message: str = "Institution not found", **kwargs):
        super().__init__(
            message=message, error_code=ErrorCode.TENANT_NOT_FOUND, status_code=404, **kwargs
        )


class TenantSuspendedError(BaseError):
    """The institution exists but is not active."""

    def __init__(self, message: str = "Institution is not active", **kwargs):
        super().__init__(
            message=message, error_code=ErrorCode.TENANT_SUSPENDED, status_code=403, **kwargs
        )


class PlanNotFoundError(BaseError):
    """The institution's plan is missing or unknown; a configuration problem."""

    def __init__(self, message: str = "Institution has no associated plan", **kwargs):
        super().__init__(
            message=message, error_code=ErrorCode.PLAN_NOT_FOUND, status_code=500, **kwargs
        )


class TransactionAbortedError(ServiceError):
    """A provisioning transaction was rolled back; ``step`` names where it failed."""

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **context,
    ):
        self.step = step
        if step:
            context["step"] = step
        super().__init__(
            message, error_code=ErrorCode.TRANSACTION_ABORTED, cause=cause, **context
        )


class TenantIsolationViolationError(BaseError):
    """A repository or session was used against the wrong partition."""

    def __init__(self, message: str = "Tenant isolation violation detected", **kwargs):
        super().__init__(
            message=message, error_code=ErrorCode.PERMISSION_DENIED, status_code=403, **kwargs
        )


class MissingTenantContextError(BaseError):
    """A tenant-scoped component was constructed without a tenant context."""

    def __init__(self, message: str = "Tenant context is required", **kwargs):
        super().__init__(
            message=message, error_code=ErrorCode.CONFIGURATION_ERROR, status_code=500, **kwargs
        )


# Factory functions for common error patterns
def not_found(resource_type: str, cause: Optional[BaseException] = None, **identifiers) -> NotFoundError:
    """
    Factory for not found errors.

    Args:
        resource_type: Type of resource (e.g., 'User', 'Role')
        cause: Original exception if any
        **identifiers: Resource identifiers (e.g., user_id='123')
    """
    id_parts = [f"{k}={v}" for k, v in identifiers.items()]
    message = f"{resource_type} not found"
    if id_parts:
        message += f": {', '.join(id_parts)}"

    return NotFoundError(message, cause=cause, resource_type=resource_type, **identifiers)


def duplicate(
    resource_type: str, field: Optional[str] = None, cause: Optional[BaseException] = None, **identifiers
) -> DuplicateEntityError:
    """
    Factory for duplicate resource errors.

    Args:
        resource_type: Type of resource (e.g., 'User')
        field: Column whose uniqueness was violated
        cause: Original exception if any
        **identifiers: Resource identifiers
    """
    if field and field in identifiers:
        message = f"{resource_type} with this {field} already exists"
    elif field:
        message = f"Duplicate {resource_type}: {field} already in use"
    else:
        message = f"Duplicate {resource_type}"

    return DuplicateEntityError(
        message, field=field, cause=cause, resource_type=resource_type, **identifiers
    )


def validation_failed(
    field: str, value: Any, reason: str, cause: Optional[BaseException] = None
) -> ValidationError:
    """Factory for validation errors."""
    return ValidationError(
        f"Validation failed for {field}: {reason}",
        field=field,
        error_code=ErrorCode.VALIDATION_FAILED,
        cause=cause,
        value=str(value),
        reason=reason,
    )


def permission_denied(
    action: str, resource: str, cause: Optional[BaseException] = None, **context
) -> TenantIsolationViolationError:
    """Factory for cross-partition access that must be refused."""
    return TenantIsolationViolationError(
        f"Permission denied: {action} on {resource}",
        cause=cause,
        action=action,
        resource=resource,
        **context,
    )


# Correlation ID management
def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current thread."""
    _thread_local.correlation_id = correlation_id


def get_correlation_id() -> Optional[str]:
    """Get the current thread's correlation ID."""
    return getattr(_thread_local, "correlation_id", None)


def clear_correlation_id() -> None:
    """Clear the current thread's correlation ID."""
    if hasattr(_thread_local, "correlation_id"):
        delattr(_thread_local, "correlation_id")
