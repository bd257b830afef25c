"""
Base service for components bound to one tenant partition.

The service owns its sessions: ``transaction()`` opens a session on the tenant's
partition, commits when the block succeeds and rolls back on any exception,
including cancellation. Failures that are not already part of the error
taxonomy are wrapped in TransactionAbortedError naming the step that failed.
"""

import time
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from ..config import AppConfig, get_config
from ..constants import ProvisioningStep
from ..context.tenant_context import TenantContext
from ..db.db_config import DatabaseManager
from ..exceptions import (
    DuplicateEntityError,
    MissingTenantContextError,
    NotFoundError,
    PlanNotFoundError,
    TenantIsolationViolationError,
    TenantNotFoundError,
    TenantSuspendedError,
    TransactionAbortedError,
    ValidationError,
)
from ..utils.logger import get_logger

# Errors that already describe the failure to the caller and are re-raised as-is
PASS_THROUGH_ERRORS = (
    ValidationError,
    DuplicateEntityError,
    NotFoundError,
    TenantNotFoundError,
    TenantSuspendedError,
    PlanNotFoundError,
    TenantIsolationViolationError,
    MissingTenantContextError,
    TransactionAbortedError,
)


class TransactionScope:
    """The session of one tenant transaction plus its step marker and time budget."""

    def __init__(self, session: Session, timeout_seconds: float):
        self.session = session
        self.timeout_seconds = timeout_seconds
        self.deadline = time.monotonic() + timeout_seconds
        self.current_step: Optional[ProvisioningStep] = None

    @property
    def step_name(self) -> Optional[str]:
        return self.current_step.value if self.current_step else None

    def enter(self, step: ProvisioningStep) -> None:
        """Record the step about to run; refuse it when the budget is spent."""
        self.current_step = step
        self.check_deadline()

    def check_deadline(self) -> None:
        if time.monotonic() > self.deadline:
            raise TransactionAbortedError(
                f"Transaction exceeded its {self.timeout_seconds}s budget",
                step=self.step_name,
                timeout_seconds=self.timeout_seconds,
            )


class TenantService:
    """Base for services bound to a single TenantContext."""

    def __init__(
        self,
        tenant: TenantContext,
        db_manager: DatabaseManager,
        config: Optional[AppConfig] = None,
    ):
        if not isinstance(tenant, TenantContext):
            raise MissingTenantContextError(
                f"{self.__class__.__name__} requires a TenantContext",
                service=self.__class__.__name__,
            )
        self.tenant = tenant
        self.db_manager = db_manager
        self.app_config = config or get_config()
        self.logger = get_logger()

    def _open_session(self) -> Session:
        return self.db_manager.get_partition_session(self.tenant.partition_name)

    @contextmanager
    def read_session(self) -> Iterator[Session]:
        """Short-lived session for reads; nothing is committed."""
        session = self._open_session()
        try:
            yield session
        finally:
            session.rollback()
            session.close()

    @contextmanager
    def transaction(self, operation_name: str) -> Iterator[TransactionScope]:
        """
        Run a block as one tenant transaction.

        Usage:
            with self.transaction("provision_user") as scope:
                scope.enter(ProvisioningStep.CREATE_USER)
                ...
            # committed here; rolled back if the block raised
        """
        session = self._open_session()
        timeout = self.app_config.provisioning.transaction_timeout_seconds
        scope = TransactionScope(session, timeout)
        try:
            if session.get_bind().dialect.name == "postgresql":
                session.execute(text(f"SET LOCAL statement_timeout = {int(timeout * 1000)}"))

            yield scope

            scope.enter(ProvisioningStep.COMMIT)
            session.commit()
        except BaseException as e:
            session.rollback()
            self.logger.warning(
                f"Transaction rolled back: {operation_name}",
                extra={
                    **self.tenant.log_context(),
                    "operation": operation_name,
                    "step": scope.step_name,
                    "error_type": type(e).__name__,
                },
            )
            if isinstance(e, PASS_THROUGH_ERRORS) or not isinstance(e, Exception):
                raise
            raise TransactionAbortedError(
                f"{operation_name} failed at step {scope.step_name}",
                step=scope.step_name,
                cause=e,
                operation=operation_name,
                **self.tenant.log_context(),
            ) from e
        finally:
            session.close()
