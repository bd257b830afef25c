"""
Base repository implementation shared by the global and tenant-scoped repositories.

Repositories receive a session and never commit or roll back; the service layer
owns the transaction. Every repository checks, on construction, that its session
is bound to the partition it is meant to read and write.
"""

import re
from contextlib import contextmanager
from typing import Any, Dict, Generic, List, NoReturn, Optional, Tuple, Type, TypeVar

from sqlalchemy import asc, desc, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..constants import GLOBAL_PARTITION, SESSION_PARTITION_KEY
from ..context.tenant_context import TenantContext
from ..exceptions import (
    BaseError,
    ErrorCode,
    MissingTenantContextError,
    RepositoryError,
    TenantIsolationViolationError,
    duplicate,
)
from ..utils.logger import get_logger

T = TypeVar("T")

# "UNIQUE constraint failed: users.email" (sqlite) / "Key (email)=(...)" (postgres)
_SQLITE_UNIQUE = re.compile(r"unique constraint failed: ([\w\.]+(?:, [\w\.]+)*)", re.IGNORECASE)
_POSTGRES_KEY = re.compile(r"key \(([^)]+)\)=", re.IGNORECASE)


def _conflicting_field(error_message: str) -> Optional[str]:
    match = _SQLITE_UNIQUE.search(error_message)
    if match:
        return ",".join(part.split(".")[-1] for part in match.group(1).split(", "))
    match = _POSTGRES_KEY.search(error_message)
    if match:
        return ",".join(part.strip() for part in match.group(1).split(","))
    return None


class BaseRepository(Generic[T]):
    """Shared error mapping, session handling and query helpers."""

    entity_class: Type[Any]

    def __init__(self, session: Session):
        self.session = session
        self.logger = get_logger()
        self.entity_name = self.entity_class.__name__

    @property
    def partition(self) -> Optional[str]:
        return self.session.info.get(SESSION_PARTITION_KEY)

    def _error_context(self) -> Dict[str, Any]:
        return {"partition": self.partition}

    def _handle_db_error(
        self,
        e: Exception,
        operation_name: str,
        entity_id: Optional[str] = None,
        **context: Any,
    ) -> NoReturn:
        """
        Map database errors onto the error taxonomy.

        Raises:
            DuplicateEntityError: On unique constraint violations
            RepositoryError: On any other database failure
        """
        if isinstance(e, BaseError):
            raise e

        error_context = {
            "operation_name": operation_name,
            "entity_type": self.entity_name,
            **self._error_context(),
            **context,
        }
        if entity_id:
            error_context["entity_id"] = entity_id

        if isinstance(e, IntegrityError):
            error_message = str(e.orig) if getattr(e, "orig", None) is not None else str(e)
            lowered = error_message.lower()

            if "foreign key" in lowered:
                raise RepositoryError(
                    f"Invalid reference in {self.entity_name}",
                    error_code=ErrorCode.CONSTRAINT_VIOLATION,
                    cause=e,
                    **error_context,
                ) from e

            if "unique" in lowered or "duplicate" in lowered:
                field = context.get("field") or _conflicting_field(error_message)
                error_context.pop("field", None)
                raise duplicate(self.entity_name, field=field, cause=e, **error_context) from e

            raise RepositoryError(
                f"Database constraint violation for {self.entity_name}",
                error_code=ErrorCode.CONSTRAINT_VIOLATION,
                cause=e,
                **error_context,
            ) from e

        if isinstance(e, SQLAlchemyError):
            raise RepositoryError(
                f"Database error for {self.entity_name}: {str(e)}",
                error_code=ErrorCode.DATABASE_ERROR,
                cause=e,
                **error_context,
            ) from e

        raise RepositoryError(
            f"Unexpected error for {self.entity_name}: {str(e)}",
            error_code=ErrorCode.INTERNAL_ERROR,
            cause=e,
            **error_context,
        ) from e

    @contextmanager
    def _session_operation(
        self,
        operation_name: str,
        entity_id: Optional[str] = None,
        is_read_only: bool = False,
        **context: Any,
    ):
        """
        Run a unit of repository work on the caller's session.

        Writes are flushed so constraint violations surface here rather than at
        commit. Nothing is committed or rolled back.
        """
        try:
            yield self.session
            if not is_read_only:
                self.session.flush()
        except Exception as e:
            self._handle_db_error(e, operation_name, entity_id, **context)

    def _get_by_id(self, entity_id: str) -> Optional[T]:
        with self._session_operation("get_by_id", entity_id, is_read_only=True):
            return self.session.get(self.entity_class, entity_id)

    def _add(self, entity: T, operation_name: str, **context: Any) -> T:
        with self._session_operation(operation_name, **context):
            self.session.add(entity)
        return entity

    @staticmethod
    def _apply_pagination(query, limit: int = 50, offset: int = 0):
        return query.offset(offset).limit(limit)

    def _apply_ordering(self, query, sort_by: Optional[str] = None, sort_direction: str = "desc"):
        sort_field = getattr(self.entity_class, sort_by or "created_at")
        if sort_direction.lower() == "asc":
            return query.order_by(asc(sort_field))
        return query.order_by(desc(sort_field))

    def _apply_filters(self, query, filters: Dict[str, Any]):
        for field_name, value in filters.items():
            if value is not None:
                query = query.where(getattr(self.entity_class, field_name) == value)
        return query

    def _list_with_pagination(
        self,
        base_query,
        limit: int = 50,
        offset: int = 0,
        order_by: Optional[str] = None,
        order_dir: str = "desc",
    ) -> Tuple[List[T], int]:
        """Execute a filtered select and return the page plus the total count."""
        with self._session_operation("list", is_read_only=True):
            total_count = self.session.execute(
                select(func.count()).select_from(base_query.subquery())
            ).scalar_one()
            query = self._apply_pagination(
                self._apply_ordering(base_query, order_by, order_dir), limit, offset
            )
            results = list(self.session.execute(query).scalars().all())
        return results, total_count


class TenantScopedRepository(BaseRepository[T]):
    """
    Repository bound to one tenant partition.

    Construction fails without a TenantContext, and fails when the session is
    bound to any partition other than the tenant's.
    """

    def __init__(self, tenant: TenantContext, session: Session):
        if not isinstance(tenant, TenantContext):
            raise MissingTenantContextError(
                f"{self.__class__.__name__} requires a TenantContext",
                repository=self.__class__.__name__,
            )
        bound_partition = session.info.get(SESSION_PARTITION_KEY)
        if bound_partition != tenant.partition_name:
            raise TenantIsolationViolationError(
                f"Session is bound to partition {bound_partition!r}, "
                f"not {tenant.partition_name!r}",
                repository=self.__class__.__name__,
                tenant_id=tenant.tenant_id,
                partition=tenant.partition_name,
                session_partition=bound_partition,
            )
        self.tenant = tenant
        super().__init__(session)

    def _error_context(self) -> Dict[str, Any]:
        return self.tenant.log_context()


class GlobalRepository(BaseRepository[T]):
    """Repository over the shared catalog; refuses tenant contexts and sessions."""

    def __init__(self, session: Session, tenant: Optional[Any] = None):
        if tenant is not None:
            raise TenantIsolationViolationError(
                f"{self.__class__.__name__} reads the global partition and takes no tenant",
                repository=self.__class__.__name__,
            )
        bound_partition = session.info.get(SESSION_PARTITION_KEY)
        if bound_partition != GLOBAL_PARTITION:
            raise TenantIsolationViolationError(
                f"{self.__class__.__name__} needs a global session, got {bound_partition!r}",
                repository=self.__class__.__name__,
                session_partition=bound_partition,
            )
        super().__init__(session)
