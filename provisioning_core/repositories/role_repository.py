"""
Role repository.

A partition holds at most one role per role type. ``find_or_create_by_type``
converges concurrent first-time creators on the same row: the insert runs in a
savepoint, and a unique-constraint conflict rolls back only that savepoint
before the existing row is read again.
"""

from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..db.db_tenant_models import Role
from ..exceptions import ErrorCode, RepositoryError
from .base_repository import TenantScopedRepository


def default_role_values(role_type: str) -> Dict[str, Any]:
    return {
        "name": role_type.capitalize(),
        "description": f"Default {role_type} role",
        "is_system": True,
    }


class RoleRepository(TenantScopedRepository[Role]):
    entity_class = Role

    def find_by_id(self, role_id: str) -> Optional[Role]:
        return self._get_by_id(role_id)

    def find_by_type(self, role_type: str) -> Optional[Role]:
        with self._session_operation("find_by_type", is_read_only=True):
            return self.session.execute(
                select(Role).where(Role.role_type == role_type)
            ).scalar_one_or_none()

    def create(self, role_type: str, **values: Any) -> Role:
        role = Role(role_type=role_type, **{**default_role_values(role_type), **values})
        return self._add(role, "create_role", field="role_type", role_type=role_type)

    def find_or_create_by_type(
        self,
        role_type: str,
        defaults: Optional[Dict[str, Any]] = None,
        max_attempts: int = 3,
    ) -> Tuple[Role, bool]:
        """
        Return the role for ``role_type``, creating it when absent.

        Returns:
            (role, created) where ``created`` is True only for the caller whose
            insert won.
        """
        values = {**default_role_values(role_type), **(defaults or {})}

        for attempt in range(1, max_attempts + 1):
            role = self.find_by_type(role_type)
            if role is not None:
                return role, False

            try:
                with self.session.begin_nested():
                    role = Role(role_type=role_type, **values)
                    self.session.add(role)
                    self.session.flush()
            except IntegrityError:
                self.logger.info(
                    "Concurrent role creation detected, re-reading",
                    extra={"role_type": role_type, "attempt": attempt, **self._error_context()},
                )
                continue
            except Exception as e:
                self._handle_db_error(e, "find_or_create_by_type", role_type=role_type)

            self.logger.info(
                "Role created",
                extra={"role_type": role_type, "role_id": role.id, **self._error_context()},
            )
            return role, True

        raise RepositoryError(
            f"Could not resolve role {role_type} after {max_attempts} attempts",
            error_code=ErrorCode.CONFLICT,
            role_type=role_type,
            **self._error_context(),
        )
