from typing import List, Optional

from sqlalchemy import select

from ..db.db_tenant_models import Role, UserRole
from .base_repository import TenantScopedRepository


class UserRoleRepository(TenantScopedRepository[UserRole]):
    entity_class = UserRole

    def assign(self, user_id: str, role_id: str, assigned_by: Optional[str] = None) -> UserRole:
        """Link a user to a role; a repeated pair raises DuplicateEntityError."""
        user_role = UserRole(user_id=user_id, role_id=role_id, assigned_by=assigned_by)
        return self._add(user_role, "assign_role", user_id=user_id, role_id=role_id)

    def find_by_user(self, user_id: str) -> List[UserRole]:
        with self._session_operation("find_by_user", is_read_only=True):
            return list(
                self.session.execute(select(UserRole).where(UserRole.user_id == user_id))
                .scalars()
                .all()
            )

    def get_role_types(self, user_id: str) -> List[str]:
        with self._session_operation("get_role_types", is_read_only=True):
            return list(
                self.session.execute(
                    select(Role.role_type)
                    .join(UserRole, UserRole.role_id == Role.id)
                    .where(UserRole.user_id == user_id)
                    .order_by(Role.role_type)
                ).scalars()
            )

    def has_role(self, user_id: str, role_type: str) -> bool:
        return role_type in self.get_role_types(user_id)
