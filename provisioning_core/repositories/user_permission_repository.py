"""
Per-user permission grants.

Grants are copies of plan permission keys taken at provisioning time; later plan
changes do not touch existing rows.
"""

from typing import Iterable, List, Optional

from sqlalchemy import insert, select

from ..db.db_base import new_uuid, utc_now
from ..db.db_tenant_models import UserPermission
from .base_repository import TenantScopedRepository


class UserPermissionRepository(TenantScopedRepository[UserPermission]):
    entity_class = UserPermission

    def bulk_insert(
        self, user_id: str, permission_keys: Iterable[str], granted_by: Optional[str] = None
    ) -> int:
        """
        Grant every key in one statement. Duplicate keys in the input are collapsed.

        Returns:
            Number of rows written
        """
        keys = sorted(set(permission_keys))
        if not keys:
            return 0

        granted_at = utc_now()
        rows = [
            {
                "id": new_uuid(),
                "user_id": user_id,
                "permission_key": key,
                "granted_by": granted_by,
                "granted_at": granted_at,
            }
            for key in keys
        ]
        with self._session_operation("bulk_grant", user_id, field="permission_key"):
            self.session.execute(insert(UserPermission), rows)
        return len(rows)

    def find_by_user(self, user_id: str) -> List[UserPermission]:
        with self._session_operation("find_by_user", is_read_only=True):
            return list(
                self.session.execute(
                    select(UserPermission)
                    .where(UserPermission.user_id == user_id)
                    .order_by(UserPermission.permission_key)
                )
                .scalars()
                .all()
            )

    def get_permission_keys(self, user_id: str) -> List[str]:
        return [grant.permission_key for grant in self.find_by_user(user_id)]

    def has_permission(self, user_id: str, permission_key: str) -> bool:
        return permission_key in self.get_permission_keys(user_id)
