from typing import List, Optional

from sqlalchemy import select

from ..db.db_global_models import Permission, Plan, PlanPermission
from .base_repository import GlobalRepository


class PlanRepository(GlobalRepository[Plan]):
    entity_class = Plan

    def find_by_id(self, plan_id: str) -> Optional[Plan]:
        return self._get_by_id(plan_id)

    def find_by_slug(self, slug: str) -> Optional[Plan]:
        with self._session_operation("find_by_slug", is_read_only=True):
            return self.session.execute(select(Plan).where(Plan.slug == slug)).scalar_one_or_none()

    def get_permission_keys(self, plan_id: str) -> List[str]:
        """Sorted permission keys linked to the plan."""
        with self._session_operation("get_permission_keys", plan_id, is_read_only=True):
            return list(
                self.session.execute(
                    select(Permission.key)
                    .join(PlanPermission, PlanPermission.permission_id == Permission.id)
                    .where(PlanPermission.plan_id == plan_id)
                    .order_by(Permission.key)
                ).scalars()
            )
