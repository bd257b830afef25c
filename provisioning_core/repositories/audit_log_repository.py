from typing import Any, Dict, List, Optional

from sqlalchemy import select

from ..db.db_tenant_models import AuditLog
from .base_repository import TenantScopedRepository


class AuditLogRepository(TenantScopedRepository[AuditLog]):
    entity_class = AuditLog

    def create(
        self, action: str, actor_id: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None
    ) -> AuditLog:
        entry = AuditLog(action=action, actor_id=actor_id, meta=metadata or {})
        return self._add(entry, "create_audit_log", action=action)

    def list_for_actor(self, actor_id: str, action: Optional[str] = None) -> List[AuditLog]:
        query = select(AuditLog).where(AuditLog.actor_id == actor_id)
        if action is not None:
            query = query.where(AuditLog.action == action)
        with self._session_operation("list_for_actor", is_read_only=True):
            return list(
                self.session.execute(query.order_by(AuditLog.created_at)).scalars().all()
            )
