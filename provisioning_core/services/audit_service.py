"""
Audit trail for provisioning actions.

Events are written in their own transaction after the business transaction has
committed. A failed audit write is logged and never undoes the committed work.
"""

from typing import Any, Dict, Optional

from ..constants import AuditAction
from ..context.tenant_context import TenantContext
from ..db.db_config import DatabaseManager
from ..repositories.audit_log_repository import AuditLogRepository
from ..utils.logger import get_logger


class AuditService:
    def __init__(self, db_manager: DatabaseManager, enabled: bool = True):
        self.db_manager = db_manager
        self.enabled = enabled
        self.logger = get_logger()

    def record(
        self,
        tenant: TenantContext,
        action: AuditAction,
        actor_id: Optional[str],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Write one audit entry. Returns False when the write failed.
        """
        if not self.enabled:
            return False

        self.logger.info(
            f"AUDIT: {action.value}",
            extra={**tenant.log_context(), "actor_id": actor_id, **(metadata or {})},
        )

        session = self.db_manager.get_partition_session(tenant.partition_name)
        try:
            AuditLogRepository(tenant, session).create(
                action.value, actor_id=actor_id, metadata=metadata
            )
            session.commit()
            return True
        except Exception as e:
            session.rollback()
            self.logger.error(
                "Failed to write audit log",
                extra={
                    **tenant.log_context(),
                    "action": action.value,
                    "error_type": type(e).__name__,
                    "error_details": str(e),
                },
            )
            return False
        finally:
            session.close()
