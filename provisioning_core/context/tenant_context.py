"""
Tenant context for the provisioning core.

A TenantContext is resolved once per request and passed explicitly to every
tenant-scoped repository and service. It is immutable so a component can never
re-point itself at another partition mid-request.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..constants import InstitutionStatus


class TenantContext(BaseModel):
    """Resolved identity and data partition of the institution a request acts for."""

    tenant_id: str = Field(min_length=1)
    partition_name: str = Field(min_length=1)
    institution_name: str
    plan_id: Optional[str] = None
    status: str = InstitutionStatus.ACTIVE.value
    sub_domain: Optional[str] = None
    type: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, from_attributes=True)

    @property
    def is_active(self) -> bool:
        return self.status == InstitutionStatus.ACTIVE.value

    def log_context(self) -> Dict[str, Any]:
        """Identifiers to attach to log lines."""
        return {"tenant_id": self.tenant_id, "partition": self.partition_name}
