"""
Result and value-object schemas for provisioning and cross-partition lookups.
"""

from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .user_schemas import UserRead


class InstitutionPlan(BaseModel):
    """An institution's plan binding as read from the global partition."""

    institution_id: str
    plan_id: str
    realm: str
    status: str

    model_config = ConfigDict(frozen=True)


class ProvisioningSnapshot(BaseModel):
    """
    Everything the write phase needs from the global partition.

    Captured once, before the tenant transaction starts; later catalog changes
    do not affect a transaction already running.
    """

    institution_id: str
    plan_id: str
    realm: str
    user_type: str
    permission_keys: Tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)


class ProvisionedUser(BaseModel):
    """A created user plus the temporary password, which is never stored in clear."""

    user: UserRead
    temp_password: str = Field(repr=False)


class BulkFailure(BaseModel):
    email: Optional[str] = None
    error: str
    error_code: str


class BulkCreateResult(BaseModel):
    success: List[ProvisionedUser] = Field(default_factory=list)
    failed: List[BulkFailure] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.success) + len(self.failed)

    def summary(self) -> dict:
        return {"total": self.total, "succeeded": len(self.success), "failed": len(self.failed)}
