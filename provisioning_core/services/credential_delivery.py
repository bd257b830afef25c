"""
Hand-off of temporary credentials to a delivery channel (email, SMS, ...).

The provisioning service calls the configured channel once per created user,
after the user's transaction has committed. Delivery itself lives outside the
provisioning core.
"""

from typing import List, Protocol, Tuple

from ..context.tenant_context import TenantContext
from ..schemas.user_schemas import UserRead


class CredentialDelivery(Protocol):
    def deliver(self, tenant: TenantContext, user: UserRead, temp_password: str) -> None:
        ...


class NoCredentialDelivery:
    """Default channel: the password is only returned in the provisioning result."""

    def deliver(self, tenant: TenantContext, user: UserRead, temp_password: str) -> None:
        return None


class CollectingCredentialDelivery:
    """Keeps delivered credentials in memory; used by the validation harness."""

    def __init__(self):
        self.delivered: List[Tuple[str, str, str]] = []

    def deliver(self, tenant: TenantContext, user: UserRead, temp_password: str) -> None:
        self.delivered.append((tenant.tenant_id, user.email, temp_password))
