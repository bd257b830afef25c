"""Service layer: provisioning workflows and the lookups they depend on."""

from .audit_service import AuditService
from .base_service import TenantService, TransactionScope
from .credential_delivery import (
    CollectingCredentialDelivery,
    CredentialDelivery,
    NoCredentialDelivery,
)
from .cross_partition_lookup import CrossPartitionLookup, derive_realm, filter_by_plan_scope
from .provisioning_service import ProvisioningService, validate_input

__all__ = [
    "AuditService",
    "CollectingCredentialDelivery",
    "CredentialDelivery",
    "CrossPartitionLookup",
    "NoCredentialDelivery",
    "ProvisioningService",
    "TenantService",
    "TransactionScope",
    "derive_realm",
    "filter_by_plan_scope",
    "validate_input",
]
