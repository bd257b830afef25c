"""
Partition resolution: maps a tenant identifier to the data partition it owns.

Resolution reads the global partition only and produces the immutable
TenantContext every downstream component is constructed with.
"""

from ..constants import InstitutionStatus
from ..db.db_config import DatabaseManager, validate_partition_name
from ..db.db_global_models import Institution
from ..exceptions import TenantNotFoundError, TenantSuspendedError, ValidationError
from ..repositories.institution_repository import InstitutionRepository
from ..utils.logger import get_logger
from .operation_context import operation
from .tenant_context import TenantContext


def tenant_context_from_institution(institution: Institution) -> TenantContext:
    return TenantContext(
        tenant_id=institution.id,
        partition_name=institution.partition_name,
        institution_name=institution.name,
        plan_id=institution.plan_id,
        status=institution.status,
        sub_domain=institution.sub_domain,
        type=institution.type,
        metadata=institution.meta or {},
    )


class PartitionResolver:
    """Resolves tenant identifiers (id, slug or sub-domain) against the global catalog."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self.logger = get_logger()

    @operation()
    def resolve(self, tenant_id: str) -> TenantContext:
        """
        Resolve a tenant identifier to its TenantContext.

        Raises:
            ValidationError: If the identifier is blank or the stored partition name is unsafe
            TenantNotFoundError: If no live institution matches
            TenantSuspendedError: If the institution is not active
        """
        if not tenant_id or not str(tenant_id).strip():
            raise ValidationError("tenant_id must be a non-empty string", field="tenant_id")
        identifier = str(tenant_id).strip()

        session = self.db_manager.get_global_session()
        try:
            institution = InstitutionRepository(session).find_by_identifier(identifier)
            if institution is None:
                raise TenantNotFoundError(
                    f"Institution not found: {identifier}", tenant_id=identifier
                )

            if institution.status != InstitutionStatus.ACTIVE.value:
                raise TenantSuspendedError(
                    f"Institution {institution.slug} is {institution.status}",
                    tenant_id=institution.id,
                    status=institution.status,
                )

            validate_partition_name(institution.partition_name)
            context = tenant_context_from_institution(institution)
        finally:
            session.close()

        self.logger.debug("Tenant resolved", extra=context.log_context())
        return context

    def resolve_partition(self, tenant_id: str) -> str:
        return self.resolve(tenant_id).partition_name
