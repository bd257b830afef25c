"""
Reads that bridge the global partition and a tenant partition.

Every lookup opens its own short read-only session on the global partition and
closes it before returning, so it never shares a connection or transaction with
a tenant write transaction.
"""

import re
from contextlib import contextmanager
from fnmatch import fnmatchcase
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..config import ProvisioningConfig, get_config
from ..constants import InstitutionStatus
from ..context.operation_context import operation
from ..context.tenant_context import TenantContext
from ..db.db_config import DatabaseManager
from ..db.db_global_models import Institution
from ..exceptions import PlanNotFoundError, TenantNotFoundError, TenantSuspendedError
from ..repositories.institution_repository import InstitutionRepository
from ..repositories.plan_repository import PlanRepository
from ..schemas.provisioning_schemas import InstitutionPlan, ProvisioningSnapshot
from ..utils.logger import get_logger

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def filter_by_plan_scope(plan_keys: Iterable[str], patterns: Iterable[str]) -> List[str]:
    """
    Plan keys matching any of the role's patterns, sorted.

    Patterns use shell-style wildcards; ``*`` grants the full plan scope. Keys
    outside the plan are never returned.
    """
    patterns = list(patterns)
    return sorted(
        {key for key in plan_keys if any(fnmatchcase(key, pattern) for pattern in patterns)}
    )


def derive_realm(institution: Institution, prefix: str = "school") -> str:
    """Stored realm, else ``<prefix>-<sub_domain|slug|id>`` normalised to lower-case."""
    if institution.realm:
        return institution.realm
    identity = institution.sub_domain or institution.slug or institution.id
    slug = _NON_ALNUM.sub("-", str(identity).lower()).strip("-")
    return f"{prefix}-{slug}"


class CrossPartitionLookup:
    """Plan and institution reads used by the provisioning workflows."""

    def __init__(self, db_manager: DatabaseManager, config: Optional[ProvisioningConfig] = None):
        self.db_manager = db_manager
        self.config = config or get_config().provisioning
        self.logger = get_logger()

    @contextmanager
    def _global_session(self):
        session: Session = self.db_manager.get_global_session()
        try:
            yield session
        finally:
            session.rollback()
            session.close()

    def _institution_plan(self, session: Session, tenant: TenantContext) -> InstitutionPlan:
        institution = InstitutionRepository(session).find_by_partition(tenant.partition_name)
        if institution is None:
            raise TenantNotFoundError(
                "Institution not found", partition=tenant.partition_name, tenant_id=tenant.tenant_id
            )
        if not institution.plan_id:
            raise PlanNotFoundError(
                "Institution has no associated plan", tenant_id=institution.id
            )
        return InstitutionPlan(
            institution_id=institution.id,
            plan_id=institution.plan_id,
            realm=derive_realm(institution, self.config.realm_prefix),
            status=institution.status,
        )

    def _plan_scope(self, session: Session, plan_id: str) -> List[str]:
        repo = PlanRepository(session)
        plan = repo.find_by_id(plan_id)
        if plan is None:
            raise PlanNotFoundError(f"Plan not found: {plan_id}", plan_id=plan_id)
        # A retired plan grants nothing
        if not plan.is_active:
            raise PlanNotFoundError(f"Plan is inactive: {plan_id}", plan_id=plan_id)
        return repo.get_permission_keys(plan_id)

    @operation()
    def get_institution_plan(self, tenant: TenantContext) -> InstitutionPlan:
        """
        Raises:
            TenantNotFoundError: No institution owns the tenant's partition
            PlanNotFoundError: The institution has no plan
        """
        with self._global_session() as session:
            return self._institution_plan(session, tenant)

    @operation()
    def get_plan_scope(self, plan_id: str) -> List[str]:
        """
        Raises:
            PlanNotFoundError: The plan does not exist or is inactive
        """
        with self._global_session() as session:
            return self._plan_scope(session, plan_id)

    @operation()
    def snapshot(self, tenant: TenantContext, user_type: str) -> ProvisioningSnapshot:
        """Institution, plan and role-filtered permission keys in one global read."""
        with self._global_session() as session:
            plan = self._institution_plan(session, tenant)
            plan_keys = self._plan_scope(session, plan.plan_id)

        keys = filter_by_plan_scope(plan_keys, self.config.scope_for(user_type))
        self.logger.debug(
            "Provisioning snapshot taken",
            extra={
                **tenant.log_context(),
                "plan_id": plan.plan_id,
                "user_type": user_type,
                "plan_keys": len(plan_keys),
                "granted_keys": len(keys),
            },
        )
        return ProvisioningSnapshot(
            institution_id=plan.institution_id,
            plan_id=plan.plan_id,
            realm=plan.realm,
            user_type=user_type,
            permission_keys=tuple(keys),
        )

    def ensure_institution_active(self, tenant: TenantContext) -> None:
        """
        Raises:
            TenantNotFoundError: The institution disappeared
            TenantSuspendedError: The institution is no longer active
        """
        with self._global_session() as session:
            institution = InstitutionRepository(session).find_by_partition(tenant.partition_name)
            if institution is None:
                raise TenantNotFoundError(
                    "Institution not found", tenant_id=tenant.tenant_id
                )
            if institution.status != InstitutionStatus.ACTIVE.value:
                raise TenantSuspendedError(
                    f"Institution {institution.slug} is {institution.status}",
                    tenant_id=institution.id,
                    status=institution.status,
                )
