"""
Shared fixtures for the provisioning core tests.

Every test gets fresh SQLite in-memory databases: one for the global catalog and
one per provisioned tenant partition. The catalog is seeded with the reference
institution ``school-42`` on plan ``basic``.

In-memory databases share a single connection per partition, so tests open
their own sessions with ``with db_manager.get_partition_session(...)`` and close
them before calling into a service.
"""

import os
from unittest.mock import patch

import pytest

from provisioning_core.config import AppConfig, FeatureFlags, ProvisioningConfig, reset_config
from provisioning_core.context.partition_resolver import PartitionResolver
from provisioning_core.context.tenant_context import TenantContext
from provisioning_core.db import DatabaseConfig, DatabaseManager, initialize_db
from provisioning_core.exceptions import clear_correlation_id
from provisioning_core.services.credential_delivery import CollectingCredentialDelivery
from provisioning_core.services.provisioning_service import ProvisioningService
from provisioning_core.utils.logger import reset_logging
from tests.fixtures.factories import InstitutionFactory, PlanFactory, configure_factories

BASIC_PLAN_KEYS = ["view_students", "view_teachers"]


@pytest.fixture(autouse=True)
def isolated_environment():
    """Keep queue logging off and process-level state clean between tests."""
    with patch.dict(os.environ, {"AzureWebJobsStorage": "", "ENABLE_LOGS_QUEUE": "false"}):
        yield
    reset_config()
    reset_logging()
    clear_correlation_id()


@pytest.fixture
def db_config() -> DatabaseConfig:
    """SQLite in-memory database configuration for testing."""
    return DatabaseConfig(db_type="sqlite", database=":memory:", echo=False, development_mode=True)


@pytest.fixture
def db_manager(db_config: DatabaseConfig) -> DatabaseManager:
    manager = initialize_db(db_config)
    yield manager
    manager.close()


@pytest.fixture
def app_config() -> AppConfig:
    """Application config with a cheap bcrypt cost so tests stay fast."""
    return AppConfig(
        environment="test",
        features=FeatureFlags(enable_logs_queue=False),
        provisioning=ProvisioningConfig(bcrypt_rounds=4),
    )


@pytest.fixture
def global_session(db_manager: DatabaseManager):
    """Global-partition session bound to the catalog factories."""
    session = db_manager.get_global_session()
    configure_factories(session)
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def basic_plan(global_session):
    return PlanFactory(slug="basic", name="Basic", permission_keys=BASIC_PLAN_KEYS)


@pytest.fixture
def institution(global_session, db_manager: DatabaseManager, basic_plan):
    """The reference institution with its partition provisioned."""
    institution = InstitutionFactory(
        name="School 42",
        slug="school-42",
        sub_domain="school-42",
        partition_name="school_42",
        plan=basic_plan,
    )
    db_manager.provision_partition(institution.partition_name)
    return institution


@pytest.fixture
def make_institution(global_session, db_manager: DatabaseManager):
    """Create another institution (and its partition) on demand."""

    def _make(slug: str, **kwargs):
        institution = InstitutionFactory(slug=slug, sub_domain=slug, **kwargs)
        db_manager.provision_partition(institution.partition_name)
        return institution

    return _make


@pytest.fixture
def tenant(db_manager: DatabaseManager, institution) -> TenantContext:
    return PartitionResolver(db_manager).resolve("school-42")


@pytest.fixture
def tenant_session(db_manager: DatabaseManager, tenant: TenantContext):
    """Session on the reference tenant's partition, for repository tests."""
    session = db_manager.get_partition_session(tenant.partition_name)
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def credential_delivery() -> CollectingCredentialDelivery:
    return CollectingCredentialDelivery()


@pytest.fixture
def provisioning_service(
    tenant: TenantContext,
    db_manager: DatabaseManager,
    app_config: AppConfig,
    credential_delivery: CollectingCredentialDelivery,
) -> ProvisioningService:
    return ProvisioningService(
        tenant, db_manager, config=app_config, credential_delivery=credential_delivery
    )


@pytest.fixture
def teacher_payload():
    return {
        "email": "jane.doe@school42.edu",
        "firstName": "Jane",
        "lastName": "Doe",
        "qualification": "MSc Mathematics",
        "employeeId": "T-001",
    }
