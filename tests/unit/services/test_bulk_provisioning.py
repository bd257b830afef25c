"""
Tests for bulk user creation.
"""

import pytest

from provisioning_core.config import AppConfig, FeatureFlags, ProvisioningConfig
from provisioning_core.db import (
    AuditLog,
    DatabaseManager,
    TeacherProfile,
    User,
    UserPermission,
    UserRole,
)
from provisioning_core.exceptions import TenantSuspendedError, ValidationError
from provisioning_core.schemas.provisioning_schemas import ProvisionedUser
from provisioning_core.schemas.user_schemas import UserRead
from provisioning_core.services import provisioning_service as provisioning_service_module
from provisioning_core.services.cross_partition_lookup import CrossPartitionLookup
from provisioning_core.services.provisioning_service import ProvisioningService
from tests.fixtures.queries import count_rows, partition_rows


def teachers(*emails):
    return [{"email": email, "firstName": "Tea", "lastName": "Cher"} for email in emails]


class TestBulkCreateUsers:
    def test_partial_success(self, provisioning_service, db_manager, tenant):
        # Arrange: the second item repeats the first email
        request = {
            "userType": "teacher",
            "users": teachers("a@school42.edu", "A@school42.edu", "b@school42.edu"),
        }

        # Act
        result = provisioning_service.bulk_create_users("admin-1", request)

        # Assert
        assert [p.user.email for p in result.success] == ["a@school42.edu", "b@school42.edu"]
        assert len(result.failed) == 1
        failure = result.failed[0]
        assert failure.email == "A@school42.edu"
        assert failure.error == "User with this email already exists"
        assert failure.error_code == "3001"
        assert result.summary() == {"total": 3, "succeeded": 2, "failed": 1}

        # Successful items are fully provisioned; the failed one left nothing behind
        assert count_rows(db_manager, tenant, User) == 2
        assert count_rows(db_manager, tenant, UserRole) == 2
        assert count_rows(db_manager, tenant, UserPermission) == 4
        assert count_rows(db_manager, tenant, TeacherProfile) == 2

    def test_invalid_item_becomes_failure(self, provisioning_service, db_manager, tenant):
        request = {
            "userType": "teacher",
            "users": [
                {"email": "broken", "firstName": "Tea", "lastName": "Cher"},
                *teachers("ok@school42.edu"),
            ],
        }

        result = provisioning_service.bulk_create_users("admin-1", request)

        assert [p.user.email for p in result.success] == ["ok@school42.edu"]
        assert result.failed[0].email == "broken"
        assert result.failed[0].error_code == "2000"
        assert result.failed[0].error.startswith("Invalid CreateTeacherInput: email")

    @pytest.mark.parametrize("metadata", ["oops", ["x"], 42])
    def test_malformed_metadata_fails_only_its_item(
        self, provisioning_service, db_manager, tenant, metadata
    ):
        users = teachers("a@school42.edu", "b@school42.edu", "c@school42.edu")
        users[1]["metadata"] = metadata

        result = provisioning_service.bulk_create_users(
            "admin-1",
            {"userType": "teacher", "users": users, "defaultMetadata": {"source": "csv-import"}},
        )

        assert [p.user.email for p in result.success] == ["a@school42.edu", "c@school42.edu"]
        assert len(result.failed) == 1
        assert result.failed[0].email == "b@school42.edu"
        assert result.failed[0].error_code == "2000"
        assert result.failed[0].error.startswith("Invalid CreateTeacherInput: metadata")
        assert count_rows(db_manager, tenant, User) == 2

    def test_non_string_email_is_reported_without_one(self, provisioning_service):
        users = [{"email": 7, "firstName": "Tea", "lastName": "Cher"}, *teachers("ok@x.edu")]

        result = provisioning_service.bulk_create_users("admin-1", {"userType": "teacher", "users": users})

        assert len(result.success) == 1
        assert result.failed[0].email is None
        assert result.failed[0].error_code == "2000"

    def test_default_metadata_is_merged(self, provisioning_service, db_manager, tenant):
        users = teachers("a@school42.edu", "b@school42.edu")
        users[1]["metadata"] = {"source": "manual", "house": "red"}

        result = provisioning_service.bulk_create_users(
            "admin-1",
            {"userType": "teacher", "users": users, "defaultMetadata": {"source": "csv-import"}},
        )

        assert result.success[0].user.metadata == {"source": "csv-import"}
        assert result.success[1].user.metadata == {"source": "manual", "house": "red"}
        profile = partition_rows(
            db_manager, tenant, TeacherProfile, user_id=result.success[1].user.id
        )[0]
        assert profile.meta == {"source": "manual", "house": "red"}

    def test_one_snapshot_per_batch(self, provisioning_service, monkeypatch):
        calls = []
        original = CrossPartitionLookup.snapshot

        def counting_snapshot(self, *args, **kwargs):
            calls.append(args)
            return original(self, *args, **kwargs)

        monkeypatch.setattr(CrossPartitionLookup, "snapshot", counting_snapshot)

        provisioning_service.bulk_create_users(
            "admin-1", {"userType": "teacher", "users": teachers("a@x.edu", "b@x.edu", "c@x.edu")}
        )

        assert len(calls) == 1

    def test_records_summary_audit_event(self, provisioning_service, db_manager, tenant):
        provisioning_service.bulk_create_users(
            "admin-1", {"userType": "teacher", "users": teachers("a@x.edu", "a@x.edu")}
        )

        entries = partition_rows(db_manager, tenant, AuditLog, action="USER_BULK_CREATED")
        assert len(entries) == 1
        assert entries[0].meta["succeeded"] == 1
        assert entries[0].meta["failed_emails"] == ["a@x.edu"]
        assert count_rows(db_manager, tenant, AuditLog, action="USER_CREATED") == 0


class TestBulkRequestValidation:
    @pytest.mark.parametrize(
        "request_data",
        [
            {"userType": "teacher", "users": []},
            {"userType": "admin", "users": teachers("a@x.edu")},
            {"userType": "teacher"},
        ],
    )
    def test_invalid_request(self, provisioning_service, db_manager, tenant, request_data):
        with pytest.raises(ValidationError):
            provisioning_service.bulk_create_users("admin-1", request_data)

        assert count_rows(db_manager, tenant, User) == 0

    def test_configured_size_limit(self, db_manager, tenant):
        config = AppConfig(provisioning=ProvisioningConfig(bcrypt_rounds=4, bulk_max_size=2))
        service = ProvisioningService(tenant, db_manager, config=config)

        with pytest.raises(ValidationError) as exc_info:
            service.bulk_create_users(
                "admin-1", {"userType": "teacher", "users": teachers("a@x.edu", "b@x.edu", "c@x.edu")}
            )

        assert exc_info.value.field == "users"
        assert count_rows(db_manager, tenant, User) == 0

    def test_suspended_tenant(self, db_manager, app_config, tenant):
        suspended = tenant.model_copy(update={"status": "suspended"})
        service = ProvisioningService(suspended, db_manager, config=app_config)

        with pytest.raises(TenantSuspendedError):
            service.bulk_create_users("admin-1", {"userType": "teacher", "users": teachers("a@x.edu")})


class TestParallelBulk:
    @pytest.fixture
    def parallel_config(self):
        return AppConfig(
            features=FeatureFlags(enable_logs_queue=False, enable_audit_log=False),
            provisioning=ProvisioningConfig(bcrypt_rounds=4, bulk_max_workers=4),
        )

    def test_sqlite_runs_items_sequentially(self, db_manager, tenant, parallel_config, monkeypatch):
        # Arrange: any use of the thread pool fails the test
        def no_pool(*args, **kwargs):
            raise AssertionError("thread pool used on SQLite")

        monkeypatch.setattr(provisioning_service_module, "ThreadPoolExecutor", no_pool)
        service = ProvisioningService(tenant, db_manager, config=parallel_config)
        emails = [f"user{i}@x.edu" for i in range(12)]

        # Act
        result = service.bulk_create_users("admin-1", {"userType": "teacher", "users": teachers(*emails)})

        # Assert: every item is written for real
        assert [p.user.email for p in result.success] == emails
        assert result.failed == []
        assert count_rows(db_manager, tenant, User) == 12
        assert count_rows(db_manager, tenant, UserPermission) == 24
        assert count_rows(db_manager, tenant, TeacherProfile) == 12

    def test_order_is_preserved_across_workers(self, db_manager, tenant, parallel_config, monkeypatch):
        # Arrange: a database that accepts concurrent writers; the write phase is stubbed
        monkeypatch.setattr(DatabaseManager, "supports_concurrent_writes", property(lambda self: True))
        service = ProvisioningService(tenant, db_manager, config=parallel_config)

        def fake_provision(self, user_type, actor_id, dto, snapshot):
            user = UserRead(
                id=dto.email,
                email=dto.email,
                first_name=dto.first_name,
                last_name=dto.last_name,
                user_type=user_type.value,
                institution_id=snapshot.institution_id,
                is_active=True,
            )
            return ProvisionedUser(user=user, temp_password="x" * 12)

        monkeypatch.setattr(ProvisioningService, "_provision", fake_provision)
        emails = [f"user{i}@x.edu" for i in range(10)]

        # Act
        result = service.bulk_create_users("admin-1", {"userType": "teacher", "users": teachers(*emails)})

        # Assert
        assert [p.user.email for p in result.success] == emails
        assert result.failed == []
