"""
Tests for single-user provisioning workflows.

Uses real SQLite partitions; failures are injected by patching one repository
step at a time to check the whole write phase rolls back.
"""

import time
import uuid

import pytest
from sqlalchemy import select

from provisioning_core.config import AppConfig, FeatureFlags, ProvisioningConfig
from provisioning_core.context.partition_resolver import PartitionResolver
from provisioning_core.context.tenant_context import TenantContext
from provisioning_core.db import (
    AuditLog,
    ParentProfile,
    Permission,
    PlanPermission,
    Role,
    StaffProfile,
    StudentProfile,
    TeacherProfile,
    User,
    UserPermission,
    UserRole,
)
from provisioning_core.exceptions import (
    GENERIC_PUBLIC_MESSAGE,
    DuplicateEntityError,
    MissingTenantContextError,
    PlanNotFoundError,
    TenantSuspendedError,
    TransactionAbortedError,
    ValidationError,
)
from provisioning_core.repositories import (
    AuditLogRepository,
    RoleRepository,
    TeacherProfileRepository,
    UserPermissionRepository,
    UserRoleRepository,
)
from provisioning_core.schemas.user_schemas import CreateTeacherInput
from provisioning_core.services.provisioning_service import ProvisioningService
from provisioning_core.utils.password_utils import PasswordHasher
from tests.fixtures.queries import count_rows, partition_rows

TENANT_TABLES = (User, Role, UserRole, UserPermission, TeacherProfile)


def assert_partition_empty(db_manager, tenant):
    for model in TENANT_TABLES:
        assert count_rows(db_manager, tenant, model) == 0, model.__tablename__


class TestCreateTeacher:
    def test_reference_scenario(self, provisioning_service, db_manager, tenant, teacher_payload):
        # Act
        result = provisioning_service.create_teacher("admin-1", teacher_payload)

        # Assert: the user
        user = result.user
        assert user.email == "jane.doe@school42.edu"
        assert user.user_type == "teacher"
        assert user.is_active is True
        assert user.institution_id == tenant.tenant_id
        assert user.created_by == "admin-1"

        # Assert: exactly the plan's two keys were granted
        grants = partition_rows(db_manager, tenant, UserPermission, user_id=user.id)
        assert sorted(g.permission_key for g in grants) == ["view_students", "view_teachers"]
        assert all(g.granted_by == "admin-1" for g in grants)

        # Assert: role, assignment and profile
        roles = partition_rows(db_manager, tenant, Role)
        assert [r.role_type for r in roles] == ["teacher"]
        assert count_rows(db_manager, tenant, UserRole, user_id=user.id, role_id=roles[0].id) == 1
        profile = partition_rows(db_manager, tenant, TeacherProfile, user_id=user.id)[0]
        assert profile.qualification == "MSc Mathematics"
        assert profile.employee_id == "T-001"

    def test_temporary_password(
        self, provisioning_service, db_manager, tenant, teacher_payload, credential_delivery
    ):
        result = provisioning_service.create_teacher("admin-1", teacher_payload)

        stored = partition_rows(db_manager, tenant, User, id=result.user.id)[0]
        assert len(result.temp_password) == 12
        assert stored.password_hash != result.temp_password
        assert PasswordHasher().verify(result.temp_password, stored.password_hash)
        assert "temp_password" not in repr(result)
        assert credential_delivery.delivered == [
            (tenant.tenant_id, "jane.doe@school42.edu", result.temp_password)
        ]

    def test_accepts_input_model(self, provisioning_service, teacher_payload):
        data = CreateTeacherInput(**teacher_payload)

        result = provisioning_service.create_teacher("admin-1", data)

        assert result.user.first_name == "Jane"

    def test_records_audit_event(self, provisioning_service, db_manager, tenant, teacher_payload):
        result = provisioning_service.create_teacher("admin-1", teacher_payload)

        entries = partition_rows(db_manager, tenant, AuditLog, actor_id="admin-1")
        assert [e.action for e in entries] == ["USER_CREATED"]
        assert entries[0].meta["user_id"] == result.user.id

    def test_role_is_shared_between_users(self, provisioning_service, db_manager, tenant):
        for i in range(2):
            provisioning_service.create_teacher(
                "admin-1", {"email": f"t{i}@school42.edu", "firstName": "Tea", "lastName": "Cher"}
            )

        assert count_rows(db_manager, tenant, Role, role_type="teacher") == 1
        assert count_rows(db_manager, tenant, UserRole) == 2


class TestOtherUserKinds:
    def test_create_student(self, provisioning_service, db_manager, tenant):
        class_id = str(uuid.uuid4())

        result = provisioning_service.create_student(
            "admin-1",
            {
                "email": "sam@school42.edu",
                "firstName": "Sam",
                "lastName": "Student",
                "admissionNumber": "A-100",
                "gender": "female",
                "classId": class_id,
                "dateOfBirth": "2012-04-01",
            },
        )

        profile = partition_rows(db_manager, tenant, StudentProfile, user_id=result.user.id)[0]
        assert profile.admission_number == "A-100"
        assert profile.gender == "female"
        assert profile.class_id == class_id
        # The basic plan has no student-scoped keys
        assert count_rows(db_manager, tenant, UserPermission, user_id=result.user.id) == 0

    def test_create_staff(self, provisioning_service, db_manager, tenant):
        result = provisioning_service.create_staff(
            "admin-1",
            {"email": "olu@school42.edu", "firstName": "Olu", "lastName": "Staff", "department": "Finance"},
        )

        profile = partition_rows(db_manager, tenant, StaffProfile, user_id=result.user.id)[0]
        assert profile.department == "Finance"
        assert result.user.user_type == "staff"

    def test_create_parent(self, provisioning_service, db_manager, tenant):
        child = str(uuid.uuid4())

        result = provisioning_service.create_parent(
            "admin-1",
            {
                "email": "mum@example.com",
                "firstName": "Ada",
                "lastName": "Parent",
                "relationship": "mother",
                "studentIds": [child],
            },
        )

        profile = partition_rows(db_manager, tenant, ParentProfile, user_id=result.user.id)[0]
        assert profile.relationship_type == "mother"
        assert profile.student_ids == [child]

    def test_create_admin_gets_full_plan_scope(self, provisioning_service, db_manager, tenant):
        result = provisioning_service.create_admin(
            None, {"email": "head@school42.edu", "firstName": "Head", "lastName": "Teacher"}
        )

        grants = partition_rows(db_manager, tenant, UserPermission, user_id=result.user.id)
        assert sorted(g.permission_key for g in grants) == ["view_students", "view_teachers"]
        assert count_rows(db_manager, tenant, TeacherProfile) == 0


class TestValidation:
    @pytest.mark.parametrize(
        "overrides,field",
        [
            ({"email": "not-an-email"}, "email"),
            ({"firstName": "J"}, "firstName"),
            ({"experienceYears": -1}, "experienceYears"),
            ({"favouriteColour": "blue"}, "favouriteColour"),
        ],
    )
    def test_invalid_input_writes_nothing(
        self, provisioning_service, db_manager, tenant, teacher_payload, overrides, field
    ):
        with pytest.raises(ValidationError) as exc_info:
            provisioning_service.create_teacher("admin-1", {**teacher_payload, **overrides})

        assert exc_info.value.status_code == 400
        assert exc_info.value.message.startswith(f"Invalid CreateTeacherInput: {field}")
        assert_partition_empty(db_manager, tenant)

    def test_student_ids_must_be_uuids(self, provisioning_service):
        with pytest.raises(ValidationError):
            provisioning_service.create_parent(
                "admin-1",
                {"email": "p@example.com", "firstName": "Pa", "lastName": "Rent", "studentIds": ["x"]},
            )

    def test_requires_tenant_context(self, db_manager, app_config):
        with pytest.raises(MissingTenantContextError):
            ProvisioningService(None, db_manager, config=app_config)


class TestDuplicates:
    def test_duplicate_email(self, provisioning_service, db_manager, tenant, teacher_payload):
        provisioning_service.create_teacher("admin-1", teacher_payload)

        with pytest.raises(DuplicateEntityError) as exc_info:
            provisioning_service.create_teacher(
                "admin-1", {**teacher_payload, "email": "JANE.DOE@school42.edu"}
            )

        assert exc_info.value.field == "email"
        assert exc_info.value.public_message == "User with this email already exists"
        assert count_rows(db_manager, tenant, User) == 1
        assert count_rows(db_manager, tenant, UserPermission) == 2
        assert count_rows(db_manager, tenant, TeacherProfile) == 1


class TestTenantPreconditions:
    def test_suspended_tenant(self, db_manager, app_config, institution, teacher_payload):
        suspended = TenantContext(
            tenant_id=institution.id,
            partition_name=institution.partition_name,
            institution_name=institution.name,
            status="suspended",
        )
        service = ProvisioningService(suspended, db_manager, config=app_config)

        with pytest.raises(TenantSuspendedError):
            service.create_teacher("admin-1", teacher_payload)

        assert_partition_empty(db_manager, suspended)

    def test_institution_without_plan(self, db_manager, app_config, make_institution, teacher_payload):
        make_institution("no-plan", plan=None)
        tenant = PartitionResolver(db_manager).resolve("no-plan")
        service = ProvisioningService(tenant, db_manager, config=app_config)

        with pytest.raises(PlanNotFoundError) as exc_info:
            service.create_teacher("admin-1", teacher_payload)

        assert exc_info.value.public_message == GENERIC_PUBLIC_MESSAGE
        assert_partition_empty(db_manager, tenant)


class TestAtomicity:
    @pytest.mark.parametrize(
        "target,method,step",
        [
            (RoleRepository, "find_or_create_by_type", "resolve_role"),
            (UserRoleRepository, "assign", "assign_role"),
            (UserPermissionRepository, "bulk_insert", "grant_permissions"),
            (TeacherProfileRepository, "create", "create_profile"),
        ],
    )
    def test_failure_rolls_back_every_write(
        self, provisioning_service, db_manager, tenant, teacher_payload, monkeypatch, target, method, step
    ):
        # Arrange
        def fail(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(target, method, fail)

        # Act
        with pytest.raises(TransactionAbortedError) as exc_info:
            provisioning_service.create_teacher("admin-1", teacher_payload)

        # Assert
        error = exc_info.value
        assert error.step == step
        assert isinstance(error.cause, RuntimeError)
        assert isinstance(error.__cause__, RuntimeError)
        assert error.public_message == GENERIC_PUBLIC_MESSAGE
        assert_partition_empty(db_manager, tenant)

    def test_cancellation_rolls_back(
        self, provisioning_service, db_manager, tenant, teacher_payload, monkeypatch
    ):
        def interrupt(*args, **kwargs):
            raise KeyboardInterrupt()

        monkeypatch.setattr(UserPermissionRepository, "bulk_insert", interrupt)

        with pytest.raises(KeyboardInterrupt):
            provisioning_service.create_teacher("admin-1", teacher_payload)

        assert_partition_empty(db_manager, tenant)

    def test_transaction_budget(self, db_manager, tenant, teacher_payload, monkeypatch):
        config = AppConfig(
            provisioning=ProvisioningConfig(bcrypt_rounds=4, transaction_timeout_seconds=0.2)
        )
        service = ProvisioningService(tenant, db_manager, config=config)
        original = RoleRepository.find_or_create_by_type

        def slow_resolve(self, *args, **kwargs):
            time.sleep(0.3)
            return original(self, *args, **kwargs)

        monkeypatch.setattr(RoleRepository, "find_or_create_by_type", slow_resolve)

        with pytest.raises(TransactionAbortedError) as exc_info:
            service.create_teacher("admin-1", teacher_payload)

        assert exc_info.value.step == "assign_role"
        assert_partition_empty(db_manager, tenant)


class TestAfterCommitSideEffects:
    def test_audit_failure_keeps_user(
        self, provisioning_service, db_manager, tenant, teacher_payload, monkeypatch
    ):
        def broken_audit(*args, **kwargs):
            raise RuntimeError("audit table locked")

        monkeypatch.setattr(AuditLogRepository, "create", broken_audit)

        result = provisioning_service.create_teacher("admin-1", teacher_payload)

        assert count_rows(db_manager, tenant, User, id=result.user.id) == 1
        assert count_rows(db_manager, tenant, AuditLog) == 0

    def test_delivery_failure_keeps_user(self, db_manager, tenant, app_config, teacher_payload):
        class FailingDelivery:
            def deliver(self, tenant, user, temp_password):
                raise ConnectionError("smtp down")

        service = ProvisioningService(
            tenant, db_manager, config=app_config, credential_delivery=FailingDelivery()
        )

        result = service.create_teacher("admin-1", teacher_payload)

        assert result.temp_password
        assert count_rows(db_manager, tenant, User) == 1

    def test_audit_can_be_disabled(self, db_manager, tenant, teacher_payload):
        config = AppConfig(
            features=FeatureFlags(enable_logs_queue=False, enable_audit_log=False),
            provisioning=ProvisioningConfig(bcrypt_rounds=4),
        )
        service = ProvisioningService(tenant, db_manager, config=config)

        service.create_teacher("admin-1", teacher_payload)

        assert count_rows(db_manager, tenant, AuditLog) == 0


class TestPlanChangesAfterProvisioning:
    def remove_plan_key(self, global_session, plan, key):
        link = global_session.execute(
            select(PlanPermission)
            .join(PlanPermission.permission)
            .where(PlanPermission.plan_id == plan.id, Permission.key == key)
        ).scalar_one()
        global_session.delete(link)
        global_session.commit()

    def test_existing_grants_survive_plan_shrinking(
        self, provisioning_service, db_manager, tenant, basic_plan, global_session, teacher_payload
    ):
        # Arrange
        before = provisioning_service.create_teacher("admin-1", teacher_payload).user

        # Act: the plan loses a key after the user was provisioned
        self.remove_plan_key(global_session, basic_plan, "view_teachers")
        after = provisioning_service.create_teacher(
            "admin-1", {"email": "late@school42.edu", "firstName": "La", "lastName": "Te"}
        ).user

        # Assert: earlier grants are copies and stay; new users get the current scope
        grants = partition_rows(db_manager, tenant, UserPermission, user_id=before.id)
        assert sorted(g.permission_key for g in grants) == ["view_students", "view_teachers"]
        late_grants = partition_rows(db_manager, tenant, UserPermission, user_id=after.id)
        assert [g.permission_key for g in late_grants] == ["view_students"]

    def test_retired_plan_blocks_provisioning(
        self, provisioning_service, db_manager, tenant, basic_plan, global_session, teacher_payload
    ):
        basic_plan.is_active = False
        global_session.commit()

        with pytest.raises(PlanNotFoundError):
            provisioning_service.create_teacher("admin-1", teacher_payload)

        assert_partition_empty(db_manager, tenant)
