"""
User provisioning workflows for one tenant.

A creation runs in two phases. The read phase takes a ProvisioningSnapshot from
the global partition (institution, plan, role-filtered permission keys). The
write phase then runs one tenant transaction:

    create user -> resolve-or-create role -> assign role
        -> grant permissions -> create profile -> commit

Any failure in the write phase rolls back every row written by it. After commit
the temporary password is handed to the credential delivery channel and an
audit event is recorded; failures there are logged and do not undo the user.
"""

import math
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..config import AppConfig
from ..constants import AuditAction, DEFAULT_PAGE_SIZE, ProvisioningStep, UserType
from ..context.operation_context import operation
from ..context.tenant_context import TenantContext
from ..db.db_config import DatabaseManager
from ..db.db_tenant_models import User
from ..exceptions import (
    BaseError,
    TenantSuspendedError,
    ValidationError,
    permission_denied,
)
from ..repositories.profile_repositories import profile_repository_for
from ..repositories.role_repository import RoleRepository
from ..repositories.user_permission_repository import UserPermissionRepository
from ..repositories.user_repository import UserRepository
from ..repositories.user_role_repository import UserRoleRepository
from ..schemas.provisioning_schemas import (
    BulkCreateResult,
    BulkFailure,
    ProvisionedUser,
    ProvisioningSnapshot,
)
from ..schemas.user_schemas import (
    INPUT_MODELS,
    AssignPermissionsInput,
    BulkCreateUsersInput,
    CreateAdminInput,
    CreateParentInput,
    CreateStaffInput,
    CreateStudentInput,
    CreateTeacherInput,
    Pagination,
    UpdateUserInput,
    UserDetail,
    UserInputBase,
    UserPage,
    UserRead,
    UserStats,
)
from ..utils.password_utils import PasswordHasher, generate_temp_password
from .audit_service import AuditService
from .base_service import TenantService
from .credential_delivery import CredentialDelivery, NoCredentialDelivery
from .cross_partition_lookup import CrossPartitionLookup

InputData = Union[BaseModel, Mapping[str, Any]]


def _validation_error(model: type, e: PydanticValidationError) -> ValidationError:
    errors = e.errors(include_url=False, include_context=False, include_input=False)
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    detail = f"{field}: {first.get('msg')}" if field else str(first.get("msg", "invalid input"))
    return ValidationError(
        f"Invalid {model.__name__}: {detail}",
        field=field,
        validation_errors=errors,
    )


def validate_input(model: type, data: InputData):
    """Coerce ``data`` into ``model``; pydantic failures become ValidationError."""
    if isinstance(data, model):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=False)
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise _validation_error(model, e) from e


class ProvisioningService(TenantService):
    """Creates, deactivates and lists the users of one institution."""

    def __init__(
        self,
        tenant: TenantContext,
        db_manager: DatabaseManager,
        lookup: Optional[CrossPartitionLookup] = None,
        config: Optional[AppConfig] = None,
        credential_delivery: Optional[CredentialDelivery] = None,
        audit: Optional[AuditService] = None,
        hasher: Optional[PasswordHasher] = None,
    ):
        super().__init__(tenant, db_manager, config)
        self.config = self.app_config.provisioning
        self.lookup = lookup or CrossPartitionLookup(db_manager, self.config)
        self.credential_delivery = credential_delivery or NoCredentialDelivery()
        self.audit = audit or AuditService(
            db_manager, enabled=self.app_config.features.enable_audit_log
        )
        self.hasher = hasher or PasswordHasher(rounds=self.config.bcrypt_rounds)

    # ==================== CREATION ====================

    @operation()
    def create_teacher(
        self, actor_id: Optional[str], data: Union[CreateTeacherInput, InputData]
    ) -> ProvisionedUser:
        return self._create(UserType.TEACHER, actor_id, data)

    @operation()
    def create_student(
        self, actor_id: Optional[str], data: Union[CreateStudentInput, InputData]
    ) -> ProvisionedUser:
        return self._create(UserType.STUDENT, actor_id, data)

    @operation()
    def create_staff(
        self, actor_id: Optional[str], data: Union[CreateStaffInput, InputData]
    ) -> ProvisionedUser:
        return self._create(UserType.STAFF, actor_id, data)

    @operation()
    def create_parent(
        self, actor_id: Optional[str], data: Union[CreateParentInput, InputData]
    ) -> ProvisionedUser:
        return self._create(UserType.PARENT, actor_id, data)

    @operation()
    def create_admin(
        self, actor_id: Optional[str], data: Union[CreateAdminInput, InputData]
    ) -> ProvisionedUser:
        """Tenant administrator; granted the institution's full plan scope."""
        return self._create(UserType.ADMIN, actor_id, data)

    def _ensure_active(self) -> None:
        if not self.tenant.is_active:
            raise TenantSuspendedError(
                f"Institution {self.tenant.institution_name} is {self.tenant.status}",
                tenant_id=self.tenant.tenant_id,
                status=self.tenant.status,
            )

    def _create(
        self, user_type: UserType, actor_id: Optional[str], data: InputData
    ) -> ProvisionedUser:
        dto = validate_input(INPUT_MODELS[user_type.value], data)
        self._ensure_active()
        snapshot = self.lookup.snapshot(self.tenant, user_type.value)
        provisioned = self._provision(user_type, actor_id, dto, snapshot)
        self._record(AuditAction.USER_CREATED, actor_id, {
            "user_id": provisioned.user.id,
            "email": provisioned.user.email,
            "user_type": user_type.value,
        })
        return provisioned

    def _provision(
        self,
        user_type: UserType,
        actor_id: Optional[str],
        dto: UserInputBase,
        snapshot: ProvisioningSnapshot,
    ) -> ProvisionedUser:
        """Write phase for one validated user; commits or rolls back as a unit."""
        temp_password = generate_temp_password(self.config.temp_password_length)
        password_hash = self.hasher.hash(temp_password)

        with self.transaction(f"provision_{user_type.value}") as scope:
            session = scope.session

            scope.enter(ProvisioningStep.CREATE_USER)
            user = UserRepository(self.tenant, session).create(
                password_hash=password_hash,
                user_type=user_type.value,
                created_by=actor_id,
                **dto.user_fields(),
            )

            scope.enter(ProvisioningStep.RESOLVE_ROLE)
            role, _ = RoleRepository(self.tenant, session).find_or_create_by_type(
                user_type.value, max_attempts=self.config.role_create_max_attempts
            )

            scope.enter(ProvisioningStep.ASSIGN_ROLE)
            UserRoleRepository(self.tenant, session).assign(user.id, role.id, assigned_by=actor_id)

            scope.enter(ProvisioningStep.GRANT_PERMISSIONS)
            UserPermissionRepository(self.tenant, session).bulk_insert(
                user.id, snapshot.permission_keys, granted_by=actor_id
            )

            profile_repository = profile_repository_for(user_type.value)
            if profile_repository is not None:
                scope.enter(ProvisioningStep.CREATE_PROFILE)
                profile_repository(self.tenant, session).create(user.id, **dto.profile_fields())

            user_read = UserRead.model_validate(user)

        self.logger.info(
            "User provisioned",
            extra={
                **self.tenant.log_context(),
                "user_id": user_read.id,
                "user_type": user_type.value,
                "role_id": role.id,
                "permission_count": len(snapshot.permission_keys),
            },
        )
        self._deliver_credentials(user_read, temp_password)
        return ProvisionedUser(user=user_read, temp_password=temp_password)

    def _deliver_credentials(self, user: UserRead, temp_password: str) -> None:
        try:
            self.credential_delivery.deliver(self.tenant, user, temp_password)
        except Exception as e:
            # The user is committed; delivery can be retried out of band
            self.logger.error(
                "Credential delivery failed",
                extra={
                    **self.tenant.log_context(),
                    "user_id": user.id,
                    "error_type": type(e).__name__,
                    "error_details": str(e),
                },
            )

    def _record(self, action: AuditAction, actor_id: Optional[str], metadata: Dict[str, Any]) -> None:
        self.audit.record(self.tenant, action, actor_id, metadata)

    # ==================== BULK ====================

    @operation()
    def bulk_create_users(
        self, actor_id: Optional[str], data: Union[BulkCreateUsersInput, InputData]
    ) -> BulkCreateResult:
        """
        Create a batch of users of one kind, each in its own transaction.

        Per-item failures are collected instead of raised; results keep the
        input order.
        """
        request = validate_input(BulkCreateUsersInput, data)
        if len(request.users) > self.config.bulk_max_size:
            raise ValidationError(
                f"At most {self.config.bulk_max_size} users per request",
                field="users",
                count=len(request.users),
            )
        self._ensure_active()

        user_type = UserType(request.user_type)
        snapshot = self.lookup.snapshot(self.tenant, user_type.value)
        model = INPUT_MODELS[user_type.value]

        def run(item: Dict[str, Any]) -> Tuple[Optional[ProvisionedUser], Optional[BulkFailure]]:
            try:
                dto = validate_input(model, item)
                return self._provision(user_type, actor_id, dto, snapshot), None
            except BaseError as e:
                email = item.get("email")
                return None, BulkFailure(
                    email=email if isinstance(email, str) else None,
                    error=e.public_message,
                    error_code=e.error_code.value,
                )

        items = request.merged_items()
        workers = min(self.config.bulk_max_workers, len(items))
        if workers > 1 and not self.db_manager.supports_concurrent_writes:
            self.logger.debug(
                "Bulk items run sequentially on this database",
                extra={**self.tenant.log_context(), "requested_workers": workers},
            )
            workers = 1
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                outcomes = list(pool.map(run, items))
        else:
            outcomes = [run(item) for item in items]

        result = BulkCreateResult()
        for provisioned, failure in outcomes:
            if provisioned is not None:
                result.success.append(provisioned)
            else:
                result.failed.append(failure)

        self._record(AuditAction.USER_BULK_CREATED, actor_id, {
            "user_type": user_type.value,
            **result.summary(),
            "failed_emails": [f.email for f in result.failed],
        })
        return result

    # ==================== LIFECYCLE ====================

    @operation()
    def deactivate_user(self, user_id: str, actor_id: Optional[str] = None) -> UserRead:
        """
        Mark a user inactive; no other column changes.

        Raises:
            NotFoundError: The user is not in this partition
            TenantIsolationViolationError: The user belongs to another institution
            TenantSuspendedError: The institution stopped being active
        """
        user = self._set_active(user_id, False, ProvisioningStep.DEACTIVATE)
        self._record(AuditAction.USER_DEACTIVATED, actor_id, {"user_id": user.id, "email": user.email})
        return user

    @operation()
    def reactivate_user(self, user_id: str, actor_id: Optional[str] = None) -> UserRead:
        user = self._set_active(user_id, True, ProvisioningStep.REACTIVATE)
        self._record(AuditAction.USER_REACTIVATED, actor_id, {"user_id": user.id, "email": user.email})
        return user

    def _set_active(self, user_id: str, is_active: bool, step: ProvisioningStep) -> UserRead:
        with self.transaction(step.value) as scope:
            scope.enter(step)
            users = UserRepository(self.tenant, scope.session)
            user = self._owned_user(users, user_id, step)

            if is_active:
                users.reactivate(user.id)
            else:
                users.soft_deactivate(user.id)

            # The flag only flips while the owning institution is still active
            self.lookup.ensure_institution_active(self.tenant)

            scope.session.refresh(user)
            return UserRead.model_validate(user)

    def _owned_user(self, users: UserRepository, user_id: str, step: ProvisioningStep) -> User:
        user = users.get_by_id(user_id)
        if user.institution_id != self.tenant.tenant_id:
            raise permission_denied(
                step.value,
                "User",
                user_id=user_id,
                tenant_id=self.tenant.tenant_id,
            )
        return user

    # ==================== UPDATES ====================

    @operation()
    def update_user(
        self, user_id: str, data: Union[UpdateUserInput, InputData], actor_id: Optional[str] = None
    ) -> UserRead:
        """
        Change basic user fields (names, email, phone, metadata).

        Raises:
            ValidationError: Invalid input or no fields to change
            DuplicateEntityError: The new email is already taken in this partition
            NotFoundError: The user is not in this partition
        """
        changes = validate_input(UpdateUserInput, data).changes()
        if not changes:
            raise ValidationError("No valid fields provided for update", field="data")
        self._ensure_active()

        step = ProvisioningStep.UPDATE_USER
        with self.transaction(step.value) as scope:
            scope.enter(step)
            users = UserRepository(self.tenant, scope.session)
            user = users.update(self._owned_user(users, user_id, step).id, **changes)
            user_read = UserRead.model_validate(user)

        self._record(AuditAction.USER_UPDATED, actor_id, {
            "user_id": user_read.id,
            "fields": sorted(changes),
        })
        return user_read

    @operation()
    def assign_permissions(
        self,
        user_id: str,
        data: Union[AssignPermissionsInput, InputData],
        actor_id: Optional[str] = None,
    ) -> UserDetail:
        """
        Grant additional permission keys to an existing user.

        Every requested key must belong to the institution's plan; keys the user
        already holds are skipped.

        Raises:
            ValidationError: A key is outside the plan scope
            NotFoundError: The user is not in this partition
        """
        request = validate_input(AssignPermissionsInput, data)
        self._ensure_active()

        plan = self.lookup.get_institution_plan(self.tenant)
        plan_keys = set(self.lookup.get_plan_scope(plan.plan_id))
        rejected = sorted(set(request.permission_keys) - plan_keys)
        if rejected:
            raise ValidationError(
                f"Permissions outside the institution plan: {', '.join(rejected)}",
                field="permission_keys",
                rejected_keys=rejected,
            )

        step = ProvisioningStep.ASSIGN_PERMISSIONS
        with self.transaction(step.value) as scope:
            scope.enter(step)
            session = scope.session
            user = self._owned_user(UserRepository(self.tenant, session), user_id, step)
            grants = UserPermissionRepository(self.tenant, session)
            added = sorted(set(request.permission_keys) - set(grants.get_permission_keys(user.id)))
            grants.bulk_insert(user.id, added, granted_by=actor_id)
            detail = UserDetail(
                **UserRead.model_validate(user).model_dump(),
                roles=UserRoleRepository(self.tenant, session).get_role_types(user.id),
                permissions=grants.get_permission_keys(user.id),
            )

        self._record(AuditAction.USER_PERMISSIONS_ASSIGNED, actor_id, {
            "user_id": detail.id,
            "added_keys": added,
        })
        return detail

    # ==================== READS ====================

    @operation()
    def get_user(self, user_id: str) -> UserDetail:
        """User with role types and permission keys. Raises NotFoundError."""
        with self.read_session() as session:
            user = UserRepository(self.tenant, session).get_by_id(user_id)
            roles = UserRoleRepository(self.tenant, session).get_role_types(user.id)
            permissions = UserPermissionRepository(self.tenant, session).get_permission_keys(user.id)
            return UserDetail(
                **UserRead.model_validate(user).model_dump(),
                roles=roles,
                permissions=permissions,
            )

    @operation()
    def list_users(
        self,
        user_type: Optional[str] = None,
        is_active: Optional[bool] = True,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        search: Optional[str] = None,
    ) -> UserPage:
        """Page of users, newest first. ``search`` matches name, email or phone."""
        if page < 1:
            raise ValidationError("page must be at least 1", field="page", value=page)
        if not 1 <= limit <= self.config.bulk_max_size:
            raise ValidationError(
                f"limit must be between 1 and {self.config.bulk_max_size}", field="limit", value=limit
            )
        self._check_user_type(user_type)

        with self.read_session() as session:
            rows, total = UserRepository(self.tenant, session).list(
                user_type=user_type,
                is_active=is_active,
                limit=limit,
                offset=(page - 1) * limit,
                search=search,
            )
            items = [UserRead.model_validate(row) for row in rows]

        return UserPage(
            items=items,
            pagination=Pagination(
                page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)
            ),
        )

    @operation()
    def get_user_stats(
        self, user_type: Optional[str] = None, search: Optional[str] = None
    ) -> UserStats:
        """Total, active and inactive counts plus a per-role breakdown."""
        self._check_user_type(user_type)
        with self.read_session() as session:
            counts = UserRepository(self.tenant, session).count_by_type_and_status(
                user_type=user_type, search=search
            )

        stats = UserStats()
        for (row_type, is_active), count in counts.items():
            stats.total += count
            if is_active:
                stats.active += count
            else:
                stats.inactive += count
            stats.by_role[row_type] = stats.by_role.get(row_type, 0) + count
        return stats

    @staticmethod
    def _check_user_type(user_type: Optional[str]) -> None:
        if user_type is not None and user_type not in {t.value for t in UserType}:
            raise ValidationError(f"Unknown user type: {user_type}", field="user_type")
