"""
Verification utilities for the validation harness.

Checks read the tenant partition back through the same repositories the
provisioning service writes with, and report a VerificationResult instead of
raising so one failed check does not hide the others.
"""

from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Type
from unittest.mock import patch

from sqlalchemy import inspect

from provisioning_core.context.tenant_context import TenantContext
from provisioning_core.db import DatabaseManager, User
from provisioning_core.repositories import (
    RoleRepository,
    UserPermissionRepository,
    UserRepository,
    UserRoleRepository,
)
from provisioning_core.repositories.profile_repositories import profile_repository_for
from provisioning_core.utils.logger import get_logger


@dataclass
class VerificationResult:
    """Result of a verification check."""

    passed: bool
    check_name: str
    details: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "check_name": self.check_name,
            "details": self.details,
            "error_message": self.error_message,
        }


@dataclass
class RepositoryCall:
    name: str
    args: Tuple[Any, ...]
    kwargs: Dict[str, Any]


def _recording(name: str, original: Callable, calls: List[RepositoryCall]) -> Callable:
    def wrapper(self, *args, **kwargs):
        calls.append(RepositoryCall(name, args, kwargs))
        return original(self, *args, **kwargs)

    return wrapper


@contextmanager
def record_repository_calls(targets: Iterable[Tuple[Type, str]]) -> Iterator[List[RepositoryCall]]:
    """
    Record calls to repository methods while still running them.

    Usage:
        with record_repository_calls([(UserRepository, "create")]) as calls:
            service.create_teacher(...)
        [c.name for c in calls]  # ["UserRepository.create"]
    """
    calls: List[RepositoryCall] = []
    with ExitStack() as stack:
        for cls, method in targets:
            wrapper = _recording(f"{cls.__name__}.{method}", getattr(cls, method), calls)
            stack.enter_context(patch.object(cls, method, wrapper))
        yield calls


def expect_error(
    check_name: str,
    error_type: Type[BaseException],
    action: Callable[[], Any],
    **expected_attributes: Any,
) -> VerificationResult:
    """Run ``action`` and pass only if it raises ``error_type`` with the given attributes."""
    try:
        action()
    except error_type as e:
        mismatched = {
            name: getattr(e, name, None)
            for name, value in expected_attributes.items()
            if getattr(e, name, None) != value
        }
        return VerificationResult(
            passed=not mismatched,
            check_name=check_name,
            details={"error_type": type(e).__name__, **expected_attributes},
            error_message=f"Unexpected attributes: {mismatched}" if mismatched else None,
        )
    except Exception as e:
        return VerificationResult(
            passed=False,
            check_name=check_name,
            details={"error_type": type(e).__name__},
            error_message=f"Expected {error_type.__name__}, got {type(e).__name__}: {e}",
        )
    return VerificationResult(
        passed=False,
        check_name=check_name,
        error_message=f"Expected {error_type.__name__}, nothing was raised",
    )


def check(check_name: str, passed: bool, error_message: str, **details: Any) -> VerificationResult:
    return VerificationResult(
        passed=passed,
        check_name=check_name,
        details=details,
        error_message=None if passed else error_message,
    )


class VerificationUtils:
    """
    Reads one tenant partition back and compares it with what a scenario expects.
    """

    def __init__(self, db_manager: DatabaseManager, tenant: TenantContext):
        self.db_manager = db_manager
        self.tenant = tenant
        self.logger = get_logger()

    @contextmanager
    def _session(self):
        session = self.db_manager.get_partition_session(self.tenant.partition_name)
        try:
            yield session
        finally:
            session.rollback()
            session.close()

    def _guarded(self, check_name: str, details: Dict[str, Any], verify: Callable) -> VerificationResult:
        try:
            return verify()
        except Exception as e:
            self.logger.error(f"Error during verification {check_name}: {e}", exc_info=True)
            return VerificationResult(
                passed=False,
                check_name=check_name,
                details=details,
                error_message=f"Verification error: {str(e)}",
            )

    def user_columns(self, user_id: str) -> Dict[str, Any]:
        """Every stored column of a user, for before/after comparisons."""
        with self._session() as session:
            user = UserRepository(self.tenant, session).get_by_id(user_id)
            return {attr.key: getattr(user, attr.key) for attr in inspect(User).column_attrs}

    def verify_user_created(
        self, user_id: str, expected_type: str, expected_email: str
    ) -> VerificationResult:
        details = {"user_id": user_id, "expected_type": expected_type}

        def verify():
            with self._session() as session:
                user = UserRepository(self.tenant, session).find_by_id(user_id)
                if user is None:
                    return check("user_created", False, f"User not found: {user_id}", **details)

                details.update(
                    email=user.email,
                    user_type=user.user_type,
                    is_active=user.is_active,
                    institution_id=user.institution_id,
                )
                problems = []
                if user.email != expected_email.lower():
                    problems.append(f"email {user.email} != {expected_email.lower()}")
                if user.user_type != expected_type:
                    problems.append(f"user_type {user.user_type} != {expected_type}")
                if not user.is_active:
                    problems.append("user is not active")
                if user.institution_id != self.tenant.tenant_id:
                    problems.append(f"institution_id {user.institution_id} != {self.tenant.tenant_id}")
                return check("user_created", not problems, "; ".join(problems), **details)

        return self._guarded("user_created", details, verify)

    def verify_permissions(self, user_id: str, expected_keys: Iterable[str]) -> VerificationResult:
        expected = sorted(expected_keys)
        details: Dict[str, Any] = {"user_id": user_id, "expected_keys": expected}

        def verify():
            with self._session() as session:
                rows = UserPermissionRepository(self.tenant, session).find_by_user(user_id)
                actual = sorted(row.permission_key for row in rows)
            details["actual_keys"] = actual
            return check(
                "permissions_granted",
                actual == expected and len(rows) == len(expected),
                f"Expected {len(expected)} permission rows {expected}, got {len(rows)} {actual}",
                **details,
            )

        return self._guarded("permissions_granted", details, verify)

    def verify_role_assigned(self, user_id: str, role_type: str) -> VerificationResult:
        details = {"user_id": user_id, "role_type": role_type}

        def verify():
            with self._session() as session:
                roles = UserRoleRepository(self.tenant, session).get_role_types(user_id)
            details["roles"] = roles
            return check("role_assigned", roles == [role_type], f"Expected [{role_type}], got {roles}", **details)

        return self._guarded("role_assigned", details, verify)

    def verify_role_shared(self, role_type: str, user_ids: Iterable[str]) -> VerificationResult:
        """Every user holds the one role row of ``role_type``."""
        user_ids = list(user_ids)
        details: Dict[str, Any] = {"role_type": role_type, "user_count": len(user_ids)}

        def verify():
            with self._session() as session:
                role = RoleRepository(self.tenant, session).find_by_type(role_type)
                if role is None:
                    return check("role_shared", False, f"Role {role_type} missing", **details)
                assignments = UserRoleRepository(self.tenant, session)
                role_ids = {
                    assignment.role_id
                    for user_id in user_ids
                    for assignment in assignments.find_by_user(user_id)
                }
                role_id = role.id
            details["role_ids"] = sorted(role_ids)
            return check(
                "role_shared",
                role_ids == {role_id},
                f"Users hold roles {sorted(role_ids)}, expected only {role_id}",
                **details,
            )

        return self._guarded("role_shared", details, verify)

    def verify_profile(
        self, user_id: str, user_type: str, expected_fields: Optional[Dict[str, Any]] = None
    ) -> VerificationResult:
        expected_fields = expected_fields or {}
        details = {"user_id": user_id, "user_type": user_type}

        def verify():
            repository_class = profile_repository_for(user_type)
            with self._session() as session:
                profile = repository_class(self.tenant, session).find_by_user_id(user_id)
                if profile is None:
                    return check("profile_created", False, f"No {user_type} profile for {user_id}", **details)
                mismatched = {
                    name: getattr(profile, name)
                    for name, value in expected_fields.items()
                    if getattr(profile, name) != value
                }
            details["mismatched"] = mismatched
            return check("profile_created", not mismatched, f"Profile fields differ: {mismatched}", **details)

        return self._guarded("profile_created", details, verify)

    def verify_user_absent(self, email: str, check_name: str = "nothing_persisted") -> VerificationResult:
        details = {"email": email, "partition": self.tenant.partition_name}

        def verify():
            with self._session() as session:
                user = UserRepository(self.tenant, session).find_by_email(email)
            return check(check_name, user is None, f"User {email} exists in {self.tenant.partition_name}", **details)

        return self._guarded(check_name, details, verify)

    def verify_repository_calls(
        self, calls: List[RepositoryCall], expected_names: List[str]
    ) -> VerificationResult:
        actual = [call.name for call in calls]
        return check(
            "repository_call_shape",
            actual == expected_names,
            f"Expected calls {expected_names}, got {actual}",
            actual=actual,
        )

    def verify_only_active_changed(
        self, before: Dict[str, Any], after: Dict[str, Any]
    ) -> VerificationResult:
        changed = sorted(key for key in before if before[key] != after.get(key))
        return check(
            "only_is_active_changed",
            changed == ["is_active"] and after["is_active"] is False,
            f"Changed columns: {changed}",
            changed=changed,
        )
