"""
Atomicity and isolation scenarios.

Failures are injected by patching one repository step at a time; the scenario
then checks the partition holds nothing from the aborted transaction.
"""

from typing import List
from unittest.mock import patch

from provisioning_core.exceptions import NotFoundError, TransactionAbortedError
from provisioning_core.repositories import (
    RoleRepository,
    TeacherProfileRepository,
    UserPermissionRepository,
    UserRoleRepository,
)

from e2e.utils.payload_generators import UserPayloadGenerator
from e2e.utils.seed_data import SECOND_TENANT
from e2e.utils.verification_utils import VerificationResult, check, expect_error

FAILURE_POINTS = [
    (RoleRepository, "find_or_create_by_type", "resolve_role"),
    (UserRoleRepository, "assign", "assign_role"),
    (UserPermissionRepository, "bulk_insert", "grant_permissions"),
    (TeacherProfileRepository, "create", "create_profile"),
]


def transaction_atomicity(harness, tenant_slug: str) -> List[VerificationResult]:
    """A failure at any write step leaves no user, grant or profile behind."""
    service = harness.service(tenant_slug)
    verifier = harness.verifier(tenant_slug)
    results = []

    for cls, method, step in FAILURE_POINTS:
        payload = UserPayloadGenerator.teacher()
        with patch.object(cls, method, side_effect=RuntimeError(f"injected failure in {method}")):
            results.append(
                expect_error(
                    f"aborted_at_{step}",
                    TransactionAbortedError,
                    lambda: service.create_teacher("harness-admin", payload),
                    step=step,
                )
            )
        results.append(verifier.verify_user_absent(payload["email"], check_name=f"rolled_back_{step}"))

    return results


def role_idempotency(harness, tenant_slug: str) -> List[VerificationResult]:
    """Users of one kind share a single role row."""
    service = harness.service(tenant_slug)
    verifier = harness.verifier(tenant_slug)
    user_ids = [
        service.create_staff("harness-admin", UserPayloadGenerator.staff()).user.id for _ in range(3)
    ]
    return [verifier.verify_role_shared("staff", user_ids)]


def partition_isolation(harness, tenant_slug: str) -> List[VerificationResult]:
    """
    The same email can exist in two institutions, and neither institution can
    see or change the other's users.
    """
    other_slug = SECOND_TENANT if tenant_slug != SECOND_TENANT else harness.reference_tenant
    service = harness.service(tenant_slug)
    other_service = harness.service(other_slug)
    payload = UserPayloadGenerator.teacher()

    mine = service.create_teacher("harness-admin", payload).user
    theirs = other_service.create_teacher("harness-admin", payload).user

    return [
        check(
            "same_email_in_both_partitions",
            mine.email == theirs.email and mine.institution_id != theirs.institution_id,
            "Users did not land in separate institutions",
            institutions=[mine.institution_id, theirs.institution_id],
        ),
        expect_error(
            "foreign_user_not_visible",
            NotFoundError,
            lambda: other_service.get_user(mine.id),
        ),
        expect_error(
            "foreign_user_not_deactivatable",
            NotFoundError,
            lambda: other_service.deactivate_user(mine.id),
        ),
        harness.verifier(tenant_slug).verify_user_created(mine.id, "teacher", payload["email"]),
    ]
