"""
Provisioning scenarios: single creations per user kind, bulk creation and
deactivation, each checked against what was actually persisted.
"""

from typing import List

from provisioning_core.exceptions import DuplicateEntityError
from provisioning_core.repositories import (
    RoleRepository,
    TeacherProfileRepository,
    UserPermissionRepository,
    UserRepository,
    UserRoleRepository,
)

from e2e.utils.payload_generators import UserPayloadGenerator
from e2e.utils.seed_data import BASIC_PLAN_KEYS
from e2e.utils.verification_utils import (
    VerificationResult,
    check,
    expect_error,
    record_repository_calls,
)

TEACHER_WRITE_PATH = [
    (UserRepository, "create"),
    (RoleRepository, "find_or_create_by_type"),
    (UserRoleRepository, "assign"),
    (UserPermissionRepository, "bulk_insert"),
    (TeacherProfileRepository, "create"),
]


def teacher_provisioning(harness, tenant_slug: str) -> List[VerificationResult]:
    """
    Reference scenario: one teacher on the ``basic`` plan.

    The teacher must end up active, with exactly the plan's permission rows, the
    teacher role and a profile carrying the submitted qualification. The
    repositories must be called once each, in write-path order.
    """
    service = harness.service(tenant_slug)
    verifier = harness.verifier(tenant_slug)
    payload = UserPayloadGenerator.teacher()

    with record_repository_calls(TEACHER_WRITE_PATH) as calls:
        provisioned = service.create_teacher("harness-admin", payload)
    user_id = provisioned.user.id

    delivered = [entry for entry in harness.credential_delivery.delivered if entry[1] == payload["email"]]
    grant_calls = [call for call in calls if call.name == "UserPermissionRepository.bulk_insert"]

    return [
        verifier.verify_repository_calls(calls, [f"{cls.__name__}.{name}" for cls, name in TEACHER_WRITE_PATH]),
        check(
            "permission_scope_from_snapshot",
            bool(grant_calls) and sorted(grant_calls[0].args[1]) == BASIC_PLAN_KEYS,
            "bulk_insert did not receive the plan scope",
            granted=list(grant_calls[0].args[1]) if grant_calls else None,
        ),
        verifier.verify_user_created(user_id, "teacher", payload["email"]),
        verifier.verify_permissions(user_id, BASIC_PLAN_KEYS),
        verifier.verify_role_assigned(user_id, "teacher"),
        verifier.verify_profile(
            user_id, "teacher", {"qualification": payload["qualification"], "employee_id": payload["employeeId"]}
        ),
        check(
            "credentials_delivered_once",
            len(delivered) == 1 and delivered[0][2] == provisioned.temp_password,
            f"Expected one delivery, got {len(delivered)}",
            deliveries=len(delivered),
        ),
    ]


def every_user_kind(harness, tenant_slug: str) -> List[VerificationResult]:
    """Students, staff and parents each get their role and their profile."""
    service = harness.service(tenant_slug)
    verifier = harness.verifier(tenant_slug)
    results = []

    student = UserPayloadGenerator.student()
    user = service.create_student("harness-admin", student).user
    results += [
        verifier.verify_user_created(user.id, "student", student["email"]),
        verifier.verify_role_assigned(user.id, "student"),
        verifier.verify_profile(
            user.id, "student", {"admission_number": student["admissionNumber"], "class_id": student["classId"]}
        ),
    ]

    staff = UserPayloadGenerator.staff()
    user = service.create_staff("harness-admin", staff).user
    results += [
        verifier.verify_user_created(user.id, "staff", staff["email"]),
        verifier.verify_profile(user.id, "staff", {"department": staff["department"]}),
    ]

    parent = UserPayloadGenerator.parent()
    user = service.create_parent("harness-admin", parent).user
    results += [
        verifier.verify_user_created(user.id, "parent", parent["email"]),
        verifier.verify_profile(
            user.id, "parent", {"relationship_type": "mother", "student_ids": parent["studentIds"]}
        ),
    ]
    return results


def bulk_partial_failure(harness, tenant_slug: str) -> List[VerificationResult]:
    """Three teachers where the second repeats the first email: 2 created, 1 failed."""
    service = harness.service(tenant_slug)
    verifier = harness.verifier(tenant_slug)
    first = UserPayloadGenerator.teacher()
    duplicate = UserPayloadGenerator.teacher(email=first["email"].upper())
    third = UserPayloadGenerator.teacher()

    result = service.bulk_create_users(
        "harness-admin", UserPayloadGenerator.bulk("teacher", [first, duplicate, third], batch="harness")
    )

    results = [
        check(
            "bulk_outcome",
            [p.user.email for p in result.success] == [first["email"], third["email"]]
            and [f.email for f in result.failed] == [duplicate["email"]],
            f"Unexpected bulk outcome: {result.summary()}",
            **result.summary(),
        ),
        check(
            "bulk_failure_record",
            bool(result.failed) and result.failed[0].error_code == "3001",
            "Duplicate was not reported as error 3001",
            failed=[f.model_dump() for f in result.failed],
        ),
    ]
    for provisioned in result.success:
        results += [
            verifier.verify_permissions(provisioned.user.id, BASIC_PLAN_KEYS),
            verifier.verify_role_assigned(provisioned.user.id, "teacher"),
            verifier.verify_profile(provisioned.user.id, "teacher"),
        ]
    return results


def deactivation(harness, tenant_slug: str) -> List[VerificationResult]:
    """Deactivation flips ``is_active`` and nothing else; a repeat is harmless."""
    service = harness.service(tenant_slug)
    verifier = harness.verifier(tenant_slug)
    user = service.create_staff("harness-admin", UserPayloadGenerator.staff()).user

    before = verifier.user_columns(user.id)
    service.deactivate_user(user.id, actor_id="harness-admin")
    after = verifier.user_columns(user.id)

    return [
        verifier.verify_only_active_changed(before, after),
        check(
            "deactivate_is_idempotent",
            service.deactivate_user(user.id).is_active is False,
            "Second deactivation reactivated the user",
        ),
    ]


def duplicate_email(harness, tenant_slug: str) -> List[VerificationResult]:
    service = harness.service(tenant_slug)
    payload = UserPayloadGenerator.teacher()
    service.create_teacher("harness-admin", payload)

    return [
        expect_error(
            "duplicate_email_rejected",
            DuplicateEntityError,
            lambda: service.create_teacher("harness-admin", {**payload, "email": payload["email"].upper()}),
            field="email",
        )
    ]
