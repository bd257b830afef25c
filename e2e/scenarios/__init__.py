"""
Scenario registry for the validation harness.

A scenario is a callable ``(harness, tenant_slug) -> List[VerificationResult]``.
"""

from typing import Callable, Dict, List

from e2e.scenarios.isolation import partition_isolation, role_idempotency, transaction_atomicity
from e2e.scenarios.user_provisioning import (
    bulk_partial_failure,
    deactivation,
    duplicate_email,
    every_user_kind,
    teacher_provisioning,
)

SCENARIOS: Dict[str, Callable] = {
    "teacher_provisioning": teacher_provisioning,
    "every_user_kind": every_user_kind,
    "bulk_partial_failure": bulk_partial_failure,
    "duplicate_email": duplicate_email,
    "deactivation": deactivation,
    "transaction_atomicity": transaction_atomicity,
    "role_idempotency": role_idempotency,
    "partition_isolation": partition_isolation,
}


def scenario_names() -> List[str]:
    return list(SCENARIOS)
