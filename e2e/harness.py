"""
Validation harness for the provisioning core.

Runs scenarios against a real database (SQLite by default), using the
production resolver, lookup and provisioning service. Results of one run are
collected in a HarnessRun and can be written to a JSON file.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from provisioning_core.config import AppConfig
from provisioning_core.context.partition_resolver import PartitionResolver
from provisioning_core.context.tenant_context import TenantContext
from provisioning_core.db import DatabaseConfig, initialize_db
from provisioning_core.services.credential_delivery import CollectingCredentialDelivery
from provisioning_core.services.provisioning_service import ProvisioningService
from provisioning_core.utils import json_utils
from provisioning_core.utils.logger import get_logger

from e2e.scenarios import SCENARIOS
from e2e.utils.seed_data import REFERENCE_TENANT, seed_catalog
from e2e.utils.verification_utils import VerificationUtils


@dataclass
class HarnessRun:
    """Outcomes of one harness invocation."""

    run_id: str = field(default_factory=lambda: f"run-{uuid.uuid4().hex[:8]}")
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    test_outcomes: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def total_tests(self) -> int:
        return len(self.test_outcomes)

    @property
    def passed_tests(self) -> int:
        return sum(1 for outcome in self.test_outcomes if outcome["passed"])

    @property
    def failed_tests(self) -> int:
        return self.total_tests - self.passed_tests

    @property
    def run_duration_seconds(self) -> float:
        end = self.finished_at or datetime.now(timezone.utc)
        return (end - self.started_at).total_seconds()

    def get_success_rate(self) -> float:
        if not self.total_tests:
            return 0.0
        return self.passed_tests / self.total_tests * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "total_tests": self.total_tests,
            "passed_tests": self.passed_tests,
            "failed_tests": self.failed_tests,
            "test_outcomes": self.test_outcomes,
        }

    def save(self, directory: Path) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{self.run_id}.json"
        path.write_text(json_utils.dumps(self.to_dict(), indent=2))
        return path


class ProvisioningHarness:
    """
    Seeds the catalog, then runs named scenarios against it.

    Usage:
        harness = ProvisioningHarness(db_config)
        outcome = harness.run_test_scenario("teacher_provisioning")
        harness.cleanup()
    """

    reference_tenant = REFERENCE_TENANT

    def __init__(
        self,
        db_config: DatabaseConfig,
        config: Optional[AppConfig] = None,
        results_storage_path: Optional[Path] = None,
    ):
        self.db_manager = initialize_db(db_config)
        self.config = config or AppConfig()
        self.results_storage_path = results_storage_path
        self.credential_delivery = CollectingCredentialDelivery()
        self.resolver = PartitionResolver(self.db_manager)
        self.logger = get_logger()
        self.tenant_slugs = seed_catalog(self.db_manager)

    def tenant(self, tenant_slug: str) -> TenantContext:
        return self.resolver.resolve(tenant_slug)

    def service(self, tenant_slug: str) -> ProvisioningService:
        return ProvisioningService(
            self.tenant(tenant_slug),
            self.db_manager,
            config=self.config,
            credential_delivery=self.credential_delivery,
        )

    def verifier(self, tenant_slug: str) -> VerificationUtils:
        return VerificationUtils(self.db_manager, self.tenant(tenant_slug))

    def run_test_scenario(self, scenario_name: str, tenant_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Run one scenario and summarise its verification results.

        An exception raised by the scenario itself fails the outcome; it is
        logged with its traceback and reported in ``error_message``.
        """
        tenant_slug = tenant_id or self.reference_tenant
        scenario = SCENARIOS[scenario_name]
        outcome: Dict[str, Any] = {
            "test_id": f"{scenario_name}-{uuid.uuid4().hex[:8]}",
            "test_type": scenario_name,
            "tenant_id": tenant_slug,
        }

        start = time.perf_counter()
        try:
            results = scenario(self, tenant_slug)
        except Exception as e:
            self.logger.error(
                f"Scenario {scenario_name} raised", extra={"tenant_id": tenant_slug}, exc_info=True
            )
            outcome.update(passed=False, verification_details=[], error_message=f"{type(e).__name__}: {e}")
        else:
            failed = [result for result in results if not result.passed]
            outcome.update(
                passed=not failed,
                verification_details=[result.to_dict() for result in results],
                error_message="; ".join(f"{r.check_name}: {r.error_message}" for r in failed) or None,
            )
        outcome["processing_duration_ms"] = (time.perf_counter() - start) * 1000

        self.logger.info(
            f"Scenario {scenario_name} {'passed' if outcome['passed'] else 'failed'}",
            extra={"tenant_id": tenant_slug, "duration_ms": outcome["processing_duration_ms"]},
        )
        return outcome

    def run_test_suite(self, scenario_names: Optional[List[str]] = None, tenant_id: Optional[str] = None) -> HarnessRun:
        run = HarnessRun()
        for name in scenario_names or list(SCENARIOS):
            run.test_outcomes.append(self.run_test_scenario(name, tenant_id=tenant_id))
        run.finished_at = datetime.now(timezone.utc)

        if self.results_storage_path:
            path = run.save(self.results_storage_path)
            self.logger.info("Harness results saved", extra={"path": str(path)})
        return run

    def cleanup(self) -> None:
        self.db_manager.close()
