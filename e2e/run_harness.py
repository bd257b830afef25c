#!/usr/bin/env python3
"""
CLI runner for the validation harness.

Runs one scenario or the whole suite against a seeded database and exits
non-zero when any verification fails.
"""

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from provisioning_core.config import AppConfig, ProvisioningConfig
from provisioning_core.db import DatabaseConfig
from provisioning_core.utils.logger import configure_logging

from e2e.harness import ProvisioningHarness
from e2e.scenarios import scenario_names


def create_test_database_config() -> DatabaseConfig:
    """
    Database configuration for the harness.

    Defaults to in-memory SQLite; set TEST_DB_TYPE=postgres and the TEST_DB_*
    variables to run against PostgreSQL partitions instead.
    """
    return DatabaseConfig(
        db_type=os.getenv("TEST_DB_TYPE", "sqlite"),
        host=os.getenv("TEST_DB_HOST", "localhost"),
        port=os.getenv("TEST_DB_PORT", "5432"),
        database=os.getenv("TEST_DB_NAME", ":memory:"),
        username=os.getenv("TEST_DB_USER"),
        password=os.getenv("TEST_DB_PASSWORD"),
        development_mode=True,
    )


def create_harness(args: argparse.Namespace) -> ProvisioningHarness:
    config = AppConfig(provisioning=ProvisioningConfig(bcrypt_rounds=args.bcrypt_rounds))
    storage_path = Path(args.results_dir) if args.results_dir else None
    return ProvisioningHarness(
        db_config=create_test_database_config(),
        config=config,
        results_storage_path=storage_path,
    )


def print_outcome(outcome: dict) -> None:
    print(f"Test ID: {outcome.get('test_id', 'unknown')}")
    print(f"Status: {'PASSED' if outcome.get('passed') else 'FAILED'}")
    print(f"Duration: {outcome.get('processing_duration_ms', 0):.1f}ms")

    if not outcome.get("passed"):
        print(f"Error: {outcome.get('error_message', 'Unknown error')}")

    for i, detail in enumerate(outcome.get("verification_details", []), 1):
        status = "ok  " if detail.get("passed") else "FAIL"
        print(f"  {i:2d}. [{status}] {detail.get('check_name', 'unknown')}")
        if not detail.get("passed") and detail.get("error_message"):
            print(f"        {detail['error_message']}")


def run_single_scenario(args: argparse.Namespace) -> int:
    """Run one scenario; returns the process exit code."""
    print(f"Running scenario: {args.scenario} (tenant {args.tenant_id})")
    harness = create_harness(args)
    try:
        outcome = harness.run_test_scenario(args.scenario, tenant_id=args.tenant_id)
        print_outcome(outcome)
        return 0 if outcome.get("passed") else 1
    finally:
        harness.cleanup()


def run_test_suite(args: argparse.Namespace) -> int:
    """Run every scenario (or the ones named with --only); returns the process exit code."""
    harness = create_harness(args)
    try:
        run = harness.run_test_suite(args.only, tenant_id=args.tenant_id)

        print("\nSuite Results:")
        print(f"Run ID: {run.run_id}")
        print(f"Total Tests: {run.total_tests}")
        print(f"Passed: {run.passed_tests}")
        print(f"Failed: {run.failed_tests}")
        print(f"Success Rate: {run.get_success_rate():.1f}%")
        print(f"Duration: {run.run_duration_seconds:.1f}s")

        if run.failed_tests:
            print("\nFailed Tests:")
            for outcome in run.test_outcomes:
                if not outcome["passed"]:
                    print(f"  - {outcome['test_id']}: {outcome['error_message']}")

        if args.results_dir:
            print(f"\nResults saved to: {args.results_dir}")

        return 0 if run.failed_tests == 0 else 1
    finally:
        harness.cleanup()


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    load_dotenv()

    parser = argparse.ArgumentParser(
        description="Validation harness for the provisioning core",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the reference teacher scenario
  python -m e2e.run_harness single --scenario teacher_provisioning

  # Run every scenario and keep the results
  python -m e2e.run_harness suite --results-dir ./harness-results
        """,
    )

    parser.add_argument("--results-dir", type=str, help="Directory to save run results (optional)")
    parser.add_argument(
        "--tenant-id",
        default="school-42",
        help="Institution id, slug or sub-domain to provision into",
    )
    parser.add_argument(
        "--bcrypt-rounds",
        type=int,
        default=int(os.getenv("PROVISIONING_BCRYPT_ROUNDS", "4")),
        help="bcrypt cost used for temporary passwords",
    )
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "WARNING"))

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    single_parser = subparsers.add_parser("single", help="Run a single scenario")
    single_parser.add_argument(
        "--scenario",
        choices=scenario_names(),
        default="teacher_provisioning",
        help="Scenario to run",
    )

    suite_parser = subparsers.add_parser("suite", help="Run the scenario suite")
    suite_parser.add_argument(
        "--only",
        nargs="+",
        choices=scenario_names(),
        help="Run only these scenarios",
    )

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging("validation_harness", log_level=args.log_level, enable_queue=False)

    if args.command == "single":
        return run_single_scenario(args)
    return run_test_suite(args)


if __name__ == "__main__":
    sys.exit(main())
