"""
Catalog seeding for the validation harness.

Creates the plans, permissions and institutions the scenarios run against and
provisions each institution's partition. Seeding is idempotent: rows that
already exist (matched by slug or key) are left alone.
"""

from typing import Dict, List

from sqlalchemy import select

from provisioning_core.db import DatabaseManager, Institution, Permission, Plan, PlanPermission
from provisioning_core.utils.logger import get_logger

REFERENCE_TENANT = "school-42"
SECOND_TENANT = "school-7"
BASIC_PLAN_KEYS = ["view_students", "view_teachers"]

PLANS: Dict[str, List[str]] = {
    "basic": BASIC_PLAN_KEYS,
}

INSTITUTIONS = [
    {"name": "School 42", "slug": REFERENCE_TENANT, "plan": "basic", "type": "school"},
    {"name": "School 7", "slug": SECOND_TENANT, "plan": "basic", "type": "school"},
]


def _get_or_create_permission(session, key: str) -> Permission:
    permission = session.execute(select(Permission).where(Permission.key == key)).scalar_one_or_none()
    if permission is None:
        permission = Permission(key=key, module=key.split("_", 1)[-1])
        session.add(permission)
        session.flush()
    return permission


def _get_or_create_plan(session, slug: str, keys: List[str]) -> Plan:
    plan = session.execute(select(Plan).where(Plan.slug == slug)).scalar_one_or_none()
    if plan is not None:
        return plan

    plan = Plan(slug=slug, name=slug.capitalize())
    session.add(plan)
    session.flush()
    for key in keys:
        session.add(PlanPermission(plan_id=plan.id, permission_id=_get_or_create_permission(session, key).id))
    session.flush()
    return plan


def seed_catalog(db_manager: DatabaseManager) -> List[str]:
    """
    Seed plans and institutions, then provision every institution's partition.

    Returns:
        Slugs of the seeded institutions
    """
    logger = get_logger()
    session = db_manager.get_global_session()
    try:
        plans = {slug: _get_or_create_plan(session, slug, keys) for slug, keys in PLANS.items()}

        partitions = []
        for spec in INSTITUTIONS:
            institution = session.execute(
                select(Institution).where(Institution.slug == spec["slug"])
            ).scalar_one_or_none()
            if institution is None:
                institution = Institution(
                    name=spec["name"],
                    slug=spec["slug"],
                    sub_domain=spec["slug"],
                    partition_name=spec["slug"].replace("-", "_"),
                    plan_id=plans[spec["plan"]].id,
                    type=spec["type"],
                    meta={"seeded_by": "validation_harness"},
                )
                session.add(institution)
                session.flush()
                logger.info("Seeded institution", extra={"slug": spec["slug"]})
            partitions.append(institution.partition_name)

        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    for partition_name in partitions:
        db_manager.provision_partition(partition_name)

    return [spec["slug"] for spec in INSTITUTIONS]
