"""
Factory Boy factories for the global catalog.

Plans, permissions and institutions live in the global partition and are only
read by the provisioning core, so tests seed them directly through these
factories. Tenant rows are always created through the repositories or services.
"""

import factory

from provisioning_core.constants import InstitutionStatus
from provisioning_core.db import Institution, Permission, Plan, PlanPermission

# ==================== BASE FACTORIES ====================


class BaseFactory(factory.alchemy.SQLAlchemyModelFactory):
    """Base factory with common patterns."""

    class Meta:
        abstract = True
        sqlalchemy_session_persistence = "commit"


# ==================== CATALOG FACTORIES ====================


class PermissionFactory(BaseFactory):
    class Meta:
        model = Permission
        sqlalchemy_get_or_create = ("key",)

    key = factory.Sequence(lambda n: f"module_{n}.view")
    module = factory.LazyAttribute(lambda o: o.key.split(".")[0].split("_")[0])
    description = factory.LazyAttribute(lambda o: f"Permission {o.key}")


class PlanFactory(BaseFactory):
    """
    Plan with optional permission keys.

    Usage:
        PlanFactory(slug="basic", permission_keys=["view_students", "view_teachers"])
    """

    class Meta:
        model = Plan

    slug = factory.Sequence(lambda n: f"plan-{n}")
    name = factory.LazyAttribute(lambda o: o.slug.replace("-", " ").title())
    description = factory.Faker("catch_phrase")
    is_active = True

    @factory.post_generation
    def permission_keys(obj, create, extracted, **kwargs):
        if not create or not extracted:
            return
        for key in extracted:
            PlanPermissionFactory(plan=obj, permission=PermissionFactory(key=key))


class PlanPermissionFactory(BaseFactory):
    class Meta:
        model = PlanPermission

    plan = factory.SubFactory(PlanFactory)
    permission = factory.SubFactory(PermissionFactory)


class InstitutionFactory(BaseFactory):
    """Active institution whose partition name is derived from its slug."""

    class Meta:
        model = Institution

    name = factory.Faker("company")
    slug = factory.Sequence(lambda n: f"school-{n}")
    sub_domain = factory.SelfAttribute("slug")
    partition_name = factory.LazyAttribute(lambda o: o.slug.replace("-", "_"))
    plan = factory.SubFactory(PlanFactory)
    status = InstitutionStatus.ACTIVE.value
    type = "school"
    realm = None
    meta = factory.LazyFunction(dict)


class SuspendedInstitutionFactory(InstitutionFactory):
    status = InstitutionStatus.SUSPENDED.value


# ==================== FACTORY CONFIGURATION ====================


def configure_factories(session):
    """Configure all factories to use the provided global session."""
    factories = [
        PermissionFactory,
        PlanFactory,
        PlanPermissionFactory,
        InstitutionFactory,
        SuspendedInstitutionFactory,
    ]

    for factory_class in factories:
        factory_class._meta.sqlalchemy_session = session
