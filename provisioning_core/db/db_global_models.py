"""
Global partition models: the shared catalog every tenant reads from.

Just the data structure; the provisioning core only reads these tables.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ..constants import InstitutionStatus
from .db_base import JSON, TimestampMixin, UUIDMixin
from .db_config import GlobalBase


class Plan(GlobalBase, UUIDMixin, TimestampMixin):
    """Subscription tier; its permission set bounds what users may be granted."""

    __tablename__ = "plans"

    slug = Column(String(100), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    permissions = relationship("PlanPermission", back_populates="plan", lazy="selectin")


class Permission(GlobalBase, UUIDMixin):
    """Catalog entry for a permission key."""

    __tablename__ = "permissions"

    key = Column(String(150), nullable=False, unique=True)
    module = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)


class PlanPermission(GlobalBase, UUIDMixin):
    __tablename__ = "plan_permissions"

    plan_id = Column(String(36), ForeignKey("plans.id", ondelete="CASCADE"), nullable=False)
    permission_id = Column(
        String(36), ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False
    )

    plan = relationship("Plan", back_populates="permissions")
    permission = relationship("Permission", lazy="joined")

    __table_args__ = (UniqueConstraint("plan_id", "permission_id", name="uq_plan_permission"),)


class Institution(GlobalBase, UUIDMixin, TimestampMixin):
    """A tenant; ``partition_name`` names the partition that holds its users."""

    __tablename__ = "institutions"

    name = Column(String(200), nullable=False)
    slug = Column(String(100), nullable=False, unique=True)
    sub_domain = Column(String(100), nullable=True, unique=True)
    partition_name = Column(String(63), nullable=False, unique=True)
    plan_id = Column(String(36), ForeignKey("plans.id"), nullable=True)
    status = Column(String(20), nullable=False, default=InstitutionStatus.ACTIVE.value)
    type = Column(String(50), nullable=True)
    realm = Column(String(100), nullable=True)
    meta = Column("metadata", JSON, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    plan = relationship("Plan", lazy="joined")

    __table_args__ = (Index("ix_institution_status", "status"),)
