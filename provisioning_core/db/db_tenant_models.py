"""
Tenant partition models.

Declared against a placeholder schema that the database manager translates to
the owning partition, so the same classes serve every tenant.
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ..constants import TENANT_SCHEMA_PLACEHOLDER
from .db_base import JSON, TimestampMixin, UUIDMixin, utc_now
from .db_config import TenantBase

USERS_FK = f"{TENANT_SCHEMA_PLACEHOLDER}.users.id"
ROLES_FK = f"{TENANT_SCHEMA_PLACEHOLDER}.roles.id"


class User(TenantBase, UUIDMixin, TimestampMixin):
    """A person able to sign in to the institution. Never physically deleted here."""

    __tablename__ = "users"

    email = Column(String(255), nullable=False, unique=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(50), nullable=True)
    password_hash = Column(String(255), nullable=False)
    institution_id = Column(String(36), nullable=False)
    user_type = Column(String(20), nullable=False)
    created_by = Column(String(36), nullable=True)
    meta = Column("metadata", JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_email_verified = Column(Boolean, nullable=False, default=False)

    roles = relationship("UserRole", back_populates="user", lazy="selectin")

    __table_args__ = (
        Index("ix_users_user_type", "user_type"),
        Index("ix_users_is_active", "is_active"),
    )


class Role(TenantBase, UUIDMixin, TimestampMixin):
    __tablename__ = "roles"

    role_type = Column(String(20), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    is_system = Column(Boolean, nullable=False, default=True)


class UserRole(TenantBase, UUIDMixin):
    __tablename__ = "user_roles"

    user_id = Column(String(36), ForeignKey(USERS_FK, ondelete="CASCADE"), nullable=False)
    role_id = Column(String(36), ForeignKey(ROLES_FK, ondelete="CASCADE"), nullable=False)
    assigned_by = Column(String(36), nullable=True)
    assigned_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    user = relationship("User", back_populates="roles")
    role = relationship("Role", lazy="joined")

    __table_args__ = (UniqueConstraint("user_id", "role_id", name="uq_user_role"),)


class UserPermission(TenantBase, UUIDMixin):
    """Permission key granted to a user; a snapshot of the plan scope at grant time."""

    __tablename__ = "user_permissions"

    user_id = Column(String(36), ForeignKey(USERS_FK, ondelete="CASCADE"), nullable=False)
    permission_key = Column(String(150), nullable=False)
    granted_by = Column(String(36), nullable=True)
    granted_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "permission_key", name="uq_user_permission"),
    )


class TeacherProfile(TenantBase, UUIDMixin, TimestampMixin):
    __tablename__ = "teacher_profiles"

    user_id = Column(String(36), ForeignKey(USERS_FK, ondelete="CASCADE"), nullable=False, unique=True)
    employee_id = Column(String(50), nullable=True)
    qualification = Column(String(200), nullable=True)
    designation = Column(String(100), nullable=True)
    specialization = Column(String(200), nullable=True)
    experience_years = Column(Integer, nullable=True)
    date_of_joining = Column(Date, nullable=True)
    address = Column(Text, nullable=True)
    biography = Column(Text, nullable=True)
    skills = Column(JSON, nullable=True)
    emergency_contact_name = Column(String(100), nullable=True)
    emergency_contact_phone = Column(String(50), nullable=True)
    documents = Column(JSON, nullable=True)
    meta = Column("metadata", JSON, nullable=True)


class StudentProfile(TenantBase, UUIDMixin, TimestampMixin):
    __tablename__ = "student_profiles"

    user_id = Column(String(36), ForeignKey(USERS_FK, ondelete="CASCADE"), nullable=False, unique=True)
    admission_number = Column(String(50), nullable=True)
    roll_number = Column(String(50), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(String(10), nullable=True)
    class_id = Column(String(36), nullable=True)
    section_id = Column(String(36), nullable=True)
    academic_year_id = Column(String(36), nullable=True)
    meta = Column("metadata", JSON, nullable=True)


class StaffProfile(TenantBase, UUIDMixin, TimestampMixin):
    __tablename__ = "staff_profiles"

    user_id = Column(String(36), ForeignKey(USERS_FK, ondelete="CASCADE"), nullable=False, unique=True)
    employee_id = Column(String(50), nullable=True)
    department = Column(String(100), nullable=True)
    designation = Column(String(100), nullable=True)
    meta = Column("metadata", JSON, nullable=True)


class ParentProfile(TenantBase, UUIDMixin, TimestampMixin):
    __tablename__ = "parent_profiles"

    user_id = Column(String(36), ForeignKey(USERS_FK, ondelete="CASCADE"), nullable=False, unique=True)
    relationship_type = Column("relationship", String(20), nullable=True)
    occupation = Column(String(100), nullable=True)
    student_ids = Column(JSON, nullable=True)
    meta = Column("metadata", JSON, nullable=True)


class AuditLog(TenantBase, UUIDMixin):
    __tablename__ = "audit_logs"

    actor_id = Column(String(36), nullable=True)
    action = Column(String(50), nullable=False)
    meta = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (Index("ix_audit_logs_action", "action"),)
