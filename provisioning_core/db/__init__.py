"""
SQLAlchemy models and database management for the provisioning core.
"""

from .db_base import JSON, TimestampMixin, UUIDMixin, utc_now
from .db_config import (
    DatabaseConfig,
    DatabaseManager,
    GlobalBase,
    TenantBase,
    get_development_config,
    get_production_config,
    import_all_models,
    initialize_db,
    validate_partition_name,
)
from .db_global_models import Institution, Permission, Plan, PlanPermission
from .db_tenant_models import (
    AuditLog,
    ParentProfile,
    Role,
    StaffProfile,
    StudentProfile,
    TeacherProfile,
    User,
    UserPermission,
    UserRole,
)

__all__ = [
    # Base definitions
    "GlobalBase",
    "TenantBase",
    "JSON",
    "TimestampMixin",
    "UUIDMixin",
    "utc_now",
    # Configuration
    "DatabaseConfig",
    "DatabaseManager",
    "import_all_models",
    "initialize_db",
    "validate_partition_name",
    "get_production_config",
    "get_development_config",
    # Global models
    "Institution",
    "Permission",
    "Plan",
    "PlanPermission",
    # Tenant models
    "AuditLog",
    "ParentProfile",
    "Role",
    "StaffProfile",
    "StudentProfile",
    "TeacherProfile",
    "User",
    "UserPermission",
    "UserRole",
]
