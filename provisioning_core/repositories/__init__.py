"""Data access for the global catalog and the tenant partitions."""

from .audit_log_repository import AuditLogRepository
from .base_repository import BaseRepository, GlobalRepository, TenantScopedRepository
from .institution_repository import InstitutionRepository
from .plan_repository import PlanRepository
from .profile_repositories import (
    ParentProfileRepository,
    ProfileRepository,
    StaffProfileRepository,
    StudentProfileRepository,
    TeacherProfileRepository,
    profile_repository_for,
)
from .role_repository import RoleRepository
from .user_permission_repository import UserPermissionRepository
from .user_repository import UserRepository
from .user_role_repository import UserRoleRepository

__all__ = [
    "BaseRepository",
    "GlobalRepository",
    "TenantScopedRepository",
    # Tenant partition
    "AuditLogRepository",
    "ParentProfileRepository",
    "ProfileRepository",
    "RoleRepository",
    "StaffProfileRepository",
    "StudentProfileRepository",
    "TeacherProfileRepository",
    "UserPermissionRepository",
    "UserRepository",
    "UserRoleRepository",
    "profile_repository_for",
    # Global partition
    "InstitutionRepository",
    "PlanRepository",
]
