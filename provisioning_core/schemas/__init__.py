"""Pydantic schemas for provisioning inputs, results and lookups."""

from .provisioning_schemas import (
    BulkCreateResult,
    BulkFailure,
    InstitutionPlan,
    ProvisionedUser,
    ProvisioningSnapshot,
)
from .user_schemas import (
    INPUT_MODELS,
    AssignPermissionsInput,
    BulkCreateUsersInput,
    CreateAdminInput,
    CreateParentInput,
    CreateStaffInput,
    CreateStudentInput,
    CreateTeacherInput,
    Pagination,
    UpdateUserInput,
    UserDetail,
    UserInputBase,
    UserPage,
    UserRead,
    UserStats,
)

__all__ = [
    "INPUT_MODELS",
    "AssignPermissionsInput",
    "BulkCreateResult",
    "BulkCreateUsersInput",
    "BulkFailure",
    "CreateAdminInput",
    "CreateParentInput",
    "CreateStaffInput",
    "CreateStudentInput",
    "CreateTeacherInput",
    "InstitutionPlan",
    "Pagination",
    "ProvisionedUser",
    "ProvisioningSnapshot",
    "UpdateUserInput",
    "UserDetail",
    "UserInputBase",
    "UserPage",
    "UserRead",
    "UserStats",
]
