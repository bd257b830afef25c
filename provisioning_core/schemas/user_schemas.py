"""
Pydantic schemas for the user provisioning workflows.

Input models accept snake_case or camelCase field names and reject unknown
fields. Each creation input splits into the user columns and the columns of its
type-specific profile.
"""

import re
import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..constants import MAX_BULK_USERS, Gender, ParentRelationship, UserType

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _check_uuid(value: str) -> str:
    try:
        return str(uuid.UUID(str(value)))
    except ValueError as e:
        raise ValueError(f"Invalid UUID: {value}") from e


class UserInputBase(BaseModel):
    """Fields shared by every user kind."""

    email: str = Field(max_length=255)
    first_name: str = Field(min_length=2, max_length=100)
    last_name: str = Field(min_length=2, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        str_strip_whitespace=True,
    )

    @field_validator("email")
    def validate_email(cls, v: str) -> str:
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email address")
        return v.lower()

    def user_fields(self) -> Dict[str, Any]:
        return self.model_dump(include=set(UserInputBase.model_fields))

    def profile_fields(self) -> Dict[str, Any]:
        fields = self.model_dump(exclude=set(UserInputBase.model_fields))
        # The profile carries its own copy of the metadata
        fields["metadata"] = self.metadata
        return fields


class CreateAdminInput(UserInputBase):
    def profile_fields(self) -> Dict[str, Any]:
        return {}


class CreateTeacherInput(UserInputBase):
    employee_id: Optional[str] = Field(default=None, max_length=50)
    qualification: Optional[str] = Field(default=None, max_length=200)
    designation: Optional[str] = Field(default=None, max_length=100)
    specialization: Optional[str] = Field(default=None, max_length=200)
    experience_years: Optional[int] = Field(default=None, ge=0, le=80)
    date_of_joining: Optional[date] = None
    biography: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    emergency_contact_name: Optional[str] = Field(default=None, max_length=100)
    emergency_contact_phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = None
    documents: Dict[str, Any] = Field(default_factory=dict)


class CreateStudentInput(UserInputBase):
    admission_number: Optional[str] = Field(default=None, max_length=50)
    roll_number: Optional[str] = Field(default=None, max_length=50)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    class_id: Optional[str] = None
    section_id: Optional[str] = None
    academic_year_id: Optional[str] = None

    @field_validator("class_id", "section_id", "academic_year_id")
    def validate_ids(cls, v: Optional[str]) -> Optional[str]:
        return _check_uuid(v) if v is not None else None

    def profile_fields(self) -> Dict[str, Any]:
        fields = super().profile_fields()
        if self.gender is not None:
            fields["gender"] = self.gender.value
        return fields


class CreateStaffInput(UserInputBase):
    employee_id: Optional[str] = Field(default=None, max_length=50)
    department: Optional[str] = Field(default=None, max_length=100)
    designation: Optional[str] = Field(default=None, max_length=100)


class CreateParentInput(UserInputBase):
    relationship: Optional[ParentRelationship] = None
    occupation: Optional[str] = Field(default=None, max_length=100)
    student_ids: List[str] = Field(default_factory=list)

    @field_validator("student_ids")
    def validate_student_ids(cls, v: List[str]) -> List[str]:
        return [_check_uuid(item) for item in v]

    def profile_fields(self) -> Dict[str, Any]:
        fields = super().profile_fields()
        if self.relationship is not None:
            fields["relationship"] = self.relationship.value
        return fields


INPUT_MODELS = {
    UserType.ADMIN.value: CreateAdminInput,
    UserType.TEACHER.value: CreateTeacherInput,
    UserType.STUDENT.value: CreateStudentInput,
    UserType.STAFF.value: CreateStaffInput,
    UserType.PARENT.value: CreateParentInput,
}


class BulkCreateUsersInput(BaseModel):
    """
    A batch of users of one kind.

    Items stay raw mappings here; each one is validated on its own so a bad item
    becomes a failure record instead of rejecting the batch.
    """

    user_type: Literal["teacher", "student", "staff", "parent"]
    users: List[Dict[str, Any]] = Field(min_length=1, max_length=MAX_BULK_USERS)
    default_metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    def merged_items(self) -> List[Dict[str, Any]]:
        """
        Items with ``default_metadata`` applied; item metadata wins on conflicts.

        An item whose metadata is not a mapping is left as submitted so its own
        validation reports it.
        """
        merged = []
        for item in self.users:
            item = dict(item)
            metadata = item.get("metadata")
            if metadata is None or isinstance(metadata, Mapping):
                item["metadata"] = {**self.default_metadata, **(metadata or {})}
            merged.append(item)
        return merged


class UpdateUserInput(BaseModel):
    """Basic profile edits. Activation goes through deactivate/reactivate."""

    email: Optional[str] = Field(default=None, max_length=255)
    first_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    metadata: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        str_strip_whitespace=True,
    )

    @field_validator("email")
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email address")
        return v.lower() if v is not None else None

    def changes(self) -> Dict[str, Any]:
        """Submitted fields; only phone may be cleared with null."""
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key == "phone"
        }


class AssignPermissionsInput(BaseModel):
    permission_keys: List[str] = Field(min_length=1)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class UserRead(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    user_type: str
    institution_id: str
    is_active: bool
    is_email_verified: bool = False
    created_by: Optional[str] = None
    metadata: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("meta", "metadata")
    )
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("metadata", mode="before")
    def default_metadata(cls, v: Any) -> Any:
        return v or {}


class UserDetail(UserRead):
    roles: List[str] = Field(default_factory=list)
    permissions: List[str] = Field(default_factory=list)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class UserPage(BaseModel):
    items: List[UserRead]
    pagination: Pagination


class UserStats(BaseModel):
    total: int = 0
    active: int = 0
    inactive: int = 0
    by_role: Dict[str, int] = Field(default_factory=dict)
