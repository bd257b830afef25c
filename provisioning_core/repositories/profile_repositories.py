"""
Type-specific profile repositories.

Each profile is one-to-one with a user in the same partition. The repositories
share their behaviour and differ only in the model they write.
"""

from typing import Any, Dict, Optional, Type

from sqlalchemy import select

from ..constants import UserType
from ..db.db_tenant_models import ParentProfile, StaffProfile, StudentProfile, TeacherProfile
from ..exceptions import ValidationError, not_found
from .base_repository import TenantScopedRepository


class ProfileRepository(TenantScopedRepository[Any]):
    """Common create/find/update for the profile tables."""

    # Input names that differ from model attribute names
    field_aliases: Dict[str, str] = {"metadata": "meta"}

    def _to_columns(self, values: Dict[str, Any]) -> Dict[str, Any]:
        columns = {}
        for key, value in values.items():
            attr = self.field_aliases.get(key, key)
            if not hasattr(self.entity_class, attr) or attr in ("id", "user_id"):
                raise ValidationError(
                    f"Unknown {self.entity_name} field: {key}", field=key
                )
            columns[attr] = value
        return columns

    def create(self, user_id: str, **values: Any):
        profile = self.entity_class(user_id=user_id, **self._to_columns(values))
        return self._add(profile, "create_profile", field="user_id", user_id=user_id)

    def find_by_user_id(self, user_id: str):
        with self._session_operation("find_by_user_id", is_read_only=True):
            return self.session.execute(
                select(self.entity_class).where(self.entity_class.user_id == user_id)
            ).scalar_one_or_none()

    def update(self, user_id: str, **values: Any):
        columns = self._to_columns(values)
        profile = self.find_by_user_id(user_id)
        if profile is None:
            raise not_found(self.entity_name, user_id=user_id, **self.tenant.log_context())
        with self._session_operation("update_profile", profile.id):
            for key, value in columns.items():
                setattr(profile, key, value)
        return profile


class TeacherProfileRepository(ProfileRepository):
    entity_class = TeacherProfile


class StudentProfileRepository(ProfileRepository):
    entity_class = StudentProfile


class StaffProfileRepository(ProfileRepository):
    entity_class = StaffProfile


class ParentProfileRepository(ProfileRepository):
    entity_class = ParentProfile
    field_aliases = {"metadata": "meta", "relationship": "relationship_type"}


PROFILE_REPOSITORIES: Dict[str, Type[ProfileRepository]] = {
    UserType.TEACHER.value: TeacherProfileRepository,
    UserType.STUDENT.value: StudentProfileRepository,
    UserType.STAFF.value: StaffProfileRepository,
    UserType.PARENT.value: ParentProfileRepository,
}


def profile_repository_for(user_type: str) -> Optional[Type[ProfileRepository]]:
    """Profile repository class for a user type; admins have no profile."""
    return PROFILE_REPOSITORIES.get(user_type)
