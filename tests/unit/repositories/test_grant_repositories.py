"""
Tests for role assignments and permission grants.
"""

import pytest

from provisioning_core.exceptions import DuplicateEntityError, RepositoryError
from provisioning_core.repositories import (
    RoleRepository,
    UserPermissionRepository,
    UserRepository,
    UserRoleRepository,
)


@pytest.fixture
def user(tenant, tenant_session):
    return UserRepository(tenant, tenant_session).create(
        email="grants@school42.edu",
        first_name="Grace",
        last_name="Hopper",
        password_hash="$2b$04$hash",
        user_type="teacher",
    )


class TestUserRoleRepository:
    def test_assign(self, tenant, tenant_session, user):
        role = RoleRepository(tenant, tenant_session).create("teacher")
        repository = UserRoleRepository(tenant, tenant_session)

        assignment = repository.assign(user.id, role.id, assigned_by="admin-1")

        assert assignment.assigned_by == "admin-1"
        assert assignment.assigned_at is not None
        assert repository.get_role_types(user.id) == ["teacher"]
        assert repository.has_role(user.id, "teacher")
        assert not repository.has_role(user.id, "admin")
        assert [a.role_id for a in repository.find_by_user(user.id)] == [role.id]

    def test_assign_twice(self, tenant, tenant_session, user):
        role = RoleRepository(tenant, tenant_session).create("teacher")
        repository = UserRoleRepository(tenant, tenant_session)
        repository.assign(user.id, role.id)

        with pytest.raises(DuplicateEntityError):
            repository.assign(user.id, role.id)

    def test_assign_unknown_role(self, tenant, tenant_session, user):
        with pytest.raises(RepositoryError) as exc_info:
            UserRoleRepository(tenant, tenant_session).assign(user.id, "no-such-role")

        assert exc_info.value.error_code.value == "2004"


class TestUserPermissionRepository:
    def test_bulk_insert(self, tenant, tenant_session, user):
        repository = UserPermissionRepository(tenant, tenant_session)

        written = repository.bulk_insert(
            user.id, ["view_teachers", "view_students", "view_teachers"], granted_by="admin-1"
        )

        assert written == 2
        assert repository.get_permission_keys(user.id) == ["view_students", "view_teachers"]
        assert all(g.granted_by == "admin-1" for g in repository.find_by_user(user.id))
        assert repository.has_permission(user.id, "view_students")
        assert not repository.has_permission(user.id, "grades.edit")

    def test_bulk_insert_nothing(self, tenant, tenant_session, user):
        repository = UserPermissionRepository(tenant, tenant_session)

        assert repository.bulk_insert(user.id, []) == 0
        assert repository.get_permission_keys(user.id) == []

    def test_regrant_is_duplicate(self, tenant, tenant_session, user):
        repository = UserPermissionRepository(tenant, tenant_session)
        repository.bulk_insert(user.id, ["view_students"])

        with pytest.raises(DuplicateEntityError) as exc_info:
            repository.bulk_insert(user.id, ["view_students"])

        assert exc_info.value.field == "permission_key"
