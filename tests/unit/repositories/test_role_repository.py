"""
Tests for RoleRepository, including concurrent first-time role creation.
"""

import pytest
from sqlalchemy import func, select

from provisioning_core.db import Role
from provisioning_core.exceptions import DuplicateEntityError, RepositoryError
from provisioning_core.repositories.role_repository import RoleRepository


@pytest.fixture
def role_repository(tenant, tenant_session):
    return RoleRepository(tenant, tenant_session)


def count_roles(session, role_type):
    return session.execute(
        select(func.count()).select_from(Role).where(Role.role_type == role_type)
    ).scalar_one()


class TestRoleRepository:
    def test_create_with_defaults(self, role_repository):
        role = role_repository.create("teacher")

        assert role.name == "Teacher"
        assert role.description == "Default teacher role"
        assert role.is_system is True

    def test_duplicate_role_type(self, role_repository):
        role_repository.create("teacher")

        with pytest.raises(DuplicateEntityError) as exc_info:
            role_repository.create("teacher")

        assert exc_info.value.field == "role_type"

    def test_find_by_type(self, role_repository):
        role = role_repository.create("staff")

        assert role_repository.find_by_type("staff").id == role.id
        assert role_repository.find_by_type("parent") is None


class TestFindOrCreateByType:
    def test_creates_when_missing(self, role_repository, tenant_session):
        role, created = role_repository.find_or_create_by_type("teacher")

        assert created is True
        assert role.role_type == "teacher"
        assert count_roles(tenant_session, "teacher") == 1

    def test_is_idempotent(self, role_repository, tenant_session):
        first, first_created = role_repository.find_or_create_by_type("teacher")
        second, second_created = role_repository.find_or_create_by_type("teacher")

        assert first.id == second.id
        assert (first_created, second_created) == (True, False)
        assert count_roles(tenant_session, "teacher") == 1

    def test_defaults_are_applied(self, role_repository):
        role, _ = role_repository.find_or_create_by_type(
            "parent", defaults={"name": "Guardian", "is_system": False}
        )

        assert role.name == "Guardian"
        assert role.is_system is False

    def test_converges_when_another_writer_wins(
        self, db_manager, tenant, tenant_session, monkeypatch
    ):
        # Arrange: the first lookup misses, and a concurrent writer commits the
        # role before our insert runs.
        repository = RoleRepository(tenant, tenant_session)
        original_find = RoleRepository.find_by_type
        calls = []

        def racing_find(self, role_type):
            calls.append(role_type)
            if len(calls) == 1:
                with db_manager.get_partition_session(tenant.partition_name) as other:
                    RoleRepository(tenant, other).create(role_type)
                    other.commit()
                return None
            return original_find(self, role_type)

        monkeypatch.setattr(RoleRepository, "find_by_type", racing_find)

        # Act
        role, created = repository.find_or_create_by_type("teacher")

        # Assert
        assert created is False
        assert role.role_type == "teacher"
        assert len(calls) == 2
        monkeypatch.undo()
        assert count_roles(tenant_session, "teacher") == 1

    def test_gives_up_after_max_attempts(self, tenant, tenant_session, monkeypatch):
        repository = RoleRepository(tenant, tenant_session)
        repository.create("teacher")
        # Every lookup misses, so every insert collides
        monkeypatch.setattr(RoleRepository, "find_by_type", lambda self, role_type: None)

        with pytest.raises(RepositoryError) as exc_info:
            repository.find_or_create_by_type("teacher", max_attempts=2)

        assert exc_info.value.error_code.value == "3002"
