"""Shared fixtures for planner tests."""

import pytest

from pkg.planner.board import BoardService
from pkg.planner.registry import ProjectRegistry
from pkg.planner.store import MemoryStore, SqliteStore
from pkg.planner.users import UserDirectory


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Each test using this runs once per backend."""
    if request.param == "memory":
        return MemoryStore()
    return SqliteStore(str(tmp_path / "planner.db"))


@pytest.fixture
def users(store):
    return UserDirectory(store)


@pytest.fixture
def registry(store, users):
    return ProjectRegistry(store, users)


@pytest.fixture
def boards(store, users):
    return BoardService(store, users)


@pytest.fixture
def admin(users):
    """First registered user, therefore a global Admin."""
    user, _ = users.register("Ada Admin", "ada@example.com")
    return user


@pytest.fixture
def member(users, admin):
    user, _ = users.register("Bob Member", "bob@example.com")
    return user


@pytest.fixture
def project(registry, admin, member):
    """'Alpha Project' owned by admin, joined by member."""
    created = registry.create_project("Alpha Project", admin.id)
    registry.join_project(member.id, created.invite_code)
    return registry.get_project(created.id)
