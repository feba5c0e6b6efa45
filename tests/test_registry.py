"""
Tests for ProjectRegistry: visibility, invite codes, membership roles.
"""
import re

import pytest

from pkg.planner.errors import Forbidden, InvalidCode, NotFound, Unauthenticated, ValidationError
from pkg.planner.registry import make_invite_code


def test_create_project_seeds_board_and_admin(registry, admin):
    project = registry.create_project("Alpha Project", admin.id)

    assert re.fullmatch(r"JOIN-ALPH-[0-9A-Z]{4}", project.invite_code)
    assert project.members == {admin.id: {"role": "Admin"}}
    board = project.board
    assert board.column_order == ["col-1", "col-2", "col-3"]
    assert [board.columns[c].title for c in board.column_order] == ["To Do", "In Progress", "Done"]
    assert all(c.task_ids == [] for c in board.columns.values())
    assert board.tasks == {}
    assert registry.get_project(project.id) == project


def test_create_project_requires_name_and_actor(registry, admin):
    with pytest.raises(ValidationError):
        registry.create_project("   ", admin.id)
    with pytest.raises(Unauthenticated):
        registry.create_project("Beta", "user-ghost")


def test_invite_code_format():
    assert re.fullmatch(r"JOIN-OPS-[0-9A-Z]{4}", make_invite_code("ops"))


# ── Visibility ───────────────────────────────────────────────────────────────


def test_admin_sees_every_project(registry, admin, member):
    registry.create_project("Alpha", admin.id)
    registry.create_project("Member Only", member.id)

    assert len(registry.get_user_projects(admin.id)) == 2
    assert [p.name for p in registry.get_user_projects(member.id)] == ["Member Only"]


def test_custom_admin_casing_counts(registry, users, admin, member):
    registry.create_project("Alpha", admin.id)
    assert registry.get_user_projects(member.id) == []

    user = users.get_user(member.id)
    user.role = "ADMIN"
    users.store.save_user(user)
    assert len(registry.get_user_projects(member.id)) == 1


def test_unknown_user_sees_nothing(registry, admin):
    registry.create_project("Alpha", admin.id)
    assert registry.get_user_projects("user-ghost") == []
    assert registry.get_user_projects("") == []


# ── Membership ───────────────────────────────────────────────────────────────


def test_join_project_is_idempotent(registry, admin, member):
    project = registry.create_project("Alpha", admin.id)

    assert registry.join_project(member.id, project.invite_code) is True
    after_first = registry.get_project(project.id).members
    assert after_first[member.id] == {"role": "Member"}

    assert registry.join_project(member.id, project.invite_code) is True
    assert registry.get_project(project.id).members == after_first


def test_join_keeps_existing_role(registry, admin):
    project = registry.create_project("Alpha", admin.id)
    registry.join_project(admin.id, project.invite_code)
    assert registry.get_project(project.id).members[admin.id] == {"role": "Admin"}


def test_join_with_bad_code(registry, admin, member):
    project = registry.create_project("Alpha", admin.id)
    with pytest.raises(InvalidCode):
        registry.join_project(member.id, "JOIN-NOPE-0000")
    assert member.id not in registry.get_project(project.id).members


def test_update_member_role_accepts_custom_roles(registry, project, admin, member):
    registry.update_member_role(project.id, member.id, "backend-er", admin.id)
    assert registry.get_project(project.id).members[member.id] == {"role": "backend-er"}


def test_update_member_role_missing(registry, project, admin, users):
    outsider, _ = users.register("Olga Outsider", "olga@example.com")
    with pytest.raises(NotFound):
        registry.update_member_role(project.id, outsider.id, "Member", admin.id)
    with pytest.raises(NotFound):
        registry.update_member_role("proj-404", outsider.id, "Member", admin.id)
    with pytest.raises(ValidationError):
        registry.update_member_role(project.id, outsider.id, "", admin.id)


def test_project_members_use_project_role(registry, project, admin, member):
    registry.update_member_role(project.id, member.id, "QA", admin.id)
    members = {m["id"]: m for m in registry.get_project_members(project.id)}

    assert set(members) == {admin.id, member.id}
    assert members[member.id]["role"] == "QA"
    assert members[member.id]["name"] == "Bob Member"
    assert members[admin.id]["role"] == "Admin"

    with pytest.raises(NotFound):
        registry.get_project_members("proj-404")


# ── Access ───────────────────────────────────────────────────────────────────


def test_require_access_admits_members_and_admins(registry, project, admin, member, users):
    assert registry.require_access(project.id, member.id).id == project.id
    assert registry.require_access(project.id, admin.id).id == project.id

    outsider, _ = users.register("Eve Outsider", "eve@example.com")
    with pytest.raises(Forbidden):
        registry.require_access(project.id, outsider.id)
    with pytest.raises(Unauthenticated):
        registry.require_access(project.id, None)
    with pytest.raises(NotFound):
        registry.require_access("proj-404", member.id)


def test_only_project_admins_change_roles(registry, admin, member, users):
    project = registry.create_project("Member Owned", member.id)
    carol, _ = users.register("Carol Crew", "carol@example.com")
    registry.join_project(carol.id, project.invite_code)
    eve, _ = users.register("Eve Outsider", "eve@example.com")

    with pytest.raises(Forbidden):
        registry.update_member_role(project.id, member.id, "Member", carol.id)
    with pytest.raises(Forbidden):
        registry.update_member_role(project.id, member.id, "Member", eve.id)
    with pytest.raises(Unauthenticated):
        registry.update_member_role(project.id, member.id, "Member", None)
    assert registry.get_project(project.id).members[member.id] == {"role": "Admin"}

    # project Admin without a global admin role
    registry.update_member_role(project.id, carol.id, "QA", member.id)
    # global admin who is not a member
    registry.update_member_role(project.id, carol.id, "Lead", admin.id)
    assert registry.get_project(project.id).members[carol.id] == {"role": "Lead"}
