"""
Project registry: project creation, invite codes and membership roles.

Visibility rule: a user whose global role is "admin" (any case) sees every
project; everyone else sees only projects listing them in members.
Member roles are free-form strings.

Access rule: a project's board and member list are open to global admins
and to its members. Changing a member's role also needs a global admin or
a member whose project role is "Admin".
"""
import logging
import secrets
import string
import threading
from typing import Any, Dict, List, Optional

from .errors import Forbidden, InvalidCode, NotFound, ValidationError
from .schema import ADMIN_ROLE, MEMBER_ROLE, Board, Project, User, make_id
from .store import PlannerStore
from .users import UserDirectory

logger = logging.getLogger(__name__)

INVITE_ALPHABET = string.digits + string.ascii_uppercase


def make_invite_code(project_name: str) -> str:
    """JOIN-<first 4 chars of name>-<4 random base36 chars>."""
    suffix = "".join(secrets.choice(INVITE_ALPHABET) for _ in range(4))
    return f"JOIN-{project_name[:4].upper()}-{suffix}"


def check_access(project: Project, user: User) -> None:
    """Raise Forbidden unless user is a global admin or a member of project."""
    if user.is_admin or user.id in project.members:
        return
    logger.warning(f"Access to {project.id} denied for {user.id}")
    raise Forbidden("Not a member of this project", project_id=project.id, user_id=user.id)


def is_project_admin(project: Project, user: User) -> bool:
    if user.is_admin:
        return True
    role = project.members.get(user.id, {}).get("role", "")
    return str(role).lower() == ADMIN_ROLE.lower()


class ProjectRegistry:
    """Maps users to projects and roles."""

    def __init__(self, store: PlannerStore, users: Optional[UserDirectory] = None):
        self.store = store
        self.users = users or UserDirectory(store)
        self._create_lock = threading.Lock()

    def get_project(self, project_id: str) -> Project:
        project = self.store.get_project(project_id)
        if not project:
            raise NotFound("Project not found", project_id=project_id)
        return project

    def require_access(self, project_id: str, user_id: Optional[str]) -> Project:
        """Load a project the actor may see; Unauthenticated, NotFound or Forbidden otherwise."""
        user = self.users.require_user(user_id)
        project = self.get_project(project_id)
        check_access(project, user)
        return project

    def get_user_projects(self, user_id: str) -> List[Project]:
        user = self.store.get_user(user_id) if user_id else None
        if not user:
            return []
        projects = self.store.list_projects()
        if user.is_admin:
            return projects
        return [p for p in projects if user_id in p.members]

    def create_project(self, name: str, creator_user_id: str) -> Project:
        """New project with To Do / In Progress / Done columns; creator is Admin."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Project name is required")
        creator = self.users.require_user(creator_user_id)

        with self._create_lock:
            invite_code = make_invite_code(name)
            while self.store.find_project_by_invite_code(invite_code):
                invite_code = make_invite_code(name)
            project = Project(
                id=make_id("proj"),
                name=name,
                invite_code=invite_code,
                members={creator.id: {"role": ADMIN_ROLE}},
                board=Board.with_default_columns(),
            )
            self.store.save_project(project)

        logger.info(f"Created project {project.id} '{name}' for {creator.id}")
        return project

    def join_project(self, user_id: str, invite_code: str) -> bool:
        """Add user_id as a Member. Rejoining leaves an existing membership as is."""
        user = self.users.require_user(user_id)
        found = self.store.find_project_by_invite_code((invite_code or "").strip())
        if not found:
            logger.warning(f"Join rejected for {user.id}: invalid invite code")
            raise InvalidCode("Invalid invite code.", invite_code=invite_code)

        with self.store.project_lock(found.id):
            project = self.get_project(found.id)
            if user.id in project.members:
                return True
            project.members[user.id] = {"role": MEMBER_ROLE}
            self.store.save_project(project)

        logger.info(f"User {user.id} joined project {project.id}")
        return True

    def update_member_role(self, project_id: str, user_id: str, new_role: str, actor_id: Optional[str]) -> None:
        """Set a member's project role. Only global or project admins may do this."""
        actor = self.users.require_user(actor_id)
        if not isinstance(new_role, str) or not new_role.strip():
            raise ValidationError("Role must be a non-empty string")
        with self.store.project_lock(project_id):
            project = self.get_project(project_id)
            if not is_project_admin(project, actor):
                logger.warning(f"Role change in {project_id} denied for {actor.id}")
                raise Forbidden("Only project admins can change roles", project_id=project_id, user_id=actor.id)
            if user_id not in project.members:
                raise NotFound("Member not found", project_id=project_id, user_id=user_id)
            project.members[user_id]["role"] = new_role
            self.store.save_project(project)
        logger.info(f"Set role of {user_id} in {project_id} to {new_role!r}")

    def get_project_members(self, project_id: str) -> List[Dict[str, Any]]:
        """Member user records with the project role in place of the global one."""
        project = self.get_project(project_id)
        members = []
        for user in self.store.list_users():
            if user.id in project.members:
                data = user.to_dict()
                data["role"] = project.members[user.id].get("role", MEMBER_ROLE)
                members.append(data)
        return members
