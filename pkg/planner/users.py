"""
User directory and login sessions.

The first registered user becomes the global Admin; everyone after that
starts as a Member. Passwords are not modelled: a session is opened by
email alone and identified by an opaque token.
"""
import base64
import logging
import secrets
from typing import Dict, List, Optional, Tuple

from .errors import AlreadyExists, NotFound, Unauthenticated, ValidationError
from .schema import ADMIN_ROLE, MEMBER_ROLE, User, make_id
from .store import PlannerStore

logger = logging.getLogger(__name__)

DEFAULT_BANNER = "#4b5563"
AVATAR_COLORS = ["#6366f1", "#ec4899", "#22c55e", "#f97316", "#8b5cf6", "#06b6d4"]
AVATAR_SHAPES = {
    "rect": '<rect x="20" y="20" width="60" height="60" fill="#ffffff" />',
    "circle": '<circle cx="50" cy="50" r="30" fill="#ffffff" />',
    "polygon": '<polygon points="50,20 80,80 20,80" fill="#ffffff" />',
}

# wire name -> User attribute
PROFILE_FIELDS = {
    "name": "name",
    "avatarUrl": "avatar_url",
    "aboutMe": "about_me",
    "profileBannerUrl": "profile_banner_url",
}


def _seed_hash(seed: str) -> int:
    """32-bit string hash (h * 31 + c), signed."""
    h = 0
    for ch in seed:
        h = (ord(ch) + ((h << 5) - h)) & 0xFFFFFFFF
    return h - (1 << 32) if h & 0x80000000 else h


def generate_avatar(seed: str) -> str:
    """Deterministic geometric SVG avatar as a base64 data URI."""
    h = _seed_hash(seed)
    color = AVATAR_COLORS[abs(h) % len(AVATAR_COLORS)]
    shapes = list(AVATAR_SHAPES)
    shape = shapes[(abs(h) // len(AVATAR_COLORS)) % len(shapes)]
    svg = (
        '<svg viewBox="0 0 100 100" xmlns="http://www.w3.org/2000/svg">'
        f'<rect width="100" height="100" fill="{color}" />{AVATAR_SHAPES[shape]}</svg>'
    )
    return "data:image/svg+xml;base64," + base64.b64encode(svg.encode()).decode()


class UserDirectory:
    """Registration, login sessions and profile updates."""

    def __init__(self, store: PlannerStore):
        self.store = store

    def register(self, name: str, email: str) -> Tuple[User, str]:
        """Create a user and open a session. Returns (user, token)."""
        name = (name or "").strip()
        email = (email or "").strip()
        if not name or "@" not in email:
            raise ValidationError("A name and a valid email are required")
        if self.store.find_user_by_email(email):
            raise AlreadyExists("Email already in use.", email=email)

        user_id = make_id("user")
        user = User(
            id=user_id,
            name=name,
            email=email,
            avatar_url=generate_avatar(user_id),
            role=ADMIN_ROLE if not self.store.list_users() else MEMBER_ROLE,
            profile_banner_url=DEFAULT_BANNER,
        )
        self.store.save_user(user)
        logger.info(f"Registered user {user.id} ({user.role})")
        return self.login(email)

    def login(self, email: str) -> Tuple[User, str]:
        user = self.store.find_user_by_email(email or "")
        if not user:
            raise NotFound("User not found.", email=email)
        token = secrets.token_hex(16)
        self.store.create_session(token, user.id)
        logger.info(f"User {user.id} logged in")
        return user, token

    def logout(self, token: str) -> None:
        if token:
            self.store.delete_session(token)

    def resolve_actor(self, token: Optional[str]) -> str:
        """Map a session token to a user id, or raise Unauthenticated."""
        user_id = self.store.get_session(token) if token else None
        if not user_id:
            raise Unauthenticated("Not authenticated")
        return self.require_user(user_id).id

    def require_user(self, user_id: Optional[str]) -> User:
        """Actor check used by every mutating call."""
        user = self.store.get_user(user_id) if user_id else None
        if not user:
            logger.warning(f"Rejected call from unknown actor {user_id!r}")
            raise Unauthenticated("Not authenticated", user_id=user_id)
        return user

    def get_user(self, user_id: str) -> User:
        user = self.store.get_user(user_id)
        if not user:
            raise NotFound(f"User {user_id} not found", user_id=user_id)
        return user

    def get_all_users(self) -> List[User]:
        return self.store.list_users()

    def update_profile(self, user_id: str, updates: Dict[str, str]) -> User:
        """Apply profile changes given by wire name (name, avatarUrl, aboutMe, profileBannerUrl)."""
        unknown = set(updates) - set(PROFILE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update fields: {sorted(unknown)}")
        user = self.get_user(user_id)
        for key, value in updates.items():
            setattr(user, PROFILE_FIELDS[key], value)
        self.store.save_user(user)
        return user
