"""
Planner storage backends.

PlannerStore is the repository contract the services depend on. Two
implementations satisfy it:
    MemoryStore  - process-local dicts, used by tests and ephemeral runs
    SqliteStore  - SQLite file, used in production

Both hand out fresh objects on every read: mutating a returned Project
never changes stored state until save_project() is called with it.
"""
import json
import sqlite3
import threading
import weakref
from contextlib import closing
from pathlib import Path
from typing import List, Optional, Dict, Any

from .schema import Project, User, utc_now


class PlannerStore:
    """Repository interface for projects, users and sessions."""

    def __init__(self):
        # entries vanish once no caller holds the lock
        self._project_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._project_locks_guard = threading.Lock()

    def project_lock(self, project_id: str) -> threading.Lock:
        """Process-local lock serializing read-modify-write of one project."""
        with self._project_locks_guard:
            lock = self._project_locks.get(project_id)
            if lock is None:
                lock = threading.Lock()
                self._project_locks[project_id] = lock
            return lock

    # Projects
    def get_project(self, project_id: str) -> Optional[Project]:
        raise NotImplementedError

    def find_project_by_invite_code(self, invite_code: str) -> Optional[Project]:
        raise NotImplementedError

    def list_projects(self) -> List[Project]:
        raise NotImplementedError

    def save_project(self, project: Project) -> None:
        raise NotImplementedError

    # Users
    def get_user(self, user_id: str) -> Optional[User]:
        raise NotImplementedError

    def find_user_by_email(self, email: str) -> Optional[User]:
        raise NotImplementedError

    def list_users(self) -> List[User]:
        raise NotImplementedError

    def save_user(self, user: User) -> None:
        raise NotImplementedError

    # Sessions
    def create_session(self, token: str, user_id: str) -> None:
        raise NotImplementedError

    def get_session(self, token: str) -> Optional[str]:
        raise NotImplementedError

    def delete_session(self, token: str) -> None:
        raise NotImplementedError


class MemoryStore(PlannerStore):
    """In-memory backend. Keeps serialized dicts so reads return copies."""

    def __init__(self):
        super().__init__()
        self._lock = threading.Lock()
        self._projects: Dict[str, Dict[str, Any]] = {}
        self._users: Dict[str, Dict[str, Any]] = {}
        self._sessions: Dict[str, str] = {}

    def get_project(self, project_id: str) -> Optional[Project]:
        with self._lock:
            data = self._projects.get(project_id)
        return Project.from_dict(json.loads(json.dumps(data))) if data else None

    def find_project_by_invite_code(self, invite_code: str) -> Optional[Project]:
        with self._lock:
            match = next(
                (p for p in self._projects.values() if p["inviteCode"] == invite_code),
                None,
            )
        return Project.from_dict(json.loads(json.dumps(match))) if match else None

    def list_projects(self) -> List[Project]:
        with self._lock:
            rows = list(self._projects.values())
        return [Project.from_dict(json.loads(json.dumps(r))) for r in rows]

    def save_project(self, project: Project) -> None:
        data = project.to_dict()
        with self._lock:
            self._projects[project.id] = data

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            data = self._users.get(user_id)
        return User.from_dict(dict(data)) if data else None

    def find_user_by_email(self, email: str) -> Optional[User]:
        wanted = email.strip().lower()
        with self._lock:
            match = next(
                (u for u in self._users.values() if u["email"].lower() == wanted),
                None,
            )
        return User.from_dict(dict(match)) if match else None

    def list_users(self) -> List[User]:
        with self._lock:
            rows = list(self._users.values())
        return [User.from_dict(dict(r)) for r in rows]

    def save_user(self, user: User) -> None:
        data = user.to_dict()
        with self._lock:
            self._users[user.id] = data

    def create_session(self, token: str, user_id: str) -> None:
        with self._lock:
            self._sessions[token] = user_id

    def get_session(self, token: str) -> Optional[str]:
        with self._lock:
            return self._sessions.get(token)

    def delete_session(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class SqliteStore(PlannerStore):
    """SQLite-backed store. Each project's board is kept as one JSON document."""

    def __init__(self, db_path: str = None):
        """Initialize store and create tables if needed."""
        super().__init__()
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "planner" / "planner.db")
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        """Create tables if they don't exist."""
        with closing(_connect(self.db_path)) as conn, conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS projects (
                    project_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    invite_code TEXT NOT NULL UNIQUE,
                    data TEXT NOT NULL,  -- JSON: members, boardData, displayCounters
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    email_lower TEXT NOT NULL UNIQUE,
                    data TEXT NOT NULL,  -- JSON user record
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    token TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id)")

    # ── Projects ─────────────────────────────────────────────────────────────

    def get_project(self, project_id: str) -> Optional[Project]:
        with closing(_connect(self.db_path)) as conn:
            row = conn.execute(
                "SELECT data FROM projects WHERE project_id = ?", (project_id,)
            ).fetchone()
        return Project.from_dict(json.loads(row["data"])) if row else None

    def find_project_by_invite_code(self, invite_code: str) -> Optional[Project]:
        with closing(_connect(self.db_path)) as conn:
            row = conn.execute(
                "SELECT data FROM projects WHERE invite_code = ?", (invite_code,)
            ).fetchone()
        return Project.from_dict(json.loads(row["data"])) if row else None

    def list_projects(self) -> List[Project]:
        with closing(_connect(self.db_path)) as conn:
            rows = conn.execute("SELECT data FROM projects ORDER BY created_at ASC").fetchall()
        return [Project.from_dict(json.loads(r["data"])) for r in rows]

    def save_project(self, project: Project) -> None:
        now = utc_now()
        with closing(_connect(self.db_path)) as conn, conn:
            conn.execute("""
                INSERT INTO projects (project_id, name, invite_code, data, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(project_id) DO UPDATE SET
                    name=excluded.name,
                    invite_code=excluded.invite_code,
                    data=excluded.data,
                    updated_at=excluded.updated_at
            """, (
                project.id,
                project.name,
                project.invite_code,
                json.dumps(project.to_dict()),
                now,
                now,
            ))

    # ── Users ────────────────────────────────────────────────────────────────

    def get_user(self, user_id: str) -> Optional[User]:
        with closing(_connect(self.db_path)) as conn:
            row = conn.execute(
                "SELECT data FROM users WHERE user_id = ?", (user_id,)
            ).fetchone()
        return User.from_dict(json.loads(row["data"])) if row else None

    def find_user_by_email(self, email: str) -> Optional[User]:
        with closing(_connect(self.db_path)) as conn:
            row = conn.execute(
                "SELECT data FROM users WHERE email_lower = ?", (email.strip().lower(),)
            ).fetchone()
        return User.from_dict(json.loads(row["data"])) if row else None

    def list_users(self) -> List[User]:
        with closing(_connect(self.db_path)) as conn:
            rows = conn.execute("SELECT data FROM users ORDER BY created_at ASC").fetchall()
        return [User.from_dict(json.loads(r["data"])) for r in rows]

    def save_user(self, user: User) -> None:
        with closing(_connect(self.db_path)) as conn, conn:
            conn.execute("""
                INSERT INTO users (user_id, email_lower, data, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    email_lower=excluded.email_lower,
                    data=excluded.data
            """, (user.id, user.email.strip().lower(), json.dumps(user.to_dict()), utc_now()))

    # ── Sessions ─────────────────────────────────────────────────────────────

    def create_session(self, token: str, user_id: str) -> None:
        with closing(_connect(self.db_path)) as conn, conn:
            conn.execute(
                "INSERT INTO sessions (token, user_id, created_at) VALUES (?, ?, ?)",
                (token, user_id, utc_now()),
            )

    def get_session(self, token: str) -> Optional[str]:
        with closing(_connect(self.db_path)) as conn:
            row = conn.execute(
                "SELECT user_id FROM sessions WHERE token = ?", (token,)
            ).fetchone()
        return row["user_id"] if row else None

    def delete_session(self, token: str) -> None:
        with closing(_connect(self.db_path)) as conn, conn:
            conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
