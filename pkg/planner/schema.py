"""
Planner schema: boards, columns, tasks and their owned records.

A board is the triple (tasks, columns, columnOrder) for one project.
Invariants:
  - every id in a column's taskIds exists in tasks
  - a task id appears in exactly one column at a time
  - columnOrder holds exactly the keys of columns

Serialized form uses the camelCase wire names callers see
(displayId, assigneeId, taskIds, columnOrder, boardData, ...).
"""
import time
import uuid
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from .errors import ValidationError


ADMIN_ROLE = "Admin"
MEMBER_ROLE = "Member"

DEFAULT_COLUMNS = (
    ("col-1", "To Do"),
    ("col-2", "In Progress"),
    ("col-3", "Done"),
)


def utc_now() -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def make_id(prefix: str) -> str:
    """Generate a sortable unique id (ms-precision timestamp + random hex)."""
    ts = int(time.time() * 1000)
    rand = uuid.uuid4().hex[:8]
    return f"{prefix}-{ts}-{rand}"


def parse_due_date(value: Optional[str]) -> Optional[str]:
    """Validate a YYYY-MM-DD calendar date. Empty values mean no date."""
    if not value:
        return None
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid due date: {value!r} (expected YYYY-MM-DD)")
    return value


class Priority(Enum):
    """Task priority levels."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @classmethod
    def from_str(cls, value: str) -> "Priority":
        """Lenient parse used when loading stored data."""
        try:
            return cls[str(value).upper()]
        except KeyError:
            return cls.MEDIUM

    @classmethod
    def parse(cls, value: Any) -> "Priority":
        """Strict parse used for caller input."""
        if isinstance(value, cls):
            return value
        try:
            return cls[str(value).upper()]
        except KeyError:
            raise ValidationError(
                f"Invalid priority: {value!r}. Valid: {[p.value for p in cls]}"
            )


class ActivityType(Enum):
    """Kinds of entries in a task's activity log."""
    CREATED = "CREATED"
    STATUS_CHANGE = "STATUS_CHANGE"
    ASSIGNEE_CHANGE = "ASSIGNEE_CHANGE"
    PRIORITY_CHANGE = "PRIORITY_CHANGE"
    DUE_DATE_CHANGE = "DUE_DATE_CHANGE"
    COMMENT = "COMMENT"


@dataclass
class Activity:
    """One append-only audit entry on a task."""
    id: str
    type: ActivityType
    timestamp: str
    user_id: str
    details: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "timestamp": self.timestamp,
            "userId": self.user_id,
            "details": dict(self.details),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Activity":
        return cls(
            id=data.get("id", ""),
            type=ActivityType(data.get("type", "COMMENT")),
            timestamp=data.get("timestamp", ""),
            user_id=data.get("userId", ""),
            details=dict(data.get("details") or {}),
        )


@dataclass
class Subtask:
    id: str
    title: str
    completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "completed": self.completed}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Subtask":
        return cls(
            id=data.get("id", ""),
            title=data.get("title", ""),
            completed=bool(data.get("completed", False)),
        )


@dataclass
class Attachment:
    """File attached to a task. `data` is the encoded payload."""
    id: str
    name: str
    mime_type: str = "application/octet-stream"
    data: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "type": self.mime_type, "data": self.data}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Attachment":
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            mime_type=data.get("type", "application/octet-stream"),
            data=data.get("data", ""),
        )


@dataclass
class Task:
    """A card on the board."""

    # Identifiers
    id: str
    display_id: str                 # Project-scoped code (e.g., ALPHA-7)

    # Content
    title: str
    description: str = ""           # Plain text or HTML

    # Planning
    priority: Priority = Priority.MEDIUM
    assignee_id: str = ""
    reporter_id: str = ""           # Set once at creation
    due_date: Optional[str] = None  # YYYY-MM-DD

    # Owned collections
    subtasks: List[Subtask] = field(default_factory=list)
    attachments: List[Attachment] = field(default_factory=list)
    activity: List[Activity] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "displayId": self.display_id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
            "assigneeId": self.assignee_id,
            "reporterId": self.reporter_id,
            "dueDate": self.due_date,
            "subtasks": [s.to_dict() for s in self.subtasks],
            "attachments": [a.to_dict() for a in self.attachments],
            "activity": [a.to_dict() for a in self.activity],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=data.get("id", ""),
            display_id=data.get("displayId", ""),
            title=data.get("title", ""),
            description=data.get("description", ""),
            priority=Priority.from_str(data.get("priority", "MEDIUM")),
            assignee_id=data.get("assigneeId", "") or "",
            reporter_id=data.get("reporterId", "") or "",
            due_date=data.get("dueDate") or None,
            subtasks=[Subtask.from_dict(s) for s in data.get("subtasks") or []],
            attachments=[Attachment.from_dict(a) for a in data.get("attachments") or []],
            activity=[Activity.from_dict(a) for a in data.get("activity") or []],
        )


@dataclass
class Column:
    id: str
    title: str
    task_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "taskIds": list(self.task_ids)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Column":
        return cls(
            id=data.get("id", ""),
            title=data.get("title", ""),
            task_ids=list(data.get("taskIds") or []),
        )


@dataclass
class Board:
    """Tasks, columns and column order for one project."""
    tasks: Dict[str, Task] = field(default_factory=dict)
    columns: Dict[str, Column] = field(default_factory=dict)
    column_order: List[str] = field(default_factory=list)

    @classmethod
    def with_default_columns(cls) -> "Board":
        board = cls()
        for col_id, title in DEFAULT_COLUMNS:
            board.columns[col_id] = Column(id=col_id, title=title)
            board.column_order.append(col_id)
        return board

    def column_of(self, task_id: str) -> Optional[Column]:
        """Return the column currently listing task_id, if any."""
        for col_id in self.column_order:
            column = self.columns.get(col_id)
            if column and task_id in column.task_ids:
                return column
        return None

    def integrity_errors(self) -> List[str]:
        """List violated board invariants (empty when consistent)."""
        errors = []
        if sorted(self.column_order) != sorted(self.columns):
            errors.append("columnOrder does not match column keys")
        seen: Dict[str, str] = {}
        for col_id, column in self.columns.items():
            for task_id in column.task_ids:
                if task_id not in self.tasks:
                    errors.append(f"column {col_id} references missing task {task_id}")
                if task_id in seen:
                    errors.append(f"task {task_id} listed in {seen[task_id]} and {col_id}")
                seen[task_id] = col_id
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tasks": {tid: t.to_dict() for tid, t in self.tasks.items()},
            "columns": {cid: c.to_dict() for cid, c in self.columns.items()},
            "columnOrder": list(self.column_order),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Board":
        return cls(
            tasks={tid: Task.from_dict(t) for tid, t in (data.get("tasks") or {}).items()},
            columns={cid: Column.from_dict(c) for cid, c in (data.get("columns") or {}).items()},
            column_order=list(data.get("columnOrder") or []),
        )


@dataclass
class Project:
    """A project owns exactly one board and a member map."""
    id: str
    name: str
    invite_code: str
    members: Dict[str, Dict[str, str]] = field(default_factory=dict)  # user_id -> {"role": ...}
    board: Board = field(default_factory=Board)
    display_counters: Dict[str, int] = field(default_factory=dict)    # prefix -> highest issued

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "inviteCode": self.invite_code,
            "members": {uid: dict(m) for uid, m in self.members.items()},
            "boardData": self.board.to_dict(),
            "displayCounters": dict(self.display_counters),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            invite_code=data.get("inviteCode", ""),
            members={uid: dict(m) for uid, m in (data.get("members") or {}).items()},
            board=Board.from_dict(data.get("boardData") or {}),
            display_counters=dict(data.get("displayCounters") or {}),
        )


@dataclass
class User:
    id: str
    name: str
    email: str
    avatar_url: str = ""        # URL or data URI
    role: str = MEMBER_ROLE     # Open string; "admin" is the only privileged value
    about_me: str = ""
    profile_banner_url: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role.lower() == ADMIN_ROLE.lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "avatarUrl": self.avatar_url,
            "role": self.role,
            "aboutMe": self.about_me,
            "profileBannerUrl": self.profile_banner_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            email=data.get("email", ""),
            avatar_url=data.get("avatarUrl", ""),
            role=data.get("role", MEMBER_ROLE),
            about_me=data.get("aboutMe", ""),
            profile_banner_url=data.get("profileBannerUrl", ""),
        )
