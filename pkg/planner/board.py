"""
Board mutation API.

Every write goes through BoardService so that a board's tasks map,
per-column taskIds lists and columnOrder never diverge. A call loads a
private copy of the project, applies the change, checks board integrity
and saves. Anything raised before the save leaves the store untouched.

Writes to one project are serialized with the store's per-project lock;
reads are lock-free and may observe a slightly older board. Only project
members and global admins may write to a board.
"""
import dataclasses
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, TypeVar

from .activity import (
    UNASSIGNED,
    record_comment,
    record_creation,
    record_field_changes,
    record_status_change,
)
from .errors import NotFound, ValidationError
from .schema import (
    Attachment,
    Board,
    Priority,
    Project,
    Subtask,
    Task,
    make_id,
    parse_due_date,
)
from .registry import check_access
from .store import PlannerStore
from .users import UserDirectory

logger = logging.getLogger(__name__)

PREFIX_LENGTH = 5
SUBTASK_FIELDS = ("title", "completed")

Child = TypeVar("Child", Subtask, Attachment)


def display_prefix(project_name: str) -> str:
    return project_name[:PREFIX_LENGTH].upper()


def next_display_id(project: Project) -> str:
    """
    Allocate the next <PREFIX>-<N> code for a project.

    N is one past the highest number ever issued for the prefix: the max of
    a scan over current tasks and the stored counter, so deleting the newest
    task never frees its number. Updates project.display_counters.
    """
    prefix = display_prefix(project.name)
    highest = project.display_counters.get(prefix, 0)
    for task in project.board.tasks.values():
        head, sep, number = task.display_id.rpartition("-")
        if sep and head == prefix and number.isdigit():
            highest = max(highest, int(number))
    project.display_counters[prefix] = highest + 1
    return f"{prefix}-{highest + 1}"


def _require_title(title: Any) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("title is required")
    return title


def _entries(value: Any, key: str) -> List[Dict[str, Any]]:
    """Caller-supplied subtasks/attachments: a list of JSON objects or nothing."""
    if not value:
        return []
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        raise ValidationError(f"{key} must be a list of objects")
    return value


def _unique_ids(items: List[Child], prefix: str) -> List[Child]:
    """Copy items, giving a fresh id to any that is missing or repeated."""
    seen = set()
    result = []
    for item in items:
        if not isinstance(item.id, str) or not item.id or item.id in seen:
            item = dataclasses.replace(item, id=make_id(prefix))
        seen.add(item.id)
        result.append(item)
    return result


def task_from_payload(data: Dict[str, Any]) -> Task:
    """Build a Task from caller JSON, rejecting bad priorities, dates and child lists."""
    if "priority" in data:
        Priority.parse(data["priority"])
    _entries(data.get("subtasks"), "subtasks")
    _entries(data.get("attachments"), "attachments")
    # the activity log is server-owned
    task = Task.from_dict({k: v for k, v in data.items() if k != "activity"})
    _require_title(task.title)
    task.due_date = parse_due_date(task.due_date)
    return task


class BoardService:
    """Tasks, columns, comments, subtasks and attachments of project boards."""

    def __init__(self, store: PlannerStore, users: Optional[UserDirectory] = None):
        self.store = store
        self.users = users or UserDirectory(store)

    # ── Internals ────────────────────────────────────────────────────────────

    def _load(self, project_id: str) -> Project:
        project = self.store.get_project(project_id)
        if not project:
            raise NotFound("Project not found", project_id=project_id)
        return project

    @contextmanager
    def _mutate(self, project_id: str, user_id: Optional[str]) -> Iterator[Tuple[Project, str]]:
        """Read-modify-write one project's board as a unit."""
        actor = self.users.require_user(user_id)
        with self.store.project_lock(project_id):
            project = self._load(project_id)
            check_access(project, actor)
            yield project, actor.id
            problems = project.board.integrity_errors()
            if problems:
                raise ValidationError("Board integrity violated", problems=problems)
            self.store.save_project(project)

    @staticmethod
    def _task(board: Board, task_id: str) -> Task:
        task = board.tasks.get(task_id)
        if not task:
            raise NotFound("Task not found", task_id=task_id)
        return task

    def _name_resolver(self, project: Project) -> Callable[[str], str]:
        names = {}
        for uid in project.members:
            user = self.store.get_user(uid)
            if user:
                names[uid] = user.name
        return lambda uid: names.get(uid, UNASSIGNED)

    # ── Reads ────────────────────────────────────────────────────────────────

    def get_board(self, project_id: str) -> Board:
        return self._load(project_id).board

    def get_task(self, project_id: str, task_id: str) -> Task:
        return self._task(self.get_board(project_id), task_id)

    # ── Tasks ────────────────────────────────────────────────────────────────

    def add_task(
        self,
        project_id: str,
        column_id: str,
        fields: Dict[str, Any],
        user_id: Optional[str],
    ) -> Tuple[Board, str]:
        """
        Create a task at the front of a column.

        fields uses wire names: title, description, priority, assigneeId,
        dueDate, subtasks, attachments. Returns (board, new display id).
        """
        title = _require_title(fields.get("title"))
        priority = Priority.parse(fields.get("priority", Priority.MEDIUM))
        due_date = parse_due_date(fields.get("dueDate"))
        subtasks = [Subtask.from_dict(s) for s in _entries(fields.get("subtasks"), "subtasks")]
        attachments = [Attachment.from_dict(a) for a in _entries(fields.get("attachments"), "attachments")]

        with self._mutate(project_id, user_id) as (project, actor_id):
            board = project.board
            column = board.columns.get(column_id)
            if not column:
                raise NotFound("Column not found", column_id=column_id)

            task = Task(
                id=make_id("task"),
                display_id=next_display_id(project),
                title=title,
                description=fields.get("description", "") or "",
                priority=priority,
                assignee_id=fields.get("assigneeId", "") or "",
                reporter_id=actor_id,
                due_date=due_date,
                subtasks=_unique_ids(subtasks, "sub"),
                attachments=_unique_ids(attachments, "att"),
            )
            record_creation(task, actor_id)
            board.tasks[task.id] = task
            column.task_ids.insert(0, task.id)

        logger.info(f"Created task {task.display_id} ({task.id}) in {project_id}/{column_id}")
        return board, task.display_id

    def move_task(
        self,
        project_id: str,
        task_id: str,
        source_column_id: str,
        dest_column_id: str,
        dest_index: int,
        user_id: Optional[str],
    ) -> Board:
        """
        Move a task between columns or reorder it within one.

        dest_index is clamped to the destination list. The task must
        currently sit in the source column; a stale source raises NotFound.
        """
        if isinstance(dest_index, bool) or not isinstance(dest_index, int):
            raise ValidationError(f"Invalid destination index: {dest_index!r}")

        with self._mutate(project_id, user_id) as (project, actor_id):
            board = project.board
            source = board.columns.get(source_column_id)
            dest = board.columns.get(dest_column_id)
            if not source or not dest:
                raise NotFound(
                    "Column not found",
                    source_column_id=source_column_id,
                    dest_column_id=dest_column_id,
                )
            task = self._task(board, task_id)
            if task_id not in source.task_ids:
                raise NotFound(
                    f"Task {task_id} is not in column {source_column_id}",
                    task_id=task_id,
                    column_id=source_column_id,
                )

            source.task_ids.remove(task_id)
            index = max(0, min(dest_index, len(dest.task_ids)))
            dest.task_ids.insert(index, task_id)

            if source.id != dest.id:
                record_status_change(task, actor_id, source.title, dest.title)

        logger.info(f"Moved task {task_id} {source_column_id} -> {dest_column_id}[{index}]")
        return board

    def update_task(self, project_id: str, task: Task, user_id: Optional[str]) -> Board:
        """
        Replace a task's mutable fields.

        Assignee, priority and due date changes are logged before the
        overwrite. id, displayId, reporterId and the activity log come from
        the stored task; the incoming activity list is ignored.
        """
        _require_title(task.title)
        due_date = parse_due_date(task.due_date)

        with self._mutate(project_id, user_id) as (project, actor_id):
            board = project.board
            stored = self._task(board, task.id)
            updated = Task(
                id=stored.id,
                display_id=stored.display_id,
                title=task.title,
                description=task.description,
                priority=task.priority,
                assignee_id=task.assignee_id,
                reporter_id=stored.reporter_id,
                due_date=due_date,
                subtasks=_unique_ids(task.subtasks, "sub"),
                attachments=_unique_ids(task.attachments, "att"),
                activity=list(stored.activity),
            )
            changes = record_field_changes(stored, updated, actor_id, self._name_resolver(project))
            board.tasks[stored.id] = updated

        logger.info(f"Updated task {task.id} ({len(changes)} tracked changes)")
        return board

    def delete_task(self, project_id: str, task_id: str, user_id: Optional[str]) -> Board:
        with self._mutate(project_id, user_id) as (project, _):
            board = project.board
            self._task(board, task_id)
            del board.tasks[task_id]
            for column in board.columns.values():
                column.task_ids = [tid for tid in column.task_ids if tid != task_id]

        logger.info(f"Deleted task {task_id} from {project_id}")
        return board

    def add_comment(self, project_id: str, task_id: str, text: str, user_id: Optional[str]) -> Board:
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Comment text is required")
        with self._mutate(project_id, user_id) as (project, actor_id):
            record_comment(self._task(project.board, task_id), actor_id, text)
        return project.board

    # ── Subtasks ─────────────────────────────────────────────────────────────

    def add_subtask(self, project_id: str, task_id: str, title: str, user_id: Optional[str]) -> Board:
        _require_title(title)
        with self._mutate(project_id, user_id) as (project, _):
            task = self._task(project.board, task_id)
            task.subtasks.append(Subtask(id=make_id("sub"), title=title, completed=False))
        return project.board

    def update_subtask(
        self,
        project_id: str,
        task_id: str,
        subtask_id: str,
        patch: Dict[str, Any],
        user_id: Optional[str],
    ) -> Board:
        """Merge title/completed into a subtask. Unknown subtask ids are ignored."""
        unknown = set(patch) - set(SUBTASK_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update subtask fields: {sorted(unknown)}")
        if "title" in patch:
            _require_title(patch["title"])

        with self._mutate(project_id, user_id) as (project, _):
            task = self._task(project.board, task_id)
            for subtask in task.subtasks:
                if subtask.id == subtask_id:
                    if "title" in patch:
                        subtask.title = patch["title"]
                    if "completed" in patch:
                        subtask.completed = bool(patch["completed"])
        return project.board

    def delete_subtask(self, project_id: str, task_id: str, subtask_id: str, user_id: Optional[str]) -> Board:
        with self._mutate(project_id, user_id) as (project, _):
            task = self._task(project.board, task_id)
            task.subtasks = [s for s in task.subtasks if s.id != subtask_id]
        return project.board

    # ── Attachments ──────────────────────────────────────────────────────────

    def add_attachment(
        self,
        project_id: str,
        task_id: str,
        name: str,
        mime_type: str,
        data: str,
        user_id: Optional[str],
        attachment_id: Optional[str] = None,
    ) -> Board:
        if not name:
            raise ValidationError("Attachment name is required")
        with self._mutate(project_id, user_id) as (project, _):
            task = self._task(project.board, task_id)
            if not attachment_id or any(a.id == attachment_id for a in task.attachments):
                attachment_id = make_id("att")
            task.attachments.append(Attachment(
                id=attachment_id,
                name=name,
                mime_type=mime_type or "application/octet-stream",
                data=data or "",
            ))
        return project.board

    def delete_attachment(self, project_id: str, task_id: str, attachment_id: str, user_id: Optional[str]) -> Board:
        with self._mutate(project_id, user_id) as (project, _):
            task = self._task(project.board, task_id)
            task.attachments = [a for a in task.attachments if a.id != attachment_id]
        return project.board
