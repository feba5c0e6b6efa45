"""
Activity recorder: derives audit entries and appends them to a task.

The log is append-only. Entries are added in call order and never edited,
removed or reordered; display code sorts a copy by timestamp.
"""
from typing import Callable, List

from .schema import Activity, ActivityType, Task, make_id, utc_now

NO_DATE = "No date"
UNASSIGNED = "Unassigned"


def _append(task: Task, kind: ActivityType, user_id: str, **details: str) -> Activity:
    entry = Activity(
        id=make_id("act"),
        type=kind,
        timestamp=utc_now(),
        user_id=user_id,
        details=dict(details),
    )
    task.activity.append(entry)
    return entry


def record_creation(task: Task, user_id: str) -> Activity:
    """Append the single CREATED entry for a new task."""
    return _append(task, ActivityType.CREATED, user_id)


def record_comment(task: Task, user_id: str, text: str) -> Activity:
    return _append(task, ActivityType.COMMENT, user_id, text=text)


def record_status_change(task: Task, user_id: str, from_title: str, to_title: str) -> Activity:
    """Task moved between columns; details carry the column titles."""
    return _append(task, ActivityType.STATUS_CHANGE, user_id, **{"from": from_title, "to": to_title})


def record_field_changes(
    old_task: Task,
    new_task: Task,
    user_id: str,
    name_resolver: Callable[[str], str],
) -> List[Activity]:
    """
    Diff assignee, priority and due date and append one entry per change.

    Entries are appended to new_task, in the order assignee, priority,
    due date. Returns the appended entries (possibly empty).
    """
    recorded = []
    if old_task.assignee_id != new_task.assignee_id:
        recorded.append(_append(
            new_task, ActivityType.ASSIGNEE_CHANGE, user_id,
            **{"from": name_resolver(old_task.assignee_id), "to": name_resolver(new_task.assignee_id)},
        ))
    if old_task.priority != new_task.priority:
        recorded.append(_append(
            new_task, ActivityType.PRIORITY_CHANGE, user_id,
            **{"from": old_task.priority.value, "to": new_task.priority.value},
        ))
    if (old_task.due_date or None) != (new_task.due_date or None):
        recorded.append(_append(
            new_task, ActivityType.DUE_DATE_CHANGE, user_id,
            **{"from": old_task.due_date or NO_DATE, "to": new_task.due_date or NO_DATE},
        ))
    return recorded


def sorted_activity(task: Task, newest_first: bool = True) -> List[Activity]:
    """Display order by timestamp, ties by log position. The stored log is left untouched."""
    ordered = sorted(enumerate(task.activity), key=lambda pair: (pair[1].timestamp, pair[0]), reverse=newest_first)
    return [entry for _, entry in ordered]
