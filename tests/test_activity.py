"""Tests for the activity recorder."""
import copy

from pkg.planner.activity import (
    NO_DATE,
    UNASSIGNED,
    record_comment,
    record_creation,
    record_field_changes,
    record_status_change,
    sorted_activity,
)
from pkg.planner.schema import Activity, ActivityType, Priority, Task

NAMES = {"user-1": "Ada", "user-2": "Bob"}


def resolve(uid):
    return NAMES.get(uid, UNASSIGNED)


def _task(**overrides) -> Task:
    fields = dict(id="task-1", display_id="ALPHA-1", title="T", assignee_id="user-1",
                  priority=Priority.LOW, due_date="2026-11-01")
    fields.update(overrides)
    return Task(**fields)


class TestRecordSimpleEntries:

    def test_creation_has_empty_details(self):
        task = _task()
        entry = record_creation(task, "user-1")
        assert task.activity == [entry]
        assert entry.type == ActivityType.CREATED
        assert entry.details == {}
        assert entry.user_id == "user-1"

    def test_comment_carries_text(self):
        task = _task()
        entry = record_comment(task, "user-2", "Looks good")
        assert entry.type == ActivityType.COMMENT
        assert entry.details == {"text": "Looks good"}

    def test_status_change_carries_titles(self):
        task = _task()
        entry = record_status_change(task, "user-1", "To Do", "Done")
        assert entry.details == {"from": "To Do", "to": "Done"}

    def test_entries_append_in_call_order(self):
        task = _task()
        first = record_creation(task, "user-1")
        second = record_comment(task, "user-1", "a")
        third = record_comment(task, "user-1", "b")
        assert [a.id for a in task.activity] == [first.id, second.id, third.id]
        assert len({a.id for a in task.activity}) == 3


class TestRecordFieldChanges:

    def test_no_tracked_change_records_nothing(self):
        old = _task()
        new = _task(title="Renamed", description="new text")
        assert record_field_changes(old, new, "user-1", resolve) == []
        assert new.activity == []

    def test_all_three_fields(self):
        old = _task()
        new = _task(assignee_id="user-2", priority=Priority.HIGH, due_date="2026-12-24")
        recorded = record_field_changes(old, new, "user-1", resolve)

        assert [a.type for a in recorded] == [
            ActivityType.ASSIGNEE_CHANGE,
            ActivityType.PRIORITY_CHANGE,
            ActivityType.DUE_DATE_CHANGE,
        ]
        assert recorded[0].details == {"from": "Ada", "to": "Bob"}
        assert recorded[1].details == {"from": "LOW", "to": "HIGH"}
        assert recorded[2].details == {"from": "2026-11-01", "to": "2026-12-24"}
        assert new.activity == recorded
        assert old.activity == []

    def test_unresolved_assignee_reads_unassigned(self):
        old = _task(assignee_id="")
        new = _task(assignee_id="user-999")
        [entry] = record_field_changes(old, new, "user-1", resolve)
        assert entry.details == {"from": UNASSIGNED, "to": UNASSIGNED}

    def test_due_date_sentinel(self):
        old = _task(due_date=None)
        new = _task(due_date="2026-01-05")
        [entry] = record_field_changes(old, new, "user-1", resolve)
        assert entry.details == {"from": NO_DATE, "to": "2026-01-05"}

        [cleared] = record_field_changes(new, _task(due_date=None), "user-1", resolve)
        assert cleared.details == {"from": "2026-01-05", "to": NO_DATE}


def test_sorted_activity_leaves_log_untouched():
    task = _task(activity=[
        Activity(id="a", type=ActivityType.COMMENT, timestamp="2026-01-02T00:00:00.000Z", user_id="u"),
        Activity(id="b", type=ActivityType.COMMENT, timestamp="2026-01-01T00:00:00.000Z", user_id="u"),
        Activity(id="c", type=ActivityType.COMMENT, timestamp="2026-01-03T00:00:00.000Z", user_id="u"),
    ])
    before = copy.deepcopy(task.activity)

    assert [a.id for a in sorted_activity(task)] == ["c", "a", "b"]
    assert [a.id for a in sorted_activity(task, newest_first=False)] == ["b", "a", "c"]
    assert task.activity == before


def test_sorted_activity_breaks_timestamp_ties_by_log_position():
    same = "2026-01-01T00:00:00.000Z"
    task = _task(activity=[
        Activity(id="first", type=ActivityType.CREATED, timestamp=same, user_id="u"),
        Activity(id="second", type=ActivityType.COMMENT, timestamp=same, user_id="u"),
        Activity(id="later", type=ActivityType.COMMENT, timestamp="2026-01-02T00:00:00.000Z", user_id="u"),
    ])

    assert [a.id for a in sorted_activity(task)] == ["later", "second", "first"]
    assert [a.id for a in sorted_activity(task, newest_first=False)] == ["first", "second", "later"]
