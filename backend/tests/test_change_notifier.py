"""
Tests for the Change Notifier and audit sinks

- Sink failures are logged, never raised, and never undo the mutation
- DatabaseAuditSink writes AuditLog rows in its own session
"""

import logging
from datetime import date

from sqlmodel import Session, select

from coaching.models.audit_log import AuditLog
from coaching.models.coach_assignment import CoachAssignment
from coaching.services.assignment_store import AssignmentStore
from coaching.services.change_notifier import (
    ChangeEvent,
    ChangeNotifier,
    DatabaseAuditSink,
    MemoryAuditSink,
    NullAuditSink,
)
from coaching.services.scope_registry import CenterScope, TeamScope


class ExplodingSink:
    def __init__(self):
        self.calls = 0

    def record(self, event: ChangeEvent) -> None:
        self.calls += 1
        raise RuntimeError("audit backend unavailable")


def test_default_notifier_uses_null_sink():
    notifier = ChangeNotifier()
    assert isinstance(notifier.sink, NullAuditSink)
    event = ChangeEvent(type="created", assignment_id=1, cohort_id=1, actor_id=None, summary="x")
    assert notifier.notify(event) is True


def test_notify_reports_sink_failure(caplog):
    notifier = ChangeNotifier(ExplodingSink())
    event = ChangeEvent(type="deleted", assignment_id=3, cohort_id=1, actor_id=7, summary="x")

    with caplog.at_level(logging.ERROR, logger="coaching.services.change_notifier"):
        assert notifier.notify(event) is False

    assert "coach_assignment.deleted" in caplog.text


def test_sink_failure_does_not_fail_create_or_delete(session: Session, org):
    sink = ExplodingSink()
    store = AssignmentStore(session, notifier=ChangeNotifier(sink), actor_id=7)

    assignment_id = store.create(1, 101, CenterScope(5), date(2024, 1, 1))
    assert session.get(CoachAssignment, assignment_id) is not None

    assert store.delete(assignment_id) is True
    assert session.get(CoachAssignment, assignment_id) is None
    assert sink.calls == 2


def test_event_to_dict():
    event = ChangeEvent(type="created", assignment_id=1, cohort_id=2, actor_id=7, summary="s", payload={"a": 1})
    data = event.to_dict()

    assert data["type"] == "created"
    assert data["payload"] == {"a": 1}
    assert isinstance(data["timestamp"], str)
    assert event.action_type == "coach_assignment.created"


def test_database_sink_writes_audit_rows(engine, session: Session, org):
    store = AssignmentStore(session, notifier=ChangeNotifier(DatabaseAuditSink(engine)), actor_id=7)

    assignment_id = store.create(1, 101, TeamScope(9), date(2024, 3, 1), date(2024, 8, 31))
    store.close(assignment_id, date(2024, 5, 31))
    store.delete(assignment_id)

    rows = session.exec(select(AuditLog).order_by(AuditLog.id)).all()
    assert [r.action_type for r in rows] == [
        "coach_assignment.created",
        "coach_assignment.closed",
        "coach_assignment.deleted",
    ]
    assert all(r.entity_id == assignment_id for r in rows)
    assert all(r.cohort_id == 1 and r.actor_user_id == 7 for r in rows)
    assert rows[0].summary == "Coach 101 assigned to Blue from 2024-03-01 to 2024-08-31"
    assert rows[1].payload["before"]["effective_to"] == "2024-08-31"
    assert rows[1].payload["after"]["effective_to"] == "2024-05-31"
    assert rows[2].payload["before"]["coach_user_id"] == 101


def test_memory_sink_collects_events(session: Session, org):
    sink = MemoryAuditSink()
    store = AssignmentStore(session, notifier=ChangeNotifier(sink))

    store.create(1, 101, CenterScope(5), date(2024, 1, 1))

    assert [e.type for e in sink.events] == ["created"]
    assert sink.events[0].actor_id is None
