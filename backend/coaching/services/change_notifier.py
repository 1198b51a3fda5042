"""
Change Notifier

Every successful assignment mutation produces a ChangeEvent that is handed
to an audit sink. The notifier is always present; when no audit sink is
configured it forwards to NullAuditSink.

Delivery runs after the mutation has committed. A sink failure is logged
and reported through the return value, never raised: the assignment table
is the source of truth and the audit trail is a side channel.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy.engine import Engine
from sqlmodel import Session

from coaching.models.audit_log import AuditLog

logger = logging.getLogger(__name__)

EVENT_CREATED = "created"
EVENT_CLOSED = "closed"
EVENT_DELETED = "deleted"


@dataclass(frozen=True)
class ChangeEvent:
    type: str  # created|closed|deleted
    assignment_id: int
    cohort_id: int
    actor_id: Optional[int]
    summary: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def action_type(self) -> str:
        return f"coach_assignment.{self.type}"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class AuditSink(Protocol):
    def record(self, event: ChangeEvent) -> None: ...


class NullAuditSink:
    """Audit sink used when auditing is switched off."""

    def record(self, event: ChangeEvent) -> None:
        return None


class MemoryAuditSink:
    """Keeps events in a list. Handy for scripts and tests."""

    def __init__(self):
        self.events: List[ChangeEvent] = []

    def record(self, event: ChangeEvent) -> None:
        self.events.append(event)


class DatabaseAuditSink:
    """
    Writes each event as an AuditLog row.

    Uses its own session so a failed audit write can never roll back, or be
    rolled back with, the caller's transaction.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def record(self, event: ChangeEvent) -> None:
        with Session(self.engine) as session:
            session.add(
                AuditLog(
                    action_type=event.action_type,
                    entity_type="coach_assignment",
                    entity_id=event.assignment_id,
                    cohort_id=event.cohort_id,
                    actor_user_id=event.actor_id,
                    summary=event.summary,
                    payload=_json_safe(event.payload),
                    created_at=event.timestamp,
                )
            )
            session.commit()


def _json_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


class ChangeNotifier:
    def __init__(self, sink: Optional[AuditSink] = None):
        self.sink = sink if sink is not None else NullAuditSink()

    def notify(self, event: ChangeEvent) -> bool:
        """
        Deliver an event to the sink.

        Returns:
            True if the sink accepted the event, False if it failed
        """
        try:
            self.sink.record(event)
        except Exception:
            logger.exception(f"Audit delivery failed for {event.action_type} on assignment {event.assignment_id}")
            return False
        return True
