import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from vsanlab.models import EventLog, EventType, Severity

logger = logging.getLogger(__name__)


class EventRecorder:
    """Writes operator-facing events to the event log and the process log."""

    def __init__(self, db: Session):
        self.db = db

    def log_event(
        self,
        event_type: EventType,
        message: str,
        severity: Severity = Severity.INFO,
        host_id: Optional[str] = None,
        vm_id: Optional[str] = None,
        disk_id: Optional[str] = None,
    ) -> EventLog:
        """
        Log system event for the operator timeline.

        Args:
            event_type: Type of event (from EventType enum)
            message: Human-readable description
            severity: INFO or ERROR
            host_id: Optional host associated with event
            vm_id: Optional VM associated with event
            disk_id: Optional disk associated with event
        """
        event = EventLog(
            event_type=event_type,
            severity=severity,
            message=message,
            host_id=host_id,
            vm_id=vm_id,
            disk_id=disk_id,
            timestamp=datetime.now(),
        )
        self.db.add(event)
        self.db.flush()

        if severity == Severity.ERROR:
            logger.error(message)
        else:
            logger.info(message)
        return event

    def error(self, message: str, **refs) -> EventLog:
        return self.log_event(EventType.COMMAND_FAILED, message, Severity.ERROR, **refs)

    def recent(self, limit: int = 100) -> List[EventLog]:
        """Newest first."""
        return list(
            self.db.scalars(
                select(EventLog).order_by(EventLog.id.desc()).limit(limit)
            ).all()
        )

    def clear(self) -> None:
        self.db.execute(delete(EventLog))
