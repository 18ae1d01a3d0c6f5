from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy.orm import Session

from crm_api.core.errors import NotFoundError
from crm_api.crm.models import CRMReminder
from crm_api.crm.reminders import ReminderEngine, reminder_instant
from crm_api.crm.schemas import NotificationRead, ReminderRead

logger = logging.getLogger("crm_api.notifications")

NOTIFICATION_ID_PREFIX = "reminder-"


def notification_id(reminder_id: uuid.UUID) -> str:
    return f"{NOTIFICATION_ID_PREFIX}{reminder_id}"


def parse_notification_id(raw: str) -> uuid.UUID:
    """Accept either the composite notification id or the bare reminder id."""
    value = raw[len(NOTIFICATION_ID_PREFIX):] if raw.startswith(NOTIFICATION_ID_PREFIX) else raw
    try:
        return uuid.UUID(value)
    except ValueError as exc:
        raise NotFoundError("notification not found") from exc


def to_notification(reminder: CRMReminder) -> NotificationRead:
    return NotificationRead(
        id=notification_id(reminder.id),
        title=f"Reminder: {reminder.task_name}",
        message=f"{reminder.description or ''}. Due: {reminder.due_date.isoformat()}.",
        timestamp=reminder_instant(reminder),
        read=False,
        task_id=reminder.task_id,
        reminder_id=reminder.id,
    )


class NotificationGateway:
    """Actor-scoped view over due reminders.

    Reminders are matched to the actor by display name through the engine's
    assignee directory. A reminder that belongs to someone else is reported as
    missing so callers cannot probe for its existence.
    """

    def __init__(self, engine: ReminderEngine | None = None) -> None:
        self.engine = engine or ReminderEngine()

    def pending_for(self, session: Session, actor_name: str | None, now: datetime | None = None) -> list[NotificationRead]:
        if not actor_name:
            return []
        directory = self.engine.directory
        return [
            to_notification(reminder)
            for reminder in self.engine.due_reminders(session, now)
            if directory.matches(reminder.assignee_name, actor_name)
        ]

    def acknowledge(self, session: Session, actor_name: str | None, reminder_id: uuid.UUID) -> ReminderRead:
        reminder = session.get(CRMReminder, reminder_id)
        if reminder is None or not self.engine.directory.matches(reminder.assignee_name, actor_name):
            raise NotFoundError("notification not found")
        acknowledged = self.engine.acknowledge(session, reminder)
        logger.info("notification.processed", extra={"reminder_id": str(reminder_id)})
        return ReminderRead.model_validate(acknowledged)
