from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from crm_api.core.config import get_settings
from crm_api.core.errors import NotFoundError, ValidationError
from crm_api.crm.models import CRMReminder, CRMTask
from crm_api.crm.normalization import combine_reminder_datetime, ensure_utc
from crm_api.models.user import User

logger = logging.getLogger("crm_api.reminders")

PENDING = "pending"
SENT = "sent"
CANCELLED = "cancelled"
TASK_COMPLETED = "Completed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AssigneeDirectory(Protocol):
    """Resolves the free-text assignee stored on tasks to a person."""

    def email_for(self, session: Session, assignee_name: str) -> str | None: ...

    def matches(self, assignee_name: str, actor_name: str | None) -> bool: ...


class NameMatchingDirectory:
    """Assignees are matched on the user's display name, exactly as typed on the task."""

    def email_for(self, session: Session, assignee_name: str) -> str | None:
        if not assignee_name:
            return None
        return session.scalar(select(User.email).where(User.name == assignee_name).limit(1))

    def matches(self, assignee_name: str, actor_name: str | None) -> bool:
        return bool(actor_name) and assignee_name == actor_name


class ReminderEngine:
    def __init__(self, directory: AssigneeDirectory | None = None, timezone_name: str | None = None) -> None:
        self.directory = directory or NameMatchingDirectory()
        self._timezone_name = timezone_name

    @property
    def timezone_name(self) -> str:
        return self._timezone_name or get_settings().reminder_timezone

    def get_for_task(self, session: Session, task_id: uuid.UUID) -> CRMReminder | None:
        return session.scalar(select(CRMReminder).where(CRMReminder.task_id == task_id))

    def sync_for_task(
        self,
        session: Session,
        task: CRMTask,
        *,
        owner_id: uuid.UUID,
        cleared: bool = False,
        now: datetime | None = None,
    ) -> CRMReminder | None:
        """Bring the task's reminder in line with the task.

        ``cleared`` means the write explicitly blanked a reminder field, which
        removes the reminder. A task carrying both reminder fields gets its
        single reminder created or overwritten in place. Does not commit.
        """
        if cleared:
            self.delete_for_task(session, task.id)
            return None
        if task.reminder_date is None or not task.reminder_time:
            return None

        try:
            instant = combine_reminder_datetime(task.reminder_date, task.reminder_time, self.timezone_name)
        except ValueError as exc:
            raise ValidationError.single("reminder_time", str(exc)) from exc

        current_time = now or utcnow()
        reminder = self.get_for_task(session, task.id)
        created = reminder is None
        if reminder is None:
            reminder = CRMReminder(task_id=task.id, status=PENDING, owner_id=owner_id)
            session.add(reminder)

        reminder.task_name = task.title
        reminder.description = task.description
        reminder.assignee_name = task.assigned_to
        reminder.assignee_email = self.directory.email_for(session, task.assigned_to)
        reminder.due_date = task.due_date
        reminder.reminder_date = task.reminder_date
        reminder.reminder_time = task.reminder_time
        reminder.reminder_datetime = instant

        rescheduled = instant > current_time
        if task.status == TASK_COMPLETED:
            reminder.status = CANCELLED
        elif reminder.status == CANCELLED:
            # reopening restores the state held before completion
            reminder.status = SENT if reminder.acknowledged_at is not None and not rescheduled else PENDING
        elif reminder.status == SENT and rescheduled:
            reminder.status = PENDING
        if reminder.status == PENDING:
            reminder.acknowledged_at = None

        session.flush()
        logger.info(
            "reminder.created" if created else "reminder.updated",
            extra={
                "reminder_id": str(reminder.id),
                "task_id": str(task.id),
                "reminder_status": reminder.status,
            },
        )
        return reminder

    def delete_for_task(self, session: Session, task_id: uuid.UUID) -> bool:
        result = session.execute(delete(CRMReminder).where(CRMReminder.task_id == task_id))
        removed = bool(result.rowcount)
        if removed:
            logger.info("reminder.deleted", extra={"task_id": str(task_id)})
        return removed

    def due_reminders(self, session: Session, now: datetime | None = None) -> list[CRMReminder]:
        cutoff = now or utcnow()
        stmt = (
            select(CRMReminder)
            .where(CRMReminder.status == PENDING, CRMReminder.reminder_datetime <= cutoff)
            .order_by(CRMReminder.reminder_datetime.asc(), CRMReminder.id.asc())
        )
        return list(session.scalars(stmt).all())

    def list_reminders(self, session: Session) -> list[CRMReminder]:
        return list(session.scalars(select(CRMReminder).order_by(CRMReminder.reminder_datetime.asc())).all())

    def get(self, session: Session, reminder_id: uuid.UUID) -> CRMReminder:
        reminder = session.get(CRMReminder, reminder_id)
        if reminder is None:
            raise NotFoundError("reminder not found")
        return reminder

    def mark_sent(self, session: Session, reminder_id: uuid.UUID) -> CRMReminder:
        reminder = self.get(session, reminder_id)
        return self.acknowledge(session, reminder)

    def acknowledge(self, session: Session, reminder: CRMReminder) -> CRMReminder:
        if reminder.status == CANCELLED:
            raise ValidationError.single("status", "cancelled reminder cannot be acknowledged")
        if reminder.status == PENDING:
            reminder.status = SENT
            reminder.acknowledged_at = utcnow()
            session.commit()
            session.refresh(reminder)
            logger.info("reminder.acknowledged", extra={"reminder_id": str(reminder.id), "task_id": str(reminder.task_id)})
        return reminder


def reminder_instant(reminder: CRMReminder) -> datetime:
    return ensure_utc(reminder.reminder_datetime)  # type: ignore[return-value]
