from __future__ import annotations

import html
import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime

from opentelemetry import trace
from sqlalchemy.orm import Session

from crm_api.core.celery_app import celery_app
from crm_api.core.database import SessionLocal
from crm_api.core.errors import DependencyError
from crm_api.crm.models import CRMReminder
from crm_api.crm.reminders import ReminderEngine
from crm_api.mail import Mailer, get_mailer
from crm_api.metrics import observe_reminder_email, observe_reminder_scan

logger = logging.getLogger("crm_api.reminders.scan")
tracer = trace.get_tracer("crm_api.reminders.scan")


@dataclass
class ScanResult:
    due_count: int = 0
    emailed: int = 0
    skipped: int = 0
    failed: int = 0


def render_reminder_email(reminder: CRMReminder) -> tuple[str, str, str]:
    subject = f"Reminder: {reminder.task_name}"
    description = reminder.description or "N/A"
    due = reminder.due_date.isoformat()
    text = (
        "Task Reminder\n\n"
        f"Task: {reminder.task_name}\n"
        f"Description: {description}\n"
        f"Due Date: {due}\n\n"
        "Please log in to the system to check task details.\n"
    )
    body_html = (
        "<h2>Task Reminder</h2>"
        f"<p><strong>Task:</strong> {html.escape(reminder.task_name)}</p>"
        f"<p><strong>Description:</strong> {html.escape(description)}</p>"
        f"<p><strong>Due Date:</strong> {due}</p>"
        "<p>Please log in to the system to check task details.</p>"
    )
    return subject, text, body_html


def process_due_reminders(
    session: Session,
    mailer: Mailer,
    *,
    engine: ReminderEngine | None = None,
    now: datetime | None = None,
) -> ScanResult:
    """Email the assignee of every due reminder.

    Read-only with respect to reminder state: a reminder stays pending until a
    client acknowledges it, so it keeps showing up here and in notifications.
    """
    engine = engine or ReminderEngine()
    result = ScanResult()
    started = time.perf_counter()

    with tracer.start_as_current_span("crm.reminders.scan") as span:
        due = engine.due_reminders(session, now)
        result.due_count = len(due)
        logger.info("reminder.scan.started", extra={"due_count": result.due_count})

        for reminder in due:
            recipient = reminder.assignee_email or engine.directory.email_for(session, reminder.assignee_name)
            if not recipient:
                result.skipped += 1
                logger.info(
                    "reminder.scan.no_recipient",
                    extra={"reminder_id": str(reminder.id), "task_id": str(reminder.task_id)},
                )
                continue

            subject, text, body_html = render_reminder_email(reminder)
            try:
                mailer.send(recipient, subject, text, body_html)
            except DependencyError as exc:
                result.failed += 1
                logger.warning(
                    "reminder.scan.email_failed",
                    extra={"reminder_id": str(reminder.id), "recipient": recipient, "error": exc.message},
                )
                continue
            result.emailed += 1

        span.set_attribute("crm.reminders.due", result.due_count)
        span.set_attribute("crm.reminders.emailed", result.emailed)
        span.set_attribute("crm.reminders.failed", result.failed)

    observe_reminder_scan(time.perf_counter() - started)
    observe_reminder_email("sent", result.emailed)
    observe_reminder_email("skipped", result.skipped)
    observe_reminder_email("failed", result.failed)
    logger.info("reminder.scan.finished", extra=asdict(result))
    return result


@celery_app.task(name="crm_api.reminders.scan")
def scan_due_reminders() -> dict[str, int]:
    session = SessionLocal()
    try:
        result = process_due_reminders(session, get_mailer())
    finally:
        session.close()
    return asdict(result)
