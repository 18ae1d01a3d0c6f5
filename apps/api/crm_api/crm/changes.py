from __future__ import annotations

import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal

FieldKind = Literal["value", "date", "ref"]
LabelResolver = Callable[[str, Any], str | None]


@dataclass(frozen=True)
class TrackedField:
    name: str
    kind: FieldKind = "value"


@dataclass(frozen=True)
class ChangeRecord:
    field: str
    old_value: Any
    new_value: Any

    def as_dict(self) -> dict[str, Any]:
        return {"field": self.field, "old_value": self.old_value, "new_value": self.new_value}


TRACKED_FIELDS: dict[str, tuple[TrackedField, ...]] = {
    "contact": (
        TrackedField("contact_type"),
        TrackedField("company_name"),
        TrackedField("company_email"),
        TrackedField("phone_number"),
        TrackedField("company_address"),
        TrackedField("additional_details"),
        TrackedField("website"),
        TrackedField("contact_persons"),
    ),
    "lead": (
        TrackedField("stage"),
        TrackedField("priority"),
        TrackedField("value"),
        TrackedField("subscription"),
        TrackedField("currency_code"),
        TrackedField("company"),
        TrackedField("country"),
        TrackedField("notes"),
        TrackedField("next_step"),
        TrackedField("lead_owner"),
        TrackedField("contact_id", "ref"),
    ),
    "task": (
        TrackedField("title"),
        TrackedField("description"),
        TrackedField("assigned_to"),
        TrackedField("status"),
        TrackedField("priority"),
        TrackedField("due_date", "date"),
        TrackedField("related_to"),
        TrackedField("reminder_date", "date"),
        TrackedField("reminder_time"),
    ),
    "chargeable": (
        TrackedField("quote_send_date", "date"),
        TrackedField("customer_name"),
        TrackedField("contact_id", "ref"),
        TrackedField("chargeable_type"),
        TrackedField("quotation_sent"),
        TrackedField("follow_ups"),
        TrackedField("amount"),
        TrackedField("currency_code"),
        TrackedField("po_received"),
        TrackedField("invoice_sent"),
        TrackedField("payment_received"),
    ),
}


def to_jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value


def canonicalize(value: Any, kind: FieldKind) -> Any:
    if value is None:
        return None
    if kind == "date":
        if isinstance(value, datetime):
            return value.date().isoformat() if value.time() == datetime.min.time() else value.isoformat()
        if isinstance(value, date):
            return value.isoformat()
        return str(value)
    if kind == "ref":
        return str(value)
    return to_jsonable(value)


def snapshot(entity_type: str, source: Any) -> dict[str, Any]:
    """Capture the tracked fields of an ORM row or mapping."""
    fields = TRACKED_FIELDS[entity_type]
    if isinstance(source, Mapping):
        return {item.name: source.get(item.name) for item in fields}
    return {item.name: getattr(source, item.name, None) for item in fields}


def _label(resolve_label: LabelResolver | None, field: str, raw: str | None) -> str | None:
    if raw is None or resolve_label is None:
        return raw
    try:
        return resolve_label(field, raw) or raw
    except Exception:  # noqa: BLE001
        return raw


def detect_changes(
    entity_type: str,
    before: Mapping[str, Any],
    after: Mapping[str, Any],
    resolve_label: LabelResolver | None = None,
) -> list[ChangeRecord]:
    changes: list[ChangeRecord] = []
    for tracked in TRACKED_FIELDS[entity_type]:
        old = canonicalize(before.get(tracked.name), tracked.kind)
        new = canonicalize(after.get(tracked.name), tracked.kind)
        if old == new:
            continue
        if tracked.kind == "ref":
            old = _label(resolve_label, tracked.name, old)
            new = _label(resolve_label, tracked.name, new)
        changes.append(ChangeRecord(field=tracked.name, old_value=old, new_value=new))
    return changes


def created_change(entity_label: str) -> list[ChangeRecord]:
    return [ChangeRecord(field="all", old_value=None, new_value=f"{entity_label} created")]


def deleted_change() -> list[ChangeRecord]:
    return [ChangeRecord(field="status", old_value="Active", new_value="Deleted")]


def attachments_added_change(count: int) -> list[ChangeRecord]:
    return [ChangeRecord(field="attachments", old_value="Previous attachments", new_value=f"Added {count} attachments")]


def attachment_removed_change(file_name: str) -> list[ChangeRecord]:
    return [ChangeRecord(field="attachments", old_value=file_name, new_value="Attachment deleted")]
