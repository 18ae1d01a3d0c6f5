"""Pure helpers that shape entity data before it is stored or after it is read.

Nothing in this module touches the database. Each function takes plain values
and returns plain values so the same rules apply to API writes, background
jobs and tests.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_REMINDER_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

# flat contact inputs from older clients, mapped onto the structured fields
_LEGACY_CONTACT_FIELDS = {
    "company": "company_name",
    "email": "company_email",
    "phone": "phone_number",
}


def strip_thousands(value: Any) -> Any:
    if isinstance(value, str):
        cleaned = value.replace(",", "").strip()
        if not cleaned:
            raise ValueError("must be a number")
        return cleaned
    return value


def blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def fold_legacy_contact(data: Any) -> Any:
    if not isinstance(data, dict):
        return data

    folded = dict(data)
    for legacy_key, structured_key in _LEGACY_CONTACT_FIELDS.items():
        legacy_value = folded.pop(legacy_key, None)
        if legacy_value and not folded.get(structured_key):
            folded[structured_key] = legacy_value

    legacy_name = folded.pop("name", None)
    if legacy_name and not folded.get("contact_persons"):
        folded["contact_persons"] = [
            {
                "name": legacy_name,
                "email": data.get("email"),
                "phone_number": data.get("phone"),
            }
        ]
    return folded


def project_contact_legacy(
    company_name: str | None,
    company_email: str | None,
    phone_number: str | None,
    contact_persons: list[Mapping[str, Any]] | None,
) -> dict[str, str | None]:
    first_person = contact_persons[0] if contact_persons else {}
    return {
        "name": first_person.get("name") or None,
        "email": company_email,
        "phone": phone_number,
        "company": company_name,
    }


def contact_label(company_name: str | None, contact_persons: list[Mapping[str, Any]] | None) -> str | None:
    if contact_persons:
        name = contact_persons[0].get("name")
        if name:
            return str(name)
    return company_name


def normalize_amounts(
    values: dict[str, Any],
    *,
    base_currency: str,
    pairs: Mapping[str, str],
) -> dict[str, Any]:
    """Default the currency and fill base-currency amounts.

    ``pairs`` maps a raw amount field to its base-currency counterpart. A base
    amount that was not supplied is copied from the raw amount only when the
    record is already in the base currency.
    """
    normalized = dict(values)
    if not normalized.get("currency_code"):
        normalized["currency_code"] = base_currency

    if normalized["currency_code"] == base_currency:
        for raw_field, base_field in pairs.items():
            if normalized.get(base_field) is None and normalized.get(raw_field) is not None:
                normalized[base_field] = normalized[raw_field]
    return normalized


def ensure_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_reminder_time(value: str) -> time:
    match = _REMINDER_TIME_RE.match(value.strip())
    if match is None:
        raise ValueError(f"invalid reminder time {value!r}, expected HH:MM")
    return time(hour=int(match.group(1)), minute=int(match.group(2)))


def normalize_reminder_time(value: Any) -> str | None:
    value = blank_to_none(value)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("reminder time must be a string in HH:MM format")
    return parse_reminder_time(value).strftime("%H:%M")


def combine_reminder_datetime(reminder_date: date, reminder_time: str, tz_name: str = "UTC") -> datetime:
    """Combine a local reminder date and HH:MM time into a UTC instant."""
    try:
        zone = ZoneInfo(tz_name)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"unknown reminder timezone {tz_name!r}") from exc
    local = datetime.combine(reminder_date, parse_reminder_time(reminder_time), tzinfo=zone)
    return local.astimezone(timezone.utc)
