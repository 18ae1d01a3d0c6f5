from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from crm_api.crm.normalization import (
    combine_reminder_datetime,
    contact_label,
    ensure_utc,
    fold_legacy_contact,
    normalize_amounts,
    normalize_reminder_time,
    project_contact_legacy,
    strip_thousands,
)
from crm_api.crm.schemas import ContactCreate, LeadCreate, TaskCreate


def test_strip_thousands_removes_separators() -> None:
    assert strip_thousands("1,234,567.50") == "1234567.50"
    assert strip_thousands(Decimal("10")) == Decimal("10")
    with pytest.raises(ValueError):
        strip_thousands(" , ")


def test_amount_fields_accept_thousands_separators() -> None:
    lead = LeadCreate(is_manual_entry=True, contact_person_name="Sam", company="Beta", value="12,500.75")
    assert lead.value == Decimal("12500.75")


def test_legacy_flat_contact_is_folded_into_structured_fields() -> None:
    folded = fold_legacy_contact({"company": "Old Co", "email": "hello@old.test", "phone": "555", "name": "Bob"})

    assert folded["company_name"] == "Old Co"
    assert folded["company_email"] == "hello@old.test"
    assert folded["phone_number"] == "555"
    assert folded["contact_persons"] == [{"name": "Bob", "email": "hello@old.test", "phone_number": "555"}]
    assert "company" not in folded and "name" not in folded


def test_structured_fields_win_over_legacy_values() -> None:
    dto = ContactCreate.model_validate(
        {
            "company": "Legacy Name",
            "company_name": "Structured Name",
            "company_email": "a@b.test",
            "phone_number": "1",
        }
    )
    assert dto.company_name == "Structured Name"


def test_legacy_projection_and_label_use_first_person() -> None:
    persons = [{"name": "Ann"}, {"name": "Ben"}]

    assert project_contact_legacy("Acme", "info@acme.test", "123", persons) == {
        "name": "Ann",
        "email": "info@acme.test",
        "phone": "123",
        "company": "Acme",
    }
    assert contact_label("Acme", persons) == "Ann"
    assert contact_label("Acme", []) == "Acme"


def test_normalize_amounts_defaults_currency_and_copies_base_amount() -> None:
    values = normalize_amounts({"currency_code": None, "value": Decimal("10"), "base_value": None}, base_currency="AUD", pairs={"value": "base_value"})
    assert values["currency_code"] == "AUD"
    assert values["base_value"] == Decimal("10")

    foreign = normalize_amounts({"currency_code": "USD", "value": Decimal("10"), "base_value": None}, base_currency="AUD", pairs={"value": "base_value"})
    assert foreign["base_value"] is None


def test_reminder_time_is_normalized_to_hh_mm() -> None:
    assert normalize_reminder_time("9:05") == "09:05"
    assert normalize_reminder_time("  ") is None
    assert normalize_reminder_time(None) is None
    with pytest.raises(ValueError):
        normalize_reminder_time("24:00")


def test_task_schema_treats_blank_reminder_fields_as_unset() -> None:
    dto = TaskCreate(title="Call", assigned_to="Jane", due_date=date(2026, 5, 1), reminder_date="", reminder_time="")
    assert dto.reminder_date is None
    assert dto.reminder_time is None


def test_combine_reminder_datetime_returns_utc_instant() -> None:
    instant = combine_reminder_datetime(date(2026, 5, 1), "08:30", "UTC")
    assert instant == datetime(2026, 5, 1, 8, 30, tzinfo=timezone.utc)

    with pytest.raises(ValueError):
        combine_reminder_datetime(date(2026, 5, 1), "08:30", "Not/AZone")


def test_ensure_utc_marks_naive_values_as_utc() -> None:
    assert ensure_utc(datetime(2026, 1, 1, 12, 0)) == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert ensure_utc(None) is None
