from __future__ import annotations

from collections.abc import Generator

import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from crm_api.core.celery_app import celery_app
from crm_api.core.database import Base, drop_legacy_indexes
from crm_api.workers.reminder_scan import scan_due_reminders


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


def test_legacy_indexes_are_dropped_once_and_missing_ones_ignored(engine: Engine) -> None:
    with engine.begin() as connection:
        connection.execute(text("CREATE INDEX ix_users_username ON users (name)"))

    drop_legacy_indexes(engine)
    drop_legacy_indexes(engine)

    names = {index["name"] for index in inspect(engine).get_indexes("users")}
    assert "ix_users_username" not in names


def test_reminder_scan_is_scheduled_on_beat() -> None:
    schedule = celery_app.conf.beat_schedule["scan-due-reminders"]

    assert schedule["task"] == scan_due_reminders.name == "crm_api.reminders.scan"
    assert schedule["schedule"] > 0
