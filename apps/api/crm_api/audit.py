from __future__ import annotations

import logging
import math
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import Select, String, cast, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from crm_api.context import get_correlation_id
from crm_api.core.errors import ConflictIgnorable
from crm_api.crm.changes import ChangeRecord, to_jsonable
from crm_api.crm.schemas import AuditEntryRead, AuditPage, Pagination
from crm_api.metrics import observe_audit_entry, observe_audit_write_failure
from crm_api.models.audit import AuditLogEntry

logger = logging.getLogger("crm_api.audit")

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 200


@dataclass
class AuditSearch:
    start_date: date | None = None
    end_date: date | None = None
    action: str | None = None
    user_name: str | None = None
    q: str | None = None


def _persist(session: Session, entry: AuditLogEntry) -> None:
    try:
        session.add(entry)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise ConflictIgnorable(f"audit entry not written: {exc}") from exc


def record(
    session: Session,
    *,
    entity_type: str,
    entity_id: uuid.UUID,
    actor_id: uuid.UUID,
    actor_name: str | None,
    action: str,
    changes: Sequence[ChangeRecord],
) -> AuditLogEntry | None:
    """Write one audit entry for a committed business write.

    Returns ``None`` without writing when an update changed nothing. Store
    failures are logged and swallowed so the caller's write stands.
    """
    if not changes and action == "update":
        return None

    entry = AuditLogEntry(
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        actor_name=actor_name,
        action=action,
        changes=[to_jsonable(change.as_dict()) for change in changes],
        correlation_id=get_correlation_id(),
    )
    try:
        _persist(session, entry)
    except ConflictIgnorable as exc:
        observe_audit_write_failure(entity_type)
        logger.warning(
            "audit.write_failed",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action,
                "error": str(exc),
            },
        )
        return None

    observe_audit_entry(entity_type, action)
    logger.info(
        "audit.recorded",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "actor_id": str(actor_id),
            "action": action,
            "change_count": len(changes),
        },
    )
    return entry


def has_entries(session: Session, entity_type: str, entity_id: uuid.UUID) -> bool:
    stmt = select(AuditLogEntry.id).where(
        AuditLogEntry.entity_type == entity_type,
        AuditLogEntry.entity_id == entity_id,
    )
    return session.scalar(stmt.limit(1)) is not None


def _paginate(session: Session, stmt: Select[tuple[AuditLogEntry]], page: int, limit: int) -> AuditPage:
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_LIMIT)
    total = session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    rows = session.scalars(
        stmt.order_by(AuditLogEntry.timestamp.desc(), AuditLogEntry.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return AuditPage(
        audit_logs=[AuditEntryRead.model_validate(row) for row in rows],
        pagination=Pagination(total=total, page=page, pages=math.ceil(total / limit), limit=limit),
    )


def list_for_entity(
    session: Session,
    entity_type: str,
    entity_id: uuid.UUID,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
) -> AuditPage:
    stmt = select(AuditLogEntry).where(
        AuditLogEntry.entity_type == entity_type,
        AuditLogEntry.entity_id == entity_id,
    )
    return _paginate(session, stmt, page, limit)


def list_for_type(
    session: Session,
    entity_type: str,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
) -> AuditPage:
    return _paginate(session, select(AuditLogEntry).where(AuditLogEntry.entity_type == entity_type), page, limit)


def list_for_actor(
    session: Session,
    entity_type: str,
    actor_id: uuid.UUID,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
) -> AuditPage:
    stmt = select(AuditLogEntry).where(
        AuditLogEntry.entity_type == entity_type,
        AuditLogEntry.actor_id == actor_id,
    )
    return _paginate(session, stmt, page, limit)


def search(
    session: Session,
    entity_type: str,
    filters: AuditSearch,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
) -> AuditPage:
    stmt = select(AuditLogEntry).where(AuditLogEntry.entity_type == entity_type)
    if filters.start_date is not None:
        start = datetime.combine(filters.start_date, time.min, tzinfo=timezone.utc)
        stmt = stmt.where(AuditLogEntry.timestamp >= start)
    if filters.end_date is not None:
        # end date is inclusive
        end = datetime.combine(filters.end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
        stmt = stmt.where(AuditLogEntry.timestamp < end)
    if filters.action:
        stmt = stmt.where(AuditLogEntry.action == filters.action)
    if filters.user_name:
        stmt = stmt.where(AuditLogEntry.actor_name.ilike(f"%{filters.user_name}%"))
    if filters.q:
        pattern = f"%{filters.q}%"
        stmt = stmt.where(
            or_(
                AuditLogEntry.actor_name.ilike(pattern),
                cast(AuditLogEntry.changes, String).ilike(pattern),
            )
        )
    return _paginate(session, stmt, page, limit)
