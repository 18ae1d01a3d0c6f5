from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, func, inspect, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from crm_api import audit
from crm_api.core.config import get_settings
from crm_api.core.errors import DependencyError, FieldError, NotFoundError, ValidationError
from crm_api.crm.attachments import AttachmentManager, UploadedFile
from crm_api.crm.changes import (
    ChangeRecord,
    attachment_removed_change,
    attachments_added_change,
    created_change,
    deleted_change,
    detect_changes,
    snapshot,
)
from crm_api.crm.models import CRMChargeable, CRMContact, CRMLead, CRMTask
from crm_api.crm.normalization import contact_label, normalize_amounts, project_contact_legacy
from crm_api.crm.reminders import ReminderEngine
from crm_api.crm.schemas import (
    AttachmentRead,
    AuditPage,
    ChargeableCreate,
    ChargeableRead,
    ChargeableUpdate,
    ContactCreate,
    ContactLegacyView,
    ContactRead,
    ContactUpdate,
    DropdownOption,
    LeadCreate,
    LeadRead,
    LeadUpdate,
    PipelineLead,
    PipelineStageSummary,
    TaskCreate,
    TaskRead,
    TaskUpdate,
)
from crm_api.models.user import User

logger = logging.getLogger("crm_api.crm")

UNKNOWN_CONTACT = "Unknown Contact"
DEFAULT_SORT = "-created_at"
REMINDER_FIELDS = ("reminder_date", "reminder_time")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ActorUser:
    """The caller of a write, with the owner id already resolved at the API edge."""

    owner_id: uuid.UUID
    user_id: uuid.UUID | None = None
    name: str | None = None
    correlation_id: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or "System"


@dataclass
class ListQuery:
    page: int = 1
    limit: int = 50
    sort: str = DEFAULT_SORT

    @property
    def offset(self) -> int:
        return (max(self.page, 1) - 1) * self.limit


def _row_values(row: Any) -> dict[str, Any]:
    return {attr.key: getattr(row, attr.key) for attr in inspect(row).mapper.column_attrs}


def _attachments(items: Sequence[dict[str, Any]] | None) -> list[AttachmentRead]:
    return [AttachmentRead.model_validate(item) for item in items or []]


def _reject_nulls(payload: dict[str, Any], fields: Sequence[str]) -> None:
    errors = [FieldError(field=name, message=f"{name} cannot be empty") for name in fields if name in payload and payload[name] is None]
    if errors:
        raise ValidationError(errors)


def _fill_base_amounts(record: Any, payload: dict[str, Any], pairs: dict[str, str]) -> None:
    """Apply the creation-time base amount defaults to the record as it will look after ``payload``."""
    base_currency = get_settings().base_currency
    merged = {field: payload.get(field, getattr(record, field)) for field in ("currency_code", *pairs, *pairs.values())}
    if merged["currency_code"] != base_currency:
        return
    for raw_field, base_field in pairs.items():
        if raw_field in payload and base_field not in payload:
            merged[base_field] = None
    normalized = normalize_amounts(merged, base_currency=base_currency, pairs=pairs)
    for base_field in pairs.values():
        if base_field not in payload and normalized[base_field] != getattr(record, base_field):
            payload[base_field] = normalized[base_field]


class _EntityService:
    entity_type = ""
    entity_label = ""
    model: Any = None
    sortable: frozenset[str] = frozenset({"created_at", "updated_at"})

    def _get(self, session: Session, entity_id: uuid.UUID) -> Any:
        row = session.get(self.model, entity_id)
        if row is None:
            raise NotFoundError(f"{self.entity_type} not found")
        return row

    def _commit(self, session: Session) -> None:
        try:
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(
                "crm.store_failed",
                extra={"entity_type": self.entity_type, "error": str(exc)},
            )
            raise DependencyError(f"{self.entity_type} write failed: {exc}") from exc

    def _record(self, session: Session, actor: ActorUser, entity_id: uuid.UUID, action: str, changes: Sequence[Any]) -> None:
        audit.record(
            session,
            entity_type=self.entity_type,
            entity_id=entity_id,
            actor_id=actor.owner_id,
            actor_name=actor.display_name,
            action=action,
            changes=changes,
        )

    def _sorted(self, stmt: Select, sort: str | None) -> Select:
        sort = sort or DEFAULT_SORT
        descending = sort.startswith("-")
        field = sort.lstrip("-+")
        if field not in self.sortable:
            raise ValidationError.single("sort", f"cannot sort by {field}")
        column = getattr(self.model, field)
        return stmt.order_by(column.desc() if descending else column.asc(), self.model.id.asc())

    def _page(self, session: Session, stmt: Select, query: ListQuery) -> list[Any]:
        stmt = self._sorted(stmt, query.sort).offset(query.offset).limit(query.limit)
        return list(session.scalars(stmt).all())

    def _contact_labels(self, session: Session, contact_ids: set[uuid.UUID]) -> dict[uuid.UUID, str]:
        if not contact_ids:
            return {}
        rows = session.execute(
            select(CRMContact.id, CRMContact.company_name, CRMContact.contact_persons).where(CRMContact.id.in_(contact_ids))
        ).all()
        return {row.id: contact_label(row.company_name, row.contact_persons) or row.company_name for row in rows}

    def _resolve_contact_label(self, session: Session):  # type: ignore[no-untyped-def]
        def resolve(field: str, raw: str) -> str | None:
            if field != "contact_id":
                return None
            return self._contact_labels(session, {uuid.UUID(raw)}).get(uuid.UUID(raw))

        return resolve

    def _require_contact(self, session: Session, contact_id: uuid.UUID) -> CRMContact:
        contact = session.get(CRMContact, contact_id)
        if contact is None:
            raise ValidationError.single("contact_id", "referenced contact does not exist")
        return contact

    def _apply_update(self, session: Session, actor: ActorUser, row: Any, payload: dict[str, Any]) -> None:
        before = snapshot(self.entity_type, row)
        for key, value in payload.items():
            setattr(row, key, value)
        after = snapshot(self.entity_type, row)
        changes = detect_changes(self.entity_type, before, after, self._resolve_contact_label(session))
        if payload:
            row.row_version = row.row_version + 1
        self._commit(session)
        self._record(session, actor, row.id, "update", changes)

    def add_attachments(
        self,
        session: Session,
        actor: ActorUser,
        manager: AttachmentManager,
        entity_id: uuid.UUID,
        files: Sequence[UploadedFile],
    ) -> list[AttachmentRead]:
        updated = manager.attach(session, self.model, entity_id, files, resource=self.entity_type)
        self._record(session, actor, entity_id, "update", attachments_added_change(len(files)))
        return _attachments(updated)

    def remove_attachment(
        self,
        session: Session,
        actor: ActorUser,
        manager: AttachmentManager,
        entity_id: uuid.UUID,
        attachment_id: str,
    ) -> list[AttachmentRead]:
        removed, remaining = manager.detach(session, self.model, entity_id, attachment_id)
        self._record(session, actor, entity_id, "update", attachment_removed_change(removed.get("file_name", attachment_id)))
        return _attachments(remaining)

    def attachment_download_url(
        self,
        session: Session,
        manager: AttachmentManager,
        entity_id: uuid.UUID,
        attachment_id: str,
    ) -> str:
        return manager.download_url(manager.get(session, self.model, entity_id, attachment_id))

    def _delete(self, session: Session, actor: ActorUser, manager: AttachmentManager, row: Any, blobs: list[dict[str, Any]]) -> None:
        entity_id = row.id
        session.delete(row)
        self._commit(session)
        manager.purge(blobs)
        self._record(session, actor, entity_id, "delete", deleted_change())
        logger.info(
            "crm.entity_deleted",
            extra={"entity_type": self.entity_type, "entity_id": str(entity_id), "file_count": len(blobs)},
        )


class ContactService(_EntityService):
    entity_type = "contact"
    entity_label = "Contact"
    model = CRMContact
    sortable = frozenset({"created_at", "updated_at", "company_name", "contact_type"})
    required_fields = ("contact_type", "company_name", "company_email", "phone_number", "company_address", "contact_persons")

    def create_contact(self, session: Session, actor: ActorUser, dto: ContactCreate) -> ContactRead:
        contact = CRMContact(owner_id=actor.owner_id, **dto.model_dump())
        session.add(contact)
        self._commit(session)
        self._record(session, actor, contact.id, "create", created_change(self.entity_label))
        return self._to_read(contact)

    def list_contacts(self, session: Session, filters: dict[str, Any], query: ListQuery) -> list[ContactRead]:
        stmt = select(CRMContact)
        if filters.get("contact_type"):
            stmt = stmt.where(CRMContact.contact_type == filters["contact_type"])
        if filters.get("q"):
            pattern = f"%{filters['q']}%"
            stmt = stmt.where(or_(CRMContact.company_name.ilike(pattern), CRMContact.company_email.ilike(pattern)))
        return [self._to_read(item) for item in self._page(session, stmt, query)]

    def get_contact(self, session: Session, contact_id: uuid.UUID) -> ContactRead:
        return self._to_read(self._get(session, contact_id))

    def update_contact(self, session: Session, actor: ActorUser, contact_id: uuid.UUID, dto: ContactUpdate) -> ContactRead:
        contact = self._get(session, contact_id)
        payload = dto.model_dump(exclude_unset=True)
        _reject_nulls(payload, self.required_fields)
        self._apply_update(session, actor, contact, payload)
        return self._to_read(contact)

    def delete_contact(self, session: Session, actor: ActorUser, manager: AttachmentManager, contact_id: uuid.UUID) -> None:
        contact = self._get(session, contact_id)
        blobs = list(contact.attachments or [])
        if contact.company_logo:
            blobs.append(contact.company_logo)
        self._delete(session, actor, manager, contact, blobs)

    def set_logo(
        self,
        session: Session,
        actor: ActorUser,
        manager: AttachmentManager,
        contact_id: uuid.UUID,
        file: UploadedFile,
    ) -> ContactRead:
        manager.set_logo(session, CRMContact, contact_id, file, resource=self.entity_type)
        self._record(session, actor, contact_id, "update", [_logo_change("Logo updated")])
        return self.get_contact(session, contact_id)

    def clear_logo(self, session: Session, actor: ActorUser, manager: AttachmentManager, contact_id: uuid.UUID) -> ContactRead:
        manager.clear_logo(session, CRMContact, contact_id)
        self._record(session, actor, contact_id, "update", [_logo_change("Logo removed")])
        return self.get_contact(session, contact_id)

    def _to_read(self, contact: CRMContact) -> ContactRead:
        persons = contact.contact_persons or []
        return ContactRead(
            id=contact.id,
            owner_id=contact.owner_id,
            contact_type=contact.contact_type,
            company_name=contact.company_name,
            company_email=contact.company_email,
            phone_number=contact.phone_number,
            company_address=contact.company_address or {},
            additional_details=contact.additional_details,
            website=contact.website,
            contact_persons=persons,
            company_logo=AttachmentRead.model_validate(contact.company_logo) if contact.company_logo else None,
            attachments=_attachments(contact.attachments),
            display_name=contact_label(contact.company_name, persons) or contact.company_name,
            legacy=ContactLegacyView(
                **project_contact_legacy(contact.company_name, contact.company_email, contact.phone_number, persons)
            ),
            row_version=contact.row_version,
            created_at=contact.created_at,
            updated_at=contact.updated_at,
        )


def _logo_change(new_value: str) -> ChangeRecord:
    return ChangeRecord(field="company_logo", old_value="Previous logo", new_value=new_value)


class LeadService(_EntityService):
    entity_type = "lead"
    entity_label = "Lead"
    model = CRMLead
    sortable = frozenset({"created_at", "updated_at", "company", "stage", "priority", "value", "country"})
    required_fields = ("company", "country", "value", "subscription", "currency_code", "stage", "priority", "is_manual_entry")
    amount_pairs = {"value": "base_value", "subscription": "base_subscription"}

    def create_lead(self, session: Session, actor: ActorUser, dto: LeadCreate) -> LeadRead:
        values = dto.model_dump()
        contact = self._validate_contact_reference(
            session,
            is_manual_entry=values["is_manual_entry"],
            contact_id=values["contact_id"],
            contact_person_name=values["contact_person_name"],
        )
        if not values.get("company") and contact is not None:
            values["company"] = contact.company_name
        if not values.get("company"):
            raise ValidationError.single("company", "company is required")
        if values["is_manual_entry"]:
            values["contact_id"] = None

        values = normalize_amounts(values, base_currency=get_settings().base_currency, pairs=self.amount_pairs)
        lead = CRMLead(owner_id=actor.owner_id, **values)
        session.add(lead)
        self._commit(session)
        self._record(session, actor, lead.id, "create", created_change(self.entity_label))
        return self._to_read_model(session, lead)

    def list_leads(self, session: Session, filters: dict[str, Any], query: ListQuery) -> list[LeadRead]:
        stmt = select(CRMLead)
        for key in ("stage", "priority", "country", "currency_code"):
            if filters.get(key):
                stmt = stmt.where(getattr(CRMLead, key) == filters[key])
        if filters.get("q"):
            pattern = f"%{filters['q']}%"
            stmt = stmt.where(or_(CRMLead.company.ilike(pattern), CRMLead.contact_person_name.ilike(pattern)))
        leads = self._page(session, stmt, query)
        labels = self._contact_labels(session, {item.contact_id for item in leads if item.contact_id})
        return [self._to_read(item, labels) for item in leads]

    def get_lead(self, session: Session, lead_id: uuid.UUID) -> LeadRead:
        return self._to_read_model(session, self._get(session, lead_id))

    def update_lead(self, session: Session, actor: ActorUser, lead_id: uuid.UUID, dto: LeadUpdate) -> LeadRead:
        lead = self._get(session, lead_id)
        payload = dto.model_dump(exclude_unset=True)
        _reject_nulls(payload, self.required_fields)

        is_manual = payload.get("is_manual_entry", lead.is_manual_entry)
        if {"is_manual_entry", "contact_id", "contact_person_name"} & payload.keys():
            self._validate_contact_reference(
                session,
                is_manual_entry=is_manual,
                contact_id=payload.get("contact_id", lead.contact_id),
                contact_person_name=payload.get("contact_person_name", lead.contact_person_name),
            )
        if is_manual and "is_manual_entry" in payload:
            payload["contact_id"] = None

        _fill_base_amounts(lead, payload, self.amount_pairs)

        self._apply_update(session, actor, lead, payload)
        return self._to_read_model(session, lead)

    def delete_lead(self, session: Session, actor: ActorUser, manager: AttachmentManager, lead_id: uuid.UUID) -> None:
        lead = self._get(session, lead_id)
        self._delete(session, actor, manager, lead, list(lead.attachments or []))

    def pipeline_summary(self, session: Session) -> list[PipelineStageSummary]:
        totals = session.execute(
            select(CRMLead.stage, func.coalesce(func.sum(CRMLead.value), 0), func.count(CRMLead.id))
            .group_by(CRMLead.stage)
            .order_by(CRMLead.stage.asc())
        ).all()
        members: dict[str, list[PipelineLead]] = {}
        for row in session.execute(
            select(CRMLead.id, CRMLead.company, CRMLead.value, CRMLead.stage).order_by(CRMLead.created_at.desc())
        ).all():
            members.setdefault(row.stage, []).append(PipelineLead(id=row.id, company=row.company, value=row.value))
        return [
            PipelineStageSummary(stage=stage, total_value=Decimal(str(total)), count=count, leads=members.get(stage, []))
            for stage, total, count in totals
        ]

    def _validate_contact_reference(
        self,
        session: Session,
        *,
        is_manual_entry: bool,
        contact_id: uuid.UUID | None,
        contact_person_name: str | None,
    ) -> CRMContact | None:
        if is_manual_entry:
            if not contact_person_name:
                raise ValidationError.single("contact_person_name", "contact person name is required for manual entries")
            return None
        if contact_id is None:
            raise ValidationError.single("contact_id", "contact is required unless the lead is a manual entry")
        return self._require_contact(session, contact_id)

    def _to_read_model(self, session: Session, lead: CRMLead) -> LeadRead:
        labels = self._contact_labels(session, {lead.contact_id} if lead.contact_id else set())
        return self._to_read(lead, labels)

    def _to_read(self, lead: CRMLead, labels: dict[uuid.UUID, str]) -> LeadRead:
        if lead.is_manual_entry and lead.contact_person_name:
            contact_name = lead.contact_person_name
        elif lead.contact_id is not None and lead.contact_id in labels:
            contact_name = labels[lead.contact_id]
        else:
            contact_name = lead.contact_person_name or UNKNOWN_CONTACT
        return LeadRead.model_validate({**_row_values(lead), "contact_name": contact_name})


class TaskService(_EntityService):
    entity_type = "task"
    entity_label = "Task"
    model = CRMTask
    sortable = frozenset({"created_at", "updated_at", "due_date", "priority", "status", "title"})
    required_fields = ("title", "assigned_to", "status", "priority", "due_date")

    def __init__(self, reminders: ReminderEngine | None = None) -> None:
        self.reminders = reminders or ReminderEngine()

    def create_task(self, session: Session, actor: ActorUser, dto: TaskCreate) -> TaskRead:
        task = CRMTask(owner_id=actor.owner_id, **dto.model_dump())
        session.add(task)
        session.flush()
        try:
            self.reminders.sync_for_task(session, task, owner_id=actor.owner_id)
        except ValidationError:
            session.rollback()
            raise
        self._commit(session)
        self._record(session, actor, task.id, "create", created_change(self.entity_label))
        return TaskRead.model_validate(task)

    def list_tasks(self, session: Session, filters: dict[str, Any], query: ListQuery) -> list[TaskRead]:
        stmt = select(CRMTask)
        for key in ("status", "priority", "assigned_to"):
            if filters.get(key):
                stmt = stmt.where(getattr(CRMTask, key) == filters[key])
        if filters.get("q"):
            pattern = f"%{filters['q']}%"
            stmt = stmt.where(or_(CRMTask.title.ilike(pattern), CRMTask.related_to.ilike(pattern)))
        return [TaskRead.model_validate(item) for item in self._page(session, stmt, query)]

    def list_for_assignee(self, session: Session, assignee_name: str | None, query: ListQuery) -> list[TaskRead]:
        if not assignee_name:
            return []
        return self.list_tasks(session, {"assigned_to": assignee_name}, query)

    def get_task(self, session: Session, task_id: uuid.UUID) -> TaskRead:
        return TaskRead.model_validate(self._get(session, task_id))

    def update_task(self, session: Session, actor: ActorUser, task_id: uuid.UUID, dto: TaskUpdate) -> TaskRead:
        task = self._get(session, task_id)
        payload = dto.model_dump(exclude_unset=True)
        _reject_nulls(payload, self.required_fields)
        cleared = any(key in payload and payload[key] is None for key in REMINDER_FIELDS)

        before = snapshot(self.entity_type, task)
        for key, value in payload.items():
            setattr(task, key, value)
        if payload:
            task.row_version = task.row_version + 1
        try:
            self.reminders.sync_for_task(session, task, owner_id=task.owner_id, cleared=cleared)
        except ValidationError:
            session.rollback()
            raise
        changes = detect_changes(self.entity_type, before, snapshot(self.entity_type, task))
        self._commit(session)
        self._record(session, actor, task.id, "update", changes)
        return TaskRead.model_validate(task)

    def delete_task(self, session: Session, actor: ActorUser, manager: AttachmentManager, task_id: uuid.UUID) -> None:
        task = self._get(session, task_id)
        self.reminders.delete_for_task(session, task.id)
        self._delete(session, actor, manager, task, list(task.attachments or []))

    def user_options(self, session: Session) -> list[DropdownOption]:
        rows = session.execute(select(User.id, User.name).order_by(User.name.asc())).all()
        return [DropdownOption(id=row.id, name=row.name) for row in rows]

    def company_options(self, session: Session) -> list[DropdownOption]:
        rows = session.execute(select(CRMContact.id, CRMContact.company_name).order_by(CRMContact.company_name.asc())).all()
        return [DropdownOption(id=row.id, name=row.company_name) for row in rows]


class ChargeableService(_EntityService):
    entity_type = "chargeable"
    entity_label = "Chargeable"
    model = CRMChargeable
    sortable = frozenset({"created_at", "updated_at", "quote_send_date", "customer_name", "amount"})
    required_fields = (
        "quote_send_date",
        "customer_name",
        "chargeable_type",
        "quotation_sent",
        "po_received",
        "invoice_sent",
        "payment_received",
        "follow_ups",
        "amount",
        "currency_code",
    )
    amount_pairs = {"amount": "base_amount"}

    def create_chargeable(self, session: Session, actor: ActorUser, dto: ChargeableCreate) -> ChargeableRead:
        values = dto.model_dump()
        if values.get("contact_id") is not None:
            self._require_contact(session, values["contact_id"])
        values = normalize_amounts(values, base_currency=get_settings().base_currency, pairs=self.amount_pairs)
        chargeable = CRMChargeable(owner_id=actor.owner_id, created_by=actor.display_name, **values)
        session.add(chargeable)
        self._commit(session)
        self._record(session, actor, chargeable.id, "create", created_change(self.entity_label))
        return ChargeableRead.model_validate(chargeable)

    def list_chargeables(self, session: Session, filters: dict[str, Any], query: ListQuery) -> list[ChargeableRead]:
        stmt = select(CRMChargeable)
        for key in ("payment_received", "invoice_sent", "currency_code"):
            if filters.get(key):
                stmt = stmt.where(getattr(CRMChargeable, key) == filters[key])
        if filters.get("q"):
            stmt = stmt.where(self._text_match(filters["q"]))
        return [ChargeableRead.model_validate(item) for item in self._page(session, stmt, query)]

    def get_chargeable(self, session: Session, chargeable_id: uuid.UUID) -> ChargeableRead:
        return ChargeableRead.model_validate(self._get(session, chargeable_id))

    def update_chargeable(
        self,
        session: Session,
        actor: ActorUser,
        chargeable_id: uuid.UUID,
        dto: ChargeableUpdate,
    ) -> ChargeableRead:
        chargeable = self._get(session, chargeable_id)
        payload = dto.model_dump(exclude_unset=True)
        _reject_nulls(payload, self.required_fields)
        if payload.get("contact_id") is not None:
            self._require_contact(session, payload["contact_id"])

        _fill_base_amounts(chargeable, payload, self.amount_pairs)
        if payload:
            payload["updated_by"] = actor.display_name
        self._apply_update(session, actor, chargeable, payload)
        return ChargeableRead.model_validate(chargeable)

    def delete_chargeable(
        self,
        session: Session,
        actor: ActorUser,
        manager: AttachmentManager,
        chargeable_id: uuid.UUID,
    ) -> None:
        chargeable = self._get(session, chargeable_id)
        self._delete(session, actor, manager, chargeable, list(chargeable.attachments or []))

    def search(self, session: Session, term: str | None, query: ListQuery) -> list[ChargeableRead]:
        if not term or not term.strip():
            raise ValidationError.single("term", "search term is required")
        stmt = select(CRMChargeable).where(self._text_match(term.strip()))
        return [ChargeableRead.model_validate(item) for item in self._page(session, stmt, query)]

    def list_for_customer(self, session: Session, customer_name: str, query: ListQuery) -> list[ChargeableRead]:
        stmt = select(CRMChargeable).where(func.lower(CRMChargeable.customer_name) == customer_name.strip().lower())
        return [ChargeableRead.model_validate(item) for item in self._page(session, stmt, query)]

    def customer_options(self, session: Session) -> list[str]:
        names = set(session.scalars(select(CRMChargeable.customer_name).distinct()).all())
        names.update(session.scalars(select(CRMContact.company_name).distinct()).all())
        return sorted((name for name in names if name), key=str.lower)

    def _text_match(self, term: str):  # type: ignore[no-untyped-def]
        pattern = f"%{term}%"
        return or_(CRMChargeable.customer_name.ilike(pattern), CRMChargeable.chargeable_type.ilike(pattern))


class AuditService:
    """Audit reads for every entity type, newest first."""

    models: dict[str, Any] = {
        "contact": CRMContact,
        "lead": CRMLead,
        "task": CRMTask,
        "chargeable": CRMChargeable,
    }

    def for_entity(self, session: Session, entity_type: str, entity_id: uuid.UUID, *, page: int, limit: int) -> AuditPage:
        model = self.models.get(entity_type)
        if model is None:
            raise NotFoundError(f"unknown entity type {entity_type}")
        if session.get(model, entity_id) is None and not audit.has_entries(session, entity_type, entity_id):
            raise NotFoundError(f"{entity_type} not found")
        return audit.list_for_entity(session, entity_type, entity_id, page=page, limit=limit)

    def for_type(self, session: Session, entity_type: str, *, page: int, limit: int) -> AuditPage:
        return audit.list_for_type(session, entity_type, page=page, limit=limit)

    def for_actor(self, session: Session, entity_type: str, actor_id: uuid.UUID, *, page: int, limit: int) -> AuditPage:
        return audit.list_for_actor(session, entity_type, actor_id, page=page, limit=limit)

    def search(self, session: Session, entity_type: str, filters: audit.AuditSearch, *, page: int, limit: int) -> AuditPage:
        if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
            raise ValidationError.single("start_date", "start_date must not be after end_date")
        return audit.search(session, entity_type, filters, page=page, limit=limit)
