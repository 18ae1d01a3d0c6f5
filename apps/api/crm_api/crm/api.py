from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from crm_api import audit
from crm_api.context import get_correlation_id
from crm_api.core.auth import AuthUser, get_current_user as get_auth_user
from crm_api.core.config import get_settings
from crm_api.core.database import get_db
from crm_api.crm.attachments import AttachmentManager, UploadedFile
from crm_api.crm.notifications import NotificationGateway, parse_notification_id
from crm_api.crm.reminders import ReminderEngine
from crm_api.crm.schemas import (
    AttachmentRead,
    AuditAction,
    AuditPage,
    ChargeableCreate,
    ChargeableRead,
    ChargeableUpdate,
    ContactCreate,
    ContactRead,
    ContactUpdate,
    DropdownOption,
    LeadCreate,
    LeadRead,
    LeadUpdate,
    NotificationRead,
    PipelineStageSummary,
    ReminderRead,
    TaskCreate,
    TaskRead,
    TaskUpdate,
)
from crm_api.crm.service import (
    ActorUser,
    AuditService,
    ChargeableService,
    ContactService,
    LeadService,
    ListQuery,
    TaskService,
    _EntityService,
)
from crm_api.storage import BlobStore, get_blob_store

contacts_router = APIRouter(prefix="/api/contacts", tags=["crm.contacts"])
leads_router = APIRouter(prefix="/api/leads", tags=["crm.leads"])
tasks_router = APIRouter(prefix="/api/tasks", tags=["crm.tasks"])
chargeables_router = APIRouter(prefix="/api/chargeables", tags=["crm.chargeables"])

reminder_engine = ReminderEngine()
notification_gateway = NotificationGateway(reminder_engine)
contact_service = ContactService()
lead_service = LeadService()
task_service = TaskService(reminder_engine)
chargeable_service = ChargeableService()
audit_service = AuditService()


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(getattr(request.state, "context", None), "request_id", None)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def get_current_user(request: Request, auth_user: AuthUser = Depends(get_auth_user)) -> ActorUser:
    correlation_id = get_correlation_id() or getattr(getattr(request.state, "context", None), "request_id", None)
    owner_id = auth_user.user_id or uuid.UUID(get_settings().default_actor_id)
    return ActorUser(
        owner_id=owner_id,
        user_id=auth_user.user_id,
        name=auth_user.name,
        correlation_id=correlation_id,
    )


def get_attachment_manager(store: BlobStore = Depends(get_blob_store)) -> AttachmentManager:
    return AttachmentManager(store)


def list_query(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    sort: str = Query(default="-created_at"),
) -> ListQuery:
    return ListQuery(page=page, limit=limit, sort=sort)


def _uploaded(files: list[UploadFile]) -> list[UploadedFile]:
    return [
        UploadedFile(file_name=item.filename or "file", content=item.file.read(), content_type=item.content_type)
        for item in files
    ]


def _deleted(entity_id: uuid.UUID) -> dict[str, Any]:
    return {"id": str(entity_id), "deleted": True}


def _register_attachment_routes(router: APIRouter, service: _EntityService) -> None:
    @router.post(
        "/{entity_id}/attachments",
        response_model=list[AttachmentRead],
        status_code=status.HTTP_201_CREATED,
        name=f"add_{service.entity_type}_attachments",
    )
    def add_attachments(
        entity_id: uuid.UUID,
        files: list[UploadFile] = File(...),
        db: Session = Depends(get_db),
        user: ActorUser = Depends(get_current_user),
        manager: AttachmentManager = Depends(get_attachment_manager),
    ) -> list[AttachmentRead]:
        return service.add_attachments(db, user, manager, entity_id, _uploaded(files))

    @router.get(
        "/{entity_id}/attachments/{attachment_id}",
        response_class=RedirectResponse,
        name=f"download_{service.entity_type}_attachment",
    )
    def download_attachment(
        entity_id: uuid.UUID,
        attachment_id: str,
        db: Session = Depends(get_db),
        user: ActorUser = Depends(get_current_user),
        manager: AttachmentManager = Depends(get_attachment_manager),
    ) -> RedirectResponse:
        url = service.attachment_download_url(db, manager, entity_id, attachment_id)
        return RedirectResponse(url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)

    @router.delete(
        "/{entity_id}/attachments/{attachment_id}",
        response_model=list[AttachmentRead],
        name=f"delete_{service.entity_type}_attachment",
    )
    def delete_attachment(
        entity_id: uuid.UUID,
        attachment_id: str,
        db: Session = Depends(get_db),
        user: ActorUser = Depends(get_current_user),
        manager: AttachmentManager = Depends(get_attachment_manager),
    ) -> list[AttachmentRead]:
        return service.remove_attachment(db, user, manager, entity_id, attachment_id)


# contacts


@contacts_router.get("", response_model=list[ContactRead])
def list_contacts(
    q: str | None = Query(default=None),
    contact_type: str | None = Query(default=None),
    query: ListQuery = Depends(list_query),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[ContactRead]:
    return contact_service.list_contacts(db, {"q": q, "contact_type": contact_type}, query)


@contacts_router.post("", response_model=ContactRead, status_code=status.HTTP_201_CREATED)
def create_contact(
    dto: ContactCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> ContactRead:
    return contact_service.create_contact(db, user, dto)


@contacts_router.get("/audit/{contact_id}", response_model=AuditPage)
def get_contact_audit(
    contact_id: uuid.UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=audit.DEFAULT_PAGE_LIMIT, ge=1, le=audit.MAX_PAGE_LIMIT),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> AuditPage:
    return audit_service.for_entity(db, "contact", contact_id, page=page, limit=limit)


@contacts_router.get("/{contact_id}", response_model=ContactRead)
def get_contact(
    contact_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> ContactRead:
    return contact_service.get_contact(db, contact_id)


@contacts_router.put("/{contact_id}", response_model=ContactRead)
def update_contact(
    contact_id: uuid.UUID,
    dto: ContactUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> ContactRead:
    return contact_service.update_contact(db, user, contact_id, dto)


@contacts_router.delete("/{contact_id}", response_model=None, status_code=status.HTTP_200_OK)
def delete_contact(
    contact_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
    manager: AttachmentManager = Depends(get_attachment_manager),
) -> dict[str, Any]:
    contact_service.delete_contact(db, user, manager, contact_id)
    return _deleted(contact_id)


@contacts_router.post("/{contact_id}/logo", response_model=ContactRead)
def set_contact_logo(
    contact_id: uuid.UUID,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
    manager: AttachmentManager = Depends(get_attachment_manager),
) -> ContactRead:
    (upload,) = _uploaded([file])
    return contact_service.set_logo(db, user, manager, contact_id, upload)


@contacts_router.delete("/{contact_id}/logo", response_model=ContactRead)
def clear_contact_logo(
    contact_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
    manager: AttachmentManager = Depends(get_attachment_manager),
) -> ContactRead:
    return contact_service.clear_logo(db, user, manager, contact_id)


_register_attachment_routes(contacts_router, contact_service)


# leads


@leads_router.get("", response_model=list[LeadRead])
def list_leads(
    q: str | None = Query(default=None),
    stage: str | None = Query(default=None),
    priority: str | None = Query(default=None),
    country: str | None = Query(default=None),
    currency_code: str | None = Query(default=None),
    query: ListQuery = Depends(list_query),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[LeadRead]:
    filters = {"q": q, "stage": stage, "priority": priority, "country": country, "currency_code": currency_code}
    return lead_service.list_leads(db, filters, query)


@leads_router.post("", response_model=LeadRead, status_code=status.HTTP_201_CREATED)
def create_lead(
    dto: LeadCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LeadRead:
    return lead_service.create_lead(db, user, dto)


@leads_router.get("/pipeline/summary", response_model=list[PipelineStageSummary])
def get_pipeline_summary(
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[PipelineStageSummary]:
    return lead_service.pipeline_summary(db)


@leads_router.get("/audit/{lead_id}", response_model=AuditPage)
def get_lead_audit(
    lead_id: uuid.UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=audit.DEFAULT_PAGE_LIMIT, ge=1, le=audit.MAX_PAGE_LIMIT),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> AuditPage:
    return audit_service.for_entity(db, "lead", lead_id, page=page, limit=limit)


@leads_router.get("/{lead_id}", response_model=LeadRead)
def get_lead(
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LeadRead:
    return lead_service.get_lead(db, lead_id)


@leads_router.put("/{lead_id}", response_model=LeadRead)
def update_lead(
    lead_id: uuid.UUID,
    dto: LeadUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LeadRead:
    return lead_service.update_lead(db, user, lead_id, dto)


@leads_router.delete("/{lead_id}", response_model=None, status_code=status.HTTP_200_OK)
def delete_lead(
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
    manager: AttachmentManager = Depends(get_attachment_manager),
) -> dict[str, Any]:
    lead_service.delete_lead(db, user, manager, lead_id)
    return _deleted(lead_id)


_register_attachment_routes(leads_router, lead_service)


# tasks, reminders and notifications


@tasks_router.get("", response_model=list[TaskRead])
def list_tasks(
    q: str | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias="status"),
    priority: str | None = Query(default=None),
    assigned_to: str | None = Query(default=None),
    query: ListQuery = Depends(list_query),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[TaskRead]:
    filters = {"q": q, "status": status_filter, "priority": priority, "assigned_to": assigned_to}
    return task_service.list_tasks(db, filters, query)


@tasks_router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
def create_task(
    dto: TaskCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> TaskRead:
    return task_service.create_task(db, user, dto)


@tasks_router.get("/mine", response_model=list[TaskRead])
def list_my_tasks(
    query: ListQuery = Depends(list_query),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[TaskRead]:
    return task_service.list_for_assignee(db, user.name, query)


@tasks_router.get("/dropdown/users", response_model=list[DropdownOption])
def list_user_options(
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[DropdownOption]:
    return task_service.user_options(db)


@tasks_router.get("/dropdown/companies", response_model=list[DropdownOption])
def list_company_options(
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[DropdownOption]:
    return task_service.company_options(db)


@tasks_router.get("/reminders", response_model=list[ReminderRead])
def list_reminders(
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[ReminderRead]:
    return [ReminderRead.model_validate(item) for item in reminder_engine.list_reminders(db)]


@tasks_router.get("/reminders/pending", response_model=list[ReminderRead])
def list_due_reminders(
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[ReminderRead]:
    return [ReminderRead.model_validate(item) for item in reminder_engine.due_reminders(db)]


@tasks_router.put("/reminders/{reminder_id}/sent", response_model=ReminderRead)
def mark_reminder_sent(
    reminder_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> ReminderRead:
    return ReminderRead.model_validate(reminder_engine.mark_sent(db, reminder_id))


@tasks_router.get("/notifications/pending", response_model=list[NotificationRead])
def list_pending_notifications(
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[NotificationRead]:
    return notification_gateway.pending_for(db, user.name)


@tasks_router.put("/notifications/{notification_id}/processed", response_model=ReminderRead)
def mark_notification_processed(
    notification_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> ReminderRead:
    return notification_gateway.acknowledge(db, user.name, parse_notification_id(notification_id))


@tasks_router.get("/audit/{task_id}", response_model=AuditPage)
def get_task_audit(
    task_id: uuid.UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=audit.DEFAULT_PAGE_LIMIT, ge=1, le=audit.MAX_PAGE_LIMIT),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> AuditPage:
    return audit_service.for_entity(db, "task", task_id, page=page, limit=limit)


@tasks_router.get("/{task_id}", response_model=TaskRead)
def get_task(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> TaskRead:
    return task_service.get_task(db, task_id)


@tasks_router.put("/{task_id}", response_model=TaskRead)
def update_task(
    task_id: uuid.UUID,
    dto: TaskUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> TaskRead:
    return task_service.update_task(db, user, task_id, dto)


@tasks_router.delete("/{task_id}", response_model=None, status_code=status.HTTP_200_OK)
def delete_task(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
    manager: AttachmentManager = Depends(get_attachment_manager),
) -> dict[str, Any]:
    task_service.delete_task(db, user, manager, task_id)
    return _deleted(task_id)


_register_attachment_routes(tasks_router, task_service)


# chargeables


@chargeables_router.get("", response_model=list[ChargeableRead])
def list_chargeables(
    q: str | None = Query(default=None),
    payment_received: str | None = Query(default=None),
    invoice_sent: str | None = Query(default=None),
    currency_code: str | None = Query(default=None),
    query: ListQuery = Depends(list_query),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[ChargeableRead]:
    filters = {
        "q": q,
        "payment_received": payment_received,
        "invoice_sent": invoice_sent,
        "currency_code": currency_code,
    }
    return chargeable_service.list_chargeables(db, filters, query)


@chargeables_router.post("", response_model=ChargeableRead, status_code=status.HTTP_201_CREATED)
def create_chargeable(
    dto: ChargeableCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> ChargeableRead:
    return chargeable_service.create_chargeable(db, user, dto)


@chargeables_router.get("/audit", response_model=AuditPage)
def list_chargeable_audit(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=audit.DEFAULT_PAGE_LIMIT, ge=1, le=audit.MAX_PAGE_LIMIT),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> AuditPage:
    return audit_service.for_type(db, "chargeable", page=page, limit=limit)


@chargeables_router.get("/audit/search", response_model=AuditPage)
def search_chargeable_audit(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    action: AuditAction | None = Query(default=None),
    user_name: str | None = Query(default=None),
    q: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=audit.DEFAULT_PAGE_LIMIT, ge=1, le=audit.MAX_PAGE_LIMIT),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> AuditPage:
    filters = audit.AuditSearch(start_date=start_date, end_date=end_date, action=action, user_name=user_name, q=q)
    return audit_service.search(db, "chargeable", filters, page=page, limit=limit)


@chargeables_router.get("/audit/user/{user_id}", response_model=AuditPage)
def list_chargeable_audit_for_user(
    user_id: uuid.UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=audit.DEFAULT_PAGE_LIMIT, ge=1, le=audit.MAX_PAGE_LIMIT),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> AuditPage:
    return audit_service.for_actor(db, "chargeable", user_id, page=page, limit=limit)


@chargeables_router.get("/audit/{chargeable_id}", response_model=AuditPage)
def get_chargeable_audit(
    chargeable_id: uuid.UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=audit.DEFAULT_PAGE_LIMIT, ge=1, le=audit.MAX_PAGE_LIMIT),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> AuditPage:
    return audit_service.for_entity(db, "chargeable", chargeable_id, page=page, limit=limit)


@chargeables_router.get("/search", response_model=list[ChargeableRead])
def search_chargeables(
    term: str | None = Query(default=None),
    query: ListQuery = Depends(list_query),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[ChargeableRead]:
    return chargeable_service.search(db, term, query)


@chargeables_router.get("/customer/{customer_name}", response_model=list[ChargeableRead])
def list_chargeables_for_customer(
    customer_name: str,
    query: ListQuery = Depends(list_query),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[ChargeableRead]:
    return chargeable_service.list_for_customer(db, customer_name, query)


@chargeables_router.get("/dropdown/customers", response_model=list[str])
def list_customer_options(
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[str]:
    return chargeable_service.customer_options(db)


@chargeables_router.get("/{chargeable_id}", response_model=ChargeableRead)
def get_chargeable(
    chargeable_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> ChargeableRead:
    return chargeable_service.get_chargeable(db, chargeable_id)


@chargeables_router.put("/{chargeable_id}", response_model=ChargeableRead)
def update_chargeable(
    chargeable_id: uuid.UUID,
    dto: ChargeableUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> ChargeableRead:
    return chargeable_service.update_chargeable(db, user, chargeable_id, dto)


@chargeables_router.delete("/{chargeable_id}", response_model=None, status_code=status.HTTP_200_OK)
def delete_chargeable(
    chargeable_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
    manager: AttachmentManager = Depends(get_attachment_manager),
) -> dict[str, Any]:
    chargeable_service.delete_chargeable(db, user, manager, chargeable_id)
    return _deleted(chargeable_id)


_register_attachment_routes(chargeables_router, chargeable_service)
