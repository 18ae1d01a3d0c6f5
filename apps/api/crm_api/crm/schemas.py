from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

from crm_api.crm.normalization import blank_to_none, fold_legacy_contact, normalize_reminder_time, strip_thousands


ContactType = Literal["prospect", "customer"]
LeadStage = Literal[
    "New Lead",
    "Contacted",
    "Qualified",
    "Demo Done",
    "Proposal Sent",
    "Negotiation",
    "Won - Deal Closed",
    "Lost - Not Interested",
    "Lost - Competitor Win",
    "Lost - No Budget",
    "Follow-up Later",
]
LeadPriority = Literal["High", "Medium", "Low"]
Country = Literal["Argentina", "Australia", "Canada", "Croatia", "Mauritius", "USA"]
CurrencyCode = Literal["AUD", "USD", "EUR", "GBP", "JPY", "CAD", "CNY", "INR", "NZD"]
TaskStatus = Literal["Not Started", "In Progress", "Completed"]
TaskPriority = Literal["Low", "Medium", "High"]
YesNoPending = Literal["yes", "no", "pending"]
ReminderStatus = Literal["pending", "sent", "cancelled"]
AuditAction = Literal["create", "update", "delete"]

Amount = Annotated[Decimal, BeforeValidator(strip_thousands), Field(ge=0)]
OptionalDate = Annotated[date | None, BeforeValidator(blank_to_none)]
OptionalReminderTime = Annotated[str | None, BeforeValidator(normalize_reminder_time)]


class AttachmentRead(BaseModel):
    id: str
    file_name: str
    storage_url: str
    storage_id: str
    file_type: str | None = None
    file_size: int | None = None
    uploaded_at: datetime


class CompanyAddress(BaseModel):
    country: str | None = None
    state: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    postal_code: str | None = None


class ContactPerson(BaseModel):
    title: str | None = None
    name: str = Field(min_length=1)
    designation: str | None = None
    email: str | None = None
    phone_number: str | None = None
    linkedin: str | None = None
    address: str | None = None
    notes: str | None = None


class ContactCreate(BaseModel):
    contact_type: ContactType = "prospect"
    company_name: str = Field(min_length=1)
    company_email: str = Field(min_length=1)
    phone_number: str = Field(min_length=1)
    company_address: CompanyAddress = Field(default_factory=CompanyAddress)
    additional_details: str | None = None
    website: str | None = None
    contact_persons: list[ContactPerson] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def fold_legacy_fields(cls, data: Any) -> Any:
        return fold_legacy_contact(data)


class ContactUpdate(BaseModel):
    contact_type: ContactType | None = None
    company_name: str | None = Field(default=None, min_length=1)
    company_email: str | None = Field(default=None, min_length=1)
    phone_number: str | None = Field(default=None, min_length=1)
    company_address: CompanyAddress | None = None
    additional_details: str | None = None
    website: str | None = None
    contact_persons: list[ContactPerson] | None = None

    @model_validator(mode="before")
    @classmethod
    def fold_legacy_fields(cls, data: Any) -> Any:
        return fold_legacy_contact(data)


class ContactLegacyView(BaseModel):
    name: str | None
    email: str | None
    phone: str | None
    company: str | None


class ContactRead(BaseModel):
    id: UUID
    owner_id: UUID
    contact_type: ContactType
    company_name: str
    company_email: str
    phone_number: str
    company_address: CompanyAddress
    additional_details: str | None
    website: str | None
    contact_persons: list[ContactPerson]
    company_logo: AttachmentRead | None
    attachments: list[AttachmentRead]
    display_name: str
    legacy: ContactLegacyView
    row_version: int
    created_at: datetime
    updated_at: datetime


class LeadCreate(BaseModel):
    contact_id: UUID | None = None
    contact_person_name: str | None = None
    is_manual_entry: bool = False
    company: str | None = None
    country: Country = "Australia"
    value: Amount
    subscription: Amount = Decimal("0")
    currency_code: CurrencyCode | None = None
    base_value: Amount | None = None
    base_subscription: Amount | None = None
    stage: LeadStage = "New Lead"
    priority: LeadPriority = "Medium"
    notes: str | None = None
    next_step: str | None = None
    lead_owner: str | None = None


class LeadUpdate(BaseModel):
    contact_id: UUID | None = None
    contact_person_name: str | None = None
    is_manual_entry: bool | None = None
    company: str | None = None
    country: Country | None = None
    value: Amount | None = None
    subscription: Amount | None = None
    currency_code: CurrencyCode | None = None
    base_value: Amount | None = None
    base_subscription: Amount | None = None
    stage: LeadStage | None = None
    priority: LeadPriority | None = None
    notes: str | None = None
    next_step: str | None = None
    lead_owner: str | None = None


class LeadRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: UUID
    contact_id: UUID | None
    contact_person_name: str | None
    contact_name: str
    is_manual_entry: bool
    company: str
    country: Country
    value: Decimal
    subscription: Decimal
    currency_code: CurrencyCode
    base_value: Decimal | None
    base_subscription: Decimal | None
    stage: LeadStage
    priority: LeadPriority
    notes: str | None
    next_step: str | None
    lead_owner: str | None
    attachments: list[AttachmentRead]
    row_version: int
    created_at: datetime
    updated_at: datetime


class PipelineLead(BaseModel):
    id: UUID
    company: str
    value: Decimal


class PipelineStageSummary(BaseModel):
    stage: LeadStage
    total_value: Decimal
    count: int
    leads: list[PipelineLead]


class TaskCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str | None = None
    assigned_to: str = Field(min_length=1)
    status: TaskStatus = "Not Started"
    priority: TaskPriority = "Medium"
    due_date: date
    related_to: str | None = None
    reminder_date: OptionalDate = None
    reminder_time: OptionalReminderTime = None


class TaskUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    assigned_to: str | None = Field(default=None, min_length=1)
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: date | None = None
    related_to: str | None = None
    reminder_date: OptionalDate = None
    reminder_time: OptionalReminderTime = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: UUID
    title: str
    description: str | None
    assigned_to: str
    status: TaskStatus
    priority: TaskPriority
    due_date: date
    related_to: str | None
    reminder_date: date | None
    reminder_time: str | None
    attachments: list[AttachmentRead]
    row_version: int
    created_at: datetime
    updated_at: datetime


class ChargeableCreate(BaseModel):
    quote_send_date: date
    customer_name: str = Field(min_length=1)
    contact_id: UUID | None = None
    chargeable_type: str = Field(min_length=1)
    quotation_sent: YesNoPending = "no"
    po_received: YesNoPending = "no"
    invoice_sent: YesNoPending = "no"
    payment_received: YesNoPending = "no"
    follow_ups: int = Field(default=0, ge=0)
    amount: Amount
    currency_code: CurrencyCode | None = None
    base_amount: Amount | None = None


class ChargeableUpdate(BaseModel):
    quote_send_date: date | None = None
    customer_name: str | None = Field(default=None, min_length=1)
    contact_id: UUID | None = None
    chargeable_type: str | None = Field(default=None, min_length=1)
    quotation_sent: YesNoPending | None = None
    po_received: YesNoPending | None = None
    invoice_sent: YesNoPending | None = None
    payment_received: YesNoPending | None = None
    follow_ups: int | None = Field(default=None, ge=0)
    amount: Amount | None = None
    currency_code: CurrencyCode | None = None
    base_amount: Amount | None = None


class ChargeableRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: UUID
    quote_send_date: date
    customer_name: str
    contact_id: UUID | None
    chargeable_type: str
    quotation_sent: YesNoPending
    po_received: YesNoPending
    invoice_sent: YesNoPending
    payment_received: YesNoPending
    follow_ups: int
    amount: Decimal
    currency_code: CurrencyCode
    base_amount: Decimal | None
    created_by: str | None
    updated_by: str | None
    attachments: list[AttachmentRead]
    row_version: int
    created_at: datetime
    updated_at: datetime


class ReminderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    task_id: UUID
    task_name: str
    description: str | None
    assignee_name: str
    assignee_email: str | None
    due_date: date
    reminder_date: date
    reminder_time: str
    reminder_datetime: datetime
    status: ReminderStatus
    owner_id: UUID


class NotificationRead(BaseModel):
    id: str
    title: str
    message: str
    timestamp: datetime
    read: bool = False
    task_id: UUID
    reminder_id: UUID


class AuditChange(BaseModel):
    field: str
    old_value: Any = None
    new_value: Any = None


class AuditEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    entity_type: str
    entity_id: UUID
    actor_id: UUID
    actor_name: str | None
    action: AuditAction
    changes: list[AuditChange]
    timestamp: datetime


class Pagination(BaseModel):
    total: int
    page: int
    pages: int
    limit: int


class AuditPage(BaseModel):
    audit_logs: list[AuditEntryRead]
    pagination: Pagination


class DropdownOption(BaseModel):
    id: UUID | None = None
    name: str
