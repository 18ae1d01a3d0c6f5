from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from crm_api.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Timestamps:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )


class CRMContact(_Timestamps, Base):
    __tablename__ = "crm_contact"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    contact_type: Mapped[str] = mapped_column(String(16), nullable=False, default="prospect", server_default="prospect")
    company_name: Mapped[str] = mapped_column(Text, nullable=False)
    company_email: Mapped[str] = mapped_column(Text, nullable=False)
    phone_number: Mapped[str] = mapped_column(Text, nullable=False)
    company_address: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    additional_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    website: Mapped[str | None] = mapped_column(Text, nullable=True)
    contact_persons: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    company_logo: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    attachments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")

    __table_args__ = (
        Index("ix_crm_contact_company_name", "company_name"),
        Index("ix_crm_contact_created_at", "created_at"),
    )


class CRMLead(_Timestamps, Base):
    __tablename__ = "crm_lead"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    contact_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    contact_person_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_manual_entry: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    company: Mapped[str] = mapped_column(Text, nullable=False)
    country: Mapped[str] = mapped_column(String(32), nullable=False, default="Australia")
    value: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    subscription: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    base_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    base_subscription: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    stage: Mapped[str] = mapped_column(String(64), nullable=False, default="New Lead")
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="Medium")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_step: Mapped[str | None] = mapped_column(Text, nullable=True)
    lead_owner: Mapped[str | None] = mapped_column(Text, nullable=True)
    attachments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")

    __table_args__ = (
        Index("ix_crm_lead_company", "company"),
        Index("ix_crm_lead_stage", "stage"),
        Index("ix_crm_lead_priority", "priority"),
        Index("ix_crm_lead_country", "country"),
        Index("ix_crm_lead_created_at", "created_at"),
    )


class CRMTask(_Timestamps, Base):
    __tablename__ = "crm_task"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    assigned_to: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="Not Started")
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="Medium")
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    related_to: Mapped[str | None] = mapped_column(Text, nullable=True)
    reminder_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    reminder_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    attachments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")

    __table_args__ = (
        Index("ix_crm_task_assigned_to", "assigned_to"),
        Index("ix_crm_task_due_date", "due_date"),
    )


class CRMChargeable(_Timestamps, Base):
    __tablename__ = "crm_chargeable"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    quote_send_date: Mapped[date] = mapped_column(Date, nullable=False)
    customer_name: Mapped[str] = mapped_column(Text, nullable=False)
    contact_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    chargeable_type: Mapped[str] = mapped_column(Text, nullable=False)
    quotation_sent: Mapped[str] = mapped_column(String(16), nullable=False, default="no")
    po_received: Mapped[str] = mapped_column(String(16), nullable=False, default="no")
    invoice_sent: Mapped[str] = mapped_column(String(16), nullable=False, default="no")
    payment_received: Mapped[str] = mapped_column(String(16), nullable=False, default="no")
    follow_ups: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    base_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    created_by: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_by: Mapped[str | None] = mapped_column(Text, nullable=True)
    attachments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")

    __table_args__ = (
        Index("ix_crm_chargeable_customer_name", "customer_name"),
        Index("ix_crm_chargeable_created_at", "created_at"),
    )


class CRMReminder(_Timestamps, Base):
    __tablename__ = "crm_reminder"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    task_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    task_name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    assignee_name: Mapped[str] = mapped_column(Text, nullable=False)
    assignee_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    reminder_date: Mapped[date] = mapped_column(Date, nullable=False)
    reminder_time: Mapped[str] = mapped_column(String(5), nullable=False)
    reminder_datetime: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", server_default="pending")
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("task_id", name="uq_crm_reminder_task_id"),
        Index("ix_crm_reminder_due", "status", "reminder_datetime"),
        Index("ix_crm_reminder_assignee_name", "assignee_name"),
    )
