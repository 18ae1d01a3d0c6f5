"""create crm entities

Revision ID: 202610010002
Revises: 202610010001
Create Date: 2026-10-01 00:02:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610010002"
down_revision: str | None = "202610010001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "crm_contact",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("contact_type", sa.String(length=16), nullable=False, server_default="prospect"),
        sa.Column("company_name", sa.Text(), nullable=False),
        sa.Column("company_email", sa.Text(), nullable=False),
        sa.Column("phone_number", sa.Text(), nullable=False),
        sa.Column("company_address", sa.JSON(), nullable=False),
        sa.Column("additional_details", sa.Text(), nullable=True),
        sa.Column("website", sa.Text(), nullable=True),
        sa.Column("contact_persons", sa.JSON(), nullable=False),
        sa.Column("company_logo", sa.JSON(), nullable=True),
        sa.Column("attachments", sa.JSON(), nullable=False),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_contact_company_name", "crm_contact", ["company_name"], unique=False)
    op.create_index("ix_crm_contact_created_at", "crm_contact", ["created_at"], unique=False)

    op.create_table(
        "crm_lead",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("contact_id", sa.Uuid(), nullable=True),
        sa.Column("contact_person_name", sa.Text(), nullable=True),
        sa.Column("is_manual_entry", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("company", sa.Text(), nullable=False),
        sa.Column("country", sa.String(length=32), nullable=False),
        sa.Column("value", sa.Numeric(18, 2), nullable=False),
        sa.Column("subscription", sa.Numeric(18, 2), nullable=False),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        sa.Column("base_value", sa.Numeric(18, 2), nullable=True),
        sa.Column("base_subscription", sa.Numeric(18, 2), nullable=True),
        sa.Column("stage", sa.String(length=64), nullable=False),
        sa.Column("priority", sa.String(length=16), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("next_step", sa.Text(), nullable=True),
        sa.Column("lead_owner", sa.Text(), nullable=True),
        sa.Column("attachments", sa.JSON(), nullable=False),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("company", "stage", "priority", "country", "created_at"):
        op.create_index(f"ix_crm_lead_{column}", "crm_lead", [column], unique=False)

    op.create_table(
        "crm_task",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("assigned_to", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("priority", sa.String(length=16), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("related_to", sa.Text(), nullable=True),
        sa.Column("reminder_date", sa.Date(), nullable=True),
        sa.Column("reminder_time", sa.String(length=5), nullable=True),
        sa.Column("attachments", sa.JSON(), nullable=False),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_task_assigned_to", "crm_task", ["assigned_to"], unique=False)
    op.create_index("ix_crm_task_due_date", "crm_task", ["due_date"], unique=False)

    op.create_table(
        "crm_chargeable",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("quote_send_date", sa.Date(), nullable=False),
        sa.Column("customer_name", sa.Text(), nullable=False),
        sa.Column("contact_id", sa.Uuid(), nullable=True),
        sa.Column("chargeable_type", sa.Text(), nullable=False),
        sa.Column("quotation_sent", sa.String(length=16), nullable=False),
        sa.Column("po_received", sa.String(length=16), nullable=False),
        sa.Column("invoice_sent", sa.String(length=16), nullable=False),
        sa.Column("payment_received", sa.String(length=16), nullable=False),
        sa.Column("follow_ups", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        sa.Column("base_amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("created_by", sa.Text(), nullable=True),
        sa.Column("updated_by", sa.Text(), nullable=True),
        sa.Column("attachments", sa.JSON(), nullable=False),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_chargeable_customer_name", "crm_chargeable", ["customer_name"], unique=False)
    op.create_index("ix_crm_chargeable_created_at", "crm_chargeable", ["created_at"], unique=False)

    op.create_table(
        "crm_reminder",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("task_id", sa.Uuid(), nullable=False),
        sa.Column("task_name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("assignee_name", sa.Text(), nullable=False),
        sa.Column("assignee_email", sa.Text(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("reminder_date", sa.Date(), nullable=False),
        sa.Column("reminder_time", sa.String(length=5), nullable=False),
        sa.Column("reminder_datetime", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("task_id", name="uq_crm_reminder_task_id"),
    )
    op.create_index("ix_crm_reminder_due", "crm_reminder", ["status", "reminder_datetime"], unique=False)
    op.create_index("ix_crm_reminder_assignee_name", "crm_reminder", ["assignee_name"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_crm_reminder_assignee_name", table_name="crm_reminder")
    op.drop_index("ix_crm_reminder_due", table_name="crm_reminder")
    op.drop_table("crm_reminder")
    op.drop_index("ix_crm_chargeable_created_at", table_name="crm_chargeable")
    op.drop_index("ix_crm_chargeable_customer_name", table_name="crm_chargeable")
    op.drop_table("crm_chargeable")
    op.drop_index("ix_crm_task_due_date", table_name="crm_task")
    op.drop_index("ix_crm_task_assigned_to", table_name="crm_task")
    op.drop_table("crm_task")
    for column in ("created_at", "country", "priority", "stage", "company"):
        op.drop_index(f"ix_crm_lead_{column}", table_name="crm_lead")
    op.drop_table("crm_lead")
    op.drop_index("ix_crm_contact_created_at", table_name="crm_contact")
    op.drop_index("ix_crm_contact_company_name", table_name="crm_contact")
    op.drop_table("crm_contact")
