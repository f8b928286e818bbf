"""create reminder_settings and reminders

Revision ID: 20251101_01
Revises: None (documents/users/vehicles are owned by the document service)
Create Date: 2025-11-01
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20251101_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "reminder_settings",
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.Column("email_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("email_days_before", sa.Integer(), nullable=False, server_default="14"),
        sa.Column("whatsapp_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("whatsapp_days_before", sa.Integer(), nullable=False, server_default="7"),
        sa.Column("quiet_hours_start", sa.Time(), nullable=True),
        sa.Column("quiet_hours_end", sa.Time(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "email_days_before >= 0 AND whatsapp_days_before >= 0",
            name="ck_reminder_settings_days_before",
        ),
    )

    op.create_table(
        "reminders",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("document_id", sa.String(length=64), nullable=False),
        sa.Column("vehicle_id", sa.String(length=64), nullable=True),
        sa.Column("channel", sa.String(length=16), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "document_id", "due_date", "channel", name="uq_reminders_document_due_channel"
        ),
        sa.CheckConstraint("channel IN ('email', 'whatsapp')", name="ck_reminders_channel"),
    )
    op.create_index("ix_reminders_sent_due_date", "reminders", ["sent", "due_date"])
    op.create_index("ix_reminders_user_sent", "reminders", ["user_id", "sent"])


def downgrade() -> None:
    op.drop_index("ix_reminders_user_sent", table_name="reminders")
    op.drop_index("ix_reminders_sent_due_date", table_name="reminders")
    op.drop_table("reminders")
    op.drop_table("reminder_settings")
