"""Create MedCheck schema

Revision ID: 001
Revises: None
Create Date: 2025-01-10 00:00:00.000000+00:00

Creates every table: user_profiles, medications, medication_logs,
interaction_checks, conversations and conversation_messages, plus the
trigger that keeps updated_at current on rows edited outside the ORM.

Constraint names follow the naming convention in medcheck/database.py so
later --autogenerate runs see no drift.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UPDATED_AT_TABLES = ("user_profiles", "medications", "conversations")


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamp(name: str, nullable: bool = False, now: bool = True) -> sa.Column:
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP") if now else None,
        nullable=nullable,
    )


def _text_array(name: str) -> sa.Column:
    return sa.Column(name, postgresql.ARRAY(sa.Text()), server_default=sa.text("'{}'"), nullable=False)


def upgrade() -> None:
    op.create_table(
        "user_profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False,
                  comment="Owner id (the auth provider's user id)"),
        sa.Column("full_name", sa.String(200), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("gender", sa.String(50), nullable=True),
        sa.Column("weight", sa.Float(), nullable=True),
        sa.Column("height", sa.Float(), nullable=True),
        _text_array("allergies"),
        _text_array("medical_conditions"),
        _text_array("medication_history"),
        _text_array("family_medical_history"),
        sa.Column("lifestyle", postgresql.JSONB(), nullable=True),
        sa.Column("biometric_data", postgresql.JSONB(), nullable=True),
        sa.Column("emergency_contact", postgresql.JSONB(), nullable=True),
        sa.Column("onboarding_completed", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id", name="pk_user_profiles"),
    )

    op.create_table(
        "medications",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False, comment="Owner id"),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("generic_name", sa.String(200), nullable=True),
        sa.Column("dosage", sa.String(100), nullable=True),
        sa.Column("frequency", sa.String(100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("category", sa.String(20), server_default=sa.text("'otc'"), nullable=False),
        sa.Column("is_prescription", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("prescribed_by", sa.String(200), nullable=True),
        sa.Column("recommended_dosage", sa.String(200), nullable=True),
        sa.Column("recommended_frequency", sa.String(200), nullable=True),
        sa.Column("dosage_notes", sa.Text(), nullable=True),
        sa.Column("reminder_enabled", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("reminder_times", postgresql.ARRAY(sa.String(5)), server_default=sa.text("'{}'"), nullable=False),
        sa.Column("reminder_frequency", sa.String(10), server_default=sa.text("'daily'"), nullable=False),
        sa.Column("reminder_days", postgresql.ARRAY(sa.SmallInteger()), server_default=sa.text("'{}'"), nullable=False),
        sa.Column("active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "category IN ('otc', 'prescription', 'supplement')", name="ck_medications_category"
        ),
        sa.CheckConstraint(
            "reminder_frequency IN ('daily', 'weekly', 'monthly')",
            name="ck_medications_reminder_frequency",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_medications"),
    )
    op.create_index("idx_medications_user_active", "medications", ["user_id", "active"])

    op.create_table(
        "medication_logs",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("medication_id", postgresql.UUID(as_uuid=True), nullable=False),
        _timestamp("scheduled_time", now=False),
        _timestamp("taken_at", nullable=True, now=False),
        sa.Column("status", sa.String(10), server_default=sa.text("'missed'"), nullable=False),
        sa.Column("confirmed_via", sa.String(20), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint(
            "status IN ('taken', 'skipped', 'missed')", name="ck_medication_logs_status"
        ),
        sa.CheckConstraint(
            "confirmed_via IS NULL OR confirmed_via IN ('notification', 'manual', 'auto')",
            name="ck_medication_logs_confirmed_via",
        ),
        sa.ForeignKeyConstraint(
            ["medication_id"],
            ["medications.id"],
            name="fk_medication_logs_medication_id_medications",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_medication_logs"),
    )
    op.create_index(
        "idx_medication_logs_medication_time",
        "medication_logs",
        ["medication_id", sa.text("scheduled_time DESC")],
    )
    op.create_index(
        "idx_medication_logs_user_time",
        "medication_logs",
        ["user_id", sa.text("scheduled_time DESC")],
    )

    op.create_table(
        "interaction_checks",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("medication_ids", postgresql.ARRAY(postgresql.UUID(as_uuid=True)), nullable=False),
        sa.Column("analysis", postgresql.JSONB(), nullable=False),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("max_severity", sa.String(10), server_default=sa.text("'none'"), nullable=False),
        sa.Column("has_warnings", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _timestamp("checked_at"),
        sa.CheckConstraint(
            "status IN ('safe', 'warning', 'critical')", name="ck_interaction_checks_status"
        ),
        sa.CheckConstraint(
            "max_severity IN ('none', 'low', 'moderate', 'high', 'critical')",
            name="ck_interaction_checks_max_severity",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_interaction_checks"),
    )
    op.create_index(
        "idx_interaction_checks_user_checked",
        "interaction_checks",
        ["user_id", sa.text("checked_at DESC")],
    )

    op.create_table(
        "conversations",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(200), server_default=sa.text("'New Conversation'"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id", name="pk_conversations"),
    )
    op.create_index(
        "idx_conversations_user_updated",
        "conversations",
        ["user_id", sa.text("updated_at DESC")],
    )

    op.create_table(
        "conversation_messages",
        _uuid_pk(),
        sa.Column("conversation_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role", sa.String(10), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("image_mime_type", sa.String(50), nullable=True),
        sa.Column("has_image", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _timestamp("created_at"),
        sa.CheckConstraint("role IN ('user', 'assistant')", name="ck_conversation_messages_role"),
        sa.ForeignKeyConstraint(
            ["conversation_id"],
            ["conversations.id"],
            name="fk_conversation_messages_conversation_id_conversations",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_conversation_messages"),
    )
    op.create_index(
        "idx_conversation_messages_conversation",
        "conversation_messages",
        ["conversation_id", "created_at"],
    )

    # updated_at for rows changed by SQL outside the application
    op.execute(
        """
        CREATE OR REPLACE FUNCTION set_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = CURRENT_TIMESTAMP;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
        """
    )
    for table in UPDATED_AT_TABLES:
        op.execute(
            f"CREATE TRIGGER trg_{table}_updated_at BEFORE UPDATE ON {table} "
            f"FOR EACH ROW EXECUTE FUNCTION set_updated_at()"
        )


def downgrade() -> None:
    """Drops every MedCheck table. Destructive: all data is lost."""
    for table in UPDATED_AT_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS trg_{table}_updated_at ON {table}")
    op.execute("DROP FUNCTION IF EXISTS set_updated_at()")

    op.drop_index("idx_conversation_messages_conversation", table_name="conversation_messages")
    op.drop_table("conversation_messages")
    op.drop_index("idx_conversations_user_updated", table_name="conversations")
    op.drop_table("conversations")
    op.drop_index("idx_interaction_checks_user_checked", table_name="interaction_checks")
    op.drop_table("interaction_checks")
    op.drop_index("idx_medication_logs_user_time", table_name="medication_logs")
    op.drop_index("idx_medication_logs_medication_time", table_name="medication_logs")
    op.drop_table("medication_logs")
    op.drop_index("idx_medications_user_active", table_name="medications")
    op.drop_table("medications")
    op.drop_table("user_profiles")
