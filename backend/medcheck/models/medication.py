"""
MedCheck Backend - Medication & Medication Log Models
=====================================================

What:  The user's medication list and the per-dose adherence log.
Who:   MedicationService (CRUD, reminders), TrackingService (logs),
       InteractionService (active list), ChatService (context).

Medication lifecycle:
    1. Created by hand, from a scanned label, or from a chat suggestion
    2. Edited (dosage, reminders) any number of times; updated_at bumps
    3. Deactivated (active=false) to hide it without losing its log history,
       or deleted together with its logs

Log rows:
    One row per medication per local day. Confirming or skipping a dose
    updates that day's row if it exists; `mark_missed` fills days nobody
    answered with status "missed".
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    SmallInteger,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from medcheck.database import Base

CATEGORIES = ("otc", "prescription", "supplement")
REMINDER_FREQUENCIES = ("daily", "weekly", "monthly")
LOG_STATUSES = ("taken", "skipped", "missed")
CONFIRMATION_SOURCES = ("notification", "manual", "auto")


def _in(column: str, values) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


class Medication(Base):
    __tablename__ = "medications"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, comment="Owner id"
    )

    # ── Label information ─────────────────────────────────────────────────
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    generic_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    dosage: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    frequency: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    category: Mapped[str] = mapped_column(
        String(20), nullable=False, default="otc", server_default=text("'otc'")
    )
    is_prescription: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    prescribed_by: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # ── Personalised dosage guidance (AI) ─────────────────────────────────
    recommended_dosage: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    recommended_frequency: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    dosage_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ── Reminders ─────────────────────────────────────────────────────────
    # reminder_times: sorted "HH:MM" strings
    # reminder_days: weekly 0-6 (Sunday = 0) or monthly 1-31; empty for daily
    reminder_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    reminder_times: Mapped[List[str]] = mapped_column(
        ARRAY(String(5)), nullable=False, default=list, server_default=text("'{}'")
    )
    reminder_frequency: Mapped[str] = mapped_column(
        String(10), nullable=False, default="daily", server_default=text("'daily'")
    )
    reminder_days: Mapped[List[int]] = mapped_column(
        ARRAY(SmallInteger), nullable=False, default=list, server_default=text("'{}'")
    )

    active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        CheckConstraint(_in("category", CATEGORIES), name="category"),
        CheckConstraint(_in("reminder_frequency", REMINDER_FREQUENCIES), name="reminder_frequency"),
        Index("idx_medications_user_active", "user_id", "active"),
    )

    def __repr__(self) -> str:
        return f"<Medication(id={self.id}, name='{self.name}', active={self.active})>"


class MedicationLog(Base):
    __tablename__ = "medication_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    medication_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("medications.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Local day at the first reminder time (midnight without reminders)
    scheduled_time: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    taken_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default="missed", server_default=text("'missed'")
    )
    confirmed_via: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        CheckConstraint(_in("status", LOG_STATUSES), name="status"),
        CheckConstraint(
            f"confirmed_via IS NULL OR {_in('confirmed_via', CONFIRMATION_SOURCES)}",
            name="confirmed_via",
        ),
        Index("idx_medication_logs_medication_time", "medication_id", scheduled_time.desc()),
        Index("idx_medication_logs_user_time", "user_id", scheduled_time.desc()),
    )

    def __repr__(self) -> str:
        return (
            f"<MedicationLog(medication_id={self.medication_id}, status='{self.status}', "
            f"scheduled_time='{self.scheduled_time}')>"
        )
