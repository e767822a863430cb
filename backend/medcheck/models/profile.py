"""
MedCheck Backend - User Profile Model
=====================================

What:  Health profile used to personalise dosage advice, interaction checks
       and the chat assistant.
How:   One row per user; the primary key IS the owner id, so a profile
       cannot exist twice.
Who:   ProfileService (read/upsert) and every AI prompt via PatientContext.

Flexible fields:
    lifestyle        {"smoking": bool, "alcoholUse": "none|occasional|regular"}
    biometric_data   {"bloodType": "A|B|AB|O", "rhFactor": "+|-"}
    emergency_contact {"name": ..., "phone": ..., "relationship": ...}
"""

import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, Date, Float, String, Text, text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from medcheck.database import Base


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        comment="Owner id (the auth provider's user id)",
    )
    full_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Metric units: kilograms and centimetres
    weight: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    height: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    allergies: Mapped[List[str]] = mapped_column(
        ARRAY(Text), nullable=False, default=list, server_default=text("'{}'")
    )
    medical_conditions: Mapped[List[str]] = mapped_column(
        ARRAY(Text), nullable=False, default=list, server_default=text("'{}'")
    )
    medication_history: Mapped[List[str]] = mapped_column(
        ARRAY(Text), nullable=False, default=list, server_default=text("'{}'")
    )
    family_medical_history: Mapped[List[str]] = mapped_column(
        ARRAY(Text), nullable=False, default=list, server_default=text("'{}'")
    )

    lifestyle: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    biometric_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    emergency_contact: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONB, nullable=True)

    onboarding_completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
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

    def __repr__(self) -> str:
        return f"<UserProfile(id={self.id}, onboarding_completed={self.onboarding_completed})>"
