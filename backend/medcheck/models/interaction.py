"""
MedCheck Backend - Interaction Check Cache
==========================================

What:  The result of the last AI interaction check for a user's active
       medication list.
How:   A new row is written whenever the list changes; the newest row is
       reused while its sorted medication ids still match the current list.

analysis JSON:
    {"interactions": [{"drug1", "drug2", "severity", "description"}],
     "warnings": [...], "safe": bool}
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import Boolean, CheckConstraint, Index, String, text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from medcheck.database import Base


class InteractionCheck(Base):
    __tablename__ = "interaction_checks"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    medication_ids: Mapped[List[uuid.UUID]] = mapped_column(
        ARRAY(UUID(as_uuid=True)), nullable=False
    )
    analysis: Mapped[Dict[str, Any]] = mapped_column(JSONB, nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    max_severity: Mapped[str] = mapped_column(
        String(10), nullable=False, default="none", server_default=text("'none'")
    )
    has_warnings: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    checked_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        CheckConstraint("status IN ('safe', 'warning', 'critical')", name="status"),
        CheckConstraint(
            "max_severity IN ('none', 'low', 'moderate', 'high', 'critical')",
            name="max_severity",
        ),
        Index("idx_interaction_checks_user_checked", "user_id", checked_at.desc()),
    )

    def __repr__(self) -> str:
        return f"<InteractionCheck(user_id={self.user_id}, status='{self.status}')>"
