"""
MedCheck Backend - Interaction Check Service
============================================

What:  Checks the caller's active medications against each other (and
       against their allergies and conditions) and caches the result.
Who:   POST /api/interactions/check, GET /api/interactions/latest.

Decision flow for check():

    fewer than 2 active medications ──▶ trivially safe, no AI call, not stored
    latest cached row has the same
    sorted medication ids (no force) ──▶ cached row
    AI not configured ─────────────────▶ unchecked, trivially safe, not stored
    otherwise ─────────────────────────▶ AI analysis → aggregate severity
                                          → new cache row

The cache is only ever compared with the newest row, so editing the list
and changing it back still recomputes.
"""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medcheck.core.severity import (
    InteractionStatus,
    Severity,
    aggregate_severity,
    interaction_status,
)
from medcheck.exceptions import DatabaseError, NotFoundError
from medcheck.models.interaction import InteractionCheck
from medcheck.schemas.interaction import InteractionAnalysis, InteractionCheckResponse
from medcheck.services.gemini_service import gemini_service
from medcheck.services.llm_base import LLMService
from medcheck.services.medication_service import medication_service
from medcheck.services.ownership import owned
from medcheck.services.profile_service import profile_service

logger = logging.getLogger(__name__)


def _cache_key(ids) -> List[str]:
    return sorted(str(i) for i in ids)


def to_response(row: InteractionCheck, cached: bool = False) -> InteractionCheckResponse:
    return InteractionCheckResponse(
        id=row.id,
        medication_ids=list(row.medication_ids),
        analysis=InteractionAnalysis.model_validate(row.analysis),
        status=row.status,
        max_severity=row.max_severity,
        has_warnings=row.has_warnings,
        checked=True,
        cached=cached,
        checked_at=row.checked_at,
    )


class InteractionService:

    def __init__(self, llm: Optional[LLMService] = None):
        self.llm = llm or gemini_service

    async def _latest_row(self, db: AsyncSession, user_id: UUID) -> Optional[InteractionCheck]:
        try:
            result = await db.execute(
                owned(InteractionCheck, user_id)
                .order_by(desc(InteractionCheck.checked_at))
                .limit(1)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error reading interaction cache: %s", str(e))
            raise DatabaseError(
                message="Could not load interaction results. Please try again.",
                context={"error_type": type(e).__name__},
            )

    async def check(
        self, db: AsyncSession, user_id: UUID, force: bool = False
    ) -> InteractionCheckResponse:
        """
        Raises:
            LLMServiceError / CircuitBreakerOpenError: the AI call failed
            DatabaseError: loading or caching failed
        """
        medications = await medication_service.list_active(db, user_id)
        ids = [m.id for m in medications]

        if len(medications) < 2:
            return InteractionCheckResponse(
                medication_ids=ids,
                analysis=InteractionAnalysis.empty(),
                status=InteractionStatus.SAFE.value,
                checked=False,
            )

        if not force:
            latest = await self._latest_row(db, user_id)
            if latest is not None and _cache_key(latest.medication_ids) == _cache_key(ids):
                logger.info("Interaction cache hit for user %s", user_id)
                return to_response(latest, cached=True)

        if not self.llm.is_configured:
            logger.warning("Interaction check skipped: AI is not configured")
            return InteractionCheckResponse(
                medication_ids=ids,
                analysis=InteractionAnalysis.empty(),
                status=InteractionStatus.SAFE.value,
                checked=False,
            )

        patient = await profile_service.patient_context(db, user_id)
        analysis = await self.llm.check_interactions(medications, patient)

        severity: Severity = aggregate_severity(p.severity for p in analysis.interactions)
        status = interaction_status(analysis.safe, severity)
        logger.info(
            "Interaction check for user %s: %d pairs, max severity %s, status %s",
            user_id,
            len(analysis.interactions),
            severity.value,
            status.value,
        )

        try:
            row = InteractionCheck(
                user_id=user_id,
                medication_ids=ids,
                analysis=analysis.model_dump(mode="json"),
                status=status.value,
                max_severity=severity.value,
                has_warnings=bool(analysis.warnings or analysis.interactions),
            )
            db.add(row)
            await db.flush()
            await db.refresh(row)
        except SQLAlchemyError as e:
            logger.error("Database error caching interaction check: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not save interaction results. Please try again.",
                context={"error_type": type(e).__name__},
            )
        return to_response(row)

    async def latest(self, db: AsyncSession, user_id: UUID) -> InteractionCheckResponse:
        row = await self._latest_row(db, user_id)
        if row is None:
            raise NotFoundError(resource="interaction check")
        return to_response(row, cached=True)


# ── Singleton Instance ────────────────────────────────────────────────────
interaction_service = InteractionService()
