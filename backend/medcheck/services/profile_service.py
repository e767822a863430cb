"""
MedCheck Backend - Profile Service
==================================

What:  Reads and writes the caller's health profile, and turns it into the
       PatientContext every AI prompt is built from.
Who:   Profile routes; MedicationService, InteractionService and ChatService
       (patient context).

The profile row's primary key is the owner id itself, so there is at most
one profile per user and "get" is a primary-key lookup.
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medcheck.exceptions import DatabaseError, NotFoundError
from medcheck.models.profile import UserProfile
from medcheck.schemas.profile import PatientContext, ProfileResponse, ProfileUpdate
from medcheck.services.clock import local_today, resolve_timezone

logger = logging.getLogger(__name__)


class ProfileService:

    async def _load(self, db: AsyncSession, user_id: UUID) -> Optional[UserProfile]:
        try:
            return await db.get(UserProfile, user_id)
        except SQLAlchemyError as e:
            logger.error("Database error loading profile %s: %s", user_id, str(e))
            raise DatabaseError(
                message="Could not load your profile. Please try again.",
                context={"error_type": type(e).__name__},
            )

    async def get_profile(
        self, db: AsyncSession, user_id: UUID, today: Optional[date] = None
    ) -> ProfileResponse:
        """
        Raises:
            NotFoundError: the user has not created a profile yet (→ 404)
        """
        profile = await self._load(db, user_id)
        if profile is None:
            raise NotFoundError(resource="profile")
        return ProfileResponse.from_model(profile, today or local_today(resolve_timezone()))

    async def upsert_profile(
        self,
        db: AsyncSession,
        user_id: UUID,
        data: ProfileUpdate,
        today: Optional[date] = None,
    ) -> ProfileResponse:
        """
        Partial update: only fields present in the request body are written.
        Creates the profile on first save.
        """
        changes = data.model_dump(exclude_unset=True)
        profile = await self._load(db, user_id)

        try:
            if profile is None:
                profile = UserProfile(id=user_id)
                db.add(profile)
                logger.info("Creating profile for user %s", user_id)
            for field, value in changes.items():
                setattr(profile, field, value)
            await db.flush()
            await db.refresh(profile)
        except SQLAlchemyError as e:
            logger.error("Database error saving profile %s: %s", user_id, str(e), exc_info=True)
            raise DatabaseError(
                message="Could not save your profile. Please try again.",
                context={"error_type": type(e).__name__},
            )

        logger.info("Profile %s saved (%d fields)", user_id, len(changes))
        return ProfileResponse.from_model(profile, today or local_today(resolve_timezone()))

    async def patient_context(
        self, db: AsyncSession, user_id: UUID, today: Optional[date] = None
    ) -> PatientContext:
        """The AI's view of the patient; empty when no profile exists."""
        profile = await self._load(db, user_id)
        if profile is None:
            return PatientContext()
        return PatientContext.from_model(profile, today or local_today(resolve_timezone()))


# ── Singleton Instance ────────────────────────────────────────────────────
profile_service = ProfileService()
