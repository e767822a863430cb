"""
MedCheck Backend - Profile Routes
=================================

    GET /api/profile   → the caller's health profile (404 until first save)
    PUT /api/profile   → partial update; creates the profile on first save

The profile feeds every AI prompt: age, weight, allergies and conditions
shape dosage advice, interaction checks and chat answers.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from medcheck.auth import get_current_user_id
from medcheck.database import get_db_session
from medcheck.schemas.common import ErrorResponse
from medcheck.schemas.profile import ProfileResponse, ProfileUpdate
from medcheck.services.profile_service import profile_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Profile"])


@router.get(
    "/profile",
    response_model=ProfileResponse,
    responses={
        401: {"description": "Missing or invalid access token", "model": ErrorResponse},
        404: {"description": "No profile saved yet", "model": ErrorResponse},
    },
    summary="Get the caller's health profile",
)
async def get_profile(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> ProfileResponse:
    return await profile_service.get_profile(db, user_id)


@router.put(
    "/profile",
    response_model=ProfileResponse,
    responses={
        400: {"description": "Invalid profile data", "model": ErrorResponse},
        401: {"description": "Missing or invalid access token", "model": ErrorResponse},
    },
    summary="Create or update the caller's health profile",
    description="Only the fields present in the body are changed.",
)
async def update_profile(
    data: ProfileUpdate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> ProfileResponse:
    return await profile_service.upsert_profile(db, user_id, data)
