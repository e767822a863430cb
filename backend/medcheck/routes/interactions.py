"""
MedCheck Backend - Interaction Check Routes
===========================================

    POST /api/interactions/check    check the active medications (cached)
    GET  /api/interactions/latest   the most recent stored result
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from medcheck.auth import get_current_user_id
from medcheck.database import get_db_session
from medcheck.schemas.common import ErrorResponse
from medcheck.schemas.interaction import InteractionCheckResponse
from medcheck.services.interaction_service import interaction_service

router = APIRouter(prefix="/api/interactions", tags=["Interactions"])


@router.post(
    "/check",
    response_model=InteractionCheckResponse,
    responses={
        401: {"description": "Missing or invalid access token", "model": ErrorResponse},
        503: {"description": "AI service unavailable", "model": ErrorResponse},
    },
    summary="Check active medications for interactions",
    description=(
        "Returns the cached result when the set of active medications has not changed "
        "since the last check, unless force=true. With fewer than two active medications "
        "the result is safe and nothing is checked."
    ),
)
async def check_interactions(
    force: bool = Query(default=False, description="Ignore the cached result"),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> InteractionCheckResponse:
    return await interaction_service.check(db, user_id, force=force)


@router.get(
    "/latest",
    response_model=InteractionCheckResponse,
    responses={
        401: {"description": "Missing or invalid access token", "model": ErrorResponse},
        404: {"description": "No check has been run yet", "model": ErrorResponse},
    },
    summary="Most recent interaction check",
)
async def latest_interactions(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> InteractionCheckResponse:
    return await interaction_service.latest(db, user_id)
