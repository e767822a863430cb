"""
MedCheck Backend - Health Check Route
=====================================

What:  Liveness/readiness probe for Docker and load balancers. No auth.
How:   SELECT 1 against the database, and the Gemini circuit breaker state
       plus a list_models() call.

Status levels:
    healthy:    database and Gemini reachable
    degraded:   database fine, Gemini unavailable, unconfigured or circuit open;
                medications, reminders and tracking still work
    unhealthy:  database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from medcheck import __version__
from medcheck.database import engine
from medcheck.schemas.common import HealthResponse
from medcheck.services.gemini_service import CircuitBreaker, gemini_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


async def database_status() -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return "connected"
    except Exception as e:
        logger.warning("Health check: database unreachable: %s", str(e))
        return "disconnected"


async def gemini_status() -> str:
    if not gemini_service.is_configured:
        return "not_configured"
    if gemini_service.circuit_breaker.state == CircuitBreaker.OPEN:
        return "circuit_open"
    return "available" if await gemini_service.health_check() else "unavailable"


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check():
    db_status = await database_status()
    ai_status = await gemini_status()

    if db_status != "connected":
        overall = "unhealthy"
    elif ai_status != "available":
        overall = "degraded"
    else:
        overall = "healthy"

    body = HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        gemini=ai_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if overall == "unhealthy":
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
