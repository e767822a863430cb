"""
MedCheck Backend - Stored File Route
====================================

Serves label photos and chat images back to their owner. Image URLs stored
on medications and messages look like /api/files/<owner>/<Y>/<m>/<d>/<uuid>.png;
any other user gets 404, the same as for a missing file.
"""

import mimetypes
from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from medcheck.auth import get_current_user_id
from medcheck.schemas.common import ErrorResponse
from medcheck.services.file_service import file_service

router = APIRouter(prefix="/api", tags=["Files"])


@router.get(
    "/files/{file_path:path}",
    response_class=FileResponse,
    responses={
        200: {"description": "Image file"},
        401: {"description": "Missing or invalid access token", "model": ErrorResponse},
        404: {"description": "File not found", "model": ErrorResponse},
    },
    summary="Serve an uploaded image",
)
async def serve_file(
    file_path: str,
    user_id: UUID = Depends(get_current_user_id),
) -> FileResponse:
    path = file_service.resolve_owned_path(user_id, file_path)
    media_type, _ = mimetypes.guess_type(path.name)
    return FileResponse(
        path=str(path),
        media_type=media_type or "application/octet-stream",
        # User-specific content: never cached by shared caches
        headers={"Cache-Control": "private, max-age=86400"},
    )
