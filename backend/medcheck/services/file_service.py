"""
MedCheck Backend - Image Storage Service
========================================

What:  Validates, stores and serves the images users upload (label photos
       and chat attachments).
How:   Validates extension, size and magic-byte MIME type, then writes the
       bytes under a per-owner, date-organized directory with a UUID name.
Who:   MedicationService (label scans), ChatService (message images) and
       the /api/files route.

Layout:
    storage/
    └── <owner uuid>/
        └── 2025/
            └── 01/
                └── 15/
                    ├── a1b2c3d4-....jpg
                    └── e5f6g7h8-....webp

Access rule:
    A stored file is served only when its relative path starts with the
    caller's own id and resolves inside the storage root. Anything else is
    reported as not found, the same as a missing file.
"""

import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiofiles

from medcheck.config import settings
from medcheck.exceptions import FileStorageError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# ── Allowed File Types ────────────────────────────────────────────────────
# Formats Gemini accepts as inline image data
ALLOWED_MIME_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
}

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp"}

_EXTENSION_MIME = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}

FILES_URL_PREFIX = "/api/files/"


@dataclass
class StoredFile:
    absolute_path: str
    relative_path: str
    mime_type: str

    @property
    def url(self) -> str:
        """Path the owner fetches the image from."""
        return f"{FILES_URL_PREFIX}{self.relative_path}"


class FileService:
    """
    Manages image upload, validation, storage and owner-checked reads.

    Lifecycle of an uploaded image:
        1. validate_and_store() is called with the owner id and raw bytes
        2. Extension check (fast, rejects obviously wrong files)
        3. Size check
        4. MIME type check via magic bytes (catches renamed files)
        5. Written to <owner>/<YYYY>/<MM>/<DD>/<uuid>.<ext>
        6. On a later failure the caller runs cleanup_file()
    """

    def __init__(self, storage_root: Optional[str] = None):
        """
        Args:
            storage_root: Override the default storage path (used in tests).
        """
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    def validate_extension(self, filename: str) -> str:
        """
        Returns:
            Normalized extension (lowercase with dot).

        Raises:
            ValidationError if extension is not allowed.
        """
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext or 'unknown'}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="file",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_size(self, actual_size: int) -> None:
        max_mb = settings.max_file_size / (1024 * 1024)

        if actual_size == 0:
            raise ValidationError(message="The uploaded image is empty.", field="file")

        if actual_size > settings.max_file_size:
            raise ValidationError(
                message=f"File size ({actual_size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="file",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def validate_mime_type(self, file_content: bytes, filename: str) -> str:
        """
        Detect the real MIME type from the file's header bytes.

        Returns:
            Detected MIME type string (e.g., "image/jpeg")

        Raises:
            ValidationError if MIME type is not in the allowed list
        """
        try:
            import magic
            mime_type = magic.from_buffer(file_content, mime=True)
        except ImportError:
            # libmagic missing (e.g. a bare CI image): trust the extension
            logger.warning(
                "python-magic not available - falling back to extension-based type detection. "
                "Install libmagic for production security."
            )
            mime_type = _EXTENSION_MIME.get(Path(filename).suffix.lower(), "application/octet-stream")
        except Exception as e:
            logger.error("MIME type detection failed: %s", str(e))
            raise FileStorageError(
                message="Could not verify file type. Please try again.",
                context={"error": str(e)},
            )

        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message=(
                    f"File content type '{mime_type}' is not supported. "
                    f"The file must be a valid image (PNG, JPEG or WebP)."
                ),
                field="file",
                context={"detected_mime": mime_type, "allowed": sorted(ALLOWED_MIME_TYPES)},
            )

        return "image/jpeg" if mime_type == "image/jpg" else mime_type

    def _generate_storage_path(self, owner_id: uuid.UUID, extension: str) -> tuple:
        """(absolute_path, relative_path) for a new file of the owner."""
        now = datetime.now(timezone.utc)
        relative_path = f"{owner_id}/{now.strftime('%Y/%m/%d')}/{uuid.uuid4()}{extension}"
        return self.storage_root / relative_path, relative_path

    async def store_file(
        self, owner_id: uuid.UUID, content: bytes, extension: str, mime_type: str
    ) -> StoredFile:
        """
        Raises:
            FileStorageError if directory creation or file write fails.
        """
        absolute_path, relative_path = self._generate_storage_path(owner_id, extension)

        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save uploaded image. Please try again.",
                context={"path": relative_path, "os_error": str(e)},
            )

        logger.info("File stored: %s (%d bytes)", relative_path, len(content))
        return StoredFile(str(absolute_path), relative_path, mime_type)

    async def cleanup_file(self, file_path: str) -> None:
        """
        Best-effort removal of a stored file after a failed workflow.

        Accepts an absolute path or a path relative to the storage root.
        Failures are logged, never raised.
        """
        try:
            path = Path(file_path)
            if not path.is_absolute():
                path = self.storage_root / path
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up file: %s", path.name)
            else:
                logger.debug("Cleanup: file already gone: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", file_path, str(e))

    async def validate_and_store(
        self, owner_id: uuid.UUID, filename: str, content: bytes
    ) -> StoredFile:
        """
        Complete validation and storage pipeline, cheapest checks first.
        """
        ext = self.validate_extension(filename)
        self.validate_size(len(content))
        mime_type = self.validate_mime_type(content, filename)
        return await self.store_file(owner_id, content, ext, mime_type)

    # ── Reads ────────────────────────────────────────────────────────────

    def resolve_owned_path(self, owner_id: uuid.UUID, relative_path: str) -> Path:
        """
        Absolute path of an owner's stored file.

        Raises:
            NotFoundError when the path belongs to someone else, escapes the
            storage root, or does not exist.
        """
        relative_path = relative_path.lstrip("/")
        if relative_path.startswith(FILES_URL_PREFIX.lstrip("/")):
            relative_path = relative_path[len(FILES_URL_PREFIX) - 1:]

        candidate = (self.storage_root / relative_path).resolve()
        owner_root = (self.storage_root / str(owner_id)).resolve()

        inside_owner = candidate == owner_root or owner_root in candidate.parents
        if not inside_owner or not candidate.is_file():
            raise NotFoundError(resource="File", resource_id=relative_path)
        return candidate

    async def read_owned_file(self, owner_id: uuid.UUID, relative_path: str) -> bytes:
        path = self.resolve_owned_path(owner_id, relative_path)
        async with aiofiles.open(path, "rb") as f:
            return await f.read()


# ── Singleton Instance ────────────────────────────────────────────────────
file_service = FileService()
