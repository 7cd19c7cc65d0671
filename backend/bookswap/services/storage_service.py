"""
BookSwap Backend - Avatar Storage Service
===========================================

What:  Validates, stores and resolves profile avatar images.
How:   Checks the declared content type, the size and the header bytes
       (python-magic), then writes the bytes with aiofiles under
       `{user_id}/avatar.<ext>` inside the storage root.
       The database keeps that storage key; public URLs are built from
       AVATAR_PUBLIC_BASE_URL when a response is rendered.
Who:   ProfileService (upload), every response that shows an owner avatar.

Directory Structure:
    storage/avatars/
    └── 3f1c...e9/
        └── avatar.png      (one object per user, overwritten on re-upload)

Security Model:
    1. Content type allow-list (png, jpeg, webp, gif)
    2. Size limit (MAX_AVATAR_SIZE, default 10MB)
    3. Magic-byte check: the contents must be the declared image format
    4. Fixed object name: the client's filename never reaches the path
    5. Resolved paths must stay inside the storage root
"""

import logging
import os
import uuid
from pathlib import Path
from typing import Optional, Tuple

import aiofiles
import magic

from bookswap.config import settings
from bookswap.exceptions import FileStorageError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# ── Allowed File Types ────────────────────────────────────────────────────
ALLOWED_MIME_TYPES = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}

AVATAR_OBJECT_NAME = "avatar"


class StorageService:
    """
    Avatar object store on a mounted volume.

    Args:
        storage_root: Override the configured root (tests pass a tmp dir)
        public_base_url: Override AVATAR_PUBLIC_BASE_URL
    """

    def __init__(
        self,
        storage_root: Optional[str] = None,
        public_base_url: Optional[str] = None,
    ):
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.public_base_url = (public_base_url or settings.avatar_public_base_url).rstrip("/")
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("StorageService initialized with storage_root=%s", self.storage_root)

    def validate_content_type(self, content_type: Optional[str]) -> str:
        """Returns the file extension for an allowed image type."""
        mime = (content_type or "").split(";")[0].strip().lower()
        if mime not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message="Avatar must be a PNG, JPEG, WebP or GIF image",
                field="file",
                context={"content_type": mime, "allowed": sorted(set(ALLOWED_MIME_TYPES))},
            )
        return ALLOWED_MIME_TYPES[mime]

    def validate_mime_type(self, content: bytes, declared_extension: str) -> str:
        """
        Check the file's header bytes against the declared type.

        What:    python-magic reads the leading bytes (magic numbers) and
                 reports the real type. A file labelled image/png that is
                 actually HTML never reaches the public avatar URL.

        Returns:
            Detected MIME type

        Raises:
            ValidationError: Not an allowed image, or not the declared format
            FileStorageError: libmagic itself failed
        """
        try:
            detected = magic.from_buffer(content, mime=True)
        except Exception as e:
            logger.error("MIME type detection failed: %s", str(e))
            raise FileStorageError(
                message="Could not verify file type. Please try again.",
                context={"error": str(e)},
            )

        if ALLOWED_MIME_TYPES.get(detected) != declared_extension:
            raise ValidationError(
                message="File contents do not match a PNG, JPEG, WebP or GIF image of the declared type",
                field="file",
                context={"detected_mime": detected, "declared_extension": declared_extension},
            )
        return detected

    def validate_size(self, size: int) -> None:
        max_mb = settings.max_avatar_size / (1024 * 1024)
        if size == 0:
            raise ValidationError(message="The uploaded file is empty", field="file")
        if size > settings.max_avatar_size:
            raise ValidationError(
                message=f"File size ({size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="file",
                context={"max_size_mb": max_mb, "actual_size": size},
            )

    def avatar_key(self, user_id: uuid.UUID, extension: str) -> str:
        return f"{user_id}/{AVATAR_OBJECT_NAME}.{extension}"

    def resolve(self, key: str) -> Path:
        """
        Absolute path of a storage key.

        Raises:
            ValidationError if the key escapes the storage root
        """
        path = (self.storage_root / key).resolve()
        if path != self.storage_root and self.storage_root not in path.parents:
            raise ValidationError(message="Invalid file path", field="path")
        return path

    def public_url(self, key: Optional[str]) -> Optional[str]:
        """Public URL for a storage key; absolute URLs pass through unchanged."""
        if not key:
            return None
        if key.startswith(("http://", "https://")):
            return key
        return f"{self.public_base_url}/{key.lstrip('/')}"

    async def store_avatar(
        self,
        user_id: uuid.UUID,
        content: bytes,
        content_type: Optional[str],
    ) -> Tuple[str, str]:
        """
        Validate and write a user's avatar, replacing any previous one.

        Returns:
            (storage_key, public_url)

        Raises:
            ValidationError: Wrong type, size, or contents that are not that type
            FileStorageError: The write failed
        """
        extension = self.validate_content_type(content_type)
        self.validate_size(len(content))
        self.validate_mime_type(content, extension)

        key = self.avatar_key(user_id, extension)
        path = self.resolve(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store avatar at %s: %s", path, str(e))
            raise FileStorageError(
                message="Failed to save the avatar. Please try again.",
                context={"path": str(path), "os_error": str(e)},
            )

        # A re-upload in another format leaves the old object behind
        for stale in path.parent.glob(f"{AVATAR_OBJECT_NAME}.*"):
            if stale != path:
                await self.cleanup_file(str(stale))

        logger.info("Avatar stored: %s (%d bytes)", key, len(content))
        return key, self.public_url(key)

    def open_path(self, key: str) -> Path:
        """Path of an existing object, for serving it back."""
        path = self.resolve(key)
        if not path.is_file():
            raise NotFoundError(resource="file", resource_id=key)
        return path

    async def cleanup_file(self, file_path: str) -> None:
        """Best-effort removal; failures are logged, not raised."""
        try:
            path = Path(file_path)
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up file: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", file_path, str(e))


# ── Singleton Instance ────────────────────────────────────────────────────
storage_service = StorageService()
