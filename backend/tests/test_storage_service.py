"""
BookSwap Backend - Avatar Storage Service Tests
=================================================

What:  Tests for StorageService validation (content type, size), storage
       keys, path containment and public URL resolution.
Why:   Avatar upload is the one place client bytes reach the filesystem.
How:   Each test gets its own storage root under pytest's tmp_path.

Test Strategy:
    ✅ Allowed content types (png, jpeg, webp, gif)
    ✅ Rejected content types (pdf, svg, missing)
    ✅ Size limits (empty, over MAX_AVATAR_SIZE)
    ✅ Header bytes must match the declared image type
    ✅ Fixed object name per user; re-upload replaces the previous object
    ✅ Keys that escape the storage root are refused
"""

import uuid
from pathlib import Path
from unittest.mock import patch

import pytest

from bookswap.config import settings
from bookswap.exceptions import FileStorageError, NotFoundError, ValidationError
from bookswap.services.storage_service import StorageService

GIF_BYTES = b"GIF89a\x01\x00\x01\x00\x80\x00\x00\x00\x00\x00\xff\xff\xff!\xf9\x04\x01\x00\x00\x00\x00,\x00\x00\x00\x00\x01\x00\x01\x00\x00\x02\x02D\x01\x00;"
HTML_BYTES = b"<html><body><script>alert(1)</script></body></html>"


class TestAvatarValidation:
    """Tests for upload validation in StorageService."""

    @pytest.fixture(autouse=True)
    def _service(self, temp_storage):
        self.service = StorageService(storage_root=temp_storage, public_base_url="https://cdn.test/avatars/")

    # ── Content Type Validation ───────────────────────────────────────────

    @pytest.mark.parametrize(
        "content_type,extension",
        [
            ("image/png", "png"),
            ("image/jpeg", "jpg"),
            ("image/jpg", "jpg"),
            ("image/webp", "webp"),
            ("image/gif", "gif"),
            ("IMAGE/PNG", "png"),
            ("image/png; charset=binary", "png"),
        ],
    )
    def test_allowed_content_types(self, content_type, extension):
        assert self.service.validate_content_type(content_type) == extension

    @pytest.mark.parametrize("content_type", ["application/pdf", "image/svg+xml", "", None])
    def test_rejected_content_types(self, content_type):
        with pytest.raises(ValidationError, match="PNG, JPEG, WebP or GIF") as exc_info:
            self.service.validate_content_type(content_type)
        assert exc_info.value.field == "file"

    # ── Size Validation ───────────────────────────────────────────────────

    def test_size_within_limit(self):
        self.service.validate_size(1000)  # should not raise

    def test_size_at_limit(self):
        self.service.validate_size(settings.max_avatar_size)

    def test_size_over_limit(self):
        with pytest.raises(ValidationError, match="exceeds maximum"):
            self.service.validate_size(settings.max_avatar_size + 1)

    def test_empty_file(self):
        with pytest.raises(ValidationError, match="empty"):
            self.service.validate_size(0)

    # ── Magic Byte Validation ─────────────────────────────────────────────

    def test_real_png_passes(self, sample_image_bytes):
        assert self.service.validate_mime_type(sample_image_bytes, "png") == "image/png"

    def test_real_gif_passes(self):
        assert self.service.validate_mime_type(GIF_BYTES, "gif") == "image/gif"

    def test_html_labelled_as_png_is_rejected(self):
        with pytest.raises(ValidationError, match="do not match") as exc_info:
            self.service.validate_mime_type(HTML_BYTES, "png")
        assert exc_info.value.field == "file"

    def test_png_bytes_declared_as_gif_are_rejected(self, sample_image_bytes):
        with pytest.raises(ValidationError, match="do not match"):
            self.service.validate_mime_type(sample_image_bytes, "gif")

    def test_detection_failure_is_a_storage_error(self, sample_image_bytes):
        with patch("bookswap.services.storage_service.magic.from_buffer", side_effect=OSError("libmagic")):
            with pytest.raises(FileStorageError, match="Could not verify"):
                self.service.validate_mime_type(sample_image_bytes, "png")


class TestAvatarStorage:

    @pytest.fixture(autouse=True)
    def _service(self, temp_storage):
        self.root = Path(temp_storage)
        self.service = StorageService(storage_root=temp_storage, public_base_url="https://cdn.test/avatars/")

    @pytest.mark.asyncio
    async def test_store_writes_fixed_object_name(self, sample_image_bytes):
        user_id = uuid.uuid4()

        key, url = await self.service.store_avatar(user_id, sample_image_bytes, "image/png")

        assert key == f"{user_id}/avatar.png"
        assert url == f"https://cdn.test/avatars/{user_id}/avatar.png"
        assert (self.root / key).read_bytes() == sample_image_bytes

    @pytest.mark.asyncio
    async def test_reupload_in_another_format_replaces_old_object(self, sample_image_bytes):
        user_id = uuid.uuid4()
        await self.service.store_avatar(user_id, sample_image_bytes, "image/png")

        key, _ = await self.service.store_avatar(user_id, GIF_BYTES, "image/gif")

        assert sorted(p.name for p in (self.root / str(user_id)).iterdir()) == ["avatar.gif"]
        assert key.endswith("avatar.gif")

    @pytest.mark.asyncio
    async def test_invalid_upload_writes_nothing(self):
        user_id = uuid.uuid4()
        with pytest.raises(ValidationError):
            await self.service.store_avatar(user_id, b"%PDF-1.7", "application/pdf")
        assert not (self.root / str(user_id)).exists()

    @pytest.mark.asyncio
    async def test_html_disguised_as_png_is_never_stored(self):
        user_id = uuid.uuid4()
        with pytest.raises(ValidationError):
            await self.service.store_avatar(user_id, HTML_BYTES, "image/png")
        assert not (self.root / str(user_id)).exists()

    def test_resolve_refuses_path_traversal(self):
        with pytest.raises(ValidationError, match="Invalid file path"):
            self.service.resolve("../../etc/passwd")

    def test_open_path_missing_object(self):
        with pytest.raises(NotFoundError):
            self.service.open_path(f"{uuid.uuid4()}/avatar.png")

    def test_public_url(self):
        assert self.service.public_url(None) is None
        assert self.service.public_url("abc/avatar.png") == "https://cdn.test/avatars/abc/avatar.png"
        # Avatars hosted elsewhere are kept as-is
        assert self.service.public_url("https://images.test/me.png") == "https://images.test/me.png"

    @pytest.mark.asyncio
    async def test_cleanup_missing_file_is_silent(self):
        await self.service.cleanup_file(str(self.root / "nope.png"))
