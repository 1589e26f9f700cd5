"""
How Sitter Backend — Property Image Store
===========================================

What:  Validates, stores, orders and removes images attached to properties.
Why:   Centralizes all file system operations with security checks.
How:   Validates extension, size and sniffed MIME type, writes files with
       aiofiles into date-organized directories under UUID names, and keeps
       the property_images rows (order, primary flag) in step.
Who:   Properties router (upload/delete/primary/reorder), PropertyService
       (file cleanup on delete) and the files router (serving).

Security Model:
    1. Extension check:  fast rejection of obviously wrong files
    2. Size check:       bounded memory use, empty files rejected
    3. MIME sniffing:    libmagic inspects the header bytes (renamed files fail)
    4. UUID filename:    no user input ever reaches the file system path
    5. Path resolution:  served paths must stay inside the storage root

Directory Structure:
    storage/
    └── properties/
        └── 2024/
            └── 03/
                └── 15/
                    ├── a1b2c3d4-....jpg
                    └── e5f6g7h8-....webp

Primary image rule:
    The first image ever added to a property becomes primary. The primary
    image cannot be deleted; promote another image first.
"""

import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import aiofiles
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from howsitter.config import settings
from howsitter.exceptions import (
    ConflictError,
    DatabaseError,
    FileStorageError,
    HowSitterError,
    NotFoundError,
    ValidationError,
)
from howsitter.models.property import Property, PropertyImage
from howsitter.schemas.property import is_stored_path

logger = logging.getLogger(__name__)

# ── Allowed File Types ────────────────────────────────────────────────────
ALLOWED_MIME_TYPES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}

# Sub-directory of the storage root holding property images
IMAGE_PREFIX = "properties"


def _detect_mime_type(content: bytes) -> str:
    """Sniff the MIME type from the file's magic bytes (libmagic)."""
    import magic

    return magic.from_buffer(content, mime=True)


class ImageService:
    """
    Manages the property image lifecycle.

    Lifecycle of an upload:
        1. Router reads each UploadFile → (filename, bytes)
        2. All files are validated before anything is written
        3. Files are written to disk one by one
        4. Rows are inserted with display_order continuing from the max
        5. On any failure: files written so far are removed
    """

    def __init__(self, storage_root: Optional[str] = None):
        """
        Args:
            storage_root: Override the default storage path (used in tests).
        """
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("ImageService initialized with storage_root=%s", self.storage_root)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_extension(self, filename: str) -> str:
        """Return the normalized extension or raise ValidationError."""
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext or filename}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="images",
                context={"filename": filename, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_size(self, filename: str, size: int) -> None:
        max_mb = settings.max_file_size / (1024 * 1024)
        if size == 0:
            raise ValidationError(
                message=f"File '{filename}' is empty",
                field="images",
                context={"filename": filename},
            )
        if size > settings.max_file_size:
            raise ValidationError(
                message=(
                    f"File '{filename}' ({size / (1024 * 1024):.1f}MB) exceeds "
                    f"maximum of {max_mb:.0f}MB."
                ),
                field="images",
                context={"filename": filename, "max_size_mb": max_mb, "actual_size": size},
            )

    def validate_mime_type(self, filename: str, content: bytes) -> str:
        """
        Check the sniffed MIME type against the allow-list.

        Raises:
            ValidationError: content is not an allowed image type
            FileStorageError: libmagic could not inspect the content
        """
        try:
            mime_type = _detect_mime_type(content)
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
                    "The file must be a JPEG, PNG, GIF or WebP image."
                ),
                field="images",
                context={"filename": filename, "detected_mime": mime_type},
            )
        return mime_type

    def validate(self, filename: str, content: bytes) -> str:
        """Run every check for one file; returns the extension to store under."""
        ext = self.validate_extension(filename)
        self.validate_size(filename, len(content))
        self.validate_mime_type(filename, content)
        return ext

    # ── File System ───────────────────────────────────────────────────────

    def _generate_storage_path(self, extension: str) -> Tuple[Path, str]:
        """properties/YYYY/MM/DD/<uuid><ext> → (absolute, relative)."""
        date_dir = datetime.now(timezone.utc).strftime("%Y/%m/%d")
        relative_path = f"{IMAGE_PREFIX}/{date_dir}/{uuid.uuid4()}{extension}"
        return self.storage_root / relative_path, relative_path

    async def store_file(self, content: bytes, extension: str) -> Tuple[str, str]:
        """Write bytes to a fresh path. Returns (absolute_path, relative_path)."""
        absolute_path, relative_path = self._generate_storage_path(extension)
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
        return str(absolute_path), relative_path

    def resolve_path(self, relative_path: str) -> Path:
        """
        Map a stored relative path to an absolute file path.

        Raises NotFoundError for paths escaping the storage root or missing files.
        """
        candidate = (self.storage_root / relative_path).resolve()
        if not candidate.is_relative_to(self.storage_root) or not candidate.is_file():
            raise NotFoundError("File", relative_path)
        return candidate

    async def cleanup_file(self, file_path: str) -> None:
        """
        Best-effort removal of a stored file.

        Accepts an absolute path or a path relative to the storage root.
        Missing files are ignored; other failures are logged, not raised,
        since the database change they belong to has already been decided.
        """
        path = Path(file_path)
        if not path.is_absolute():
            path = (self.storage_root / path).resolve()
            if not path.is_relative_to(self.storage_root):
                logger.warning("Refusing to remove path outside storage: %s", file_path)
                return
        try:
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up file: %s", path.name)
            else:
                logger.debug("Cleanup: file already gone: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", file_path, str(e))

    async def cleanup_files(self, paths: Sequence[str]) -> None:
        for p in paths:
            if is_stored_path(p):
                await self.cleanup_file(p)

    # ── Property Images ───────────────────────────────────────────────────

    async def list_images(self, db: AsyncSession, property_id: uuid.UUID) -> List[PropertyImage]:
        stmt = (
            select(PropertyImage)
            .where(PropertyImage.property_id == property_id)
            .order_by(PropertyImage.display_order.asc(), PropertyImage.id.asc())
        )
        return list((await db.execute(stmt)).scalars().all())

    async def upload_images(
        self,
        db: AsyncSession,
        prop: Property,
        files: Sequence[Tuple[str, bytes]],
    ) -> List[PropertyImage]:
        """
        Validate and attach images to an (already authorized) property.

        Raises:
            ValidationError: no files, too many files, or an invalid file
            FileStorageError / DatabaseError: storage failed (files rolled back)
        """
        if not files:
            raise ValidationError("No images uploaded", field="images")
        if len(files) > settings.max_files_per_upload:
            raise ValidationError(
                f"At most {settings.max_files_per_upload} images can be uploaded at once",
                field="images",
                context={"received": len(files)},
            )

        # Validate everything first: a bad fifth file must not leave four on disk
        extensions = [self.validate(name, content) for name, content in files]

        written: List[str] = []
        try:
            stmt = select(
                func.max(PropertyImage.display_order),
                func.count(PropertyImage.id),
            ).where(PropertyImage.property_id == prop.id)
            max_order, existing_count = (await db.execute(stmt)).one()
            next_order = 0 if max_order is None else max_order + 1
            has_primary = bool(existing_count)

            images: List[PropertyImage] = []
            for i, ((name, content), ext) in enumerate(zip(files, extensions)):
                absolute_path, relative_path = await self.store_file(content, ext)
                written.append(absolute_path)
                image = PropertyImage(
                    property_id=prop.id,
                    image_url=relative_path,
                    is_primary=not has_primary and i == 0,
                    display_order=next_order + i,
                )
                db.add(image)
                images.append(image)
            await db.flush()

            logger.info("Uploaded %d image(s) to property %s", len(images), prop.id)
            return images

        except Exception as e:
            for path in written:
                await self.cleanup_file(path)
            if isinstance(e, HowSitterError):
                raise
            logger.error("Unexpected error in upload_images: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Failed to save images. Please try again.",
                context={"original_error": type(e).__name__},
            )

    async def _get_image(
        self, db: AsyncSession, prop: Property, image_id: int
    ) -> PropertyImage:
        image = await db.get(PropertyImage, image_id)
        if image is None or image.property_id != prop.id:
            raise NotFoundError("Image", str(image_id))
        return image

    async def delete_image(
        self, db: AsyncSession, prop: Property, image_id: int
    ) -> Optional[str]:
        """
        Remove a non-primary image row.

        Returns the stored file path for the caller to clean up once the
        transaction has committed (None for external URLs).
        """
        image = await self._get_image(db, prop, image_id)
        if image.is_primary:
            raise ConflictError(
                "Cannot delete the primary image. Set another image as primary first.",
                context={"image_id": image_id},
            )
        path = image.image_url
        await db.delete(image)
        await db.flush()
        logger.info("Deleted image %s of property %s", image_id, prop.id)
        return path if is_stored_path(path) else None

    async def set_primary(
        self, db: AsyncSession, prop: Property, image_id: int
    ) -> PropertyImage:
        """Make `image_id` the single primary image of the property."""
        image = await self._get_image(db, prop, image_id)
        await db.execute(
            update(PropertyImage)
            .where(PropertyImage.property_id == prop.id, PropertyImage.id != image_id)
            .values(is_primary=False)
            .execution_options(synchronize_session="fetch")
        )
        image.is_primary = True
        await db.flush()
        return image

    async def reorder(
        self, db: AsyncSession, prop: Property, image_ids: Sequence[int]
    ) -> List[PropertyImage]:
        """
        Assign display_order 0..n-1 following `image_ids`.

        The list must name exactly the property's images.
        """
        images = await self.list_images(db, prop.id)
        by_id = {img.id: img for img in images}
        if set(image_ids) != set(by_id):
            raise ValidationError(
                "image_ids must list every image of the property exactly once",
                field="image_ids",
                context={"expected": sorted(by_id), "received": list(image_ids)},
            )
        for order, image_id in enumerate(image_ids):
            by_id[image_id].display_order = order
        await db.flush()
        return [by_id[i] for i in image_ids]


# ── Singleton Instance ────────────────────────────────────────────────────
image_service = ImageService()
