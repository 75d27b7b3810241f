"""Filesystem storage for uploaded menu images."""

import logging
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path

from canteen_ordering_service.errors import ValidationError

logger = logging.getLogger(__name__)

IMAGE_SUBDIRECTORY = "menu-images"
ALLOWED_EXTENSIONS = frozenset({".jpeg", ".jpg", ".png", ".gif", ".webp"})
ALLOWED_CONTENT_TYPES = frozenset(
    {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
)
MAX_IMAGE_BYTES = 5 * 1024 * 1024


@dataclass
class ImageUpload:
    """An uploaded image file held in memory.

    Attributes:
        filename: Client-side file name, used for the extension and stem
        content_type: MIME type reported by the client
        content: Raw file bytes
    """

    filename: str
    content_type: str
    content: bytes


class ImageStore:
    """Stores menu images below ``<root>/menu-images``.

    Stored images are referenced by their path relative to ``root``
    (e.g. ``menu-images/masala-dosa-1718000000000-42.png``), which is also
    the path they are served under from ``/upload``.
    """

    def __init__(self, root: str | Path) -> None:
        """Initialize the store, creating the image directory if needed.

        Args:
            root: Upload root directory
        """
        self.root = Path(root)
        (self.root / IMAGE_SUBDIRECTORY).mkdir(parents=True, exist_ok=True)

    def save(self, upload: ImageUpload) -> str:
        """Validate and write an uploaded image.

        Args:
            upload: The uploaded file

        Returns:
            str: Relative path of the stored image

        Raises:
            ValidationError: If the file is not an allowed image or too large
        """
        original = Path(upload.filename or "")
        extension = original.suffix.lower()

        if extension not in ALLOWED_EXTENSIONS or upload.content_type not in ALLOWED_CONTENT_TYPES:
            raise ValidationError("Only image files (JPEG, JPG, PNG, GIF, WEBP) are allowed")
        if not upload.content:
            raise ValidationError("Uploaded image is empty")
        if len(upload.content) > MAX_IMAGE_BYTES:
            raise ValidationError("Image must not exceed 5MB")

        stem = re.sub(r"\s+", "-", original.stem) or "image"
        unique_suffix = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}"
        relative_path = f"{IMAGE_SUBDIRECTORY}/{stem}-{unique_suffix}{extension}"

        (self.root / relative_path).write_bytes(upload.content)
        logger.info(f"Stored menu image {relative_path}")
        return relative_path

    def delete(self, relative_path: str | None) -> bool:
        """Delete a stored image.

        Failures are logged and reported through the return value so that a
        leftover file never masks the outcome of the operation that caused
        the cleanup.

        Args:
            relative_path: Path returned by :meth:`save`

        Returns:
            bool: True if a file was removed
        """
        if not relative_path:
            return False

        full_path = (self.root / relative_path).resolve()
        if self.root.resolve() not in full_path.parents:
            logger.warning(f"Refusing to delete image outside upload root: {relative_path}")
            return False

        try:
            full_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Failed to delete image {relative_path}: {e}")
            return False

        logger.info(f"Deleted menu image {relative_path}")
        return True
