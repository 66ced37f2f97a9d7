"""File-based persistence for proof-of-delivery images."""

from __future__ import annotations

import io
import secrets
from datetime import date
from pathlib import Path

from PIL import Image

from ..config import settings

# Pillow format name -> (content type, stored file extension).
IMAGE_FORMATS: dict[str, tuple[str, str]] = {
    "JPEG": ("image/jpeg", "jpg"),
    "PNG": ("image/png", "png"),
    "WEBP": ("image/webp", "webp"),
}
EXTENSIONS = {content_type: extension for content_type, extension in IMAGE_FORMATS.values()}


def detect_image_type(payload: bytes) -> str:
    """Return the MIME type of a decodable image, or raise ValueError.

    The payload is opened twice: ``verify`` checks the container and
    ``load`` decodes the pixel data, which catches truncated files.
    """
    try:
        with Image.open(io.BytesIO(payload)) as img:
            img.verify()
            image_format = img.format
        with Image.open(io.BytesIO(payload)) as img:
            img.load()
    except Exception as exc:
        raise ValueError("Invalid or corrupted image file.") from exc
    if image_format not in IMAGE_FORMATS:
        raise ValueError(f"Invalid image format: {image_format}. Allowed: JPEG, PNG, WebP.")
    return IMAGE_FORMATS[image_format][0]


class FileStorage:
    """Thin wrapper around the data root for storing proof images."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = (root or settings.data_root).resolve()
        self.proof_root = self.root / settings.proof_directory
        self.proof_root.mkdir(parents=True, exist_ok=True)

    def validate_proof_image(self, payload: bytes) -> str:
        """Return the detected content type or raise ValueError."""
        if not payload:
            raise ValueError("Proof image is empty.")
        if len(payload) > settings.max_proof_image_bytes:
            max_mb = settings.max_proof_image_bytes / (1024 * 1024)
            raise ValueError(f"Image too large: {len(payload) / (1024 * 1024):.1f}MB. Maximum: {max_mb:.1f}MB")
        content_type = detect_image_type(payload)
        if content_type not in settings.proof_allowed_types:
            raise ValueError(f"Image type {content_type} is not accepted as proof.")
        return content_type

    def save_proof_image(self, delivery_id: str, scheduled_date: date, payload: bytes) -> str:
        """Store the image under ``YYYY/MM/DD`` and return its path relative to the data root."""
        content_type = self.validate_proof_image(payload)
        extension = EXTENSIONS[content_type]
        directory = self.proof_root / scheduled_date.strftime("%Y/%m/%d")
        filename = f"{delivery_id}_{secrets.token_hex(4)}.{extension}"
        self.write_bytes(directory / filename, payload)
        return (directory / filename).relative_to(self.root).as_posix()

    def write_bytes(self, path: Path, payload: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as handle:
            handle.write(payload)
