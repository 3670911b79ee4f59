"""Logo upload validation by size, declared type and magic number.

The declared MIME type is never trusted on its own: the leading bytes must
identify an accepted image format that agrees with the declaration.
"""

import logging

from pydantic import BaseModel

from services.shared.errors import ValidationError

logger = logging.getLogger(__name__)

ACCEPTED_IMAGE_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png"})

# Leading-byte signatures mapped to canonical MIME types
_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\xff\xd8", "image/jpeg"),
    (b"\x89PNG", "image/png"),
)

_CANONICAL = {"image/jpg": "image/jpeg"}


class FileValidationResult(BaseModel):
    """Outcome of a successful validation."""

    valid: bool
    type: str
    size: int


def sniff_image_type(content: bytes) -> str | None:
    """Classify content by its first four bytes.

    Returns:
        ``image/jpeg``, ``image/png`` or None if unrecognized
    """
    header = content[:4]
    for signature, mime_type in _SIGNATURES:
        if header.startswith(signature):
            return mime_type
    return None


class FileSignatureValidator:
    """Validates uploaded logo images."""

    def __init__(self, max_bytes: int = 2 * 1024 * 1024) -> None:
        self.max_bytes = max_bytes

    def validate(self, content: bytes, declared_type: str | None) -> FileValidationResult:
        """Validate an uploaded image.

        Args:
            content: Raw file bytes
            declared_type: MIME type reported by the client

        Returns:
            FileValidationResult with the sniffed type

        Raises:
            ValidationError: If the file is empty, too large, of an unaccepted
                type, or its content does not match the declaration
        """
        if not content:
            raise ValidationError("No file provided", field="logo")

        if len(content) > self.max_bytes:
            limit_mb = self.max_bytes // (1024 * 1024)
            raise ValidationError(
                f"File size exceeds maximum allowed ({limit_mb}MB)", field="logo"
            )

        declared = (declared_type or "").lower()
        if declared not in ACCEPTED_IMAGE_TYPES:
            raise ValidationError(
                "Invalid file type. Only JPG, JPEG & PNG files are allowed", field="logo"
            )

        actual = sniff_image_type(content)
        if actual is None or actual != _CANONICAL.get(declared, declared):
            logger.warning(f"Rejected upload: declared {declared}, sniffed {actual}")
            raise ValidationError(
                "File content does not match an accepted image format", field="logo"
            )

        return FileValidationResult(valid=True, type=actual, size=len(content))
