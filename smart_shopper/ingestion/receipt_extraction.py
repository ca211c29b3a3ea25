"""
Receipt image intake for vision-based extraction.

Validates uploads and encodes them for the prediction service.
"""

import base64
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

ALLOWED_IMAGE_PREFIX = "image/"


class ReceiptImageError(ValueError):
    """Raised when an upload is not a usable image."""


@dataclass
class ReceiptImage:
    """An uploaded receipt ready to send to the prediction service."""

    data: bytes
    mime_type: str
    filename: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.mime_type or not self.mime_type.startswith(ALLOWED_IMAGE_PREFIX):
            raise ReceiptImageError("Error: Please upload a valid image file (JPEG or PNG).")
        if not self.data:
            raise ReceiptImageError("Error: The uploaded image is empty.")

    def to_base64(self) -> str:
        """Base64 text form of the image bytes."""
        return base64.b64encode(self.data).decode("ascii")

    @classmethod
    def from_path(cls, path: str, mime_type: Optional[str] = None) -> "ReceiptImage":
        """
        Load a receipt image from disk.

        Args:
            path: Image file path
            mime_type: Explicit MIME type (guessed from the suffix otherwise)
        """
        file_path = Path(path)
        if mime_type is None:
            suffix = file_path.suffix.lower().lstrip(".")
            mime_type = f"image/{'jpeg' if suffix == 'jpg' else suffix}" if suffix else ""
        return cls(data=file_path.read_bytes(), mime_type=mime_type, filename=file_path.name)
