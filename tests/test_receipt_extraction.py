"""
Tests for receipt image intake.
"""

import pytest

from smart_shopper.ingestion import ReceiptImage, ReceiptImageError


def test_valid_image_encodes_to_base64():
    image = ReceiptImage(data=b"hello", mime_type="image/jpeg")
    assert image.to_base64() == "aGVsbG8="


@pytest.mark.parametrize("mime_type", ["application/pdf", "text/plain", ""])
def test_non_image_is_rejected(mime_type):
    with pytest.raises(ReceiptImageError, match="valid image file"):
        ReceiptImage(data=b"data", mime_type=mime_type)


def test_empty_upload_is_rejected():
    with pytest.raises(ReceiptImageError):
        ReceiptImage(data=b"", mime_type="image/png")


def test_from_path_guesses_mime_type(tmp_path):
    path = tmp_path / "receipt.JPG"
    path.write_bytes(b"\xff\xd8\xff")

    image = ReceiptImage.from_path(str(path))

    assert image.mime_type == "image/jpeg"
    assert image.filename == "receipt.JPG"
    assert image.data == b"\xff\xd8\xff"


def test_from_path_without_suffix_is_rejected(tmp_path):
    path = tmp_path / "receipt"
    path.write_bytes(b"data")

    with pytest.raises(ReceiptImageError):
        ReceiptImage.from_path(str(path))
