"""Tests for receipt photo inspection."""

import pytest

from catatuang.config import AppSettings
from catatuang.services.image import UnreadableImageError, inspect_receipt_image

from conftest import image_bytes


class TestInspectReceiptImage:
    """Pillow-based sniffing and limits."""

    @pytest.mark.parametrize("image_format,mime_type", [
        ("JPEG", "image/jpeg"),
        ("PNG", "image/png"),
        ("WEBP", "image/webp"),
    ])
    def test_detects_real_mime_type(self, image_format, mime_type):
        """Test that the MIME type comes from the bytes, not the transport."""
        image = inspect_receipt_image(image_bytes(image_format, (300, 500)), AppSettings())
        assert image.mime_type == mime_type
        assert (image.width, image.height) == (300, 500)

    def test_rejects_empty_upload(self):
        """Test that zero bytes are refused."""
        with pytest.raises(UnreadableImageError):
            inspect_receipt_image(b"", AppSettings())

    def test_rejects_non_image(self):
        """Test that arbitrary bytes are refused."""
        with pytest.raises(UnreadableImageError):
            inspect_receipt_image(b"%PDF-1.4 not a photo", AppSettings())

    def test_rejects_disallowed_format(self):
        """Test that formats outside the configured list are refused."""
        settings = AppSettings(supported_image_formats="jpg,jpeg")
        with pytest.raises(UnreadableImageError, match="Unsupported"):
            inspect_receipt_image(image_bytes("PNG", (300, 300)), settings)

    def test_rejects_gif(self):
        """Test that formats the vision model is not sent are refused."""
        with pytest.raises(UnreadableImageError, match="Unsupported"):
            inspect_receipt_image(image_bytes("GIF", (300, 300)), AppSettings())

    def test_rejects_low_resolution(self):
        """Test the minimum dimension."""
        with pytest.raises(UnreadableImageError, match="resolution"):
            inspect_receipt_image(image_bytes("PNG", (99, 800)), AppSettings())

    def test_rejects_oversized_upload(self):
        """Test the upload size limit."""
        settings = AppSettings(max_upload_size_mb=1)
        with pytest.raises(UnreadableImageError, match="larger"):
            inspect_receipt_image(b"\x00" * (1024 * 1024 + 1), settings)
