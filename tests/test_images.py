"""
Tests for image decoding, temp-file handling and downloads.
"""

import base64
import logging
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
import requests

from cardlead.errors import ErrorKind, InvalidInputError
from cardlead.images import (
    decode_image,
    download_image_as_base64,
    materialize_image,
    mime_type_for,
)
from tests.helpers import make_image_base64


class TestDecodeImage:
    """Test cases for decode_image()."""

    def test_png(self, png_base64):
        raw, suffix = decode_image(png_base64)
        assert suffix == ".png"
        assert raw.startswith(b"\x89PNG")

    def test_jpeg_data_url(self, jpeg_data_url):
        _, suffix = decode_image(jpeg_data_url)
        assert suffix == ".jpg"

    def test_webp(self):
        _, suffix = decode_image(make_image_base64("WEBP"))
        assert suffix == ".webp"

    @pytest.mark.parametrize("payload", [
        "",
        "   ",
        "!!!not-base64!!!",
        base64.b64encode(b"hello world").decode(),
        "data:text/plain;base64,aGVsbG8=",
        "data:image/gif;base64,R0lGODlh",
    ])
    def test_invalid(self, payload):
        with pytest.raises(InvalidInputError) as exc_info:
            decode_image(payload)
        assert exc_info.value.kind == ErrorKind.INVALID_INPUT

    def test_unsupported_format(self):
        with pytest.raises(InvalidInputError):
            decode_image(make_image_base64("GIF"))

    def test_oversized_raster_is_invalid_input(self, png_base64, monkeypatch):
        # 8x8 pixels exceeds twice this limit
        monkeypatch.setattr("PIL.Image.MAX_IMAGE_PIXELS", 10)

        with pytest.raises(InvalidInputError) as exc_info:
            decode_image(png_base64)
        assert exc_info.value.kind == ErrorKind.INVALID_INPUT

    def test_non_string(self):
        with pytest.raises(InvalidInputError):
            decode_image(b"bytes")

    def test_mime_type_for(self):
        assert mime_type_for(Path("a.PNG")) == "image/png"
        assert mime_type_for(Path("a.webp")) == "image/webp"
        assert mime_type_for(Path("a.bin")) == "image/jpeg"


class TestMaterializeImage:
    """Test cases for the temp-file context manager."""

    def test_file_removed_after_block(self, png_base64, temp_folder):
        with materialize_image(png_base64, str(temp_folder)) as path:
            assert path.exists()
            assert path.suffix == ".png"
            assert path.parent == temp_folder
        assert not path.exists()
        assert list(temp_folder.iterdir()) == []

    def test_file_removed_on_exception(self, png_base64, temp_folder):
        with pytest.raises(RuntimeError):
            with materialize_image(png_base64, str(temp_folder)) as path:
                raise RuntimeError("provider blew up")
        assert not path.exists()

    def test_creates_folder(self, png_base64, tmp_path):
        folder = tmp_path / "nested" / "temp"
        with materialize_image(png_base64, str(folder)) as path:
            assert path.exists()

    def test_cleanup_failure_is_logged(self, png_base64, temp_folder, caplog):
        with caplog.at_level(logging.WARNING, logger="cardlead.images"):
            with patch("cardlead.images.Path.unlink", side_effect=PermissionError("denied")):
                with materialize_image(png_base64, str(temp_folder)):
                    pass
        assert "Failed to clean up temp image" in caplog.text

    def test_invalid_image_writes_nothing(self, temp_folder):
        with pytest.raises(InvalidInputError):
            with materialize_image("not an image", str(temp_folder)):
                pass
        assert list(temp_folder.iterdir()) == []


class TestDownloadImage:
    """Test cases for download_image_as_base64()."""

    def test_success(self):
        with patch("cardlead.images.requests.get") as mock_get:
            mock_get.return_value = Mock(content=b"abc", raise_for_status=Mock())
            assert download_image_as_base64("https://blob/x.jpg") == "YWJj"
            assert mock_get.call_args[1]["timeout"] == 30

    def test_failure_returns_none(self):
        with patch("cardlead.images.requests.get", side_effect=requests.exceptions.ConnectionError("down")):
            assert download_image_as_base64("https://blob/x.jpg") is None
