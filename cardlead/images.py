"""
Image decoding, temporary materialization and download helpers.
"""

import base64
import binascii
import io
import logging
import os
import re
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Tuple

import requests
from PIL import Image, UnidentifiedImageError

from .errors import InvalidInputError

logger = logging.getLogger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:image/([a-zA-Z0-9.+-]+);base64,", re.IGNORECASE)

# Pillow format name -> file extension
ALLOWED_FORMATS = {
    "JPEG": ".jpg",
    "PNG": ".png",
    "WEBP": ".webp",
}

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}

DOWNLOAD_TIMEOUT = 30


def mime_type_for(image_path: Path) -> str:
    """Determine the MIME type from the file suffix (defaults to JPEG)."""
    return MIME_TYPES.get(Path(image_path).suffix.lower(), "image/jpeg")


def decode_image(image_data: str) -> Tuple[bytes, str]:
    """
    Decode a base64 image and verify it is a supported raster format.

    Args:
        image_data: Base64 string, optionally with a data:image/<fmt>;base64, prefix

    Returns:
        Tuple of (image bytes, file extension)

    Raises:
        InvalidInputError: If the data is not base64 or not a jpeg/png/webp image
    """
    if not isinstance(image_data, str) or not image_data.strip():
        raise InvalidInputError("Invalid image data - must be a base64 encoded string")

    payload = image_data.strip()
    match = DATA_URL_PATTERN.match(payload)
    if match:
        if match.group(1).lower() not in ("jpeg", "jpg", "png", "webp"):
            raise InvalidInputError(
                "Unsupported image format. Please provide a jpeg, png or webp image."
            )
        payload = payload[match.end():]
    elif payload.startswith("data:"):
        raise InvalidInputError("Invalid image format. Please provide a valid base64 encoded image.")

    payload = re.sub(r"\s+", "", payload)
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidInputError("Invalid image format. Please provide a valid base64 encoded image.")
    if not raw:
        raise InvalidInputError("Invalid image format. Please provide a valid base64 encoded image.")

    try:
        with Image.open(io.BytesIO(raw)) as img:
            image_format = img.format
            img.verify()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError):
        raise InvalidInputError("Image data could not be decoded. Please provide a valid image.")

    if image_format not in ALLOWED_FORMATS:
        raise InvalidInputError(
            f"Unsupported image format {image_format}. Please provide a jpeg, png or webp image."
        )

    return raw, ALLOWED_FORMATS[image_format]


def materialize_image(image_data: str, temp_folder: str):
    """
    Decode a base64 image and write it to a temporary file for a block.

    Usage:
        with materialize_image(image_b64, "temp") as image_path:
            provider.extract(image_path, "vision")

    Args:
        image_data: Base64 image string
        temp_folder: Directory for the temporary file

    Raises:
        InvalidInputError: If the image cannot be decoded
    """
    raw, suffix = decode_image(image_data)
    return temp_image_file(raw, suffix, temp_folder)


@contextmanager
def temp_image_file(raw: bytes, suffix: str, temp_folder: str) -> Iterator[Path]:
    """
    Write decoded image bytes to a temporary file for the duration of a block.

    The file is owned by the caller's block and deleted on every exit path,
    including exceptions. A failed deletion is logged, never raised.

    Yields:
        Path to the temporary image file
    """
    Path(temp_folder).mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(suffix=suffix, prefix="card-", dir=temp_folder)
    temp_path = Path(name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(raw)
        logger.debug(f"Saved temp image: {temp_path} ({len(raw) // 1024} KB)")
        yield temp_path
    finally:
        try:
            temp_path.unlink()
            logger.debug(f"Cleaned up temp image: {temp_path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to clean up temp image {temp_path}: {e}")


def download_image_as_base64(url: str, timeout: float = DOWNLOAD_TIMEOUT) -> Optional[str]:
    """
    Download an already-uploaded image and return it base64-encoded.

    Args:
        url: Public image URL from the blob store
        timeout: Request timeout in seconds

    Returns:
        Base64 string, or None if the download failed
    """
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        logger.error(f"Failed to download image {url[:80]}: {e}")
        return None

    return base64.b64encode(response.content).decode("ascii")
