"""
Helpers for decoding and re-encoding base64 image payloads.
"""

import io
import base64
import binascii
import re
from PIL import Image, UnidentifiedImageError
from .exceptions import InvalidImageError


_DATA_URL_PATTERN = re.compile(r'^data:(?P<mime>[\w/+.-]+)?(;[\w=-]+)*;base64,', re.IGNORECASE)


def strip_data_url(payload: str) -> str:
    """Remove a `data:image/...;base64,` header if the payload carries one."""
    return _DATA_URL_PATTERN.sub('', payload.strip(), count=1)


def decode_payload(payload: str) -> bytes:
    """
    Decode a base64 image payload into raw bytes.

    Args:
        payload: Base64 text, optionally prefixed with a data URL header

    Returns:
        Raw encoded image bytes

    Raises:
        InvalidImageError: If the payload is empty or not valid base64
    """
    if not isinstance(payload, str) or not payload.strip():
        raise InvalidImageError("Image payload cannot be empty")

    try:
        raw = base64.b64decode(strip_data_url(payload), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageError(f"Image payload is not valid base64: {e}")

    if not raw:
        raise InvalidImageError("Image payload decodes to no data")
    return raw


def load_image(payload: str) -> Image.Image:
    """
    Decode a base64 image payload into an RGB PIL image.

    Raises:
        InvalidImageError: If the payload is not a decodable raster image
    """
    raw = decode_payload(payload)
    try:
        image = Image.open(io.BytesIO(raw))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidImageError(f"Image payload is not a decodable raster image: {e}")
    return image.convert('RGB')


def validate_payload(payload: str) -> None:
    """Check that a payload decodes to a raster image without keeping it."""
    load_image(payload)


def to_jpeg_bytes(image: Image.Image, max_size: int, quality: int) -> bytes:
    """Downscale an image to fit `max_size` and encode it as JPEG."""
    image = image.copy()
    if max(image.size) > max_size:
        image.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    image.convert('RGB').save(buffer, format='JPEG', quality=quality)
    return buffer.getvalue()


def encode_image(image: Image.Image, image_format: str = 'PNG') -> str:
    """Encode a PIL image as a base64 payload."""
    buffer = io.BytesIO()
    image.save(buffer, format=image_format)
    return base64.b64encode(buffer.getvalue()).decode()
