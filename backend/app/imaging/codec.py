"""Binary image ↔ data URI conversion.

Encoding never re-encodes pixels: the original bytes are base64'd verbatim, so
``decode(encode(x)).data == x.data`` for every readable image.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import re
from pathlib import Path
from typing import BinaryIO, Union

from PIL import Image, UnidentifiedImageError

from app.errors import DecodingError, EncodingError
from app.models.artifacts import BinaryImage

logger = logging.getLogger(__name__)

DATA_URI_PREFIX = "data:image/"

_DATA_URI_RE = re.compile(r"^data:(image/[A-Za-z0-9.+-]+);base64,(.*)$", re.DOTALL)

ImageSource = Union[BinaryImage, bytes, bytearray, str, Path, BinaryIO]


def sniff_media_type(data: bytes) -> str:
    """Identify image bytes with Pillow and return their MIME type."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
    except (UnidentifiedImageError, OSError) as e:
        raise EncodingError("Unreadable image data", detail=str(e)) from e
    media_type = Image.MIME.get(fmt or "")
    if not media_type:
        raise EncodingError(f"Unsupported image format: {fmt}")
    return media_type


def _read_source(source: ImageSource) -> BinaryImage:
    if isinstance(source, BinaryImage):
        return source
    if isinstance(source, (bytes, bytearray)):
        data = bytes(source)
        return BinaryImage(data=data, media_type=sniff_media_type(data) if data else "")
    if isinstance(source, (str, Path)):
        path = Path(source)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise EncodingError(f"Cannot read image file {path.name}", detail=str(e)) from e
        if not data:
            raise EncodingError(f"Image file {path.name} is empty")
        return BinaryImage(data=data, media_type=sniff_media_type(data), filename=path.name)
    try:
        data = source.read()
    except (OSError, ValueError) as e:
        raise EncodingError("Cannot read image stream", detail=str(e)) from e
    name = Path(getattr(source, "name", "") or "upload").name
    if not data:
        raise EncodingError("Image stream is empty")
    return BinaryImage(data=data, media_type=sniff_media_type(data), filename=name)


def encode(source: ImageSource) -> str:
    """Return a ``data:image/<type>;base64,...`` string for an image source."""
    image = _read_source(source)
    if not image.data:
        raise EncodingError("Image is empty")
    media_type = image.media_type
    if not media_type.startswith("image/"):
        media_type = sniff_media_type(image.data)
    encoded = base64.b64encode(image.data).decode("ascii")
    logger.debug("Encoded %s (%d bytes) to data URI", image.filename, image.size)
    return f"data:{media_type};base64,{encoded}"


def decode(data_uri: str, filename: str = "iteration.png") -> BinaryImage:
    """Parse a data URI back into a BinaryImage."""
    if not isinstance(data_uri, str) or not data_uri.startswith(DATA_URI_PREFIX):
        raise DecodingError("Invalid image data: expected a data:image/ URI")
    match = _DATA_URI_RE.match(data_uri)
    if match is None:
        raise DecodingError("Invalid image data: missing base64 marker")
    media_type, payload = match.groups()
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodingError("Invalid image data: malformed base64", detail=str(e)) from e
    if not data:
        raise DecodingError("Invalid image data: empty payload")
    return BinaryImage(data=data, media_type=media_type, filename=filename)


def media_type_of(data_uri: str) -> str:
    match = _DATA_URI_RE.match(data_uri)
    if match is None:
        raise DecodingError("Invalid image data: expected a data:image/ URI")
    return match.group(1)
