"""Encoding and saving of composed surfaces."""
from __future__ import annotations

import base64
import io
import logging
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, Optional, Union

from PIL import Image

from . import config
from .errors import EncodeFailure
from .utils.image_operations import flatten
from .utils.validation import validate_output_path

LOGGER = logging.getLogger(__name__)

_EXTENSION_FORMATS = {".png": "PNG", ".jpg": "JPEG", ".jpeg": "JPEG", ".webp": "WEBP"}


def normalize_format(fmt: str) -> str:
    """Return the Pillow format name for ``fmt`` (``jpg`` becomes ``JPEG``)."""
    name = str(fmt).strip().upper().lstrip(".")
    if name == "JPG":
        name = "JPEG"
    if name not in config.EXPORT_FORMATS:
        raise EncodeFailure(f"Unsupported export format: {fmt}")
    return name


def mime_type(fmt: str) -> str:
    return config.EXPORT_FORMATS[normalize_format(fmt)]


def _save_params(fmt: str, quality: int) -> Dict[str, Any]:
    """Pillow save options per format."""
    params: Dict[str, Any] = {'format': fmt}
    if fmt == 'JPEG':
        params.update({
            'quality': quality,
            'optimize': True,
            'progressive': True,
            'subsampling': '2x2,1x1,1x1',
        })
    elif fmt == 'WEBP':
        params.update({
            'quality': quality,
            'method': 6,
        })
    elif fmt == 'PNG':
        params.update({
            'optimize': True,
            'compress_level': 6,
        })
    return params


def encode(image: Image.Image, fmt: str = "PNG", quality: int = config.QUALITY_DEFAULT) -> bytes:
    """Serialize ``image`` into an encoded byte buffer.

    Raises:
        EncodeFailure: For empty surfaces, unknown formats or encoder errors
    """
    name = normalize_format(fmt)
    if image is None or image.width == 0 or image.height == 0:
        raise EncodeFailure("Cannot encode an empty surface")
    if not config.QUALITY_MIN <= quality <= config.QUALITY_MAX:
        raise EncodeFailure(f"Quality must be between {config.QUALITY_MIN} and {config.QUALITY_MAX}")

    if name == "JPEG":
        image = flatten(image)
    buffer = io.BytesIO()
    try:
        image.save(buffer, **_save_params(name, quality))
    except (OSError, ValueError, KeyError) as e:
        raise EncodeFailure(f"Failed to encode {name}: {e}") from e
    data = buffer.getvalue()
    LOGGER.debug("Encoded %dx%d surface as %s (%d bytes)", image.width, image.height, name, len(data))
    return data


def to_data_url(data: bytes, fmt: str = "PNG") -> str:
    """Wrap encoded bytes in a ``data:`` URL for preview elements."""
    if not data:
        raise EncodeFailure("Cannot build a data URL from an empty buffer")
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type(fmt)};base64,{encoded}"


def suggest_filename(title: Optional[str] = None, fmt: str = "PNG", timestamp: Optional[float] = None) -> str:
    """Download name in the ``<title>-<millis>.<ext>`` style."""
    stem = re.sub(r"[^\w\- ]+", "", (title or "").strip()).strip() or "collage"
    millis = int((time.time() if timestamp is None else timestamp) * 1000)
    extension = "jpg" if normalize_format(fmt) == "JPEG" else normalize_format(fmt).lower()
    return f"{stem}-{millis}.{extension}"


def save(
    image_or_data: Union[Image.Image, bytes],
    path: Union[str, Path],
    quality: int = config.QUALITY_DEFAULT,
) -> Path:
    """Write an image (or already encoded bytes) to ``path``.

    The format follows the file extension.  Data is written to a temporary
    file in the same directory and renamed into place, so a failure never
    leaves a truncated output behind.
    """
    try:
        target = validate_output_path(path, _EXTENSION_FORMATS)
    except ValueError as e:
        raise EncodeFailure(f"Invalid output path {path}: {e}") from e

    if isinstance(image_or_data, Image.Image):
        data = encode(image_or_data, _EXTENSION_FORMATS[target.suffix.lower()], quality)
    else:
        data = bytes(image_or_data)
        if not data:
            raise EncodeFailure("Refusing to save an empty buffer")

    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.stem}-", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, target)
    except OSError as e:
        Path(tmp_name).unlink(missing_ok=True)
        raise EncodeFailure(f"Failed to write {target}: {e}") from e
    LOGGER.info("Saved composition to %s (%d bytes)", target, len(data))
    return target


__all__ = [
    "encode",
    "mime_type",
    "normalize_format",
    "save",
    "suggest_filename",
    "to_data_url",
]
