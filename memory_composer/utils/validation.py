"""Input validation helpers for image references and output files."""
from __future__ import annotations

import base64
import binascii
from pathlib import Path
from typing import Iterable, Tuple, Union
from urllib.parse import unquote_to_bytes, urlparse

from .. import config
from ..errors import InvalidParameter


def _has_url_scheme(path_str: str) -> bool:
    """Return True if *path_str* looks like a URL with a scheme.

    Single-letter schemes such as ``"C"`` are treated as drive letters on
    Windows and therefore ignored.
    """
    parsed = urlparse(path_str)
    return bool(parsed.scheme and len(parsed.scheme) > 1)


def url_scheme(value: str) -> str:
    """Return the lower-cased scheme of *value* or ``""`` for plain paths."""
    if not _has_url_scheme(value):
        return ""
    return urlparse(value).scheme.lower()


def validate_url(url: str) -> str:
    """Ensure *url* uses one of the schemes the loader knows how to fetch."""
    scheme = url_scheme(url)
    if scheme not in config.ALLOWED_URL_SCHEMES:
        raise ValueError(f"Unsupported URL scheme: {scheme or 'none'}")
    if scheme in {"http", "https"} and not urlparse(url).netloc:
        raise ValueError(f"URL has no host: {url}")
    return url


def decode_data_url(url: str) -> Tuple[str, bytes]:
    """Split a ``data:`` URL into its media type and payload bytes."""
    if not url[:5].lower() == "data:" or "," not in url:
        raise ValueError("Malformed data URL")
    header, _, payload = url[5:].partition(",")
    parts = header.split(";")
    media_type = parts[0] or "text/plain"
    if "base64" in (p.strip().lower() for p in parts[1:]):
        try:
            return media_type, base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"Invalid base64 payload: {exc}") from exc
    return media_type, unquote_to_bytes(payload)


def validate_image_path(path: Union[str, Path], allowed_exts: Iterable[str]) -> Path:
    """Validate a user-supplied image *path*.

    The path must point to an existing file with an allowed extension.
    ``file://`` URLs are accepted and converted; any other URL scheme is
    rejected.  Returns the resolved ``Path`` object.
    """
    path_str = str(path)
    if _has_url_scheme(path_str):
        if url_scheme(path_str) != "file":
            raise ValueError("URLs are not allowed")
        path_str = unquote_to_bytes(urlparse(path_str).path).decode("utf-8")

    p = Path(path_str).expanduser()
    try:
        p = p.resolve(strict=True)
    except FileNotFoundError as exc:
        raise ValueError(f"File does not exist: {path_str}") from exc

    if not p.is_file():
        raise ValueError(f"Not a file: {path_str}")

    if p.suffix.lower() not in {ext.lower() for ext in allowed_exts}:
        raise ValueError(f"Unsupported file extension: {p.suffix}")

    return p


def validate_output_path(path: Union[str, Path], allowed_exts: Iterable[str]) -> Path:
    """Validate an output file *path*.

    Ensures the directory exists, the extension is allowed and the path does not
    contain a URL scheme.  Returns the resolved ``Path``.
    """
    path_str = str(path)
    if _has_url_scheme(path_str):
        raise ValueError("URLs are not allowed")

    p = Path(path_str).expanduser()
    p = p.resolve()

    if not p.parent.exists():
        raise ValueError(f"Directory does not exist: {p.parent}")

    if p.suffix.lower() not in {ext.lower() for ext in allowed_exts}:
        raise ValueError(f"Unsupported file extension: {p.suffix}")

    return p


def validate_dimensions(width: int, height: int) -> Tuple[int, int]:
    """Reject canvas sizes that are not positive integers."""
    for name, value in (("width", width), ("height", height)):
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise InvalidParameter(name, value, "must be a positive integer")
    return width, height


def image_extensions() -> set[str]:
    """Return the allowed file suffixes derived from the configured formats."""
    return {f".{fmt}" for fmt in config.SUPPORTED_IMAGE_FORMATS}
