"""
Object key helpers shared by all providers.
"""

import mimetypes
import re

from .errors import InvalidKeyError

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Extensions seen in uploaded archives that mimetypes does not always know
_EXTRA_CONTENT_TYPES = {
    ".log": "text/plain",
    ".ini": "text/plain",
    ".cfg": "text/plain",
    ".conf": "text/plain",
    ".sql": "text/plain",
    ".md": "text/markdown",
}

_SLASHES = re.compile(r"/+")


def normalize_key(key: str) -> str:
    """
    Canonical form of an object key.

    Leading slashes are stripped and repeated slashes collapsed, so
    "/uploads//a.txt" and "uploads/a.txt" address the same object.
    """
    return _SLASHES.sub("/", key).lstrip("/")


def validate_local_key(key: str) -> str:
    """
    Normalize a key and reject anything that could leave a directory root.

    Returns:
        The normalized key

    Raises:
        InvalidKeyError: For empty keys, '.'/'..' segments, NUL bytes or backslashes
    """
    if "\x00" in key:
        raise InvalidKeyError(key, "NUL byte in key")
    if "\\" in key:
        raise InvalidKeyError(key, "backslash in key")

    normalized = normalize_key(key)
    if not normalized:
        raise InvalidKeyError(key, "empty key")
    if normalized.endswith("/"):
        raise InvalidKeyError(key, "key names a directory")

    for segment in normalized.split("/"):
        if segment in (".", ".."):
            raise InvalidKeyError(key, "path traversal segment")

    return normalized


def guess_content_type(key: str) -> str:
    """Guess a MIME type from the key's extension."""
    lowered = key.lower()
    for ext, content_type in _EXTRA_CONTENT_TYPES.items():
        if lowered.endswith(ext):
            return content_type
    content_type, _ = mimetypes.guess_type(lowered, strict=False)
    return content_type or DEFAULT_CONTENT_TYPE


def format_bytes(size: int | float) -> str:
    """Human-readable byte count (B, KB, MB, GB)."""
    if size < 1024:
        return f"{int(size)} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    if size < 1024 * 1024 * 1024:
        return f"{size / (1024 * 1024):.1f} MB"
    return f"{size / (1024 * 1024 * 1024):.2f} GB"
