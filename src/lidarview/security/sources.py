from __future__ import annotations

from pathlib import PurePosixPath
from urllib.parse import urlparse


ALLOWED_SCHEMES = {"http", "https"}


class UnsafeSourceError(ValueError):
    """Raised when a dataset source location is unsafe."""


def _validate_relative_path(user_path: str) -> PurePosixPath:
    path = PurePosixPath(user_path)
    if path.is_absolute():
        raise UnsafeSourceError("Absolute paths are not allowed for dataset sources.")

    for part in path.parts:
        if part == "..":
            raise UnsafeSourceError("Path traversal segments are not allowed.")
        if "\x00" in part:
            raise UnsafeSourceError("NUL byte detected in dataset source.")

    if not path.parts:
        raise UnsafeSourceError("Dataset source is empty.")
    return path


def validate_source_location(source: str) -> str:
    """Accept an http(s) URL or a relative path served next to the viewer.

    The value is returned unchanged (apart from surrounding whitespace) since
    it is also the identity of the dataset in the selection and the ledger.
    """

    value = (source or "").strip()
    if not value:
        raise UnsafeSourceError("Dataset source is empty.")

    parsed = urlparse(value)
    if parsed.scheme:
        if parsed.scheme.lower() not in ALLOWED_SCHEMES:
            raise UnsafeSourceError(f"Unsupported source scheme '{parsed.scheme}'.")
        if not parsed.netloc:
            raise UnsafeSourceError("Source URL has no host.")
        return value

    _validate_relative_path(value)
    return value
