"""
Security utilities for the Object Aggregator service.

This module validates the two pieces of caller- or bucket-controlled text
that end up inside generated artifacts:

- archive entry names, derived from S3 keys, which must not let a consumer
  extracting the archive write outside the target directory
- the ``fileType`` query parameter, which is embedded in the output key
"""

import re
import unicodedata
from pathlib import PurePosixPath

from .exceptions import InvalidInputError, RequestError

# Module-level constants for improved performance
_DRIVE_PREFIX = re.compile(r"^[a-zA-Z]:")
_INVALID_CONTROL_CHARS: set[int] = set(range(0x00, 0x20)) | {0x7F}  # includes DEL
_FILE_TYPE_PATTERN = re.compile(r"[A-Za-z0-9]{1,16}")

# Zero-width and directional override characters
_UNICODE_INVISIBLES: set[int] = {
    0x200B,  # Zero Width Space
    0x200C,  # Zero Width Non-Joiner
    0x200D,  # Zero Width Joiner
    0xFEFF,  # Zero Width No-Break Space (BOM)
    0x202E,  # Right-to-Left Override
    0x202D,  # Left-to-Right Override
    0x202C,  # Pop Directional Formatting
    0x2028,  # Line Separator
    0x2029,  # Paragraph Separator
}


class UnsafeEntryNameError(RequestError):
    """Raised when an S3 key cannot be turned into a safe archive entry name."""

    def __init__(self, key: str, reason: str, **kwargs):
        message = f"File name is not safe to archive: {reason}"
        context = {"key": key, "reason": reason}
        super().__init__(message, error_code="UNSAFE_ENTRY_NAME", context=context, **kwargs)


def archive_entry_name(key: str) -> str:
    """
    Derive the archive entry name for an S3 key: its last path segment.

    Windows drive letters and backslashes are normalized first, so
    ``C:\\reports\\q1.pdf`` and ``reports/q1.pdf`` both become ``q1.pdf``.

    Raises:
        UnsafeEntryNameError: If the key has no usable basename, or the
            basename contains control or invisible Unicode characters.

    Examples:
        >>> archive_entry_name("input/2024/report.pdf")
        'report.pdf'

        >>> archive_entry_name("input/")
        UnsafeEntryNameError: File name is not safe to archive: empty name
    """
    if any(ord(c) in _INVALID_CONTROL_CHARS for c in key):
        raise UnsafeEntryNameError(key, "control characters")

    for char in key:
        if ord(char) in _UNICODE_INVISIBLES or unicodedata.category(char) == "Cf":
            raise UnsafeEntryNameError(key, "invisible Unicode characters")

    key_posix = _DRIVE_PREFIX.sub("", key).replace("\\", "/")
    if key_posix.endswith("/"):
        raise UnsafeEntryNameError(key, "empty name")

    name = PurePosixPath(key_posix).name
    if name in {"", ".", ".."}:
        raise UnsafeEntryNameError(key, "empty name")
    if name != name.strip():
        raise UnsafeEntryNameError(key, "leading or trailing whitespace")

    return name


def normalize_file_type(file_type: str) -> str:
    """
    Validate a ``fileType`` query parameter and strip an optional leading dot.

    Only 1-16 ASCII letters or digits are accepted, since the value becomes
    part of the output key and of the extension filter.
    """
    candidate = file_type.strip()
    if candidate.startswith("."):
        candidate = candidate[1:]
    if not _FILE_TYPE_PATTERN.fullmatch(candidate):
        raise InvalidInputError(
            "fileType must be 1-16 letters or digits, for example 'pdf'.",
            context={"file_type": file_type},
        )
    return candidate
