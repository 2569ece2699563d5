"""The restricted identifier grammar shared by sources, producer paths and streams.

A *Name* is a string of three or more characters that starts with a letter
and otherwise contains only letters, digits and underscores. Names end up as
components of cache file names, so anything outside the grammar is rejected
rather than escaped.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any, Union

from databridge.exceptions import InvalidNameError

NAME_PATTERN = re.compile(r"[A-Za-z][A-Za-z0-9_]{2,}")
"""Compiled Name grammar. Always applied with :meth:`re.Pattern.fullmatch`."""

NamePath = Union[str, Sequence[str]]


def is_valid_name(candidate: Any) -> bool:
    """Return ``True`` if *candidate* is a string matching the Name grammar."""
    return isinstance(candidate, str) and NAME_PATTERN.fullmatch(candidate) is not None


def validate_name(candidate: Any, what: str = "name") -> str:
    """Return *candidate* unchanged if it is a valid Name.

    Args:
        candidate: The value to check.
        what: Description of the value used in the error message
            (``"datasource name"``, ``"stream name"``...).

    Raises:
        InvalidNameError: If *candidate* is not a valid Name.
    """
    if not is_valid_name(candidate):
        raise InvalidNameError(
            f"Invalid {what} {candidate!r}: must be at least 3 characters, start "
            "with a letter, and contain only letters, digits and underscores"
        )
    return candidate


def normalize_name_path(path: NamePath) -> tuple[str, ...]:
    """Turn a single Name or a sequence of Names into a validated tuple.

    Raises:
        InvalidNameError: If the path is empty or any element is invalid.
    """
    if isinstance(path, str):
        parts: tuple[Any, ...] = (path,)
    elif isinstance(path, Sequence):
        parts = tuple(path)
    else:
        raise InvalidNameError(f"Name path must be a string or a sequence, got {path!r}")
    if not parts:
        raise InvalidNameError("Name path must contain at least one name")
    for part in parts:
        validate_name(part, "name path element")
    return parts
