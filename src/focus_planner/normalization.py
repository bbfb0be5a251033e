"""Utilities to normalize user-entered titles."""

from __future__ import annotations

import re
from typing import Optional

_WHITESPACE_RUN = re.compile(r"\s{2,}")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")


def normalize_title(value: Optional[str]) -> Optional[str]:
    """Trim and collapse whitespace; return ``None`` when nothing is left."""
    if not value:
        return None
    cleaned = _CONTROL_CHARS.sub("", value)
    cleaned = cleaned.replace("\n", " ").replace("\t", " ")
    cleaned = _WHITESPACE_RUN.sub(" ", cleaned).strip()
    return cleaned or None


def normalize_reason(value: Optional[str]) -> Optional[str]:
    """Interruption reasons keep their line breaks, only the edges are trimmed."""
    if not value:
        return None
    cleaned = _CONTROL_CHARS.sub("", value).strip()
    return cleaned or None
