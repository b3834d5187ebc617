"""Small normalizers shared by the per-source rules."""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import Final
from urllib.parse import urlsplit

_SINGLE_NEWLINE: Final[re.Pattern[str]] = re.compile(r"(?<!\n)\n(?!\n)")


def clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def origin(url: str | None) -> str | None:
    """``scheme://host`` of ``url``, or ``None`` when it has no host."""

    if not url:
        return None
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


def format_from_path(path: str | None) -> str | None:
    """Lower-cased file extension of a path or URL, without the dot."""

    if not path:
        return None
    suffix = PurePosixPath(urlsplit(path).path).suffix
    return suffix[1:].lower() or None


def paragraphs(text: str | None) -> str | None:
    """Double lone newlines so single line breaks survive as paragraphs."""

    cleaned = clean(text)
    if cleaned is None:
        return None
    return _SINGLE_NEWLINE.sub("\n\n", cleaned)
