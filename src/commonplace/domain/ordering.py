"""Fractional order keys for siblings under a common parent.

Keys are strings over ``0-9a-z`` compared lexicographically. A new key can
always be placed after the last sibling by appending, and between two siblings
by taking a midpoint character or descending one level, so inserting never
rewrites existing keys.
"""

from __future__ import annotations

import re
from typing import Final

ALPHABET: Final[str] = "0123456789abcdefghijklmnopqrstuvwxyz"
SEED_KEY: Final[str] = "a0"
_KEY_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-z0-9]+$")
_PREFIX_LETTERS: Final[int] = 26


class InvalidKeyError(ValueError):
    """Raised when an order key bound is malformed or leaves no room for a new key."""


def is_valid_order_key(key: str) -> bool:
    return _KEY_PATTERN.fullmatch(key) is not None


def _validate(key: str, *, label: str) -> None:
    if not is_valid_order_key(key):
        raise InvalidKeyError(f"Invalid {label} order key: {key!r}")


def generate_order_key(lower: str | None, upper: str | None) -> str:
    """Return a key sorting strictly between ``lower`` and ``upper``.

    ``None`` stands for an open end. Equal bounds yield ``lower + "a"``.
    """

    if lower is not None:
        _validate(lower, label="lower")
    if upper is not None:
        _validate(upper, label="upper")

    if upper is None:
        return SEED_KEY if lower is None else lower + "a"
    if lower is None:
        return _key_before(upper)
    if lower == upper:
        return lower + "a"
    if lower > upper:
        raise InvalidKeyError(f"Lower bound {lower!r} sorts after upper bound {upper!r}")
    return _key_between(lower, upper)


def generate_order_prefix(index: int) -> str:
    """Map a sibling position to ``a``..``z``, then ``za``..``zz``, ``zza``, ..."""

    if index < 0:
        raise InvalidKeyError(f"Order prefix index must be non-negative, got {index}")
    prefix = ""
    while index >= _PREFIX_LETTERS:
        prefix += "z"
        index -= _PREFIX_LETTERS
    return prefix + chr(ord("a") + index)


def _key_between(lower: str, upper: str) -> str:
    if upper.startswith(lower):
        suffix = _key_before_suffix(upper[len(lower) :])
        if not suffix:
            raise InvalidKeyError(f"No key fits between {lower!r} and {upper!r}")
        return lower + suffix

    position = next(i for i, (a, b) in enumerate(zip(lower, upper, strict=False)) if a != b)
    low = ALPHABET.index(lower[position])
    high = ALPHABET.index(upper[position])
    if high - low > 1:
        return lower[:position] + ALPHABET[low + (high - low + 1) // 2]
    # adjacent characters: any extension of lower stays below upper
    return lower + "a"


def _key_before(upper: str) -> str:
    if upper[0] > "a":
        return "a" + upper
    suffix = _key_before_suffix(upper[1:])
    return upper[0] + suffix


def _key_before_suffix(suffix: str) -> str:
    """Return a string sorting below ``suffix`` (possibly empty)."""

    for position, char in enumerate(suffix):
        value = ALPHABET.index(char)
        if value == 1:
            # a key ending in "0" would leave no room below it
            return suffix[:position] + "0" + ALPHABET[len(ALPHABET) // 2]
        if value > 0:
            return suffix[:position] + ALPHABET[value // 2]
    if suffix:
        return suffix[:-1]
    raise InvalidKeyError("No key sorts before the given bound")
