"""
Lexical helpers for item names and quantities.

Splits a leading quantity ("2", "2x", "three", "a") off an item phrase and
produces the canonical form of a name that is used to detect duplicates.
"""
from __future__ import annotations

import re

NUMBER_WORDS: dict[str, int] = {
    "a": 1,
    "an": 1,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
}

# "2", "2x", "3pcs" - digits with an optional glued-on suffix
_LEADING_NUMBER = re.compile(r"^(\d+)[^\d\s]*$")
# "x2" / "×2"
_MULTIPLIER = re.compile(r"^[x×](\d+)$", re.IGNORECASE)
# "hammer x2" / "hammer ×2"
_TRAILING_MULTIPLIER = re.compile(r"^(.*\S)\s+[x×](\d+)$", re.IGNORECASE)
# A lone "x" between the number and the name, as in "2 x hammer"
_LONE_X = re.compile(r"^[x×]\s+", re.IGNORECASE)

_STRIP_CHARS = " \t-*•.;:,\"'`"

_NO_SINGULAR = ("ss", "us", "is")


def clean_name(text: str) -> str:
    """Collapse whitespace and strip list bullets and stray punctuation.

    Examples:
        >>> clean_name("  - box   of screws. ")
        'box of screws'
    """
    if not text:
        return ""
    return " ".join(text.split()).strip(_STRIP_CHARS).strip()


def _parse_token(token: str) -> int | None:
    """Return the quantity a single token stands for, or None."""
    lowered = token.lower()
    if lowered in NUMBER_WORDS:
        return NUMBER_WORDS[lowered]
    match = _LEADING_NUMBER.match(lowered) or _MULTIPLIER.match(lowered)
    if match:
        return int(match.group(1))
    return None


def split_quantity(segment: str) -> tuple[int | None, str]:
    """Split a leading quantity token from an item phrase.

    Never raises. When no usable quantity is found the whole cleaned
    segment is returned as the name with quantity None. Quantities below 1
    are not usable.

    Args:
        segment: One item phrase, e.g. "2 hammers" or "a box of nails".

    Returns:
        Tuple of (quantity or None, remaining name).

    Examples:
        >>> split_quantity("2 hammers")
        (2, 'hammers')
        >>> split_quantity("three boxes of screws")
        (3, 'boxes of screws')
        >>> split_quantity("2x tape")
        (2, 'tape')
        >>> split_quantity("hammer")
        (None, 'hammer')
    """
    cleaned = clean_name(segment)
    if not cleaned:
        return None, ""

    parts = cleaned.split(None, 1)
    quantity = _parse_token(parts[0])
    if quantity is not None:
        if quantity < 1:
            return None, cleaned
        remainder = parts[1] if len(parts) > 1 else ""
        remainder = _LONE_X.sub("", remainder)
        return quantity, clean_name(remainder)

    trailing = _TRAILING_MULTIPLIER.match(cleaned)
    if trailing:
        quantity = int(trailing.group(2))
        if quantity >= 1:
            return quantity, clean_name(trailing.group(1))

    return None, cleaned


def singularize(word: str) -> str:
    """Reduce a lower-case English word to a singular form.

    Simple suffix rules; good enough to match "hammer" with "hammers" or
    "box" with "boxes", not a full inflection engine.

    Examples:
        >>> singularize("batteries")
        'battery'
        >>> singularize("boxes")
        'box'
        >>> singularize("glass")
        'glass'
    """
    if len(word) <= 3:
        return word
    if word.endswith("ies"):
        return word[:-3] + "y"
    if word.endswith(("sses", "xes", "ches", "shes")):
        return word[:-2]
    if word.endswith("s") and not word.endswith(_NO_SINGULAR):
        return word[:-1]
    return word


def canonical_name(name: str) -> str:
    """Return the comparison key for an item name.

    Case, spacing and plural forms are ignored. The display name of an item
    is never replaced by this key.
    """
    return " ".join(singularize(word) for word in clean_name(name).lower().split())
