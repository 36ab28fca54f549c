"""
Rule-based item extraction.

Used whenever no language model is configured or the model call fails.
Deterministic and offline: the text is split on list separators and each
piece is run through the quantity splitter.
"""
from __future__ import annotations

import logging
import re

from .models import CandidateItem, Confidence
from .normalize import split_quantity

logger = logging.getLogger(__name__)

# Commas, semicolons, newlines and the word "and"
SEPARATORS = re.compile(r"[,;\n\r]+|\band\b", re.IGNORECASE)


def split_segments(text: str) -> list[str]:
    """Split free text into item phrases, dropping empty pieces."""
    return [piece.strip() for piece in SEPARATORS.split(text) if piece.strip()]


def segment(text: str) -> list[CandidateItem]:
    """Turn free text into candidate items without any external help.

    Never raises. A phrase without a quantity gets quantity 1; a phrase
    that is nothing but a quantity ("a", "3") is dropped.

    Args:
        text: Raw text, e.g. "2 hammers, a saw and tape".

    Returns:
        List of rule-based candidate items in input order.
    """
    if not isinstance(text, str):
        return []

    items: list[CandidateItem] = []
    for phrase in split_segments(text):
        quantity, name = split_quantity(phrase)
        if not name:
            logger.debug("Dropping phrase without a name: %r", phrase)
            continue
        items.append(CandidateItem(
            name=name,
            quantity=quantity or 1,
            confidence=Confidence.RULE_BASED,
        ))
    return items


class RuleBasedExtractor:
    """TextExtractor backed by :func:`segment`."""

    def extract(self, text: str) -> list[CandidateItem]:
        return segment(text)

    def __repr__(self) -> str:
        return "RuleBasedExtractor()"
