"""
Extraction coordinator: free text in, candidate items out.

Picks the language-model extractor when one is configured, falls back to
the rule-based extractor whenever the model fails or returns nothing, and
merges duplicate items. :func:`extract` never raises.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from .errors import ExtractionError
from .fallback import RuleBasedExtractor
from .models import CandidateItem
from .normalize import canonical_name, clean_name

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


class TextExtractor(Protocol):
    """Anything that can turn free text into candidate items."""

    def extract(self, text: str) -> list[CandidateItem]:
        ...


def select_extractor(config: Config | None) -> TextExtractor | None:
    """Return the model-backed extractor if enabled in config, else None."""
    if config is None or not config.llm_enabled:
        return None
    from .llm import ModelExtractor

    return ModelExtractor.from_config(config)


def merge_candidates(candidates: list[CandidateItem]) -> list[CandidateItem]:
    """Merge candidates that name the same thing.

    Names are compared by :func:`canonical_name` (case, spacing and plural
    forms ignored); quantities of equal names are summed. The first-seen
    display name and confidence are kept, and the output follows first-seen
    order.
    """
    merged: dict[str, CandidateItem] = {}
    for candidate in candidates:
        name = clean_name(candidate.name)
        key = canonical_name(name)
        if not key:
            continue
        if key in merged:
            merged[key].quantity += candidate.quantity
        else:
            merged[key] = CandidateItem(
                name=name,
                quantity=candidate.quantity,
                confidence=candidate.confidence,
            )
    return list(merged.values())


def extract(
    text: str,
    config: Config | None = None,
    extractor: TextExtractor | None = None,
) -> list[CandidateItem]:
    """Extract structured items from free text.

    Args:
        text: Raw user text.
        config: Used to decide whether a language model is enabled.
        extractor: Primary extractor to try first; overrides config.

    Returns:
        Merged candidate items, possibly empty. Every item has a non-empty
        name and a quantity of at least 1.
    """
    primary = extractor if extractor is not None else select_extractor(config)
    fallback = RuleBasedExtractor()

    if primary is not None:
        try:
            items = merge_candidates(primary.extract(text))
        except ExtractionError as e:
            logger.warning("Model extraction failed (%s), using rule-based extraction", e)
        except Exception:
            logger.exception("Unexpected error in %r, using rule-based extraction", primary)
        else:
            if items:
                return items
            logger.info("Model extraction returned no items, using rule-based extraction")

    return merge_candidates(fallback.extract(text))
