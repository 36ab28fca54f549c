"""
Treasure Trove - a household ledger for tools and treasures

Features:
- Turn free text ("two boxes of screws and a hammer") into inventory items
- Optional language-model extraction with a rule-based fallback
- ZPL labels for thermal label printers, printed through CUPS or raw TCP
- Web form, JSON API and CLI
"""

from ._version import __version__
from .errors import (
    ExtractionError,
    InvalidPayloadError,
    MalformedError,
    PrintError,
    PrintUnavailableError,
    UnreachableError,
)
from .extraction import extract
from .fallback import segment
from .labels import compose
from .models import CandidateItem, Confidence, Item, PrintJob
from .printing import dispatch

__all__ = [
    "__version__",
    "extract",
    "segment",
    "compose",
    "dispatch",
    "CandidateItem",
    "Confidence",
    "Item",
    "PrintJob",
    "ExtractionError",
    "UnreachableError",
    "MalformedError",
    "PrintError",
    "PrintUnavailableError",
    "InvalidPayloadError",
]
