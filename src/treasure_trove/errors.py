"""
Error types for extraction and printing.

Extraction errors only ever travel between the language-model extractor
and the extraction coordinator, which absorbs them and falls back to the
rule-based extractor. Print errors are raised to the caller once the
dispatcher has given up.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import PrintJob


class TreasureTroveError(Exception):
    """Base class for all errors raised by treasure_trove."""


class ExtractionError(TreasureTroveError):
    """The language-model backend could not produce candidate items."""


class UnreachableError(ExtractionError):
    """The model endpoint could not be reached within the timeout."""


class MalformedError(ExtractionError):
    """The model replied, but nothing in the reply could be parsed."""


class PrintError(TreasureTroveError):
    """A label could not be printed."""


class PrintUnavailableError(PrintError):
    """The print service kept failing; the printer is probably offline.

    Also raised after a single attempt that was interrupted once label data
    may have reached the printer; that label may be partly printed or
    still queued. The last underlying failure is chained as ``__cause__``.
    """

    def __init__(self, message: str, job: PrintJob | None = None):
        super().__init__(message)
        self.job = job

    @property
    def attempts(self) -> int:
        return self.job.attempt_count if self.job else 0


class InvalidPayloadError(PrintError):
    """The label payload is not a well-formed ZPL label. Never retried."""


class PrintServiceError(Exception):
    """Transport-level failure raised by a print service implementation."""


class PrintInterruptedError(PrintServiceError):
    """The service failed after label data may already have reached the printer.

    The label may have been printed partly, or fully, so the job is not
    resubmitted.
    """
