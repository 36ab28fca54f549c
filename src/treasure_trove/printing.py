"""
Label dispatch to a local print service.

A composed label is handed to a print queue with a small, fixed number of
attempts. Each dispatch is tracked as a :class:`PrintJob` that moves
through an explicit state machine::

    PENDING -> SUBMITTING -> SUCCEEDED
                          -> RETRYING -> SUBMITTING ...
                          -> FAILED

Two print services are available: CUPS through the ``lp`` command (the
queue must be a raw queue) and a plain TCP socket to the printer's raw
port (JetDirect, 9100).

A failure before any label data left this process is retried. A failure
after data may have reached the printer (a socket dropped during the send,
or ``lp`` timing out after it may have spooled the job) is not: the label
may be partly printed or already queued, so the job fails at once with
:class:`~treasure_trove.errors.PrintInterruptedError` as the cause instead
of risking a duplicate label.
"""
from __future__ import annotations

import logging
import re
import socket
import subprocess
import time
from typing import TYPE_CHECKING, Callable, Protocol

from .errors import (
    InvalidPayloadError,
    PrintInterruptedError,
    PrintServiceError,
    PrintUnavailableError,
)
from .labels import LabelLayout, compose
from .models import DispatchState, Item, LabelPayload, PrintJob

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_TIMEOUT = 10.0
RAW_PORT = 9100

_REQUEST_ID = re.compile(r"request id is (\S+)")


class PrintService(Protocol):
    """A local print service that accepts raw label data for a queue."""

    def submit(self, payload: bytes, queue: str) -> str | None:
        """Submit payload to queue; return a job id if the service gives one.

        Raises:
            PrintServiceError: The job was not accepted.
            PrintInterruptedError: Data may have reached the printer before
                the failure.
        """
        ...


class CupsPrintService:
    """Submit jobs with ``lp -d QUEUE -o raw``."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, command: str = "lp"):
        self.timeout = timeout
        self.command = command

    def submit(self, payload: bytes, queue: str) -> str | None:
        args = [self.command, "-d", queue, "-o", "raw"]
        try:
            result = subprocess.run(
                args,
                input=payload,
                capture_output=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise PrintServiceError(f"'{self.command}' not found, is CUPS installed?") from e
        except subprocess.TimeoutExpired as e:
            # lp may have spooled the job before hanging
            raise PrintInterruptedError(f"'{self.command}' timed out after {self.timeout}s") from e
        except OSError as e:
            raise PrintServiceError(f"Could not run '{self.command}': {e}") from e

        stdout = result.stdout.decode("utf-8", errors="replace")
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise PrintServiceError(f"Queue {queue} rejected job: {stderr or f'exit code {result.returncode}'}")

        match = _REQUEST_ID.search(stdout)
        return match.group(1) if match else None

    def __repr__(self) -> str:
        return f"CupsPrintService(timeout={self.timeout})"


class RawSocketPrintService:
    """Send jobs straight to a network printer; the queue is ``host[:port]``."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout

    @staticmethod
    def parse_address(queue: str) -> tuple[str, int]:
        host, sep, port = queue.rpartition(":")
        if not sep:
            return queue, RAW_PORT
        if not port.isdigit():
            raise PrintServiceError(f"Invalid printer address: {queue}")
        return host, int(port)

    def submit(self, payload: bytes, queue: str) -> str | None:
        host, port = self.parse_address(queue)
        try:
            conn = socket.create_connection((host, port), timeout=self.timeout)
        except OSError as e:
            raise PrintServiceError(f"Printer {host}:{port} unreachable: {e}") from e
        with conn:
            try:
                conn.sendall(payload)
            except OSError as e:
                raise PrintInterruptedError(f"Connection to {host}:{port} lost while sending: {e}") from e
        return None

    def __repr__(self) -> str:
        return f"RawSocketPrintService(timeout={self.timeout})"


def service_from_config(config: Config) -> PrintService:
    """Build the print service selected by ``printer.backend``."""
    backend = config.printer_backend
    if backend == "cups":
        return CupsPrintService(timeout=config.printer_timeout)
    if backend == "socket":
        return RawSocketPrintService(timeout=config.printer_timeout)
    raise ValueError(f"Unknown printer backend: {backend}. Available: ['cups', 'socket']")


def validate_payload(payload: LabelPayload) -> bytes:
    """Check that payload is one framed ZPL label and encode it.

    Raises:
        InvalidPayloadError: Empty, not text, or not framed by ^XA ... ^XZ.
    """
    if not isinstance(payload, str) or not payload.strip():
        raise InvalidPayloadError("Label payload is empty")
    stripped = payload.strip()
    if not stripped.startswith("^XA") or not stripped.endswith("^XZ"):
        raise InvalidPayloadError("Label payload is not framed by ^XA ... ^XZ")
    return payload.encode("utf-8")


def dispatch(
    payload: LabelPayload,
    queue: str,
    service: PrintService | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    retry_delay: float = DEFAULT_RETRY_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> PrintJob:
    """Submit a label to a print queue, retrying a bounded number of times.

    Args:
        payload: ZPL label from :func:`~treasure_trove.labels.compose`.
        queue: Print queue name (CUPS) or printer address (socket).
        service: Print service; CUPS if None.
        max_attempts: Total number of submissions before giving up.
        retry_delay: Seconds to wait between attempts.
        sleep: Sleep function, replaceable in tests.

    Returns:
        The job in state SUCCEEDED.

    Raises:
        InvalidPayloadError: Payload is malformed; nothing was submitted.
        PrintUnavailableError: Every attempt failed, or one attempt was
            interrupted after sending data (not retried; the label may be
            partly printed or duplicated). The last failure is chained as
            ``__cause__`` and the job is on ``.job``.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    if service is None:
        service = CupsPrintService()

    job = PrintJob(payload=payload, target_queue=queue)
    data = validate_payload(payload)

    while True:
        job.state = DispatchState.SUBMITTING
        job.attempt_count += 1
        try:
            job.job_id = service.submit(data, queue)
        except PrintServiceError as e:
            job.last_error = e
            logger.warning(
                "Print attempt %d/%d to %s failed: %s", job.attempt_count, max_attempts, queue, e
            )
            if isinstance(e, PrintInterruptedError):
                job.state = DispatchState.FAILED
                raise PrintUnavailableError(
                    f"Printing on {queue} was interrupted, the label may be partly printed"
                    f" or still queued; check the printer before retrying: {e}",
                    job=job,
                ) from e
            if job.attempt_count >= max_attempts:
                job.state = DispatchState.FAILED
                raise PrintUnavailableError(
                    f"Printer queue {queue} unavailable after {job.attempt_count} attempts: {e}",
                    job=job,
                ) from e
            job.state = DispatchState.RETRYING
            sleep(retry_delay)
            continue

        job.state = DispatchState.SUCCEEDED
        logger.info("Printed label on %s (job %s, attempt %d)", queue, job.job_id, job.attempt_count)
        return job


def print_item(
    item: Item,
    config: Config,
    container_name: str | None = None,
    location_name: str | None = None,
    service: PrintService | None = None,
    queue: str | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PrintJob:
    """Compose a label for item and dispatch it with the configured printer."""
    payload = compose(item, container_name, location_name, LabelLayout.from_config(config))
    return dispatch(
        payload,
        queue or config.printer_queue,
        service=service or service_from_config(config),
        max_attempts=config.printer_max_attempts,
        retry_delay=config.printer_retry_delay,
        sleep=sleep,
    )
