"""
Language-model backed item extraction.

Sends the raw text to a text-completion service together with a fixed
instruction prompt, and reads the reply back as one ``name | quantity``
pair per line. Lines that do not have that shape are skipped.

Two providers are supported:

- ``ollama``: a local Ollama server (``POST {endpoint}/api/generate``).
- ``anthropic``: the Anthropic Messages API through the ``anthropic`` SDK.

Failures are reported as :class:`~treasure_trove.errors.UnreachableError`
or :class:`~treasure_trove.errors.MalformedError`; the extraction
coordinator turns both into a fallback to rule-based extraction.
"""
from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from .errors import MalformedError, UnreachableError
from .models import CandidateItem, Confidence
from .normalize import clean_name

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama3.2"
DEFAULT_ANTHROPIC_MODEL = "claude-3-haiku-20240307"
DEFAULT_TIMEOUT = 10.0
PROVIDERS = ("ollama", "anthropic")

# Separator between name and quantity in the model reply
DELIMITER = "|"

EXTRACTION_PROMPT = """You turn a household note about items being put away into an inventory list.

Output one line per distinct item, in this exact format:
name | quantity

Rules:
- quantity is a whole number, 1 if the note does not say
- name is short and singular or plural as written, without the quantity
- leave out containers and locations ("in the garage", "on the shelf")
- output nothing except the item lines

Note:
{text}
"""

_LINE_PATTERN = re.compile(r"^(?:[-*•]\s+|\d+[.)]\s+)?(?P<name>.+?)\s*\|\s*(?P<quantity>\d+)\s*$")


def build_prompt(text: str, prompt: str = EXTRACTION_PROMPT) -> str:
    return prompt.format(text=text.strip())


def parse_model_response(response: str) -> list[CandidateItem]:
    """Parse a model reply into candidate items.

    Lines that do not match ``name | quantity`` with a positive quantity
    are skipped.

    Raises:
        MalformedError: If not a single line could be parsed.
    """
    items: list[CandidateItem] = []
    for line in (response or "").splitlines():
        match = _LINE_PATTERN.match(line.strip())
        if not match:
            if line.strip():
                logger.debug("Skipping unparseable model line: %r", line)
            continue
        name = clean_name(match.group("name"))
        quantity = int(match.group("quantity"))
        if not name or quantity < 1:
            logger.debug("Skipping model line with empty name or zero quantity: %r", line)
            continue
        items.append(CandidateItem(name=name, quantity=quantity, confidence=Confidence.MODEL_DERIVED))

    if not items:
        raise MalformedError("Model response contained no parseable item lines")
    return items


def _complete_ollama(prompt: str, endpoint: str, model: str, timeout: float) -> str:
    """Run one non-streaming completion against an Ollama server."""
    try:
        import requests
    except ImportError as e:
        raise ImportError(
            "requests required for language-model extraction. "
            "Install with: pip install treasure-trove[llm]"
        ) from e

    url = f"{endpoint.rstrip('/')}/api/generate"
    body = {
        "model": model,
        "prompt": prompt,
        "stream": False,
        "options": {"temperature": 0},
    }
    try:
        response = requests.post(url, json=body, timeout=timeout)
        response.raise_for_status()
    except requests.Timeout as e:
        raise UnreachableError(f"Model endpoint {url} timed out after {timeout}s") from e
    except requests.RequestException as e:
        raise UnreachableError(f"Model endpoint {url} failed: {e}") from e

    try:
        data = response.json()
    except ValueError as e:
        raise MalformedError(f"Model endpoint {url} returned invalid JSON") from e
    if not isinstance(data, dict) or not isinstance(data.get("response"), str):
        raise MalformedError(f"Model endpoint {url} returned no 'response' text")
    return data["response"]


def _complete_anthropic(prompt: str, endpoint: str | None, model: str, timeout: float) -> str:
    """Run one completion through the Anthropic Messages API."""
    try:
        import anthropic
    except ImportError as e:
        raise ImportError(
            "anthropic required for the anthropic provider. "
            "Install with: pip install treasure-trove[llm]"
        ) from e

    kwargs = {"timeout": timeout, "max_retries": 0}
    if endpoint:
        kwargs["base_url"] = endpoint
    client = anthropic.Anthropic(**kwargs)
    try:
        response = client.messages.create(
            model=model,
            max_tokens=1024,
            messages=[{"role": "user", "content": prompt}],
        )
    except anthropic.APIError as e:
        raise UnreachableError(f"Anthropic API call failed: {e}") from e

    return "".join(block.text for block in response.content if hasattr(block, "text"))


def extract_via_model(
    text: str,
    endpoint: str | None,
    model: str | None = None,
    provider: str = "ollama",
    timeout: float = DEFAULT_TIMEOUT,
    prompt: str = EXTRACTION_PROMPT,
) -> list[CandidateItem]:
    """Extract candidate items from text with a language model.

    Args:
        text: Raw user text.
        endpoint: Base URL of the completion service. Required for Ollama;
                  optional base URL override for Anthropic.
        model: Model name; provider default if None.
        provider: "ollama" or "anthropic".
        timeout: Upper bound for the request in seconds.
        prompt: Instruction template with a ``{text}`` placeholder.

    Returns:
        Model-derived candidate items; at least one.

    Raises:
        UnreachableError: Endpoint unreachable, timed out or returned an error.
        MalformedError: Reply contained no parseable item line.
        ValueError: Unknown provider or missing Ollama endpoint.
    """
    if provider not in PROVIDERS:
        raise ValueError(f"Unknown language-model provider: {provider}. Available: {list(PROVIDERS)}")

    full_prompt = build_prompt(text, prompt)
    if provider == "anthropic":
        reply = _complete_anthropic(full_prompt, endpoint, model or DEFAULT_ANTHROPIC_MODEL, timeout)
    else:
        if not endpoint:
            raise ValueError("An endpoint is required for the ollama provider")
        reply = _complete_ollama(full_prompt, endpoint, model or DEFAULT_MODEL, timeout)

    items = parse_model_response(reply)
    logger.debug("Model extracted %d items", len(items))
    return items


class ModelExtractor:
    """TextExtractor backed by :func:`extract_via_model`."""

    def __init__(
        self,
        endpoint: str | None,
        model: str | None = None,
        provider: str = "ollama",
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.endpoint = endpoint
        self.model = model
        self.provider = provider
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: Config) -> ModelExtractor:
        return cls(
            endpoint=config.llm_endpoint,
            model=config.llm_model,
            provider=config.llm_provider,
            timeout=config.llm_timeout,
        )

    def extract(self, text: str) -> list[CandidateItem]:
        return extract_via_model(
            text,
            self.endpoint,
            model=self.model,
            provider=self.provider,
            timeout=self.timeout,
        )

    def __repr__(self) -> str:
        return f"ModelExtractor(provider={self.provider!r}, endpoint={self.endpoint!r}, model={self.model!r})"
