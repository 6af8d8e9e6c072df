"""
Remote translation transport (DeepL-compatible) and its test double.

Transport problems never escape as exceptions: every outcome is reported
as a TransportResult so the dispatcher can fall back to the original text.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from ..glossary.normalizer import truncate

logger = logging.getLogger("overlay-translator")

DEFAULT_API_URL = "https://api-free.deepl.com/v2/translate"
DEFAULT_TIMEOUT = 10.0


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransportResult:
    """Outcome of one remote call.

    Attributes:
        ok: True when a translated string was received
        text: Translated text (success only)
        error: Human-readable failure reason (failure only)
    """
    ok: bool
    text: str | None = None
    error: str | None = None

    @classmethod
    def success(cls, text: str) -> "TransportResult":
        return cls(ok=True, text=text)

    @classmethod
    def failure(cls, error: str) -> "TransportResult":
        return cls(ok=False, error=error)


class RemoteTranslator(Protocol):
    """Protocol for remote translation backends, enabling easy mocking in tests."""

    @property
    def configured(self) -> bool:
        """Whether a credential is available; no call is attempted otherwise."""
        ...

    async def translate(self, text: str, target_language: str, source_language: str) -> TransportResult:
        """Translate a single text.

        Args:
            text: Source text.
            target_language: Target language code (e.g. "RU").
            source_language: Source language code (e.g. "EN").

        Returns:
            TransportResult describing success or failure.
        """
        ...

    async def aclose(self) -> None:
        """Release any connection resources."""
        ...


# ---------------------------------------------------------------------------
# Markup repair
# ---------------------------------------------------------------------------

_CLOSE_VARIANTS = re.compile(r"<\s*/\s*col\s*>", re.IGNORECASE)
_REPEATED_CLOSE = re.compile(r"(?:</col>)+")
_OPEN_TAG = re.compile(r"<\s*col\s*=", re.IGNORECASE)
_DANGLING_CLOSE = re.compile(r"</\s*col\s*$", re.IGNORECASE)


def sanitize_markup(text: str) -> str:
    """Repair colour tags that a remote service mangled.

    Normalizes closing-tag spellings, completes a truncated closer,
    collapses repeated closers, closes unbalanced openers and drops a
    trailing ``<``.

    Example:
        >>> sanitize_markup("<col=ff0000>Гоблин</ col>")
        '<col=ff0000>Гоблин</col>'
    """
    if not text:
        return text
    fixed = _CLOSE_VARIANTS.sub("</col>", text)
    if _DANGLING_CLOSE.search(fixed):
        fixed = _DANGLING_CLOSE.sub("</col>", fixed)
    fixed = _REPEATED_CLOSE.sub("</col>", fixed)

    missing = len(_OPEN_TAG.findall(fixed)) - fixed.count("</col>")
    if missing > 0:
        fixed += "</col>" * missing

    if fixed.endswith("<"):
        fixed = fixed[:-1]
    return fixed


# ---------------------------------------------------------------------------
# DeepL transport
# ---------------------------------------------------------------------------


def _parse_translation(data: Any) -> str:
    """Extract ``translations[0].text`` from a DeepL response body.

    Raises:
        ValueError: If the payload does not have the expected shape
    """
    if not isinstance(data, dict):
        raise ValueError(f"expected JSON object, got {type(data).__name__}")
    translations = data.get("translations")
    if not isinstance(translations, list) or not translations:
        raise ValueError("missing 'translations' list")
    first = translations[0]
    if not isinstance(first, dict) or not isinstance(first.get("text"), str):
        raise ValueError("missing translated 'text'")
    return first["text"]


class DeepLTranslator:
    """Asynchronous DeepL client.

    Usage:
        translator = DeepLTranslator(api_key="...")
        result = await translator.translate("Talk-to", "RU", "EN")
        if result.ok:
            print(result.text)
        await translator.aclose()

    A caller-supplied ``httpx.AsyncClient`` is used as-is (and not closed by
    :meth:`aclose`); otherwise one is created lazily.
    """

    def __init__(
        self,
        api_key: str,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key or ""
        self.api_url = api_url
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def configured(self) -> bool:
        return bool(self.api_key.strip())

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def translate(self, text: str, target_language: str, source_language: str = "EN") -> TransportResult:
        """POST one text to the translate endpoint.

        Timeouts, connection errors, non-success statuses and malformed
        payloads are all reported as ``TransportResult.failure``.
        """
        if not self.configured:
            return TransportResult.failure("API key is not configured")

        form = {
            "text": text,
            "target_lang": target_language,
            "source_lang": source_language,
        }
        headers = {"Authorization": f"DeepL-Auth-Key {self.api_key}"}

        try:
            response = await self._get_client().post(
                self.api_url, data=form, headers=headers, timeout=self.timeout,
            )
            response.raise_for_status()
            translated = _parse_translation(response.json())
        except httpx.TimeoutException:
            logger.error(f"Translation request timed out for '{truncate(text)}'")
            return TransportResult.failure("request timed out")
        except httpx.HTTPStatusError as e:
            logger.error(f"Translation API returned HTTP {e.response.status_code}")
            return TransportResult.failure(f"HTTP {e.response.status_code}")
        except httpx.RequestError as e:
            logger.error(f"Translation request failed: {e}")
            return TransportResult.failure(f"request failed: {e}")
        except ValueError as e:
            # json.JSONDecodeError is a ValueError as well
            logger.error(f"Failed to parse translation response: {e}")
            return TransportResult.failure(f"malformed response: {e}")

        if not translated.strip():
            return TransportResult.failure("empty translation")
        return TransportResult.success(translated)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


# ---------------------------------------------------------------------------
# Mock transport (for testing)
# ---------------------------------------------------------------------------


class MockTranslator:
    """In-process translator returning canned results.

    Args:
        responses: Mapping of source text -> translated text.
        default: Translation for texts missing from ``responses``; when None,
            such texts fail with "no canned response".
        failures: Source texts that always fail.
        configured: Value reported by :attr:`configured`.
        gate: Optional event every call waits on before answering, so tests
            can hold requests in flight.

    Example:
        >>> mock = MockTranslator({"Take": "Взять"})
        >>> (await mock.translate("Take", "RU", "EN")).text
        'Взять'
        >>> mock.call_count
        1
    """

    def __init__(
        self,
        responses: dict[str, str] | None = None,
        default: str | None = None,
        failures: set[str] | None = None,
        configured: bool = True,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.responses = dict(responses or {})
        self.default = default
        self.failures = set(failures or ())
        self._configured = configured
        self.gate = gate
        self.calls: list[dict[str, str]] = []

    @property
    def configured(self) -> bool:
        return self._configured

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def translate(self, text: str, target_language: str, source_language: str = "EN") -> TransportResult:
        self.calls.append({
            "text": text,
            "target_language": target_language,
            "source_language": source_language,
        })
        if self.gate is not None:
            await self.gate.wait()
        if text in self.failures:
            return TransportResult.failure("simulated failure")
        if text in self.responses:
            return TransportResult.success(self.responses[text])
        if self.default is not None:
            return TransportResult.success(self.default)
        return TransportResult.failure("no canned response")

    async def aclose(self) -> None:
        return None
