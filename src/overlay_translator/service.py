"""
Resolution façade used by the overlay.

TranslationService wires the glossary, cache, limiter and remote translator
together and keeps the one piece of state the dispatcher deliberately does
not: which text each on-screen identity currently shows. Results are applied
only to identities still showing the text they were requested for.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Hashable, Iterable

from .config import TranslatorConfig
from .glossary.matcher import GlossaryMatcher
from .glossary.models import Category
from .glossary.normalizer import safe_language, truncate
from .glossary.store import GlossaryStore, load_language
from .translation.cache import TranslationCache
from .translation.dispatcher import (
    DispatchStatus,
    RequestState,
    TranslationDispatcher,
    TranslationResult,
)
from .translation.limits import TokenBucket
from .translation.remote import DeepLTranslator, RemoteTranslator

logger = logging.getLogger("overlay-translator")


@dataclass(frozen=True)
class Candidate:
    """A visible string reported by the scan.

    Attributes:
        identity: Opaque, hashable handle for the on-screen element
        text: Text currently shown by that element
        category: Category hint derived from where the text appears
    """
    identity: Hashable
    text: str
    category: Category = Category.DEFAULT


@dataclass(frozen=True)
class AppliedTranslation:
    identity: Hashable
    source: str
    translated: str


class TranslationService:
    """Owns the translation pipeline for one overlay session.

    Usage:
        service = TranslationService(load_config())
        service.start()

        service.request(widget_id, "Talk-to", Category.ACTION)
        for applied in service.tick():
            paint(applied.identity, applied.translated)

        await service.close()

    Or let :meth:`run` drive the scan/apply cycle on the event loop.
    """

    def __init__(
        self,
        config: TranslatorConfig | None = None,
        store: GlossaryStore | None = None,
        cache: TranslationCache | None = None,
        translator: RemoteTranslator | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or TranslatorConfig()
        self.target_language = self.config.target_language
        self.store = store or GlossaryStore()
        self.matcher = GlossaryMatcher(self.store, quantifiers=self.config.quantifiers)
        if cache is None:
            cache = TranslationCache(
                self.config.cache_capacity, self.config.cache_path(self.target_language),
            )
        self.cache = cache

        if translator is None and self.config.has_credentials:
            translator = DeepLTranslator(
                self.config.api_key,
                api_url=self.config.api_url,
                timeout=self.config.request_timeout,
            )
        self.translator = translator

        self.dispatcher = TranslationDispatcher(
            self.cache,
            self.matcher,
            self.translator,
            limiter=TokenBucket(
                self.config.rate_limit_capacity, self.config.rate_limit_refill, clock=clock,
            ),
            source_language=self.config.source_language,
            free_form_words=self.config.free_form_words,
        )

        self._clock = clock
        self._last_save = clock()
        self._tracked: dict[Hashable, str] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Load glossaries and the cache snapshot for the target language."""
        self._load_glossaries()
        self.cache.load_snapshot()
        if self.translator is None or not self.translator.configured:
            logger.warning("No translation API key configured; only glossary and cache will be used")

    def _load_glossaries(self) -> None:
        if self.config.glossary_dir is None:
            logger.info("No glossary directory configured")
            self.store.clear()
            return
        load_language(self.store, self.config.glossary_dir, self.target_language)

    async def close(self) -> None:
        """Wait for outstanding calls, save the cache and release the transport."""
        await self.dispatcher.join()
        self.drain()
        self.cache.persist_if_dirty()
        if self.translator is not None:
            await self.translator.aclose()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def lookup(self, text: str, category: Category = Category.DEFAULT) -> str | None:
        """Synchronous cache/glossary query; never performs I/O."""
        if not text or not text.strip():
            return None
        cached = self.cache.peek(text)
        if cached is not None:
            return cached
        return self.dispatcher.glossary_lookup(text, category)

    def request(self, identity: Hashable, text: str, category: Category = Category.DEFAULT) -> DispatchStatus:
        """Track ``text`` for ``identity`` and resolve it.

        The result arrives through :meth:`drain` (immediately for cache and
        glossary hits, a later cycle for remote calls).
        """
        if not text or not text.strip():
            self.forget(identity)
            return DispatchStatus.RESOLVED
        with self._lock:
            self._tracked[identity] = text
        return self.dispatcher.resolve_async(text, self.target_language, category)

    def tracked_text(self, identity: Hashable) -> str | None:
        with self._lock:
            return self._tracked.get(identity)

    def forget(self, identity: Hashable) -> None:
        with self._lock:
            self._tracked.pop(identity, None)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _settle(self, result: TranslationResult) -> list[AppliedTranslation]:
        if result.target_language != self.target_language:
            logger.debug(f"{RequestState.DISCARDED_STALE.value}: '{truncate(result.source)}' was for {result.target_language}")
            return []

        with self._lock:
            identities = [i for i, text in self._tracked.items() if text == result.source]

        if not identities:
            logger.debug(f"{RequestState.DISCARDED_STALE.value}: '{truncate(result.source)}' no longer on screen")
            return []

        state = RequestState.FAILED_FALLBACK if result.failed else RequestState.APPLIED
        logger.debug(
            f"{state.value}: '{truncate(result.source)}' -> '{truncate(result.translated)}' "
            f"({len(identities)} element(s))"
        )
        return [AppliedTranslation(i, result.source, result.translated) for i in identities]

    def drain(self) -> list[AppliedTranslation]:
        """Apply every delivered result whose source is still tracked."""
        applied: list[AppliedTranslation] = []
        for result in self.dispatcher.channel.drain():
            applied.extend(self._settle(result))
        return applied

    def tick(self) -> list[AppliedTranslation]:
        """Drain results and save the cache when the save interval has passed."""
        applied = self.drain()
        now = self._clock()
        if now - self._last_save >= self.config.save_interval:
            self._last_save = now
            self.cache.persist_if_dirty()
        return applied

    # ------------------------------------------------------------------
    # Language / state changes
    # ------------------------------------------------------------------

    def set_target_language(self, code: str) -> bool:
        """Switch the target language, swapping cache file and glossaries.

        Returns:
            True if the language changed
        """
        language = safe_language(code)
        if language == self.target_language:
            return False

        self.cache.persist_if_dirty()
        logger.info(f"Switching target language {self.target_language} -> {language}")
        self.target_language = language

        self.cache = TranslationCache(self.config.cache_capacity, self.config.cache_path(language))
        self.cache.load_snapshot()
        self.dispatcher.cache = self.cache
        self.dispatcher.reset()
        self._load_glossaries()
        return True

    def reset(self) -> None:
        """Forget all tracked identities and pending in-flight texts."""
        with self._lock:
            self._tracked.clear()
        self.dispatcher.reset()

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    async def run(
        self,
        scan: Callable[[], Iterable[Candidate]],
        apply: Callable[[Hashable, str], None],
        stop: asyncio.Event,
    ) -> None:
        """Periodic scan/request/apply cycle until ``stop`` is set.

        Each tick requests every candidate in the order ``scan`` yields them,
        then hands each applicable result to ``apply``. Remote calls complete
        in the background and are picked up by a later tick. The cache is
        saved on exit.
        """
        self.dispatcher.loop = asyncio.get_running_loop()
        logger.info(f"Translation driver started ({self.target_language}, every {self.config.tick_interval}s)")
        try:
            while not stop.is_set():
                try:
                    candidates = list(scan())
                except Exception as e:
                    logger.error(f"Candidate scan failed: {e}", exc_info=True)
                    candidates = []

                for candidate in candidates:
                    self.request(candidate.identity, candidate.text, candidate.category)

                for item in self.tick():
                    try:
                        apply(item.identity, item.translated)
                    except Exception as e:
                        logger.error(f"Applying translation failed for {item.identity!r}: {e}", exc_info=True)

                try:
                    await asyncio.wait_for(stop.wait(), timeout=self.config.tick_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self.cache.persist_if_dirty()
            logger.info("Translation driver stopped")
