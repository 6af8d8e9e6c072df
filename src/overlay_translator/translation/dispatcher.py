"""
Resolution dispatcher: cache, then glossary, then a throttled remote call.

Cache and glossary hits are answered synchronously. Anything else becomes
an asyncio task that calls the remote translator; its outcome is delivered
later. Values are cached exactly as first delivered (glossary text as
authored, remote text case-adjusted to its source), so a text reads the
same on every tick. Every delivered result carries the source text it was
requested for, so a consumer can check that its on-screen text has not
changed in the meantime before applying it.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from ..glossary.matcher import GlossaryMatcher, match_case
from ..glossary.models import Category
from ..glossary.normalizer import safe_language, truncate
from ..glossary.tokenizer import word_count
from .cache import TranslationCache
from .limits import InFlightRegistry, TokenBucket
from .remote import RemoteTranslator, sanitize_markup

logger = logging.getLogger("overlay-translator")

DEFAULT_FREE_FORM_WORDS = 6


class DispatchStatus(str, Enum):
    """What :meth:`TranslationDispatcher.resolve_async` did with a request."""
    RESOLVED = "resolved"          # result delivered synchronously
    PENDING = "pending"            # remote call scheduled
    DUPLICATE = "duplicate"        # same text already in flight, dropped
    RATE_LIMITED = "rate_limited"  # no token this cycle, dropped


class ResultOrigin(str, Enum):
    PASSTHROUGH = "passthrough"
    CACHE = "cache"
    GLOSSARY = "glossary"
    REMOTE = "remote"
    FALLBACK = "fallback"


class RequestState(str, Enum):
    """Lifecycle of one request as seen by the consumer.

    IDLE -> PENDING -> APPLIED | DISCARDED_STALE | FAILED_FALLBACK.
    Terminal states are never retried automatically.
    """
    IDLE = "idle"
    PENDING = "pending"
    APPLIED = "applied"
    DISCARDED_STALE = "discarded_stale"
    FAILED_FALLBACK = "failed_fallback"


@dataclass(frozen=True)
class TranslationResult:
    """A delivered resolution.

    Attributes:
        source: The exact text that was requested
        translated: Text to display (the source itself on pass-through/fallback)
        category: Category hint of the request
        target_language: Target language code
        origin: Which path produced ``translated``
    """
    source: str
    translated: str
    category: Category
    target_language: str
    origin: ResultOrigin

    @property
    def failed(self) -> bool:
        return self.origin is ResultOrigin.FALLBACK


ResultCallback = Callable[[TranslationResult], None]


class ResultChannel:
    """Thread-safe queue of delivered results, drained by the consumer's own cycle."""

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[TranslationResult] = queue.SimpleQueue()

    def post(self, result: TranslationResult) -> None:
        self._queue.put(result)

    def drain(self, limit: int | None = None) -> list[TranslationResult]:
        """Remove and return queued results in delivery order."""
        items: list[TranslationResult] = []
        while limit is None or len(items) < limit:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return items

    def __len__(self) -> int:
        return self._queue.qsize()


class TranslationDispatcher:
    """Resolves texts through cache, glossary and the remote translator.

    Usage:
        dispatcher = TranslationDispatcher(cache, matcher, DeepLTranslator(key))
        status = dispatcher.resolve_async("Talk-to", "RU", Category.ACTION)
        ...
        for result in dispatcher.channel.drain():
            print(result.source, "->", result.translated)

    ``resolve_async`` never blocks and never raises for lookup or transport
    problems. Remote calls run as tasks on the running event loop, or on
    ``loop`` when called from another thread.
    """

    def __init__(
        self,
        cache: TranslationCache,
        matcher: GlossaryMatcher,
        translator: RemoteTranslator | None,
        limiter: TokenBucket | None = None,
        in_flight: InFlightRegistry | None = None,
        source_language: str = "EN",
        free_form_words: int = DEFAULT_FREE_FORM_WORDS,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.cache = cache
        self.matcher = matcher
        self.translator = translator
        self.limiter = limiter if limiter is not None else TokenBucket()
        self.in_flight = in_flight if in_flight is not None else InFlightRegistry()
        self.source_language = safe_language(source_language, default="EN")
        self.free_form_words = free_form_words
        self.loop = loop
        self.channel = ResultChannel()
        self._tasks: set[asyncio.Task] = set()
        self._futures: set[concurrent.futures.Future] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_async(
        self,
        source: str,
        target_language: str,
        category: Category = Category.DEFAULT,
        on_result: ResultCallback | None = None,
    ) -> DispatchStatus:
        """Resolve ``source`` and deliver the result now or later.

        Steps, in order:

        1. empty text: delivered unchanged
        2. cache hit: delivered as stored
        3. glossary hit: cached and delivered
        4. no usable translator: delivered unchanged
        5. text already in flight: dropped (the earlier request will deliver)
        6. no rate-limit token: dropped, a later cycle may retry
        7. otherwise a remote call is scheduled

        Returns:
            DispatchStatus describing which of the above happened
        """
        language = safe_language(target_language)

        if not source or not source.strip():
            self._deliver(TranslationResult(source or "", source or "", category, language, ResultOrigin.PASSTHROUGH), on_result)
            return DispatchStatus.RESOLVED

        cached = self.cache.get(source)
        if cached is not None:
            self._deliver(TranslationResult(source, cached, category, language, ResultOrigin.CACHE), on_result)
            return DispatchStatus.RESOLVED

        hit = self.glossary_lookup(source, category)
        if hit is not None:
            self.cache.put(source, hit)
            self._deliver(TranslationResult(source, hit, category, language, ResultOrigin.GLOSSARY), on_result)
            return DispatchStatus.RESOLVED

        loop = self._target_loop()
        if self.translator is None or not self.translator.configured or loop is None:
            if self.translator is not None and self.translator.configured:
                logger.warning("No event loop available for remote translation; passing text through")
            self._deliver(TranslationResult(source, source, category, language, ResultOrigin.PASSTHROUGH), on_result)
            return DispatchStatus.RESOLVED

        token = self.in_flight.try_add(source)
        if token is None:
            logger.debug(f"Already in flight: '{truncate(source)}'")
            return DispatchStatus.DUPLICATE

        if not self.limiter.try_acquire():
            self.in_flight.discard(source, token)
            logger.debug(f"Rate limited, skipping this cycle: '{truncate(source)}'")
            return DispatchStatus.RATE_LIMITED

        self._schedule(loop, self._translate_remote(source, language, category, on_result, self.cache, token))
        return DispatchStatus.PENDING

    def glossary_lookup(self, source: str, category: Category = Category.DEFAULT) -> str | None:
        """Glossary query using exact layers only for dialogue and long free-form text."""
        if category is Category.DIALOGUE or word_count(source) >= self.free_form_words:
            return self.matcher.match_exact_only(source, category)
        return self.matcher.match(source, category)

    # ------------------------------------------------------------------
    # Remote path
    # ------------------------------------------------------------------

    def _target_loop(self) -> asyncio.AbstractEventLoop | None:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            pass
        if self.loop is not None and self.loop.is_running() and not self.loop.is_closed():
            return self.loop
        return None

    def _schedule(self, loop: asyncio.AbstractEventLoop, coro) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            task = loop.create_task(coro)
            with self._lock:
                self._tasks.add(task)
            task.add_done_callback(self._forget_task)
        else:
            future = asyncio.run_coroutine_threadsafe(coro, loop)
            with self._lock:
                self._futures.add(future)
            future.add_done_callback(self._forget_future)

    def _forget_task(self, task: asyncio.Task) -> None:
        with self._lock:
            self._tasks.discard(task)

    def _forget_future(self, future: concurrent.futures.Future) -> None:
        with self._lock:
            self._futures.discard(future)

    async def _translate_remote(
        self,
        source: str,
        language: str,
        category: Category,
        on_result: ResultCallback | None,
        cache: TranslationCache,
        token: int,
    ) -> None:
        translated = source
        origin = ResultOrigin.FALLBACK
        try:
            outcome = await self.translator.translate(source, language, self.source_language)
            if outcome.ok and outcome.text:
                translated = match_case(source, sanitize_markup(outcome.text))
                cache.put(source, translated)
                if category is Category.DIALOGUE and "\n" in source:
                    cache.seed_lines(source, translated)
                origin = ResultOrigin.REMOTE
                logger.info(f"Translated '{truncate(source)}' -> '{truncate(translated)}'")
            else:
                logger.warning(f"Remote translation failed for '{truncate(source)}': {outcome.error}")
        except Exception as e:
            logger.error(f"Remote translator raised for '{truncate(source)}': {e}", exc_info=True)
        finally:
            self.in_flight.discard(source, token)

        self._deliver(TranslationResult(source, translated, category, language, origin), on_result)

    def _deliver(self, result: TranslationResult, on_result: ResultCallback | None) -> None:
        self.channel.post(result)
        if on_result is None:
            return
        try:
            on_result(result)
        except Exception as e:
            logger.error(f"Result callback failed for '{truncate(result.source)}': {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._tasks) + len(self._futures)

    async def join(self) -> None:
        """Wait until every scheduled remote call has delivered its result."""
        while True:
            with self._lock:
                waiting = [*self._tasks, *(asyncio.wrap_future(f) for f in self._futures)]
            if not waiting:
                return
            await asyncio.gather(*waiting, return_exceptions=True)

    def reset(self) -> None:
        """Forget in-flight texts and undelivered results.

        Calls still running will deliver into the channel when they finish.
        """
        self.in_flight.clear()
        self.channel.drain()
