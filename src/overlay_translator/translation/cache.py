"""
Bounded LRU translation cache persisted to a flat JSON file.

Entries map a source text to its translation. The map is session-stable:
once a source text has a translation, later puts for the same text are
ignored. Snapshots are written to a temporary file in the same directory
and then atomically renamed over the destination, so a reader (or a crash)
never observes a partially written file.
"""

from __future__ import annotations

import json
import logging
import tempfile
import threading
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path

from ..glossary.matcher import match_case
from ..glossary.normalizer import safe_language, truncate

logger = logging.getLogger("overlay-translator")

DEFAULT_CAPACITY = 10_000


def cache_path_for(cache_dir: Path | str, language: str) -> Path:
    """Per-language cache file, e.g. ``<cache_dir>/cache-RU.json``."""
    return Path(cache_dir) / f"cache-{safe_language(language)}.json"


@dataclass
class TranslationCacheStats:
    """Statistics for the translation cache.

    Attributes:
        total_entries: Number of entries currently in cache.
        capacity: Maximum number of entries.
        hit_count: Number of successful lookups.
        miss_count: Number of failed lookups.
        eviction_count: Number of entries dropped to respect capacity.
        hit_rate: Ratio of hits to total lookups (0.0-1.0).
    """
    total_entries: int
    capacity: int
    hit_count: int
    miss_count: int
    eviction_count: int
    hit_rate: float


class TranslationCache:
    """Thread-safe LRU cache of source text -> translation.

    Reads refresh recency; inserting past capacity evicts the least recently
    used entry. A dirty flag records unsaved changes so periodic saves can
    skip redundant writes.

    Usage:
        cache = TranslationCache(capacity=10_000, path=cache_path_for(dir, "RU"))
        cache.load_snapshot()

        cache.put("Take", "Взять")
        cache.get("Take")          # "Взять"

        cache.persist_if_dirty()   # called from the periodic tick
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, path: Path | str | None = None) -> None:
        """Initialize the cache.

        Args:
            capacity: Maximum number of entries (at least 1).
            path: Snapshot file; None keeps the cache in memory only.
        """
        if capacity < 1:
            raise ValueError("cache capacity must be at least 1")
        self.capacity = capacity
        self.path = Path(path) if path is not None else None
        self._entries: OrderedDict[str, str] = OrderedDict()
        self._lock = threading.RLock()
        self._dirty = False
        self._hit_count = 0
        self._miss_count = 0
        self._eviction_count = 0

    # ------------------------------------------------------------------
    # Map operations
    # ------------------------------------------------------------------

    def get(self, source: str) -> str | None:
        """Return the cached translation and mark it most recently used."""
        with self._lock:
            value = self._entries.get(source)
            if value is None:
                self._miss_count += 1
                return None
            self._entries.move_to_end(source)
            self._hit_count += 1
            return value

    def peek(self, source: str) -> str | None:
        """Return the cached translation without touching recency or stats."""
        with self._lock:
            return self._entries.get(source)

    def put(self, source: str, translation: str) -> bool:
        """Store a translation for ``source`` if it has none yet.

        An existing entry keeps its value (session-stable mapping) and is
        only refreshed as most recently used.

        Returns:
            True if a new entry was created.
        """
        if not source or translation is None:
            return False
        with self._lock:
            if source in self._entries:
                self._entries.move_to_end(source)
                return False
            self._entries[source] = translation
            self._dirty = True
            self._evict_overflow()
            return True

    def seed_lines(self, combined_source: str, combined_translated: str) -> int:
        """Cache each line of a multi-line translation under its own source line.

        Each line is case-adjusted to its own source line. Nothing is seeded
        when the two texts have a different number of lines, since the
        pairing would be a guess.

        Returns:
            Number of new entries.
        """
        if not combined_source or not combined_translated:
            return 0
        sources = combined_source.splitlines()
        translations = combined_translated.splitlines()
        if len(sources) != len(translations):
            return 0

        added = 0
        for src, dst in zip(sources, translations):
            src, dst = src.strip(), dst.strip()
            if src and dst and self.put(src, match_case(src, dst)):
                added += 1
        return added

    def _evict_overflow(self) -> None:
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            self._eviction_count += 1
            logger.debug(f"Cache evicted '{truncate(evicted)}'")

    def clear(self) -> None:
        with self._lock:
            if self._entries:
                self._dirty = True
            self._entries.clear()

    def snapshot(self) -> dict[str, str]:
        """Copy of all entries, least recently used first."""
        with self._lock:
            return dict(self._entries)

    def __contains__(self, source: object) -> bool:
        with self._lock:
            return source in self._entries

    def __len__(self) -> int:
        return self.size

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def dirty(self) -> bool:
        return self._dirty

    def get_stats(self) -> TranslationCacheStats:
        with self._lock:
            total = self._hit_count + self._miss_count
            return TranslationCacheStats(
                total_entries=len(self._entries),
                capacity=self.capacity,
                hit_count=self._hit_count,
                miss_count=self._miss_count,
                eviction_count=self._eviction_count,
                hit_rate=self._hit_count / total if total > 0 else 0.0,
            )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def persist_if_dirty(self) -> bool:
        """Write a snapshot only when there are unsaved changes."""
        if not self._dirty:
            return False
        return self.persist_snapshot()

    def persist_snapshot(self) -> bool:
        """Atomically write every entry to :attr:`path`.

        The JSON is written to a temporary file next to the destination and
        renamed over it. On failure the previous file is left untouched, the
        error is logged and the dirty flag stays set so a later call retries.

        Returns:
            True if the snapshot was written.
        """
        if self.path is None:
            return False

        with self._lock:
            snapshot = dict(self._entries)
            self._dirty = False

        tmp_path: Path | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp",
            )
            tmp_path = Path(name)
            with open(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot, f, ensure_ascii=False, indent=2)
            tmp_path.replace(self.path)
        except (OSError, TypeError, ValueError) as e:
            self._dirty = True
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            logger.error(f"Failed to save cache to {self.path}: {e}")
            return False

        logger.info(f"Saved {len(snapshot)} translations to {self.path}")
        return True

    def load_snapshot(self) -> int:
        """Replace the in-memory entries with the snapshot on disk.

        Missing, empty or malformed files are a cold start: the cache is left
        empty and a message is logged. Non-string pairs are skipped. When the
        file holds more entries than :attr:`capacity`, the most recently used
        ones are kept.

        Returns:
            Number of entries loaded.
        """
        if self.path is None:
            return 0
        if not self.path.exists():
            logger.info(f"No existing cache file at {self.path} (cold start)")
            return 0

        try:
            content = self.path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to load cache from {self.path}: {e}")
            return 0

        if not content:
            logger.info(f"Cache file {self.path} is empty (cold start)")
            return 0

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning(f"Cache file {self.path} is malformed, starting cold: {e}")
            return 0

        if not isinstance(data, dict):
            logger.warning(f"Cache file {self.path} is not a JSON object, starting cold")
            return 0

        pairs = [(k, v) for k, v in data.items() if isinstance(k, str) and isinstance(v, str) and k]
        if len(pairs) > self.capacity:
            pairs = pairs[-self.capacity:]

        with self._lock:
            self._entries = OrderedDict(pairs)
            self._dirty = False

        logger.info(f"Loaded {len(pairs)} cached translations from {self.path}")
        return len(pairs)
