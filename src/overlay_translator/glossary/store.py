"""
Per-category glossary store with original-case and normalized indexes,
plus the TSV/manifest loaders that feed it.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError

from .models import Category, GlossaryRecord
from .normalizer import normalize, safe_language

logger = logging.getLogger("overlay-translator")

MANIFEST_NAME = "manifest.yaml"

_MULTI_SPACE = re.compile(r"\s{2,}")
_LANGUAGE_CODE = re.compile(r"^[A-Z]{2,3}$")
_BOM = "\ufeff"

HEADER_SOURCE = {"EN", "ENG", "SOURCE", "KEY", "ORIGINAL"}
HEADER_TARGET = {"RU", "RUS", "TARGET", "TRANSLATION", "VALUE"}


class GlossaryFormatError(ValueError):
    """Raised when a glossary manifest cannot be understood."""
    pass


# ---------------------------------------------------------------------------
# TSV parsing
# ---------------------------------------------------------------------------


def _is_header(left: str, right: str) -> bool:
    left_upper = left.upper()
    right_upper = right.upper()
    if left_upper not in HEADER_SOURCE:
        return False
    return right_upper in HEADER_TARGET or bool(_LANGUAGE_CODE.match(right))


def _split_columns(line: str) -> tuple[str, str] | None:
    parts = line.split("\t", 1)
    if len(parts) < 2:
        parts = _MULTI_SPACE.split(line, 1)
    if len(parts) < 2:
        return None
    left, right = parts[0].strip(), parts[1].strip()
    if not left or not right:
        return None
    return left, right


def read_tsv(
    source: Path | str | Iterable[str],
    category: Category = Category.DEFAULT,
) -> list[GlossaryRecord]:
    """Parse a two-column glossary into records.

    Columns are separated by a tab or, failing that, by two or more spaces.
    Blank lines, ``#`` / ``//`` comments, a leading byte-order mark and a
    header row (e.g. ``EN<TAB>RU`` or ``source  target``) are skipped.
    Lines with a single column are logged at DEBUG and ignored.

    Args:
        source: Path to a UTF-8 file, or an iterable of lines
        category: Category assigned to every parsed record

    Returns:
        Records in file order (later duplicates override earlier ones on load)

    Raises:
        FileNotFoundError: If ``source`` is a path that does not exist
    """
    if isinstance(source, (str, Path)):
        with open(source, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
    else:
        lines = list(source)

    records: list[GlossaryRecord] = []
    header_checked = False

    for line_no, line in enumerate(lines, start=1):
        if line_no == 1 and line.startswith(_BOM):
            line = line[1:]
        raw = line.strip()
        if not raw or raw.startswith("#") or raw.startswith("//"):
            continue

        columns = _split_columns(raw)
        if columns is None:
            logger.debug(f"Skipping malformed glossary line {line_no}: {raw!r}")
            continue
        left, right = columns

        if not header_checked:
            header_checked = True
            if _is_header(left, right):
                logger.debug(f"Skipping header line: {raw!r}")
                continue

        records.append(GlossaryRecord(key=left, category=category, value=right))

    return records


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _CategoryIndex:
    exact: dict[str, str] = field(default_factory=dict)
    normalized: dict[str, str] = field(default_factory=dict)


_EMPTY = _CategoryIndex()


class GlossaryStore:
    """Per-category dual index over bulk-loaded glossary records.

    Each category keeps two maps: one keyed by the key exactly as authored
    and one keyed by its normalized form. The original-case map is consulted
    first because some entries rely on casing the normalized map collapses.

    Loading a category builds a fresh index and swaps it in under a lock, so
    concurrent readers always see either the previous or the new content.

    Example:
        >>> store = GlossaryStore()
        >>> _ = store.load([GlossaryRecord(key="Talk-to", value="Поговорить")], Category.ACTION)
        >>> store.lookup_exact("Talk-to", Category.ACTION)
        'Поговорить'
        >>> store.lookup_normalized("  TALK-TO ", Category.ACTION)
        'Поговорить'
    """

    def __init__(self) -> None:
        self._indexes: dict[Category, _CategoryIndex] = {}
        self._lock = threading.Lock()

    def load(self, records: Iterable[GlossaryRecord], category: Category) -> int:
        """Replace every entry of ``category`` with ``records``.

        Records whose own category differs are still filed under ``category``.

        Returns:
            Number of records indexed
        """
        index, count = self._build_index(records)

        with self._lock:
            self._indexes = {**self._indexes, category: index}

        logger.debug(f"Glossary {category.value}: indexed {count} records")
        return count

    def replace(self, records_by_category: Mapping[Category, Iterable[GlossaryRecord]]) -> dict[Category, int]:
        """Replace the whole store with ``records_by_category`` in one swap.

        Every index is built before the swap, so readers see either the old
        glossaries or the complete new set, never a partial load.

        Returns:
            Number of records indexed per category
        """
        indexes: dict[Category, _CategoryIndex] = {}
        counts: dict[Category, int] = {}
        for category, records in records_by_category.items():
            indexes[category], counts[category] = self._build_index(records)

        with self._lock:
            self._indexes = indexes
        return counts

    @staticmethod
    def _build_index(records: Iterable[GlossaryRecord]) -> tuple[_CategoryIndex, int]:
        index = _CategoryIndex()
        count = 0
        for record in records:
            index.exact[record.key] = record.value
            norm = normalize(record.key)
            if norm:
                index.normalized[norm] = record.value
            count += 1
        return index, count

    def _index(self, category: Category) -> _CategoryIndex:
        return self._indexes.get(category, _EMPTY)

    def lookup_exact(self, key: str, category: Category) -> str | None:
        """Original-case lookup; ``key`` must equal an authored key."""
        if not key:
            return None
        return self._index(category).exact.get(key)

    def lookup_normalized(self, key: str, category: Category) -> str | None:
        """Case- and whitespace-insensitive lookup; ``key`` is normalized here."""
        norm = normalize(key)
        if not norm:
            return None
        return self._index(category).normalized.get(norm)

    def entries(self, category: Category) -> Iterator[tuple[str, str]]:
        """Iterate ``(authored key, value)`` pairs of a category snapshot."""
        return iter(list(self._index(category).exact.items()))

    def keys(self, category: Category) -> list[str]:
        return list(self._index(category).exact)

    def normalized_entries(self, category: Category) -> Iterator[tuple[str, str]]:
        """Iterate ``(normalized key, value)`` pairs of a category snapshot."""
        return iter(list(self._index(category).normalized.items()))

    def categories(self) -> list[Category]:
        return [c for c, idx in self._indexes.items() if idx.exact]

    def size(self, category: Category | None = None) -> int:
        """Number of authored keys in one category, or in all of them."""
        if category is not None:
            return len(self._index(category).exact)
        return sum(len(idx.exact) for idx in self._indexes.values())

    def clear(self) -> None:
        with self._lock:
            self._indexes = {}

    def summary(self) -> str:
        return ", ".join(
            f"{c.value}={len(idx.exact)}" for c, idx in sorted(
                self._indexes.items(), key=lambda item: item[0].value
            )
        )


# ---------------------------------------------------------------------------
# Manifest / per-language loading
# ---------------------------------------------------------------------------


class GlossaryManifest(BaseModel):
    """Which TSV file feeds which category, per target language.

    Expected YAML format:
        languages:
          RU:
            action: ru/actions.tsv
            npc: ru/npcs.tsv
    """
    languages: dict[str, dict[Category, str]] = Field(default_factory=dict)

    @classmethod
    def from_yaml(cls, path: Path) -> "GlossaryManifest":
        """Load a manifest file.

        Raises:
            GlossaryFormatError: If the YAML is malformed or has the wrong shape
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise GlossaryFormatError(f"Invalid glossary manifest {path}: {e}") from None

        if not isinstance(data, dict):
            raise GlossaryFormatError(f"Glossary manifest {path} must be a mapping")

        languages = {
            safe_language(str(lang)): files
            for lang, files in (data.get("languages") or {}).items()
        }
        try:
            return cls(languages=languages)
        except ValidationError as e:
            raise GlossaryFormatError(f"Invalid glossary manifest {path}: {e}") from None

    def files_for(self, language: str) -> dict[Category, str]:
        return dict(self.languages.get(safe_language(language), {}))


def _conventional_files(glossary_dir: Path, language: str) -> dict[Category, Path]:
    lang_dir = glossary_dir / safe_language(language).lower()
    return {category: lang_dir / f"{category.value}.tsv" for category in Category}


def load_language(store: GlossaryStore, glossary_dir: Path | str, language: str) -> dict[Category, int]:
    """Replace the store's contents with the glossaries of one language.

    Uses ``manifest.yaml`` in ``glossary_dir`` when present, otherwise the
    ``<glossary_dir>/<lang>/<category>.tsv`` convention. Missing or unreadable
    files are logged and skipped. Every file is read before the store is
    touched; its contents are then swapped in one step.

    Returns:
        Record counts per loaded category
    """
    glossary_dir = Path(glossary_dir)
    manifest_path = glossary_dir / MANIFEST_NAME

    files: dict[Category, Path]
    if manifest_path.is_file():
        try:
            manifest = GlossaryManifest.from_yaml(manifest_path)
            files = {c: glossary_dir / rel for c, rel in manifest.files_for(language).items()}
        except GlossaryFormatError as e:
            logger.warning(f"{e}; falling back to directory convention")
            files = _conventional_files(glossary_dir, language)
    else:
        files = _conventional_files(glossary_dir, language)

    loaded: dict[Category, list[GlossaryRecord]] = {}
    for category, path in files.items():
        if not path.is_file():
            logger.debug(f"Glossary not found: {path}")
            continue
        try:
            loaded[category] = read_tsv(path, category)
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            logger.warning(f"Failed loading glossary {path}: {e}")

    counts = store.replace(loaded)

    logger.info(f"Glossaries loaded for {safe_language(language)}: {store.summary() or 'none'}")
    return counts
