"""
Pytest configuration and fixtures for overlay-translator tests.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path to allow importing overlay_translator
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from overlay_translator.glossary.models import Category, GlossaryRecord
from overlay_translator.glossary.store import GlossaryStore


# Configure anyio to only use asyncio (not trio)
@pytest.fixture
def anyio_backend():
    return "asyncio"


ACTION_ENTRIES = {
    "Talk": "Говорить",
    "Talk-to": "Поговорить",
    "Withdraw": "Снять",
    "Drop": "Бросить",
    "Take": "Взять",
    "cook": "готовить",
    "Fish": "Рыбачить",
}

ENV_SUFFIXES = (
    "API_KEY", "API_URL", "TARGET_LANG", "SOURCE_LANG", "REQUEST_TIMEOUT",
    "CACHE_DIR", "CACHE_CAPACITY", "SAVE_INTERVAL", "GLOSSARY_DIR",
    "RATE_LIMIT_CAPACITY", "RATE_LIMIT_REFILL", "QUANTIFIERS",
    "FREE_FORM_WORDS", "TICK_INTERVAL", "LOG_LEVEL",
)

DEFAULT_ENTRIES = {
    "Bank": "Банк",
    "Fish": "Рыба",
    "Bank of Gielinor": "Банк Гилинора",
}


def _records(entries: dict[str, str], category: Category) -> list[GlossaryRecord]:
    return [GlossaryRecord(key=k, value=v, category=category) for k, v in entries.items()]


@pytest.fixture
def glossary_store() -> GlossaryStore:
    """Store with a small action glossary and a default (shared) glossary."""
    store = GlossaryStore()
    store.load(_records(ACTION_ENTRIES, Category.ACTION), Category.ACTION)
    store.load(_records(DEFAULT_ENTRIES, Category.DEFAULT), Category.DEFAULT)
    return store


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch, tmp_path):
    """Keep tests away from the real environment and home directory."""
    monkeypatch.delenv("DEEPL_API_KEY", raising=False)
    for suffix in ENV_SUFFIXES:
        monkeypatch.delenv(f"OVERLAY_TRANSLATOR_{suffix}", raising=False)
    monkeypatch.setenv("OVERLAY_TRANSLATOR_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.chdir(tmp_path)
