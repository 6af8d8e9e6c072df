"""
Tests for TranslationService: identity tracking, stale-result discarding,
periodic saves, language switching and the cooperative driver.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from overlay_translator.config import TranslatorConfig
from overlay_translator.glossary.models import Category
from overlay_translator.service import AppliedTranslation, Candidate, TranslationService
from overlay_translator.translation.dispatcher import DispatchStatus
from overlay_translator.translation.remote import MockTranslator


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def glossary_dir(tmp_path) -> Path:
    root = tmp_path / "glossaries"
    (root / "ru").mkdir(parents=True)
    (root / "de").mkdir(parents=True)
    (root / "ru" / "action.tsv").write_text("EN\tRU\nTake\tВзять\nWithdraw\tСнять\n", encoding="utf-8")
    (root / "ru" / "default.tsv").write_text("Bank\tБанк\n", encoding="utf-8")
    (root / "de" / "action.tsv").write_text("Take\tNehmen\n", encoding="utf-8")
    return root


@pytest.fixture
def config(tmp_path, glossary_dir) -> TranslatorConfig:
    return TranslatorConfig(
        cache_dir=tmp_path / "cache",
        glossary_dir=glossary_dir,
        save_interval=30,
        tick_interval=0.01,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def make_service(config, clock, translator=None) -> TranslationService:
    service = TranslationService(config, translator=translator, clock=clock)
    service.start()
    return service


# ============================================================================
# Synchronous resolution
# ============================================================================


class TestRequestAndDrain:

    def test_glossary_result_is_applied(self, config, clock):
        service = make_service(config, clock)

        status = service.request("w1", "Take", Category.ACTION)

        assert status is DispatchStatus.RESOLVED
        assert service.drain() == [AppliedTranslation("w1", "Take", "Взять")]

    def test_same_text_applies_to_every_identity(self, config, clock):
        service = make_service(config, clock)
        service.request("w1", "Bank", Category.DEFAULT)
        service.request("w2", "Bank", Category.DEFAULT)

        applied = service.drain()

        # two deliveries, each applied to both identities showing "Bank"
        assert {a.identity for a in applied} == {"w1", "w2"}
        assert all(a.translated == "Банк" for a in applied)

    def test_glossary_text_is_stable_across_ticks(self, config, clock, glossary_dir):
        (glossary_dir / "ru" / "npc.tsv").write_text("Varrock museum\tМузей Варрока\n", encoding="utf-8")
        service = make_service(config, clock)

        service.request("w1", "Varrock museum", Category.NPC)
        first = service.tick()
        service.request("w1", "Varrock museum", Category.NPC)
        second = service.tick()

        assert first == second == [AppliedTranslation("w1", "Varrock museum", "Музей Варрока")]

    def test_forgotten_identity_gets_nothing(self, config, clock):
        service = make_service(config, clock)
        service.request("w1", "Take", Category.ACTION)
        service.forget("w1")

        assert service.drain() == []

    def test_empty_text_forgets_identity(self, config, clock):
        service = make_service(config, clock)
        service.request("w1", "Take", Category.ACTION)
        service.request("w1", "   ", Category.ACTION)

        assert service.tracked_text("w1") is None
        assert service.drain() == []

    def test_lookup_is_synchronous(self, config, clock):
        service = make_service(config, clock)
        assert service.lookup("Withdraw 5", Category.ACTION) == "Снять-5"
        assert service.lookup("Unknown words here", Category.ACTION) is None
        assert service.lookup("", Category.ACTION) is None

        service.cache.put("Hello", "Привет")
        assert service.lookup("Hello") == "Привет"

    def test_without_credentials_text_passes_through(self, config, clock):
        service = make_service(config, clock)
        assert service.translator is None

        service.request("w1", "Open the door", Category.ACTION)

        assert service.drain() == [AppliedTranslation("w1", "Open the door", "Open the door")]

    def test_reset_forgets_everything(self, config, clock):
        service = make_service(config, clock)
        service.request("w1", "Take", Category.ACTION)
        service.reset()
        assert service.tracked_text("w1") is None
        assert service.drain() == []


# ============================================================================
# Remote results and staleness
# ============================================================================


class TestStaleness:

    @pytest.mark.anyio
    async def test_result_for_replaced_text_is_discarded(self, config, clock):
        gate = asyncio.Event()
        mock = MockTranslator({"Hello there": "Привет", "Goodbye now": "Пока"}, gate=gate)
        service = make_service(config, clock, translator=mock)

        assert service.request("w1", "Hello there", Category.DIALOGUE) is DispatchStatus.PENDING
        # the element changes text before the first response arrives
        assert service.request("w1", "Goodbye now", Category.DIALOGUE) is DispatchStatus.PENDING

        gate.set()
        await service.dispatcher.join()

        assert service.drain() == [AppliedTranslation("w1", "Goodbye now", "Пока")]

    @pytest.mark.anyio
    async def test_remote_result_applied_when_text_unchanged(self, config, clock):
        mock = MockTranslator({"Hello there": "Привет"})
        service = make_service(config, clock, translator=mock)

        service.request("w1", "Hello there", Category.DIALOGUE)
        assert service.drain() == []

        await service.dispatcher.join()

        assert service.drain() == [AppliedTranslation("w1", "Hello there", "Привет")]

    @pytest.mark.anyio
    async def test_failed_call_applies_original_text(self, config, clock):
        mock = MockTranslator(failures={"Hello there"})
        service = make_service(config, clock, translator=mock)

        service.request("w1", "Hello there", Category.DIALOGUE)
        await service.dispatcher.join()

        assert service.drain() == [AppliedTranslation("w1", "Hello there", "Hello there")]

    @pytest.mark.anyio
    async def test_result_for_previous_language_is_discarded(self, config, clock):
        gate = asyncio.Event()
        mock = MockTranslator({"Hello there": "Привет"}, gate=gate)
        service = make_service(config, clock, translator=mock)

        service.request("w1", "Hello there", Category.DIALOGUE)
        service.set_target_language("DE")

        gate.set()
        await service.dispatcher.join()

        assert service.drain() == []


# ============================================================================
# Persistence and language switching
# ============================================================================


class TestPersistence:

    def test_tick_saves_after_interval(self, config, clock):
        service = make_service(config, clock)
        service.request("w1", "Take", Category.ACTION)
        path = config.cache_path("RU")

        service.tick()
        assert not path.exists()

        clock.now = 31
        service.tick()
        assert json.loads(path.read_text(encoding="utf-8")) == {"Take": "Взять"}

    def test_start_loads_existing_cache(self, config, clock):
        path = config.cache_path("RU")
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"Hello there": "Привет"}), encoding="utf-8")

        service = make_service(config, clock)

        assert service.lookup("Hello there", Category.DIALOGUE) == "Привет"

    def test_set_target_language_swaps_glossary_and_cache(self, config, clock):
        service = make_service(config, clock)
        service.request("w1", "Take", Category.ACTION)

        assert service.set_target_language("de") is True
        assert service.set_target_language("DE") is False

        assert service.target_language == "DE"
        assert service.lookup("Take", Category.ACTION) == "Nehmen"
        assert service.cache.path == config.cache_path("DE")
        # the Russian cache was saved on the way out
        assert json.loads(config.cache_path("RU").read_text(encoding="utf-8")) == {"Take": "Взять"}

    @pytest.mark.anyio
    async def test_close_saves_cache(self, config, clock):
        mock = MockTranslator({"Hello there": "Привет"})
        service = make_service(config, clock, translator=mock)
        service.request("w1", "Hello there", Category.DIALOGUE)

        await service.close()

        saved = json.loads(config.cache_path("RU").read_text(encoding="utf-8"))
        assert saved == {"Hello there": "Привет"}


# ============================================================================
# Driver
# ============================================================================


class TestRun:

    @pytest.mark.anyio
    async def test_run_scans_requests_and_applies(self, config, clock):
        service = make_service(config, clock)
        stop = asyncio.Event()
        painted: list[tuple[str, str]] = []

        def scan():
            return [Candidate("w1", "Take", Category.ACTION), Candidate("w2", "Bank", Category.DEFAULT)]

        def apply(identity, text):
            painted.append((identity, text))
            if len(painted) >= 2:
                stop.set()

        await asyncio.wait_for(service.run(scan, apply, stop), timeout=5)

        assert painted[:2] == [("w1", "Взять"), ("w2", "Банк")]
        assert config.cache_path("RU").exists()

    @pytest.mark.anyio
    async def test_run_picks_up_remote_results_on_later_tick(self, config, clock):
        mock = MockTranslator({"Hello there": "Привет"})
        service = make_service(config, clock, translator=mock)
        stop = asyncio.Event()
        painted: list[tuple[str, str]] = []

        def apply(identity, text):
            painted.append((identity, text))
            stop.set()

        await asyncio.wait_for(
            service.run(lambda: [Candidate("w1", "Hello there", Category.DIALOGUE)], apply, stop),
            timeout=5,
        )

        assert painted[0] == ("w1", "Привет")
        assert mock.call_count == 1

    @pytest.mark.anyio
    async def test_scan_errors_do_not_stop_the_driver(self, config, clock):
        service = make_service(config, clock)
        stop = asyncio.Event()
        calls = 0

        def scan():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("scene not ready")
            stop.set()
            return []

        await asyncio.wait_for(service.run(scan, lambda i, t: None, stop), timeout=5)

        assert calls == 2
