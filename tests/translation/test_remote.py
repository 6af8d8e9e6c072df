"""
Tests for the remote transports and markup repair.

HTTP is served by httpx.MockTransport; nothing leaves the process.
"""

from __future__ import annotations

import json
from urllib.parse import parse_qs

import httpx
import pytest

from overlay_translator.translation.remote import (
    DeepLTranslator,
    MockTranslator,
    TransportResult,
    sanitize_markup,
)

API_URL = "https://api.example.test/v2/translate"


def make_translator(handler, api_key: str = "secret-key") -> DeepLTranslator:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DeepLTranslator(api_key, api_url=API_URL, timeout=2.0, client=client)


# ============================================================================
# DeepLTranslator
# ============================================================================


class TestDeepLTranslator:

    @pytest.mark.anyio
    async def test_success(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"translations": [{"text": "Поговорить"}]})

        translator = make_translator(handler)
        result = await translator.translate("Talk-to", "RU", "EN")

        assert result == TransportResult.success("Поговорить")
        assert seen["url"] == API_URL
        assert seen["auth"] == "DeepL-Auth-Key secret-key"
        assert seen["form"] == {"text": ["Talk-to"], "target_lang": ["RU"], "source_lang": ["EN"]}

    @pytest.mark.anyio
    async def test_non_success_status(self):
        translator = make_translator(lambda request: httpx.Response(456, text="quota exceeded"))
        result = await translator.translate("Talk-to", "RU", "EN")
        assert not result.ok
        assert result.error == "HTTP 456"

    @pytest.mark.anyio
    async def test_malformed_json(self):
        translator = make_translator(lambda request: httpx.Response(200, text="<html>oops</html>"))
        result = await translator.translate("Talk-to", "RU", "EN")
        assert not result.ok
        assert result.error.startswith("malformed response")

    @pytest.mark.anyio
    @pytest.mark.parametrize("payload", [
        {},
        {"translations": []},
        {"translations": [{"detected_source_language": "EN"}]},
        [1, 2, 3],
    ])
    async def test_unexpected_shape(self, payload):
        translator = make_translator(lambda request: httpx.Response(200, content=json.dumps(payload)))
        result = await translator.translate("Talk-to", "RU", "EN")
        assert not result.ok

    @pytest.mark.anyio
    async def test_empty_translation(self):
        translator = make_translator(
            lambda request: httpx.Response(200, json={"translations": [{"text": "   "}]})
        )
        result = await translator.translate("Talk-to", "RU", "EN")
        assert result == TransportResult.failure("empty translation")

    @pytest.mark.anyio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        result = await make_translator(handler).translate("Talk-to", "RU", "EN")
        assert result == TransportResult.failure("request timed out")

    @pytest.mark.anyio
    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        result = await make_translator(handler).translate("Talk-to", "RU", "EN")
        assert not result.ok
        assert result.error.startswith("request failed")

    @pytest.mark.anyio
    async def test_missing_key_makes_no_request(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"translations": [{"text": "x"}]})

        translator = make_translator(handler, api_key="   ")
        assert not translator.configured
        result = await translator.translate("Talk-to", "RU", "EN")
        assert not result.ok
        assert calls == []

    @pytest.mark.anyio
    async def test_aclose_keeps_caller_client_open(self):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"translations": [{"text": "x"}]}))
        )
        translator = DeepLTranslator("k", api_url=API_URL, client=client)
        await translator.aclose()
        assert not client.is_closed
        await client.aclose()


# ============================================================================
# MockTranslator
# ============================================================================


class TestMockTranslator:

    @pytest.mark.anyio
    async def test_canned_responses_and_calls(self):
        mock = MockTranslator({"Take": "Взять"}, failures={"Boom"})

        assert (await mock.translate("Take", "RU", "EN")).text == "Взять"
        assert not (await mock.translate("Boom", "RU", "EN")).ok
        assert not (await mock.translate("Unknown", "RU", "EN")).ok
        assert mock.call_count == 3
        assert mock.calls[0] == {"text": "Take", "target_language": "RU", "source_language": "EN"}

    @pytest.mark.anyio
    async def test_default_response(self):
        mock = MockTranslator(default="перевод")
        assert (await mock.translate("anything", "RU", "EN")).text == "перевод"


# ============================================================================
# Markup repair
# ============================================================================


class TestSanitizeMarkup:

    @pytest.mark.parametrize("raw,expected", [
        ("<col=ff0000>Гоблин</ col>", "<col=ff0000>Гоблин</col>"),
        ("<col=ff0000>Гоблин< /COL >", "<col=ff0000>Гоблин</col>"),
        ("<col=ff0000>Гоблин</col></col>", "<col=ff0000>Гоблин</col>"),
        ("<col=ff0000>Гоблин</col", "<col=ff0000>Гоблин</col>"),
        ("<col=ff0000>Гоблин", "<col=ff0000>Гоблин</col>"),
        ("Гоблин <", "Гоблин "),
        ("Простой текст", "Простой текст"),
        ("", ""),
    ])
    def test_repairs(self, raw, expected):
        assert sanitize_markup(raw) == expected
