"""Tests for llm_client.py — JSON extraction, provider routing, error mapping."""

import asyncio
import json

import httpx
import pytest

from news_lag_arb.config import Config
from news_lag_arb.errors import ConfigurationError, MalformedResponseError, TransportError
from news_lag_arb.llm_client import LLMClient, extract_json


def _chat_reply(text):
    return {"choices": [{"message": {"content": text}}]}


def _client(provider, handler, **kwargs):
    return LLMClient(provider, "test-key", transport=httpx.MockTransport(handler), **kwargs)


# ---------------------------------------------------------------------------
# extract_json
# ---------------------------------------------------------------------------

class TestExtractJson:

    def test_plain_object(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_code_block(self):
        assert extract_json('Here you go:\n```json\n[{"headline": "x"}]\n```') == [{"headline": "x"}]

    def test_object_embedded_in_prose(self):
        assert extract_json('Sure! {"category": "crypto"} Hope that helps.') == {"category": "crypto"}

    def test_array_embedded_in_prose(self):
        assert extract_json('Found: [1, 2, 3] done') == [1, 2, 3]

    def test_unparseable(self):
        assert extract_json("no json here") is None


# ---------------------------------------------------------------------------
# from_config
# ---------------------------------------------------------------------------

class TestFromConfig:

    def test_no_provider_no_client(self):
        assert LLMClient.from_config(Config()) is None

    def test_grok_key_implies_xai(self):
        client = LLMClient.from_config(Config(grok_api_key="xai-key"))
        assert client.provider == "xai"
        assert client.api_key == "xai-key"
        assert client.model == "grok-2-latest"
        assert client.supports_live_search

    def test_provider_without_key(self, capsys):
        assert LLMClient.from_config(Config(llm_provider="openai")) is None
        assert "[LLM] No API key" in capsys.readouterr().out

    def test_custom_model_and_base_url(self):
        client = LLMClient.from_config(Config(llm_provider="openai", llm_api_key="sk",
                                              llm_model="local-model",
                                              llm_base_url="http://127.0.0.1:8045/v1/"))
        assert client.model == "local-model"
        assert client.base_url == "http://127.0.0.1:8045/v1"
        assert not client.supports_live_search


# ---------------------------------------------------------------------------
# complete / complete_json
# ---------------------------------------------------------------------------

class TestComplete:

    def test_xai_live_search_payload(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_chat_reply("[]"))

        client = _client("xai", handler)
        assert asyncio.run(client.complete_json("news?", system="be terse", live_search=True)) == []
        assert seen["url"] == "https://api.x.ai/v1/chat/completions"
        assert seen["auth"] == "Bearer test-key"
        assert seen["body"]["search_parameters"]["mode"] == "on"
        assert seen["body"]["messages"][0] == {"role": "system", "content": "be terse"}

    def test_openai_ignores_live_search(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_chat_reply("ok"))

        assert asyncio.run(_client("openai", handler).complete("hi", live_search=True)) == "ok"
        assert "search_parameters" not in seen["body"]

    def test_anthropic_routing(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["key"] = request.headers["x-api-key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"content": [{"type": "text", "text": '{"ok": true}'}]})

        client = _client("anthropic", handler)
        assert asyncio.run(client.complete_json("q", system="sys")) == {"ok": True}
        assert seen["url"] == "https://api.anthropic.com/v1/messages"
        assert seen["key"] == "test-key"
        assert seen["body"]["system"] == "sys"

    def test_gemini_routing(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(200, json={
                "candidates": [{"content": {"parts": [{"text": "hello"}]}}]})

        assert asyncio.run(_client("gemini", handler).complete("q")) == "hello"
        assert ":generateContent?key=test-key" in seen["url"]
        assert "gemini-2.0-flash" in seen["url"]

    def test_http_error_is_transport_error(self):
        client = _client("openai", lambda request: httpx.Response(503, text="busy"))
        with pytest.raises(TransportError):
            asyncio.run(client.complete("q"))

    def test_connection_error_is_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportError):
            asyncio.run(_client("xai", handler).complete("q"))

    def test_non_json_body(self):
        client = _client("openai", lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(MalformedResponseError):
            asyncio.run(client.complete("q"))

    def test_missing_text(self):
        client = _client("openai", lambda request: httpx.Response(200, json={"choices": []}))
        with pytest.raises(MalformedResponseError):
            asyncio.run(client.complete("q"))

    def test_prose_answer_is_malformed_json(self):
        client = _client("openai", lambda request: httpx.Response(200, json=_chat_reply("I can't")))
        with pytest.raises(MalformedResponseError):
            asyncio.run(client.complete_json("q"))

    def test_unknown_provider(self):
        client = LLMClient("mystery", "k")
        with pytest.raises(ConfigurationError):
            asyncio.run(client.complete("q"))
