#!/usr/bin/env python3
"""
Tests for advisor reply parsing and the advisor HTTP client.

Run with:
    python -m pytest tests/test_response_parser.py -v
"""

import json
import sys
from pathlib import Path

import httpx
import pytest

# Add project root to path for standalone execution
sys.path.insert(0, str(Path(__file__).parent.parent))

from backtester.ai import AdvisorClient, AdvisorReply, parse_response, repair_json
from backtester.ai.response_parser import (
    parse_regex_fields,
    parse_strict_json,
    strip_think_blocks,
)
from backtester.core.config import AdvisorConfig, normalize_endpoint
from backtester.errors import AdvisorError


class TestParseResponse:
    """Tests for the parser chain."""

    def test_clean_json(self):
        reply = parse_response('{"action": "buy", "confidence": 80, "reasoning": "breakout"}')
        assert reply == AdvisorReply("buy", 80, "breakout")
        assert reply.parsed

    def test_json_inside_prose(self):
        text = 'Sure, here you go: {"action": "sell", "confidence": 65, "reasoning": "weak"} Good luck!'
        reply = parse_response(text)
        assert reply.action == "sell"
        assert reply.confidence == 65

    def test_think_block_ignored(self):
        """Objects inside <think> blocks never win."""
        text = '<think>maybe {"action": "sell"}</think>{"action": "buy", "confidence": 70, "reasoning": "up"}'
        reply = parse_response(text)
        assert reply.action == "buy"
        assert reply.confidence == 70

    def test_bare_keys_and_trailing_comma(self):
        reply = parse_response('{action: "buy", confidence: 72,}')
        assert reply.action == "buy"
        assert reply.confidence == 72

    def test_missing_closing_brace(self):
        reply = parse_response('{"action": "sell", "confidence": 60')
        assert reply.action == "sell"
        assert reply.confidence == 60

    def test_fields_on_separate_lines_without_commas(self):
        reply = parse_response('{\n"action": "buy"\n"confidence": 75\n}')
        assert reply.action == "buy"
        assert reply.confidence == 75

    def test_regex_fallback(self):
        """No braces at all: fields are pulled out with regexes."""
        reply = parse_response("Action = BUY, confidence = 85")
        assert reply.action == "buy"
        assert reply.confidence == 85
        assert reply.reasoning == "unable to parse"
        assert reply.parsed

    def test_regex_fallback_default_confidence(self):
        reply = parse_regex_fields("action: hold")
        assert reply.ok
        assert reply.reply.confidence == 50

    def test_unparseable_uses_default(self):
        reply = parse_response("I cannot decide right now.")
        assert reply == AdvisorReply.default()
        assert not reply.parsed

    def test_object_without_action(self):
        assert not parse_strict_json('{"foo": 1}').ok
        assert parse_response('{"foo": 1}').action == "hold"

    def test_empty_and_none(self):
        assert parse_response("").action == "hold"
        assert parse_response(None).confidence == 50

    def test_infinite_confidence(self):
        """Non-finite numbers are valid JSON to the parser; confidence falls back to 50."""
        reply = parse_response('{"action": "buy", "confidence": 1e999, "reasoning": "x"}')
        assert reply.action == "buy"
        assert reply.confidence == 50
        assert parse_response('{"action": "sell", "confidence": Infinity}').confidence == 50
        assert parse_response("action: buy, confidence: 1" + "0" * 400).confidence == 50

    def test_strip_think_blocks(self):
        assert strip_think_blocks("<think>a\nb</think> answer") == "answer"
        assert strip_think_blocks("plain") == "plain"


class TestRepairJson:
    """Tests for almost-JSON repair."""

    def test_docstring_example(self):
        assert repair_json('{action: "buy", confidence: 70,}') == '{"action": "buy", "confidence": 70}'

    def test_trailing_comma_in_array(self):
        assert json.loads(repair_json('{"levels": [1, 2,],}')) == {"levels": [1, 2]}

    def test_no_brace(self):
        assert repair_json("nothing here") == "{}"


class TestAdvisorReply:
    """Tests for reply normalization and validation."""

    def test_from_fields_normalizes(self):
        reply = AdvisorReply.from_fields("BUY", "70", None)
        assert reply == AdvisorReply("buy", 70, "")

    def test_unknown_action_is_hold(self):
        assert AdvisorReply.from_fields("maybe", 60, "x").action == "hold"

    def test_confidence_clamped(self):
        assert AdvisorReply.from_fields("buy", 150, "x").confidence == 100
        assert AdvisorReply.from_fields("buy", -5, "x").confidence == 0

    def test_missing_confidence_defaults(self):
        assert AdvisorReply.from_fields("sell", None, "x").confidence == 50
        assert AdvisorReply.from_fields("sell", 0, "x").confidence == 50
        assert AdvisorReply.from_fields("sell", "high", "x").confidence == 50
        assert AdvisorReply.from_fields("sell", float("inf"), "x").confidence == 50
        assert AdvisorReply.from_fields("sell", float("nan"), "x").confidence == 50

    def test_invalid_reply_rejected(self):
        with pytest.raises(ValueError):
            AdvisorReply("short", 50, "")
        with pytest.raises(ValueError):
            AdvisorReply("buy", 101, "")


def advisor_with(handler, **config_kwargs) -> AdvisorClient:
    client = AdvisorClient(AdvisorConfig(**config_kwargs))
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


class TestAdvisorClient:
    """Tests for the advisor HTTP client against a mock transport."""

    @pytest.mark.asyncio
    async def test_openai_compatible_request(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"choices": [{"message": {"content": '{"action": "hold"}'}}], "usage": {"total_tokens": 12}},
            )

        client = advisor_with(handler, api_key="secret")
        text = await client.advise("context")
        await client.close()

        assert text == '{"action": "hold"}'
        assert seen["url"] == "https://api.openai.com/v1/chat/completions"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"]["model"] == "gpt-4o-mini"
        assert seen["body"]["messages"] == [{"role": "user", "content": "context"}]
        assert client.metrics.total_calls == 1
        assert client.metrics.total_tokens == 12

    @pytest.mark.asyncio
    async def test_ollama_request(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"message": {"content": "reply"}, "prompt_eval_count": 3, "eval_count": 4}
            )

        client = advisor_with(handler, endpoint="http://localhost:11434/", provider="ollama", model="llama3")
        assert await client.advise("context") == "reply"
        await client.close()

        assert seen["url"] == "http://localhost:11434/api/chat"
        assert seen["body"]["stream"] is False
        assert seen["body"]["model"] == "llama3"
        assert client.metrics.total_tokens == 7

    @pytest.mark.asyncio
    async def test_http_error_raises_advisor_error(self):
        client = advisor_with(lambda request: httpx.Response(500, json={}))
        with pytest.raises(AdvisorError):
            await client.advise("context")
        await client.close()
        assert client.metrics.failed_calls == 1

    @pytest.mark.asyncio
    async def test_transport_errors_retried(self):
        """Transport failures are retried max_retries times before giving up."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = advisor_with(handler, max_retries=1)
        with pytest.raises(AdvisorError):
            await client.advise("context")
        await client.close()
        assert len(attempts) == 2
        assert client.metrics.failed_calls == 1

    @pytest.mark.asyncio
    async def test_empty_reply_is_failure(self):
        client = advisor_with(lambda request: httpx.Response(200, json={"choices": [{"message": {"content": "  "}}]}))
        with pytest.raises(AdvisorError):
            await client.advise("context")
        await client.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [[], "text", {"choices": ["x"]}, {"choices": {"message": "x"}}, {"choices": [{"message": "x"}]}],
    )
    async def test_malformed_openai_reply(self, body):
        client = advisor_with(lambda request: httpx.Response(200, json=body))
        with pytest.raises(AdvisorError):
            await client.advise("context")
        await client.close()
        assert client.metrics.failed_calls == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"message": None}, {"message": "reply"}, [{"message": {}}]])
    async def test_malformed_ollama_reply(self, body):
        client = advisor_with(
            lambda request: httpx.Response(200, json=body), endpoint="http://localhost:11434", provider="ollama"
        )
        with pytest.raises(AdvisorError):
            await client.advise("context")
        await client.close()

    @pytest.mark.asyncio
    async def test_non_numeric_usage_ignored(self):
        client = advisor_with(
            lambda request: httpx.Response(
                200, json={"choices": [{"message": {"content": "ok"}}], "usage": {"total_tokens": "many"}}
            )
        )
        assert await client.advise("context") == "ok"
        await client.close()
        assert client.metrics.total_tokens == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [httpx.DecodingError, httpx.TooManyRedirects])
    async def test_other_request_errors_wrapped(self, error):
        """Request errors that are not transport failures fail immediately as AdvisorError."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise error("broken reply", request=request)

        client = advisor_with(handler, max_retries=2)
        with pytest.raises(AdvisorError):
            await client.advise("context")
        await client.close()
        assert len(attempts) == 1
        assert client.metrics.failed_calls == 1

    @pytest.mark.asyncio
    async def test_is_available(self):
        client = advisor_with(lambda request: httpx.Response(200, json={"data": []}))
        assert await client.is_available()
        await client.close()


class TestAdvisorConfig:
    """Tests for advisor connection settings."""

    def test_normalize_endpoint(self):
        assert normalize_endpoint("http://localhost:1234/") == "http://localhost:1234/v1"
        assert normalize_endpoint("http://localhost:1234/v1") == "http://localhost:1234/v1"
        assert normalize_endpoint("http://localhost:11434/", "ollama") == "http://localhost:11434"

    def test_local_server_defaults(self):
        config = AdvisorConfig(endpoint="http://localhost:1234")
        assert config.is_custom
        assert config.resolved_model == "local-model"
        assert config.resolved_api_key == "lm-studio"

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            AdvisorConfig(provider="anthropic")
        with pytest.raises(ValueError):
            AdvisorConfig(timeout=0)

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ADVISOR_ENDPOINT", "http://localhost:8080")
        monkeypatch.setenv("ADVISOR_MODEL", "qwen")
        monkeypatch.setenv("ADVISOR_TIMEOUT", "5")
        monkeypatch.delenv("ADVISOR_API_KEY", raising=False)
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("ADVISOR_PROVIDER", raising=False)
        config = AdvisorConfig.from_env(str(tmp_path / "missing.env"))
        assert config.base_url == "http://localhost:8080/v1"
        assert config.resolved_model == "qwen"
        assert config.timeout == 5.0
