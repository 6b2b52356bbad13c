"""Tests for completion service clients and response mapping."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from app.core.completion import (
    AnthropicCompletionService,
    CompletionApiError,
    CompletionEmpty,
    CompletionSuccess,
    GeminiCompletionService,
    get_completion_service,
    parse_gemini_response,
)
from app.core.config import Settings
from app.core.errors import ConfigurationError


def _gemini_payload(text="Drafted agreement"):
    return {
        "candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": "STOP"}],
        "usageMetadata": {"promptTokenCount": 12, "candidatesTokenCount": 34},
        "modelVersion": "gemini-1.5-flash-002",
    }


# ──────────────────────────────────────────────────────────────────────
# Response mapping
# ──────────────────────────────────────────────────────────────────────


def test_parse_success():
    result = parse_gemini_response(_gemini_payload())
    assert isinstance(result, CompletionSuccess)
    assert result.text == "Drafted agreement"
    assert result.tokens_input == 12
    assert result.tokens_output == 34
    assert result.model == "gemini-1.5-flash-002"


def test_parse_joins_multiple_parts():
    payload = {"candidates": [{"content": {"parts": [{"text": "A"}, {"text": "B"}]}}]}
    result = parse_gemini_response(payload)
    assert isinstance(result, CompletionSuccess)
    assert result.text == "AB"


@pytest.mark.parametrize(
    "payload",
    [
        None,
        [],
        {},
        {"candidates": []},
        {"candidates": [{"finishReason": "SAFETY"}]},
        {"candidates": [{"content": {"parts": []}}]},
        {"candidates": [{"content": {"parts": [{"text": "   "}]}}]},
        {"candidates": [{"content": {"parts": [{"inlineData": {}}]}}]},
    ],
)
def test_parse_empty_shapes(payload):
    assert isinstance(parse_gemini_response(payload), CompletionEmpty)


def test_parse_reports_block_reason():
    result = parse_gemini_response({"promptFeedback": {"blockReason": "SAFETY"}})
    assert isinstance(result, CompletionEmpty)
    assert "SAFETY" in result.reason


# ──────────────────────────────────────────────────────────────────────
# Gemini client
# ──────────────────────────────────────────────────────────────────────


def test_gemini_request_body():
    service = GeminiCompletionService(api_key="k", model="gemini-1.5-flash")
    body = service.build_request("Draft", "Be precise", temperature=0.4, max_output_tokens=2048)

    assert body["contents"] == [{"parts": [{"text": "Draft"}]}]
    assert body["generationConfig"] == {
        "temperature": 0.4,
        "topK": 40,
        "topP": 0.95,
        "maxOutputTokens": 2048,
    }
    assert len(body["safetySettings"]) == 4
    assert all(s["threshold"] == "BLOCK_MEDIUM_AND_ABOVE" for s in body["safetySettings"])
    assert body["systemInstruction"] == {"parts": [{"text": "Be precise"}]}


def _patched_httpx(response=None, error=None):
    http = MagicMock()
    if error is not None:
        http.post = AsyncMock(side_effect=error)
    else:
        http.post = AsyncMock(return_value=response)
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=http)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return patch("app.core.completion.httpx.AsyncClient", return_value=ctx), http


@pytest.mark.asyncio
async def test_gemini_complete_success():
    response = httpx.Response(200, json=_gemini_payload("Full NDA text"))
    patcher, http = _patched_httpx(response)
    with patcher:
        service = GeminiCompletionService(api_key="secret", model="gemini-1.5-flash")
        result = await service.complete("Draft an NDA")

    assert isinstance(result, CompletionSuccess)
    assert result.text == "Full NDA text"
    _, kwargs = http.post.call_args
    assert kwargs["params"] == {"key": "secret"}


@pytest.mark.asyncio
async def test_gemini_complete_api_error():
    response = httpx.Response(503, text="overloaded")
    patcher, _ = _patched_httpx(response)
    with patcher:
        result = await GeminiCompletionService(api_key="k", model="m").complete("x")

    assert result == CompletionApiError(status=503, body="overloaded")


@pytest.mark.asyncio
async def test_gemini_complete_transport_error():
    patcher, _ = _patched_httpx(error=httpx.ConnectError("boom"))
    with patcher:
        result = await GeminiCompletionService(api_key="k", model="m").complete("x")

    assert isinstance(result, CompletionApiError)
    assert result.status == 0


# ──────────────────────────────────────────────────────────────────────
# Anthropic client
# ──────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_anthropic_complete_success():
    service = AnthropicCompletionService(api_key="k", model="claude-3-5-haiku-20241022")
    message = MagicMock()
    message.content = [MagicMock(type="text", text="Agreement body")]
    message.model = "claude-3-5-haiku-20241022"
    message.usage = MagicMock(input_tokens=5, output_tokens=7)
    service.client = MagicMock()
    service.client.messages.create = AsyncMock(return_value=message)

    result = await service.complete("Draft", system="Be precise")

    assert result == CompletionSuccess(
        text="Agreement body", model="claude-3-5-haiku-20241022", tokens_input=5, tokens_output=7
    )
    _, kwargs = service.client.messages.create.call_args
    assert kwargs["system"] == "Be precise"


@pytest.mark.asyncio
async def test_anthropic_complete_empty():
    service = AnthropicCompletionService(api_key="k", model="claude-3-5-haiku-20241022")
    message = MagicMock()
    message.content = []
    message.stop_reason = "max_tokens"
    service.client = MagicMock()
    service.client.messages.create = AsyncMock(return_value=message)

    result = await service.complete("Draft")

    assert isinstance(result, CompletionEmpty)


# ──────────────────────────────────────────────────────────────────────
# Factory
# ──────────────────────────────────────────────────────────────────────


def test_factory_defaults_to_gemini(settings):
    assert isinstance(get_completion_service(settings), GeminiCompletionService)


def test_factory_selects_anthropic():
    settings = Settings(COMPLETION_PROVIDER="anthropic", ANTHROPIC_API_KEY="ak")
    assert isinstance(get_completion_service(settings), AnthropicCompletionService)


def test_factory_missing_key_fails_closed():
    with pytest.raises(ConfigurationError):
        get_completion_service(Settings(GEMINI_API_KEY=None))

    with pytest.raises(ConfigurationError):
        get_completion_service(Settings(COMPLETION_PROVIDER="anthropic", ANTHROPIC_API_KEY=None))


def test_factory_unknown_provider():
    with pytest.raises(ConfigurationError):
        get_completion_service(Settings(COMPLETION_PROVIDER="openai"))
