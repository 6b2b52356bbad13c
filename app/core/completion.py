"""Completion service clients.

Wraps the hosted text-completion APIs behind one async interface and maps
their loosely-shaped JSON responses into a strict tagged result at the
boundary. Nothing past this module sees raw provider payloads.

Providers:
- ``gemini`` (default): Gemini ``generateContent`` REST endpoint via httpx
- ``anthropic``: Anthropic Messages API via the official SDK
"""

import time
from dataclasses import dataclass
from typing import Any, Protocol, Union

import httpx
from anthropic import APIError, AsyncAnthropic

from app.core.config import Settings
from app.core.errors import ConfigurationError
from app.core.llm_usage import log_llm_usage
from app.core.logging import get_logger

logger = get_logger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"

GEMINI_SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


# =============================================================================
# Result types
# =============================================================================


@dataclass(frozen=True)
class CompletionSuccess:
    text: str
    model: str
    tokens_input: int = 0
    tokens_output: int = 0


@dataclass(frozen=True)
class CompletionEmpty:
    reason: str


@dataclass(frozen=True)
class CompletionApiError:
    status: int
    body: str


CompletionResult = Union[CompletionSuccess, CompletionEmpty, CompletionApiError]


class CompletionService(Protocol):
    provider: str

    async def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float = 0.4,
        max_output_tokens: int = 2048,
    ) -> CompletionResult:
        ...


# =============================================================================
# Gemini
# =============================================================================


def parse_gemini_response(data: Any) -> CompletionResult:
    """Extract the first candidate's text from a ``generateContent`` payload."""
    if not isinstance(data, dict):
        return CompletionEmpty("response is not a JSON object")

    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        block = (data.get("promptFeedback") or {}).get("blockReason")
        return CompletionEmpty(f"no candidates (blockReason={block})" if block else "no candidates")

    first = candidates[0] if isinstance(candidates[0], dict) else {}
    content = first.get("content")
    if not isinstance(content, dict):
        return CompletionEmpty(f"candidate has no content (finishReason={first.get('finishReason')})")

    parts = content.get("parts")
    if not isinstance(parts, list) or not parts:
        return CompletionEmpty("content has no parts")

    text = "".join(
        p.get("text", "") for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)
    )
    if not text.strip():
        return CompletionEmpty("candidate text is empty")

    usage = data.get("usageMetadata") or {}
    return CompletionSuccess(
        text=text,
        model=data.get("modelVersion") or "",
        tokens_input=int(usage.get("promptTokenCount") or 0),
        tokens_output=int(usage.get("candidatesTokenCount") or 0),
    )


class GeminiCompletionService:
    """Gemini REST client."""

    provider = "gemini"

    def __init__(self, api_key: str, model: str, timeout: float = 60.0):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    @property
    def url(self) -> str:
        return f"{GEMINI_API_BASE}/{self.model}:generateContent"

    def build_request(
        self,
        prompt: str,
        system: str | None,
        temperature: float,
        max_output_tokens: int,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": max_output_tokens,
            },
            "safetySettings": GEMINI_SAFETY_SETTINGS,
        }
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}
        return body

    async def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float = 0.4,
        max_output_tokens: int = 2048,
    ) -> CompletionResult:
        body = self.build_request(prompt, system, temperature, max_output_tokens)
        started = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.url,
                    params={"key": self.api_key},
                    json=body,
                )
        except httpx.HTTPError as e:
            logger.error(f"Gemini request failed: {type(e).__name__}: {e}")
            return CompletionApiError(status=0, body=str(e))

        if response.status_code != 200:
            logger.error(f"Gemini API error ({response.status_code}): {response.text[:500]}")
            return CompletionApiError(status=response.status_code, body=response.text)

        try:
            data = response.json()
        except ValueError:
            return CompletionApiError(status=response.status_code, body="invalid JSON response")

        result = parse_gemini_response(data)
        if isinstance(result, CompletionSuccess):
            if not result.model:
                result = CompletionSuccess(
                    text=result.text,
                    model=self.model,
                    tokens_input=result.tokens_input,
                    tokens_output=result.tokens_output,
                )
            logger.info(
                f"Gemini completion ok: model={result.model} chars={len(result.text)} "
                f"duration_ms={int((time.monotonic() - started) * 1000)}"
            )
        else:
            logger.warning(f"Gemini returned no usable content: {result}")
        return result


# =============================================================================
# Anthropic
# =============================================================================


class AnthropicCompletionService:
    """Anthropic Messages API client."""

    provider = "anthropic"

    def __init__(self, api_key: str, model: str, timeout: float = 60.0):
        self.model = model
        self.client = AsyncAnthropic(api_key=api_key, timeout=timeout)

    async def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float = 0.4,
        max_output_tokens: int = 2048,
    ) -> CompletionResult:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_output_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system

        try:
            response = await self.client.messages.create(**kwargs)
        except APIError as e:
            status = getattr(e, "status_code", None) or 0
            logger.error(f"Anthropic API error ({status}): {e}")
            return CompletionApiError(status=status, body=str(e))

        text = "".join(
            getattr(block, "text", "") for block in (response.content or [])
            if getattr(block, "type", "text") == "text"
        )
        if not text.strip():
            return CompletionEmpty(f"empty content (stop_reason={response.stop_reason})")

        return CompletionSuccess(
            text=text,
            model=response.model,
            tokens_input=response.usage.input_tokens,
            tokens_output=response.usage.output_tokens,
        )


# =============================================================================
# Factory
# =============================================================================


def get_completion_service(settings: Settings) -> CompletionService:
    """
    Build the configured completion service.

    Raises:
        ConfigurationError: If the provider is unknown or its API key is missing
    """
    provider = settings.COMPLETION_PROVIDER.strip().lower()

    if provider == "gemini":
        if not settings.GEMINI_API_KEY:
            logger.error("Gemini API key not configured")
            raise ConfigurationError("Gemini API not configured")
        return GeminiCompletionService(
            api_key=settings.GEMINI_API_KEY,
            model=settings.GEMINI_MODEL,
            timeout=settings.COMPLETION_TIMEOUT_SECONDS,
        )

    if provider == "anthropic":
        if not settings.ANTHROPIC_API_KEY:
            logger.error("Anthropic API key not configured")
            raise ConfigurationError("Anthropic API not configured")
        return AnthropicCompletionService(
            api_key=settings.ANTHROPIC_API_KEY,
            model=settings.ANTHROPIC_MODEL,
            timeout=settings.COMPLETION_TIMEOUT_SECONDS,
        )

    raise ConfigurationError(f"Unknown completion provider '{provider}'")


def record_completion(
    client: Any,
    service: CompletionService,
    result: CompletionSuccess,
    workflow: str,
    user_id: Any,
    duration_ms: int = 0,
) -> None:
    """Write a usage-log row for a successful completion (best effort)."""
    log_llm_usage(
        client,
        workflow=workflow,
        model=result.model,
        provider=service.provider,
        tokens_input=result.tokens_input,
        tokens_output=result.tokens_output,
        duration_ms=duration_ms,
        user_id=user_id,
    )
