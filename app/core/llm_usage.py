"""Per-call completion usage log with cost estimates."""

import logging
from typing import Any
from uuid import UUID

logger = logging.getLogger(__name__)

# USD per 1M tokens as (input, output), keyed by model family.
# Versioned names such as "gemini-1.5-flash-002" resolve to their family.
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gemini-1.5-flash": (0.075, 0.30),
    "gemini-1.5-pro": (1.25, 5.0),
    "gemini-2.0-flash": (0.10, 0.40),
    "claude-3-5-haiku": (0.80, 4.0),
    "claude-3-5-sonnet": (3.0, 15.0),
    "claude-sonnet-4": (3.0, 15.0),
}


def price_for(model: str) -> tuple[float, float] | None:
    """Longest matching family wins so "gemini-1.5-pro" never prices as flash."""
    matches = [family for family in MODEL_PRICING if model.startswith(family)]
    if not matches:
        return None
    return MODEL_PRICING[max(matches, key=len)]


def _estimate_cost(model: str, tokens_input: int, tokens_output: int) -> float:
    pricing = price_for(model)
    if pricing is None:
        logger.warning(f"No pricing for model '{model}', recording $0")
        return 0.0
    input_rate, output_rate = pricing
    return round((tokens_input * input_rate + tokens_output * output_rate) / 1_000_000, 6)


def log_llm_usage(
    client: Any,
    workflow: str,
    model: str,
    provider: str,
    tokens_input: int,
    tokens_output: int,
    duration_ms: int = 0,
    user_id: UUID | str | None = None,
    document_id: UUID | str | None = None,
) -> None:
    """Insert one ``llm_usage_log`` row.

    Failures are logged and dropped; a missing usage row must never fail a
    generation the user has already been charged for.
    """
    cost = _estimate_cost(model, tokens_input, tokens_output)
    row: dict[str, Any] = {
        "workflow": workflow,
        "model": model,
        "provider": provider,
        "tokens_input": tokens_input,
        "tokens_output": tokens_output,
        "estimated_cost_usd": cost,
        "duration_ms": duration_ms,
        "user_id": str(user_id) if user_id else None,
        "document_id": str(document_id) if document_id else None,
    }
    try:
        client.table("llm_usage_log").insert(row).execute()
    except Exception as e:
        logger.error(f"Failed to log completion usage for {workflow}: {e}")
        return
    logger.debug(f"Usage logged: {workflow} model={model} tokens={tokens_input}+{tokens_output} cost=${cost:.4f}")
