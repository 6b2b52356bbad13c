"""Server-side AI generation pipeline.

Order of operations for every AI request:

1. Re-read the caller's usage counter and apply the plan policy; deny
   before any completion call when the limit is reached.
2. Build one completion request (fixed instruction + user input).
3. Call the completion service and validate the result.
4. Only after a non-empty result, consume one generation with the
   atomic conditional increment. Any failure before this point leaves the
   counter untouched.
5. Optionally persist the generated text as a new document.
"""

import logging
import time
from uuid import UUID

from supabase import Client

from app.core.completion import CompletionService, CompletionSuccess, record_completion
from app.core.config import Settings
from app.core.errors import GenerationFailed, InvalidInput, LimitReached, NotFound
from app.core.intent_detection import (
    detect_intent,
    document_type_label,
    normalize_document_type,
)
from app.core.legal_prompts import (
    LEGAL_AI_INSTRUCTION,
    SUMMARY_INSTRUCTION,
    build_generation_prompt,
    build_summary_prompt,
)
from app.core.logging import get_logger, log_with_context
from app.core.plan_policy import can_perform, limits_for
from app.core.schemas_generation import (
    GenerateRequest,
    GenerateResponse,
    SummarizeRequest,
    SummarizeResponse,
)
from app.core.schemas_usage import CounterSnapshot, GenerationUsage, PlanLimits, UsageCounter
from app.db import documents as documents_db
from app.db import usage as usage_db

logger = get_logger(__name__)


def _usage_block(counter: UsageCounter, limits: PlanLimits) -> GenerationUsage:
    return GenerationUsage(
        used=counter.ai_generations_used,
        limit=limits.ai_generations,
        plan=counter.plan,
    )


async def _check_ai_allowance(
    client: Client,
    user_id: UUID,
    need_document_slot: bool = False,
) -> tuple[UsageCounter, PlanLimits]:
    """Apply the plan policy to fresh counters. Raises LimitReached when denied."""
    counter = await usage_db.get_usage(client, user_id)
    limits = limits_for(counter.plan)

    documents_count = 0
    if need_document_slot:
        documents_count = await documents_db.count_documents(client, user_id)

    permissions = can_perform(
        CounterSnapshot(
            ai_generations_used=counter.ai_generations_used,
            documents_count=documents_count,
        ),
        limits,
    )

    if not permissions.can_use_ai:
        log_with_context(
            logger,
            logging.INFO,
            "AI usage limit reached",
            user_id=user_id,
            plan=counter.plan.value,
            used=counter.ai_generations_used,
        )
        raise LimitReached(usage=_usage_block(counter, limits).model_dump(mode="json"))

    if need_document_slot and not permissions.can_create_document:
        raise LimitReached(
            "Document limit reached for your plan. Please upgrade to create more documents.",
            usage=_usage_block(counter, limits).model_dump(mode="json"),
        )

    return counter, limits


async def _consume(client: Client, user_id: UUID, counter: UsageCounter, limits: PlanLimits) -> UsageCounter:
    updated = await usage_db.consume_ai_generation(client, user_id, limits.ai_generations)
    if updated is None:
        # Another request consumed the last generation after our check
        log_with_context(logger, logging.WARNING, "Generation discarded, limit hit concurrently", user_id=user_id)
        raise LimitReached(usage=_usage_block(counter, limits).model_dump(mode="json"))
    return updated


async def generate_document(
    client: Client,
    completion: CompletionService,
    settings: Settings,
    user_id: UUID,
    request: GenerateRequest,
) -> GenerateResponse:
    """
    Generate a legal document for the caller.

    Raises:
        InvalidInput: Empty prompt, empty document type or oversized prompt
        LimitReached: Plan denies AI usage (or document creation when saving)
        GenerationFailed: Completion service errored or returned no text
    """
    if not request.prompt:
        raise InvalidInput("Prompt is missing, empty, or invalid")
    if len(request.prompt) > settings.MAX_PROMPT_CHARS:
        raise InvalidInput(f"Prompt exceeds {settings.MAX_PROMPT_CHARS} characters")
    if request.document_type is not None and not request.document_type.strip():
        raise InvalidInput("Document type is missing or invalid")

    detected = detect_intent(request.prompt)
    document_type = (
        normalize_document_type(request.document_type)
        if request.document_type is not None
        else detected.document_type
    )
    country = (request.country or "").strip() or detected.country
    business_type = (request.business_type or "").strip() or detected.business_type

    counter, limits = await _check_ai_allowance(client, user_id, need_document_slot=request.save)

    full_prompt = build_generation_prompt(request.prompt, document_type, country, business_type)

    started = time.monotonic()
    result = await completion.complete(
        full_prompt,
        system=LEGAL_AI_INSTRUCTION,
        temperature=settings.GENERATE_TEMPERATURE,
        max_output_tokens=settings.GENERATE_MAX_TOKENS,
    )
    duration_ms = int((time.monotonic() - started) * 1000)

    if not isinstance(result, CompletionSuccess):
        log_with_context(
            logger,
            logging.ERROR,
            "Document generation failed",
            user_id=user_id,
            provider=completion.provider,
            result=type(result).__name__,
        )
        raise GenerationFailed()

    updated = await _consume(client, user_id, counter, limits)
    record_completion(client, completion, result, "generate", user_id, duration_ms)

    document_id = None
    if request.save:
        title = (request.title or "").strip() or document_type_label(document_type)
        try:
            document = await documents_db.create_document(client, user_id, title, result.text)
            document_id = document.id
        except Exception as e:
            # The generation is already counted; return the text so the client can save it
            logger.error(f"Failed to save generated document for user {user_id}: {e}")

    log_with_context(
        logger,
        logging.INFO,
        "Document generated",
        user_id=user_id,
        document_id=document_id,
        document_type=document_type,
        chars=len(result.text),
        duration_ms=duration_ms,
    )

    return GenerateResponse(
        content=result.text,
        document_type=document_type,
        country=country,
        business_type=business_type,
        document_id=document_id,
        usage=_usage_block(updated, limits),
    )


async def summarize_document(
    client: Client,
    completion: CompletionService,
    settings: Settings,
    user_id: UUID,
    request: SummarizeRequest,
) -> SummarizeResponse:
    """
    Summarize one of the caller's documents.

    Raises:
        InvalidInput: Empty content
        NotFound: Document absent or owned by someone else
        LimitReached: Plan denies AI usage
        GenerationFailed: Completion service errored or returned no text
    """
    if not request.content.strip():
        raise InvalidInput("Missing required fields: document_id and content")

    document = await documents_db.get_document(client, user_id, request.document_id)
    if document is None:
        raise NotFound()

    counter, limits = await _check_ai_allowance(client, user_id)

    content = request.content[: settings.MAX_SUMMARY_INPUT_CHARS]
    started = time.monotonic()
    result = await completion.complete(
        build_summary_prompt(content, request.summary_type),
        system=SUMMARY_INSTRUCTION,
        temperature=settings.SUMMARIZE_TEMPERATURE,
        max_output_tokens=settings.SUMMARIZE_MAX_TOKENS,
    )
    duration_ms = int((time.monotonic() - started) * 1000)

    if not isinstance(result, CompletionSuccess):
        log_with_context(
            logger,
            logging.ERROR,
            "Summary generation failed",
            user_id=user_id,
            document_id=request.document_id,
            result=type(result).__name__,
        )
        raise GenerationFailed("Failed to generate summary. Please try again.")

    updated = await _consume(client, user_id, counter, limits)
    record_completion(client, completion, result, "summarize", user_id, duration_ms)

    return SummarizeResponse(
        summary=result.text,
        summary_type=request.summary_type,
        usage=_usage_block(updated, limits),
    )
