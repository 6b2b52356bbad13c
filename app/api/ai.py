"""AI generation endpoints (generate, summarize, detect)."""

from fastapi import APIRouter, Depends
from supabase import Client

from app.core.auth_middleware import AuthContext, require_auth
from app.core.completion import CompletionService, get_completion_service
from app.core.config import Settings, get_settings
from app.core.generation import generate_document, summarize_document
from app.core.intent_detection import detect_intent
from app.core.schemas_generation import (
    DetectRequest,
    DetectResponse,
    GenerateRequest,
    GenerateResponse,
    SummarizeRequest,
    SummarizeResponse,
)
from app.db.supabase_client import get_supabase

router = APIRouter(prefix="/ai")


def get_completion(settings: Settings = Depends(get_settings)) -> CompletionService:
    """Completion service dependency. Fails closed when the provider key is missing."""
    return get_completion_service(settings)


@router.post("/generate", response_model=GenerateResponse)
async def generate(
    request: GenerateRequest,
    auth: AuthContext = Depends(require_auth),
    client: Client = Depends(get_supabase),
    settings: Settings = Depends(get_settings),
    completion: CompletionService = Depends(get_completion),
):
    """Generate a legal document from a free-text prompt."""
    return await generate_document(client, completion, settings, auth.user_id, request)


@router.post("/summarize", response_model=SummarizeResponse)
async def summarize(
    request: SummarizeRequest,
    auth: AuthContext = Depends(require_auth),
    client: Client = Depends(get_supabase),
    settings: Settings = Depends(get_settings),
    completion: CompletionService = Depends(get_completion),
):
    """Summarize one of the caller's documents."""
    return await summarize_document(client, completion, settings, auth.user_id, request)


@router.post("/detect", response_model=DetectResponse)
async def detect(
    request: DetectRequest,
    auth: AuthContext = Depends(require_auth),
):
    """Advisory intent detection for a prompt. Does not consume usage."""
    intent = detect_intent(request.prompt)
    return DetectResponse(
        document_type=intent.document_type,
        document_label=intent.document_label,
        country=intent.country,
        business_type=intent.business_type,
    )
