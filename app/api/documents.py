"""Document CRUD and usage endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from supabase import Client

from app.core.auth_middleware import AuthContext, require_auth
from app.core.errors import LimitReached, NotFound
from app.core.logging import log_with_context
from app.core.plan_policy import can_perform, limits_for
from app.core.schemas_documents import (
    Document,
    DocumentCreate,
    DocumentDeleteResponse,
    DocumentUpdate,
)
from app.core.schemas_usage import CounterSnapshot, UsageMeter, UsageSummary
from app.db import documents as documents_db
from app.db import usage as usage_db
from app.db.supabase_client import get_supabase

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/documents", response_model=list[Document])
async def list_documents(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    auth: AuthContext = Depends(require_auth),
    client: Client = Depends(get_supabase),
):
    """List the caller's documents, newest first."""
    return await documents_db.list_documents(client, auth.user_id, limit=limit, offset=offset)


@router.post("/documents", response_model=Document, status_code=201)
async def create_document(
    data: DocumentCreate,
    auth: AuthContext = Depends(require_auth),
    client: Client = Depends(get_supabase),
):
    """Create a document. Denied when the plan's document limit is reached."""
    counter = await usage_db.get_usage(client, auth.user_id)
    count = await documents_db.count_documents(client, auth.user_id)
    permissions = can_perform(
        CounterSnapshot(ai_generations_used=counter.ai_generations_used, documents_count=count),
        limits_for(counter.plan),
    )
    if not permissions.can_create_document:
        raise LimitReached("Document limit reached for your plan. Please upgrade to create more documents.")

    document = await documents_db.create_document(client, auth.user_id, data.title, data.content)
    log_with_context(logger, logging.INFO, "Document created", user_id=auth.user_id, document_id=document.id)
    return document


@router.get("/documents/{document_id}", response_model=Document)
async def get_document(
    document_id: UUID,
    auth: AuthContext = Depends(require_auth),
    client: Client = Depends(get_supabase),
):
    document = await documents_db.get_document(client, auth.user_id, document_id)
    if document is None:
        raise NotFound()
    return document


@router.patch("/documents/{document_id}", response_model=Document)
async def update_document(
    document_id: UUID,
    data: DocumentUpdate,
    auth: AuthContext = Depends(require_auth),
    client: Client = Depends(get_supabase),
):
    """Save title and content (manual save or client auto-save)."""
    document = await documents_db.update_document(
        client, auth.user_id, document_id, data.title, data.content
    )
    if document is None:
        raise NotFound()
    return document


@router.delete("/documents/{document_id}", response_model=DocumentDeleteResponse)
async def delete_document(
    document_id: UUID,
    auth: AuthContext = Depends(require_auth),
    client: Client = Depends(get_supabase),
):
    """Hard delete. Repeating the call returns success with ``deleted: false``."""
    deleted = await documents_db.delete_document(client, auth.user_id, document_id)
    if deleted:
        log_with_context(logger, logging.INFO, "Document deleted", user_id=auth.user_id, document_id=document_id)
    return DocumentDeleteResponse(deleted=deleted)


@router.get("/usage", response_model=UsageSummary)
async def get_usage(
    auth: AuthContext = Depends(require_auth),
    client: Client = Depends(get_supabase),
):
    """Current plan, limits and counters (polled by the dashboard)."""
    counter = await usage_db.get_usage(client, auth.user_id)
    count = await documents_db.count_documents(client, auth.user_id)
    limits = limits_for(counter.plan)

    return UsageSummary(
        plan=counter.plan,
        limits=limits,
        permissions=can_perform(
            CounterSnapshot(ai_generations_used=counter.ai_generations_used, documents_count=count),
            limits,
        ),
        ai_usage=UsageMeter(used=counter.ai_generations_used, limit=limits.ai_generations),
        document_usage=UsageMeter(used=count, limit=limits.documents),
    )
