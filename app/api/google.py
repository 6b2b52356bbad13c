"""Google Workspace connection and export endpoints."""

import logging
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from supabase import Client

from app.core.auth_middleware import AuthContext, require_auth
from app.core.config import Settings, get_settings
from app.core.errors import ExportFailed
from app.core.google_auth_helper import (
    build_auth_url,
    create_oauth_state,
    exchange_code_for_tokens,
    verify_oauth_state,
)
from app.core.google_export import export_document
from app.core.logging import log_with_context
from app.core.schemas_google import (
    ExportRequest,
    ExportResponse,
    GoogleActionResponse,
    GoogleAuthUrlResponse,
    GoogleExchangeRequest,
    GoogleStatusResponse,
)
from app.db import google_tokens as tokens_db
from app.db.supabase_client import get_supabase

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/google")


def _account_redirect(settings: Settings, **params: str) -> RedirectResponse:
    url = f"{settings.APP_BASE_URL.rstrip('/')}/account?{urlencode(params)}"
    return RedirectResponse(url=url, status_code=302)


@router.get("/auth-url", response_model=GoogleAuthUrlResponse)
async def get_auth_url(
    auth: AuthContext = Depends(require_auth),
    settings: Settings = Depends(get_settings),
):
    return GoogleAuthUrlResponse(auth_url=build_auth_url(settings, create_oauth_state(auth.user_id)))


@router.get("/callback")
async def oauth_callback(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    settings: Settings = Depends(get_settings),
):
    """
    OAuth redirect target.

    Sends the browser back to the account page. The web app then posts the
    code and state to ``/google/exchange`` with the user's session, where
    the state is checked against that user.
    """
    if error:
        return _account_redirect(settings, google_error=error)
    if not code:
        return _account_redirect(settings, google_error="no_code")
    if not state:
        return _account_redirect(settings, google_error="missing_state")
    return _account_redirect(settings, google_success="true", code=code, state=state)


@router.post("/exchange", response_model=GoogleActionResponse)
async def exchange_code(
    request: GoogleExchangeRequest,
    auth: AuthContext = Depends(require_auth),
    client: Client = Depends(get_supabase),
    settings: Settings = Depends(get_settings),
):
    """Exchange an authorization code and store the encrypted tokens."""
    verify_oauth_state(request.state, auth.user_id)

    try:
        record = await exchange_code_for_tokens(settings, auth.user_id, request.code)
    except httpx.HTTPError as e:
        logger.error(f"Google code exchange failed for user {auth.user_id}: {e}")
        raise ExportFailed("Failed to connect Google account. Please try again.") from e

    await tokens_db.upsert_token(client, record)
    log_with_context(logger, logging.INFO, "Google account connected", user_id=auth.user_id)
    return GoogleActionResponse(message="Google account connected successfully")


@router.post("/disconnect", response_model=GoogleActionResponse)
async def disconnect(
    auth: AuthContext = Depends(require_auth),
    client: Client = Depends(get_supabase),
):
    """Forget the stored tokens. Succeeds when nothing was connected."""
    deleted = await tokens_db.delete_token(client, auth.user_id)
    if deleted:
        log_with_context(logger, logging.INFO, "Google account disconnected", user_id=auth.user_id)
    return GoogleActionResponse(message="Google account disconnected successfully")


@router.get("/status", response_model=GoogleStatusResponse)
async def status(
    auth: AuthContext = Depends(require_auth),
    client: Client = Depends(get_supabase),
):
    record = await tokens_db.get_token(client, auth.user_id)
    if record is None:
        return GoogleStatusResponse(connected=False)
    return GoogleStatusResponse(connected=True, expires_at=record.expires_at, scope=record.scope)


@router.post("/export", response_model=ExportResponse)
async def export(
    request: ExportRequest,
    auth: AuthContext = Depends(require_auth),
    client: Client = Depends(get_supabase),
    settings: Settings = Depends(get_settings),
):
    """Export one of the caller's documents to Google Docs or Sheets."""
    return await export_document(client, settings, auth.user_id, request)
