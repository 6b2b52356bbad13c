"""Export documents to Google Docs / Sheets on behalf of the caller.

Uses the scopes granted at Google connect time (documents, spreadsheets,
drive.file). Calls the REST APIs via httpx with the stored Bearer token,
refreshing it first when it has expired.
"""

import logging
from datetime import timedelta
from uuid import UUID

import httpx
from supabase import Client

from app.core.config import Settings
from app.core.errors import ExportFailed, NotConnected, NotFound, TokenExpired
from app.core.google_auth_helper import refresh_access_token
from app.core.logging import get_logger, log_with_context
from app.core.schemas_google import ExportRequest, ExportResponse, ExportType, OAuthTokenRecord
from app.db import documents as documents_db
from app.db import google_tokens as tokens_db

logger = get_logger(__name__)

DOCS_API_URL = "https://docs.googleapis.com/v1/documents"
SHEETS_API_URL = "https://sheets.googleapis.com/v4/spreadsheets"

# Refresh tokens this close to expiry so they cannot lapse mid-export
TOKEN_REFRESH_LEEWAY = timedelta(seconds=60)


async def get_valid_token(client: Client, settings: Settings, user_id: UUID) -> OAuthTokenRecord:
    """
    Load the caller's token, refreshing it if expired or about to expire.

    Raises:
        NotConnected: No token on file
        TokenExpired: Token expired and cannot be refreshed
    """
    record = await tokens_db.get_token(client, user_id)
    if record is None or not record.access_token:
        raise NotConnected()

    if not record.is_expired(leeway=TOKEN_REFRESH_LEEWAY):
        return record

    if not record.refresh_token:
        # Nothing to refresh with; use it until it actually lapses
        if record.is_expired():
            raise TokenExpired()
        return record

    try:
        refreshed = await refresh_access_token(settings, record)
    except httpx.HTTPError as e:
        logger.error(f"Google token refresh failed for user {user_id}: {e}")
        raise ExportFailed("Could not refresh Google credentials. Please try again.") from e

    await tokens_db.upsert_token(client, refreshed)
    log_with_context(logger, logging.INFO, "Refreshed Google access token", user_id=user_id)
    return refreshed


def content_to_rows(content: str) -> list[list[str]]:
    """One sheet row per non-empty line; markdown table rows are split into cells."""
    rows: list[list[str]] = []
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith("|") and stripped.endswith("|"):
            cells = [c.strip() for c in stripped.strip("|").split("|")]
            # Skip markdown header separators like |---|---|
            if all(set(c) <= set("-: ") for c in cells):
                continue
            rows.append(cells)
        else:
            rows.append([stripped])
    return rows


async def _export_to_docs(http: httpx.AsyncClient, headers: dict, title: str, content: str) -> str:
    response = await http.post(DOCS_API_URL, headers=headers, json={"title": title})
    response.raise_for_status()
    document_id = response.json()["documentId"]

    if content:
        response = await http.post(
            f"{DOCS_API_URL}/{document_id}:batchUpdate",
            headers=headers,
            json={"requests": [{"insertText": {"location": {"index": 1}, "text": content}}]},
        )
        response.raise_for_status()

    return document_id


async def _export_to_sheets(http: httpx.AsyncClient, headers: dict, title: str, content: str) -> str:
    response = await http.post(SHEETS_API_URL, headers=headers, json={"properties": {"title": title}})
    response.raise_for_status()
    spreadsheet_id = response.json()["spreadsheetId"]

    rows = content_to_rows(content)
    if rows:
        response = await http.put(
            f"{SHEETS_API_URL}/{spreadsheet_id}/values/A1",
            headers=headers,
            params={"valueInputOption": "RAW"},
            json={"range": "A1", "majorDimension": "ROWS", "values": rows},
        )
        response.raise_for_status()

    return spreadsheet_id


def google_url(export_type: ExportType, google_id: str) -> str:
    if export_type == ExportType.SHEETS:
        return f"https://docs.google.com/spreadsheets/d/{google_id}/edit"
    return f"https://docs.google.com/document/d/{google_id}/edit"


async def export_document(
    client: Client,
    settings: Settings,
    user_id: UUID,
    request: ExportRequest,
    timeout: int = 15,
) -> ExportResponse:
    """
    Export one of the caller's documents.

    Raises:
        NotFound: Document absent or not owned by the caller
        NotConnected / TokenExpired: Google connection missing or unusable
        ExportFailed: Google API error
    """
    document = await documents_db.get_document(client, user_id, request.document_id)
    if document is None:
        raise NotFound()

    token = await get_valid_token(client, settings, user_id)
    headers = {"Authorization": f"{token.token_type or 'Bearer'} {token.access_token}"}
    title = request.title.strip() or document.title

    try:
        async with httpx.AsyncClient(timeout=timeout) as http:
            if request.export_type == ExportType.SHEETS:
                google_id = await _export_to_sheets(http, headers, title, request.content)
            else:
                google_id = await _export_to_docs(http, headers, title, request.content)
    except httpx.HTTPStatusError as e:
        if e.response.status_code == 401:
            raise TokenExpired() from e
        logger.error(f"Google export failed ({e.response.status_code}): {e.response.text[:300]}")
        raise ExportFailed() from e
    except httpx.HTTPError as e:
        logger.error(f"Google export request error: {e}")
        raise ExportFailed() from e

    label = "Docs" if request.export_type == ExportType.DOCS else "Sheets"
    log_with_context(
        logger,
        logging.INFO,
        "Document exported to Google",
        user_id=user_id,
        document_id=document.id,
        export_type=request.export_type.value,
    )
    return ExportResponse(
        message=f'Document "{title}" exported to Google {label}',
        google_url=google_url(request.export_type, google_id),
        google_document_id=google_id,
        export_type=request.export_type,
    )
