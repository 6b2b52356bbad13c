"""Server-side Google OAuth token management.

Handles encryption/decryption of stored tokens, the consent URL, the
authorization-code exchange and access-token refresh.
"""

import base64
import hashlib
import json
import logging
import secrets
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode
from uuid import UUID

import httpx
from cryptography.fernet import Fernet, InvalidToken

from app.core.config import Settings, get_settings
from app.core.errors import ConfigurationError, InvalidInput, TokenExpired
from app.core.schemas_google import OAuthTokenRecord

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

GOOGLE_EXPORT_SCOPES = [
    "https://www.googleapis.com/auth/documents",
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/spreadsheets",
]

# Consent round-trip must finish within this window
OAUTH_STATE_TTL_SECONDS = 600
OAUTH_STATE_PURPOSE = "google_connect"


def _get_fernet() -> Fernet:
    """Derive the Fernet cipher from the configured secret."""
    settings = get_settings()
    key = settings.TOKEN_ENCRYPTION_KEY
    if not key:
        raise ConfigurationError("TOKEN_ENCRYPTION_KEY not configured")
    # Derive a consistent 32-byte key via SHA-256
    raw = hashlib.sha256(key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(raw))


def encrypt_token(token: str) -> str:
    """Encrypt an OAuth token for storage."""
    return _get_fernet().encrypt(token.encode()).decode()


def decrypt_token(encrypted: str) -> str:
    """Decrypt a stored OAuth token."""
    try:
        return _get_fernet().decrypt(encrypted.encode()).decode()
    except InvalidToken as e:
        # Key rotated or row written by something else; force a reconnect
        logger.warning("Stored Google token could not be decrypted")
        raise TokenExpired("Stored Google credentials are unreadable. Please reconnect your Google account.") from e


def create_oauth_state(user_id: UUID) -> str:
    """Issue a signed, timestamped state value bound to the signed-in user."""
    payload = {"purpose": OAUTH_STATE_PURPOSE, "uid": str(user_id), "nonce": secrets.token_urlsafe(8)}
    return _get_fernet().encrypt(json.dumps(payload).encode()).decode()


def verify_oauth_state(state: str | None, user_id: UUID) -> None:
    """
    Check that ``state`` was issued to ``user_id`` within the TTL.

    Raises:
        InvalidInput: Missing, tampered, stale or issued to another user
    """
    if not state:
        raise InvalidInput("Missing OAuth state. Please reconnect your Google account.")
    try:
        payload = json.loads(_get_fernet().decrypt(state.encode(), ttl=OAUTH_STATE_TTL_SECONDS))
    except (InvalidToken, ValueError) as e:
        raise InvalidInput("OAuth state is invalid or expired. Please reconnect your Google account.") from e

    if not isinstance(payload, dict) or payload.get("purpose") != OAUTH_STATE_PURPOSE:
        raise InvalidInput("OAuth state is invalid or expired. Please reconnect your Google account.")
    if payload.get("uid") != str(user_id):
        logger.warning(f"OAuth state issued to another user presented by {user_id}")
        raise InvalidInput("OAuth state does not belong to the signed-in user.")


def _require_oauth_config(settings: Settings) -> tuple[str, str, str]:
    if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_CLIENT_SECRET or not settings.GOOGLE_REDIRECT_URI:
        raise ConfigurationError("Google OAuth not configured")
    return settings.GOOGLE_CLIENT_ID, settings.GOOGLE_CLIENT_SECRET, settings.GOOGLE_REDIRECT_URI


def build_auth_url(settings: Settings, state: str) -> str:
    """Build the Google consent-screen URL for the export scopes.

    ``state`` comes back on the callback and is checked again at exchange.
    """
    if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_REDIRECT_URI:
        raise ConfigurationError(
            "Google OAuth not configured. Please set GOOGLE_CLIENT_ID and GOOGLE_REDIRECT_URI."
        )

    params = {
        "client_id": settings.GOOGLE_CLIENT_ID,
        "redirect_uri": settings.GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": " ".join(GOOGLE_EXPORT_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


def _token_record_from_response(
    user_id: UUID,
    data: dict,
    fallback_refresh_token: str | None = None,
) -> OAuthTokenRecord:
    expires_in = int(data.get("expires_in") or 3600)
    return OAuthTokenRecord(
        user_id=user_id,
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token") or fallback_refresh_token,
        token_type=data.get("token_type") or "Bearer",
        expires_at=datetime.now(UTC) + timedelta(seconds=expires_in),
        scope=data.get("scope"),
    )


async def exchange_code_for_tokens(settings: Settings, user_id: UUID, code: str) -> OAuthTokenRecord:
    """
    Exchange an authorization code for access and refresh tokens.

    Raises:
        ConfigurationError: If Google OAuth is not configured
        httpx.HTTPStatusError: If Google rejects the code
    """
    client_id, client_secret, redirect_uri = _require_oauth_config(settings)

    async with httpx.AsyncClient(timeout=10) as client:
        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": client_id,
                "client_secret": client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        response.raise_for_status()
        data = response.json()

    logger.info(f"Google OAuth code exchanged for user {user_id}")
    return _token_record_from_response(user_id, data)


async def refresh_access_token(settings: Settings, record: OAuthTokenRecord) -> OAuthTokenRecord:
    """
    Exchange a stored refresh token for a fresh access token.

    Raises:
        TokenExpired: If there is no refresh token or Google rejects it
        ConfigurationError: If Google OAuth is not configured
    """
    if not record.refresh_token:
        raise TokenExpired()

    client_id, client_secret, _ = _require_oauth_config(settings)

    async with httpx.AsyncClient(timeout=10) as client:
        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": client_id,
                "client_secret": client_secret,
                "refresh_token": record.refresh_token,
                "grant_type": "refresh_token",
            },
        )

    if response.status_code in (400, 401):
        # invalid_grant: revoked or expired refresh token
        logger.warning(f"Google token refresh rejected for user {record.user_id}: {response.status_code}")
        raise TokenExpired()
    response.raise_for_status()

    refreshed = _token_record_from_response(
        record.user_id,
        response.json(),
        fallback_refresh_token=record.refresh_token,
    )
    if not refreshed.scope:
        refreshed.scope = record.scope
    return refreshed
