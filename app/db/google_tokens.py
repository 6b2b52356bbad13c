"""Database operations for stored Google OAuth tokens (``google_tokens``).

Token values are encrypted at rest; this module stores and returns them
already encrypted/decrypted via ``app.core.google_auth_helper``.
"""

from datetime import UTC, datetime
from typing import Optional
from uuid import UUID

from supabase import Client

from app.core.google_auth_helper import decrypt_token, encrypt_token
from app.core.schemas_google import OAuthTokenRecord


async def get_token(client: Client, user_id: UUID) -> Optional[OAuthTokenRecord]:
    """Get the caller's token record, decrypted."""
    result = client.table("google_tokens").select("*").eq("user_id", str(user_id)).execute()
    if not result.data:
        return None

    row = result.data[0]
    return OAuthTokenRecord(
        user_id=row["user_id"],
        access_token=decrypt_token(row["access_token"]) if row.get("access_token") else None,
        refresh_token=decrypt_token(row["refresh_token"]) if row.get("refresh_token") else None,
        token_type=row.get("token_type") or "Bearer",
        expires_at=row.get("expires_at"),
        scope=row.get("scope"),
    )


async def upsert_token(client: Client, record: OAuthTokenRecord) -> None:
    """Create or overwrite the caller's token record (one per user)."""
    row = {
        "user_id": str(record.user_id),
        "access_token": encrypt_token(record.access_token) if record.access_token else None,
        "refresh_token": encrypt_token(record.refresh_token) if record.refresh_token else None,
        "token_type": record.token_type,
        "expires_at": record.expires_at.isoformat() if record.expires_at else None,
        "scope": record.scope,
        "updated_at": datetime.now(UTC).isoformat(),
    }
    client.table("google_tokens").upsert(row, on_conflict="user_id").execute()


async def delete_token(client: Client, user_id: UUID) -> bool:
    """Remove the caller's token record. Returns whether one existed."""
    result = client.table("google_tokens").delete().eq("user_id", str(user_id)).execute()
    return len(result.data or []) > 0
