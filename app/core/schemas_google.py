"""Pydantic schemas for the Google OAuth connection and export."""

from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class ExportType(str, Enum):
    DOCS = "docs"
    SHEETS = "sheets"


class OAuthTokenRecord(BaseModel):
    """Decrypted ``google_tokens`` row."""
    user_id: UUID
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None

    def is_expired(self, now: Optional[datetime] = None, leeway: timedelta = timedelta(0)) -> bool:
        """True once ``expires_at`` is within ``leeway`` of ``now``."""
        if self.expires_at is None:
            return False
        now = now or datetime.now(UTC)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return expires_at - leeway <= now


class GoogleAuthUrlResponse(BaseModel):
    auth_url: str


class GoogleExchangeRequest(BaseModel):
    code: str
    state: Optional[str] = None


class GoogleStatusResponse(BaseModel):
    connected: bool
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None


class GoogleActionResponse(BaseModel):
    success: bool = True
    message: str


class ExportRequest(BaseModel):
    document_id: UUID
    title: str
    content: str
    export_type: ExportType


class ExportResponse(BaseModel):
    success: bool = True
    message: str
    google_url: Optional[str] = None
    google_document_id: Optional[str] = None
    export_type: ExportType
