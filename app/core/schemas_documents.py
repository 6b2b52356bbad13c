"""Pydantic schemas for documents."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

DEFAULT_DOCUMENT_TITLE = "Untitled Document"


class Document(BaseModel):
    """One ``documents`` row."""
    id: UUID
    user_id: UUID
    title: str
    content: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DocumentCreate(BaseModel):
    title: str = DEFAULT_DOCUMENT_TITLE
    content: str = ""

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        return v.strip() or DEFAULT_DOCUMENT_TITLE


class DocumentUpdate(BaseModel):
    """Full save of a document (manual save and auto-save)."""
    title: str = Field(..., min_length=1)
    content: str

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be empty")
        return v.strip()


class DocumentDeleteResponse(BaseModel):
    success: bool = True
    deleted: bool
