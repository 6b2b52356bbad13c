"""Pydantic schemas for the AI generation and summarization endpoints."""

from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.core.schemas_usage import GenerationUsage


class SummaryType(str, Enum):
    BRIEF = "brief"
    DETAILED = "detailed"
    KEY_POINTS = "key_points"


class GenerateRequest(BaseModel):
    prompt: str
    document_type: Optional[str] = None
    country: Optional[str] = None
    business_type: Optional[str] = None
    save: bool = True
    title: Optional[str] = None

    @field_validator("prompt")
    @classmethod
    def prompt_stripped(cls, v: str) -> str:
        return v.strip()


class GenerateResponse(BaseModel):
    success: bool = True
    content: str
    document_type: str
    country: str
    business_type: str
    document_id: Optional[UUID] = None
    usage: GenerationUsage


class SummarizeRequest(BaseModel):
    document_id: UUID
    content: str
    summary_type: SummaryType = SummaryType.BRIEF


class SummarizeResponse(BaseModel):
    success: bool = True
    summary: str
    summary_type: SummaryType
    usage: GenerationUsage


class DetectRequest(BaseModel):
    prompt: str = Field(..., min_length=1)


class DetectResponse(BaseModel):
    document_type: str
    document_label: str
    country: str
    business_type: str
