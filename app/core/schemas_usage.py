"""Pydantic schemas for plans, usage counters and limits."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

# Sentinel limit value meaning "no limit"
UNLIMITED = -1


class Plan(str, Enum):
    """Subscription tier."""
    FREE = "free"
    PRO = "pro"
    BUSINESS = "business"


class PlanLimits(BaseModel):
    """Numeric limits derived from a plan. ``-1`` means unlimited."""
    ai_generations: int
    documents: int
    features: list[str] = Field(default_factory=list)

    @property
    def unlimited_ai(self) -> bool:
        return self.ai_generations == UNLIMITED

    @property
    def unlimited_documents(self) -> bool:
        return self.documents == UNLIMITED


class UsageCounter(BaseModel):
    """One ``user_usage`` row."""
    user_id: UUID
    ai_generations_used: int = Field(default=0, ge=0)
    plan: Plan = Plan.FREE
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CounterSnapshot(BaseModel):
    """Point-in-time counts compared against plan limits."""
    ai_generations_used: int = 0
    documents_count: int = 0


class UsagePermissions(BaseModel):
    can_use_ai: bool
    can_create_document: bool


class UsageMeter(BaseModel):
    used: int
    limit: int


class UsageSummary(BaseModel):
    """Response for ``GET /usage``."""
    plan: Plan
    limits: PlanLimits
    permissions: UsagePermissions
    ai_usage: UsageMeter
    document_usage: UsageMeter


class GenerationUsage(BaseModel):
    """``usage`` block returned by the AI endpoints."""
    used: int
    limit: int
    plan: Plan
