"""API router for v1 endpoints."""

from fastapi import APIRouter

from app.api import ai, billing, documents, google, webhooks

router = APIRouter()

# Documents CRUD and usage snapshot
router.include_router(documents.router, tags=["documents"])

# AI generation proxy
router.include_router(ai.router, tags=["ai"])

# Stripe checkout and subscription status
router.include_router(billing.router, tags=["billing"])

# Signed webhooks (no bearer auth)
router.include_router(webhooks.router, tags=["webhooks"])

# Google Workspace connection and export
router.include_router(google.router, tags=["google"])
