"""Webhook handlers for external services.

Registered WITHOUT bearer auth; uses signature verification instead.
Handles: Stripe billing events.
"""

from fastapi import APIRouter, Depends, Header, Request
from supabase import Client

from app.core.billing import handle_event, verify_event
from app.core.config import Settings, get_settings
from app.core.schemas_billing import WebhookResult
from app.db.supabase_client import get_supabase

router = APIRouter(prefix="/webhooks")


@router.post("/stripe", response_model=WebhookResult, response_model_exclude_none=True)
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    client: Client = Depends(get_supabase),
    settings: Settings = Depends(get_settings),
):
    """
    Receive a Stripe event.

    Flow:
    1. Verify the signature against the raw body (400 on failure)
    2. Reconcile the event into the billing mirror tables
    3. Recompute the owner's plan
    """
    payload = await request.body()
    event = verify_event(settings, payload, stripe_signature)
    return await handle_event(client, settings, event)
