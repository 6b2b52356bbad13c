"""Billing endpoints: product catalog, checkout and subscription status."""

from typing import Optional

from fastapi import APIRouter, Depends
from supabase import Client

from app.core.auth_middleware import AuthContext, require_auth
from app.core.billing import create_checkout_session, get_products
from app.core.config import Settings, get_settings
from app.core.schemas_billing import CheckoutRequest, CheckoutResponse, Product, StripeSubscription
from app.db import billing as billing_db
from app.db.supabase_client import get_supabase

router = APIRouter(prefix="/billing")


@router.get("/products", response_model=list[Product])
async def list_products(settings: Settings = Depends(get_settings)):
    return get_products(settings)


@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    request: CheckoutRequest,
    auth: AuthContext = Depends(require_auth),
    client: Client = Depends(get_supabase),
    settings: Settings = Depends(get_settings),
):
    """Start a Stripe Checkout Session for a catalog price."""
    return await create_checkout_session(client, settings, auth.user_id, auth.email, request)


@router.get("/subscription", response_model=Optional[StripeSubscription])
async def get_subscription(
    auth: AuthContext = Depends(require_auth),
    client: Client = Depends(get_supabase),
):
    """The caller's mirrored subscription row, or null when they never checked out."""
    customer = await billing_db.get_customer_for_user(client, auth.user_id)
    if customer is None:
        return None
    return await billing_db.get_subscription(client, customer.customer_id)
