"""Billing bridge between Stripe and the usage plan.

Two responsibilities:
- create Checkout Sessions for catalog prices
- reconcile signed webhook events into the ``stripe_*`` mirror tables,
  then recompute the plan stored on the user's usage counter

There is no subscription state machine here; Stripe owns the state and
each event is translated into a row upsert.
"""

import asyncio
import json
import logging
from typing import Any, Optional
from uuid import UUID

import stripe
from postgrest.exceptions import APIError
from supabase import Client

from app.core.config import Settings
from app.core.errors import ConfigurationError, InvalidInput, WebhookVerificationError
from app.core.logging import get_logger, log_with_context
from app.core.schemas_billing import (
    ENTITLED_STATUSES,
    CheckoutMode,
    CheckoutRequest,
    CheckoutResponse,
    Product,
    StripeOrder,
    StripeSubscription,
    SubscriptionStatus,
    WebhookResult,
)
from app.core.schemas_usage import Plan
from app.db import billing as billing_db
from app.db import usage as usage_db

logger = get_logger(__name__)

SUBSCRIPTION_EVENTS = {
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
}


# =============================================================================
# Catalog
# =============================================================================


def get_products(settings: Settings) -> list[Product]:
    return [
        Product(
            id="prod_SaWZEFRUkxvZlt",
            price_id=settings.STRIPE_PRO_PRICE_ID,
            name="Docwise Pro",
            description="10 AI generations and 50 documents per billing period",
            mode=CheckoutMode.SUBSCRIPTION,
            price=9.00,
            currency="EUR",
            plan=Plan.PRO,
        ),
        Product(
            id="prod_SaWaMypIboiteZ",
            price_id=settings.STRIPE_BUSINESS_PRICE_ID,
            name="Docwise Business",
            description="Unlimited AI generations and documents",
            mode=CheckoutMode.SUBSCRIPTION,
            price=29.00,
            currency="EUR",
            plan=Plan.BUSINESS,
        ),
    ]


def get_product_by_price_id(settings: Settings, price_id: str) -> Optional[Product]:
    for product in get_products(settings):
        if product.price_id == price_id:
            return product
    return None


def plan_for_subscription(settings: Settings, subscription: Optional[StripeSubscription]) -> Plan:
    """Derive the usage plan from a mirrored subscription."""
    if subscription is None or subscription.status not in ENTITLED_STATUSES:
        return Plan.FREE
    product = get_product_by_price_id(settings, subscription.price_id or "")
    return product.plan if product else Plan.FREE


def _require_secret_key(settings: Settings) -> str:
    if not settings.STRIPE_SECRET_KEY:
        raise ConfigurationError("Stripe not configured")
    return settings.STRIPE_SECRET_KEY


def _to_dict(obj: Any) -> dict[str, Any]:
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


# =============================================================================
# Checkout
# =============================================================================


async def create_checkout_session(
    client: Client,
    settings: Settings,
    user_id: UUID,
    email: Optional[str],
    request: CheckoutRequest,
) -> CheckoutResponse:
    """
    Create a Stripe Checkout Session for a catalog price.

    Reuses the caller's Stripe customer, creating and mirroring one on
    first checkout.

    Raises:
        InvalidInput: Unknown price or mode mismatch
        ConfigurationError: Stripe secret key missing
    """
    api_key = _require_secret_key(settings)

    product = get_product_by_price_id(settings, request.price_id)
    if product is None:
        raise InvalidInput(f"Unknown price '{request.price_id}'")
    if product.mode != request.mode:
        raise InvalidInput(f"Price '{request.price_id}' requires mode '{product.mode.value}'")

    customer = await billing_db.get_customer_for_user(client, user_id)
    if customer is None:
        stripe_customer = await asyncio.to_thread(
            stripe.Customer.create,
            api_key=api_key,
            email=email,
            metadata={"userId": str(user_id)},
        )
        customer = await billing_db.create_customer(client, user_id, stripe_customer["id"])
        if request.mode == CheckoutMode.SUBSCRIPTION:
            await billing_db.upsert_subscription(
                client,
                StripeSubscription(customer_id=customer.customer_id),
            )
        log_with_context(
            logger, logging.INFO, "Created Stripe customer", user_id=user_id, customer_id=customer.customer_id
        )

    session = await asyncio.to_thread(
        stripe.checkout.Session.create,
        api_key=api_key,
        customer=customer.customer_id,
        client_reference_id=str(user_id),
        payment_method_types=["card"],
        line_items=[{"price": product.price_id, "quantity": 1}],
        mode=request.mode.value,
        success_url=request.success_url,
        cancel_url=request.cancel_url,
    )

    log_with_context(
        logger, logging.INFO, "Checkout session created", user_id=user_id, price_id=product.price_id
    )
    return CheckoutResponse(url=session["url"], session_id=session["id"])


# =============================================================================
# Webhooks
# =============================================================================


def verify_event(settings: Settings, payload: bytes, signature: Optional[str]) -> dict[str, Any]:
    """
    Verify a webhook signature and parse the event.

    Fails closed: a missing secret, missing header, bad signature or
    malformed payload all raise ``WebhookVerificationError``.
    """
    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("Stripe webhook secret not configured; rejecting event")
        raise WebhookVerificationError("Webhook secret not configured")
    if not signature:
        raise WebhookVerificationError("Missing Stripe-Signature header")

    try:
        body = payload.decode("utf-8")
        stripe.WebhookSignature.verify_header(
            body, signature, settings.STRIPE_WEBHOOK_SECRET, tolerance=stripe.Webhook.DEFAULT_TOLERANCE
        )
        event = json.loads(body)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Stripe signature verification failed: {e}")
        raise WebhookVerificationError("Invalid signature") from e
    except (UnicodeDecodeError, ValueError) as e:
        raise WebhookVerificationError("Invalid payload") from e

    if not isinstance(event, dict) or "type" not in event:
        raise WebhookVerificationError("Invalid payload")
    return event


def subscription_from_stripe(obj: dict[str, Any]) -> StripeSubscription:
    """Map a Stripe subscription object onto a mirror row."""
    items = (obj.get("items") or {}).get("data") or []
    first_item = items[0] if items else {}
    price = first_item.get("price") or {}

    # Newer API versions moved the period onto the subscription item
    period_start = obj.get("current_period_start") or first_item.get("current_period_start")
    period_end = obj.get("current_period_end") or first_item.get("current_period_end")

    brand = last4 = None
    payment_method = obj.get("default_payment_method")
    if isinstance(payment_method, dict):
        card = payment_method.get("card") or {}
        brand = card.get("brand")
        last4 = card.get("last4")

    try:
        status = SubscriptionStatus(obj.get("status") or SubscriptionStatus.NOT_STARTED.value)
    except ValueError:
        logger.warning(f"Unknown subscription status '{obj.get('status')}'")
        status = SubscriptionStatus.INCOMPLETE

    return StripeSubscription(
        customer_id=obj["customer"],
        subscription_id=obj.get("id"),
        price_id=price.get("id"),
        status=status,
        current_period_start=period_start,
        current_period_end=period_end,
        cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
        payment_method_brand=brand,
        payment_method_last4=last4,
    )


async def _apply_subscription(
    client: Client,
    settings: Settings,
    user_id: UUID,
    subscription: StripeSubscription,
) -> Plan:
    """Upsert the mirror row and push the derived plan onto the usage counter."""
    previous = await billing_db.get_subscription(client, subscription.customer_id)
    await billing_db.upsert_subscription(client, subscription)

    plan = plan_for_subscription(settings, subscription)
    await usage_db.set_plan(client, user_id, plan)

    new_period = (
        previous is not None
        and previous.current_period_start is not None
        and subscription.current_period_start is not None
        and subscription.current_period_start != previous.current_period_start
    )
    if new_period:
        await usage_db.reset_ai_generations(client, user_id)

    log_with_context(
        logger,
        logging.INFO,
        "Subscription reconciled",
        user_id=user_id,
        status=subscription.status.value,
        plan=plan.value,
        new_period=new_period,
    )
    return plan


async def _resolve_user(client: Client, customer_id: str, reference: Optional[str] = None) -> Optional[UUID]:
    user_id = await billing_db.get_user_id_for_customer(client, customer_id)
    if user_id is not None or not reference:
        return user_id

    # Checkout created outside this service: link via client_reference_id
    try:
        user_id = UUID(reference)
    except ValueError:
        logger.warning(f"Stripe customer {customer_id} has malformed client_reference_id")
        return None
    try:
        await billing_db.create_customer(client, user_id, customer_id)
    except APIError as e:
        # Unknown user (FK) or user already mapped to another customer (unique user_id)
        logger.warning(f"Could not link Stripe customer {customer_id} to user {user_id}: {e.code} {e.message}")
        return None
    return user_id


async def handle_event(client: Client, settings: Settings, event: dict[str, Any]) -> WebhookResult:
    """Translate one verified Stripe event into mirror-table writes."""
    event_type = event["type"]
    obj = (event.get("data") or {}).get("object") or {}
    customer_id = obj.get("customer")

    if event_type != "checkout.session.completed" and event_type not in SUBSCRIPTION_EVENTS:
        logger.info(f"Unhandled Stripe event type: {event_type}")
        return WebhookResult(status="ignored", event_type=event_type, reason="unhandled_event")

    if not customer_id or not isinstance(customer_id, str):
        logger.warning(f"Stripe event {event_type} has no customer id")
        return WebhookResult(status="ignored", event_type=event_type, reason="no_customer")

    user_id = await _resolve_user(
        client,
        customer_id,
        obj.get("client_reference_id") if event_type == "checkout.session.completed" else None,
    )
    if user_id is None:
        logger.warning(f"Stripe event {event_type} for unknown customer {customer_id}, dropping")
        return WebhookResult(status="ignored", event_type=event_type, reason="unknown_customer")

    if event_type in SUBSCRIPTION_EVENTS:
        plan = await _apply_subscription(client, settings, user_id, subscription_from_stripe(obj))
        return WebhookResult(status="processed", event_type=event_type, plan=plan)

    # checkout.session.completed
    mode = obj.get("mode")
    if mode == CheckoutMode.SUBSCRIPTION.value and obj.get("subscription"):
        api_key = _require_secret_key(settings)
        stripe_subscription = await asyncio.to_thread(
            stripe.Subscription.retrieve,
            obj["subscription"],
            api_key=api_key,
            expand=["default_payment_method"],
        )
        plan = await _apply_subscription(
            client, settings, user_id, subscription_from_stripe(_to_dict(stripe_subscription))
        )
        return WebhookResult(status="processed", event_type=event_type, plan=plan)

    if mode == CheckoutMode.PAYMENT.value and obj.get("payment_status") == "paid":
        await billing_db.insert_order(
            client,
            StripeOrder(
                checkout_session_id=obj["id"],
                payment_intent_id=obj.get("payment_intent"),
                customer_id=customer_id,
                amount_subtotal=obj.get("amount_subtotal"),
                amount_total=obj.get("amount_total"),
                currency=obj.get("currency"),
                payment_status=obj.get("payment_status"),
            ),
        )
        log_with_context(logger, logging.INFO, "One-time order recorded", user_id=user_id)
        return WebhookResult(status="processed", event_type=event_type)

    return WebhookResult(status="ignored", event_type=event_type, reason="nothing_to_reconcile")
