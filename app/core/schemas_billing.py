"""Pydantic schemas for checkout and the Stripe billing mirror."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from app.core.schemas_usage import Plan


class CheckoutMode(str, Enum):
    PAYMENT = "payment"
    SUBSCRIPTION = "subscription"


class SubscriptionStatus(str, Enum):
    """Mirror of Stripe's subscription status values."""
    NOT_STARTED = "not_started"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"


# Statuses that grant the paid plan of the subscribed price
ENTITLED_STATUSES = {SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING}


class Product(BaseModel):
    """One purchasable catalog entry."""
    id: str
    price_id: str
    name: str
    description: str
    mode: CheckoutMode
    price: float
    currency: str
    plan: Plan


class CheckoutRequest(BaseModel):
    price_id: str
    success_url: str
    cancel_url: str
    mode: CheckoutMode = CheckoutMode.SUBSCRIPTION


class CheckoutResponse(BaseModel):
    url: str
    session_id: str


class StripeCustomer(BaseModel):
    user_id: UUID
    customer_id: str
    deleted_at: Optional[datetime] = None


class StripeSubscription(BaseModel):
    """One ``stripe_subscriptions`` row."""
    customer_id: str
    subscription_id: Optional[str] = None
    price_id: Optional[str] = None
    status: SubscriptionStatus = SubscriptionStatus.NOT_STARTED
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
    payment_method_brand: Optional[str] = None
    payment_method_last4: Optional[str] = None


class StripeOrder(BaseModel):
    """One ``stripe_orders`` row (one-time payments)."""
    checkout_session_id: str
    payment_intent_id: Optional[str] = None
    customer_id: str
    amount_subtotal: Optional[int] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    payment_status: Optional[str] = None
    status: str = "completed"


class WebhookResult(BaseModel):
    status: str
    event_type: Optional[str] = None
    reason: Optional[str] = None
    plan: Optional[Plan] = None
