"""Database operations for the Stripe billing mirror.

Tables: ``stripe_customers``, ``stripe_subscriptions``, ``stripe_orders``.
Written only by checkout setup and webhook reconciliation.
"""

from datetime import UTC, datetime
from typing import Optional
from uuid import UUID

from supabase import Client

from app.core.schemas_billing import StripeCustomer, StripeOrder, StripeSubscription


async def get_customer_for_user(client: Client, user_id: UUID) -> Optional[StripeCustomer]:
    result = (
        client.table("stripe_customers")
        .select("*")
        .eq("user_id", str(user_id))
        .is_("deleted_at", "null")
        .execute()
    )
    if result.data:
        return StripeCustomer(**result.data[0])
    return None


async def get_user_id_for_customer(client: Client, customer_id: str) -> Optional[UUID]:
    """Resolve a Stripe customer id to the owning user, or None if unknown."""
    result = (
        client.table("stripe_customers")
        .select("user_id")
        .eq("customer_id", customer_id)
        .is_("deleted_at", "null")
        .execute()
    )
    if result.data:
        return UUID(result.data[0]["user_id"])
    return None


async def create_customer(client: Client, user_id: UUID, customer_id: str) -> StripeCustomer:
    result = (
        client.table("stripe_customers")
        .insert({"user_id": str(user_id), "customer_id": customer_id})
        .execute()
    )
    return StripeCustomer(**result.data[0])


async def get_subscription(client: Client, customer_id: str) -> Optional[StripeSubscription]:
    result = (
        client.table("stripe_subscriptions")
        .select("*")
        .eq("customer_id", customer_id)
        .is_("deleted_at", "null")
        .execute()
    )
    if result.data:
        return StripeSubscription(**result.data[0])
    return None


async def upsert_subscription(client: Client, subscription: StripeSubscription) -> StripeSubscription:
    row = subscription.model_dump(mode="json")
    row["updated_at"] = datetime.now(UTC).isoformat()
    result = (
        client.table("stripe_subscriptions")
        .upsert(row, on_conflict="customer_id")
        .execute()
    )
    return StripeSubscription(**result.data[0])


async def insert_order(client: Client, order: StripeOrder) -> None:
    client.table("stripe_orders").insert(order.model_dump(mode="json")).execute()
