"""Tests for checkout and Stripe webhook reconciliation."""

import asyncio
import hashlib
import hmac
import json
import time
from unittest.mock import AsyncMock, patch

import pytest
from postgrest.exceptions import APIError

from app.core.billing import get_products, plan_for_subscription, subscription_from_stripe
from app.core.config import Settings, get_settings
from app.core.schemas_billing import StripeSubscription, SubscriptionStatus
from app.core.schemas_usage import Plan
from app.main import app
from tests.fakes.fake_supabase import USER_ID

WEBHOOK_SECRET = "whsec_test_secret"
PRO_PRICE = "price_1RfLWW2cKms2tazUxzjrznUQ"
BUSINESS_PRICE = "price_1RfLXW2cKms2tazUSxzTlOW1"
CUSTOMER_ID = "cus_test_123"


# ──────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────


def _sign(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header the way Stripe does."""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def _post_event(client, event: dict, **sign_kwargs):
    payload = json.dumps(event)
    return client.post(
        "/v1/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": _sign(payload, **sign_kwargs), "Content-Type": "application/json"},
    )


def _subscription_object(status="active", price=PRO_PRICE, period_start=1_700_000_000, customer=CUSTOMER_ID):
    return {
        "id": "sub_123",
        "object": "subscription",
        "customer": customer,
        "status": status,
        "current_period_start": period_start,
        "current_period_end": period_start + 30 * 86400,
        "cancel_at_period_end": False,
        "items": {"data": [{"price": {"id": price}}]},
    }


def _event(event_type: str, obj: dict) -> dict:
    return {"id": "evt_123", "type": event_type, "data": {"object": obj}}


def _seed_customer(fake_db, user_id=USER_ID, customer_id=CUSTOMER_ID):
    fake_db.rows("stripe_customers").append(
        fake_db.new_row("stripe_customers", {"user_id": user_id, "customer_id": customer_id})
    )


def _seed_subscription(fake_db, status="active", price=PRO_PRICE, period_start=1_700_000_000):
    fake_db.rows("stripe_subscriptions").append(
        fake_db.new_row(
            "stripe_subscriptions",
            {
                "customer_id": CUSTOMER_ID,
                "subscription_id": "sub_123",
                "price_id": price,
                "status": status,
                "current_period_start": period_start,
            },
        )
    )


# ──────────────────────────────────────────────────────────────────────
# Catalog and plan derivation
# ──────────────────────────────────────────────────────────────────────


def test_products_endpoint(client):
    response = client.get("/v1/billing/products")

    assert response.status_code == 200
    products = {p["price_id"]: p for p in response.json()}
    assert products[PRO_PRICE]["plan"] == "pro"
    assert products[PRO_PRICE]["price"] == 9.0
    assert products[BUSINESS_PRICE]["plan"] == "business"
    assert products[BUSINESS_PRICE]["currency"] == "EUR"


@pytest.mark.parametrize(
    "status,price,expected",
    [
        (SubscriptionStatus.ACTIVE, PRO_PRICE, Plan.PRO),
        (SubscriptionStatus.TRIALING, BUSINESS_PRICE, Plan.BUSINESS),
        (SubscriptionStatus.PAST_DUE, PRO_PRICE, Plan.FREE),
        (SubscriptionStatus.CANCELED, BUSINESS_PRICE, Plan.FREE),
        (SubscriptionStatus.ACTIVE, "price_unknown", Plan.FREE),
    ],
)
def test_plan_for_subscription(settings, status, price, expected):
    subscription = StripeSubscription(customer_id=CUSTOMER_ID, status=status, price_id=price)
    assert plan_for_subscription(settings, subscription) == expected


def test_plan_for_missing_subscription(settings):
    assert plan_for_subscription(settings, None) == Plan.FREE


def test_subscription_from_stripe_reads_item_period_and_card():
    obj = _subscription_object()
    del obj["current_period_start"]
    obj["items"]["data"][0]["current_period_start"] = 1_800_000_000
    obj["default_payment_method"] = {"card": {"brand": "visa", "last4": "4242"}}

    subscription = subscription_from_stripe(obj)

    assert subscription.current_period_start == 1_800_000_000
    assert subscription.payment_method_brand == "visa"
    assert subscription.payment_method_last4 == "4242"
    assert subscription.status == SubscriptionStatus.ACTIVE


def test_catalog_uses_configured_price_ids():
    settings = Settings(STRIPE_PRO_PRICE_ID="price_custom_pro")
    assert get_products(settings)[0].price_id == "price_custom_pro"


# ──────────────────────────────────────────────────────────────────────
# Checkout
# ──────────────────────────────────────────────────────────────────────


def test_checkout_creates_customer_and_session(client, fake_db, auth_headers):
    with patch("app.core.billing.stripe.Customer.create", return_value={"id": "cus_new"}) as create_customer, patch(
        "app.core.billing.stripe.checkout.Session.create",
        return_value={"id": "cs_test_1", "url": "https://checkout.stripe.com/c/pay/cs_test_1"},
    ) as create_session:
        response = client.post(
            "/v1/billing/checkout",
            json={
                "price_id": PRO_PRICE,
                "success_url": "http://localhost:5173/success",
                "cancel_url": "http://localhost:5173/pricing",
            },
            headers=auth_headers,
        )

    assert response.status_code == 200
    assert response.json() == {"url": "https://checkout.stripe.com/c/pay/cs_test_1", "session_id": "cs_test_1"}

    assert create_customer.call_args.kwargs["email"] == "alice@example.com"
    session_kwargs = create_session.call_args.kwargs
    assert session_kwargs["customer"] == "cus_new"
    assert session_kwargs["client_reference_id"] == USER_ID
    assert session_kwargs["line_items"] == [{"price": PRO_PRICE, "quantity": 1}]
    assert session_kwargs["mode"] == "subscription"

    assert fake_db.rows("stripe_customers")[0]["customer_id"] == "cus_new"
    assert fake_db.rows("stripe_subscriptions")[0]["status"] == "not_started"


def test_stripe_calls_run_off_the_event_loop(client, fake_db, auth_headers):
    loops = []

    def record_loop(**kwargs):
        try:
            loops.append(asyncio.get_running_loop())
        except RuntimeError:
            loops.append(None)
        return {"id": "cs_test_3", "url": "https://checkout.stripe.com/c/pay/cs_test_3"}

    _seed_customer(fake_db)
    with patch("app.core.billing.stripe.checkout.Session.create", side_effect=record_loop):
        response = client.post(
            "/v1/billing/checkout",
            json={"price_id": PRO_PRICE, "success_url": "s", "cancel_url": "c"},
            headers=auth_headers,
        )

    assert response.status_code == 200
    # Executed in a worker thread, so no event loop is running there
    assert loops == [None]


def test_checkout_reuses_existing_customer(client, fake_db, auth_headers):
    _seed_customer(fake_db)

    with patch("app.core.billing.stripe.Customer.create") as create_customer, patch(
        "app.core.billing.stripe.checkout.Session.create",
        return_value={"id": "cs_test_2", "url": "https://checkout.stripe.com/c/pay/cs_test_2"},
    ) as create_session:
        response = client.post(
            "/v1/billing/checkout",
            json={"price_id": BUSINESS_PRICE, "success_url": "s", "cancel_url": "c"},
            headers=auth_headers,
        )

    assert response.status_code == 200
    create_customer.assert_not_called()
    assert create_session.call_args.kwargs["customer"] == CUSTOMER_ID


@pytest.mark.parametrize(
    "body",
    [
        {"price_id": "price_unknown", "success_url": "s", "cancel_url": "c"},
        {"price_id": PRO_PRICE, "success_url": "s", "cancel_url": "c", "mode": "payment"},
    ],
)
def test_checkout_rejects_price_outside_catalog(client, auth_headers, body):
    with patch("app.core.billing.stripe.checkout.Session.create") as create_session:
        response = client.post("/v1/billing/checkout", json=body, headers=auth_headers)

    assert response.status_code == 400
    create_session.assert_not_called()


def test_checkout_requires_auth(client):
    response = client.post(
        "/v1/billing/checkout", json={"price_id": PRO_PRICE, "success_url": "s", "cancel_url": "c"}
    )
    assert response.status_code == 401


def test_subscription_endpoint(client, fake_db, auth_headers):
    assert client.get("/v1/billing/subscription", headers=auth_headers).json() is None

    _seed_customer(fake_db)
    _seed_subscription(fake_db)

    data = client.get("/v1/billing/subscription", headers=auth_headers).json()
    assert data["status"] == "active"
    assert data["price_id"] == PRO_PRICE


# ──────────────────────────────────────────────────────────────────────
# Webhook verification
# ──────────────────────────────────────────────────────────────────────


def test_webhook_rejects_missing_signature(client, fake_db):
    response = client.post("/v1/webhooks/stripe", content=json.dumps(_event("ping", {})))

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_webhook_rejects_bad_signature(client, fake_db):
    _seed_customer(fake_db)
    fake_db.seed_usage(USER_ID, plan="free")

    response = _post_event(
        client,
        _event("customer.subscription.updated", _subscription_object()),
        secret="whsec_attacker",
    )

    assert response.status_code == 400
    assert fake_db.usage(USER_ID)["plan"] == "free"
    assert fake_db.rows("stripe_subscriptions") == []


def test_webhook_rejects_stale_timestamp(client, fake_db):
    response = _post_event(
        client,
        _event("customer.subscription.updated", _subscription_object()),
        timestamp=int(time.time()) - 3600,
    )
    assert response.status_code == 400


def test_webhook_fails_closed_without_secret(client, fake_db):
    app.dependency_overrides[get_settings] = lambda: Settings(STRIPE_WEBHOOK_SECRET=None)

    response = _post_event(client, _event("customer.subscription.updated", _subscription_object()))

    assert response.status_code == 400


# ──────────────────────────────────────────────────────────────────────
# Webhook reconciliation
# ──────────────────────────────────────────────────────────────────────


def test_subscription_deleted_reverts_to_free(client, fake_db, auth_headers):
    _seed_customer(fake_db)
    _seed_subscription(fake_db, status="active", price=PRO_PRICE)
    fake_db.seed_usage(USER_ID, plan="pro", used=4)

    response = _post_event(
        client,
        _event("customer.subscription.deleted", _subscription_object(status="canceled")),
    )

    assert response.status_code == 200
    assert response.json()["status"] == "processed"
    assert response.json()["plan"] == "free"

    usage = client.get("/v1/usage", headers=auth_headers).json()
    assert usage["plan"] == "free"
    assert usage["ai_usage"]["limit"] == 1
    assert usage["document_usage"]["limit"] == 3


def test_subscription_updated_upgrades_plan(client, fake_db):
    _seed_customer(fake_db)
    _seed_subscription(fake_db, price=PRO_PRICE)
    fake_db.seed_usage(USER_ID, plan="pro", used=2)

    response = _post_event(
        client,
        _event("customer.subscription.updated", _subscription_object(price=BUSINESS_PRICE)),
    )

    assert response.json()["plan"] == "business"
    assert fake_db.usage(USER_ID)["plan"] == "business"
    assert fake_db.usage(USER_ID)["ai_generations_used"] == 2
    assert fake_db.rows("stripe_subscriptions")[0]["price_id"] == BUSINESS_PRICE


def test_new_billing_period_resets_usage(client, fake_db):
    _seed_customer(fake_db)
    _seed_subscription(fake_db, period_start=1_700_000_000)
    fake_db.seed_usage(USER_ID, plan="pro", used=10)

    _post_event(
        client,
        _event("customer.subscription.updated", _subscription_object(period_start=1_702_592_000)),
    )

    assert fake_db.usage(USER_ID)["ai_generations_used"] == 0
    assert fake_db.usage(USER_ID)["plan"] == "pro"


def test_unknown_customer_is_ignored(client, fake_db):
    response = _post_event(
        client,
        _event("customer.subscription.updated", _subscription_object(customer="cus_stranger")),
    )

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    assert response.json()["reason"] == "unknown_customer"
    assert fake_db.rows("stripe_subscriptions") == []


def test_unhandled_event_is_ignored(client, fake_db):
    response = _post_event(client, _event("invoice.created", {"customer": CUSTOMER_ID}))

    assert response.status_code == 200
    assert response.json() == {"status": "ignored", "event_type": "invoice.created", "reason": "unhandled_event"}


def test_checkout_completed_subscription_mode(client, fake_db):
    _seed_customer(fake_db)
    fake_db.seed_usage(USER_ID, plan="free", used=1)
    session = {
        "id": "cs_test_1",
        "object": "checkout.session",
        "customer": CUSTOMER_ID,
        "mode": "subscription",
        "subscription": "sub_123",
        "payment_status": "paid",
    }

    with patch(
        "app.core.billing.stripe.Subscription.retrieve", return_value=_subscription_object()
    ) as retrieve:
        response = _post_event(client, _event("checkout.session.completed", session))

    assert response.status_code == 200
    assert response.json()["plan"] == "pro"
    assert retrieve.call_args.args == ("sub_123",)
    assert fake_db.usage(USER_ID)["plan"] == "pro"


def test_checkout_completed_links_customer_by_reference(client, fake_db):
    fake_db.seed_usage(USER_ID)
    session = {
        "id": "cs_test_1",
        "customer": "cus_fresh",
        "client_reference_id": USER_ID,
        "mode": "subscription",
        "subscription": "sub_123",
    }

    with patch(
        "app.core.billing.stripe.Subscription.retrieve",
        return_value=_subscription_object(customer="cus_fresh", price=BUSINESS_PRICE),
    ):
        response = _post_event(client, _event("checkout.session.completed", session))

    assert response.json()["plan"] == "business"
    assert fake_db.rows("stripe_customers")[0]["user_id"] == USER_ID


def test_checkout_completed_reference_to_missing_user_is_ignored(client, fake_db):
    session = {
        "id": "cs_test_1",
        "customer": "cus_fresh",
        "client_reference_id": "11111111-1111-4111-8111-111111111111",
        "mode": "subscription",
        "subscription": "sub_123",
    }
    fk_error = APIError(
        {
            "code": "23503",
            "message": "insert or update on table \"stripe_customers\" violates foreign key constraint",
            "details": None,
            "hint": None,
        }
    )

    with patch("app.core.billing.billing_db.create_customer", AsyncMock(side_effect=fk_error)), patch(
        "app.core.billing.stripe.Subscription.retrieve"
    ) as retrieve:
        response = _post_event(client, _event("checkout.session.completed", session))

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    assert response.json()["reason"] == "unknown_customer"
    retrieve.assert_not_called()


def test_checkout_completed_reference_to_already_linked_user_is_ignored(client, fake_db):
    _seed_customer(fake_db, customer_id="cus_original")
    fake_db.seed_usage(USER_ID, plan="pro")
    session = {
        "id": "cs_test_1",
        "customer": "cus_duplicate",
        "client_reference_id": USER_ID,
        "mode": "subscription",
        "subscription": "sub_999",
    }

    with patch("app.core.billing.stripe.Subscription.retrieve") as retrieve:
        response = _post_event(client, _event("checkout.session.completed", session))

    assert response.status_code == 200
    assert response.json()["reason"] == "unknown_customer"
    retrieve.assert_not_called()
    assert [r["customer_id"] for r in fake_db.rows("stripe_customers")] == ["cus_original"]
    assert fake_db.usage(USER_ID)["plan"] == "pro"


def test_checkout_completed_payment_mode_records_order(client, fake_db):
    _seed_customer(fake_db)
    session = {
        "id": "cs_test_9",
        "customer": CUSTOMER_ID,
        "mode": "payment",
        "payment_status": "paid",
        "payment_intent": "pi_123",
        "amount_subtotal": 900,
        "amount_total": 900,
        "currency": "eur",
    }

    response = _post_event(client, _event("checkout.session.completed", session))

    assert response.json()["status"] == "processed"
    orders = fake_db.rows("stripe_orders")
    assert len(orders) == 1
    assert orders[0]["checkout_session_id"] == "cs_test_9"
    assert orders[0]["amount_total"] == 900
