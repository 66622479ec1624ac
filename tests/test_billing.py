"""Tests for credits, subscriptions and the Stripe webhook.

Stripe calls are patched; nothing leaves the process.
"""

import time
from datetime import datetime, timedelta
from unittest import mock

import pytest
import stripe

from storescore.services.subscription_service import SubscriptionService

SIGNATURE = {"stripe-signature": "t=1,v1=test"}


def _send_event(client, event):
    with mock.patch("stripe.Webhook.construct_event", return_value=event):
        return client.post("/api/webhooks/stripe", headers=SIGNATURE, content=b"{}")


@pytest.fixture
def subscription(db_service, account):
    plan = db_service.get_plan_by_name("Pro Plan")
    now = datetime.utcnow()
    return db_service.create_user_subscription(
        user_id=account["user"]["id"],
        plan_id=plan["id"],
        stripe_subscription_id="sub_123",
        stripe_customer_id="cus_123",
        status="trialing",
        current_period_start=now,
        current_period_end=now + timedelta(days=7),
    )


def test_credit_balance_and_packages(client, auth_headers):
    response = client.get("/api/credits", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["credits"] == 25
    starter = next(p for p in data["packages"] if p["package"] == "starter")
    assert starter == {"package": "starter", "credits": 50, "price": 900, "displayPrice": "$9.00"}


def test_plans_are_public(client):
    response = client.get("/api/subscriptions/plans")

    assert response.status_code == 200
    plans = response.json()["data"]
    assert [p["displayPrice"] for p in plans] == ["$29.00", "$49.00", "$99.00"]


def test_purchase_creates_payment_intent(client, account, auth_headers):
    intent = mock.Mock(id="pi_abc", client_secret="pi_abc_secret")
    with mock.patch("stripe.PaymentIntent.create", return_value=intent) as create:
        response = client.post("/api/payments/credits", headers=auth_headers, json={"package": "growth"})

    assert response.status_code == 200
    assert response.json()["data"] == {
        "clientSecret": "pi_abc_secret",
        "paymentIntentId": "pi_abc",
        "credits": 150,
        "amount": 1900,
    }
    kwargs = create.call_args.kwargs
    assert kwargs["amount"] == 1900
    assert kwargs["metadata"]["userId"] == str(account["user"]["id"])
    assert kwargs["metadata"]["credits"] == "150"


def test_purchase_rejects_unknown_package(client, auth_headers):
    response = client.post("/api/payments/credits", headers=auth_headers, json={"package": "mega"})
    assert response.status_code == 422


def test_payment_webhook_adds_credits_once(client, account, auth_headers):
    event = {
        "type": "payment_intent.succeeded",
        "data": {"object": {
            "id": "pi_abc",
            "metadata": {"userId": str(account["user"]["id"]), "credits": "50", "package": "starter"},
        }},
    }

    first = _send_event(client, event)
    second = _send_event(client, event)

    assert first.json() == {"received": True, "handled": True}
    assert second.status_code == 200
    assert client.get("/api/credits", headers=auth_headers).json()["data"]["credits"] == 75


def test_webhook_requires_signature(client):
    response = client.post("/api/webhooks/stripe", content=b"{}")
    assert response.status_code == 400


def test_webhook_rejects_bad_signature(client):
    error = stripe.SignatureVerificationError("No signatures found", "t=1,v1=bad")
    with mock.patch("stripe.Webhook.construct_event", side_effect=error):
        response = client.post("/api/webhooks/stripe", headers=SIGNATURE, content=b"{}")

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid webhook signature"


def test_unhandled_event_is_acknowledged(client):
    response = _send_event(client, {"type": "charge.refunded", "data": {"object": {"id": "ch_1"}}})
    assert response.json() == {"received": True, "handled": False}


def test_invoice_paid_activates_and_grants_plan_credits(client, account, auth_headers, subscription):
    event = {
        "type": "invoice.payment_succeeded",
        "data": {"object": {"id": "in_1", "subscription": "sub_123", "payment_intent": "pi_sub_1"}},
    }

    _send_event(client, event)
    _send_event(client, event)

    me = client.get("/api/auth/me", headers=auth_headers).json()["data"]
    assert me["subscriptionStatus"] == "active"
    assert me["aiCredits"] == 25 + 300

    data = client.get("/api/subscription", headers=auth_headers).json()["data"]
    assert data["subscription"]["status"] == "active"
    assert data["plan"]["name"] == "Pro Plan"
    assert data["access"]["hasAccess"] is True


def test_invoice_subscription_from_parent_details(client, account, auth_headers, subscription):
    event = {
        "type": "invoice.payment_succeeded",
        "data": {"object": {
            "id": "in_2",
            "parent": {"subscription_details": {"subscription": "sub_123"}},
        }},
    }

    _send_event(client, event)

    transactions = client.get("/api/credits/transactions", headers=auth_headers).json()["data"]
    assert transactions[0]["stripePaymentId"] == "in_2"
    assert transactions[0]["type"] == "bonus"


def test_failed_payment_marks_past_due(client, auth_headers, subscription):
    _send_event(client, {"type": "invoice.payment_failed", "data": {"object": {"subscription": "sub_123"}}})

    me = client.get("/api/auth/me", headers=auth_headers).json()["data"]
    assert me["subscriptionStatus"] == "past_due"


def test_subscription_update_uses_item_periods(client, auth_headers, subscription):
    start = int(time.time())
    end = start + 30 * 86400
    _send_event(client, {
        "type": "customer.subscription.updated",
        "data": {"object": {
            "id": "sub_123",
            "status": "active",
            "cancel_at_period_end": True,
            "items": {"data": [{"current_period_start": start, "current_period_end": end}]},
        }},
    })

    stored = client.get("/api/subscription", headers=auth_headers).json()["data"]["subscription"]
    assert stored["status"] == "active"
    assert stored["cancelAtPeriodEnd"] is True
    assert stored["currentPeriodEnd"].startswith(datetime.utcfromtimestamp(end).strftime("%Y-%m-%dT%H:%M"))


def test_subscription_deleted_removes_access(client, account, auth_headers, subscription, db_service):
    _send_event(client, {"type": "customer.subscription.deleted", "data": {"object": {"id": "sub_123"}}})

    access = SubscriptionService(db_service).check_user_access(account["user"]["id"])
    assert access["hasAccess"] is False
    assert access["subscriptionStatus"] == "canceled"


def test_access_rules(db_service, account):
    service = SubscriptionService(db_service)
    user_id = account["user"]["id"]

    assert service.check_user_access(user_id)["hasAccess"] is False

    db_service.update_user(user_id, subscription_status="trialing",
                           trial_ends_at=datetime.utcnow() + timedelta(days=3))
    assert service.check_user_access(user_id)["subscriptionStatus"] == "trialing"

    db_service.update_user(user_id, trial_ends_at=datetime.utcnow() - timedelta(days=1))
    assert service.check_user_access(user_id)["hasAccess"] is False

    db_service.update_user(user_id, is_admin=True)
    assert service.check_user_access(user_id)["hasAccess"] is True


def test_start_trial(client, account, auth_headers):
    trial_start = int(time.time())
    trial_end = trial_start + 7 * 86400
    stripe_subscription = {
        "id": "sub_new",
        "status": "trialing",
        "trial_start": trial_start,
        "trial_end": trial_end,
        "items": {"data": [{"current_period_start": trial_start, "current_period_end": trial_end}]},
    }

    with mock.patch("stripe.Customer.create", return_value=mock.Mock(id="cus_new")), \
            mock.patch("stripe.PaymentMethod.attach") as attach, \
            mock.patch("stripe.Subscription.create", return_value=stripe_subscription) as create:
        response = client.post("/api/subscription/trial", headers=auth_headers, json={"paymentMethodId": "pm_1"})

    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["subscription"]["stripeSubscriptionId"] == "sub_new"
    assert data["plan"]["name"] == "Pro Plan"
    attach.assert_called_once_with("pm_1", customer="cus_new")
    assert create.call_args.kwargs["items"] == [{"price": data["plan"]["stripePriceId"]}]

    me = client.get("/api/auth/me", headers=auth_headers).json()["data"]
    assert me["subscriptionStatus"] == "trialing"
    assert me["stripeCustomerId"] == "cus_new"

    again = client.post("/api/subscription/trial", headers=auth_headers, json={"paymentMethodId": "pm_1"})
    assert again.status_code == 400


def test_cancel_and_reactivate(client, auth_headers, subscription):
    with mock.patch("stripe.Subscription.modify") as modify:
        cancelled = client.post("/api/subscription/cancel", headers=auth_headers)
        reactivated = client.post("/api/subscription/reactivate", headers=auth_headers)

    assert cancelled.json()["data"]["cancelAtPeriodEnd"] is True
    assert reactivated.json()["data"]["cancelAtPeriodEnd"] is False
    modify.assert_any_call("sub_123", cancel_at_period_end=True)


def test_cancel_without_subscription(client, auth_headers):
    assert client.post("/api/subscription/cancel", headers=auth_headers).status_code == 404
