import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import stripe

from ..config import settings, CREDIT_PACKAGES, TRIAL_DAYS
from ..exceptions import NotFoundError, PaymentServiceError, ValidationError
from .database_service import DatabaseService

logger = logging.getLogger(__name__)

ACCESS_STATUSES = ("active", "trialing")


def _field(obj, key: str, default=None):
    """Read a key from a Stripe object or a plain dict"""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, AttributeError):
        value = getattr(obj, key, default)
    return default if value is None else value


def _from_timestamp(value) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.utcfromtimestamp(int(value))


def _to_timestamp(value: datetime) -> int:
    return int(value.replace(tzinfo=timezone.utc).timestamp())


def _period_bounds(subscription) -> tuple:
    """Current period of a subscription; newer API versions keep it on the items"""
    start = _field(subscription, "current_period_start")
    end = _field(subscription, "current_period_end")
    if start is None or end is None:
        items = _field(_field(subscription, "items"), "data", [])
        if items:
            start = _field(items[0], "current_period_start", start)
            end = _field(items[0], "current_period_end", end)
    return _from_timestamp(start), _from_timestamp(end)


def _invoice_subscription_id(invoice) -> Optional[str]:
    subscription = _field(invoice, "subscription")
    if subscription is None:
        details = _field(_field(invoice, "parent"), "subscription_details")
        subscription = _field(details, "subscription")
    if subscription is not None and not isinstance(subscription, str):
        subscription = _field(subscription, "id")
    return subscription


class SubscriptionService:
    """Trials, subscriptions and credit purchases through Stripe"""

    def __init__(self, db_service: DatabaseService):
        self.db = db_service
        if settings.STRIPE_SECRET_KEY:
            stripe.api_key = settings.STRIPE_SECRET_KEY

    def _ensure_configured(self):
        if not settings.STRIPE_SECRET_KEY:
            raise PaymentServiceError("Payment processing is not configured", status_code=503)

    def _select_trial_plan(self) -> Dict[str, Any]:
        plan = self.db.get_plan_by_name(settings.DEFAULT_PLAN_NAME)
        if not plan:
            plans = self.db.get_active_plans()
            if not plans:
                raise NotFoundError("Subscription plan")
            plan = plans[0]
        return plan

    def _get_or_create_customer(self, user: Dict[str, Any], payment_method_id: str) -> str:
        if user.get("stripeCustomerId"):
            return user["stripeCustomerId"]

        name = " ".join(part for part in (user.get("firstName"), user.get("lastName")) if part)
        customer = stripe.Customer.create(
            email=user["email"],
            name=name or None,
            payment_method=payment_method_id,
            invoice_settings={"default_payment_method": payment_method_id},
        )
        self.db.update_user(user["id"], stripe_customer_id=customer.id)
        logger.info(f"Created Stripe customer {customer.id} for user {user['id']}")
        return customer.id

    def start_trial(self, user_id: int, payment_method_id: str,
                    first_name: Optional[str] = None, last_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Start a free trial that bills automatically when it ends

        Args:
            user_id: the subscribing user
            payment_method_id: Stripe payment method collected by the dashboard
            first_name, last_name: optional profile completion sent with the form

        Returns:
            dict: the stored subscription and the trial end date
        """
        self._ensure_configured()

        user = self.db.get_user(user_id)
        if not user:
            raise NotFoundError("User", user_id)
        if self.db.get_user_subscription(user_id):
            raise ValidationError("User already has a subscription")

        if first_name or last_name:
            user = self.db.update_user(
                user_id,
                first_name=first_name or user["firstName"],
                last_name=last_name or user["lastName"],
            )

        plan = self._select_trial_plan()
        trial_end = datetime.utcnow() + timedelta(days=TRIAL_DAYS)

        try:
            customer_id = self._get_or_create_customer(user, payment_method_id)

            try:
                stripe.PaymentMethod.attach(payment_method_id, customer=customer_id)
            except stripe.InvalidRequestError as e:
                if "already been attached" not in str(e):
                    raise

            subscription = stripe.Subscription.create(
                customer=customer_id,
                items=[{"price": plan["stripePriceId"]}],
                default_payment_method=payment_method_id,
                trial_end=_to_timestamp(trial_end),
                expand=["latest_invoice.payment_intent"],
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error starting trial for user {user_id}: {e}")
            raise PaymentServiceError(f"Failed to start trial: {e.user_message or str(e)}")

        period_start, period_end = _period_bounds(subscription)
        trial_start = _from_timestamp(_field(subscription, "trial_start")) or datetime.utcnow()
        stored_trial_end = _from_timestamp(_field(subscription, "trial_end")) or trial_end

        stored = self.db.create_user_subscription(
            user_id=user_id,
            plan_id=plan["id"],
            stripe_subscription_id=_field(subscription, "id"),
            stripe_customer_id=customer_id,
            status=_field(subscription, "status", "trialing"),
            current_period_start=period_start or trial_start,
            current_period_end=period_end or stored_trial_end,
            trial_start=trial_start,
            trial_end=stored_trial_end,
        )
        self.db.update_user(user_id, subscription_status="trialing", trial_ends_at=trial_end)

        logger.info(f"Started {TRIAL_DAYS}-day trial on plan '{plan['name']}' for user {user_id}")
        return {"subscription": stored, "plan": plan, "trialEnd": trial_end}

    def check_user_access(self, user_id: int) -> Dict[str, Any]:
        user = self.db.get_user(user_id)
        if not user:
            return {"hasAccess": False, "subscriptionStatus": "none", "reason": "User not found"}

        if user["isAdmin"]:
            return {"hasAccess": True, "subscriptionStatus": "active"}

        trial_ends_at = user.get("trialEndsAt")
        if user["subscriptionStatus"] == "trialing" and trial_ends_at and trial_ends_at > datetime.utcnow():
            return {"hasAccess": True, "subscriptionStatus": "trialing", "trialEndsAt": trial_ends_at}

        subscription = self.db.get_user_subscription(user_id)
        if subscription and subscription["status"] in ACCESS_STATUSES:
            return {"hasAccess": True, "subscriptionStatus": subscription["status"]}

        return {
            "hasAccess": False,
            "subscriptionStatus": user["subscriptionStatus"] or "none",
            "reason": "Subscription required",
        }

    def _set_cancel_flag(self, user_id: int, cancel: bool) -> Dict[str, Any]:
        self._ensure_configured()
        subscription = self.db.get_user_subscription(user_id)
        if not subscription:
            raise NotFoundError("Subscription")

        try:
            stripe.Subscription.modify(subscription["stripeSubscriptionId"], cancel_at_period_end=cancel)
        except stripe.StripeError as e:
            logger.error(f"Stripe error updating subscription {subscription['stripeSubscriptionId']}: {e}")
            raise PaymentServiceError(f"Failed to update subscription: {e.user_message or str(e)}")

        return self.db.update_user_subscription(subscription["id"], cancel_at_period_end=cancel)

    def cancel_subscription(self, user_id: int) -> Dict[str, Any]:
        """Cancel at the end of the current period"""
        updated = self._set_cancel_flag(user_id, True)
        logger.info(f"Subscription for user {user_id} set to cancel at period end")
        return updated

    def reactivate_subscription(self, user_id: int) -> Dict[str, Any]:
        updated = self._set_cancel_flag(user_id, False)
        logger.info(f"Subscription for user {user_id} reactivated")
        return updated

    def create_credit_payment_intent(self, user_id: int, package: str) -> Dict[str, Any]:
        selected = CREDIT_PACKAGES.get(package)
        if not selected:
            raise ValidationError("Invalid package", details={"package": package})
        self._ensure_configured()

        try:
            intent = stripe.PaymentIntent.create(
                amount=selected["price"],
                currency="usd",
                metadata={
                    "userId": str(user_id),
                    "credits": str(selected["credits"]),
                    "package": package,
                },
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating payment intent for user {user_id}: {e}")
            raise PaymentServiceError(f"Failed to create payment: {e.user_message or str(e)}")

        logger.info(f"Created payment intent {intent.id} for user {user_id} ({package})")
        return {
            "clientSecret": intent.client_secret,
            "paymentIntentId": intent.id,
            "credits": selected["credits"],
            "amount": selected["price"],
        }

    def construct_webhook_event(self, payload: bytes, signature: Optional[str]):
        """Verify a Stripe webhook signature and return the parsed event"""
        if not settings.STRIPE_WEBHOOK_SECRET:
            raise ValidationError("Webhook secret not configured")
        if not signature:
            raise ValidationError("Missing Stripe signature")

        try:
            return stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
        except ValueError as e:
            raise ValidationError(f"Invalid webhook payload: {e}")
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Stripe webhook signature verification failed: {e}")
            raise ValidationError("Invalid webhook signature")

    def handle_webhook_event(self, event) -> bool:
        """
        Apply a verified Stripe event

        Returns:
            bool: whether the event type was handled
        """
        event_type = _field(event, "type")
        obj = _field(_field(event, "data"), "object")
        logger.info(f"Processing Stripe webhook: {event_type}")

        handlers = {
            "payment_intent.succeeded": self._handle_credit_purchase,
            "invoice.payment_succeeded": self._handle_payment_succeeded,
            "invoice.payment_failed": self._handle_payment_failed,
            "customer.subscription.updated": self._handle_subscription_updated,
            "customer.subscription.deleted": self._handle_subscription_deleted,
            "customer.subscription.trial_will_end": self._handle_trial_will_end,
        }
        handler = handlers.get(event_type)
        if not handler:
            logger.info(f"Ignoring unhandled Stripe event {event_type}")
            return False
        handler(obj)
        return True

    def _handle_credit_purchase(self, intent):
        metadata = _field(intent, "metadata", {})
        user_id = _field(metadata, "userId")
        credits = _field(metadata, "credits")
        if not user_id or not credits:
            logger.info(f"Payment intent {_field(intent, 'id')} is not a credit purchase")
            return

        package = _field(metadata, "package", "custom")
        self.db.add_credits(
            int(user_id),
            int(credits),
            f"Credit purchase - {package} package",
            stripe_payment_id=_field(intent, "id"),
        )

    def _handle_payment_succeeded(self, invoice):
        subscription_id = _invoice_subscription_id(invoice)
        if not subscription_id:
            return
        user_sub = self.db.get_subscription_by_stripe_id(subscription_id)
        if not user_sub:
            logger.warning(f"Invoice paid for unknown subscription {subscription_id}")
            return

        self.db.update_user(user_sub["userId"], subscription_status="active")
        self.db.update_user_subscription(user_sub["id"], status="active")

        plan = self.db.get_plan(user_sub["planId"])
        if plan and plan["aiCreditsIncluded"] > 0:
            payment_id = _field(invoice, "payment_intent") or _field(invoice, "id")
            if not isinstance(payment_id, str):
                payment_id = _field(payment_id, "id")
            self.db.add_credits(
                user_sub["userId"],
                plan["aiCreditsIncluded"],
                f"Monthly credits - {plan['name']}",
                stripe_payment_id=payment_id,
                transaction_type="bonus",
            )

    def _handle_payment_failed(self, invoice):
        subscription_id = _invoice_subscription_id(invoice)
        if not subscription_id:
            return
        user_sub = self.db.get_subscription_by_stripe_id(subscription_id)
        if user_sub:
            self.db.update_user(user_sub["userId"], subscription_status="past_due")
            logger.warning(f"Payment failed for subscription {subscription_id}")

    def _handle_subscription_updated(self, subscription):
        user_sub = self.db.get_subscription_by_stripe_id(_field(subscription, "id"))
        if not user_sub:
            return

        status = _field(subscription, "status", user_sub["status"])
        period_start, period_end = _period_bounds(subscription)
        fields = {
            "status": status,
            "cancel_at_period_end": bool(_field(subscription, "cancel_at_period_end", False)),
        }
        if period_start:
            fields["current_period_start"] = period_start
        if period_end:
            fields["current_period_end"] = period_end

        self.db.update_user_subscription(user_sub["id"], **fields)
        self.db.update_user(user_sub["userId"], subscription_status=status)

    def _handle_subscription_deleted(self, subscription):
        user_sub = self.db.get_subscription_by_stripe_id(_field(subscription, "id"))
        if not user_sub:
            return
        self.db.update_user_subscription(user_sub["id"], status="canceled", canceled_at=datetime.utcnow())
        self.db.update_user(user_sub["userId"], subscription_status="canceled")
        logger.info(f"Subscription {user_sub['stripeSubscriptionId']} canceled")

    def _handle_trial_will_end(self, subscription):
        logger.info(f"Trial ending soon for subscription: {_field(subscription, 'id')}")
