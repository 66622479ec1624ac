import logging
from typing import Dict, Any

from fastapi import APIRouter, HTTPException, Request, status, Depends, Query

from ..config import CREDIT_PACKAGES
from ..exceptions import StoreScoreException
from ..models.schemas import PurchaseCreditsRequest, StartTrialRequest
from ..services.database_service import DatabaseService
from ..services.subscription_service import SubscriptionService
from ..utils.helpers import format_currency
from .dependencies import get_database_service, get_subscription_service, require_user

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/credits")
async def get_credits(
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service)
):
    packages = [
        {"package": name, "credits": p["credits"], "price": p["price"], "displayPrice": format_currency(p["price"])}
        for name, p in CREDIT_PACKAGES.items()
    ]
    return {
        "success": True,
        "data": {"credits": db_service.get_user_credits(user["id"]), "packages": packages},
        "message": "OK"
    }


@router.get("/credits/transactions")
async def get_credit_transactions(
        limit: int = Query(50, ge=1, le=200),
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service)
):
    transactions = db_service.get_credit_transactions(user["id"], limit)
    return {
        "success": True,
        "data": transactions,
        "total": len(transactions),
        "message": f"Retrieved {len(transactions)} transactions"
    }


@router.post("/payments/credits")
async def purchase_credits(
        request: PurchaseCreditsRequest,
        user: Dict[str, Any] = Depends(require_user),
        subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """
    Create a Stripe payment intent for a credit package

    Credits are added by the ``payment_intent.succeeded`` webhook, not here.
    """
    try:
        intent = subscription_service.create_credit_payment_intent(user["id"], request.package)
        return {"success": True, "data": intent, "message": f"Payment created for the {request.package} package"}

    except (HTTPException, StoreScoreException):
        raise
    except Exception as e:
        logger.error(f"Error creating payment for user {user['id']}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while creating the payment"
        )


@router.get("/subscriptions/plans")
async def get_plans(db_service: DatabaseService = Depends(get_database_service)):
    plans = db_service.get_active_plans()
    for plan in plans:
        plan["displayPrice"] = format_currency(plan["price"])
    return {"success": True, "data": plans, "total": len(plans), "message": f"Retrieved {len(plans)} plans"}


@router.get("/subscription")
async def get_subscription(
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service),
        subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    subscription = db_service.get_user_subscription(user["id"])
    plan = db_service.get_plan(subscription["planId"]) if subscription else None
    return {
        "success": True,
        "data": {
            "subscription": subscription,
            "plan": plan,
            "access": subscription_service.check_user_access(user["id"]),
        },
        "message": "OK"
    }


@router.post("/subscription/trial")
async def start_trial(
        request: StartTrialRequest,
        user: Dict[str, Any] = Depends(require_user),
        subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    try:
        result = subscription_service.start_trial(
            user["id"], request.payment_method_id, request.first_name, request.last_name
        )
        return {"success": True, "data": result, "message": "Free trial started"}

    except (HTTPException, StoreScoreException):
        raise
    except Exception as e:
        logger.error(f"Error starting trial for user {user['id']}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while starting the trial"
        )


@router.post("/subscription/cancel")
async def cancel_subscription(
        user: Dict[str, Any] = Depends(require_user),
        subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    subscription = subscription_service.cancel_subscription(user["id"])
    return {
        "success": True,
        "data": subscription,
        "message": "Subscription will be canceled at the end of the billing period"
    }


@router.post("/subscription/reactivate")
async def reactivate_subscription(
        user: Dict[str, Any] = Depends(require_user),
        subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    subscription = subscription_service.reactivate_subscription(user["id"])
    return {"success": True, "data": subscription, "message": "Subscription reactivated"}


@router.post("/webhooks/stripe")
async def stripe_webhook(
        request: Request,
        subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """Stripe events, processed only after the signature is verified"""
    payload = await request.body()
    event = subscription_service.construct_webhook_event(payload, request.headers.get("stripe-signature"))
    handled = subscription_service.handle_webhook_event(event)
    return {"received": True, "handled": handled}
