import asyncio
import html
import logging
from datetime import datetime
from typing import Dict, Any

from fastapi import APIRouter, HTTPException, Request, status, Depends, Query
from fastapi.responses import RedirectResponse

from ..config import settings
from ..exceptions import (
    AuthenticationError, InsufficientCreditsError, NotFoundError, StoreScoreException, ValidationError
)
from ..models.schemas import ShopifyConnectRequest, OptimizeProductRequest, ApplyRecommendationRequest
from ..services.database_service import DatabaseService
from ..services.optimizer import ProductOptimizer
from ..services.shopify_integration import (
    ShopifyClient, normalize_shop_domain, parse_state, verify_callback_hmac, validate_webhook_signature
)
from ..services.store_analyzer import StoreAnalyzer
from .dependencies import (
    get_database_service, get_optimizer, get_shopify_client, get_store_analyzer, require_credits, require_user
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _connected_store(store_id: int, user: Dict[str, Any], db_service: DatabaseService) -> Dict[str, Any]:
    store = db_service.get_user_store(store_id, user_id=user["id"], include_token=True)
    if not store:
        raise NotFoundError("Store", store_id)
    if not store["isConnected"] or not store["shopifyAccessToken"]:
        raise ValidationError("Store is not connected to Shopify", details={"storeId": store_id})
    return store


def _public(store: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in store.items() if key != "shopifyAccessToken"}


@router.post("/shopify/connect")
async def connect_shopify(
        request: ShopifyConnectRequest,
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service),
        shopify: ShopifyClient = Depends(get_shopify_client)
):
    """Start the Shopify OAuth flow; the dashboard redirects the user to ``authUrl``"""
    if request.user_store_id is not None:
        if not db_service.get_user_store(request.user_store_id, user_id=user["id"]):
            raise NotFoundError("Store", request.user_store_id)
        db_service.update_user_store(request.user_store_id, connection_status="pending")

    auth = shopify.generate_auth_url(request.shop_domain, user["id"], request.user_store_id)
    return {
        "success": True,
        "data": {"authUrl": auth["auth_url"], "shop": auth["shop"]},
        "message": "Redirect to Shopify to authorize the app"
    }


@router.get("/shopify/callback")
async def shopify_callback(
        request: Request,
        code: str = Query(...),
        shop: str = Query(...),
        state: str = Query(...),
        db_service: DatabaseService = Depends(get_database_service),
        shopify: ShopifyClient = Depends(get_shopify_client)
):
    """
    OAuth redirect target

    Verifies Shopify's HMAC and the signed state, exchanges the code for an
    access token and stores it on the user's store, creating the store when
    the flow was not started from an existing one.
    """
    if not verify_callback_hmac(dict(request.query_params)):
        raise AuthenticationError("Invalid Shopify callback signature")
    user_id, store_id = parse_state(state)
    shop_domain = normalize_shop_domain(shop)

    try:
        token_data = shopify.exchange_code_for_token(shop_domain, code)
        access_token = token_data["access_token"]
        shop_info = shopify.get_shop_info(shop_domain, access_token)
        host = (shop_info.get("primary_domain") or {}).get("host") or shop_domain

        connection = dict(
            shopify_access_token=access_token,
            shopify_domain=shop_domain,
            shopify_scope=token_data.get("scope"),
            is_connected=True,
            connection_status="connected",
            last_sync_at=datetime.utcnow(),
        )
        store = None
        if store_id is not None:
            store = db_service.update_user_store(store_id, user_id=user_id, **connection)
        if store is None:
            store = db_service.create_user_store(
                user_id,
                name=shop_info.get("name") or shop_domain,
                store_url=f"https://{host}",
                store_type="shopify",
                **connection,
            )
        logger.info(f"Connected Shopify store {shop_domain} to store {store['id']} of user {user_id}")

    except (HTTPException, StoreScoreException):
        if store_id is not None:
            db_service.update_user_store(store_id, user_id=user_id, connection_status="error")
        raise
    except Exception as e:
        logger.error(f"Error completing Shopify OAuth for {shop_domain}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while connecting the Shopify store"
        )

    if settings.DASHBOARD_URL:
        return RedirectResponse(f"{settings.DASHBOARD_URL.rstrip('/')}/user-stores?connected={store['id']}")
    return {"success": True, "data": store, "message": f"Connected {shop_info.get('name') or shop_domain}"}


@router.get("/shopify/products/{store_id}")
async def get_products(
        store_id: int,
        limit: int = Query(50, ge=1, le=250),
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service),
        shopify: ShopifyClient = Depends(get_shopify_client)
):
    store = _connected_store(store_id, user, db_service)
    products = shopify.fetch_store_products(store["shopifyDomain"], store["shopifyAccessToken"], limit)
    optimized = {o["shopifyProductId"] for o in db_service.get_store_optimizations(store_id)}
    for product in products:
        product["optimized"] = product["id"] in optimized
    db_service.update_user_store(store_id, last_sync_at=datetime.utcnow())
    return {
        "success": True,
        "data": products,
        "total": len(products),
        "message": f"Retrieved {len(products)} products"
    }


@router.post("/shopify/analyze/{store_id}")
async def analyze_connected_store(
        store_id: int,
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service),
        analyzer: StoreAnalyzer = Depends(get_store_analyzer)
):
    """Score a connected store from Admin API data; costs one analysis credit"""
    try:
        store = _connected_store(store_id, user, db_service)
        cost = settings.ANALYSIS_CREDIT_COST
        available = db_service.get_user_credits(user["id"])
        if available < cost:
            raise InsufficientCreditsError(required=cost, available=available)

        result = await asyncio.to_thread(
            analyzer.analyze_connected_shopify_store, store, db_service.get_optimization_summary(store_id)
        )
        analysis, balance = db_service.create_charged_analysis(
            result,
            store_type="shopify",
            user_id=user["id"],
            credits_used=cost,
            description=f"Connected store analysis - {store['name']}",
            user_store_id=store_id,
            store_url=store["storeUrl"] or f"https://{store['shopifyDomain']}",
        )
        db_service.update_user_store(
            store_id,
            last_analyzed_at=datetime.utcnow(),
            last_analysis_score=result["overallScore"],
            last_sync_at=datetime.utcnow(),
        )
        return {
            "success": True,
            "data": {**result, "id": analysis["id"], "creditsUsed": cost, "creditsRemaining": balance},
            "message": f"Analysis complete with score {result['overallScore']}/100"
        }

    except (HTTPException, StoreScoreException):
        raise
    except Exception as e:
        logger.error(f"Error analyzing connected store {store_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred during store analysis"
        )


@router.post("/shopify/optimize-product")
async def optimize_product(
        request: OptimizeProductRequest,
        user: Dict[str, Any] = Depends(require_credits(settings.OPTIMIZATION_CREDIT_COST)),
        db_service: DatabaseService = Depends(get_database_service),
        optimizer: ProductOptimizer = Depends(get_optimizer)
):
    try:
        store = _connected_store(request.store_id, user, db_service)
        result = optimizer.optimize_product(user, store, request.product_id, request.optimization_type.value)
        return {
            "success": True,
            "data": result,
            "message": f"Product {request.optimization_type.value} optimized and applied to Shopify"
        }

    except (HTTPException, StoreScoreException):
        raise
    except Exception as e:
        logger.error(f"Error optimizing product {request.product_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while optimizing the product"
        )


@router.post("/shopify/apply-recommendation")
async def apply_recommendation(
        request: ApplyRecommendationRequest,
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service),
        shopify: ShopifyClient = Depends(get_shopify_client)
):
    """Publish a recommendation as a storefront page, e.g. a returns policy or trust page"""
    store = _connected_store(request.store_id, user, db_service)
    paragraphs = [p.strip() for p in request.content.split("\n\n") if p.strip()]
    body_html = "\n".join(f"<p>{html.escape(p)}</p>" for p in paragraphs)

    page = shopify.create_page(store["shopifyDomain"], store["shopifyAccessToken"], request.title, body_html)
    logger.info(f"Applied {request.recommendation_type} recommendation to store {request.store_id}")
    return {
        "success": True,
        "data": {"page": page, "recommendationType": request.recommendation_type, "store": _public(store)},
        "message": f"Page '{request.title}' published to your Shopify store"
    }


@router.post("/webhooks/shopify")
async def shopify_webhook(
        request: Request,
        db_service: DatabaseService = Depends(get_database_service)
):
    """Shopify webhooks, processed only after the HMAC header is verified"""
    body = await request.body()
    if not validate_webhook_signature(body, request.headers.get("X-Shopify-Hmac-Sha256")):
        raise AuthenticationError("Invalid Shopify webhook signature")

    topic = request.headers.get("X-Shopify-Topic", "")
    shop_domain = request.headers.get("X-Shopify-Shop-Domain", "")
    logger.info(f"Processing Shopify webhook {topic} from {shop_domain}")

    if topic == "app/uninstalled":
        for store in db_service.get_store_by_shop_domain(shop_domain):
            db_service.update_user_store(
                store["id"],
                shopify_access_token=None,
                is_connected=False,
                connection_status="disconnected",
            )
    return {"received": True, "topic": topic}
