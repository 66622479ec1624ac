import asyncio
import logging
from datetime import datetime
from typing import Optional, Dict, Any

from fastapi import APIRouter, HTTPException, status, Depends, Query

from ..config import settings
from ..exceptions import AuthenticationError, InsufficientCreditsError, NotFoundError, StoreScoreException
from ..models.schemas import AnalyzeStoreRequest, GenerateAdsRequest, RecommendationCategory, StoreType
from ..services.ai_analyzer import AIAnalyzer
from ..services.change_detector import has_store_changed
from ..services.database_service import DatabaseService
from ..services.optimizer import ProductOptimizer
from ..services.scraper import build_ebay_store_url
from ..services.store_analyzer import StoreAnalyzer
from .dependencies import (
    get_ai_analyzer, get_current_user, get_database_service, get_optimizer, get_store_analyzer, require_credits,
    require_user
)
from .stores import get_owned_store

logger = logging.getLogger(__name__)
router = APIRouter()


def _cached_response(previous: Dict[str, Any], credits_remaining: int) -> Dict[str, Any]:
    return {
        "success": True,
        "data": {
            **previous["analysisData"],
            "id": previous["id"],
            "createdAt": previous["createdAt"],
            "cached": True,
            "creditsUsed": 0,
            "creditsRemaining": credits_remaining,
        },
        "message": "Store unchanged since the last analysis, returning the previous result"
    }


@router.post("/analyze-store")
async def analyze_store(
        request: AnalyzeStoreRequest,
        user: Optional[Dict[str, Any]] = Depends(get_current_user),
        analyzer: StoreAnalyzer = Depends(get_store_analyzer),
        db_service: DatabaseService = Depends(get_database_service)
):
    """
    Score a Shopify storefront or an eBay seller

    **Credits:**
    - Guests can analyze for free; the result is stored without an owner
    - Logged-in users need at least one credit, charged once the result is stored
    - When the store content is unchanged since the user's previous analysis of
      the same URL, that analysis is returned with ``cached=true`` and nothing is charged

    **Error Codes:**
    - 400: Missing storeUrl / ebayUsername for the store type
    - 402: Not enough credits
    - 404: userStoreId does not belong to the caller
    - 502: Store could not be fetched or the AI service failed
    """
    target = request.store_url or request.ebay_username
    try:
        cost = settings.ANALYSIS_CREDIT_COST if user else 0
        if user:
            available = db_service.get_user_credits(user["id"])
            if available < cost:
                raise InsufficientCreditsError(required=cost, available=available)

        store = None
        if request.user_store_id is not None:
            if not user:
                raise AuthenticationError("Log in to analyze a saved store")
            store = get_owned_store(request.user_store_id, user, db_service)

        logger.info(f"Starting {request.store_type.value} analysis for: {target}")
        if request.store_type == StoreType.SHOPIFY:
            snapshot = await asyncio.to_thread(analyzer.fetch_shopify_snapshot, request.store_url)
        else:
            snapshot = await asyncio.to_thread(analyzer.fetch_ebay_snapshot, request.ebay_username)

        if user:
            changed, previous = has_store_changed(
                db_service, snapshot["store_url"], snapshot["content_hash"], user_id=user["id"]
            )
            if not changed and previous:
                logger.info(f"Returning cached analysis {previous['id']} for {snapshot['store_url']}")
                return _cached_response(previous, db_service.get_user_credits(user["id"]))

        if request.store_type == StoreType.SHOPIFY:
            optimization_context = db_service.get_optimization_summary(store["id"]) if store else None
            result = await asyncio.to_thread(analyzer.analyze_shopify_snapshot, snapshot, optimization_context)
        else:
            result = await asyncio.to_thread(analyzer.analyze_ebay_snapshot, snapshot)

        analysis_fields = dict(
            store_type=request.store_type.value,
            user_store_id=store["id"] if store else None,
            store_url=snapshot["store_url"],
            ebay_username=snapshot.get("ebay_username"),
        )
        credits_remaining = None
        if user:
            analysis, credits_remaining = db_service.create_charged_analysis(
                result, user_id=user["id"], credits_used=cost, description=f"Store analysis - {target}",
                **analysis_fields
            )
        else:
            analysis = db_service.create_analysis(result, **analysis_fields)
        if store:
            db_service.update_user_store(
                store["id"],
                last_analyzed_at=datetime.utcnow(),
                last_analysis_score=result["overallScore"],
            )

        logger.info(f"Successfully analyzed {target}: score {result['overallScore']}, analysis {analysis['id']}")
        return {
            "success": True,
            "data": {
                **result,
                "id": analysis["id"],
                "createdAt": analysis["createdAt"],
                "cached": False,
                "creditsUsed": cost,
                "creditsRemaining": credits_remaining,
            },
            "message": f"Analysis complete with score {result['overallScore']}/100"
        }

    except (HTTPException, StoreScoreException):
        raise
    except Exception as e:
        logger.error(f"Unexpected error analyzing store {target}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal error occurred during store analysis"
        )


@router.get("/analyses")
async def list_analyses(
        limit: int = Query(20, ge=1, le=100),
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service)
):
    analyses = db_service.get_user_analyses(user["id"], limit)
    return {
        "success": True,
        "data": analyses,
        "total": len(analyses),
        "message": f"Retrieved {len(analyses)} analyses"
    }


@router.get("/analysis/{analysis_id}")
async def get_analysis(
        analysis_id: int,
        user: Optional[Dict[str, Any]] = Depends(get_current_user),
        db_service: DatabaseService = Depends(get_database_service)
):
    """
    Retrieve a stored analysis by ID

    Guest analyses are public; an owned analysis is only visible to its owner
    and admins.
    """
    analysis = db_service.get_analysis(analysis_id)
    owner_id = analysis["userId"] if analysis else None
    visible = analysis is not None and (
        owner_id is None or (user is not None and (user["id"] == owner_id or user["isAdmin"]))
    )
    if not visible:
        raise NotFoundError("Analysis", analysis_id)

    return {
        "success": True,
        "data": analysis,
        "message": f"Retrieved analysis for {analysis['storeUrl'] or analysis['ebayUsername']}"
    }


@router.get("/recent-analyses")
async def get_recent_analyses(
        limit: int = Query(10, ge=1, le=50),
        db_service: DatabaseService = Depends(get_database_service)
):
    """Latest analyses across the platform"""
    analyses = db_service.get_recent_analyses(limit)
    return {
        "success": True,
        "data": analyses,
        "total": len(analyses),
        "message": f"Retrieved {len(analyses)} recent analyses"
    }


@router.get("/statistics")
async def get_statistics(
        user: Optional[Dict[str, Any]] = Depends(get_current_user),
        db_service: DatabaseService = Depends(get_database_service)
):
    """Totals for the logged-in user, or platform-wide for guests"""
    stats = db_service.get_analysis_statistics(user["id"] if user else None)
    return {"success": True, "data": stats, "message": "Statistics retrieved successfully"}


@router.get("/recommendations/{category}/{store_id}")
async def get_recommendations(
        category: RecommendationCategory,
        store_id: int,
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service),
        ai: AIAnalyzer = Depends(get_ai_analyzer)
):
    """Focused AI recommendations for one category of a saved store"""
    store = get_owned_store(store_id, user, db_service)
    store_url = store["storeUrl"]
    if not store_url and store["ebayUsername"]:
        store_url = build_ebay_store_url(store["ebayUsername"])
    if not store_url and store["shopifyDomain"]:
        store_url = f"https://{store['shopifyDomain']}"

    recommendations = ai.generate_category_recommendations(category.value, store_url, store["storeType"])
    return {
        "success": True,
        "data": {**recommendations, "category": category.value, "storeId": store_id},
        "message": f"Generated {len(recommendations['suggestions'])} {category.value} recommendations"
    }


@router.post("/generate-ads")
async def generate_ads(
        request: GenerateAdsRequest,
        user: Dict[str, Any] = Depends(require_credits(settings.AD_GENERATION_CREDIT_COST)),
        optimizer: ProductOptimizer = Depends(get_optimizer)
):
    try:
        product = {
            "title": request.product_title,
            "description": request.product_description,
            "price": request.price,
            "target_audience": request.target_audience,
        }
        result = optimizer.generate_ads(user, product, request.platform, request.style, request.count)
        return {"success": True, "data": result, "message": f"Generated {len(result['ads'])} ads"}

    except (HTTPException, StoreScoreException):
        raise
    except Exception as e:
        logger.error(f"Error generating ads for user {user['id']}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while generating ads"
        )
