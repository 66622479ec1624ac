import logging
from typing import Optional, Dict, Any

from fastapi import Depends, Request

from ..config import settings
from ..exceptions import (
    AuthenticationError, InsufficientCreditsError, PermissionDeniedError, SubscriptionRequiredError
)
from ..services.ai_analyzer import AIAnalyzer
from ..services.assistant import Assistant
from ..services.auth_service import AuthService
from ..services.database_service import DatabaseService
from ..services.optimizer import ProductOptimizer
from ..services.shopify_integration import ShopifyClient
from ..services.store_analyzer import StoreAnalyzer
from ..services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


# Dependency injection for services
def get_database_service() -> DatabaseService:
    return DatabaseService()


def get_ai_analyzer() -> AIAnalyzer:
    return AIAnalyzer()


def get_shopify_client() -> ShopifyClient:
    return ShopifyClient()


def get_auth_service(db_service: DatabaseService = Depends(get_database_service)) -> AuthService:
    return AuthService(db_service)


def get_subscription_service(db_service: DatabaseService = Depends(get_database_service)) -> SubscriptionService:
    return SubscriptionService(db_service)


def get_store_analyzer(ai: AIAnalyzer = Depends(get_ai_analyzer),
                       shopify: ShopifyClient = Depends(get_shopify_client)) -> StoreAnalyzer:
    return StoreAnalyzer(ai=ai, shopify=shopify)


def get_assistant(ai: AIAnalyzer = Depends(get_ai_analyzer)) -> Assistant:
    return Assistant(ai)


def get_optimizer(db_service: DatabaseService = Depends(get_database_service),
                  ai: AIAnalyzer = Depends(get_ai_analyzer),
                  shopify: ShopifyClient = Depends(get_shopify_client)) -> ProductOptimizer:
    return ProductOptimizer(db_service, ai, shopify)


# Authentication
def get_session_token(request: Request) -> Optional[str]:
    """Session token from the session cookie or an ``Authorization: Bearer`` header"""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if token:
        return token

    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def get_current_user(token: Optional[str] = Depends(get_session_token),
                     auth_service: AuthService = Depends(get_auth_service)) -> Optional[Dict[str, Any]]:
    """Logged-in user or None for guests"""
    return auth_service.resolve_session(token)


def require_user(user: Optional[Dict[str, Any]] = Depends(get_current_user)) -> Dict[str, Any]:
    if not user:
        raise AuthenticationError()
    return user


def require_admin(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    if not user["isAdmin"]:
        raise PermissionDeniedError()
    return user


def require_subscription(user: Dict[str, Any] = Depends(require_user),
                         subscription_service: SubscriptionService = Depends(get_subscription_service)
                         ) -> Dict[str, Any]:
    """Admins, users in a running trial and active subscribers"""
    access = subscription_service.check_user_access(user["id"])
    if not access["hasAccess"]:
        raise SubscriptionRequiredError(access["subscriptionStatus"], access.get("reason"))
    return user


def require_credits(amount: int):
    """Dependency that rejects users holding fewer than ``amount`` credits"""

    def dependency(user: Dict[str, Any] = Depends(require_user),
                   db_service: DatabaseService = Depends(get_database_service)) -> Dict[str, Any]:
        available = db_service.get_user_credits(user["id"])
        if available < amount:
            raise InsufficientCreditsError(required=amount, available=available)
        return user

    return dependency
