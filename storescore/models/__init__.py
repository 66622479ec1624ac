"""
Data models and schemas for the StoreScore API
"""

from .schemas import (
    StoreType,
    SuggestionCategory,
    Priority,
    RecommendationCategory,
    OptimizationType,
    RegisterUserRequest,
    LoginUserRequest,
    UpdateProfileRequest,
    AnalyzeStoreRequest,
    CreateUserStoreRequest,
    UpdateUserStoreRequest,
    PurchaseCreditsRequest,
    StartTrialRequest,
    ChatRequest,
    CreateChatSessionRequest,
    ShopifyConnectRequest,
    OptimizeProductRequest,
    ApplyRecommendationRequest,
    GenerateAdsRequest,
    Suggestion,
    StoreRecap,
    StoreAnalysisResult,
    ErrorResponse,
    SuccessResponse
)

__all__ = [
    "StoreType",
    "SuggestionCategory",
    "Priority",
    "RecommendationCategory",
    "OptimizationType",
    "RegisterUserRequest",
    "LoginUserRequest",
    "UpdateProfileRequest",
    "AnalyzeStoreRequest",
    "CreateUserStoreRequest",
    "UpdateUserStoreRequest",
    "PurchaseCreditsRequest",
    "StartTrialRequest",
    "ChatRequest",
    "CreateChatSessionRequest",
    "ShopifyConnectRequest",
    "OptimizeProductRequest",
    "ApplyRecommendationRequest",
    "GenerateAdsRequest",
    "Suggestion",
    "StoreRecap",
    "StoreAnalysisResult",
    "ErrorResponse",
    "SuccessResponse"
]
