from pydantic import BaseModel, ConfigDict, Field, validator, model_validator
from typing import List, Optional, Dict, Any
from datetime import datetime
from enum import Enum
import re

from ..config import CHAT_MAX_MESSAGE_LENGTH, CREDIT_PACKAGES

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PASSWORD_MAX_BYTES = 72


class StoreType(str, Enum):
    SHOPIFY = "shopify"
    EBAY = "ebay"


class SuggestionCategory(str, Enum):
    DESIGN = "design"
    PRODUCT = "product"
    SEO = "seo"
    TRUST = "trust"
    PRICING = "pricing"
    CONVERSION = "conversion"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class StoreSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    ENTERPRISE = "enterprise"


class RecommendationCategory(str, Enum):
    SEO = "seo"
    LEGAL = "legal"
    CONVERSION = "conversion"
    TRUST = "trust"
    DESIGN = "design"


class OptimizationType(str, Enum):
    TITLE = "title"
    DESCRIPTION = "description"
    PRICING = "pricing"
    KEYWORDS = "keywords"


class CamelModel(BaseModel):
    """Request body that accepts both camelCase and snake_case keys."""
    model_config = ConfigDict(populate_by_name=True)


def _validate_email(v: str) -> str:
    v = v.strip().lower()
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Invalid email address")
    return v


def _validate_password(v: str) -> str:
    # bcrypt only hashes the first 72 bytes
    if len(v.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes")
    return v


def check_store_target(store_type, store_url, ebay_username):
    if store_type == StoreType.SHOPIFY and not store_url:
        raise ValueError("storeUrl is required for Shopify stores")
    if store_type == StoreType.EBAY and not ebay_username:
        raise ValueError("ebayUsername is required for eBay stores")


# Auth
class RegisterUserRequest(CamelModel):
    email: str
    password: str = Field(..., min_length=8)
    first_name: str = Field(..., alias="firstName", min_length=1)
    last_name: str = Field(..., alias="lastName", min_length=1)

    @validator('email')
    def validate_email(cls, v):
        return _validate_email(v)

    @validator('password')
    def validate_password(cls, v):
        return _validate_password(v)


class LoginUserRequest(CamelModel):
    email: str
    password: str = Field(..., min_length=1)

    @validator('email')
    def validate_email(cls, v):
        return _validate_email(v)

    @validator('password')
    def validate_password(cls, v):
        return _validate_password(v)


class UpdateProfileRequest(CamelModel):
    first_name: Optional[str] = Field(None, alias="firstName", min_length=1)
    last_name: Optional[str] = Field(None, alias="lastName", min_length=1)
    onboarding_completed: Optional[bool] = Field(None, alias="onboardingCompleted")


# Stores and analysis
class AnalyzeStoreRequest(CamelModel):
    store_url: Optional[str] = Field(None, alias="storeUrl")
    store_type: StoreType = Field(..., alias="storeType")
    ebay_username: Optional[str] = Field(None, alias="ebayUsername")
    user_store_id: Optional[int] = Field(None, alias="userStoreId")

    @model_validator(mode="after")
    def validate_target(self):
        check_store_target(self.store_type, self.store_url, self.ebay_username)
        return self


class CreateUserStoreRequest(CamelModel):
    name: str = Field(..., min_length=1)
    store_url: Optional[str] = Field(None, alias="storeUrl")
    store_type: StoreType = Field(..., alias="storeType")
    ebay_username: Optional[str] = Field(None, alias="ebayUsername")

    @model_validator(mode="after")
    def validate_target(self):
        check_store_target(self.store_type, self.store_url, self.ebay_username)
        return self


class UpdateUserStoreRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    store_url: Optional[str] = Field(None, alias="storeUrl")
    store_type: Optional[StoreType] = Field(None, alias="storeType")
    ebay_username: Optional[str] = Field(None, alias="ebayUsername")


# Billing
class PurchaseCreditsRequest(CamelModel):
    package: str

    @validator('package')
    def validate_package(cls, v):
        if v not in CREDIT_PACKAGES:
            raise ValueError(f"Invalid package, expected one of {', '.join(CREDIT_PACKAGES)}")
        return v


class StartTrialRequest(CamelModel):
    payment_method_id: str = Field(..., alias="paymentMethodId", min_length=1)
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")


# Assistant
class ChatRequest(CamelModel):
    message: str = Field(..., min_length=1, max_length=CHAT_MAX_MESSAGE_LENGTH)
    session_id: Optional[int] = Field(None, alias="sessionId")

    @validator('message')
    def strip_message(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Message cannot be empty")
        return v


class CreateChatSessionRequest(CamelModel):
    title: Optional[str] = Field(None, max_length=255)


# Shopify
class ShopifyConnectRequest(CamelModel):
    shop_domain: str = Field(..., alias="shopDomain", min_length=1)
    user_store_id: Optional[int] = Field(None, alias="userStoreId")


class OptimizeProductRequest(CamelModel):
    store_id: int = Field(..., alias="storeId")
    product_id: str = Field(..., alias="productId", min_length=1)
    optimization_type: OptimizationType = Field(..., alias="optimizationType")


class ApplyRecommendationRequest(CamelModel):
    store_id: int = Field(..., alias="storeId")
    recommendation_type: str = Field(..., alias="recommendationType", min_length=1)
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)


class GenerateAdsRequest(CamelModel):
    product_title: str = Field(..., alias="productTitle", min_length=1)
    product_description: Optional[str] = Field("", alias="productDescription")
    price: Optional[str] = None
    target_audience: Optional[str] = Field(None, alias="targetAudience")
    platform: str = "facebook"
    style: str = "engaging"
    count: int = Field(3, ge=1, le=5)


# Analysis result
class Suggestion(BaseModel):
    title: str
    description: str = ""
    impact: str = ""
    category: SuggestionCategory
    priority: Priority = Priority.MEDIUM


class RecapCategory(BaseModel):
    name: str
    viral_score: int = Field(5, alias="viralScore", ge=1, le=10)
    demand_score: int = Field(5, alias="demandScore", ge=1, le=10)
    description: str = ""
    model_config = ConfigDict(populate_by_name=True)


class StoreRecap(BaseModel):
    main_categories: List[RecapCategory] = Field(default_factory=list, alias="mainCategories")
    store_size: StoreSize = Field(StoreSize.MEDIUM, alias="storeSize")
    estimated_products: str = Field("100-200 products", alias="estimatedProducts")
    target_audience: str = Field("General consumers", alias="targetAudience")
    business_model: str = Field("B2C", alias="businessModel")
    competitive_advantage: str = Field("Platform reliability", alias="competitiveAdvantage")
    model_config = ConfigDict(populate_by_name=True)


class StoreAnalysisResult(BaseModel):
    overall_score: int = Field(..., alias="overallScore", ge=0, le=100)
    strengths: List[str] = []
    warnings: List[str] = []
    critical: List[str] = []
    design_score: int = Field(..., alias="designScore")
    product_score: int = Field(..., alias="productScore")
    seo_score: int = Field(..., alias="seoScore")
    trust_score: int = Field(..., alias="trustScore")
    pricing_score: int = Field(..., alias="pricingScore")
    conversion_score: int = Field(..., alias="conversionScore")
    # Per-category detail blocks; their keys vary with what the model reports
    design_analysis: Dict[str, Any] = Field(default_factory=dict, alias="designAnalysis")
    product_analysis: Dict[str, Any] = Field(default_factory=dict, alias="productAnalysis")
    seo_analysis: Dict[str, Any] = Field(default_factory=dict, alias="seoAnalysis")
    trust_analysis: Dict[str, Any] = Field(default_factory=dict, alias="trustAnalysis")
    pricing_analysis: Dict[str, Any] = Field(default_factory=dict, alias="pricingAnalysis")
    conversion_analysis: Dict[str, Any] = Field(default_factory=dict, alias="conversionAnalysis")
    suggestions: List[Suggestion] = []
    summary: str = ""
    screenshot: Optional[str] = None
    store_recap: StoreRecap = Field(default_factory=StoreRecap, alias="storeRecap")
    content_hash: Optional[str] = Field(None, alias="contentHash")
    model_config = ConfigDict(populate_by_name=True)


class ErrorResponse(BaseModel):
    error: str
    message: str
    status_code: int
    timestamp: datetime = Field(default_factory=datetime.now)
    details: Optional[Dict[str, Any]] = None


class SuccessResponse(BaseModel):
    success: bool = True
    data: Any = None
    message: str = "OK"
