import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Settings:
    # API Configuration
    API_TITLE = "StoreScore API"
    API_VERSION = "1.0.0"
    API_DESCRIPTION = "AI-powered scoring and optimization for Shopify and eBay stores"

    # Server Configuration
    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", 8000))
    DEBUG = os.getenv("DEBUG", "false").lower() == "true"

    # Request Configuration
    REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", 15))
    MAX_RETRIES = int(os.getenv("MAX_RETRIES", 3))
    RETRY_DELAY = float(os.getenv("RETRY_DELAY", 1.0))

    # Content Limits
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", 8000))
    MAX_PRODUCTS_IN_PROMPT = int(os.getenv("MAX_PRODUCTS_IN_PROMPT", 10))
    MAX_CATALOG_PAGES = int(os.getenv("MAX_CATALOG_PAGES", 4))

    # Database Configuration
    DATABASE_URL = os.getenv("DATABASE_URL", "mysql+mysqlconnector://root:@localhost:3306/storescore")
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = int(os.getenv("DB_PORT", 3306))
    DB_USER = os.getenv("DB_USER", "root")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")
    DB_NAME = os.getenv("DB_NAME", "storescore")

    # LLM Configuration
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
    LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o")
    LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", 2000))
    LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", 60))

    # Stripe Configuration
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    DEFAULT_PLAN_NAME = os.getenv("DEFAULT_PLAN_NAME", "Pro Plan")

    # Shopify App Configuration
    SHOPIFY_API_KEY = os.getenv("SHOPIFY_API_KEY", "")
    SHOPIFY_API_SECRET = os.getenv("SHOPIFY_API_SECRET", "")
    SHOPIFY_REDIRECT_URI = os.getenv("SHOPIFY_REDIRECT_URI", "http://localhost:8000/api/shopify/callback")
    SHOPIFY_API_VERSION = os.getenv("SHOPIFY_API_VERSION", "2024-04")
    SHOPIFY_SCOPES = os.getenv("SHOPIFY_SCOPES", "read_products,write_products,read_content,write_content")
    DASHBOARD_URL = os.getenv("DASHBOARD_URL", "")

    # Sessions
    SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "sessionId")
    SESSION_TTL_DAYS = int(os.getenv("SESSION_TTL_DAYS", 30))

    # Screenshots
    ENABLE_SCREENSHOTS = os.getenv("ENABLE_SCREENSHOTS", "true").lower() == "true"
    SCREENSHOT_TIMEOUT_MS = int(os.getenv("SCREENSHOT_TIMEOUT_MS", 15000))

    # Credits
    DEFAULT_NEW_USER_CREDITS = int(os.getenv("DEFAULT_NEW_USER_CREDITS", 25))
    ANALYSIS_CREDIT_COST = int(os.getenv("ANALYSIS_CREDIT_COST", 1))
    OPTIMIZATION_CREDIT_COST = int(os.getenv("OPTIMIZATION_CREDIT_COST", 1))
    AD_GENERATION_CREDIT_COST = int(os.getenv("AD_GENERATION_CREDIT_COST", 2))

    # Logging Configuration
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("LOG_FILE", "")

    # Security Configuration
    ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")

    # Shopify storefront markers
    SHOPIFY_INDICATORS = [
        "Shopify.theme",
        "shopify_pay",
        "cdn.shopify.com",
        "myshopify.com",
        "Shopify.shop",
        "shopify-section"
    ]

    # User Agent String
    USER_AGENT = os.getenv(
        "USER_AGENT",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )


# Create settings instance
settings = Settings()


# Maximum points per scoring category; they add up to 100
SCORE_MAXIMA = {
    "design": 20,
    "product": 25,
    "seo": 20,
    "trust": 15,
    "pricing": 10,
    "conversion": 10,
}
TOTAL_MAX_SCORE = sum(SCORE_MAXIMA.values())

# Percentages of a category maximum
SCORE_THRESHOLDS = {
    "excellent": 80,
    "good": 60,
    "poor": 40,
}

CREDIT_PACKAGES = {
    "starter": {"credits": 50, "price": 900},
    "growth": {"credits": 150, "price": 1900},
    "professional": {"credits": 500, "price": 3900},
}

TRIAL_DAYS = 7

DEFAULT_SUBSCRIPTION_PLANS = [
    {
        "name": "Starter",
        "description": "Perfect for small stores",
        "stripe_price_id": os.getenv("STRIPE_STARTER_PRICE_ID", "price_starter"),
        "stripe_product_id": "prod_starter",
        "price": 2900,
        "ai_credits_included": 100,
        "max_stores": 1,
        "features": ["Basic analysis", "Email support"],
    },
    {
        "name": "Pro Plan",
        "description": "For growing businesses",
        "stripe_price_id": os.getenv("STRIPE_PRO_PRICE_ID", "price_pro"),
        "stripe_product_id": "prod_pro",
        "price": 4900,
        "ai_credits_included": 300,
        "max_stores": 5,
        "features": ["Advanced analysis", "Priority support", "Custom reports"],
    },
    {
        "name": "Enterprise",
        "description": "For large operations",
        "stripe_price_id": os.getenv("STRIPE_ENTERPRISE_PRICE_ID", "price_enterprise"),
        "stripe_product_id": "prod_enterprise",
        "price": 9900,
        "ai_credits_included": 1000,
        "max_stores": 50,
        "features": ["Everything included", "Dedicated support", "Custom integrations"],
    },
]

# Chat assistant limits
CHAT_MAX_HISTORY = 10
CHAT_MAX_MESSAGE_LENGTH = 500
CHAT_MEMORY_SESSIONS = 5


# Environment check
def get_environment():
    """Get current environment"""
    return os.getenv("ENVIRONMENT", "development")


def is_production():
    """Check if running in production"""
    return get_environment().lower() == "production"
