from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import time
import uuid
from datetime import datetime
from contextlib import asynccontextmanager

from .config import settings, get_environment
from .exceptions import StoreScoreException
from .models.schemas import ErrorResponse
from .api import analysis, assistant, auth, billing, shopify, stores

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    filename=settings.LOG_FILE or None
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        from .models.database import create_tables
        from .services.database_initialization import seed_subscription_plans
        create_tables()
        seed_subscription_plans()
        logger.info("Database tables initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")

    yield
    logger.info("Application shutting down...")

app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request with its status and duration, tagged with a request id"""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    start_time = time.time()

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    logger.info(
        f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} ({duration_ms:.1f}ms)"
    )
    response.headers["X-Request-ID"] = request_id
    return response


# Include API routes with prefix
app.include_router(auth.router, prefix="/api", tags=["Auth"])
app.include_router(stores.router, prefix="/api", tags=["Stores"])
app.include_router(analysis.router, prefix="/api", tags=["Store Analysis"])
app.include_router(billing.router, prefix="/api", tags=["Credits & Billing"])
app.include_router(shopify.router, prefix="/api", tags=["Shopify"])
app.include_router(assistant.router, prefix="/api", tags=["Assistant"])


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information"""
    return {
        "message": settings.API_TITLE,
        "version": settings.API_VERSION,
        "documentation": {
            "swagger_ui": "/docs",
            "redoc": "/redoc",
            "openapi_json": "/openapi.json"
        },
        "endpoints": {
            "auth": "/api/auth/register, /api/auth/login, /api/auth/me",
            "stores": "/api/stores",
            "analyze_store": "/api/analyze-store",
            "analyses": "/api/analyses",
            "credits": "/api/credits",
            "subscription": "/api/subscription",
            "shopify": "/api/shopify/connect",
            "assistant": "/api/alex/chat",
            "health": "/health"
        },
        "status": "active"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(),
        "version": settings.API_VERSION,
        "environment": get_environment(),
        "service": settings.API_TITLE,
        "integrations": {
            "openai": bool(settings.OPENAI_API_KEY),
            "stripe": bool(settings.STRIPE_SECRET_KEY),
            "shopify": bool(settings.SHOPIFY_API_KEY and settings.SHOPIFY_API_SECRET),
            "screenshots": settings.ENABLE_SCREENSHOTS
        }
    }


def _error_response(status_code: int, error: str, message: str, details=None) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, status_code=status_code, details=details or None)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body.model_dump()))


# Global exception handlers
@app.exception_handler(StoreScoreException)
async def storescore_exception_handler(request: Request, exc: StoreScoreException):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return _error_response(exc.status_code, type(exc).__name__, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return _error_response(
        422,
        "Validation Error",
        "Request validation failed",
        {"errors": jsonable_encoder(exc.errors())}
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        return _error_response(404, "Not Found", "The requested resource was not found")
    return _error_response(exc.status_code, "HTTP Error", str(exc.detail))


@app.exception_handler(Exception)
async def internal_server_error_handler(request: Request, exc: Exception):
    logger.error(f"Internal server error on {request.url.path}: {exc}")
    return _error_response(500, "Internal Server Error", "An internal server error occurred")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("storescore.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
