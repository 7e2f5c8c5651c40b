import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import all models so they're registered with SQLAlchemy Base
from . import (
    models,  # noqa: F401
    models_payouts,  # noqa: F401
)
from .config import FRONTEND_URL
from .database import Base, engine
from .domain.amara.router import router as amara_router
from .domain.availability.router import router as availability_router
from .domain.bookings.router import router as bookings_router
from .domain.matching.router import router as matching_router
from .domain.messaging.router import router as messaging_router
from .domain.payments.webhooks import router as stripe_webhooks_router
from .domain.payouts.router import router as payouts_router
from .domain.pricing.router import router as pricing_router
from .domain.professionals.router import dashboard_router as pro_dashboard_router
from .domain.professionals.router import directory_router
from .domain.professionals.router import router as professionals_router
from .domain.reviews.router import router as reviews_router
from .domain.trial_credits.router import router as trial_credits_router
from .routes.admin import router as admin_router
from .routes.notifications import router as notifications_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    try:
        from .rate_limiter import get_redis_client

        get_redis_client()
        logger.info("Redis connection established")
    except Exception as e:
        logger.warning(
            f"Redis connection failed - Rate limiting will operate in fail-open mode: {e}"
        )

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Casaora API", version="1.0.0", lifespan=lifespan)


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx can hold the raised ValueError itself
    return [{k: v for k, v in error.items() if k != "ctx"} for error in exc.errors()]


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert 422 validation errors from HTTPBearer to 401 authentication errors
    when the issue is with the Authorization header
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={
                    "detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header."
                },
            )

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", f"{FRONTEND_URL},http://localhost:3000").split(",")
logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(pricing_router)
app.include_router(availability_router)
app.include_router(bookings_router)
app.include_router(stripe_webhooks_router)
app.include_router(payouts_router)
app.include_router(trial_credits_router)
app.include_router(reviews_router)
app.include_router(matching_router)
app.include_router(amara_router)
app.include_router(messaging_router)
app.include_router(notifications_router)
app.include_router(admin_router)
app.include_router(directory_router)
app.include_router(professionals_router)
app.include_router(pro_dashboard_router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
