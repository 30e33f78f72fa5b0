import logging
import uuid
from typing import Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.types import ASGIApp

from ..cache import redis_available, redis_client
from ..config import CORS_ORIGINS, GEMINI_API_KEY, GOOGLE_PLACES_API_KEY, SUPABASE_KEY, SUPABASE_URL
from ..logging_setup import setup_logging
from .venue_photos.routes import router as venue_photos_router
from .venue_search.routes import venue_search_router

# Ensure logging is configured when the app module is imported (e.g., under uvicorn)
setup_logging()

app = FastAPI(title="Venue Reviews")


@app.on_event("startup")
async def startup_event():
    logging.info("Application startup event.")


@app.on_event("shutdown")
async def shutdown_event():
    logging.info("Application shutdown event.")


class ProcessRequestMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id and logs it."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        logging.info({
            "event": "request",
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        })
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response


app.add_middleware(ProcessRequestMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(venue_photos_router, prefix="/api")
app.include_router(venue_search_router, prefix="/api")


class HealthCheckResult(BaseModel):
    status: str
    message: Optional[str] = None


class OverallHealthStatus(BaseModel):
    status: str
    checks: Dict[str, HealthCheckResult]


def check_supabase_config() -> HealthCheckResult:
    if SUPABASE_URL and SUPABASE_KEY:
        return HealthCheckResult(status="ok", message="Supabase is configured")
    logging.warning("SUPABASE_URL or SUPABASE_KEY not set.")
    return HealthCheckResult(status="unavailable", message="Supabase is not configured")


def check_places_config() -> HealthCheckResult:
    if GOOGLE_PLACES_API_KEY:
        return HealthCheckResult(status="ok", message="Places API key is configured")
    logging.warning("GOOGLE_PLACES_API_KEY not set.")
    return HealthCheckResult(status="unavailable", message="Places API key not found")


def check_gemini_config() -> HealthCheckResult:
    if GEMINI_API_KEY:
        return HealthCheckResult(status="ok", message="Gemini API key is configured")
    # Photo backfill still works without AI arbitration
    return HealthCheckResult(status="degraded", message="Gemini API key not found, AI arbitration disabled")


def check_redis_health() -> HealthCheckResult:
    if not redis_available():
        return HealthCheckResult(status="degraded", message="Redis cache disabled")
    try:
        redis_client.ping()
        return HealthCheckResult(status="ok", message="Redis connection successful")
    except Exception as e:
        logging.error(f"Redis health check failed: {e}", exc_info=False)
        return HealthCheckResult(status="degraded", message="Redis connection failed")


@app.get("/health", response_model=OverallHealthStatus, tags=["Health"])
async def health_check():
    all_checks = {
        "application": HealthCheckResult(status="ok", message="Application is running"),
        "supabase": check_supabase_config(),
        "places": check_places_config(),
        "gemini": check_gemini_config(),
        "redis": check_redis_health(),
    }

    overall_status = "ok"
    if any(check.status == "unavailable" for check in all_checks.values()):
        overall_status = "unavailable"
    elif any(check.status == "degraded" for check in all_checks.values()):
        overall_status = "degraded"

    return OverallHealthStatus(status=overall_status, checks=all_checks)
