from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import uuid

import httpx
import structlog

from geodiscovery.core.config import settings
from geodiscovery.core.middleware import SessionMiddleware
from geodiscovery.logging import configure_logging
from geodiscovery.middleware.logging import LoggingMiddleware
from geodiscovery.api.routes import router as api_router
from geodiscovery.services.discovery import DiscoveryPipeline
from geodiscovery.services.geocode_cache import GeocodeCache
from geodiscovery.services.geocoding import GoogleGeocoderClient
from geodiscovery.services.radius_policy import RadiusPolicy
from geodiscovery.services.session_store import SessionStore

configure_logging()
logger = structlog.get_logger(__name__)

# --- Application Lifecycle Management ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("application_startup", version=settings.VERSION, env=settings.ENV)
    if not settings.GOOGLE_MAPS_API_KEY:
        logger.warning("geocoder_api_key_missing")

    http_client = httpx.AsyncClient(timeout=settings.GEOCODER_TIMEOUT)
    geocoder = GoogleGeocoderClient(http_client=http_client)
    app.state.geocode_cache = GeocodeCache()
    app.state.pipeline = DiscoveryPipeline(RadiusPolicy())
    app.state.sessions = SessionStore(geocoder, app.state.geocode_cache)

    yield

    logger.info("application_shutdown")
    await http_client.aclose()

# --- FastAPI Application Initialization ---
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description=settings.BRIEF_DESCRIPTION,
    lifespan=lifespan,
)

# Starlette runs the last added middleware first: logging wraps the session cookie
app.add_middleware(SessionMiddleware)
app.add_middleware(LoggingMiddleware)

# --- API Routes ---
app.include_router(api_router, prefix="/api")

# --- Health Check Endpoint ---
@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check(request: Request):
    return {
        "status": "ok",
        "geocode_cache": request.app.state.geocode_cache.stats(),
        "sessions": len(request.app.state.sessions),
    }

# --- Global Exception Handler (for unhandled errors) ---
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    error_id = str(uuid.uuid4())
    logger.error("unhandled_exception", error_id=error_id, error=str(exc), exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": {
                "error": "INTERNAL_SERVER_ERROR",
                "detail": "An unexpected error occurred. Please report this error ID.",
                "error_id": error_id
            }
        }
    )
