"""
Jellyfin Signup Portal Backend
Self-service signup with trial accounts, plus the admin panel API
"""

import asyncio
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from auth import auth_router, is_admin_session
from auth_utils import ADMIN_SESSION_COOKIE
from config.settings import settings, IS_PRODUCTION, LOGS_DIR
from crud.storage import create_storage
from jobs.periodic import PeriodicJob
from routers.admin_router import admin_router
from routers.analytics_router import analytics_router
from routers.location_router import location_router
from routers.public_router import public_router
from routers.signup_router import signup_router
from services.access_tracker import AccessTracker
from services.activity_tracker import ActivityTracker
from services.admin_sessions import AdminSessionStore
from services.event_log import (
    ACCESS_LOG_MAX_ENTRIES,
    ACTIVITY_LOG_MAX_ENTRIES,
    JsonFileEventSink,
)
from services.geo_service import GeoLocator
from services.jellyfin_client import JellyfinClient
from services.trial_service import TrialService
from utils.rate_limit import RateLimiterMiddleware, connect_redis
from utils.responses import error_response
from utils.shared_utils import get_client_ip
from utils.ttl_cache import TTLCache

# Logging setup - write ALL events to /logs/app.log
LOGS_DIR.mkdir(exist_ok=True)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(LOGS_DIR / "app.log"),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

# Paths whose requests go to the access log
TRACKED_PATH_PREFIXES = ("/api/jellyfin", "/api/admin")
TRENDING_CACHE_TTL_SECONDS = 3600
HTTP_ERROR_CODES = {
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
}

# ============================================================================
# FASTAPI APP SETUP
# ============================================================================

app = FastAPI(title="Jellyfin Signup Portal")


# Uncaught exception middleware - logs all unhandled exceptions and returns 500
class UncaughtExceptionMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Uncaught exception: {e}\n{traceback.format_exc()}")
            return JSONResponse(
                status_code=500,
                content={"ok": False, "data": None, "error": "Internal Server Error", "message": "Internal Server Error"}
            )


# Security headers middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses: CSP, HSTS, X-Frame-Options, X-Content-Type-Options"""
    async def dispatch(self, request, call_next):
        response = await call_next(request)

        # The signup page pulls posters from TMDB and map tiles for the admin panel
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' 'unsafe-inline'; "
            "style-src 'self' 'unsafe-inline'; "
            "connect-src 'self'; "
            "img-src 'self' data: blob: https://image.tmdb.org https://*.tile.openstreetmap.org; "
            "font-src 'self' data:; "
            "object-src 'none'; "
            "base-uri 'self'; "
            "form-action 'self';"
        )

        # Only set in production where HTTPS is guaranteed
        if IS_PRODUCTION:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"

        return response


class AccessTrackingMiddleware(BaseHTTPMiddleware):
    """
    Logs signup and admin requests to the access log in the background,
    so a slow geo lookup never delays the response.
    """

    def __init__(self, app, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled
        self._pending = set()

    async def dispatch(self, request, call_next):
        tracker = getattr(request.app.state, "access_tracker", None)
        if self.enabled and tracker is not None and request.url.path.startswith(TRACKED_PATH_PREFIXES):
            store = getattr(request.app.state, "session_store", None)
            token = request.cookies.get(ADMIN_SESSION_COOKIE)
            username = "admin" if store is not None and is_admin_session(token, store) else "anonymous"
            task = asyncio.create_task(tracker.log_access(
                get_client_ip(request),
                username,
                request.url.path,
                request.headers.get("user-agent", "unknown"),
            ))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return await call_next(request)


app.add_middleware(UncaughtExceptionMiddleware)
app.add_middleware(
    RateLimiterMiddleware,
    requests_per_minute=settings.rate_limit_per_minute,
    redis_client=connect_redis(settings.redis_url) if settings.rate_limit_per_minute > 0 else None,
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(AccessTrackingMiddleware, enabled=settings.access_tracking_enabled)

# CORS MUST be near the bottom
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Wrap HTTPExceptions (admin session gate, unknown routes) in the response envelope"""
    return error_response(
        HTTP_ERROR_CODES.get(exc.status_code, "http_error"),
        status=exc.status_code,
        message=str(exc.detail),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Field-level validation messages for the signup form and admin panel"""
    errors = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        message = error.get("msg", "Invalid value")
        # field_validator ValueErrors arrive as "Value error, <message>"
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append({"field": ".".join(loc), "message": message})

    logger.info(f"Validation failed on {request.url.path}: {errors}")
    return error_response(
        "validation_error",
        status=400,
        message=errors[0]["message"] if errors else "Invalid request",
        data={"errors": errors},
    )


# ============================================================================
# STARTUP / SHUTDOWN
# ============================================================================
@app.on_event("startup")
async def check_env_keys_on_startup():
    """Check for missing environment variables on startup (non-fatal warning)"""
    key_checks = {
        "JELLYFIN_API_KEY": settings.jellyfin_api_key,
        "ADMIN_USERNAME": settings.admin_username,
        "ADMIN_PASSWORD": settings.admin_password,
        "SESSION_SECRET": settings.session_secret,
    }
    missing = [env_key for env_key, value in key_checks.items() if not value]
    if missing:
        logger.warning(f"Startup check: Missing environment variables: {', '.join(missing)}")
    else:
        logger.info("Startup check: All critical environment variables are set")


@app.on_event("startup")
async def initialize_services():
    """Build the shared services and start the background jobs."""
    try:
        app.state.storage = await create_storage(settings, is_production=IS_PRODUCTION)
        logger.info("Storage initialized successfully")
    except Exception as e:
        logger.error(f"Storage initialization failed: {e}")
        raise

    app.state.jellyfin = JellyfinClient(
        settings.jellyfin_server_url,
        settings.jellyfin_api_key,
        timeout=settings.jellyfin_timeout_seconds,
    )
    app.state.geo_locator = GeoLocator(
        timeout=settings.geo_lookup_timeout_seconds,
        cache=TTLCache(settings.geo_cache_ttl_seconds),
    )
    app.state.access_tracker = AccessTracker(
        JsonFileEventSink(settings.access_log_file, ACCESS_LOG_MAX_ENTRIES),
        app.state.geo_locator,
    )
    app.state.activity_tracker = ActivityTracker(
        JsonFileEventSink(settings.activity_log_file, ACTIVITY_LOG_MAX_ENTRIES),
        app.state.geo_locator,
        app.state.jellyfin,
    )
    app.state.session_store = AdminSessionStore.from_redis_url(settings.session_max_age_seconds, settings.redis_url)
    app.state.trending_cache = TTLCache(TRENDING_CACHE_TTL_SECONDS)

    trial_service = TrialService(app.state.storage, app.state.jellyfin)
    app.state.jobs = []
    if settings.trial_sweep_interval_seconds > 0:
        app.state.jobs.append(PeriodicJob(
            "trial-expiry-sweep",
            settings.trial_sweep_interval_seconds,
            trial_service.process_expired_trials,
        ))
    if settings.session_tracking_interval_seconds > 0:
        app.state.jobs.append(PeriodicJob(
            "session-tracking",
            settings.session_tracking_interval_seconds,
            app.state.activity_tracker.track_active_sessions,
        ))
    for job in app.state.jobs:
        job.start()


@app.on_event("shutdown")
async def shutdown_services():
    for job in getattr(app.state, "jobs", []):
        await job.stop()
    if getattr(app.state, "jellyfin", None) is not None:
        await app.state.jellyfin.close()
    if getattr(app.state, "geo_locator", None) is not None:
        await app.state.geo_locator.close()
    if getattr(app.state, "storage", None) is not None:
        await app.state.storage.close()
    logger.info("Shutdown complete")


# ============================================================================
# INCLUDE ROUTERS
# ============================================================================
app.include_router(public_router)
app.include_router(signup_router)
app.include_router(location_router)
app.include_router(auth_router)
app.include_router(admin_router)
app.include_router(analytics_router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
