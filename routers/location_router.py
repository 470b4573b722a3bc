"""
Location Router - browser GPS reports and the tracked login redirect
"""
import logging
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Request
from fastapi.responses import RedirectResponse

from auth import is_admin_session
from config.settings import settings
from dependencies import get_access_tracker, get_session_store
from models.location import ClientLocationRequest
from services.access_tracker import AccessTracker
from services.admin_sessions import AdminSessionStore
from utils.responses import success_response, error_response
from utils.shared_utils import get_client_ip

logger = logging.getLogger(__name__)

location_router = APIRouter(tags=["location"])


@location_router.post("/api/update-client-location")
async def update_client_location(
    request: Request,
    body: ClientLocationRequest,
    admin_session: Optional[str] = Cookie(None),
    tracker: AccessTracker = Depends(get_access_tracker),
    store: AdminSessionStore = Depends(get_session_store),
):
    username = "admin" if is_admin_session(admin_session, store) else "anonymous"
    entry = await tracker.record_client_location(
        ip=get_client_ip(request),
        username=username,
        latitude=body.latitude,
        longitude=body.longitude,
        accuracy=body.accuracy,
        source=body.source,
        user_agent=request.headers.get("user-agent", "unknown"),
    )
    if entry is None:
        return error_response("storage_error", status=500, message="Could not record location")
    return success_response(data={"recorded": True}, message="Location updated")


@location_router.get("/jellyfin-login/{username}")
async def jellyfin_login_redirect(
    username: str,
    request: Request,
    tracker: AccessTracker = Depends(get_access_tracker),
):
    """Record the login click, then hand the user to the media server"""
    await tracker.log_access(
        get_client_ip(request),
        username,
        request.url.path,
        request.headers.get("user-agent", "unknown"),
    )
    logger.info(f"Redirecting {username} to Jellyfin")
    return RedirectResponse(url=settings.jellyfin_server_url, status_code=302)
