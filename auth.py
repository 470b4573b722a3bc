"""
Admin authentication routes and dependencies
"""
import logging
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException

from auth_utils import (
    ADMIN_SESSION_COOKIE,
    create_session_token,
    decode_session_token,
    verify_admin_credentials,
)
from config.settings import settings, IS_PRODUCTION
from dependencies import get_session_store
from models.admin import AdminLoginRequest
from services.admin_sessions import AdminSessionStore
from utils.responses import success_response, error_response
from utils.shared_utils import log_endpoint_event

logger = logging.getLogger(__name__)

# Create auth router
auth_router = APIRouter(prefix="/api/admin", tags=["admin-auth"])


def is_admin_session(token: Optional[str], store: AdminSessionStore) -> bool:
    return store.is_valid(decode_session_token(token))


async def require_admin(
    admin_session: Optional[str] = Cookie(None),
    store: AdminSessionStore = Depends(get_session_store),
) -> str:
    """Dependency guarding admin routes; returns the session id."""
    session_id = decode_session_token(admin_session)
    if not store.is_valid(session_id):
        raise HTTPException(status_code=401, detail="Admin authentication required")
    return session_id


@auth_router.post("/login")
async def login(request: AdminLoginRequest, store: AdminSessionStore = Depends(get_session_store)):
    """Check admin credentials and start a server-side session"""
    if not verify_admin_credentials(request.username, request.password):
        log_endpoint_event("/api/admin/login", request.username, "rejected")
        return error_response("invalid_credentials", status=401, message="Invalid username or password")

    session_id = store.create()
    response = success_response(data={"authenticated": True}, message="Login successful")
    response.set_cookie(
        key=ADMIN_SESSION_COOKIE,
        value=create_session_token(session_id),
        httponly=True,
        secure=IS_PRODUCTION,
        samesite="lax",
        max_age=settings.session_max_age_seconds,
        path="/",
    )
    log_endpoint_event("/api/admin/login", request.username, "success")
    return response


@auth_router.post("/logout")
async def logout(
    admin_session: Optional[str] = Cookie(None),
    store: AdminSessionStore = Depends(get_session_store),
):
    """End the admin session; safe to call when not logged in"""
    store.revoke(decode_session_token(admin_session))
    response = success_response(data={"authenticated": False}, message="Logged out")
    response.delete_cookie(ADMIN_SESSION_COOKIE, path="/")
    return response


@auth_router.get("/session")
async def session_status(
    admin_session: Optional[str] = Cookie(None),
    store: AdminSessionStore = Depends(get_session_store),
):
    """Let the admin UI know whether the current cookie is still logged in"""
    return success_response(data={"authenticated": is_admin_session(admin_session, store)})
