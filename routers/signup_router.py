"""
Signup Router - public account creation on the Jellyfin server
"""
import logging

from fastapi import APIRouter, Depends

from auth_utils import hash_password
from config.settings import settings
from crud.storage import DuplicateRecordError, StorageError, TrialStorage
from dependencies import get_jellyfin_client, get_storage, get_trial_service
from models.jellyfin import SignupRequest
from services.jellyfin_client import JellyfinClient, JellyfinError
from services.trial_service import TrialService
from utils.responses import success_response, error_response
from utils.shared_utils import log_endpoint_event

logger = logging.getLogger(__name__)

signup_router = APIRouter(prefix="/api/jellyfin", tags=["signup"])


@signup_router.post("/users")
async def create_jellyfin_user(
    request: SignupRequest,
    jellyfin: JellyfinClient = Depends(get_jellyfin_client),
    storage: TrialStorage = Depends(get_storage),
    trial_service: TrialService = Depends(get_trial_service),
):
    """
    Create an account on the Jellyfin server.

    Download permission is removed and a trial is started afterwards; both
    are best effort and never undo the account creation.
    """
    try:
        if await jellyfin.user_exists(request.username):
            log_endpoint_event("/api/jellyfin/users", request.username, "duplicate")
            return error_response("username_taken", status=400, message="Username already exists")

        user = await jellyfin.create_user(request.username, request.password)
    except JellyfinError as e:
        log_endpoint_event("/api/jellyfin/users", request.username, "error", {"error": e.message})
        return error_response("upstream_error", status=500, message=e.message)

    try:
        await jellyfin.disable_downloads(user.id)
    except JellyfinError as e:
        logger.warning(f"Policy update failed for {request.username} but continuing with user creation: {e.message}")

    trial = None
    try:
        # The upstream name was free, so any trial record left under it belongs to a removed account
        stale = await storage.get_trial_user(request.username)
        if stale is not None:
            logger.info(
                f"Replacing stale trial record for {request.username} "
                f"(expired={stale.is_expired}, expiry={stale.expiry_date.isoformat()})"
            )
            await storage.delete_trial_user(request.username)
        trial = await trial_service.enroll(request.username)
    except StorageError as e:
        logger.error(f"Could not start trial for {request.username}: {e}")

    try:
        await storage.create_user(request.username, hash_password(request.password))
    except DuplicateRecordError:
        logger.info(f"Local user record for {request.username} already exists")
    except StorageError as e:
        logger.warning(f"Could not store local user record for {request.username}: {e}")

    log_endpoint_event("/api/jellyfin/users", request.username, "success", {"trial": trial is not None})
    return success_response(
        data={
            "user_id": user.id,
            "redirect_url": settings.jellyfin_server_url,
            "trial": trial,
        },
        message="User created successfully",
        status=201,
    )
