"""
Admin Router - user management and trial administration
"""
import logging

from fastapi import APIRouter, Depends

from auth import require_admin
from crud.storage import StorageError, TrialStorage
from dependencies import get_jellyfin_client, get_storage, get_trial_service
from models.admin import UserAction, UserActionRequest
from models.trial import TrialSettingsUpdate
from services.jellyfin_client import JellyfinClient, JellyfinError
from services.trial_service import TrialService, describe_trial
from utils.responses import success_response, error_response
from utils.security_utils import validate_password_strength
from utils.shared_utils import log_endpoint_event

logger = logging.getLogger(__name__)

admin_router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@admin_router.get("/users")
async def list_users(
    jellyfin: JellyfinClient = Depends(get_jellyfin_client),
    trial_service: TrialService = Depends(get_trial_service),
):
    """All Jellyfin accounts, each joined with its trial record if any"""
    try:
        users = await jellyfin.list_users()
        trials = {trial["username"].lower(): trial for trial in await trial_service.list_trials()}
    except JellyfinError as e:
        return error_response("upstream_error", status=500, message=e.message)
    except StorageError as e:
        return error_response("storage_error", status=500, message=str(e))

    data = [{**user.summary(), "trial": trials.get(user.name.lower())} for user in users]
    return success_response(data={"users": data, "total": len(data)})


@admin_router.get("/users/{user_id}")
async def get_user(user_id: str, jellyfin: JellyfinClient = Depends(get_jellyfin_client)):
    try:
        user = await jellyfin.get_user(user_id)
    except JellyfinError as e:
        return error_response("upstream_error", status=500, message=e.message)
    return success_response(data={"user": user.summary()})


@admin_router.post("/users/action")
async def user_action(
    request: UserActionRequest,
    jellyfin: JellyfinClient = Depends(get_jellyfin_client),
    storage: TrialStorage = Depends(get_storage),
):
    """Apply delete / enable / disable / reset-password / bulk-disable"""
    if request.action == UserAction.BULK_DISABLE:
        return await _bulk_disable(request, jellyfin)

    if not request.user_id:
        return error_response("validation_error", status=400, message="User ID is required")

    try:
        if request.action == UserAction.DELETE:
            user = await jellyfin.get_user(request.user_id)
            await jellyfin.delete_user(request.user_id)
            try:
                await storage.delete_trial_user(user.name)
            except StorageError as e:
                logger.warning(f"Deleted {user.name} upstream but could not remove trial record: {e}")
            message = f"User {user.name} deleted"
        elif request.action == UserAction.ENABLE:
            await jellyfin.set_user_disabled(request.user_id, False)
            message = "User enabled"
        elif request.action == UserAction.DISABLE:
            await jellyfin.set_user_disabled(request.user_id, True)
            message = "User disabled"
        else:
            try:
                validate_password_strength(request.new_password or "")
            except ValueError as e:
                return error_response("validation_error", status=400, message=str(e))
            await jellyfin.reset_password(request.user_id, request.new_password)
            message = "Password reset"
    except JellyfinError as e:
        log_endpoint_event("/api/admin/users/action", request.user_id, "error", {"action": request.action.value, "error": e.message})
        return error_response("upstream_error", status=500, message=e.message)

    log_endpoint_event("/api/admin/users/action", request.user_id, "success", {"action": request.action.value})
    return success_response(data={"action": request.action.value, "user_id": request.user_id}, message=message)


async def _bulk_disable(request: UserActionRequest, jellyfin: JellyfinClient):
    if not request.user_ids:
        return error_response("validation_error", status=400, message="User IDs are required for bulk-disable")

    disabled, failures = [], []
    for user_id in request.user_ids:
        try:
            await jellyfin.set_user_disabled(user_id, True)
            disabled.append(user_id)
        except JellyfinError as e:
            logger.error(f"Bulk disable failed for {user_id}: {e.message}")
            failures.append({"user_id": user_id, "error": e.message})

    log_endpoint_event("/api/admin/users/action", None, "bulk-disable", {"disabled": len(disabled), "failed": len(failures)})
    return success_response(
        data={"disabled": disabled, "failed": failures},
        message=f"Disabled {len(disabled)} users, {len(failures)} failed",
    )


@admin_router.get("/trial-settings")
async def get_trial_settings(storage: TrialStorage = Depends(get_storage)):
    try:
        trial_settings = await storage.get_trial_settings()
    except StorageError as e:
        return error_response("storage_error", status=500, message=str(e))
    return success_response(data={"settings": trial_settings})


@admin_router.put("/trial-settings")
async def update_trial_settings(update: TrialSettingsUpdate, storage: TrialStorage = Depends(get_storage)):
    """Only the fields present in the body are changed"""
    try:
        trial_settings = await storage.update_trial_settings(update)
    except StorageError as e:
        return error_response("storage_error", status=500, message=str(e))
    log_endpoint_event("/api/admin/trial-settings", None, "updated", update.provided_fields())
    return success_response(data={"settings": trial_settings}, message="Trial settings updated")


@admin_router.get("/trial-users")
async def list_trial_users(trial_service: TrialService = Depends(get_trial_service)):
    try:
        trials = await trial_service.list_trials()
    except StorageError as e:
        return error_response("storage_error", status=500, message=str(e))
    return success_response(data={"trial_users": trials, "total": len(trials)})


@admin_router.get("/trial-users/{username}")
async def get_trial_user(username: str, trial_service: TrialService = Depends(get_trial_service)):
    try:
        record = await trial_service.storage.get_trial_user(username)
    except StorageError as e:
        return error_response("storage_error", status=500, message=str(e))
    if record is None:
        return error_response("not_found", status=404, message=f"No trial record for {username}")
    return success_response(data={"trial_user": describe_trial(record, trial_service.clock())})


@admin_router.post("/process-expired-trials")
async def process_expired_trials(trial_service: TrialService = Depends(get_trial_service)):
    """Run the expiry sweep now instead of waiting for the periodic job"""
    try:
        summary = await trial_service.process_expired_trials()
    except StorageError as e:
        return error_response("storage_error", status=500, message=str(e))
    return success_response(data=summary, message=summary.message)
