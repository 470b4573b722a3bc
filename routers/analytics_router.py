"""
Analytics Router - access and activity dashboards for the admin panel
"""
import logging

from fastapi import APIRouter, Depends

from auth import require_admin
from dependencies import get_access_tracker, get_activity_tracker
from services.access_tracker import AccessTracker
from services.activity_tracker import ActivityTracker
from utils.responses import success_response

logger = logging.getLogger(__name__)

analytics_router = APIRouter(
    prefix="/api/admin/analytics",
    tags=["analytics"],
    dependencies=[Depends(require_admin)],
)


@analytics_router.get("/access")
async def access_analytics(tracker: AccessTracker = Depends(get_access_tracker)):
    """Where signup and admin traffic comes from"""
    return success_response(data=tracker.get_access_stats())


@analytics_router.get("/activity")
async def activity_analytics(tracker: ActivityTracker = Depends(get_activity_tracker)):
    """Who is watching what, from the session tracking job"""
    return success_response(data=tracker.get_activity_stats())
