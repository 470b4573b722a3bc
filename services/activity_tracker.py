"""
Activity Tracker - polls Jellyfin sessions and keeps a located activity log
"""
import logging
from typing import Optional

from services.access_tracker import country_breakdown, geo_points
from services.event_log import EventSink
from services.geo_service import GeoLocator
from services.jellyfin_client import JellyfinClient
from utils.shared_utils import epoch_millis

logger = logging.getLogger(__name__)

RECENT_ACTIVITIES_LIMIT = 50


class ActivityTracker:
    def __init__(self, sink: EventSink, geo_locator: GeoLocator, jellyfin: JellyfinClient):
        self.sink = sink
        self.geo_locator = geo_locator
        self.jellyfin = jellyfin

    async def log_user_activity(
        self, username: str, ip: str, activity: str, device_info: Optional[str] = None
    ) -> Optional[dict]:
        entry = {
            "username": username,
            "ip": ip,
            "timestamp": epoch_millis(),
            "activity": activity,
            "device_info": device_info,
        }
        location = await self.geo_locator.lookup(ip)
        if location is not None:
            entry.update(
                latitude=location.latitude,
                longitude=location.longitude,
                city=location.city,
                region=location.region,
                country=location.country,
            )
            logger.info(f"Tracked user activity: {username} ({activity}) from {location.city}, {location.country}")
        else:
            logger.info(f"Tracked user activity: {username} ({activity}) from unknown location")
        try:
            self.sink.append(entry)
        except OSError as e:
            logger.error(f"Error logging user activity for {username}: {e}")
            return None
        return entry

    async def track_active_sessions(self) -> int:
        """
        Log one activity entry per active upstream session.

        Returns:
            Number of sessions logged
        """
        sessions = await self.jellyfin.get_active_sessions()
        logger.info(f"Found {len(sessions)} active Jellyfin sessions")

        logged = 0
        for session in sessions:
            if not (session.user_id and session.user_name and session.remote_end_point):
                continue
            entry = await self.log_user_activity(
                session.user_name,
                session.remote_end_point,
                session.activity,
                session.device_info,
            )
            if entry is not None:
                logged += 1
        return logged

    def get_activity_stats(self) -> dict:
        logs = self.sink.read_all()
        recent = sorted(logs, key=lambda entry: entry.get("timestamp", 0), reverse=True)
        return {
            "total_activities": len(logs),
            "unique_users": len({entry.get("username") for entry in logs}),
            "countries": country_breakdown(logs),
            "geo_data": geo_points(logs, "activity"),
            "recent_activities": recent[:RECENT_ACTIVITIES_LIMIT],
        }
