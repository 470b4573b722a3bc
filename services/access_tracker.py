"""
Access Tracker - records who hits the signup/admin API and from where
"""
import logging
from collections import Counter
from typing import Dict, List, Optional

from services.event_log import EventSink
from services.geo_service import GeoLocation, GeoLocator, UNKNOWN
from utils.shared_utils import epoch_millis

logger = logging.getLogger(__name__)

RECENT_LOCATIONS_LIMIT = 20


def country_breakdown(entries: List[dict]) -> Dict[str, dict]:
    """Count and rounded percentage per country, over entries that have one."""
    counts = Counter(entry["country"] for entry in entries if entry.get("country"))
    total = sum(counts.values())
    return {
        country: {"count": count, "percentage": round(count / total * 100)}
        for country, count in counts.items()
    }


def geo_points(entries: List[dict], *extra_fields: str) -> List[dict]:
    """Map-ready points ([longitude, latitude]) for entries with coordinates."""
    points = []
    for entry in entries:
        if entry.get("latitude") is None or entry.get("longitude") is None:
            continue
        point = {
            "username": entry.get("username"),
            "country": entry.get("country") or UNKNOWN,
            "city": entry.get("city") or UNKNOWN,
            "coordinates": [entry["longitude"], entry["latitude"]],
            "timestamp": entry.get("timestamp"),
        }
        for field in extra_fields:
            point[field] = entry.get(field)
        points.append(point)
    return points


class AccessTracker:
    """Writes geo-enriched access entries to a bounded event sink."""

    def __init__(self, sink: EventSink, geo_locator: GeoLocator):
        self.sink = sink
        self.geo_locator = geo_locator

    async def log_access(self, ip: str, username: str, path: str, user_agent: str = "unknown") -> Optional[dict]:
        """
        Log one access. Best effort: failures are logged, never raised.

        Returns:
            The stored entry, or None if it could not be written
        """
        location = await self.geo_locator.lookup(ip) or GeoLocation()
        entry = {
            "ip": ip,
            "username": username,
            "timestamp": epoch_millis(),
            "country": location.country,
            "region": location.region,
            "city": location.city,
            "latitude": location.latitude,
            "longitude": location.longitude,
            "path": path,
            "user_agent": user_agent,
        }
        return self._store(entry)

    async def record_client_location(
        self,
        ip: str,
        username: str,
        latitude: float,
        longitude: float,
        accuracy: Optional[float] = None,
        source: str = "browser-gps",
        user_agent: str = "unknown",
    ) -> Optional[dict]:
        """Store a browser-reported GPS position; the IP supplies the place names."""
        location = await self.geo_locator.lookup(ip) or GeoLocation()
        entry = {
            "ip": ip,
            "username": username,
            "timestamp": epoch_millis(),
            "country": location.country,
            "region": location.region,
            "city": location.city,
            "latitude": latitude,
            "longitude": longitude,
            "accuracy": accuracy,
            "source": source,
            "path": "/client-location",
            "user_agent": user_agent,
        }
        return self._store(entry)

    def _store(self, entry: dict) -> Optional[dict]:
        try:
            self.sink.append(entry)
        except OSError as e:
            logger.error(f"Error logging user access: {e}")
            return None
        if entry["country"] != UNKNOWN:
            logger.info(f"User access logged: {entry['username']} from {entry['city']}, {entry['country']} (IP: {entry['ip']})")
        else:
            logger.info(f"User access logged: {entry['username']} with IP {entry['ip']} (Could not resolve location)")
        return entry

    def get_access_stats(self) -> dict:
        logs = self.sink.read_all()

        cities: Dict[str, dict] = {}
        for entry in logs:
            key = f"{entry.get('city', UNKNOWN)}, {entry.get('country', UNKNOWN)}"
            if key not in cities:
                cities[key] = {"count": 0, "country": entry.get("country", UNKNOWN)}
            cities[key]["count"] += 1

        recent = sorted(logs, key=lambda entry: entry.get("timestamp", 0), reverse=True)
        stats = {
            "total_tracked": len(logs),
            "countries": country_breakdown(logs),
            "cities": cities,
            "recent_locations": recent[:RECENT_LOCATIONS_LIMIT],
            "geo_data": geo_points(logs),
        }
        logger.info(
            f"Returning location stats: {stats['total_tracked']} total, {len(stats['countries'])} countries, "
            f"{len(stats['geo_data'])} geo points"
        )
        return stats
