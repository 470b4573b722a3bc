"""
Geo lookup - resolve visitor IPs to a coarse location through public services
"""
import ipaddress
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

import httpx
from pydantic import BaseModel

from utils.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"


class GeoLocation(BaseModel):
    country: str = UNKNOWN
    region: str = UNKNOWN
    city: str = UNKNOWN
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    org: Optional[str] = None
    timezone: Optional[str] = None
    source: Optional[str] = None


# Returned for private/loopback addresses; no service is called for those
LOCAL_LOCATION = GeoLocation(country="Local", region="Local", city="Local", source="local")


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


class GeoAdapter(ABC):
    """One external IP-geolocation service."""

    name = "adapter"

    @abstractmethod
    def url(self, ip: str) -> str:
        ...

    @abstractmethod
    def parse(self, data: dict) -> Optional[GeoLocation]:
        """Return a location only when the payload is well formed."""

    async def lookup(self, client: httpx.AsyncClient, ip: str) -> Optional[GeoLocation]:
        response = await client.get(self.url(ip))
        if response.status_code != 200:
            logger.info(f"{self.name} returned {response.status_code} for {ip}")
            return None
        data = response.json()
        if not isinstance(data, dict):
            return None
        return self.parse(data)


class IpWhoIsAdapter(GeoAdapter):
    name = "ipwho.is"

    def url(self, ip: str) -> str:
        return f"https://ipwho.is/{ip}"

    def parse(self, data: dict) -> Optional[GeoLocation]:
        latitude, longitude = _number(data.get("latitude")), _number(data.get("longitude"))
        if not data.get("success") or latitude is None or longitude is None:
            return None
        timezone = data.get("timezone")
        return GeoLocation(
            country=data.get("country_code") or UNKNOWN,
            region=data.get("region") or UNKNOWN,
            city=data.get("city") or UNKNOWN,
            latitude=latitude,
            longitude=longitude,
            org=(data.get("connection") or {}).get("org"),
            timezone=timezone.get("id") if isinstance(timezone, dict) else timezone,
            source=self.name,
        )


class IpApiCoAdapter(GeoAdapter):
    name = "ipapi.co"

    def url(self, ip: str) -> str:
        return f"https://ipapi.co/{ip}/json/"

    def parse(self, data: dict) -> Optional[GeoLocation]:
        latitude, longitude = _number(data.get("latitude")), _number(data.get("longitude"))
        if data.get("error") or latitude is None or longitude is None:
            return None
        return GeoLocation(
            country=data.get("country") or UNKNOWN,
            region=data.get("region") or UNKNOWN,
            city=data.get("city") or UNKNOWN,
            latitude=latitude,
            longitude=longitude,
            org=data.get("org"),
            timezone=data.get("timezone"),
            source=self.name,
        )


class IpInfoAdapter(GeoAdapter):
    name = "ipinfo.io"

    def url(self, ip: str) -> str:
        return f"https://ipinfo.io/{ip}/json"

    def parse(self, data: dict) -> Optional[GeoLocation]:
        loc = data.get("loc")
        if not loc or data.get("bogon"):
            return None
        try:
            latitude, longitude = (float(part) for part in loc.split(","))
        except ValueError:
            return None
        return GeoLocation(
            country=data.get("country") or UNKNOWN,
            region=data.get("region") or UNKNOWN,
            city=data.get("city") or UNKNOWN,
            latitude=latitude,
            longitude=longitude,
            org=data.get("org"),
            timezone=data.get("timezone"),
            source=self.name,
        )


class GeolocationDbAdapter(GeoAdapter):
    name = "geolocation-db.com"

    def url(self, ip: str) -> str:
        return f"https://geolocation-db.com/json/{ip}"

    def parse(self, data: dict) -> Optional[GeoLocation]:
        # Unknown addresses come back with "Not found" strings instead of numbers
        latitude, longitude = _number(data.get("latitude")), _number(data.get("longitude"))
        if latitude is None or longitude is None:
            return None
        return GeoLocation(
            country=data.get("country_code") or UNKNOWN,
            region=data.get("state") or UNKNOWN,
            city=data.get("city") or UNKNOWN,
            latitude=latitude,
            longitude=longitude,
            source=self.name,
        )


DEFAULT_ADAPTERS: Sequence[GeoAdapter] = (
    IpWhoIsAdapter(),
    IpApiCoAdapter(),
    IpInfoAdapter(),
    GeolocationDbAdapter(),
)


def clean_ip(raw: str) -> str:
    """First hop of a forwarded list, without brackets or an IPv4 port."""
    ip = (raw or "").split(",")[0].strip()
    if ip.startswith("["):
        return ip[1:].split("]")[0]
    if ip.count(":") == 1:
        return ip.split(":")[0]
    return ip


def is_local_address(ip: str) -> bool:
    if ip == "localhost":
        return True
    address = ipaddress.ip_address(ip)
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_unspecified
        or address.is_reserved
    )


class GeoLocator:
    """
    Ordered fallback chain over the adapters.
    Lookups never raise: a None result means the location is unknown.
    """

    def __init__(
        self,
        adapters: Sequence[GeoAdapter] = DEFAULT_ADAPTERS,
        timeout: float = 5.0,
        cache: Optional[TTLCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.adapters: List[GeoAdapter] = list(adapters)
        self.cache = cache
        self._client = httpx.AsyncClient(timeout=timeout, follow_redirects=True, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def lookup(self, raw_ip: str) -> Optional[GeoLocation]:
        ip = clean_ip(raw_ip)
        try:
            if is_local_address(ip):
                logger.debug(f"Skipping private/local IP: {ip}")
                return LOCAL_LOCATION
        except ValueError:
            logger.warning(f"Cannot geolocate invalid IP address: {raw_ip!r}")
            return None

        if self.cache is not None:
            return await self.cache.get_or_fetch(ip, lambda: self._lookup_chain(ip))
        return await self._lookup_chain(ip)

    async def _lookup_chain(self, ip: str) -> Optional[GeoLocation]:
        for adapter in self.adapters:
            try:
                location = await adapter.lookup(self._client, ip)
            except httpx.HTTPError as e:
                logger.info(f"{adapter.name} lookup failed for {ip}: {e}")
                continue
            except Exception as e:
                # Malformed payloads (wrong field types, bad JSON) fall through to the next service
                logger.warning(f"{adapter.name} returned an unusable payload for {ip}: {e!r}")
                continue
            if location is not None:
                logger.info(f"{adapter.name} located {ip}: {location.city}, {location.region}, {location.country}")
                return location
        logger.info(f"Could not determine location for IP: {ip}")
        return None
