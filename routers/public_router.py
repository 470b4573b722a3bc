"""
Public Router - health, configuration flags and the trending movies proxy
"""
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends

from config.settings import settings
from dependencies import get_trending_cache
from utils.responses import success_response, error_response
from utils.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

TMDB_TRENDING_URL = "https://api.themoviedb.org/3/trending/movie/day"
TMDB_IMAGE_BASE = "https://image.tmdb.org/t/p/w500"
TRENDING_CACHE_KEY = "trending-movies"

public_router = APIRouter(prefix="/api", tags=["public"])


@public_router.get("/health")
async def health():
    return success_response(data={"status": "ok", "env": settings.env})


@public_router.get("/check-env")
async def check_env():
    """Which integrations are configured; never returns the values"""
    return success_response(data={
        "jellyfin_server_url": settings.jellyfin_server_url,
        "jellyfin_api_key_set": bool(settings.jellyfin_api_key),
        "admin_credentials_set": bool(settings.admin_username and settings.admin_password),
        "session_secret_set": bool(settings.session_secret),
        "database_url_set": bool(settings.database_url),
        "redis_url_set": bool(settings.redis_url),
        "tmdb_api_key_set": bool(settings.tmdb_api_key),
        "access_tracking_enabled": settings.access_tracking_enabled,
    })


async def fetch_trending_movies(api_key: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> list:
    async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
        response = await client.get(TMDB_TRENDING_URL, params={"api_key": api_key})
        response.raise_for_status()
        data = response.json()

    movies = []
    for item in data.get("results", []):
        poster = item.get("poster_path")
        movies.append({
            "id": item.get("id"),
            "title": item.get("title") or item.get("name"),
            "overview": item.get("overview"),
            "poster_url": f"{TMDB_IMAGE_BASE}{poster}" if poster else None,
            "release_date": item.get("release_date"),
            "vote_average": item.get("vote_average"),
        })
    return movies


@public_router.get("/trending-movies")
async def trending_movies(cache: TTLCache = Depends(get_trending_cache)):
    """TMDB daily trending list, cached for an hour"""
    if not settings.tmdb_api_key:
        return error_response("config_error", status=500, message="TMDB_API_KEY is not configured")
    try:
        movies = await cache.get_or_fetch(TRENDING_CACHE_KEY, lambda: fetch_trending_movies(settings.tmdb_api_key))
    except httpx.HTTPError as e:
        logger.error(f"Failed to fetch trending movies: {e}")
        return error_response("upstream_error", status=500, message="Failed to fetch trending movies")
    return success_response(data={"movies": movies})
