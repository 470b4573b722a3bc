"""
FastAPI dependency providers.

Services are built once at startup (main.py) and kept on app.state;
tests swap them through app.dependency_overrides.
"""
from fastapi import Depends, Request

from crud.storage import TrialStorage
from services.access_tracker import AccessTracker
from services.activity_tracker import ActivityTracker
from services.admin_sessions import AdminSessionStore
from services.jellyfin_client import JellyfinClient
from services.trial_service import TrialService
from utils.ttl_cache import TTLCache


def get_storage(request: Request) -> TrialStorage:
    return request.app.state.storage


def get_jellyfin_client(request: Request) -> JellyfinClient:
    return request.app.state.jellyfin


def get_session_store(request: Request) -> AdminSessionStore:
    return request.app.state.session_store


def get_access_tracker(request: Request) -> AccessTracker:
    return request.app.state.access_tracker


def get_activity_tracker(request: Request) -> ActivityTracker:
    return request.app.state.activity_tracker


def get_trending_cache(request: Request) -> TTLCache:
    return request.app.state.trending_cache


def get_trial_service(
    storage: TrialStorage = Depends(get_storage),
    jellyfin: JellyfinClient = Depends(get_jellyfin_client),
) -> TrialService:
    return TrialService(storage, jellyfin)
