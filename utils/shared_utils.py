"""
Shared utility functions for routers and services
"""
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from starlette.requests import Request

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC now; every backend stores naive UTC datetimes."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def epoch_millis(moment: Optional[datetime] = None) -> int:
    """Milliseconds since the epoch for a naive UTC datetime (defaults to now)."""
    moment = moment or utcnow()
    return int(moment.replace(tzinfo=timezone.utc).timestamp() * 1000)


def get_client_ip(request: Request) -> str:
    """Client IP, honouring the first X-Forwarded-For hop when behind a proxy."""
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    client = request.client
    return client.host if client else "unknown"


def log_endpoint_event(endpoint: str, subject: Optional[str] = None, result: str = "success", details: Optional[dict] = None):
    """Log endpoint execution to app.log"""
    logger.info(f"{endpoint} | subject={subject or 'none'} | {result} | {json.dumps(details or {}, default=str)}")
