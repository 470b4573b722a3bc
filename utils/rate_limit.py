import json
import logging
from time import time
from typing import Dict, Iterable, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from utils.shared_utils import get_client_ip

logger = logging.getLogger(__name__)

# Only the endpoints an attacker would hammer: account creation and admin login
DEFAULT_LIMITED_PATHS = ("/api/jellyfin/users", "/api/admin/login")


def connect_redis(redis_url: Optional[str]):
    """Return a connected Redis client, or None to use in-memory buckets."""
    if not redis_url:
        logger.info("REDIS_URL not set. Using in-memory rate limiting.")
        return None
    try:
        import redis
        client = redis.from_url(redis_url, decode_responses=True)
        client.ping()
        logger.info("Redis connected successfully for rate limiting")
        return client
    except Exception as e:
        logger.warning(f"Redis connection failed: {e}. Falling back to in-memory rate limiting.")
        return None


class RateLimiterMiddleware(BaseHTTPMiddleware):
    """
    Per-IP token bucket on POSTs to the limited paths.
    Buckets live in Redis when a client is given, in memory otherwise.
    A limit of 0 disables the middleware.
    """

    def __init__(
        self,
        app,
        requests_per_minute: int = 20,
        redis_client=None,
        limited_paths: Iterable[str] = DEFAULT_LIMITED_PATHS,
    ):
        super().__init__(app)
        self.capacity = requests_per_minute
        self.refill_time_window = 60.0
        self.limited_paths = frozenset(limited_paths)
        self._redis = redis_client
        # Fallback: in-memory storage (ip -> (tokens, last_refill_ts))
        self._buckets: Dict[str, Tuple[float, float]] = {}

    def _get_redis_key(self, ip: str) -> str:
        return f"rate_limit:{ip}"

    def _refill(self, tokens: float, last_refill: float, now: float) -> float:
        elapsed = max(0.0, now - last_refill)
        refill = (elapsed / self.refill_time_window) * self.capacity
        return min(self.capacity, tokens + refill)

    def _check_rate_limit_redis(self, ip: str) -> Optional[bool]:
        """
        Returns True if allowed, False if limited, None if Redis failed
        and the in-memory bucket should decide.
        """
        try:
            key = self._get_redis_key(ip)
            now = time()
            bucket_data = self._redis.get(key)
            if bucket_data:
                data = json.loads(bucket_data)
                tokens = float(data.get("tokens", 0))
                last_refill = float(data.get("last_refill", now))
            else:
                tokens = float(self.capacity)
                last_refill = now

            tokens = self._refill(tokens, last_refill, now)
            if tokens < 1.0:
                return False

            bucket_data = json.dumps({"tokens": tokens - 1.0, "last_refill": now})
            self._redis.setex(key, int(self.refill_time_window) + 10, bucket_data)
            return True
        except Exception as e:
            logger.warning(f"Redis rate limit check failed: {e}. Falling back to in-memory.")
            return None

    def _check_rate_limit_memory(self, ip: str) -> bool:
        now = time()
        tokens, last_refill = self._buckets.get(ip, (float(self.capacity), now))
        tokens = self._refill(tokens, last_refill, now)
        if tokens < 1.0:
            return False
        self._buckets[ip] = (tokens - 1.0, now)
        return True

    def is_limited(self, request: Request) -> bool:
        return self.capacity > 0 and request.method == "POST" and request.url.path in self.limited_paths

    async def dispatch(self, request: Request, call_next) -> Response:
        if not self.is_limited(request):
            return await call_next(request)

        ip = get_client_ip(request)
        allowed = None
        if self._redis is not None:
            allowed = self._check_rate_limit_redis(ip)
        if allowed is None:
            allowed = self._check_rate_limit_memory(ip)

        if not allowed:
            logger.warning(f"Rate limit exceeded for {ip} on {request.url.path}")
            return JSONResponse(
                status_code=429,
                content={
                    "ok": False,
                    "data": None,
                    "error": "rate_limited",
                    "message": "Rate limit exceeded. Try again shortly.",
                },
            )

        return await call_next(request)
