import logging
from dataclasses import dataclass
from typing import Optional

from redis import Redis, ConnectionPool, RedisError

from app.core.config import settings
from app.utils.audit import RATE_LIMIT_STORE_UNAVAILABLE, audit, fingerprint

logger = logging.getLogger(__name__)

# Fixed-window counter per key, shared by every instance through Redis
_pool: Optional[ConnectionPool] = None
_client: Optional[Redis] = None


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    # Seconds until the current window closes, when known
    reset_in: Optional[int] = None


def get_client() -> Redis:
    global _pool, _client
    if _client is None:
        _pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=settings.STORAGE_TIMEOUT_SECONDS,
            socket_connect_timeout=settings.STORAGE_TIMEOUT_SECONDS,
        )
        _client = Redis(connection_pool=_pool)
    return _client


def allow(key: str, limit: int, window_seconds: int, client: Optional[Redis] = None) -> RateLimitResult:
    """Count one request under key and report whether it fits the window budget.

    INCR + EXPIRE NX run in one MULTI/EXEC: the first increment opens the
    window and fixes its end, Redis expiry drops it afterwards. Bursts of up
    to 2 * limit across a window boundary are possible. Requests past the
    limit still increment the counter, which changes neither the window end
    nor the outcome.
    """
    r = client or get_client()
    with r.pipeline() as pipe:
        pipe.incr(key, 1)
        pipe.expire(key, window_seconds, nx=True)
        pipe.ttl(key)
        count, _, ttl = pipe.execute()
    count = int(count)
    reset_in = int(ttl) if ttl is not None and int(ttl) >= 0 else window_seconds
    if count > limit:
        return RateLimitResult(allowed=False, remaining=0, reset_in=reset_in)
    return RateLimitResult(allowed=True, remaining=limit - count, reset_in=reset_in)


def credential_key(api_key: str) -> str:
    # API keys are secrets; keep them out of Redis keyspace listings
    return f"ratelimit:subscribe:{fingerprint(api_key, 16)}"


def allow_for_credential(
    api_key: str,
    limit: Optional[int] = None,
    window_seconds: Optional[int] = None,
    client: Optional[Redis] = None,
) -> RateLimitResult:
    """Rate limit the public join endpoint per API key.

    Windows are ephemeral, so an unreachable Redis relaxes the limit instead
    of taking the join endpoint down.
    """
    limit = settings.RATE_LIMIT_REQUESTS if limit is None else limit
    window_seconds = settings.RATE_LIMIT_WINDOW_SECONDS if window_seconds is None else window_seconds
    try:
        return allow(credential_key(api_key), limit, window_seconds, client=client)
    except RedisError as e:
        logger.warning("Rate limit store unavailable, allowing request: %s", e)
        audit(RATE_LIMIT_STORE_UNAVAILABLE, api_key=api_key, error=type(e).__name__)
        return RateLimitResult(allowed=True, remaining=limit)
