"""In-memory per-key rate limiting.

Buckets live in process memory, so limits only hold while the service runs as
a single instance.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
import time
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimit:
    """Allowed requests per window.

    Attributes
    ----------
    requests : int
        Requests allowed inside one window.
    window : int
        Window length in seconds.
    """

    requests: int
    window: int


GLOBAL_ACTION = "global"

DEFAULT_LIMITS: dict[str, RateLimit] = {
    GLOBAL_ACTION: RateLimit(1000, 3600),
    "campaigns.create": RateLimit(10, 3600),
    "campaigns.update": RateLimit(50, 3600),
    "campaigns.delete": RateLimit(10, 3600),
    "campaigns.list": RateLimit(200, 3600),
    "assets.create": RateLimit(50, 3600),
    "assets.list": RateLimit(200, 3600),
    "audiences.create": RateLimit(50, 3600),
    "audiences.list": RateLimit(200, 3600),
}

BUCKET_MAX_IDLE_SECONDS = 24 * 60 * 60

_AGENT_PATH = re.compile(r"/api/v1/agent/(\w+)/?([\w-]+)?")


@dataclass(slots=True)
class RateLimitResult:
    """Outcome of a rate-limit check.

    Attributes
    ----------
    allowed : bool
        Whether the request may proceed.
    limit : int
        Requests allowed in the governing window.
    remaining : int
        Requests left in the window.
    reset : int
        Unix timestamp at which the oldest counted request leaves the window.
    retry_after : int | None
        Seconds to wait before retrying, set only when refused.
    """

    allowed: bool
    limit: int
    remaining: int
    reset: int
    retry_after: int | None = None

    def headers(self) -> dict[str, str]:
        """Return the ``X-RateLimit-*`` response headers."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }
        if not self.allowed and self.retry_after:
            headers["Retry-After"] = str(self.retry_after)
        return headers


@dataclass(slots=True)
class _Bucket:
    requests: deque[float] = field(default_factory=deque)


def action_for_path(method: str, path: str) -> str:
    """Map an agent API request to its rate-limit action.

    Parameters
    ----------
    method : str
        HTTP method.
    path : str
        Request path.

    Returns
    -------
    str
        Action such as ``campaigns.create``, or ``unknown``. Links between a
        campaign and a child resource map to ``<resource>.assign`` and
        ``<resource>.unassign``.
    """
    match = _AGENT_PATH.search(path)
    if match is None:
        return "unknown"
    resource, segment = match.group(1), match.group(2)
    has_child = len([part for part in path[match.start():].split("/") if part]) > 5
    method = method.upper()
    if method == "GET" and segment == "list":
        return f"{resource}.list"
    if method == "POST" and segment == "create":
        return f"{resource}.create"
    if method == "PATCH" and "/update" in path:
        return f"{resource}.update"
    if method == "DELETE" and has_child and not path.rstrip("/").endswith("/delete"):
        return f"{resource}.unassign"
    if method == "DELETE":
        return f"{resource}.delete"
    if method == "GET":
        return f"{resource}.get"
    if method == "POST" and has_child:
        return f"{resource}.assign"
    return f"{resource}.{segment or method.lower()}"


def _custom_limit(metadata: Mapping[str, Any] | None, action: str) -> RateLimit | None:
    if not metadata or not isinstance(metadata.get("rate_limits"), Mapping):
        return None
    overrides = metadata["rate_limits"]
    custom = overrides.get(action) or overrides.get(GLOBAL_ACTION)
    if not isinstance(custom, Mapping):
        return None
    fallback = DEFAULT_LIMITS[GLOBAL_ACTION]
    return RateLimit(
        requests=int(custom.get("requests") or fallback.requests),
        window=int(custom.get("window") or fallback.window),
    )


class RateLimiter:
    """Sliding-window limiter keyed by ``<api_key_id>:<action>``.

    Every request counts against the key's ``global`` bucket and against the
    bucket of its own action.

    Parameters
    ----------
    limits : Mapping[str, RateLimit] | None, default=None
        Per-action limits; :data:`DEFAULT_LIMITS` when omitted.
    clock : Callable[[], float], default=time.time
        Wall clock returning Unix seconds.
    """

    def __init__(
        self,
        limits: Mapping[str, RateLimit] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.limits = dict(limits or DEFAULT_LIMITS)
        self.clock = clock
        self._buckets: dict[str, _Bucket] = {}

    def limit_for(
        self, action: str, metadata: Mapping[str, Any] | None = None
    ) -> RateLimit:
        """Return the limit governing an action for a key."""
        return (
            _custom_limit(metadata, action)
            or self.limits.get(action)
            or self.limits[GLOBAL_ACTION]
        )

    def check(
        self,
        api_key_id: str,
        action: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> RateLimitResult:
        """Count a request and decide whether it may proceed.

        Parameters
        ----------
        api_key_id : str
            Caller key identifier.
        action : str
            Rate-limit action of the request.
        metadata : Mapping[str, Any] | None, default=None
            Key metadata that may carry ``rate_limits`` overrides.

        Returns
        -------
        RateLimitResult
            Decision plus header values. A refused request is not counted.
        """
        now = self.clock()
        limit = self.limit_for(action, metadata)
        checks = [(GLOBAL_ACTION, self.limits[GLOBAL_ACTION])]
        if action != GLOBAL_ACTION:
            checks.append((action, limit))

        for bucket_action, bucket_limit in checks:
            bucket = self._bucket(api_key_id, bucket_action)
            self._evict(bucket, bucket_limit, now)
            if len(bucket.requests) >= bucket_limit.requests:
                reset_at = bucket.requests[0] + bucket_limit.window
                return RateLimitResult(
                    allowed=False,
                    limit=bucket_limit.requests,
                    remaining=0,
                    reset=int(reset_at),
                    retry_after=max(1, math.ceil(reset_at - now)),
                )

        for bucket_action, _ in checks:
            self._bucket(api_key_id, bucket_action).requests.append(now)

        bucket = self._bucket(api_key_id, action)
        oldest = bucket.requests[0] if bucket.requests else now
        return RateLimitResult(
            allowed=True,
            limit=limit.requests,
            remaining=max(0, limit.requests - len(bucket.requests)),
            reset=int(oldest + limit.window),
        )

    def status(
        self,
        api_key_id: str,
        action: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> RateLimitResult:
        """Return the current state of an action bucket without counting."""
        now = self.clock()
        limit = self.limit_for(action, metadata)
        bucket = self._bucket(api_key_id, action)
        self._evict(bucket, limit, now)
        remaining = max(0, limit.requests - len(bucket.requests))
        oldest = bucket.requests[0] if bucket.requests else now
        return RateLimitResult(
            allowed=remaining > 0,
            limit=limit.requests,
            remaining=remaining,
            reset=int(oldest + limit.window),
        )

    def reset(self, api_key_id: str, action: str | None = None) -> None:
        """Forget counted requests for a key, or for one of its actions."""
        if action is not None:
            self._buckets.pop(f"{api_key_id}:{action}", None)
            return
        for key in [k for k in self._buckets if k.startswith(f"{api_key_id}:")]:
            del self._buckets[key]

    def cleanup(self, max_idle_seconds: float = BUCKET_MAX_IDLE_SECONDS) -> int:
        """Drop buckets without requests in the last ``max_idle_seconds``.

        Returns
        -------
        int
            Number of buckets removed.
        """
        now = self.clock()
        stale = [
            key
            for key, bucket in self._buckets.items()
            if not bucket.requests or now - bucket.requests[-1] > max_idle_seconds
        ]
        for key in stale:
            del self._buckets[key]
        return len(stale)

    def _bucket(self, api_key_id: str, action: str) -> _Bucket:
        return self._buckets.setdefault(f"{api_key_id}:{action}", _Bucket())

    @staticmethod
    def _evict(bucket: _Bucket, limit: RateLimit, now: float) -> None:
        cutoff = now - limit.window
        while bucket.requests and bucket.requests[0] <= cutoff:
            bucket.requests.popleft()


@lru_cache(maxsize=1)
def get_rate_limiter() -> RateLimiter:
    """Return the process-wide limiter.

    Returns
    -------
    RateLimiter
        Shared limiter instance.
    """
    return RateLimiter()


async def prune_buckets(
    limiter: RateLimiter,
    *,
    interval_seconds: float,
    max_idle_seconds: float = BUCKET_MAX_IDLE_SECONDS,
) -> None:
    """Drop idle buckets every ``interval_seconds`` until cancelled.

    Parameters
    ----------
    limiter : RateLimiter
        Limiter to prune.
    interval_seconds : float
        Pause between passes.
    max_idle_seconds : float, default=BUCKET_MAX_IDLE_SECONDS
        Idle time after which a bucket is dropped.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        removed = limiter.cleanup(max_idle_seconds=max_idle_seconds)
        if removed:
            logger.debug("Pruned %s idle rate-limit buckets", removed)
