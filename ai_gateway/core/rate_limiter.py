"""
Per-tenant rate limiting.

Token bucket admission control: each tenant owns a bucket of capacity
``requests_per_minute`` that starts full and refills continuously from
elapsed wall-clock time. Refill is always computed from the real elapsed
time, so no drift builds up between calls.

Thread-safe via threading.Lock (one lock per tenant).
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .errors import RateLimitTimeout

logger = logging.getLogger(__name__)


@dataclass
class TokenBucket:
    """Bucket state for a single tenant."""

    tokens: float
    last_refill_at: float  # clock seconds
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    # acquire() calls currently holding or waiting on this bucket; guarded by
    # the limiter registry lock
    in_flight: int = 0

    def refill(self, now: float, capacity: float, rate_per_second: float) -> None:
        """Add tokens for the time elapsed since the last refill, clamped to capacity."""
        elapsed = max(0.0, now - self.last_refill_at)
        self.tokens = min(capacity, self.tokens + elapsed * rate_per_second)
        self.last_refill_at = now

    def wait_time(self, rate_per_second: float) -> float:
        """Seconds until one whole token is available. 0 if one is available now."""
        if self.tokens >= 1:
            return 0.0
        return (1 - self.tokens) / rate_per_second


class TenantRateLimiter:
    """Token bucket rate limiter keyed by tenant id.

    Usage:
        limiter = TenantRateLimiter(requests_per_minute=60)

        # Blocks until the tenant has capacity:
        waited = limiter.acquire("tenant-a")
    """

    def __init__(
        self,
        requests_per_minute: int = 60,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        idle_ttl_seconds: Optional[float] = None
    ):
        if requests_per_minute <= 0:
            raise ValueError("requests_per_minute must be > 0")
        if idle_ttl_seconds is not None and idle_ttl_seconds <= 0:
            raise ValueError("idle_ttl_seconds must be > 0")

        self.requests_per_minute = requests_per_minute
        self.capacity = float(requests_per_minute)
        self.idle_ttl_seconds = idle_ttl_seconds
        self._rate_per_second = requests_per_minute / 60.0
        self._clock = clock
        self._sleep = sleep
        self._buckets: Dict[str, TokenBucket] = {}
        self._registry_lock = threading.Lock()
        self._last_sweep_at = clock()

    def _checkout_bucket(self, tenant_id: str) -> TokenBucket:
        """Get or lazily create a full bucket for a tenant and mark it in use.

        Idle buckets are swept here at most once per ``idle_ttl_seconds``.
        """
        now = self._clock()
        with self._registry_lock:
            if self.idle_ttl_seconds is not None and now - self._last_sweep_at >= self.idle_ttl_seconds:
                self._evict_idle(now)
            bucket = self._buckets.get(tenant_id)
            if bucket is None:
                bucket = TokenBucket(tokens=self.capacity, last_refill_at=now)
                self._buckets[tenant_id] = bucket
            bucket.in_flight += 1
            return bucket

    def _release_bucket(self, bucket: TokenBucket) -> None:
        with self._registry_lock:
            bucket.in_flight -= 1

    def _evict_idle(self, now: float) -> List[str]:
        # Caller must hold the registry lock
        cutoff = now - self.idle_ttl_seconds
        idle = [
            tenant_id for tenant_id, bucket in self._buckets.items()
            if bucket.in_flight == 0 and bucket.last_refill_at < cutoff
        ]
        for tenant_id in idle:
            del self._buckets[tenant_id]
        self._last_sweep_at = now
        if idle:
            logger.debug("Evicted %d idle rate limit buckets", len(idle))
        return idle

    def acquire(self, tenant_id: str, timeout: Optional[float] = None) -> float:
        """Block until one unit of capacity is available for the tenant.

        A tenant's very first call always succeeds immediately because buckets
        start full.

        Args:
            tenant_id: Tenant whose bucket is charged
            timeout: Optional maximum seconds to wait in total

        Returns:
            Seconds spent waiting (0.0 when admitted immediately)

        Raises:
            RateLimitTimeout: If the required wait exceeds the remaining timeout.
                No capacity is consumed in that case.
        """
        bucket = self._checkout_bucket(tenant_id)
        try:
            return self._take(tenant_id, bucket, timeout)
        finally:
            self._release_bucket(bucket)

    def _take(self, tenant_id: str, bucket: TokenBucket, timeout: Optional[float]) -> float:
        waited = 0.0

        while True:
            with bucket.lock:
                bucket.refill(self._clock(), self.capacity, self._rate_per_second)
                wait = bucket.wait_time(self._rate_per_second)
                if wait <= 0:
                    bucket.tokens -= 1
                    return waited

            if timeout is not None and waited + wait > timeout:
                raise RateLimitTimeout(tenant_id, waited + wait, timeout)

            logger.debug(
                "Rate limit reached for tenant %s, waiting %.3fs",
                tenant_id, wait,
                extra={"tenant_id": tenant_id}
            )
            # Sleep outside the lock; another waiter may take the token first,
            # in which case the loop computes a fresh wait.
            self._sleep(wait)
            waited += wait

    def available_tokens(self, tenant_id: str) -> float:
        """Current token count after refill. Unknown tenants report full capacity."""
        with self._registry_lock:
            bucket = self._buckets.get(tenant_id)
        if bucket is None:
            return self.capacity
        with bucket.lock:
            bucket.refill(self._clock(), self.capacity, self._rate_per_second)
            return bucket.tokens

    def sweep_idle(self, now: Optional[float] = None) -> int:
        """Evict buckets untouched for longer than ``idle_ttl_seconds``.

        ``acquire`` already does this periodically; calling it directly just
        reclaims memory sooner. Buckets with an ``acquire`` in progress are
        kept. An evicted tenant starts again with a full bucket, which is the
        state its bucket would have refilled to anyway.

        Returns:
            Number of buckets evicted (always 0 when no idle TTL is configured)
        """
        if self.idle_ttl_seconds is None:
            return 0
        now = self._clock() if now is None else now
        with self._registry_lock:
            return len(self._evict_idle(now))

    def tenant_count(self) -> int:
        with self._registry_lock:
            return len(self._buckets)

    def get_stats(self) -> List[dict]:
        """Get current bucket state for every known tenant."""
        with self._registry_lock:
            tenant_ids = list(self._buckets)
        return [
            {
                "tenant_id": tenant_id,
                "tokens": self.available_tokens(tenant_id),
                "capacity": self.capacity,
                "requests_per_minute": self.requests_per_minute,
            }
            for tenant_id in tenant_ids
        ]
