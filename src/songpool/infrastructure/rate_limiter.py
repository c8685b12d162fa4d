"""
Per-user Rate Limiter for Spotify API calls.

Hey future me – this is the foundation of the whole API access layer! Every outbound
Spotify request takes a token from the CALLING USER's bucket first. Each user gets their
own bucket, so one player's huge library can't starve another player's fetch.

ALGORITHM: Token Bucket + priority wait queue
- Bucket holds up to `capacity` tokens, starts full
- Tokens refill lazily at `refill_rate`/sec - computed from elapsed time on every access,
  no background timer, so idle buckets cost nothing
- Each request consumes 1 token
- Bucket empty: caller parks in a per-user heap ordered by (priority desc, arrival asc)
  and a single polling drain pass per user hands out tokens as they refill

429 HANDLING:
- notify_throttled() empties the bucket AND pushes last_refill into the future by
  Retry-After seconds. Nobody sharing that bucket gets a token before Spotify's
  cooldown is over - no separate circuit breaker needed.

KNOWN LIMITATION: no anti-starvation aging. A continuous stream of HIGH requests can
keep LOW requests waiting indefinitely. In practice HIGH calls (profile, devices) are
rare one-offs, so we accept it.

USAGE:
    limiter = RateLimiter(RateLimiterConfig(capacity=50, refill_rate=1.5))

    await limiter.acquire(user_id, Priority.NORMAL)
    response = await client.get(url)

    # On 429:
    await limiter.notify_throttled(user_id, retry_after)
"""

import asyncio
import heapq
import itertools
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import IntEnum

from songpool.config import RateLimitSettings

logger = logging.getLogger(__name__)


class Priority(IntEnum):
    """Request priority tiers. Higher value = served first."""

    LOW = 1  # Album track lists, supplementary details
    NORMAL = 2  # Playlists, liked songs, bulk library content
    HIGH = 3  # User profile, devices, playback state


@dataclass
class RateLimiterConfig:
    """Configuration for rate limiter.

    Hey future me – defaults are ~90 requests / minute sustained, burst of 50.
    poll_interval is how often a user's drain pass re-checks the bucket while
    callers are waiting (tens of ms - polling, not a timer per waiter).
    """

    capacity: int = 50
    refill_rate: float = 1.5  # Tokens per second
    poll_interval: float = 0.05

    @classmethod
    def from_settings(cls, settings: RateLimitSettings) -> "RateLimiterConfig":
        return cls(
            capacity=settings.capacity,
            refill_rate=settings.refill_rate,
            poll_interval=settings.poll_interval,
        )


@dataclass
class TokenBucket:
    """One user's request credits."""

    tokens: float
    capacity: int
    refill_rate: float
    last_refill: float

    # Hey future me – last_refill can be IN THE FUTURE after a 429 (see mark_throttled)!
    # Until the clock catches up we add nothing and leave last_refill alone, so the
    # cooldown holds and tokens never go negative.
    def refill(self, now: float) -> None:
        """Add tokens for the time elapsed since the last accounting update."""
        if now <= self.last_refill:
            return
        elapsed = now - self.last_refill
        self.tokens = min(float(self.capacity), self.tokens + elapsed * self.refill_rate)
        self.last_refill = now


@dataclass(order=True)
class _Waiter:
    # (-priority, arrival) so heapq pops highest priority first, FIFO within a tier
    sort_key: tuple[int, int]
    future: asyncio.Future[None] = field(compare=False)
    priority: Priority = field(compare=False)


class RateLimiter:
    """Per-identity token bucket rate limiter with priority-ordered waiters.

    Buckets and queues are created lazily on first use and live as long as the
    limiter. All state changes happen synchronously between awaits, which is all
    the locking a single event loop needs.
    """

    def __init__(
        self,
        config: RateLimiterConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or RateLimiterConfig()
        self._clock = clock
        self._buckets: dict[str, TokenBucket] = {}
        self._queues: dict[str, list[_Waiter]] = {}
        self._drain_handles: dict[str, asyncio.Handle] = {}
        self._arrivals = itertools.count()

    @classmethod
    def from_settings(cls, settings: RateLimitSettings) -> "RateLimiter":
        """Create a limiter from the rate_limit settings group."""
        return cls(config=RateLimiterConfig.from_settings(settings))

    def _get_bucket(self, identity: str) -> TokenBucket:
        bucket = self._buckets.get(identity)
        if bucket is None:
            bucket = TokenBucket(
                tokens=float(self.config.capacity),
                capacity=self.config.capacity,
                refill_rate=self.config.refill_rate,
                last_refill=self._clock(),
            )
            self._buckets[identity] = bucket
        return bucket

    def _get_queue(self, identity: str) -> list[_Waiter]:
        return self._queues.setdefault(identity, [])

    async def acquire(self, identity: str, priority: Priority = Priority.NORMAL) -> None:
        """Wait until this caller may send one request for `identity`.

        Takes a token right away when one is free and nobody is queued; otherwise
        parks the caller until the drain pass serves it.
        """
        bucket = self._get_bucket(identity)
        queue = self._get_queue(identity)
        bucket.refill(self._clock())

        # Don't jump the queue: if others are already waiting they get served first
        if not queue and bucket.tokens >= 1.0:
            bucket.tokens -= 1.0
            logger.debug(
                "RateLimiter[%s]: token acquired (%s), %.1f remaining",
                identity,
                priority.name,
                bucket.tokens,
            )
            return

        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        heapq.heappush(
            queue,
            _Waiter(
                sort_key=(-int(priority), next(self._arrivals)),
                future=future,
                priority=priority,
            ),
        )
        logger.debug(
            "RateLimiter[%s]: no tokens, queued %s request (queue length %d)",
            identity,
            priority.name,
            len(queue),
        )
        self._schedule_drain(identity, delay=0.0)
        try:
            await future
        except asyncio.CancelledError:
            # Drain already handed us a token but we got cancelled before using it
            if future.done() and not future.cancelled():
                self._release(identity)
            raise

    def _release(self, identity: str) -> None:
        bucket = self._get_bucket(identity)
        bucket.tokens = min(float(bucket.capacity), bucket.tokens + 1.0)
        logger.debug("RateLimiter[%s]: unused token returned", identity)
        if self._get_queue(identity):
            self._schedule_drain(identity, delay=0.0)

    def _schedule_drain(self, identity: str, delay: float) -> None:
        # One pending drain per identity is enough, it serves everyone in the queue
        if identity in self._drain_handles:
            return
        loop = asyncio.get_running_loop()
        if delay <= 0:
            handle: asyncio.Handle = loop.call_soon(self._drain, identity)
        else:
            handle = loop.call_later(delay, self._drain, identity)
        self._drain_handles[identity] = handle

    def _drain(self, identity: str) -> None:
        self._drain_handles.pop(identity, None)
        bucket = self._get_bucket(identity)
        queue = self._get_queue(identity)
        bucket.refill(self._clock())

        while queue and bucket.tokens >= 1.0:
            waiter = heapq.heappop(queue)
            # Caller stopped waiting (task cancelled) - skip without spending a token
            if waiter.future.done():
                continue
            bucket.tokens -= 1.0
            waiter.future.set_result(None)

        if queue:
            live = [waiter for waiter in queue if not waiter.future.done()]
            if len(live) != len(queue):
                heapq.heapify(live)
                self._queues[identity] = live
                queue = live

        if queue:
            self._schedule_drain(identity, delay=self.config.poll_interval)

    def mark_throttled(self, identity: str, retry_after: float) -> None:
        """Empty the bucket and freeze refills for `retry_after` seconds.

        Synchronous bookkeeping only - use notify_throttled() to also wait.
        """
        bucket = self._get_bucket(identity)
        bucket.tokens = 0.0
        bucket.last_refill = max(bucket.last_refill, self._clock() + retry_after)

    async def notify_throttled(self, identity: str, retry_after: float) -> float:
        """Handle an upstream 429 for `identity`.

        Hey future me – this slows down EVERYONE sharing the bucket, not just the
        caller that got the 429. The caller itself then sleeps the cooldown out.

        Args:
            identity: User whose bucket got throttled
            retry_after: Provider's advised wait in seconds

        Returns:
            The wait time used
        """
        self.mark_throttled(identity, retry_after)
        logger.warning(
            "RateLimiter[%s]: rate limited by upstream, waiting %.1fs", identity, retry_after
        )
        await asyncio.sleep(retry_after)
        return retry_after

    def get_status(self, identity: str) -> dict[str, int]:
        """Get current bucket state (for debugging/monitoring)."""
        bucket = self._get_bucket(identity)
        bucket.refill(self._clock())
        queue = self._queues.get(identity, [])
        return {
            "tokens": math.floor(bucket.tokens),
            "queue_length": sum(1 for waiter in queue if not waiter.future.done()),
        }


__all__ = [
    "Priority",
    "RateLimiter",
    "RateLimiterConfig",
    "TokenBucket",
]
