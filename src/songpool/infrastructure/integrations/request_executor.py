"""Retrying Spotify request executor built on the per-user rate limiter.

Hey future me - ALL Spotify API calls go through RequestExecutor.execute()!
Per attempt:

    acquire token → send → classify outcome
        SUCCESS       → parsed JSON back to the caller
        THROTTLED     → notify limiter (bucket emptied, cooldown) → next attempt
        SERVER_ERROR  → exponential backoff (base_delay * 2^attempt) → next attempt
        NETWORK_ERROR → same backoff as SERVER_ERROR
        AUTH_ERROR    → UpstreamAuthError immediately (same token will never work)
        CLIENT_ERROR  → UpstreamError immediately (400/403/404 won't fix themselves)

Attempts are bounded: 1 initial + max_retries retries. When the budget is gone the
last failure escalates to UpstreamError (UpstreamThrottledError for 429s).

Waiting for capacity and waiting after a 429 BOTH go through the same bucket, so
the backoff state is visible to every other request of that user.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from songpool.config import RetrySettings
from songpool.domain.exceptions import (
    UpstreamAuthError,
    UpstreamError,
    UpstreamThrottledError,
)
from songpool.infrastructure.rate_limiter import Priority, RateLimiter

logger = logging.getLogger(__name__)


class AttemptOutcome(str, Enum):
    """What happened on a single request attempt."""

    SUCCESS = "success"
    THROTTLED = "throttled"
    AUTH_ERROR = "auth_error"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    NETWORK_ERROR = "network_error"


def classify_status(status_code: int) -> AttemptOutcome:
    """Map an HTTP status code to an attempt outcome."""
    if 200 <= status_code < 300:
        return AttemptOutcome.SUCCESS
    if status_code == 429:
        return AttemptOutcome.THROTTLED
    if status_code == 401:
        return AttemptOutcome.AUTH_ERROR
    if status_code >= 500:
        return AttemptOutcome.SERVER_ERROR
    return AttemptOutcome.CLIENT_ERROR


@dataclass
class RetryPolicy:
    """Retry budget and wait-time rules."""

    max_retries: int = 3
    base_delay: float = 1.0
    default_retry_after: float = 5.0
    max_retry_after: float = 600.0

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryPolicy":
        return cls(
            max_retries=settings.max_retries,
            base_delay=settings.base_delay,
            default_retry_after=settings.default_retry_after,
            max_retry_after=settings.max_retry_after,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def can_retry(self, attempt: int) -> bool:
        """True if a failed attempt (0-based) may be followed by another one."""
        return attempt < self.max_retries

    def backoff_delay(self, attempt: int) -> float:
        """Exponential backoff after a failed attempt (0-based)."""
        return self.base_delay * (2**attempt)

    # Hey future me - Spotify sends Retry-After as whole seconds, but be lenient about
    # garbage. Missing/unparseable → default. We cap it so a broken header can't park
    # a user for hours, but the cap is HIGH on purpose: Spotify can legitimately ask
    # for minutes and ignoring that just earns another 429.
    def parse_retry_after(self, header: str | None) -> float:
        """Seconds to wait after a 429."""
        if header is None:
            return self.default_retry_after
        try:
            value = float(header)
        except ValueError:
            logger.debug("Unparseable Retry-After header %r, using default", header)
            return self.default_retry_after
        return min(max(value, 0.0), self.max_retry_after)


class RequestExecutor:
    """Sends rate-limited, retried requests to the Spotify Web API."""

    # Hey future me, like the HTTP client in SpotifyClient we DON'T create the httpx client in
    # __init__ unless one is injected - httpx.AsyncClient wants to live inside the running
    # loop. Tests inject a client with httpx.MockTransport.
    def __init__(
        self,
        limiter: RateLimiter,
        policy: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.limiter = limiter
        self.policy = policy or RetryPolicy()
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def execute(
        self,
        url: str,
        credential: str,
        identity: str,
        priority: Priority = Priority.NORMAL,
        method: str = "GET",
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make a rate-limited API request with retries.

        Args:
            url: Full URL to request (pagination `next` URLs are used as-is)
            credential: OAuth bearer token
            identity: User id whose rate-limit bucket pays for the request
            priority: Priority tier for the limiter queue
            method: HTTP method
            params: Query parameters

        Returns:
            Parsed JSON payload (None for empty 2xx bodies)

        Raises:
            UpstreamAuthError: Spotify rejected the token (401)
            UpstreamThrottledError: Still 429 after all retries
            UpstreamError: Non-retryable 4xx, or 5xx/network failure after all retries
        """
        client = await self._get_client()
        headers = {"Authorization": f"Bearer {credential}"}

        for attempt in range(self.policy.max_attempts):
            await self.limiter.acquire(identity, priority)

            try:
                response = await client.request(method, url, params=params, headers=headers)
            except httpx.RequestError as e:
                if self.policy.can_retry(attempt):
                    delay = self.policy.backoff_delay(attempt)
                    logger.warning(
                        "%s on %s (attempt %d/%d), retrying in %.1fs: %s",
                        AttemptOutcome.NETWORK_ERROR.value,
                        url,
                        attempt + 1,
                        self.policy.max_attempts,
                        delay,
                        e,
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error("Network error on %s after %d attempts: %s", url, attempt + 1, e)
                raise UpstreamError(
                    f"Network error calling Spotify after {attempt + 1} attempts: {e}",
                    url=url,
                    attempts=attempt + 1,
                ) from e

            outcome = classify_status(response.status_code)

            if outcome is AttemptOutcome.SUCCESS:
                logger.debug("Spotify API success: %s", url)
                return self._parse_payload(response, url, attempt + 1)

            if outcome is AttemptOutcome.AUTH_ERROR:
                logger.warning("Spotify rejected access token for %s", url)
                raise UpstreamAuthError(url=url)

            if outcome is AttemptOutcome.THROTTLED:
                retry_after = self.policy.parse_retry_after(response.headers.get("Retry-After"))
                if self.policy.can_retry(attempt):
                    logger.warning(
                        "Spotify 429 on %s (attempt %d/%d), cooling down %.1fs",
                        url,
                        attempt + 1,
                        self.policy.max_attempts,
                        retry_after,
                    )
                    await self.limiter.notify_throttled(identity, retry_after)
                    continue
                # Still record the cooldown for everyone else sharing the bucket
                self.limiter.mark_throttled(identity, retry_after)
                logger.error(
                    "Spotify API rate limited (429) after %d attempts: %s", attempt + 1, url
                )
                raise UpstreamThrottledError(
                    f"Spotify API rate limited (429) after {attempt + 1} attempts. "
                    f"Retry-After: {retry_after:.0f} seconds.",
                    retry_after=retry_after,
                    url=url,
                    attempts=attempt + 1,
                )

            if outcome is AttemptOutcome.SERVER_ERROR:
                if self.policy.can_retry(attempt):
                    delay = self.policy.backoff_delay(attempt)
                    logger.warning(
                        "Spotify server error %d on %s (attempt %d/%d), retrying in %.1fs",
                        response.status_code,
                        url,
                        attempt + 1,
                        self.policy.max_attempts,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error(
                    "Spotify server error %d on %s after %d attempts",
                    response.status_code,
                    url,
                    attempt + 1,
                )
                raise UpstreamError(
                    f"Spotify API error {response.status_code} after {attempt + 1} attempts",
                    status_code=response.status_code,
                    url=url,
                    attempts=attempt + 1,
                )

            logger.error(
                "Spotify API error %d on %s: %s", response.status_code, url, response.text
            )
            raise UpstreamError(
                f"Spotify API error {response.status_code}: {response.text}",
                status_code=response.status_code,
                url=url,
                attempts=attempt + 1,
            )

        # Unreachable: the last attempt always returns or raises
        raise UpstreamError("Retry budget exhausted", url=url, attempts=self.policy.max_attempts)

    async def execute_high_priority(self, url: str, credential: str, identity: str) -> Any:
        """Interactive lookups (profile, devices)."""
        return await self.execute(url, credential, identity, priority=Priority.HIGH)

    async def execute_low_priority(self, url: str, credential: str, identity: str) -> Any:
        """Supplementary detail lookups (album track lists)."""
        return await self.execute(url, credential, identity, priority=Priority.LOW)

    @staticmethod
    def _parse_payload(response: httpx.Response, url: str, attempts: int) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            # JSONDecodeError and UnicodeDecodeError (non UTF-8 body) are both ValueErrors
            raise UpstreamError(
                f"Spotify returned invalid JSON: {e}",
                status_code=response.status_code,
                url=url,
                attempts=attempts,
            ) from e
