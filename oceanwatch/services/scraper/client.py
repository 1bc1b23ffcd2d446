"""
Polite yoweb fetch client.

All requests to one host are serialized and spaced at least REQUEST_DELAY
seconds apart (measured from the end of the previous request). The client
never retries; callers decide how a FetchError is counted.

Usage:
    async with YowebClient() as client:
        html = await client.fetch(crew_info_url(Ocean.EMERALD, 12345))
"""
import asyncio
import logging
import time
from typing import Dict, Optional
from urllib.parse import urlsplit

import httpx

from oceanwatch.core.config import settings
from oceanwatch.core.exceptions import FetchError
from oceanwatch.core.metrics import fetch_duration_seconds, fetch_requests_total

logger = logging.getLogger(__name__)


class HostRateLimiter:
    """One in-flight request per host with a minimum gap between requests."""

    def __init__(self, delay: float):
        self.delay = delay
        self._locks: Dict[str, asyncio.Lock] = {}
        self._last_request: Dict[str, float] = {}

    def _lock_for(self, host: str) -> asyncio.Lock:
        if host not in self._locks:
            self._locks[host] = asyncio.Lock()
        return self._locks[host]

    async def acquire(self, host: str) -> None:
        lock = self._lock_for(host)
        await lock.acquire()
        last = self._last_request.get(host)
        if last is None:
            return
        wait = self.delay - (time.monotonic() - last)
        if wait > 0:
            try:
                await asyncio.sleep(wait)
            except BaseException:
                lock.release()
                raise

    def release(self, host: str) -> None:
        self._last_request[host] = time.monotonic()
        self._lock_for(host).release()


class YowebClient:
    """
    Rate-limited HTTP fetcher for the puzzlepirates.com host family.

    Attributes:
        rate_limiter: Shared per-host limiter
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        delay: Optional[float] = None,
    ):
        """
        Initialize the client.

        Args:
            http_client: Pre-built client (tests inject one with MockTransport)
            user_agent: Overrides settings.USER_AGENT
            timeout: Per-request timeout in seconds
            delay: Minimum seconds between requests to one host
        """
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.REQUEST_TIMEOUT,
            follow_redirects=True,
        )
        self.user_agent = user_agent or settings.USER_AGENT
        self.rate_limiter = HostRateLimiter(delay if delay is not None else settings.REQUEST_DELAY)

    async def __aenter__(self) -> "YowebClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, url: str) -> str:
        """
        Fetch a page body as text.

        Raises:
            FetchError: transport error, timeout or non-2xx status
        """
        host = urlsplit(url).hostname or ""
        await self.rate_limiter.acquire(host)
        started = time.monotonic()
        try:
            response = await self._client.get(url, headers={"User-Agent": self.user_agent})
        except httpx.HTTPError as e:
            fetch_requests_total.labels(host=host, outcome="transport_error").inc()
            logger.warning(f"Request {url} failed: {e!r}")
            raise FetchError(url, repr(e)) from e
        finally:
            fetch_duration_seconds.labels(host=host).observe(time.monotonic() - started)
            self.rate_limiter.release(host)

        if not response.is_success:
            fetch_requests_total.labels(host=host, outcome="http_error").inc()
            logger.warning(f"Request {url} returned HTTP {response.status_code}")
            raise FetchError(url, f"HTTP {response.status_code}", status_code=response.status_code)

        fetch_requests_total.labels(host=host, outcome="success").inc()
        return response.text
