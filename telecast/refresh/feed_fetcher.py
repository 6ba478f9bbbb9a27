"""
Feed Fetcher
============

HTTP retrieval of feed documents with a per-feed time budget and a typed
failure taxonomy: timeouts, transport errors and non-2xx statuses each raise
their own exception so the refresh pipeline can account for them.
"""

import asyncio
import ssl
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import aiohttp
import certifi

from ..config.settings import get_settings
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import FeedFetchError, FetchTimeoutError, HttpStatusError


@dataclass
class FetchResult:
    """Body and metadata of a successful fetch."""

    feed_url: str
    status: int
    content: bytes
    content_type: Optional[str] = None
    fetch_time: Optional[datetime] = None
    elapsed_seconds: float = 0.0

    def __post_init__(self):
        if not self.fetch_time:
            self.fetch_time = datetime.now(timezone.utc)


class FeedFetcher:
    """aiohttp-based feed fetcher shared by all tasks of a refresh batch."""

    ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml, */*"

    def __init__(
        self,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        connection_limit: Optional[int] = None,
        connection_limit_per_host: Optional[int] = None,
    ):
        """Initialize feed fetcher.

        Args:
            timeout: Per-feed time budget in seconds (default from config)
            user_agent: User-Agent header (default from config)
            connection_limit: Total open connections, 0 for unlimited (default from config)
            connection_limit_per_host: Connections per host, 0 for unlimited (default from config)
        """
        settings = get_settings().refresh
        self.timeout = timeout or settings.fetch_timeout
        self.user_agent = user_agent or settings.user_agent
        self.connection_limit = (
            settings.connection_limit if connection_limit is None else connection_limit
        )
        self.connection_limit_per_host = (
            settings.connection_limit_per_host
            if connection_limit_per_host is None
            else connection_limit_per_host
        )
        self.logger = get_logger_for_component("feed_fetcher")

        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[aiohttp.ClientSession]:
        """Get configured aiohttp session."""
        connector = aiohttp.TCPConnector(
            ssl=self.ssl_context,
            limit=self.connection_limit,
            limit_per_host=self.connection_limit_per_host,
            enable_cleanup_closed=True,
        )

        headers = {
            "User-Agent": self.user_agent,
            "Accept": self.ACCEPT,
        }

        async with aiohttp.ClientSession(connector=connector, headers=headers) as session:
            yield session

    async def fetch(self, feed_url: str, session: aiohttp.ClientSession) -> FetchResult:
        """Fetch one feed document.

        Args:
            feed_url: Feed URL to request
            session: Shared aiohttp session

        Returns:
            FetchResult with the raw body

        Raises:
            FetchTimeoutError: The time budget expired (connect or read)
            HttpStatusError: The server answered with a non-2xx status
            FeedFetchError: Any other transport failure
        """
        start = time.monotonic()
        request_timeout = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with session.get(feed_url, timeout=request_timeout) as response:
                if not 200 <= response.status < 300:
                    raise HttpStatusError(response.status, feed_url=feed_url)

                content = await response.read()

                elapsed = time.monotonic() - start
                self.logger.debug(
                    f"Fetched {len(content)} bytes from {feed_url} in {elapsed:.2f}s"
                )

                return FetchResult(
                    feed_url=feed_url,
                    status=response.status,
                    content=content,
                    content_type=response.headers.get("Content-Type"),
                    elapsed_seconds=elapsed,
                )

        # aiohttp's timeout errors are also ClientErrors, so this must come first
        except asyncio.TimeoutError as e:
            raise FetchTimeoutError(
                f"Request timed out after {self.timeout:g}s", feed_url=feed_url
            ) from e

        except aiohttp.ClientError as e:
            detail = str(e) or type(e).__name__
            raise FeedFetchError(f"Fetch error: {detail}", feed_url=feed_url) from e
