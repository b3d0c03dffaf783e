"""
Web page fetcher built on a shared aiohttp session.
"""

import asyncio
import aiohttp
import logging
import time
from typing import Optional, Dict, List
from dataclasses import dataclass, field
from aiohttp import ClientSession, ClientTimeout, ClientError

from .parser import extract_links


class FetchError(Exception):
    """
    A page could not be fetched.

    Wraps the underlying cause: timeout, connection failure, non-success
    status or an undecodable body. All of them are terminal for the URL.
    """

    def __init__(self, url: str, cause: BaseException):
        self.url = url
        self.cause = cause
        super().__init__(f"Failed to fetch {url}: {cause!r}")


@dataclass
class FetchResult:
    """Result of a successful fetch."""
    url: str
    status_code: int
    content: str
    content_type: Optional[str] = None
    fetch_time: float = 0.0


@dataclass
class ScrapeResult:
    """A fetched page together with the links found on it."""
    url: str
    html: str
    links: List[str] = field(default_factory=list)
    fetch_time: float = 0.0


class WebFetcher:
    """
    Fetches web pages and extracts their links.

    One session is shared by every crawl task. The fetcher does not limit
    concurrency itself; the orchestrator bounds in-flight work, so the
    connection pool is unbounded unless ``max_connections`` is set.
    """

    def __init__(self, user_agent: str = "waper/1.0", request_timeout: float = 30,
                 max_connections: int = 0):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_connections = max_connections

        self.logger = logging.getLogger(__name__)
        self.session: Optional[ClientSession] = None

        # Statistics
        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            timeout = ClientTimeout(total=self.request_timeout)
            headers = {'User-Agent': self.user_agent}

            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                connector=aiohttp.TCPConnector(
                    limit=self.max_connections,
                    ttl_dns_cache=300,
                    use_dns_cache=True
                )
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch

        Returns:
            FetchResult with the decoded body

        Raises:
            FetchError: on timeout, connection failure, non-success status
                or body decode failure
        """
        if self.session is None:
            raise RuntimeError("WebFetcher.start() must be called before fetch()")

        start_time = time.monotonic()
        self.stats['total_requests'] += 1

        try:
            async with self.session.get(url) as response:
                response.raise_for_status()
                content = await response.text()
                content_type = response.headers.get('content-type', '').lower()
                status = response.status

        except asyncio.TimeoutError as e:
            self.stats['failed_requests'] += 1
            self.logger.warning(f"Timeout fetching {url}")
            raise FetchError(url, e) from e

        except ClientError as e:
            self.stats['failed_requests'] += 1
            self.logger.warning(f"Client error fetching {url}: {e}")
            raise FetchError(url, e) from e

        except (UnicodeDecodeError, LookupError) as e:
            # LookupError covers an unknown charset in the content-type header
            self.stats['failed_requests'] += 1
            self.logger.warning(f"Could not decode body of {url}: {e}")
            raise FetchError(url, e) from e

        fetch_time = time.monotonic() - start_time
        self.stats['successful_requests'] += 1
        self.stats['total_bytes_downloaded'] += len(content)
        self.logger.debug(f"Fetched {url}: {status} ({len(content)} chars in {fetch_time:.2f}s)")

        return FetchResult(
            url=url,
            status_code=status,
            content=content,
            content_type=content_type,
            fetch_time=fetch_time
        )

    async def fetch_and_extract(self, url: str) -> ScrapeResult:
        """Fetch a page and return its body with the absolute links it contains."""
        result = await self.fetch(url)
        links = extract_links(result.content, url)
        return ScrapeResult(url=url, html=result.content, links=links, fetch_time=result.fetch_time)

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
