"""
Shared fixtures for the crawler tests.
"""

import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional, Set

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from waper.crawler.fetcher import FetchError, ScrapeResult
from waper.crawler.parser import extract_links
from waper.storage.database import DatabaseManager
from waper.utils.config import DatabaseConfig


class FakeFetcher:
    """
    Stand-in for WebFetcher that serves a scripted link graph.

    Pages listed in ``pages`` are run through the real link parser; other
    URLs return the links in ``graph``. Fetches can be held back with
    ``gate`` (all URLs) or ``gates`` (per URL).
    """

    def __init__(self, graph: Optional[Dict[str, List[str]]] = None,
                 pages: Optional[Dict[str, str]] = None,
                 failures: Iterable[str] = (),
                 exceptions: Optional[Dict[str, BaseException]] = None,
                 delay: float = 0.0):
        self.graph = graph or {}
        self.pages = pages or {}
        self.failures: Set[str] = set(failures)
        self.exceptions = exceptions or {}
        self.delay = delay
        self.gate: Optional[asyncio.Event] = None
        self.gates: Dict[str, asyncio.Event] = {}

        self.calls: List[str] = []
        self.active = 0
        self.max_active = 0
        self.active_at_call: List[int] = []

    async def fetch_and_extract(self, url: str) -> ScrapeResult:
        self.calls.append(url)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.active_at_call.append(self.active)
        try:
            gate = self.gates.get(url, self.gate)
            if gate is not None:
                await gate.wait()
            else:
                await asyncio.sleep(self.delay)

            if url in self.failures:
                raise FetchError(url, ConnectionRefusedError("connection refused"))
            if url in self.exceptions:
                raise self.exceptions[url]

            if url in self.pages:
                html = self.pages[url]
                links = extract_links(html, url)
            else:
                html = f"<html><body>{url}</body></html>"
                links = list(self.graph.get(url, []))
            return ScrapeResult(url=url, html=html, links=links)
        finally:
            self.active -= 1


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0):
    """Yield to the event loop until ``predicate`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def database_config(tmp_path) -> DatabaseConfig:
    return DatabaseConfig(type='sqlite', sqlite={'path': str(tmp_path / 'out.sqlite')})


@pytest.fixture
async def database(database_config):
    manager = DatabaseManager(database_config)
    await manager.initialize()
    yield manager
    await manager.close()


def table_urls(database: DatabaseManager, table: str) -> List[str]:
    """All urls recorded in one table of a sqlite-backed manager, in insertion order."""
    rows = database.backend.conn.execute(f"SELECT url FROM {table} ORDER BY rowid").fetchall()
    return [row[0] for row in rows]


@pytest.fixture
async def site():
    """
    Factory for local HTTP sites.

    ``await site(pages)`` serves ``pages`` (path -> html, or path -> int status)
    and returns the running TestServer.
    """
    servers = []

    async def make(pages: Dict[str, object], delay: float = 0.0) -> TestServer:
        async def handler(request: web.Request) -> web.StreamResponse:
            if delay:
                await asyncio.sleep(delay)
            page = pages.get(request.path)
            if page is None:
                raise web.HTTPNotFound()
            if isinstance(page, int):
                return web.Response(status=page, text="error")
            if isinstance(page, bytes):
                return web.Response(body=page, content_type='text/html', charset='utf-8')
            return web.Response(text=page, content_type='text/html')

        app = web.Application()
        app.router.add_get('/{tail:.*}', handler)
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return server

    yield make

    for server in servers:
        await server.close()


@pytest.fixture
def restore_logging():
    """Undo root logger changes made by setup_logging."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
