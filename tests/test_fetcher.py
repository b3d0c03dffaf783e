import asyncio

import aiohttp
import pytest

from waper.crawler.fetcher import WebFetcher, FetchError


async def test_fetch_and_extract_returns_body_and_absolute_links(site):
    server = await site({
        '/': '<html><body><a href="/a">A</a><a href="b#x">B</a></body></html>',
    })
    url = str(server.make_url('/'))

    async with WebFetcher(request_timeout=5) as fetcher:
        result = await fetcher.fetch_and_extract(url)

    assert result.url == url
    assert '<a href="/a">' in result.html
    assert result.links == [str(server.make_url('/a')), str(server.make_url('/b'))]
    assert fetcher.get_stats()['successful_requests'] == 1


async def test_non_success_status_raises_fetch_error(site):
    server = await site({'/gone': 500})

    async with WebFetcher(request_timeout=5) as fetcher:
        with pytest.raises(FetchError) as excinfo:
            await fetcher.fetch(str(server.make_url('/missing')))
        with pytest.raises(FetchError):
            await fetcher.fetch(str(server.make_url('/gone')))

    assert isinstance(excinfo.value.cause, aiohttp.ClientResponseError)
    assert excinfo.value.cause.status == 404
    assert fetcher.get_stats()['failed_requests'] == 2


async def test_timeout_raises_fetch_error(site):
    server = await site({'/slow': 'late'}, delay=1.0)

    async with WebFetcher(request_timeout=0.1) as fetcher:
        with pytest.raises(FetchError) as excinfo:
            await fetcher.fetch(str(server.make_url('/slow')))

    assert isinstance(excinfo.value.cause, asyncio.TimeoutError)


async def test_connection_failure_raises_fetch_error(site):
    server = await site({'/': 'up'})
    url = str(server.make_url('/'))
    await server.close()

    async with WebFetcher(request_timeout=5) as fetcher:
        with pytest.raises(FetchError) as excinfo:
            await fetcher.fetch(url)

    assert isinstance(excinfo.value.cause, aiohttp.ClientError)
    assert url in str(excinfo.value)


async def test_undecodable_body_raises_fetch_error(site):
    server = await site({'/binary': b'\xff\xfe\xfa\x80 not utf-8'})

    async with WebFetcher(request_timeout=5) as fetcher:
        with pytest.raises(FetchError) as excinfo:
            await fetcher.fetch(str(server.make_url('/binary')))

    assert isinstance(excinfo.value.cause, UnicodeDecodeError)


async def test_fetch_requires_started_session():
    fetcher = WebFetcher()
    with pytest.raises(RuntimeError):
        await fetcher.fetch("http://127.0.0.1/")


async def test_connection_pool_does_not_cap_parallelism():
    async with WebFetcher() as fetcher:
        assert fetcher.session.connector.limit == 0

    async with WebFetcher(max_connections=8) as fetcher:
        assert fetcher.session.connector.limit == 8
