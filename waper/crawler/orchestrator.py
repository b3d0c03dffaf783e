"""
Crawl orchestrator that schedules fetch tasks over a growing frontier.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Set
from dataclasses import dataclass

from .fetcher import WebFetcher, FetchError
from .frontier import FrontierSet
from .parser import normalize_url
from .runtime import ConfigChannel, RuntimeConfig
from ..storage.database import DatabaseManager, PersistenceError
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import CrawlerMonitor


@dataclass
class CrawlStats:
    """Statistics for crawl operations."""
    start_time: float
    urls_scheduled: int = 0
    pages_stored: int = 0
    errors: int = 0
    task_failures: int = 0
    links_admitted: int = 0
    duplicates_skipped: int = 0
    filtered_out: int = 0
    urls_in_queue: int = 0
    in_flight: int = 0
    max_in_flight: int = 0

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.pages_stored / elapsed_minutes if elapsed_minutes > 0 else 0


class Orchestrator:
    """
    Schedules one fetch task per admitted URL.

    At most ``concurrency_limit`` tasks run at once, where the limit is read
    from the runtime config channel at every admission decision. The crawl
    ends once no task is running and nothing is queued.
    """

    def __init__(self, seed_urls: List[str], channel: ConfigChannel[RuntimeConfig],
                 database: DatabaseManager, fetcher: WebFetcher,
                 monitor: Optional[CrawlerMonitor] = None, stats_interval: float = 30.0):
        self.seed_urls = [normalize_url(url) for url in seed_urls]
        self.channel = channel
        self.database = database
        self.fetcher = fetcher
        self.monitor = monitor
        self.stats_interval = stats_interval
        self.logger = get_crawler_logger(__name__)

        # Crawl state
        self.frontier = FrontierSet()
        self.queue: asyncio.Queue = asyncio.Queue()
        self.in_flight: Dict[asyncio.Task, str] = {}
        self.stats = CrawlStats(start_time=time.time())
        self.is_running = False
        self._stop_event = asyncio.Event()

    async def start(self, resume: bool = False) -> CrawlStats:
        """
        Run the crawl until quiescence or until stopped.

        Args:
            resume: Also schedule links from a previous run that have neither
                a result nor an error recorded

        Raises:
            PersistenceError: if the crawl output cannot be written
        """
        if self.is_running:
            raise RuntimeError("Crawl is already running")

        self._stop_event.clear()
        self.frontier = FrontierSet()
        self.queue = asyncio.Queue()
        self.is_running = True
        self.stats = CrawlStats(start_time=time.time())
        stats_task = asyncio.create_task(self._stats_reporter())

        try:
            await self._schedule_initial(resume)
            await self._run()
        except BaseException:
            await self._cancel_in_flight()
            raise
        finally:
            stats_task.cancel()
            await asyncio.gather(stats_task, return_exceptions=True)
            self.is_running = False
            self._log_final_stats()

        return self.stats

    def stop(self):
        """Ask a running crawl to stop. In-flight requests are dropped."""
        self.logger.info("Stopping crawler...")
        self._stop_event.set()

    async def _schedule_initial(self, resume: bool):
        urls = list(self.seed_urls)
        if resume:
            unprocessed = await self.database.get_unprocessed_links()
            self.logger.info(f"Resuming with {len(unprocessed)} unprocessed links from the database")
            urls.extend(unprocessed)

        admitted = self.frontier.admit(urls)
        await self.database.add_links(admitted)

        limit = self.channel.current().concurrency_limit
        split = min(limit, len(admitted))
        for url in admitted[:split]:
            self._spawn(url)
        for url in admitted[split:]:
            self.queue.put_nowait(url)

        self.logger.info(f"Added {len(admitted)} start URLs, {split} scheduled immediately")
        self._update_monitor()

    async def _run(self):
        stop_watch = asyncio.create_task(self._stop_event.wait())
        config_watch: Optional[asyncio.Task] = None

        try:
            while self.in_flight:
                if config_watch is None:
                    config_watch = asyncio.create_task(self.channel.next_change())

                waiting: Set[asyncio.Future] = {stop_watch, config_watch, *self.in_flight}
                done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)

                if stop_watch in done:
                    self.logger.info(f"Crawl stopped with {len(self.in_flight)} tasks in flight "
                                     f"and {self.queue.qsize()} queued")
                    await self._cancel_in_flight()
                    return

                if config_watch in done:
                    config = config_watch.result()
                    config_watch = None
                    self.logger.info(f"Runtime config changed: concurrency_limit={config.concurrency_limit}, "
                                     f"whitelist={list(config.filter.whitelist)}, "
                                     f"blacklist={list(config.filter.blacklist)}")

                for task in done:
                    url = self.in_flight.pop(task, None)
                    if url is not None:
                        await self._handle_completion(task, url)

                self._fill()
        finally:
            for watcher in (stop_watch, config_watch):
                if watcher is not None:
                    watcher.cancel()
            await asyncio.gather(
                *(w for w in (stop_watch, config_watch) if w is not None),
                return_exceptions=True
            )

    def _fill(self):
        """Start queued URLs while below the concurrency limit currently in effect."""
        while len(self.in_flight) < self.channel.current().concurrency_limit:
            try:
                url = self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._spawn(url)
        self._update_monitor()

    def _spawn(self, url: str):
        self.logger.info(f"Scheduling {url}")
        task = asyncio.create_task(self._scrape(url))
        self.in_flight[task] = url
        self.stats.urls_scheduled += 1
        self.stats.max_in_flight = max(self.stats.max_in_flight, len(self.in_flight))

    async def _handle_completion(self, task: asyncio.Task, url: str):
        if task.cancelled():
            error: BaseException = asyncio.CancelledError()
        else:
            error = task.exception()
            if error is None:
                return

        if isinstance(error, PersistenceError):
            self.logger.error(f"Storage failure while processing {url}: {error}")
            raise error

        # The task's failure is terminal for its URL only
        self.stats.task_failures += 1
        if self.monitor:
            self.monitor.record_error('task')
        self.logger.error(f"Error processing {url}: {error!r}", exc_info=error)
        await self.database.add_error(url, repr(error))

    async def _scrape(self, url: str):
        """Fetch one page, record it and queue the new links it contains."""
        try:
            result = await self.fetcher.fetch_and_extract(url)
        except FetchError as e:
            self.stats.errors += 1
            if self.monitor:
                self.monitor.record_error('fetch')
            self.logger.log_url_event(logging.WARNING, url, str(e))
            await self.database.add_error(url, str(e))
            return

        self.logger.debug(f"Visited {url}")
        await self.database.add_result(url, result.html)
        self.stats.pages_stored += 1
        if self.monitor:
            self.monitor.record_page_fetched(url, result.fetch_time)

        crawl_filter = self.channel.current().filter
        candidates = []
        for link in result.links:
            if not crawl_filter.is_match(link):
                self.logger.debug(f"Filtered out: {link}")
                self.stats.filtered_out += 1
                continue
            candidates.append(link)

        admitted = self.frontier.admit(candidates)
        self.stats.duplicates_skipped += len(candidates) - len(admitted)
        if not admitted:
            return

        await self.database.add_links(admitted)
        for link in admitted:
            self.queue.put_nowait(link)

        self.stats.links_admitted += len(admitted)
        if self.monitor:
            self.monitor.record_links_admitted(len(admitted))
        self.logger.debug(f"Queued {len(admitted)} new URLs from {url}")

    async def _cancel_in_flight(self):
        """Cancel and await every running task."""
        tasks = list(self.in_flight)
        self.in_flight.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _update_monitor(self):
        self.stats.urls_in_queue = self.queue.qsize()
        self.stats.in_flight = len(self.in_flight)
        if self.monitor:
            self.monitor.update_scheduler_state(
                self.stats.urls_in_queue,
                self.stats.in_flight,
                self.channel.current().concurrency_limit
            )

    async def _stats_reporter(self):
        """Periodically log crawl statistics."""
        while True:
            await asyncio.sleep(self.stats_interval)
            self._log_current_stats()

    def _log_current_stats(self):
        self.logger.info(
            f"Crawl Progress: "
            f"Scheduled={self.stats.urls_scheduled}, "
            f"Stored={self.stats.pages_stored}, "
            f"InFlight={len(self.in_flight)}, "
            f"Queued={self.queue.qsize()}, "
            f"Errors={self.stats.errors}, "
            f"Rate={self.stats.pages_per_minute:.1f} pages/min"
        )

    def _log_final_stats(self):
        self.logger.info("=== CRAWL FINISHED ===")
        self.logger.info(f"URLs scheduled: {self.stats.urls_scheduled}")
        self.logger.info(f"Pages stored: {self.stats.pages_stored}")
        self.logger.info(f"Fetch errors: {self.stats.errors}")
        self.logger.info(f"Task failures: {self.stats.task_failures}")
        self.logger.info(f"Links admitted: {self.stats.links_admitted}")
        self.logger.info(f"Duplicates skipped: {self.stats.duplicates_skipped}")
        self.logger.info(f"Filtered out: {self.stats.filtered_out}")
        self.logger.info(f"URLs remaining in queue: {self.queue.qsize()}")
        self.logger.info(f"Total time: {self.stats.elapsed_time:.2f} seconds")

    def get_stats(self) -> Dict:
        """Get current crawl statistics."""
        return {
            'urls_scheduled': self.stats.urls_scheduled,
            'pages_stored': self.stats.pages_stored,
            'errors': self.stats.errors,
            'task_failures': self.stats.task_failures,
            'links_admitted': self.stats.links_admitted,
            'duplicates_skipped': self.stats.duplicates_skipped,
            'filtered_out': self.stats.filtered_out,
            'in_flight': len(self.in_flight),
            'urls_in_queue': self.queue.qsize(),
            'frontier_size': len(self.frontier),
            'elapsed_time': self.stats.elapsed_time,
            'pages_per_minute': self.stats.pages_per_minute,
            'is_running': self.is_running
        }
