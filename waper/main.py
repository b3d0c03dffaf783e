"""
Command line entry point for the waper crawler.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from . import __version__
from .control.repl import ControlShell, stdin_lines
from .crawler.fetcher import WebFetcher
from .crawler.filter import CrawlFilter
from .crawler.orchestrator import Orchestrator
from .crawler.runtime import ConfigChannel, RuntimeConfig
from .storage.database import DatabaseManager, PersistenceError
from .utils.config import Config, ConfigError, load_config, validate_config
from .utils.logger import setup_logging, log_system_info
from .utils.monitoring import initialize_monitoring


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='waper',
        description="Scrape websites and save html, links and errors to a sqlite file.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  waper -s https://example.com/ -w "https://example.com/.*"
  waper --config waper.yaml                 # Read settings from a YAML file
  waper -o out.sqlite -i                    # Continue an unfinished crawl
  waper -s https://example.com/ -m 20 --no-repl
        """
    )

    parser.add_argument('--config', help='Path to a YAML configuration file')
    parser.add_argument('-s', '--seed-links', action='append', metavar='URL',
                        help='Links to start with (repeatable)')
    parser.add_argument('-w', '--whitelist', action='append', metavar='REGEX',
                        help='Only urls matching one of these regexes are crawled, '
                             'other than seeds (repeatable, default: .*)')
    parser.add_argument('-b', '--blacklist', action='append', metavar='REGEX',
                        help='Urls matching one of these regexes are never crawled (repeatable)')
    parser.add_argument('-o', '--output-file', metavar='PATH',
                        help='Output sqlite file (or directory for the file backend)')
    parser.add_argument('-m', '--max-parallel-requests', type=int, metavar='N',
                        help='Maximum number of requests in flight')
    parser.add_argument('-i', '--include-db-links', action='store_true', default=None,
                        help='Also crawl unprocessed links already in the output, '
                             'to continue an unfinished session')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug output')
    parser.add_argument('--max-duration', type=float, metavar='SECONDS',
                        help='Stop the crawl after this many seconds')
    parser.add_argument('--no-repl', action='store_true',
                        help='Do not read control commands from stdin')
    parser.add_argument('--version', action='version', version=f'waper {__version__}')
    return parser


def apply_args(config: Config, args: argparse.Namespace) -> Config:
    """Override file settings with the ones given on the command line."""
    crawler = config.crawler
    if args.seed_links:
        crawler.seed_urls = list(args.seed_links)
    if args.whitelist:
        crawler.whitelist = list(args.whitelist)
    if args.blacklist:
        crawler.blacklist = list(args.blacklist)
    if args.max_parallel_requests is not None:
        crawler.max_concurrent_requests = args.max_parallel_requests
    if args.include_db_links:
        crawler.include_db_links = True

    if args.output_file:
        if config.database.type == 'file':
            config.database.file = {**config.database.file, 'data_directory': args.output_file}
        else:
            config.database.sqlite = {**config.database.sqlite, 'path': args.output_file}

    if args.verbose:
        config.logging.level = 'DEBUG'
    return config


def build_runtime_config(config: Config) -> RuntimeConfig:
    return RuntimeConfig(
        concurrency_limit=config.crawler.max_concurrent_requests,
        filter=CrawlFilter(
            whitelist=tuple(config.crawler.whitelist),
            blacklist=tuple(config.crawler.blacklist)
        )
    )


class CrawlerApp:
    """Main application class for the crawler."""

    def __init__(self):
        self.orchestrator: Optional[Orchestrator] = None
        self.logger = logging.getLogger(__name__)
        self._shutdown_event: Optional[asyncio.Event] = None

    def setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            self._shutdown_event.set()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, signal_handler, signum)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform, Ctrl-C still raises KeyboardInterrupt
                pass

    async def run(self, args: argparse.Namespace) -> int:
        """Run the crawler. Returns the process exit code."""
        try:
            config = apply_args(load_config(args.config), args)
            validate_config(config)
            runtime_config = build_runtime_config(config)
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        setup_logging({
            'level': config.logging.level,
            'file': config.logging.file,
            'format': config.logging.format,
        }, enable_json=config.logging.json)
        log_system_info()

        self._shutdown_event = asyncio.Event()
        self.setup_signal_handlers()

        self.logger.info("=== WAPER STARTING ===")
        self.logger.info(f"Seed URLs: {config.crawler.seed_urls}")
        self.logger.info(f"Max parallel requests: {runtime_config.concurrency_limit}")
        self.logger.info(f"Whitelist: {config.crawler.whitelist}")
        self.logger.info(f"Blacklist: {config.crawler.blacklist}")
        self.logger.info(f"Database type: {config.database.type}")

        monitor = initialize_monitoring(config.monitoring.metrics_enabled,
                                        config.monitoring.prometheus_port)
        channel = ConfigChannel(runtime_config)
        database = DatabaseManager(config.database)
        shell_task: Optional[asyncio.Task] = None

        try:
            await database.initialize()

            async with WebFetcher(
                user_agent=config.crawler.user_agent,
                request_timeout=config.crawler.request_timeout
            ) as fetcher:
                self.orchestrator = Orchestrator(
                    config.crawler.seed_urls, channel, database, fetcher,
                    monitor=monitor,
                    stats_interval=config.monitoring.stats_interval
                )
                crawl_task = asyncio.create_task(
                    self.orchestrator.start(resume=config.crawler.include_db_links)
                )

                if not args.no_repl:
                    shell = ControlShell(channel, self.orchestrator)
                    shell_task = asyncio.create_task(shell.run(stdin_lines()))

                await self._wait_for_crawl(crawl_task, args.max_duration)

        except PersistenceError as e:
            self.logger.error(f"Storage failure, aborting crawl: {e}")
            return 1

        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1

        finally:
            if shell_task:
                shell_task.cancel()
                await asyncio.gather(shell_task, return_exceptions=True)
            await database.close()
            self.logger.info("=== WAPER FINISHED ===")

        return 0

    async def _wait_for_crawl(self, crawl_task: asyncio.Task, max_duration: Optional[float]):
        """Wait for the crawl, stopping it on a shutdown signal or timeout."""
        shutdown_task = asyncio.create_task(self._shutdown_event.wait())

        done, _ = await asyncio.wait(
            [crawl_task, shutdown_task],
            timeout=max_duration,
            return_when=asyncio.FIRST_COMPLETED
        )

        if crawl_task not in done:
            if shutdown_task in done:
                self.logger.info("Shutdown requested, stopping crawler...")
            else:
                self.logger.info(f"Reached max duration: {max_duration} seconds")
            self.orchestrator.stop()

        shutdown_task.cancel()
        await asyncio.gather(shutdown_task, return_exceptions=True)

        stats = await crawl_task
        print(f"Done: {stats.pages_stored} pages stored, {stats.errors} errors", flush=True)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_arg_parser().parse_args(argv)

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(args))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
