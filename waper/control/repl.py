"""
Interactive control shell for a running crawl.

Commands read from stdin change the runtime config (concurrency limit,
whitelist, blacklist) or stop the crawl. Closing stdin closes the shell but
lets the crawl finish.
"""

import argparse
import asyncio
import logging
import shlex
import sys
from typing import AsyncIterator, Callable, Optional

from ..crawler.orchestrator import Orchestrator
from ..crawler.runtime import ConfigChannel, RuntimeConfig
from ..utils.config import ConfigError

logger = logging.getLogger(__name__)


class ShellCommandError(Exception):
    """The operator typed something the shell cannot run."""

    def __init__(self, message: str, usage: str = ""):
        self.usage = usage
        super().__init__(message)


class _ShellArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports problems instead of exiting the process."""

    def error(self, message):
        raise ShellCommandError(message, self.format_usage())

    def exit(self, status=0, message=None):
        raise ShellCommandError(message or "", self.format_usage())


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_command_parser() -> argparse.ArgumentParser:
    parser = _ShellArgumentParser(prog='', add_help=False,
                                  description="Control the running crawl.")
    commands = parser.add_subparsers(dest='command', metavar='COMMAND', parser_class=_ShellArgumentParser)
    commands.required = True

    commands.add_parser('help', add_help=False, help="Show this help")
    commands.add_parser('status', add_help=False, help="Show crawl progress and runtime config")

    concurrency = commands.add_parser('concurrency', add_help=False,
                                      help="Set the maximum number of parallel requests")
    concurrency.add_argument('limit', type=_positive_int)

    whitelist = commands.add_parser('whitelist', add_help=False,
                                    help="Replace the whitelist regexes")
    whitelist.add_argument('patterns', nargs='+')

    blacklist = commands.add_parser('blacklist', add_help=False,
                                    help="Replace the blacklist regexes")
    blacklist.add_argument('patterns', nargs='*')

    commands.add_parser('blacklist-all', add_help=False,
                        help="Blacklist all future urls, only currently known urls get crawled")
    commands.add_parser('stop', add_help=False, help="Stop the crawl")
    commands.add_parser('exit', add_help=False, help="Exit the shell and continue crawling")
    return parser


class ControlShell:
    """Runs operator commands against a crawl's config channel and orchestrator."""

    def __init__(self, channel: ConfigChannel[RuntimeConfig], orchestrator: Orchestrator,
                 output: Optional[Callable[[str], None]] = None):
        self.channel = channel
        self.orchestrator = orchestrator
        self.output = output or (lambda text: print(text, flush=True))
        self.parser = build_command_parser()
        self.closed = False

    def print_help(self):
        self.output("===> Waper control shell")
        self.output(self.parser.format_help())

    async def run(self, lines: AsyncIterator[str]):
        """Execute commands until ``exit``, ``stop`` or end of input."""
        self.print_help()
        try:
            async for line in lines:
                if not self.execute(line):
                    break
        finally:
            self.closed = True
            logger.debug("Control shell closed")

    def execute(self, line: str) -> bool:
        """Run one command line. Returns False when the shell should close."""
        try:
            words = shlex.split(line)
        except ValueError as e:
            self.output(f"Cannot parse input: {e}")
            return True
        if not words:
            return True

        try:
            args = self.parser.parse_args(words)
        except ShellCommandError as e:
            self.output(f"Invalid input: {e}")
            if e.usage:
                self.output(e.usage.rstrip())
            return True

        try:
            return self._dispatch(args)
        except ConfigError as e:
            self.output(f"Rejected: {e}")
            return True

    def _dispatch(self, args: argparse.Namespace) -> bool:
        command = args.command
        config = self.channel.current()

        if command == 'help':
            self.print_help()
        elif command == 'status':
            self._print_status(config)
        elif command == 'concurrency':
            self._publish(config.with_concurrency_limit(args.limit))
        elif command == 'whitelist':
            self._publish(config.with_filter(config.filter.with_whitelist(args.patterns)))
        elif command == 'blacklist':
            self._publish(config.with_filter(config.filter.with_blacklist(args.patterns)))
        elif command == 'blacklist-all':
            self._publish(config.with_filter(config.filter.blacklist_all()))
        elif command == 'stop':
            self.orchestrator.stop()
            return False
        elif command == 'exit':
            return False
        return True

    def _publish(self, config: RuntimeConfig):
        self.channel.publish(config)
        self.output(f"OK: concurrency_limit={config.concurrency_limit} "
                    f"whitelist={list(config.filter.whitelist)} "
                    f"blacklist={list(config.filter.blacklist)}")

    def _print_status(self, config: RuntimeConfig):
        stats = self.orchestrator.get_stats()
        self.output(
            f"scheduled={stats['urls_scheduled']} stored={stats['pages_stored']} "
            f"errors={stats['errors']} in_flight={stats['in_flight']} "
            f"queued={stats['urls_in_queue']} known={stats['frontier_size']}"
        )
        self.output(f"concurrency_limit={config.concurrency_limit} "
                    f"whitelist={list(config.filter.whitelist)} "
                    f"blacklist={list(config.filter.blacklist)}")


async def stdin_lines() -> AsyncIterator[str]:
    """Yield lines typed on stdin until it is closed."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    try:
        transport, _ = await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader), sys.stdin
        )
    except (ValueError, OSError) as e:
        logger.warning(f"Control shell disabled, stdin is not readable asynchronously: {e}")
        return

    try:
        while True:
            line = await reader.readline()
            if not line:
                return
            yield line.decode(errors='replace')
    finally:
        transport.close()
