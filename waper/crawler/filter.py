"""
Whitelist/blacklist URL filtering.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

from ..utils.config import ConfigError


_DEFAULT_FLAGS = re.compile('').flags


def _is_joinable(compiled: re.Pattern) -> bool:
    # Group numbers shift and global flags leak once patterns share one expression
    return compiled.groups == 0 and compiled.flags == _DEFAULT_FLAGS


class PatternSet:
    """
    A set of regular expressions tested together.

    Plain patterns are folded into one alternation so a lookup is a single
    regex search. Patterns with capture groups or global inline flags are
    searched one at a time.
    """

    def __init__(self, patterns: Iterable[str]):
        self.patterns: Tuple[str, ...] = tuple(patterns)
        compiled: List[re.Pattern] = []
        for pattern in self.patterns:
            try:
                compiled.append(re.compile(pattern))
            except re.error as e:
                raise ConfigError(f"Invalid pattern {pattern!r}: {e}")

        self._matchers: Tuple[re.Pattern, ...] = tuple(compiled)
        if len(compiled) > 1 and all(_is_joinable(c) for c in compiled):
            self._matchers = (re.compile('|'.join(f'(?:{p})' for p in self.patterns)),)

    def is_match(self, text: str) -> bool:
        return any(matcher.search(text) for matcher in self._matchers)

    def __len__(self) -> int:
        return len(self.patterns)

    def __repr__(self) -> str:
        return f"PatternSet({list(self.patterns)!r})"


@dataclass(frozen=True)
class CrawlFilter:
    """
    Decides which discovered URLs may join the crawl.

    A URL passes when it matches at least one whitelist pattern and no
    blacklist pattern. The blacklist wins when both match.
    """
    whitelist: Tuple[str, ...] = ('.*',)
    blacklist: Tuple[str, ...] = ()
    _whitelist_re: PatternSet = field(init=False, repr=False, compare=False)
    _blacklist_re: PatternSet = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'whitelist', tuple(self.whitelist))
        object.__setattr__(self, 'blacklist', tuple(self.blacklist))
        object.__setattr__(self, '_whitelist_re', PatternSet(self.whitelist))
        object.__setattr__(self, '_blacklist_re', PatternSet(self.blacklist))

    def is_match(self, url: str) -> bool:
        if self._blacklist_re.is_match(url):
            return False
        return self._whitelist_re.is_match(url)

    def with_whitelist(self, patterns: Iterable[str]) -> 'CrawlFilter':
        return CrawlFilter(whitelist=tuple(patterns), blacklist=self.blacklist)

    def with_blacklist(self, patterns: Iterable[str]) -> 'CrawlFilter':
        return CrawlFilter(whitelist=self.whitelist, blacklist=tuple(patterns))

    def blacklist_all(self) -> 'CrawlFilter':
        """Block every future URL so only already-known URLs get crawled."""
        return self.with_blacklist(['.*'])
