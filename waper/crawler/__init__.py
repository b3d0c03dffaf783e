"""
Web crawler core components.
"""

from .filter import CrawlFilter, PatternSet
from .frontier import FrontierSet
from .runtime import ConfigChannel, RuntimeConfig
from .fetcher import WebFetcher, FetchError, FetchResult, ScrapeResult
from .parser import extract_links, normalize_url
from .orchestrator import Orchestrator, CrawlStats

__all__ = [
    'CrawlFilter', 'PatternSet',
    'FrontierSet',
    'ConfigChannel', 'RuntimeConfig',
    'WebFetcher', 'FetchError', 'FetchResult', 'ScrapeResult',
    'extract_links', 'normalize_url',
    'Orchestrator', 'CrawlStats'
]
