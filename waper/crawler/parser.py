"""
HTML link extraction and URL normalization.
"""

import logging
from typing import List, Optional
from urllib.parse import urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

CRAWLABLE_SCHEMES = ('http', 'https')


def normalize_url(url: str) -> str:
    """Normalize URL by lower-casing scheme and host and removing the fragment."""
    parsed = urlparse(url)
    userinfo, at, host = parsed.netloc.rpartition('@')
    return urlunparse((
        parsed.scheme.lower(),
        userinfo + at + host.lower(),
        parsed.path,
        parsed.params,
        parsed.query,
        ''  # Remove fragment
    ))


def resolve_link(base_url: str, href: str) -> Optional[str]:
    """
    Resolve an href found on ``base_url`` to a crawlable absolute URL.

    Handles relative paths, protocol-relative and absolute hrefs. Returns None
    for hrefs that cannot be resolved or do not point at an http(s) resource.
    """
    href = href.strip()
    if not href:
        return None

    try:
        absolute_url = normalize_url(urljoin(base_url, href))
        parsed = urlparse(absolute_url)
        # Accessing port validates it, and raises ValueError when malformed
        parsed.port
    except ValueError:
        return None

    if parsed.scheme not in CRAWLABLE_SCHEMES or not parsed.hostname:
        return None
    return absolute_url


def extract_links(html_content: str, base_url: str) -> List[str]:
    """
    Extract and normalize every anchor target in a page.

    Args:
        html_content: Raw HTML content
        base_url: The URL the page was fetched from

    Returns:
        Absolute, fragment-free URLs in document order, without repeats
    """
    soup = BeautifulSoup(html_content, 'lxml')

    links = []
    seen = set()
    skipped = 0
    for anchor in soup.find_all('a', href=True):
        href = anchor['href']
        if not isinstance(href, str):
            skipped += 1
            continue

        link = resolve_link(base_url, href)
        if link is None:
            skipped += 1
            continue
        if link not in seen:
            seen.add(link)
            links.append(link)

    logger.debug(f"Extracted {len(links)} links from {base_url} ({skipped} skipped)")
    return links
