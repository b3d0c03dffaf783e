"""
Frontier membership tracking for the crawl.

Every URL admitted to the crawl is recorded here exactly once, which is what
keeps a URL from being scheduled twice.
"""

import logging
import threading
from typing import Iterable, List, Set


class FrontierSet:
    """
    Set of every URL ever admitted to the crawl.

    Entries are never removed. All membership changes happen under a single
    lock so that concurrent discoverers cannot both admit the same URL. The
    lock is only held for in-memory work.
    """

    def __init__(self, urls: Iterable[str] = ()):
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._urls: Set[str] = set(urls)

    def contains(self, url: str) -> bool:
        with self._lock:
            return url in self._urls

    def insert(self, url: str):
        with self._lock:
            self._urls.add(url)

    def insert_if_absent(self, url: str) -> bool:
        """Add a URL unless already present. Returns True if it was added."""
        with self._lock:
            if url in self._urls:
                return False
            self._urls.add(url)
            return True

    def admit(self, urls: Iterable[str]) -> List[str]:
        """
        Test-and-insert a batch of URLs under one lock acquisition.

        Returns the URLs that were newly added, in input order. Duplicates
        within the batch are admitted once.
        """
        admitted = []
        known = 0
        with self._lock:
            for url in urls:
                if url in self._urls:
                    known += 1
                    continue
                self._urls.add(url)
                admitted.append(url)

        if known:
            self.logger.debug(f"Skipped {known} already noticed URLs")
        return admitted

    def __contains__(self, url: str) -> bool:
        return self.contains(url)

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)
