"""
Persistence for crawl output.

Three append-only record sets are kept, all keyed by URL:

- ``links``: every URL admitted to the crawl, in discovery order
- ``results``: the body of every page fetched successfully
- ``errors``: the failure message of every page that could not be fetched

Supports SQLite (default) and JSON-lines file storage.
"""

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Optional, Dict, List, Any, Iterable, Iterator

from ..utils.config import DatabaseConfig


class PersistenceError(Exception):
    """A write to or read from the storage backend failed."""
    pass


class StorageBackend:
    """Abstract base class for storage backends."""

    async def initialize(self):
        """Initialize the storage backend."""
        raise NotImplementedError

    async def add_links(self, urls: List[str]):
        """Append discovered URLs to the links log."""
        raise NotImplementedError

    async def add_result(self, url: str, html: str):
        """Record the body of a successfully fetched page."""
        raise NotImplementedError

    async def add_error(self, url: str, message: str):
        """Record why a page could not be fetched."""
        raise NotImplementedError

    async def get_unprocessed_links(self) -> List[str]:
        """URLs in the links log with neither a result nor an error, oldest first."""
        raise NotImplementedError

    async def get_stats(self) -> Dict[str, Any]:
        """Get storage statistics."""
        raise NotImplementedError

    async def close(self):
        """Close storage connections."""
        raise NotImplementedError


SCHEMA = """
CREATE TABLE IF NOT EXISTS links (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url TEXT NOT NULL,
    time REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS links_url ON links (url);

CREATE TABLE IF NOT EXISTS results (
    url TEXT NOT NULL,
    content TEXT,
    time REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS results_url ON results (url);

CREATE TABLE IF NOT EXISTS errors (
    url TEXT NOT NULL,
    msg TEXT,
    time REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS errors_url ON errors (url);
"""


class SqliteStorageBackend(StorageBackend):
    """SQLite storage backend. One file holds one crawl."""

    def __init__(self, path: str):
        self.path = Path(path)
        self.conn: Optional[sqlite3.Connection] = None
        self.logger = logging.getLogger(__name__)

    async def initialize(self):
        """Open the database file and create tables."""
        try:
            if self.path.parent != Path('.'):
                self.path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(str(self.path), check_same_thread=False)
            self.conn.execute("PRAGMA journal_mode=WAL")
            self.conn.executescript(SCHEMA)
            self.conn.commit()
            self.logger.info(f"SQLite storage initialized at {self.path}")
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Failed to initialize sqlite storage at {self.path}: {e}")

    def _connection(self) -> sqlite3.Connection:
        if self.conn is None:
            raise PersistenceError("SQLite storage not initialized")
        return self.conn

    async def add_links(self, urls: List[str]):
        if not urls:
            return
        conn = self._connection()
        now = time.time()
        try:
            with conn:
                conn.executemany(
                    "INSERT INTO links (url, time) VALUES (?, ?)",
                    [(url, now) for url in urls]
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to insert {len(urls)} links: {e}")

    async def add_result(self, url: str, html: str):
        conn = self._connection()
        try:
            with conn:
                conn.execute(
                    "INSERT INTO results (url, content, time) VALUES (?, ?, ?)",
                    (url, html, time.time())
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to insert result for {url}: {e}")

    async def add_error(self, url: str, message: str):
        conn = self._connection()
        try:
            with conn:
                conn.execute(
                    "INSERT INTO errors (url, msg, time) VALUES (?, ?, ?)",
                    (url, message, time.time())
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to insert error for {url}: {e}")

    async def get_unprocessed_links(self) -> List[str]:
        conn = self._connection()
        try:
            rows = conn.execute("""
                SELECT url FROM links
                WHERE
                    url NOT IN (SELECT url FROM results) AND
                    url NOT IN (SELECT url FROM errors)
                GROUP BY url
                ORDER BY MIN(id)
            """).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to fetch unprocessed links: {e}")
        return [row[0] for row in rows]

    async def get_stats(self) -> Dict[str, Any]:
        conn = self._connection()
        stats = {}
        try:
            for table in ('links', 'results', 'errors'):
                stats[f'total_{table}'] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read storage stats: {e}")
        return stats

    async def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None
            self.logger.info("SQLite storage closed")


class FileStorageBackend(StorageBackend):
    """JSON-lines storage backend, one append-only file per record set."""

    def __init__(self, data_directory: str):
        self.data_directory = Path(data_directory)
        self.logger = logging.getLogger(__name__)

    def _file(self, name: str) -> Path:
        return self.data_directory / f"{name}.jsonl"

    async def initialize(self):
        """Create the data directory."""
        try:
            self.data_directory.mkdir(parents=True, exist_ok=True)
            for name in ('links', 'results', 'errors'):
                self._file(name).touch(exist_ok=True)
            self.logger.info(f"File storage initialized at {self.data_directory}")
        except OSError as e:
            raise PersistenceError(f"Failed to initialize file storage: {e}")

    def _append(self, name: str, records: Iterable[Dict[str, Any]]):
        try:
            with open(self._file(name), 'a', encoding='utf-8') as f:
                for record in records:
                    f.write(json.dumps(record, ensure_ascii=False) + '\n')
        except OSError as e:
            raise PersistenceError(f"Failed to append to {self._file(name)}: {e}")

    def _read(self, name: str) -> Iterator[Dict[str, Any]]:
        try:
            with open(self._file(name), 'r', encoding='utf-8') as f:
                for line_no, line in enumerate(f, 1):
                    if not line.strip():
                        continue
                    try:
                        yield json.loads(line)
                    except json.JSONDecodeError as e:
                        raise PersistenceError(f"Corrupt record in {self._file(name)}:{line_no}: {e}")
        except FileNotFoundError:
            return
        except OSError as e:
            raise PersistenceError(f"Failed to read {self._file(name)}: {e}")

    async def add_links(self, urls: List[str]):
        if not urls:
            return
        now = time.time()
        self._append('links', ({'url': url, 'time': now} for url in urls))

    async def add_result(self, url: str, html: str):
        self._append('results', [{'url': url, 'content': html, 'time': time.time()}])

    async def add_error(self, url: str, message: str):
        self._append('errors', [{'url': url, 'msg': message, 'time': time.time()}])

    async def get_unprocessed_links(self) -> List[str]:
        done = {record['url'] for record in self._read('results')}
        done.update(record['url'] for record in self._read('errors'))

        unprocessed = []
        seen = set()
        for record in self._read('links'):
            url = record['url']
            if url in done or url in seen:
                continue
            seen.add(url)
            unprocessed.append(url)
        return unprocessed

    async def get_stats(self) -> Dict[str, Any]:
        return {
            f'total_{name}': sum(1 for _ in self._read(name))
            for name in ('links', 'results', 'errors')
        }

    async def close(self):
        self.logger.info("File storage closed")


class DatabaseManager:
    """Main database manager that handles different storage backends."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.backend: Optional[StorageBackend] = None
        self.logger = logging.getLogger(__name__)

    async def initialize(self):
        """Initialize the appropriate storage backend."""
        backend_type = self.config.type.lower()

        if backend_type == 'sqlite':
            self.backend = SqliteStorageBackend(self.config.sqlite['path'])
        elif backend_type == 'file':
            self.backend = FileStorageBackend(self.config.file['data_directory'])
        else:
            raise PersistenceError(f"Unknown database type: {backend_type}")

        await self.backend.initialize()
        self.logger.info(f"Database manager initialized with {backend_type} backend")

    def _backend(self) -> StorageBackend:
        if not self.backend:
            raise PersistenceError("Database not initialized")
        return self.backend

    async def add_links(self, urls: List[str]):
        await self._backend().add_links(list(urls))

    async def add_result(self, url: str, html: str):
        await self._backend().add_result(url, html)

    async def add_error(self, url: str, message: str):
        await self._backend().add_error(url, message)

    async def get_unprocessed_links(self) -> List[str]:
        return await self._backend().get_unprocessed_links()

    async def get_stats(self) -> Dict[str, Any]:
        return await self._backend().get_stats()

    async def close(self):
        """Close database connections."""
        if self.backend:
            await self.backend.close()
            self.logger.info("Database connections closed")
