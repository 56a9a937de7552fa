"""SQLite persistence for scraped businesses."""

import logging
import sqlite3
import threading
from typing import Iterable, Sequence

from geotap.models import Business

logger = logging.getLogger(__name__)

# Favour sustained batch-insert throughput over per-write durability.
_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA cache_size=-64000",
    "PRAGMA busy_timeout=5000",
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS businesses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    rating REAL,
    review_count INTEGER,
    category TEXT,
    address TEXT,
    price_range TEXT,
    lat REAL NOT NULL,
    lng REAL NOT NULL,
    cid TEXT,
    phone TEXT,
    website TEXT,
    google_url TEXT,
    description TEXT,
    place_id TEXT,
    open_hours TEXT,
    thumbnail TEXT,
    categories TEXT,
    city TEXT,
    postal_code TEXT,
    country_code TEXT,
    query TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(cid, query)
);
CREATE INDEX IF NOT EXISTS idx_businesses_query ON businesses(query);
CREATE INDEX IF NOT EXISTS idx_businesses_rating ON businesses(rating);
CREATE INDEX IF NOT EXISTS idx_businesses_coords ON businesses(lat, lng);
CREATE INDEX IF NOT EXISTS idx_businesses_city ON businesses(city);
"""

_COLUMNS = (
    "name",
    "rating",
    "review_count",
    "category",
    "address",
    "price_range",
    "lat",
    "lng",
    "cid",
    "phone",
    "website",
    "google_url",
    "description",
    "place_id",
    "open_hours",
    "thumbnail",
    "categories",
    "city",
    "postal_code",
    "country_code",
    "query",
)

_INSERT_OR_IGNORE = f"""
INSERT OR IGNORE INTO businesses ({", ".join(_COLUMNS)})
VALUES ({", ".join("?" for _ in _COLUMNS)})
"""


class StorageError(RuntimeError):
    """Raised when the store cannot be opened or a batch cannot be committed."""


def _row_params(business: Business) -> Sequence[object]:
    return tuple(getattr(business, column) for column in _COLUMNS)


class Store:
    """Deduplicating business store backed by a single SQLite file.

    Rows are unique on ``(cid, query)``; re-inserting a known pair is silently
    absorbed. All writes go through one lock per store because SQLite allows a
    single writer at a time.
    """

    def __init__(self, db_path: str):
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        try:
            # Autocommit mode; transactions are opened explicitly per batch.
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
            for pragma in _PRAGMAS:
                self._conn.execute(pragma)
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise StorageError(f"opening store {self.db_path}: {exc}") from exc
        logger.info("Opened business store at %s", self.db_path)

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def insert_batch(self, businesses: Iterable[Business]) -> int:
        """Insert a batch in one transaction and return how many rows were new.

        A row that fails on its own is skipped; a failure of the transaction
        itself rolls back the whole batch and raises ``StorageError``.
        """
        with self._lock:
            cursor = None
            try:
                cursor = self._conn.cursor()
                cursor.execute("BEGIN")
                inserted = 0
                for business in businesses:
                    try:
                        cursor.execute(_INSERT_OR_IGNORE, _row_params(business))
                    except (sqlite3.Error, AttributeError) as exc:
                        logger.debug("Skipping malformed row %r: %s", getattr(business, "name", business), exc)
                        continue
                    inserted += cursor.rowcount
                cursor.execute("COMMIT")
            except sqlite3.Error as exc:
                if cursor is not None and self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                raise StorageError(f"inserting batch: {exc}") from exc
            finally:
                if cursor is not None:
                    cursor.close()
        return inserted

    def count(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) FROM businesses").fetchone()
        return int(row[0])

    def close(self) -> None:
        with self._lock:
            self._conn.close()
        logger.debug("Closed business store at %s", self.db_path)
