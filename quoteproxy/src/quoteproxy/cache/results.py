import sqlite3
import json
import logging
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

class ResultCache:
    """
    Short-lived key-value cache for finished results, backed by SQLite.
    Schema: results(key TEXT PRIMARY KEY, data TEXT, stored_at REAL)

    Entries older than `ttl` seconds are treated as missing. This sits above
    the quote fetcher to spare Yahoo repeated lookups; sessions never go here.
    """
    def __init__(self, db_path: str = "quoteproxy_cache.db", ttl: float = 300,
                 clock: Callable[[], float] = time.time):
        self.db_path = db_path
        self.ttl = ttl
        self._clock = clock
        self._init_db()

    def _init_db(self):
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS results (
                        key TEXT PRIMARY KEY,
                        data TEXT,
                        stored_at REAL
                    )
                """)
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to init result cache at {self.db_path}: {e}")

    def get(self, key: str) -> Optional[Any]:
        """Retrieve and parse JSON data if still fresh."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute("SELECT data, stored_at FROM results WHERE key = ?", (key,))
                row = cursor.fetchone()
        except sqlite3.Error as e:
            logger.warning(f"Cache get failed for {key}: {e}")
            return None
        if not row:
            return None
        data, stored_at = row
        if self._clock() - stored_at >= self.ttl:
            return None
        try:
            return json.loads(data)
        except ValueError as e:
            logger.warning(f"Cache entry for {key} is corrupt: {e}")
            return None

    def put(self, key: str, value: Any):
        """Store data as JSON string."""
        try:
            json_str = json.dumps(value)
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("""
                    INSERT OR REPLACE INTO results (key, data, stored_at)
                    VALUES (?, ?, ?)
                """, (key, json_str, self._clock()))
                conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error(f"Cache put failed for {key}: {e}")
