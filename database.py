#!/usr/bin/env python3
"""
SQLite storage for harvested news items.
Items are keyed by link; re-inserting a known link is a no-op that keeps the
original first_seen timestamp.
"""

import sqlite3
import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from newsharvest.ingestion.item_types import NewsItem

logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Custom exception for database operations"""
    pass


class StoreWriteError(DatabaseError):
    """An item could not be written"""


class StoreReadError(DatabaseError):
    """A query could not be answered"""


def _format_ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    # Fixed-width ISO keeps lexicographic order equal to chronological order
    return value.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%f')


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)
    except ValueError:
        logger.warning(f"Unparseable first_seen value in store: {value!r}")
        return None


class NewsDatabase:
    """Link-keyed news item store"""

    def __init__(self, db_path: str = "news.db", busy_timeout: float = 30.0):
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self.max_retries = 3
        self.retry_delay = 0.5
        self._write_lock = threading.Lock()
        self._ensure_db_directory()
        self.init_database()

    def _ensure_db_directory(self):
        """Ensure database directory exists"""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def get_connection(self):
        """Open a connection, retrying while another process holds the lock"""
        conn = None
        for attempt in range(self.max_retries):
            try:
                conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute('PRAGMA journal_mode=WAL;')  # readers don't block the updaters
                conn.execute('PRAGMA synchronous=NORMAL;')
                break
            except sqlite3.OperationalError as e:
                if conn:
                    conn.close()
                    conn = None
                if "database is locked" in str(e) and attempt < self.max_retries - 1:
                    logger.warning(f"Database locked, retrying in {self.retry_delay}s (attempt {attempt + 1})")
                    time.sleep(self.retry_delay)
                    continue
                raise DatabaseError(f"Database connection failed: {e}") from e
            except sqlite3.Error as e:
                raise DatabaseError(f"Unexpected database error: {e}") from e
        try:
            yield conn
        finally:
            conn.close()

    def init_database(self):
        """Create the news table and indexes; safe to call on an existing store"""
        try:
            with self._write_lock, self.get_connection() as conn:
                conn.execute('''
                    CREATE TABLE IF NOT EXISTS news (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        link TEXT UNIQUE NOT NULL,
                        title TEXT NOT NULL,
                        first_seen TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
                    )
                ''')
                conn.execute('CREATE INDEX IF NOT EXISTS idx_news_first_seen ON news(first_seen)')
                conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(f"Schema initialization failed: {e}") from e

    def insert(self, item: NewsItem) -> bool:
        """Insert an item unless its link is already stored.

        Returns True when a new row was created, False for a known link.
        """
        first_seen = _format_ts(item.first_seen or datetime.now(timezone.utc))
        try:
            with self._write_lock, self.get_connection() as conn:
                cursor = conn.execute(
                    'INSERT OR IGNORE INTO news (link, title, first_seen) VALUES (?, ?, ?)',
                    (item.link, item.title or '', first_seen),
                )
                conn.commit()
                inserted = cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StoreWriteError(f"Insert failed for link='{item.link}', title='{item.title}': {e}") from e
        except DatabaseError as e:
            raise StoreWriteError(f"Insert failed for link='{item.link}': {e}") from e

        if not inserted:
            logger.debug(f"Skipping known link {item.link}")
        return inserted

    def query(self, term: Optional[str] = None) -> List[NewsItem]:
        """Return items newest first, optionally only titles containing term.

        Matching is case-sensitive (SQLite instr()).
        """
        sql = 'SELECT link, title, first_seen FROM news'
        params: tuple = ()
        if term:
            sql += ' WHERE instr(title, ?) > 0'
            params = (term,)
        sql += ' ORDER BY first_seen DESC, id DESC'
        try:
            with self.get_connection() as conn:
                rows = conn.execute(sql, params).fetchall()
        except (sqlite3.Error, DatabaseError) as e:
            raise StoreReadError(f"News query failed: {e}") from e
        return [
            NewsItem(link=row['link'], title=row['title'], first_seen=_parse_ts(row['first_seen']))
            for row in rows
        ]

    def count(self) -> int:
        try:
            with self.get_connection() as conn:
                row = conn.execute('SELECT COUNT(*) FROM news').fetchone()
        except (sqlite3.Error, DatabaseError) as e:
            raise StoreReadError(f"Count failed: {e}") from e
        return int(row[0] or 0)
