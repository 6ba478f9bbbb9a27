"""
Telecast Database Connection Management
=======================================

Pooled SQLite access for the channel/episode catalogue. Refresh tasks write
one channel at a time, so the only contention is SQLite's own write lock;
WAL mode lets readers (the CLI, stats) run alongside a batch.
"""

import sqlite3
import threading
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Generator, Dict, Any
from queue import Queue, Empty, Full

logger = logging.getLogger(__name__)

CATALOGUE_TABLES = ("channel", "episode")

_PRAGMAS = (
    "PRAGMA foreign_keys = ON",
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA temp_store = MEMORY",
)


class DatabaseConnection:
    """Thread-safe pool of SQLite connections to one catalogue file.

    Connections are opened on demand up to ``pool_size``. When every pooled
    connection is busy for longer than ``acquire_timeout`` an extra one is
    opened and closed again on release.
    """

    def __init__(self, db_path: str = "data/telecast.db", pool_size: int = 5,
                 acquire_timeout: float = 10.0):
        self.db_path = Path(db_path)
        self.pool_size = pool_size
        self.acquire_timeout = acquire_timeout
        self.pool: Queue = Queue(maxsize=pool_size)
        self._lock = threading.Lock()
        self._opened = 0

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def open_connections(self) -> int:
        return self._opened

    def _open(self) -> sqlite3.Connection:
        # Busy timeout covers a concurrent writer holding the WAL lock
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
        for pragma in _PRAGMAS:
            conn.execute(pragma)
        conn.row_factory = sqlite3.Row

        with self._lock:
            self._opened += 1
        logger.debug(f"Opened connection {self._opened} to {self.db_path}")
        return conn

    def _acquire(self) -> sqlite3.Connection:
        try:
            return self.pool.get_nowait()
        except Empty:
            pass

        with self._lock:
            can_grow = self._opened < self.pool_size
        if can_grow:
            return self._open()

        try:
            return self.pool.get(timeout=self.acquire_timeout)
        except Empty:
            logger.warning(
                f"All {self.pool_size} pooled connections busy for {self.acquire_timeout:g}s, "
                "opening an overflow connection"
            )
            return self._open()

    def _release(self, conn: sqlite3.Connection) -> None:
        try:
            self.pool.put_nowait(conn)
        except Full:
            conn.close()
            with self._lock:
                self._opened -= 1

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Borrow a connection; it returns to the pool when the block exits.

        Usage:
            with db.get_connection() as conn:
                rows = conn.execute("SELECT * FROM channel").fetchall()
        """
        conn = self._acquire()
        try:
            yield conn
        except BaseException as e:
            if isinstance(e, sqlite3.Error):
                logger.error(f"Database error on {self.db_path.name}: {e}")
            # Never hand a half-written transaction to the next borrower
            if conn.in_transaction:
                conn.rollback()
            raise
        finally:
            self._release(conn)

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Run a block inside ``BEGIN IMMEDIATE``; commit on success, roll back on error.

        Taking the write lock up front keeps an episode upsert and the
        channel update that follows it from interleaving with another
        channel's writes.
        """
        with self.get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            conn.commit()

    def execute_one(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with self.get_connection() as conn:
            return conn.execute(query, params).fetchone()

    def execute_update(self, query: str, params: tuple = ()) -> int:
        """Run one write statement and commit. Returns the affected row count."""
        with self.get_connection() as conn:
            cursor = conn.execute(query, params)
            conn.commit()
            return cursor.rowcount

    def get_database_info(self) -> Dict[str, Any]:
        """File size, journal mode and catalogue row counts."""
        with self.get_connection() as conn:
            page_count = conn.execute("PRAGMA page_count").fetchone()[0]
            page_size = conn.execute("PRAGMA page_size").fetchone()[0]
            journal_mode = conn.execute("PRAGMA journal_mode").fetchone()[0]

            table_counts = {}
            for table in CATALOGUE_TABLES:
                try:
                    table_counts[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                except sqlite3.OperationalError:
                    # Schema not created yet
                    table_counts[table] = 0

        return {
            'database_size_mb': page_count * page_size / (1024 * 1024),
            'journal_mode': journal_mode,
            'table_counts': table_counts,
            'pool_size': self.pool_size,
            'open_connections': self._opened,
        }

    def close_all_connections(self) -> None:
        closed = 0
        while True:
            try:
                conn = self.pool.get_nowait()
            except Empty:
                break
            conn.close()
            closed += 1

        with self._lock:
            self._opened = max(self._opened - closed, 0)
        logger.debug(f"Closed {closed} pooled connections to {self.db_path}")


_db_manager: Optional[DatabaseConnection] = None


def get_db_manager(db_path: str = "data/telecast.db", pool_size: int = 5) -> DatabaseConnection:
    """Process-wide DatabaseConnection, created on first use.

    Later calls return the same instance regardless of arguments.
    """
    global _db_manager

    if _db_manager is None:
        _db_manager = DatabaseConnection(db_path, pool_size=pool_size)

    return _db_manager
