"""
Telecast Database Schema
========================

SQLite schema for the feed catalogue:
- channel: one row per tracked feed, with refresh health and quality
- episode: items seen in a channel's feed, keyed by (channel_id, episode_id)

Timestamps are ISO-8601 UTC strings, list-valued columns hold JSON text.
"""

import sqlite3
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class DatabaseSchema:
    """Database schema manager for the Telecast SQLite database."""

    EXPECTED_TABLES = {"channel", "episode"}

    def __init__(self, db_path: str = "data/telecast.db"):
        """Initialize database schema manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables and indexes (idempotent)."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA foreign_keys = ON")

            self._create_channel_table(conn)
            self._create_episode_table(conn)
            self._create_indexes(conn)

            conn.commit()
            logger.info("Database schema created successfully")

    def _create_channel_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS channel (
                channel_id TEXT PRIMARY KEY,
                rss TEXT NOT NULL,
                title TEXT,
                description TEXT,
                thumb TEXT,
                author TEXT,
                language TEXT,
                explicit BOOLEAN,
                website TEXT,
                categories TEXT,  -- JSON array, NULL when unknown
                tags TEXT NOT NULL DEFAULT '[]',  -- JSON array, grows by union
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP,
                last_success_at TIMESTAMP,
                last_error TEXT,
                last_error_at TIMESTAMP,
                consecutive_errors INTEGER NOT NULL DEFAULT 0 CHECK (consecutive_errors >= 0),
                episode_count INTEGER NOT NULL DEFAULT 0,
                latest_episode_at TIMESTAMP,
                avg_duration_seconds INTEGER,
                quality INTEGER NOT NULL DEFAULT 0 CHECK (quality BETWEEN 0 AND 100)
            )
        """
        )

    def _create_episode_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS episode (
                channel_id TEXT NOT NULL,
                episode_id TEXT NOT NULL,
                title TEXT NOT NULL DEFAULT 'Untitled',
                description TEXT,
                thumb TEXT,
                src TEXT,
                src_type TEXT,
                src_size_bytes INTEGER,
                duration_seconds INTEGER,
                published_at TIMESTAMP,
                link TEXT,
                season INTEGER,
                episode INTEGER,
                explicit BOOLEAN,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                PRIMARY KEY (channel_id, episode_id),
                FOREIGN KEY (channel_id) REFERENCES channel(channel_id) ON DELETE CASCADE
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        indexes = [
            # Channel indexes (search consumers filter on these)
            "CREATE INDEX IF NOT EXISTS idx_channel_quality ON channel(quality)",
            "CREATE INDEX IF NOT EXISTS idx_channel_errors ON channel(consecutive_errors)",
            "CREATE INDEX IF NOT EXISTS idx_channel_updated ON channel(updated_at)",
            # Episode indexes
            "CREATE INDEX IF NOT EXISTS idx_episode_published ON episode(channel_id, published_at)",
        ]

        for index_sql in indexes:
            conn.execute(index_sql)

    def drop_tables(self) -> None:
        """Drop all tables (for testing/reset purposes)."""
        with sqlite3.connect(self.db_path) as conn:
            for table in ("episode", "channel"):
                conn.execute(f"DROP TABLE IF EXISTS {table}")

            conn.commit()
            logger.info("All database tables dropped")

    def verify_schema(self) -> bool:
        """Verify that the catalogue tables exist and foreign keys hold."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute(
                    """
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name NOT LIKE 'sqlite_%'
                """
                )
                tables = {row[0] for row in cursor.fetchall()}

                missing = self.EXPECTED_TABLES - tables
                if missing:
                    logger.error(f"Missing tables: {sorted(missing)}")
                    return False

                violations = conn.execute("PRAGMA foreign_key_check").fetchall()
                if violations:
                    logger.error(f"Foreign key violations: {len(violations)}")
                    return False

                logger.info("Database schema verification passed")
                return True

        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False


def create_tables(db_path: str = "data/telecast.db") -> None:
    """Convenience function to create database tables."""
    DatabaseSchema(db_path).create_tables()
