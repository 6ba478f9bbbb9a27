"""Channel repository for database operations."""

import json
from datetime import datetime
from typing import List, Optional, Iterable

from ..database.connection import DatabaseConnection
from ..database.models import (
    Channel,
    ChannelStats,
    ScheduleEntry,
    format_timestamp,
    parse_timestamp,
    utc_now,
)
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


def merge_tags(existing: Iterable[str], inferred: Iterable[str]) -> List[str]:
    """Set union of stored and newly inferred tags, sorted for stable storage."""
    return sorted(set(existing or []) | {tag for tag in inferred if tag})


class ChannelRepository:
    """Repository for Channel persistence and refresh bookkeeping."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize repository with database connection.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component('channel_repository')

    def seed_channel(self, channel: Channel) -> bool:
        """Insert a channel unless one with the same id already exists.

        Args:
            channel: Parsed channel record

        Returns:
            True if a new row was created
        """
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute("""
                    INSERT INTO channel (
                        channel_id, rss, title, description, thumb, author,
                        language, explicit, website, categories, tags,
                        created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(channel_id) DO NOTHING
                """, (
                    channel.channel_id,
                    channel.rss,
                    channel.title,
                    channel.description,
                    channel.thumb,
                    channel.author,
                    channel.language,
                    channel.explicit,
                    channel.website,
                    channel.categories_json(),
                    json.dumps(merge_tags([], channel.tags)),
                    format_timestamp(utc_now()),
                    format_timestamp(channel.updated_at),
                ))
                conn.commit()

                created = cursor.rowcount == 1
                if created:
                    self.logger.info(f"Seeded channel {channel.channel_id}: {channel.title}")
                return created

        except Exception as e:
            self.logger.error(f"Error seeding channel {channel.channel_id}: {e}")
            raise DatabaseError(
                message=f"Failed to seed channel {channel.channel_id}",
                error_code=ErrorCode.DATABASE_ERROR,
                context={'channel_id': channel.channel_id, 'rss': channel.rss}
            ) from e

    def get_channel(self, channel_id: str) -> Optional[Channel]:
        """Get channel by id.

        Returns:
            Channel or None if not found
        """
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM channel WHERE channel_id = ?", (channel_id,)
                ).fetchone()

                return Channel.from_db_row(row) if row else None

        except Exception as e:
            self.logger.error(f"Error getting channel {channel_id}: {e}")
            raise DatabaseError(
                message=f"Failed to get channel {channel_id}",
                error_code=ErrorCode.DATABASE_ERROR,
                context={'channel_id': channel_id, 'operation': 'get_channel'}
            ) from e

    def list_channels(
        self,
        min_quality: Optional[int] = None,
        tag: Optional[str] = None,
        max_errors: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Channel]:
        """List channels the way search consumers read them.

        Args:
            min_quality: Only channels with quality >= this value
            tag: Only channels carrying this tag
            max_errors: Only channels with at most this many consecutive errors
            limit: Maximum number of rows

        Returns:
            Channels ordered by quality, best first
        """
        clauses = []
        params: list = []

        if min_quality is not None:
            clauses.append("quality >= ?")
            params.append(min_quality)
        if tag:
            clauses.append("EXISTS (SELECT 1 FROM json_each(channel.tags) WHERE json_each.value = ?)")
            params.append(tag)
        if max_errors is not None:
            clauses.append("consecutive_errors <= ?")
            params.append(max_errors)

        query = "SELECT * FROM channel"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY quality DESC, title COLLATE NOCASE"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(query, tuple(params)).fetchall()
                return [Channel.from_db_row(row) for row in rows]

        except Exception as e:
            self.logger.error(f"Error listing channels: {e}")
            raise DatabaseError(
                message="Failed to list channels",
                error_code=ErrorCode.DATABASE_ERROR,
                query=query,
                context={'operation': 'list_channels'}
            ) from e

    def get_schedule_entries(self) -> List[ScheduleEntry]:
        """Load the refresh state of every tracked channel for the selector."""
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute("""
                    SELECT channel_id, rss, updated_at, last_success_at,
                           last_error_at, consecutive_errors, episode_count
                    FROM channel
                """).fetchall()

            return [
                ScheduleEntry(
                    channel_id=row['channel_id'],
                    rss=row['rss'],
                    updated_at=parse_timestamp(row['updated_at']),
                    last_success_at=parse_timestamp(row['last_success_at']),
                    last_error_at=parse_timestamp(row['last_error_at']),
                    consecutive_errors=row['consecutive_errors'] or 0,
                    episode_count=row['episode_count'] or 0,
                )
                for row in rows
            ]

        except Exception as e:
            self.logger.error(f"Error loading schedule entries: {e}")
            raise DatabaseError(
                message="Failed to load refresh candidates",
                error_code=ErrorCode.DATABASE_ERROR,
                context={'operation': 'get_schedule_entries'}
            ) from e

    def apply_refresh_success(
        self,
        channel_id: str,
        parsed: Channel,
        tags: Iterable[str],
        stats: ChannelStats,
        quality: int,
        now: Optional[datetime] = None,
    ) -> bool:
        """Record a successful refresh.

        New non-null metadata overwrites stored values, tags are merged by
        union, the error state is cleared and aggregates/quality replaced.

        Returns:
            True if the channel row exists and was updated
        """
        now = now or utc_now()

        try:
            with self.db.transaction() as conn:
                row = conn.execute(
                    "SELECT tags FROM channel WHERE channel_id = ?", (channel_id,)
                ).fetchone()
                if row is None:
                    self.logger.warning(f"Refresh succeeded for unknown channel {channel_id}")
                    return False

                stored_tags = json.loads(row['tags']) if row['tags'] else []

                conn.execute("""
                    UPDATE channel SET
                        title = coalesce(?, title),
                        description = coalesce(?, description),
                        thumb = coalesce(?, thumb),
                        author = coalesce(?, author),
                        language = coalesce(?, language),
                        explicit = coalesce(?, explicit),
                        website = coalesce(?, website),
                        categories = coalesce(?, categories),
                        tags = ?,
                        consecutive_errors = 0,
                        last_error = NULL,
                        last_error_at = NULL,
                        last_success_at = ?,
                        updated_at = ?,
                        episode_count = ?,
                        latest_episode_at = ?,
                        avg_duration_seconds = ?,
                        quality = ?
                    WHERE channel_id = ?
                """, (
                    parsed.title,
                    parsed.description,
                    parsed.thumb,
                    parsed.author,
                    parsed.language,
                    parsed.explicit,
                    parsed.website,
                    parsed.categories_json(),
                    json.dumps(merge_tags(stored_tags, tags)),
                    format_timestamp(now),
                    format_timestamp(now),
                    stats.episode_count,
                    format_timestamp(stats.latest_episode_at),
                    stats.avg_duration_seconds,
                    quality,
                    channel_id,
                ))

                return True

        except Exception as e:
            self.logger.error(f"Error recording refresh success for {channel_id}: {e}")
            raise DatabaseError(
                message=f"Failed to update channel {channel_id}",
                error_code=ErrorCode.DATABASE_TRANSACTION,
                context={'channel_id': channel_id, 'operation': 'apply_refresh_success'}
            ) from e

    def record_failure(
        self,
        channel_id: str,
        message: str,
        quality: int,
        now: Optional[datetime] = None,
    ) -> bool:
        """Bump the consecutive error count and store the failure.

        Args:
            channel_id: Channel that failed to refresh
            message: Error message shown to operators
            quality: Quality recomputed with the new error count
            now: Failure timestamp

        Returns:
            True if the channel row exists and was updated
        """
        now = now or utc_now()

        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute("""
                    UPDATE channel SET
                        consecutive_errors = consecutive_errors + 1,
                        last_error = ?,
                        last_error_at = ?,
                        updated_at = ?,
                        quality = ?
                    WHERE channel_id = ?
                """, (message, format_timestamp(now), format_timestamp(now), quality, channel_id))
                conn.commit()

                return cursor.rowcount > 0

        except Exception as e:
            self.logger.error(f"Error recording failure for {channel_id}: {e}")
            raise DatabaseError(
                message=f"Failed to record failure for channel {channel_id}",
                error_code=ErrorCode.DATABASE_ERROR,
                context={'channel_id': channel_id, 'operation': 'record_failure'}
            ) from e

    def count_channels(self) -> int:
        try:
            with self.db.get_connection() as conn:
                return conn.execute("SELECT COUNT(*) FROM channel").fetchone()[0]

        except Exception as e:
            self.logger.error(f"Error counting channels: {e}")
            raise DatabaseError(
                message="Failed to count channels",
                error_code=ErrorCode.DATABASE_ERROR,
                context={'operation': 'count_channels'}
            ) from e
