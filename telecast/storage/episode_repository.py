"""Episode repository for database operations."""

from datetime import datetime
from typing import List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import (
    ChannelStats,
    Episode,
    format_timestamp,
    parse_timestamp,
    utc_now,
)
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


class EpisodeRepository:
    """Repository for Episode upserts and per-channel aggregates."""

    UPSERT_SQL = """
        INSERT INTO episode (
            channel_id, episode_id, title, description, thumb,
            src, src_type, src_size_bytes, duration_seconds, published_at,
            link, season, episode, explicit, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(channel_id, episode_id) DO UPDATE SET
            title = excluded.title,
            description = excluded.description,
            thumb = excluded.thumb,
            src = excluded.src,
            src_type = excluded.src_type,
            src_size_bytes = excluded.src_size_bytes,
            duration_seconds = excluded.duration_seconds,
            published_at = excluded.published_at,
            link = excluded.link,
            season = excluded.season,
            episode = excluded.episode,
            explicit = excluded.explicit,
            updated_at = excluded.updated_at
    """

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize repository with database connection.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component('episode_repository')

    def upsert_episodes(self, episodes: List[Episode], now: Optional[datetime] = None) -> int:
        """Insert new episodes or overwrite the mutable fields of existing ones.

        Rows are matched on (channel_id, episode_id); the last write wins and
        nothing is ever deleted.

        Args:
            episodes: Parsed episodes, possibly from several channels
            now: Write timestamp

        Returns:
            Number of episodes written
        """
        if not episodes:
            return 0

        stamp = format_timestamp(now or utc_now())
        params = [
            (
                ep.channel_id,
                ep.episode_id,
                ep.title,
                ep.description,
                ep.thumb,
                ep.src,
                ep.src_type,
                ep.src_size_bytes,
                ep.duration_seconds,
                format_timestamp(ep.published_at),
                ep.link,
                ep.season,
                ep.episode,
                ep.explicit,
                stamp,
                stamp,
            )
            for ep in episodes
        ]

        try:
            with self.db.transaction() as conn:
                conn.executemany(self.UPSERT_SQL, params)

            self.logger.debug(f"Upserted {len(params)} episodes")
            return len(params)

        except Exception as e:
            self.logger.error(f"Error upserting {len(params)} episodes: {e}")
            raise DatabaseError(
                message=f"Failed to upsert {len(params)} episodes",
                error_code=ErrorCode.DATABASE_TRANSACTION,
                context={'channel_ids': sorted({ep.channel_id for ep in episodes})}
            ) from e

    def get_episodes(self, channel_id: str, limit: int = 50) -> List[Episode]:
        """Get a channel's episodes, newest first, undated last."""
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute("""
                    SELECT * FROM episode
                    WHERE channel_id = ?
                    ORDER BY published_at IS NULL, published_at DESC, episode_id
                    LIMIT ?
                """, (channel_id, limit)).fetchall()

                return [Episode.from_db_row(row) for row in rows]

        except Exception as e:
            self.logger.error(f"Error getting episodes for {channel_id}: {e}")
            raise DatabaseError(
                message=f"Failed to get episodes for channel {channel_id}",
                error_code=ErrorCode.DATABASE_ERROR,
                context={'channel_id': channel_id, 'operation': 'get_episodes'}
            ) from e

    def count_episodes(self, channel_id: Optional[str] = None) -> int:
        """Count stored episodes, for one channel or overall."""
        try:
            with self.db.get_connection() as conn:
                if channel_id is None:
                    row = conn.execute("SELECT COUNT(*) FROM episode").fetchone()
                else:
                    row = conn.execute(
                        "SELECT COUNT(*) FROM episode WHERE channel_id = ?", (channel_id,)
                    ).fetchone()
                return row[0]

        except Exception as e:
            self.logger.error(f"Error counting episodes: {e}")
            raise DatabaseError(
                message="Failed to count episodes",
                error_code=ErrorCode.DATABASE_ERROR,
                context={'channel_id': channel_id, 'operation': 'count_episodes'}
            ) from e

    def get_channel_stats(self, channel_id: str) -> ChannelStats:
        """Aggregate episode count, latest publish date and mean known duration."""
        try:
            with self.db.get_connection() as conn:
                row = conn.execute("""
                    SELECT COUNT(*) AS episode_count,
                           MAX(published_at) AS latest_episode_at,
                           AVG(duration_seconds) AS avg_duration
                    FROM episode
                    WHERE channel_id = ?
                """, (channel_id,)).fetchone()

            return ChannelStats(
                episode_count=row['episode_count'] or 0,
                latest_episode_at=parse_timestamp(row['latest_episode_at']),
                avg_duration=row['avg_duration'],
            )

        except Exception as e:
            self.logger.error(f"Error computing stats for {channel_id}: {e}")
            raise DatabaseError(
                message=f"Failed to compute stats for channel {channel_id}",
                error_code=ErrorCode.DATABASE_ERROR,
                context={'channel_id': channel_id, 'operation': 'get_channel_stats'}
            ) from e
