"""
Refresh Pipeline Orchestrator
=============================

Runs one refresh batch: select due channels, then for every channel, as an
independent task, fetch -> parse -> upsert episodes -> aggregate -> tags ->
quality -> channel update. Each task returns a ``ChannelOutcome``; the batch
waits for all of them and derives its counts from the collected outcomes.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import aiohttp

from ..config.settings import TelecastSettings, get_settings
from ..database.connection import DatabaseConnection
from ..database.models import Channel, ScheduleEntry, utc_now
from ..ingestion.normalizer import parse_channel, parse_feed
from ..storage.channel_repository import ChannelRepository
from ..storage.episode_repository import EpisodeRepository
from ..utils.exceptions import (
    TelecastError,
    counts_against_feed_health,
    handle_exception,
)
from ..utils.logging import PerformanceLogger, get_logger_for_component
from ..utils.validators import URLValidator

from .feed_fetcher import FeedFetcher
from .quality import compute_quality
from .selector import ChannelSelector
from .tags import infer_tags


@dataclass
class ChannelOutcome:
    """Result of refreshing one channel."""
    channel_id: str
    rss: str
    succeeded: bool
    episodes_parsed: int = 0
    error: Optional[str] = None
    error_type: Optional[str] = None
    rate_limited: bool = False
    consecutive_errors: int = 0
    quality: Optional[int] = None
    duration_seconds: float = 0.0

    @property
    def short_url(self) -> str:
        url = self.rss
        for prefix in ("https://", "http://"):
            if url.startswith(prefix):
                url = url[len(prefix):]
                break
        return url


@dataclass
class BatchReport:
    """Run summary of one refresh batch."""
    outcomes: List[ChannelOutcome] = field(default_factory=list)
    candidates: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.succeeded)

    @property
    def failures(self) -> List[ChannelOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def rate_limited(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.rate_limited)

    @property
    def episodes_parsed(self) -> int:
        return sum(outcome.episodes_parsed for outcome in self.outcomes)

    @property
    def duration_seconds(self) -> float:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return 0.0

    def summary_lines(self) -> List[str]:
        """Operator-facing summary: counts, then one line per failure."""
        lines = [f"Done: {self.succeeded} succeeded, {self.failed} failed"]
        if self.failures:
            lines.append("")
            lines.append("Failed:")
            for outcome in self.failures:
                lines.append(f"  • {outcome.short_url} → {outcome.error}")
        return lines


class RefreshPipeline:
    """Batch refresh orchestrator for tracked channels."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        settings: Optional[TelecastSettings] = None,
        fetcher: Optional[FeedFetcher] = None,
        selector: Optional[ChannelSelector] = None,
    ):
        """Initialize refresh pipeline.

        Args:
            db_connection: Database connection manager
            settings: Application settings (default: global settings)
            fetcher: Feed fetcher (default: configured from settings)
            selector: Candidate selector (default: unseeded random source)
        """
        self.db = db_connection
        self.settings = settings or get_settings()
        self.logger = get_logger_for_component("pipeline")

        self.channels = ChannelRepository(db_connection)
        self.episodes = EpisodeRepository(db_connection)
        self.fetcher = fetcher or FeedFetcher(
            timeout=self.settings.refresh.fetch_timeout,
            user_agent=self.settings.refresh.user_agent,
            connection_limit=self.settings.refresh.connection_limit,
            connection_limit_per_host=self.settings.refresh.connection_limit_per_host,
        )
        self.selector = selector or ChannelSelector()

    async def run_batch(self, batch_size: Optional[int] = None) -> BatchReport:
        """Select and refresh one batch of channels.

        Args:
            batch_size: Maximum channels to refresh (default from config)

        Returns:
            BatchReport with one outcome per selected channel
        """
        if batch_size is None:
            batch_size = self.settings.refresh.batch_size
        report = BatchReport(started_at=utc_now())

        candidates = self.channels.get_schedule_entries()
        report.candidates = len(candidates)
        selected = self.selector.select(candidates, batch_size)

        if not selected:
            self.logger.warning("No channels due for refresh")
            report.finished_at = utc_now()
            return report

        self.logger.info(f"Processing {len(selected)} channels...")

        with PerformanceLogger(self.logger, "refresh batch", channels=len(selected)):
            async with self.fetcher.get_session() as session:
                total = len(selected)
                tasks = [
                    self.refresh_channel(entry, session, index=i, total=total)
                    for i, entry in enumerate(selected, start=1)
                ]
                results = await asyncio.gather(*tasks, return_exceptions=True)

        for entry, result in zip(selected, results):
            if isinstance(result, Exception):
                # refresh_channel converts failures itself; this is a last resort
                error = handle_exception(
                    result, self.logger, "refresh_channel", {'channel_id': entry.channel_id}
                )
                result = ChannelOutcome(
                    channel_id=entry.channel_id,
                    rss=entry.rss,
                    succeeded=False,
                    error=str(error),
                    error_type=type(result).__name__,
                    consecutive_errors=entry.consecutive_errors,
                )
            report.outcomes.append(result)

        report.finished_at = utc_now()

        for line in report.summary_lines():
            if line:
                self.logger.info(line)

        return report

    async def refresh_channel(
        self,
        entry: ScheduleEntry,
        session: aiohttp.ClientSession,
        index: int = 1,
        total: int = 1,
    ) -> ChannelOutcome:
        """Fetch, parse and persist one channel; never raises for feed problems."""
        start = time.monotonic()

        try:
            result = await self.fetcher.fetch(entry.rss, session)
            outcome = self._apply_success(entry, result.content)
        except Exception as e:
            outcome = self._apply_failure(entry, e)

        outcome.duration_seconds = time.monotonic() - start

        if outcome.succeeded:
            self.logger.info(
                f"[{index}/{total}] ✓ {entry.short_url} ({outcome.episodes_parsed} episodes)"
            )
        else:
            self.logger.info(f"[{index}/{total}] ✗ {entry.short_url} → {outcome.error}")

        return outcome

    def _apply_success(self, entry: ScheduleEntry, content: bytes) -> ChannelOutcome:
        now = utc_now()
        parsed, episodes = parse_feed(
            content,
            entry.channel_id,
            feed_url=entry.rss,
            limit=self.settings.refresh.max_episodes_per_crawl,
        )

        self.episodes.upsert_episodes(episodes, now=now)
        stats = self.episodes.get_channel_stats(entry.channel_id)
        tags = infer_tags(parsed, episodes)
        quality = compute_quality(stats, succeeded=True, consecutive_errors=0, now=now)

        self.channels.apply_refresh_success(
            entry.channel_id, parsed, tags, stats, quality, now=now
        )

        return ChannelOutcome(
            channel_id=entry.channel_id,
            rss=entry.rss,
            succeeded=True,
            episodes_parsed=len(episodes),
            consecutive_errors=0,
            quality=quality,
        )

    def _apply_failure(self, entry: ScheduleEntry, error: Exception) -> ChannelOutcome:
        if isinstance(error, TelecastError):
            message = str(error)
        else:
            message = str(handle_exception(
                error, self.logger, "refresh_channel", {'channel_id': entry.channel_id}
            ))

        outcome = ChannelOutcome(
            channel_id=entry.channel_id,
            rss=entry.rss,
            succeeded=False,
            error=message,
            error_type=type(error).__name__,
            consecutive_errors=entry.consecutive_errors,
        )

        if not counts_against_feed_health(error):
            # Throttling says nothing about the feed, leave its row alone
            outcome.rate_limited = True
            return outcome

        new_errors = entry.consecutive_errors + 1
        now = utc_now()

        try:
            stats = self.episodes.get_channel_stats(entry.channel_id)
            quality = compute_quality(stats, succeeded=False, consecutive_errors=new_errors, now=now)
            self.channels.record_failure(entry.channel_id, message, quality, now=now)
            outcome.consecutive_errors = new_errors
            outcome.quality = quality
        except TelecastError as db_error:
            self.logger.error(
                f"Could not record failure for {entry.channel_id}: {db_error}",
                extra=db_error.to_dict()
            )

        return outcome

    async def seed_channel(self, feed_url: str) -> Channel:
        """Fetch a feed once and register it as a tracked channel.

        Args:
            feed_url: Operator-supplied feed URL

        Returns:
            The parsed channel (already stored if its id existed)

        Raises:
            ValidationError: If the URL is not an acceptable feed URL
            FeedFetchError: If the feed cannot be retrieved
            FeedFormatError: If the document is not a recognized feed
        """
        url = URLValidator.validate_feed_url(feed_url)

        async with self.fetcher.get_session() as session:
            result = await self.fetcher.fetch(url, session)

        channel = parse_channel(result.content, feed_url=url)
        created = self.channels.seed_channel(channel)
        if not created:
            self.logger.info(f"Channel {channel.channel_id} is already tracked")
        return channel
