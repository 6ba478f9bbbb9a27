"""
Channel Quality Score
=====================

0-100 ranking signal recomputed after every refresh attempt, the sum of:

- freshness   0-40  linear decay over two years since the newest episode
- volume      0-30  7.5 * ln(1 + episode_count), capped
- reliability 0-20  20 on success, 10 on the first consecutive failure, else 0
- depth       0-10  by mean episode duration
"""

import math
from datetime import datetime
from typing import Optional

from ..database.models import ChannelStats, ensure_utc, utc_now

FRESHNESS_MAX = 40.0
FRESHNESS_WINDOW_DAYS = 730
VOLUME_MAX = 30.0
VOLUME_FACTOR = 7.5
RELIABILITY_MAX = 20.0
RELIABILITY_FIRST_FAILURE = 10.0


def _clamp(value: float, low: float, high: float) -> float:
    if math.isnan(value):
        return low
    return max(low, min(high, value))


def freshness_score(latest_episode_at: Optional[datetime], now: datetime) -> float:
    if latest_episode_at is None:
        return 0.0
    age_days = (ensure_utc(now) - ensure_utc(latest_episode_at)).total_seconds() / 86400
    return _clamp(FRESHNESS_MAX - age_days / FRESHNESS_WINDOW_DAYS * FRESHNESS_MAX, 0.0, FRESHNESS_MAX)


def volume_score(episode_count: int) -> float:
    return _clamp(VOLUME_FACTOR * math.log1p(max(episode_count or 0, 0)), 0.0, VOLUME_MAX)


def reliability_score(succeeded: bool, consecutive_errors: int) -> float:
    """Credit for the attempt that just finished.

    ``consecutive_errors`` is the count after that attempt.
    """
    if succeeded or consecutive_errors <= 0:
        return RELIABILITY_MAX
    if consecutive_errors == 1:
        return RELIABILITY_FIRST_FAILURE
    return 0.0


def depth_score(avg_duration: Optional[float]) -> float:
    if avg_duration is None or math.isnan(avg_duration):
        return 5.0
    if avg_duration >= 1800:
        return 10.0
    if avg_duration >= 600:
        return 7.0
    return 3.0


def compute_quality(
    stats: ChannelStats,
    succeeded: bool,
    consecutive_errors: int = 0,
    now: Optional[datetime] = None,
) -> int:
    """Score a channel from its aggregates and the latest refresh outcome.

    Args:
        stats: Aggregates over the channel's stored episodes
        succeeded: Whether the refresh that just ran succeeded
        consecutive_errors: Error count after that refresh
        now: Reference time for freshness

    Returns:
        Integer quality in [0, 100]
    """
    now = now or utc_now()
    total = (
        freshness_score(stats.latest_episode_at, now)
        + volume_score(stats.episode_count)
        + reliability_score(succeeded, consecutive_errors)
        + depth_score(stats.avg_duration)
    )
    # Round half up, then clamp
    return int(_clamp(math.floor(total + 0.5), 0, 100))
