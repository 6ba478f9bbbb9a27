"""
Tests for the channel quality score.
"""

import math
from datetime import datetime, timedelta, timezone

import pytest

from telecast.database.models import ChannelStats
from telecast.refresh.quality import (
    compute_quality,
    depth_score,
    freshness_score,
    reliability_score,
    volume_score,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestComponents:
    """Each score component on its own."""

    def test_freshness(self):
        assert freshness_score(None, NOW) == 0.0
        assert freshness_score(NOW, NOW) == 40.0
        assert freshness_score(NOW - timedelta(days=365), NOW) == pytest.approx(20.0)
        assert freshness_score(NOW - timedelta(days=3000), NOW) == 0.0
        # Future-dated episodes do not earn a bonus
        assert freshness_score(NOW + timedelta(days=10), NOW) == 40.0

    def test_freshness_accepts_naive(self):
        assert freshness_score(datetime(2024, 6, 1, 12, 0), NOW) == 40.0

    def test_volume(self):
        assert volume_score(0) == 0.0
        assert volume_score(1) == pytest.approx(7.5 * math.log(2))
        assert volume_score(100) == pytest.approx(7.5 * math.log(101))
        assert volume_score(10_000) == 30.0

    @pytest.mark.parametrize("succeeded,errors,expected", [
        (True, 0, 20.0),
        (False, 0, 20.0),
        (False, 1, 10.0),
        (False, 2, 0.0),
        (False, 6, 0.0),
    ])
    def test_reliability(self, succeeded, errors, expected):
        assert reliability_score(succeeded, errors) == expected

    @pytest.mark.parametrize("avg,expected", [
        (None, 5.0),
        (float("nan"), 5.0),
        (0.0, 3.0),
        (599.9, 3.0),
        (600.0, 7.0),
        (1799.0, 7.0),
        (1800.0, 10.0),
        (7200.0, 10.0),
    ])
    def test_depth(self, avg, expected):
        assert depth_score(avg) == expected


class TestComputeQuality:
    """Combined score."""

    def test_empty_channel_after_success(self):
        assert compute_quality(ChannelStats(), succeeded=True, now=NOW) == 25

    def test_empty_channel_after_sixth_failure(self):
        assert compute_quality(ChannelStats(), succeeded=False, consecutive_errors=6, now=NOW) == 5

    def test_first_failure_halves_reliability(self):
        assert compute_quality(ChannelStats(), succeeded=False, consecutive_errors=1, now=NOW) == 15

    def test_healthy_channel(self):
        stats = ChannelStats(episode_count=200, latest_episode_at=NOW, avg_duration=3600.0)
        # 40 + 30 (capped) + 20 + 10
        assert compute_quality(stats, succeeded=True, now=NOW) == 100

    def test_rounds_half_up(self):
        # 7.5 * ln(1 + 1) = 5.198..., 0 + 5.198 + 20 + 5 = 30.198
        stats = ChannelStats(episode_count=1)
        assert compute_quality(stats, succeeded=True, now=NOW) == 30

    @pytest.mark.parametrize("latest", [
        None,
        NOW,
        NOW - timedelta(days=899),
        datetime(1, 1, 1, tzinfo=timezone.utc),
        datetime(9999, 12, 31, 23, 59, tzinfo=timezone.utc),
    ])
    @pytest.mark.parametrize("avg_duration", [None, 0.0, 600.0, 1e12, float("inf"), float("nan")])
    @pytest.mark.parametrize("count,errors", [(0, 0), (5, 1), (50, 3), (10**6, 0)])
    def test_bounds(self, latest, avg_duration, count, errors):
        stats = ChannelStats(
            episode_count=count,
            latest_episode_at=latest,
            avg_duration=avg_duration,
        )
        quality = compute_quality(stats, succeeded=errors == 0, consecutive_errors=errors, now=NOW)

        assert isinstance(quality, int)
        assert 0 <= quality <= 100

    def test_defaults_to_current_time(self):
        stats = ChannelStats(episode_count=3, latest_episode_at=datetime.now(timezone.utc))
        assert compute_quality(stats, succeeded=True) >= 40
