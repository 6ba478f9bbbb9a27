"""
Refresh Candidate Selection
===========================

Picks the channels refreshed by the next batch.

Channels that were never attempted always go first. Everything else is
ordered by a jittered staleness key::

    updated_at
      + U(0,1) * 1 day  * consecutive_errors
      - U(0,1) * 1 week * log10(1 + episode_count)

so broken feeds drift later and prolific feeds earlier, on average only.
The randomness keeps failing feeds from being retried in lockstep.
"""

import math
import random
from typing import List, Optional, Sequence, Tuple

from ..database.models import ScheduleEntry
from ..utils.logging import get_logger_for_component

DAY_SECONDS = 24 * 60 * 60
WEEK_SECONDS = 7 * DAY_SECONDS


class ChannelSelector:
    """Ranks refresh candidates and takes the head of the ranking."""

    def __init__(self, rng: Optional[random.Random] = None):
        """Initialize selector.

        Args:
            rng: Random source; pass a seeded instance for reproducible ordering
        """
        self.rng = rng or random.Random()
        self.logger = get_logger_for_component("selector")

    def rank_key(self, entry: ScheduleEntry) -> Tuple[int, int, float, float]:
        """Sort key: (tier, has_timestamp, jittered timestamp, tie-break)."""
        tie_break = self.rng.random()

        if entry.never_attempted:
            return (0, 0, 0.0, tie_break)

        if entry.updated_at is None:
            return (1, 0, 0.0, tie_break)

        errors = max(entry.consecutive_errors, 0)
        episodes = max(entry.episode_count, 0)
        score = (
            entry.updated_at.timestamp()
            + self.rng.random() * DAY_SECONDS * errors
            - self.rng.random() * WEEK_SECONDS * math.log10(1 + episodes)
        )
        return (1, 1, score, tie_break)

    def select(self, candidates: Sequence[ScheduleEntry], batch_size: int) -> List[ScheduleEntry]:
        """Choose up to ``batch_size`` channels due for refresh.

        Args:
            candidates: Refresh state of the tracked population
            batch_size: Maximum number of channels to return

        Returns:
            Selected entries in refresh priority order
        """
        if batch_size <= 0 or not candidates:
            return []

        ranked = sorted(candidates, key=self.rank_key)
        selected = ranked[:batch_size]

        fresh = sum(1 for entry in selected if entry.never_attempted)
        self.logger.info(
            f"Selected {len(selected)} of {len(candidates)} channels "
            f"({fresh} never attempted)"
        )
        return selected
