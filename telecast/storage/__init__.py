"""
Telecast Storage Layer
======================

Repository pattern implementations for data access abstraction.

This module provides:
- Channel repository for seeding, refresh bookkeeping and search reads
- Episode repository for idempotent upserts and channel aggregates
"""

from .channel_repository import ChannelRepository
from .episode_repository import EpisodeRepository

__all__ = [
    "ChannelRepository",
    "EpisodeRepository",
]
