"""
Telecast Refresh Module
=======================

Batch refresh engine: candidate selection, concurrent fetching, episode
upserts, tag inference and quality scoring.
"""

from .feed_fetcher import FeedFetcher
from .pipeline import RefreshPipeline, ChannelOutcome, BatchReport
from .quality import compute_quality
from .selector import ChannelSelector

__all__ = [
    'FeedFetcher',
    'RefreshPipeline',
    'ChannelOutcome',
    'BatchReport',
    'compute_quality',
    'ChannelSelector',
]
