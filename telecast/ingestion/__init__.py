"""
Telecast Ingestion Module
=========================

Feed document parsing and normalization.

This module handles:
- XML parsing into a uniform node model
- Feed dialect detection and field fallback chains
- Text sanitization and canonical Channel/Episode construction
"""

from .normalizer import parse_channel, parse_episodes, parse_feed

__all__ = [
    "parse_channel",
    "parse_episodes",
    "parse_feed",
]
