"""
Feed Normalizer
===============

Turns a raw RSS 2.0, Atom, YouTube Atom or RSS 1.0/RDF document into
canonical ``Channel`` and ``Episode`` records.

Both entry points are pure: the same bytes always produce the same records,
apart from ``Channel.updated_at`` which is stamped with the parse time.
"""

from typing import List, Optional, Tuple, Union

from ..database.models import Channel, Episode
from ..utils.exceptions import FeedFormatError
from ..utils.logging import get_logger_for_component
from .extractors import (
    AUTHOR_CHAIN,
    CHANNEL_DESCRIPTION_CHAIN,
    CHANNEL_THUMBNAIL_CHAIN,
    DURATION_CHAIN,
    EPISODE_DESCRIPTION_CHAIN,
    EPISODE_THUMBNAIL_CHAIN,
    LANGUAGE_CHAIN,
    PUBLISHED_CHAIN,
    FeedDocument,
    FeedFormat,
    channel_explicit,
    channel_website,
    detect_format,
    episode_key,
    extract_categories,
    extract_media,
    first_match,
    generate_channel_id,
    hash_episode_key,
    image_url,
    media_thumbnail,
    normalize_url,
    parse_explicit,
    parse_int,
    primary_link,
    self_link,
    text_of,
    youtube_channel_id,
    youtube_channel_key,
)
from .sanitizer import sanitize_text
from .xml_tree import XmlNode, parse_document

MAX_EPISODES_PER_CRAWL = 50

logger = get_logger_for_component("normalizer")


def load_feed(xml: Union[str, bytes]) -> FeedDocument:
    """Parse and classify a document.

    Raises:
        FeedFormatError: If the document is unparsable or not a known feed dialect
    """
    return detect_format(parse_document(xml))


def parse_channel(xml: Union[str, bytes], feed_url: Optional[str] = None) -> Channel:
    """Build the canonical Channel record of a feed document.

    Args:
        xml: Raw feed document
        feed_url: URL the document was fetched from; used as the feed URL
            when the document does not declare its own, and as the identity
            source of last resort

    Returns:
        Channel populated with metadata and platform tags only; refresh
        state and aggregates keep their defaults

    Raises:
        FeedFormatError: If the root element is not a recognized feed
    """
    document = load_feed(xml)
    return _build_channel(document, feed_url)


def _build_channel(document: FeedDocument, feed_url: Optional[str]) -> Channel:
    node = document.channel
    link = primary_link(node)
    declared_feed = self_link(node)

    if document.format is FeedFormat.YOUTUBE:
        yt_id = youtube_channel_id(document.root)
        channel_id = youtube_channel_key(yt_id)
        rss = declared_feed or feed_url or f"https://www.youtube.com/feeds/videos.xml?channel_id={yt_id}"
        # YouTube feeds carry no channel avatar, borrow the first video's
        thumb = media_thumbnail(document.items[0]) if document.items else None
    else:
        identity = link or declared_feed or feed_url
        if not identity:
            raise FeedFormatError("Feed has no link to derive a channel id from", feed_url=feed_url)
        channel_id = generate_channel_id(identity)
        if not channel_id:
            raise FeedFormatError(f"Cannot derive a channel id from {identity!r}", feed_url=feed_url)
        rss = declared_feed or feed_url or identity
        thumb = first_match(CHANNEL_THUMBNAIL_CHAIN, node)
        if thumb is None and document.format is FeedFormat.RDF:
            thumb = image_url(document.root)

    language = first_match(LANGUAGE_CHAIN, node)
    if language is None and node is not document.root:
        language = first_match(LANGUAGE_CHAIN, document.root)

    return Channel(
        channel_id=channel_id,
        rss=rss,
        title=sanitize_text(node.find("title")),
        description=first_match(CHANNEL_DESCRIPTION_CHAIN, node),
        thumb=thumb,
        author=first_match(AUTHOR_CHAIN, node),
        language=language,
        explicit=channel_explicit(node),
        website=channel_website(node),
        categories=extract_categories(node),
        tags=document.platform_tags,
    )


def parse_episodes(
    xml: Union[str, bytes],
    channel_id: str,
    limit: int = MAX_EPISODES_PER_CRAWL,
) -> List[Episode]:
    """Build Episode records for the first ``limit`` items of a feed.

    Items keep document order; publishers list newest first and that order
    is trusted, never re-sorted.

    Args:
        xml: Raw feed document
        channel_id: Owning channel for every returned episode
        limit: Maximum number of items to keep

    Returns:
        Episodes, or an empty list when the document is not a recognized feed
    """
    try:
        document = load_feed(xml)
    except FeedFormatError as e:
        logger.debug(f"No episodes parsed for {channel_id}: {e}")
        return []

    return [
        _build_episode(item, channel_id, document.format)
        for item in document.items[:max(limit, 0)]
    ]


def parse_feed(
    xml: Union[str, bytes],
    channel_id: str,
    feed_url: Optional[str] = None,
    limit: int = MAX_EPISODES_PER_CRAWL,
) -> Tuple[Channel, List[Episode]]:
    """Channel metadata and episodes from a single parse of the document.

    Episodes are attached to ``channel_id`` (the stored identity), not to
    the id derived from the document.

    Raises:
        FeedFormatError: If the root element is not a recognized feed
    """
    document = load_feed(xml)
    channel = _build_channel(document, feed_url)
    episodes = [
        _build_episode(item, channel_id, document.format)
        for item in document.items[:max(limit, 0)]
    ]
    return channel, episodes


def _build_episode(item: XmlNode, channel_id: str, feed_format: FeedFormat) -> Episode:
    youtube = feed_format is FeedFormat.YOUTUBE

    episode_id = text_of(item.find("yt:videoId")) if youtube else None
    if not episode_id:
        episode_id = hash_episode_key(episode_key(item))

    title = sanitize_text(item.find("title"))
    if title is None and youtube:
        title = sanitize_text(item.find_path("media:group/media:title"))

    media = extract_media(item)

    return Episode(
        channel_id=channel_id,
        episode_id=episode_id,
        title=title,
        description=first_match(EPISODE_DESCRIPTION_CHAIN, item),
        thumb=first_match(EPISODE_THUMBNAIL_CHAIN, item),
        # YouTube exposes no direct media file
        src=None if youtube else media.src,
        src_type=None if youtube else media.src_type,
        src_size_bytes=None if youtube else media.src_size_bytes,
        duration_seconds=first_match(DURATION_CHAIN, item),
        published_at=first_match(PUBLISHED_CHAIN, item),
        link=normalize_url(primary_link(item)),
        season=parse_int(text_of(item.find("itunes:season"))),
        episode=parse_int(text_of(item.find("itunes:episode"))),
        explicit=parse_explicit(text_of(item.find("itunes:explicit"))),
    )
