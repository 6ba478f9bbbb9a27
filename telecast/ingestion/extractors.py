"""
Telecast Field Extractors
=========================

Format detection and the per-field extraction rules used by the normalizer.

Fields with several possible sources are expressed as ordered tuples of small
extractor functions (``CHANNEL_THUMBNAIL_CHAIN``, ``EPISODE_THUMBNAIL_CHAIN``
...). ``first_match`` applies a chain and returns the first non-None result,
so every fallback level can be exercised on its own.

None of the value parsers raise: a bad date, duration or URL degrades to None.
"""

import base64
import re
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from dateutil import parser as dateutil_parser

from ..database.models import ensure_utc
from ..utils.exceptions import FeedFormatError
from ..utils.validators import normalize_media_url
from .sanitizer import sanitize_text
from .xml_tree import XmlNode


Extractor = Callable[[XmlNode], Any]


def first_match(chain: Sequence[Extractor], node: Optional[XmlNode]) -> Any:
    """Apply extractors in order and return the first non-None result."""
    if node is None:
        return None
    for extractor in chain:
        value = extractor(node)
        if value is not None:
            return value
    return None


# ============================================================================
# Format detection
# ============================================================================


class FeedFormat(str, Enum):
    """Feed dialects the normalizer understands."""
    RSS = "rss"
    ATOM = "atom"
    YOUTUBE = "youtube"
    RDF = "rdf"


@dataclass
class FeedDocument:
    """A recognized feed: where channel fields live and which nodes are items."""
    format: FeedFormat
    root: XmlNode
    channel: XmlNode
    items: List[XmlNode] = field(default_factory=list)

    @property
    def platform_tags(self) -> List[str]:
        return ["youtube"] if self.format is FeedFormat.YOUTUBE else []


def youtube_channel_id(root: XmlNode) -> Optional[str]:
    return text_of(root.find("yt:channelId"))


def detect_format(root: XmlNode) -> FeedDocument:
    """Identify the feed dialect from the parsed root element.

    Raises:
        FeedFormatError: If the root is not an Atom, RSS 2.0 or RDF feed
    """
    if root.name == "feed":
        feed_format = FeedFormat.YOUTUBE if youtube_channel_id(root) else FeedFormat.ATOM
        return FeedDocument(feed_format, root, root, root.find_all("entry"))

    if root.name == "rss":
        channel = root.find("channel")
        if channel is None:
            raise FeedFormatError("RSS document has no <channel> element")
        return FeedDocument(FeedFormat.RSS, root, channel, channel.find_all("item"))

    if root.name == "RDF":
        channel = root.find("channel")
        if channel is None:
            raise FeedFormatError("RDF document has no <channel> element")
        items = root.find_all("item") or channel.find_all("item")
        return FeedDocument(FeedFormat.RDF, root, channel, items)

    raise FeedFormatError(f"Unsupported feed format: <{root.name}>")


# ============================================================================
# Value parsers
# ============================================================================


def text_of(node: Optional[XmlNode]) -> Optional[str]:
    """Stripped text payload of a node, None when absent or blank."""
    if node is None:
        return None
    value = node.content.strip()
    return value or None


def normalize_url(value: Any) -> Optional[str]:
    return normalize_media_url(value)


_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def hash_episode_key(key: str) -> str:
    """Derive an episode id from its unique key.

    31-multiplier rolling hash over UTF-16 code units, wrapped to a signed
    32-bit integer, absolute value, base-36. Ids already persisted depend on
    this exact arithmetic.
    """
    data = key.encode("utf-16-le", errors="surrogatepass")
    h = 0
    for i in range(0, len(data), 2):
        h = (h * 31 + (data[i] | (data[i + 1] << 8))) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return _to_base36(abs(h))


_HIERARCHICAL_SCHEMES = {"http", "https", "ftp", "ws", "wss", "file"}


def generate_channel_id(url: str) -> str:
    """Stable channel identity from the canonical link: host + path.

    Strings that do not parse as absolute URLs fall back to base64 of the
    raw string truncated to 32 characters.
    """
    value = url.strip()
    try:
        parts = urlsplit(value)
        if not parts.scheme:
            raise ValueError("relative URL")
        if parts.scheme.lower() in _HIERARCHICAL_SCHEMES:
            if not parts.netloc:
                raise ValueError("missing host")
            return (parts.hostname or "") + (parts.path or "/")
        opaque = (parts.hostname or "") + parts.path
        if not opaque:
            raise ValueError("empty host and path")
        return opaque
    except ValueError:
        return base64.b64encode(value.encode("utf-8")).decode("ascii")[:32]


def youtube_channel_key(yt_channel_id: str) -> str:
    return f"youtube.com/channel/{yt_channel_id}"


_DIGITS_RE = re.compile(r"^\d+$", re.ASCII)

# Largest value an SQLite INTEGER column holds
MAX_SQLITE_INT = 2 ** 63 - 1


def _bounded_int(digits: str) -> int:
    """int() of a digit string, saturating past the SQLite range."""
    digits = digits.lstrip("0") or "0"
    if len(digits) > 19:
        return MAX_SQLITE_INT + 1
    return int(digits)


def parse_duration(value: Any) -> Optional[int]:
    """Seconds from ``HH:MM:SS``, ``MM:SS`` or a bare integer."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    parts = text.split(":")
    if len(parts) > 3 or not all(_DIGITS_RE.match(part) for part in parts):
        return None

    total = 0
    for part in parts:
        total = total * 60 + _bounded_int(part)
    if total > MAX_SQLITE_INT:
        return None
    return total


def parse_explicit(value: Any) -> Optional[bool]:
    if value is None:
        return None
    text = str(value).strip().lower()
    if not text:
        return None
    return text in ("yes", "true")


def parse_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    text = str(value).strip()
    if not _DIGITS_RE.match(text):
        return None
    number = _bounded_int(text)
    return number if number <= MAX_SQLITE_INT else None


# Named zones seen in real feeds, offsets in seconds
_custom_tzinfos = {
    "UTC": 0,
    "UT": 0,
    "GMT": 0,
    "Z": 0,
    "WET": 0,
    "WEST": 3600,
    "BST": 3600,
    "CET": 3600,
    "CEST": 7200,
    "EET": 7200,
    "EEST": 10800,
    "MSK": 10800,
    "IST": 19800,
    "PST": -28800,
    "PDT": -25200,
    "MST": -25200,
    "MDT": -21600,
    "CST": -21600,
    "CDT": -18000,
    "EST": -18000,
    "EDT": -14400,
    "AKST": -32400,
    "AKDT": -28800,
    "HST": -36000,
    "AEST": 36000,
    "AEDT": 39600,
    "ACST": 34200,
    "AWST": 28800,
    "NZST": 43200,
    "NZDT": 46800,
    "JST": 32400,
    "KST": 32400,
    "SGT": 28800,
}

# Fills fields a partial date leaves out, keeps parsing independent of today
_DATE_DEFAULT = datetime(1970, 1, 1)


def parse_date(value: Any) -> Optional[datetime]:
    """Lenient date parsing to an aware UTC datetime."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    try:
        # RFC 822 fast path, the RSS norm
        parsed = parsedate_to_datetime(text)
        # Naive means the zone name was not understood, let dateutil retry it
        if parsed is not None and parsed.tzinfo is not None:
            return ensure_utc(parsed)
    except (TypeError, ValueError, IndexError, OverflowError):
        pass

    try:
        parsed = dateutil_parser.parse(text, tzinfos=_custom_tzinfos, default=_DATE_DEFAULT)
        # Offsets near the datetime range edges overflow on conversion
        return ensure_utc(parsed)
    except (ValueError, TypeError, OverflowError):
        return None


# ============================================================================
# Link helpers
# ============================================================================


def primary_link(node: XmlNode) -> Optional[str]:
    """RSS ``<link>`` text, or Atom ``rel="alternate"`` href, else first href."""
    links = node.find_all("link")
    for link in links:
        href = link.get("href")
        if href is None:
            text = text_of(link)
            if text:
                return text
            continue
        if link.get("rel", "alternate") == "alternate" and href.strip():
            return href.strip()
    for link in links:
        href = (link.get("href") or "").strip()
        if href:
            return href
    return None


def self_link(node: XmlNode) -> Optional[str]:
    """``rel="self"`` href from either ``atom:link`` (RSS) or ``link`` (Atom)."""
    for name in ("atom:link", "link"):
        for link in node.find_all(name):
            href = (link.get("href") or "").strip()
            if link.get("rel") == "self" and href:
                return href
    return None


def _attr_url(path: str, attr: str) -> Extractor:
    def extract(node: XmlNode) -> Optional[str]:
        target = node.find_path(path)
        return normalize_url(target.get(attr)) if target is not None else None
    extract.__name__ = f"{path.replace(':', '_').replace('/', '__')}_{attr}"
    return extract


def _text_url(path: str) -> Extractor:
    def extract(node: XmlNode) -> Optional[str]:
        return normalize_url(text_of(node.find_path(path)))
    extract.__name__ = path.replace(':', '_').replace('/', '__')
    return extract


def _media_candidates(node: XmlNode, name: str) -> List[XmlNode]:
    """Direct media:* children plus those wrapped in media:group."""
    candidates = node.find_all(name)
    for group in node.find_all("media:group"):
        candidates.extend(group.find_all(name))
    return candidates


def _is_image(media: XmlNode) -> bool:
    return (
        (media.get("medium") or "").lower() == "image"
        or (media.get("type") or "").lower().startswith("image/")
    )


# ============================================================================
# Channel extractors
# ============================================================================


image_url = _text_url("image/url")
itunes_image = _attr_url("itunes:image", "href")
atom_icon = _text_url("icon")
atom_logo = _text_url("logo")


def media_thumbnail(node: XmlNode) -> Optional[str]:
    for thumbnail in _media_candidates(node, "media:thumbnail"):
        url = normalize_url(thumbnail.get("url"))
        if url:
            return url
    return None


CHANNEL_THUMBNAIL_CHAIN: Tuple[Extractor, ...] = (
    image_url,
    itunes_image,
    media_thumbnail,
    atom_icon,
    atom_logo,
)


def _atom_author_name(node: XmlNode) -> Optional[str]:
    return sanitize_text(node.find_path("author/name"))


def _sanitized(name: str) -> Extractor:
    def extract(node: XmlNode) -> Optional[str]:
        return sanitize_text(node.find(name))
    extract.__name__ = name.replace(":", "_")
    return extract


AUTHOR_CHAIN: Tuple[Extractor, ...] = (
    _sanitized("itunes:author"),
    _atom_author_name,
    _sanitized("author"),
    _sanitized("dc:creator"),
)


def _xml_lang(node: XmlNode) -> Optional[str]:
    return (node.get("xml:lang") or "").strip() or None


LANGUAGE_CHAIN: Tuple[Extractor, ...] = (
    lambda node: text_of(node.find("language")),
    _xml_lang,
    lambda node: text_of(node.find("dc:language")),
)


def channel_explicit(node: XmlNode) -> Optional[bool]:
    return parse_explicit(text_of(node.find("itunes:explicit")))


def channel_website(node: XmlNode) -> Optional[str]:
    return normalize_url(primary_link(node))


def extract_categories(node: XmlNode) -> Optional[List[str]]:
    """iTunes categories with one level of subcategories flattened.

    Plain ``<category>`` text (RSS) or ``term`` (Atom) is used only when the
    feed carries no iTunes categories.
    """
    values: List[str] = []

    for category in node.find_all("itunes:category"):
        values.append(sanitize_text(category.get("text")))
        for sub in category.find_all("itunes:category"):
            values.append(sanitize_text(sub.get("text")))

    if not any(values):
        values = [
            sanitize_text(category.get("term")) or sanitize_text(category)
            for category in node.find_all("category")
        ]

    categories = list(dict.fromkeys(v for v in values if v))
    return categories or None


# ============================================================================
# Episode extractors
# ============================================================================


def media_content_image(node: XmlNode) -> Optional[str]:
    for media in _media_candidates(node, "media:content"):
        if _is_image(media):
            url = normalize_url(media.get("url"))
            if url:
                return url
    return None


def enclosure_image(node: XmlNode) -> Optional[str]:
    for enclosure in node.find_all("enclosure"):
        if (enclosure.get("type") or "").lower().startswith("image/"):
            url = normalize_url(enclosure.get("url"))
            if url:
                return url
    return None


EPISODE_THUMBNAIL_CHAIN: Tuple[Extractor, ...] = (
    itunes_image,
    media_thumbnail,
    media_content_image,
    enclosure_image,
)


EPISODE_DESCRIPTION_CHAIN: Tuple[Extractor, ...] = (
    _sanitized("description"),
    _sanitized("content:encoded"),
    _sanitized("itunes:summary"),
    _sanitized("summary"),
    _sanitized("content"),
    lambda node: sanitize_text(node.find_path("media:group/media:description")),
)

CHANNEL_DESCRIPTION_CHAIN: Tuple[Extractor, ...] = (
    _sanitized("description"),
    _sanitized("subtitle"),
    _sanitized("itunes:summary"),
    _sanitized("itunes:subtitle"),
)


EPISODE_KEY_CHAIN: Tuple[Extractor, ...] = (
    lambda node: text_of(node.find("guid")),
    lambda node: text_of(node.find("id")),
    primary_link,
)


def episode_key(node: XmlNode) -> str:
    """Best available unique key of an item: guid, id, link, else empty."""
    return first_match(EPISODE_KEY_CHAIN, node) or ""


def _media_duration(node: XmlNode) -> Optional[int]:
    for media in _media_candidates(node, "media:content"):
        duration = parse_duration(media.get("duration"))
        if duration is not None:
            return duration
    return None


DURATION_CHAIN: Tuple[Extractor, ...] = (
    lambda node: parse_duration(text_of(node.find("itunes:duration"))),
    _media_duration,
)


PUBLISHED_CHAIN: Tuple[Extractor, ...] = (
    lambda node: parse_date(text_of(node.find("pubDate"))),
    lambda node: parse_date(text_of(node.find("dc:date"))),
    lambda node: parse_date(text_of(node.find("published"))),
    lambda node: parse_date(text_of(node.find("updated"))),
)


@dataclass
class MediaSource:
    """Playable media of an episode."""
    src: Optional[str] = None
    src_type: Optional[str] = None
    src_size_bytes: Optional[int] = None


def extract_media(node: XmlNode) -> MediaSource:
    """First non-image enclosure, else first non-image media:content."""
    for enclosure in node.find_all("enclosure"):
        src_type = (enclosure.get("type") or "").strip() or None
        if src_type and src_type.lower().startswith("image/"):
            continue
        url = normalize_url(enclosure.get("url"))
        if url:
            return MediaSource(url, src_type, parse_int(enclosure.get("length")))

    for media in _media_candidates(node, "media:content"):
        if _is_image(media):
            continue
        url = normalize_url(media.get("url"))
        if url:
            src_type = (media.get("type") or "").strip() or None
            return MediaSource(url, src_type, parse_int(media.get("fileSize")))

    return MediaSource()
