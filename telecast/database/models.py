"""
Telecast Data Models
====================

Pydantic models for the canonical Channel/Episode records produced by the
feed normalizer and stored by the repositories, plus the small dataclasses
the refresh engine passes around.
"""

import json
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return an aware UTC datetime, treating naive values as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for storage.

    Fixed-width ISO-8601 in UTC, so string ordering in SQL matches
    chronological ordering.
    """
    value = ensure_utc(value)
    if value is None:
        return None
    return value.isoformat(timespec="seconds")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Inverse of format_timestamp for values read back from SQLite."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(str(value)))


class Channel(BaseModel):
    """Canonical record for one tracked feed source."""
    channel_id: str = Field(..., min_length=1, description="Stable identity derived from the canonical URL")
    rss: str = Field(..., description="Canonical feed URL")
    title: Optional[str] = Field(default=None, description="Sanitized channel title")
    description: Optional[str] = Field(default=None, description="Sanitized channel description")
    thumb: Optional[str] = Field(default=None, description="https thumbnail URL")
    author: Optional[str] = Field(default=None)
    language: Optional[str] = Field(default=None, description="Language code as declared by the feed")
    explicit: Optional[bool] = Field(default=None, description="Tri-state explicit flag")
    website: Optional[str] = Field(default=None, description="https website URL")
    categories: Optional[List[str]] = Field(default=None, description="Ordered, de-duplicated categories")
    tags: List[str] = Field(default_factory=list, description="Tag set, grows by union")
    updated_at: Optional[datetime] = Field(default_factory=utc_now)
    last_success_at: Optional[datetime] = Field(default=None)
    last_error: Optional[str] = Field(default=None)
    last_error_at: Optional[datetime] = Field(default=None)
    consecutive_errors: int = Field(default=0, ge=0)
    episode_count: int = Field(default=0, ge=0)
    latest_episode_at: Optional[datetime] = Field(default=None)
    avg_duration_seconds: Optional[int] = Field(default=None)
    quality: int = Field(default=0, ge=0, le=100)

    @field_validator('tags')
    @classmethod
    def dedupe_tags(cls, v):
        """Tags are a set; keep first-seen order for display."""
        return list(dict.fromkeys(t for t in v if t))

    @field_validator('updated_at', 'last_success_at', 'last_error_at', 'latest_episode_at')
    @classmethod
    def normalize_timezone(cls, v):
        return ensure_utc(v)

    def categories_json(self) -> Optional[str]:
        """Get categories as JSON string for database storage."""
        return json.dumps(self.categories, ensure_ascii=False) if self.categories is not None else None

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Channel":
        """Create Channel from database row with JSON parsing."""
        data = dict(row)

        if isinstance(data.get('categories'), str):
            data['categories'] = json.loads(data['categories'])
        if isinstance(data.get('tags'), str):
            data['tags'] = json.loads(data['tags'])
        if data.get('explicit') is not None:
            data['explicit'] = bool(data['explicit'])
        data.pop('created_at', None)

        return cls(**data)

    model_config = {
        "json_encoders": {
            datetime: lambda v: v.isoformat() if v else None
        }
    }

    def __str__(self) -> str:
        return f"Channel({self.title or self.rss}:{self.channel_id})"


class Episode(BaseModel):
    """Canonical record for one item/entry of a channel's feed."""
    channel_id: str = Field(..., description="Owning channel")
    episode_id: str = Field(..., description="Deterministic id derived from guid/id/link")
    title: str = Field(default="Untitled", description="Sanitized title, never empty")
    description: Optional[str] = Field(default=None)
    thumb: Optional[str] = Field(default=None)
    src: Optional[str] = Field(default=None, description="Media enclosure URL")
    src_type: Optional[str] = Field(default=None, description="Media MIME type")
    src_size_bytes: Optional[int] = Field(default=None, ge=0)
    duration_seconds: Optional[int] = Field(default=None, ge=0)
    published_at: Optional[datetime] = Field(default=None)
    link: Optional[str] = Field(default=None)
    season: Optional[int] = Field(default=None)
    episode: Optional[int] = Field(default=None)
    explicit: Optional[bool] = Field(default=None)

    @field_validator('title', mode='before')
    @classmethod
    def default_title(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return "Untitled"
        return v

    @field_validator('published_at')
    @classmethod
    def normalize_timezone(cls, v):
        return ensure_utc(v)

    @property
    def is_video(self) -> bool:
        return bool(self.src_type and self.src_type.startswith("video/"))

    @property
    def is_audio(self) -> bool:
        return bool(self.src_type and self.src_type.startswith("audio/"))

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Episode":
        data = dict(row)
        if data.get('explicit') is not None:
            data['explicit'] = bool(data['explicit'])
        data.pop('created_at', None)
        data.pop('updated_at', None)
        return cls(**data)

    model_config = {
        "json_encoders": {
            datetime: lambda v: v.isoformat() if v else None
        }
    }

    def __str__(self) -> str:
        return f"Episode({self.title[:50]}:{self.episode_id})"


@dataclass
class ChannelStats:
    """Aggregates recomputed from a channel's stored episodes."""
    episode_count: int = 0
    latest_episode_at: Optional[datetime] = None
    avg_duration: Optional[float] = None

    @property
    def avg_duration_seconds(self) -> Optional[int]:
        """Mean duration rounded half-up to whole seconds."""
        if self.avg_duration is None:
            return None
        return int(math.floor(self.avg_duration + 0.5))


@dataclass
class ScheduleEntry:
    """Refresh candidate as seen by the selector."""
    channel_id: str
    rss: str
    updated_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_error_at: Optional[datetime] = None
    consecutive_errors: int = 0
    episode_count: int = 0

    @property
    def never_attempted(self) -> bool:
        """Neither succeeded nor failed since it was seeded."""
        return self.last_success_at is None and self.last_error_at is None

    @property
    def short_url(self) -> str:
        """Feed URL without scheme, trimmed for log lines."""
        url = self.rss
        for prefix in ("https://", "http://"):
            if url.startswith(prefix):
                url = url[len(prefix):]
                break
        return url[:50]
