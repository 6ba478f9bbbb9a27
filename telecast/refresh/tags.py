"""Tag inference from a parsed channel and its episodes."""

from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional

from ..database.models import Channel, Episode


LANGUAGE_TAGS: Mapping[str, str] = MappingProxyType({
    "en": "english",
    "en-us": "english",
    "en-US": "english",
    "en-gb": "english",
    "en-GB": "english",
    "de": "german",
    "de-DE": "german",
    "de-de": "german",
    "fr": "french",
    "fr-FR": "french",
    "fr-fr": "french",
    "es": "spanish",
    "es-ES": "spanish",
    "es-es": "spanish",
    "ja": "japanese",
    "ja-JP": "japanese",
    "pt": "portuguese",
    "pt-BR": "portuguese",
    "pt-PT": "portuguese",
    "it": "italian",
    "it-IT": "italian",
    "nl": "dutch",
    "nl-NL": "dutch",
    "ru": "russian",
    "ru-RU": "russian",
    "zh": "chinese",
    "zh-CN": "chinese",
    "zh-TW": "chinese",
    "ko": "korean",
    "ko-KR": "korean",
    "pl": "polish",
    "pl-PL": "polish",
    "sv": "swedish",
    "sv-SE": "swedish",
})


def language_tag(language: Optional[str], table: Mapping[str, str] = LANGUAGE_TAGS) -> Optional[str]:
    """Map a feed language code to a tag, exact code first, then base language."""
    if not language:
        return None
    code = language.strip()
    base = code.split("-")[0].lower()
    return table.get(code) or table.get(base)


def content_tags(episodes: Iterable[Episode]) -> List[str]:
    """``video`` if any episode is video, else ``audio`` if any is audio."""
    episodes = list(episodes)
    if any(ep.is_video for ep in episodes):
        return ["video"]
    if any(ep.is_audio for ep in episodes):
        return ["audio"]
    return []


def infer_tags(channel: Channel, episodes: Iterable[Episode]) -> List[str]:
    """Platform, content type, language and explicit tags for a channel."""
    tags = list(channel.tags)
    tags.extend(content_tags(episodes))

    lang = language_tag(channel.language)
    if lang:
        tags.append(lang)

    if channel.explicit is True:
        tags.append("explicit")

    return list(dict.fromkeys(tags))
