"""
Free-text cleanup for titles, descriptions and other feed strings.

Publishers put anything in these fields: HTML fragments, CDATA, double-escaped
entities, repeated elements. ``sanitize_text`` reduces all of it to a single
line of plain text or None.
"""

import re
from types import MappingProxyType
from typing import Any, Mapping, Optional

from .xml_tree import XmlNode


NAMED_ENTITIES: Mapping[str, str] = MappingProxyType({
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "quot": '"',
    "apos": "'",
    "nbsp": "\u00a0",
    "ndash": "–",
    "mdash": "—",
    "lsquo": "‘",
    "rsquo": "’",
    "sbquo": "‚",
    "ldquo": "“",
    "rdquo": "”",
    "bdquo": "„",
    "hellip": "…",
    "copy": "©",
    "reg": "®",
    "trade": "™",
})

_TAG_RE = re.compile(r"<[^>]*>")
_NAMED_ENTITY_RE = re.compile(r"&([a-zA-Z]+);")
_DECIMAL_ENTITY_RE = re.compile(r"&#(\d+);")
_HEX_ENTITY_RE = re.compile(r"&#[xX]([0-9a-fA-F]+);")
_WHITESPACE_RE = re.compile(r"\s+")


def _decode_named(match: "re.Match") -> str:
    return NAMED_ENTITIES.get(match.group(1), match.group(0))


def _code_point(match: "re.Match", base: int) -> str:
    try:
        code_point = int(match.group(1), base)
        if 0xD800 <= code_point <= 0xDFFF:
            return match.group(0)
        # C0 controls other than tab, newline and carriage return stay encoded
        if code_point < 0x20 and code_point not in (0x09, 0x0A, 0x0D):
            return match.group(0)
        return chr(code_point)
    except (ValueError, OverflowError):
        # Out of range code points stay as written
        return match.group(0)


def _coerce(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, XmlNode):
        return value.content
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def sanitize_text(value: Any) -> Optional[str]:
    """Strip markup, decode entities and collapse whitespace.

    Args:
        value: None, str, number, XmlNode, or a list/tuple of those (the
            first element that sanitizes to something non-empty wins)

    Returns:
        Single-spaced, trimmed plain text, or None when nothing is left
    """
    if isinstance(value, (list, tuple)):
        for item in value:
            cleaned = sanitize_text(item)
            if cleaned is not None:
                return cleaned
        return None

    text = _coerce(value)
    if not text:
        return None

    text = _TAG_RE.sub("", text)
    text = _NAMED_ENTITY_RE.sub(_decode_named, text)
    text = _DECIMAL_ENTITY_RE.sub(lambda m: _code_point(m, 10), text)
    text = _HEX_ENTITY_RE.sub(lambda m: _code_point(m, 16), text)
    text = _WHITESPACE_RE.sub(" ", text).strip()

    return text or None
