"""
Telecast Input Validators
=========================

URL validation and normalization for operator-supplied feed URLs and for
media links found inside feed documents.
"""

import re
from urllib.parse import urlparse, urlunparse
from typing import Any, Optional

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation and sanitization utilities."""

    # Allowed schemes for feeds
    ALLOWED_SCHEMES = {'http', 'https'}

    @classmethod
    def validate_feed_url(cls, url: str) -> str:
        """Validate and normalize a feed URL supplied by an operator.

        Args:
            url: URL to validate

        Returns:
            Normalized URL

        Raises:
            ValidationError: If URL is invalid
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="url"
            )

        url = url.strip()

        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValidationError(
                f"Invalid URL format: {str(e)}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                f"URL scheme must be {' or '.join(sorted(cls.ALLOWED_SCHEMES))}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        if not parsed.netloc:
            raise ValidationError(
                "URL must include a hostname",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        if cls._has_suspicious_patterns(url):
            raise ValidationError(
                "URL contains suspicious patterns",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        return urlunparse(parsed._replace(
            scheme=parsed.scheme.lower(),
            netloc=parsed.netloc.lower(),
            path=parsed.path or '/',
            fragment=''
        ))

    @classmethod
    def _has_suspicious_patterns(cls, url: str) -> bool:
        """Check for suspicious URL patterns."""
        suspicious_patterns = [
            r'^javascript:',
            r'^data:',
            r'^file:',
            r'://localhost',
            r'://127\.0\.0\.1',
            r'://10\.\d+\.\d+\.\d+',
            r'://192\.168\.\d+\.\d+',
        ]

        url_lower = url.lower()
        return any(re.search(pattern, url_lower) for pattern in suspicious_patterns)


def normalize_media_url(value: Any) -> Optional[str]:
    """Force a feed-supplied link onto https.

    ``http://`` is upgraded, protocol-relative ``//host`` gains an ``https:``
    prefix, ``https://`` passes through, anything else (other schemes,
    relative paths, empty values) becomes None.

    Args:
        value: Raw link value from a feed document

    Returns:
        https URL or None
    """
    if not isinstance(value, str):
        return None

    url = value.strip()
    if url.startswith("https://"):
        return url
    if url.startswith("http://"):
        return "https://" + url[len("http://"):]
    if url.startswith("//"):
        return "https:" + url
    return None
