"""Validation of URLs and paths handed to external programs."""

from typing import Optional

from ..core.constants import INTERNAL_URL_PREFIXES
from ..services.exceptions import InvalidUrlError


def is_internal_url(url: Optional[str]) -> bool:
    """Browser-internal pages (chrome://, about:, ...) cannot be reopened from outside."""
    lowered = (url or "").strip().lower()
    return any(lowered.startswith(prefix) for prefix in INTERNAL_URL_PREFIXES)


def validate_external_url(url: Optional[str]) -> str:
    """Return the trimmed URL if it is http or https.

    Raises:
        InvalidUrlError: For any other scheme or an empty value
    """
    trimmed = (url or "").strip()
    lowered = trimmed.lower()
    if not (lowered.startswith("http://") or lowered.startswith("https://")):
        raise InvalidUrlError(f"Refusing to open non-http(s) URL: {trimmed[:100]!r}")
    return trimmed
