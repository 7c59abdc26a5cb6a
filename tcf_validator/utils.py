"""Utility functions for polling, URL normalization and error text cleanup."""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import TypeVar
from urllib.parse import urlparse

import tldextract

T = TypeVar("T")

_ANSI_ESCAPE = re.compile(r"\x1B\[[0-9;]*[A-Za-z]")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


async def poll_until(
    probe: Callable[[], Awaitable[T | None]],
    timeout_ms: float,
    interval_ms: float = 500,
) -> T | None:
    """Call ``probe`` until it returns something other than None.

    The probe is always called at least once. Returns None when the deadline
    passes without a value.
    """
    deadline = time.monotonic() + timeout_ms / 1000
    while True:
        value = await probe()
        if value is not None:
            return value
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None
        await asyncio.sleep(min(interval_ms / 1000, remaining))


def extract_registered_domain(url_or_domain: str) -> str:
    """Extract the registered domain from a URL or domain string.

    Examples:
        'https://www.lemonde.fr/page' -> 'lemonde.fr'
        'news.bbc.co.uk' -> 'bbc.co.uk'
    """
    ext = tldextract.extract(url_or_domain)
    if ext.registered_domain:
        return ext.registered_domain
    # Fallback for IPs or unusual domains
    parsed = urlparse(url_or_domain if "://" in url_or_domain else f"https://{url_or_domain}")
    return parsed.hostname or url_or_domain


def now_iso() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def normalize_url(url: str) -> str:
    """Turn a bare domain or URL into an https URL without trailing slash."""
    url = url.strip()
    if url.startswith("http://"):
        url = "https://" + url[len("http://"):]
    elif not url.startswith("https://"):
        url = f"https://{url}"
    return url.rstrip("/")


def clean_error(message: str) -> str:
    """Strip terminal escapes and control characters, flatten to one line."""
    text = _ANSI_ESCAPE.sub("", str(message))
    text = _CONTROL_CHARS.sub("", text)
    return " | ".join(line.strip() for line in text.splitlines() if line.strip())
