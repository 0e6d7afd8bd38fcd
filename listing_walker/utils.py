"""
Shared utility functions for the walker.
"""

import logging
import re
import time
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar, Any
from urllib.parse import urljoin, urlsplit, urlunsplit, parse_qsl, urlencode

logger = logging.getLogger(__name__)

BASE_URL = "https://www.sahibinden.com"

T = TypeVar('T')

# Query parameters that vary between navigations without changing the resource
_VOLATILE_PARAMS = re.compile(r'^(utm_.*|gclid|fbclid|ref|referrer|from|_|t|ts)$', re.IGNORECASE)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def is_http_url(url: str) -> bool:
    """Check whether a string is an absolute http(s) URL."""
    try:
        parts = urlsplit(url)
    except (TypeError, ValueError):
        return False
    return parts.scheme in ('http', 'https') and bool(parts.netloc)


def normalize_url(href: Optional[str], base: str = BASE_URL) -> Optional[str]:
    """
    Convert a discovered href into an absolute, canonical URL.

    Args:
        href: Raw href (absolute, protocol-relative, root-relative or relative)
        base: URL the href was found on

    Returns:
        Canonical URL (lowercased scheme/host, no fragment, no volatile
        query params, no trailing slash) or None for unusable hrefs
    """
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith(('javascript:', 'mailto:', 'tel:', '#')):
        return None

    if not re.match(r'^(https?:)?//', href, re.IGNORECASE) and not href.startswith('/'):
        # Bare relative hrefs on the target site are rooted at the host
        href = '/' + href
    parts = urlsplit(urljoin(base, href))
    if parts.scheme not in ('http', 'https'):
        return None

    query = urlencode([(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
                       if not _VOLATILE_PARAMS.match(k)])
    path = parts.path or '/'
    if len(path) > 1:
        path = path.rstrip('/')
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, query, ''))


def extract_resource_id(url: Optional[str]) -> Optional[str]:
    """
    Extract a stable identifier for a resource locator.

    Detail URLs carry a long numeric id (e.g. ``.../ilan/daire-1134567890/detay``);
    that id survives canonicalization differences, so it is preferred. Otherwise
    the lowercased path without a trailing ``/detay`` segment is used.

    Args:
        url: Absolute or relative URL

    Returns:
        Identifier string, or None if url is empty
    """
    if not url:
        return None
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None

    numeric = re.findall(r'(\d{6,})', parts.path)
    if numeric:
        return numeric[-1]

    path = re.sub(r'/detay/?$', '', parts.path.lower()).rstrip('/')
    if path:
        return f"{parts.netloc.lower()}{path}"
    return parts.netloc.lower() or None


def same_resource(current: Optional[str], expected: Optional[str]) -> bool:
    """Fuzzy identity match between two resource locators."""
    if not current or not expected:
        return False
    current_id = extract_resource_id(current)
    return current_id is not None and current_id == extract_resource_id(expected)


def dedupe_by_identity(urls: Iterable[str], existing: Iterable[str] = ()) -> List[str]:
    """
    Remove urls whose resource id is already present, preserving order.

    Args:
        urls: Candidate URLs
        existing: URLs already queued

    Returns:
        New URLs with unique identifiers
    """
    seen = {extract_resource_id(u) for u in existing}
    unique = []
    for url in urls:
        rid = extract_resource_id(url)
        if rid is None or rid in seen:
            continue
        seen.add(rid)
        unique.append(url)
    return unique


def first_success(
    strategies: Iterable[T],
    attempt: Callable[[T], Any],
    default: Any = None
) -> Tuple[Optional[T], Any]:
    """
    Try strategies in order and return the first non-empty result.

    A strategy that raises is treated as yielding nothing. Used for link
    discovery, pagination-control discovery and field extraction alike.

    Args:
        strategies: Ordered candidates (selectors, callables, ...)
        attempt: Function applied to each candidate
        default: Returned when no strategy succeeds

    Returns:
        Tuple of (winning strategy, its result) or (None, default)
    """
    for strategy in strategies:
        if strategy is None:
            continue
        try:
            result = attempt(strategy)
        except Exception as e:
            logger.debug("Strategy %r failed: %s", strategy, e)
            continue
        if result:
            return strategy, result
    return None, default


def clean_text(text: Optional[str]) -> Optional[str]:
    """Collapse whitespace; None for empty input."""
    if not text or not isinstance(text, str):
        return None
    cleaned = re.sub(r'\s+', ' ', text).strip()
    return cleaned or None


def word_count(text: Optional[str]) -> int:
    """Count whitespace-separated words."""
    return len(text.split()) if text else 0
