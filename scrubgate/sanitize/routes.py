"""Route normalization and skip-route matching."""

from __future__ import annotations

import re
from collections.abc import Iterable

ROOT_ROUTE = "/"

_QUERY_OR_FRAGMENT = re.compile(r"[?#]")


def clean_url(url: object) -> str | None:
    """Canonicalize a URL or route pattern for skip-set comparison.

    Drops the query string and fragment, then collapses leading and trailing
    slashes: "/health/", "health" and "/health?x=1" all become "/health".
    Returns None for non-string or empty input; None never matches.
    """
    if not isinstance(url, str) or not url:
        return None
    path = _QUERY_OR_FRAGMENT.split(url, maxsplit=1)[0]
    trimmed = path.strip("/")
    if not trimmed:
        return ROOT_ROUTE
    return "/" + trimmed


class SkipMatcher:
    """Precomputed set of routes exempt from automatic sanitization."""

    def __init__(self, routes: Iterable[str] = ()) -> None:
        normalized = (clean_url(route) for route in routes)
        self._routes = frozenset(route for route in normalized if route is not None)

    def __len__(self) -> int:
        return len(self._routes)

    def __contains__(self, url: object) -> bool:
        return self.matches(url)

    @property
    def routes(self) -> frozenset[str]:
        return self._routes

    def matches(self, url: object) -> bool:
        if not self._routes:
            return False
        cleaned = clean_url(url)
        return cleaned is not None and cleaned in self._routes
