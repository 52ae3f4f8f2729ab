"""Decide how an inbound proxy request is served."""

from __future__ import annotations

import re
from enum import Enum

STATIC_SUFFIXES = ("js", "css", "png", "jpg", "jpeg", "gif", "svg", "woff", "woff2", "ttf", "ico", "map")
_STATIC_PATTERN = re.compile(r"\.(%s)$" % "|".join(STATIC_SUFFIXES), re.IGNORECASE)


class RequestKind(str, Enum):
    STATIC = "static"
    API = "api"
    DOCUMENT = "document"

    @property
    def direct(self) -> bool:
        """True when the request skips page rendering."""
        return self is not RequestKind.DOCUMENT


def classify_request(method: str, path: str) -> RequestKind:
    """Classify by path suffix first, then by method and API path patterns."""
    if _STATIC_PATTERN.search(path):
        return RequestKind.STATIC
    if method.upper() == "POST" or path.startswith("/__api") or "/api/" in path:
        return RequestKind.API
    return RequestKind.DOCUMENT
