"""Permalink resolution."""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from datetime import datetime
from typing import Callable, Iterable
from urllib.parse import quote

from docroute.config import BuildConfig
from docroute.errors import RouteTemplateError
from docroute.models import Document, ResolvedDocument

LOGGER = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r":([a-z_]+)")

_DATE_PLACEHOLDERS: dict[str, Callable[[datetime], str]] = {
    "year": lambda d: f"{d.year:04d}",
    "short_year": lambda d: f"{d.year % 100:02d}",
    "month": lambda d: f"{d.month:02d}",
    "i_month": lambda d: str(d.month),
    "day": lambda d: f"{d.day:02d}",
    "i_day": lambda d: str(d.day),
    "y_day": lambda d: f"{d.timetuple().tm_yday:03d}",
    "hour": lambda d: f"{d.hour:02d}",
    "minute": lambda d: f"{d.minute:02d}",
    "second": lambda d: f"{d.second:02d}",
}


def normalize_route(path: str, trailing_slash: str = "always") -> str:
    """Normalize ``path`` to a leading slash and the configured trailing slash policy.

    Runs of slashes collapse to one. Under ``always`` a final segment with a
    file extension (``/feed.xml``) is left without a slash.
    """
    path = re.sub(r"/{2,}", "/", "/" + path.strip())
    if path == "/":
        return path
    if trailing_slash == "never":
        return path.rstrip("/")
    if path.endswith("/"):
        return path
    if "." in path.rsplit("/", 1)[-1]:
        return path
    return path + "/"


def has_placeholders(permalink: str) -> bool:
    return PLACEHOLDER.search(permalink) is not None


class PermalinkResolver:
    """Computes the canonical route of a document."""

    def __init__(self, config: BuildConfig | None = None) -> None:
        self.config = config or BuildConfig()

    def resolve(self, document: Document) -> str:
        """Return the normalized route for ``document``.

        Raises :class:`RouteTemplateError` if a placeholder cannot be filled.
        """
        explicit = document.permalink
        if explicit is not None and explicit.strip() and not has_placeholders(explicit):
            route = explicit
        else:
            template = explicit if explicit and explicit.strip() else self.config.permalink_template
            route = self.expand(template, document)
        return normalize_route(route, self.config.trailing_slash)

    def expand(self, template: str, document: Document) -> str:
        def substitute(match: re.Match[str]) -> str:
            return self._placeholder_value(match.group(1), document)

        return PLACEHOLDER.sub(substitute, template)

    def _placeholder_value(self, name: str, document: Document) -> str:
        if name in _DATE_PLACEHOLDERS:
            if document.date is None:
                raise RouteTemplateError(
                    document.source, f":{name}", f"':{name}' requires a date but none is available"
                )
            return _DATE_PLACEHOLDERS[name](document.date)
        if name in ("slug", "title"):
            if not document.slug:
                raise RouteTemplateError(document.source, f":{name}", "document has an empty slug")
            return quote(document.slug, safe="")
        if name == "categories":
            return "/".join(quote(category, safe="") for category in document.categories)
        raise RouteTemplateError(document.source, f":{name}", f"unknown placeholder ':{name}'")


def find_collisions(resolved: Iterable[ResolvedDocument]) -> dict[str, tuple[str, ...]]:
    """Map every route claimed by more than one document to its sources."""
    claims: dict[str, list[str]] = defaultdict(list)
    for item in resolved:
        claims[item.route].append(item.source)
    collisions = {route: tuple(sources) for route, sources in claims.items() if len(sources) > 1}
    if collisions:
        LOGGER.debug("Detected %d colliding routes", len(collisions))
    return collisions
