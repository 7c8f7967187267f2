"""Text helpers for slugs, filenames and taxonomy terms."""

from __future__ import annotations

import re
from datetime import date
from typing import Any, Iterable

_FILENAME_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})-(.+)$")
_NON_SLUG = re.compile(r"[^\w]+|_+")


def slugify(value: str) -> str:
    """Lowercase ``value`` and collapse runs of non-alphanumerics into hyphens."""
    return _NON_SLUG.sub("-", value.lower()).strip("-")


def split_filename(stem: str) -> tuple[date | None, str]:
    """Split a ``YYYY-MM-DD-slug`` stem into its date and slug.

    Stems without a valid date prefix are returned whole as the slug.
    """
    match = _FILENAME_DATE.match(stem)
    if match is None:
        return None, stem
    year, month, day, rest = match.groups()
    try:
        return date(int(year), int(month), int(day)), rest
    except ValueError:
        return None, stem


def title_from_slug(slug: str) -> str:
    words = [word for word in re.split(r"[-_\s]+", slug) if word]
    return " ".join(word[:1].upper() + word[1:] for word in words)


def normalize_terms(value: Any) -> tuple[str, ...]:
    """Normalize a category/tag declaration into an ordered, de-duplicated tuple.

    Accepts ``None``, a whitespace-separated string or a list of scalars.
    Raises ``TypeError`` for anything else.
    """
    if value is None:
        return ()
    if isinstance(value, str):
        items: Iterable[Any] = value.split()
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        raise TypeError(f"expected a list or string, got {type(value).__name__}")

    seen: dict[str, None] = {}
    for item in items:
        if isinstance(item, (dict, list, tuple)) or item is None:
            raise TypeError(f"invalid term {item!r}")
        term = str(item).strip()
        if term:
            seen.setdefault(term, None)
    return tuple(seen)
