"""Category and tag indexing."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Sequence, TypeVar

from docroute.models import ResolvedDocument

CATEGORY_PREFIX = "category:"
TAG_PREFIX = "tag:"

T = TypeVar("T", bound=ResolvedDocument)


def category_key(name: str) -> str:
    return f"{CATEGORY_PREFIX}{name}"


def tag_key(name: str) -> str:
    return f"{TAG_PREFIX}{name}"


def _timestamp(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def sort_by_date(documents: Sequence[T]) -> list[T]:
    """Order documents newest first.

    The sort is stable: equal dates keep their input order, and documents
    without a date follow all dated ones in input order.
    """
    dated = [doc for doc in documents if doc.date is not None]
    undated = [doc for doc in documents if doc.date is None]
    dated.sort(key=lambda doc: _timestamp(doc.date), reverse=True)
    return dated + undated


def build_taxonomy(documents: Iterable[ResolvedDocument]) -> dict[str, tuple[str, ...]]:
    """Group document identities into ``category:<name>`` and ``tag:<name>`` buckets."""
    buckets: dict[str, list[ResolvedDocument]] = {}
    for item in documents:
        keys = [category_key(name) for name in item.document.categories]
        keys += [tag_key(name) for name in item.document.tags]
        for key in keys:
            buckets.setdefault(key, []).append(item)

    return {key: tuple(doc.source for doc in sort_by_date(members)) for key, members in buckets.items()}
