"""Core docroute data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping

from docroute.errors import DocumentBuildError, MetadataParseError


@dataclass(frozen=True, slots=True)
class RawDocument:
    """Unparsed input: a stable source name and its raw bytes."""

    source: str
    content: bytes


@dataclass(frozen=True, slots=True)
class Document:
    """Parsed, immutable document.

    ``body`` is never interpreted here; it is carried through for the renderer.
    Front-matter keys without a dedicated field end up in ``extra``.
    """

    source: str
    title: str
    slug: str
    body: str
    checksum: str
    permalink: str | None = None
    layout: str | None = None
    categories: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    date: datetime | None = None
    excerpt: str | None = None
    published: bool = True
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        if not isinstance(self.extra, MappingProxyType):
            object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))


@dataclass(frozen=True, slots=True)
class ResolvedDocument:
    """A document paired with its corpus-unique route."""

    document: Document
    route: str

    @property
    def source(self) -> str:
        return self.document.source

    @property
    def date(self) -> datetime | None:
        return self.document.date


@dataclass(frozen=True, slots=True)
class DocumentError:
    """Per-document failure reported alongside a successful build."""

    source: str
    kind: str
    message: str
    offset: int | None = None

    @classmethod
    def from_exception(cls, exc: DocumentBuildError) -> "DocumentError":
        offset = exc.offset if isinstance(exc, MetadataParseError) else None
        return cls(source=exc.source, kind=exc.kind, message=exc.reason, offset=offset)

    def __str__(self) -> str:
        location = f" (byte {self.offset})" if self.offset is not None else ""
        return f"{self.source}: {self.message}{location}"
