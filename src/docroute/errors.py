"""Exception hierarchy for docroute."""

from __future__ import annotations

from typing import Mapping, Sequence


class DocrouteError(Exception):
    """Base class for every error raised by docroute."""


class ConfigError(DocrouteError):
    """Invalid build configuration."""


class DocumentBuildError(DocrouteError):
    """Failure confined to a single document."""

    kind = "document"

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")


class MetadataParseError(DocumentBuildError):
    """The front-matter block of a document could not be decoded."""

    kind = "metadata"

    def __init__(self, source: str, offset: int, reason: str) -> None:
        self.offset = offset
        super().__init__(source, reason)

    def __str__(self) -> str:
        return f"{self.source}: {self.reason} (byte {self.offset})"


class RouteTemplateError(DocumentBuildError):
    """A permalink placeholder could not be resolved for a document."""

    kind = "route"

    def __init__(self, source: str, placeholder: str, reason: str) -> None:
        self.placeholder = placeholder
        super().__init__(source, reason)


class RouteCollisionError(DocrouteError):
    """Two or more documents resolved to the same route."""

    def __init__(self, collisions: Mapping[str, Sequence[str]]) -> None:
        self.collisions = {route: tuple(sources) for route, sources in collisions.items()}
        details = "; ".join(
            f"{route} <- {', '.join(sources)}" for route, sources in sorted(self.collisions.items())
        )
        super().__init__(f"Route collision: {details}")


class EmptyCorpusError(DocrouteError):
    """No document survived the build."""

    def __init__(self, message: str = "no valid documents") -> None:
        super().__init__(message)


class RegistryStateError(DocrouteError):
    """Operation not allowed in the registry's current state."""


class BuildCancelledError(DocrouteError):
    """The build was cancelled before completion."""


class DuplicateSourceError(DocrouteError):
    """Two or more inputs share a source name, so identities are ambiguous."""

    def __init__(self, sources: Sequence[str]) -> None:
        self.sources = tuple(sources)
        super().__init__(f"Duplicate source names: {', '.join(self.sources)}")
