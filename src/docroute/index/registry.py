"""Build-scoped registry handed to renderers."""

from __future__ import annotations

import enum
import logging
from types import MappingProxyType
from typing import Iterator, Mapping

from docroute.errors import EmptyCorpusError, RegistryStateError, RouteCollisionError
from docroute.index.taxonomy import sort_by_date
from docroute.models import ResolvedDocument

LOGGER = logging.getLogger(__name__)


class RegistryState(enum.Enum):
    EMPTY = "empty"
    POPULATING = "populating"
    FROZEN = "frozen"


class CorpusRegistry:
    """Route -> document mapping plus taxonomy buckets for one build.

    Populated once, then frozen. Reads are only allowed on a frozen registry
    and there is no way back to a writable state.
    """

    def __init__(self) -> None:
        self._state = RegistryState.EMPTY
        self._by_route: dict[str, ResolvedDocument] = {}
        self._by_source: dict[str, ResolvedDocument] = {}
        self._taxonomy: Mapping[str, tuple[str, ...]] = {}
        self._ordered: tuple[ResolvedDocument, ...] = ()

    @property
    def state(self) -> RegistryState:
        return self._state

    def _require(self, *states: RegistryState) -> None:
        if self._state not in states:
            allowed = " or ".join(state.value for state in states)
            raise RegistryStateError(f"registry is {self._state.value}, expected {allowed}")

    def add(self, item: ResolvedDocument) -> None:
        self._require(RegistryState.EMPTY, RegistryState.POPULATING)
        existing = self._by_route.get(item.route)
        if existing is not None:
            raise RouteCollisionError({item.route: (existing.source, item.source)})
        if item.source in self._by_source:
            raise RegistryStateError(f"document {item.source} was already added")
        self._state = RegistryState.POPULATING
        self._by_route[item.route] = item
        self._by_source[item.source] = item

    def set_taxonomy(self, buckets: Mapping[str, tuple[str, ...]]) -> None:
        self._require(RegistryState.POPULATING)
        unknown = {source for members in buckets.values() for source in members} - set(self._by_source)
        if unknown:
            raise RegistryStateError(f"taxonomy references unknown documents: {sorted(unknown)}")
        self._taxonomy = dict(buckets)

    def freeze(self) -> "CorpusRegistry":
        if self._state is RegistryState.EMPTY:
            raise EmptyCorpusError()
        self._require(RegistryState.POPULATING)
        self._ordered = tuple(sort_by_date(list(self._by_route.values())))
        self._by_route = MappingProxyType(self._by_route)  # type: ignore[assignment]
        self._by_source = MappingProxyType(self._by_source)  # type: ignore[assignment]
        self._taxonomy = MappingProxyType(dict(self._taxonomy))
        self._state = RegistryState.FROZEN
        LOGGER.debug(
            "Registry frozen with %d documents and %d taxonomy buckets",
            len(self._ordered),
            len(self._taxonomy),
        )
        return self

    def lookup(self, route: str) -> ResolvedDocument | None:
        self._require(RegistryState.FROZEN)
        return self._by_route.get(route)

    def get(self, source: str) -> ResolvedDocument | None:
        self._require(RegistryState.FROZEN)
        return self._by_source.get(source)

    def taxonomy(self, key: str) -> tuple[str, ...] | None:
        self._require(RegistryState.FROZEN)
        return self._taxonomy.get(key)

    def taxonomy_keys(self) -> tuple[str, ...]:
        self._require(RegistryState.FROZEN)
        return tuple(sorted(self._taxonomy))

    def all_documents(self) -> tuple[ResolvedDocument, ...]:
        self._require(RegistryState.FROZEN)
        return self._ordered

    def routes(self) -> tuple[str, ...]:
        return tuple(item.route for item in self.all_documents())

    def __len__(self) -> int:
        return len(self._by_route)

    def __contains__(self, route: object) -> bool:
        return route in self._by_route

    def __iter__(self) -> Iterator[ResolvedDocument]:
        return iter(self.all_documents())
