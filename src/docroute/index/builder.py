"""Corpus build pipeline."""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter, deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple, Sequence, Union

from docroute.config import BuildConfig
from docroute.errors import (
    BuildCancelledError,
    DocumentBuildError,
    DuplicateSourceError,
    EmptyCorpusError,
    MetadataParseError,
    RouteCollisionError,
)
from docroute.index.registry import CorpusRegistry
from docroute.index.taxonomy import build_taxonomy
from docroute.ingestion.frontmatter import parse_document
from docroute.models import DocumentError, RawDocument, ResolvedDocument
from docroute.routing.permalink import PermalinkResolver, find_collisions
from docroute.utils.files import load_raw_documents

LOGGER = logging.getLogger(__name__)

Outcome = Union[ResolvedDocument, DocumentError, None]

_POLL_INTERVAL = 0.05
_PENDING = object()


@dataclass(slots=True)
class BuildStats:
    resolved: int = 0
    failed: int = 0
    skipped: int = 0
    processed: list[str] = field(default_factory=list)

    def increment(self, status: str, source: str) -> None:
        if status == "resolved":
            self.resolved += 1
        elif status == "skipped":
            self.skipped += 1
        else:
            self.failed += 1
        self.processed.append(source)


class BuildResult(NamedTuple):
    registry: CorpusRegistry
    errors: list[DocumentError]
    stats: BuildStats


class CorpusBuilder:
    """Coordinates parsing, routing and indexing of one corpus."""

    def __init__(self, config: BuildConfig | None = None) -> None:
        self.config = config or BuildConfig()
        self.resolver = PermalinkResolver(self.config)

    def process(self, raw: RawDocument) -> Outcome:
        """Parse and resolve a single document.

        Returns ``None`` for unpublished documents that are filtered out.
        Per-document failures come back as :class:`DocumentError` values.
        """
        try:
            document = parse_document(raw, date_fallback=self.config.date_fallback)
            if not document.published and not self.config.include_unpublished:
                return None
            return ResolvedDocument(document=document, route=self.resolver.resolve(document))
        except DocumentBuildError as exc:
            return DocumentError.from_exception(exc)

    def build(
        self,
        raw_documents: Sequence[RawDocument],
        *,
        cancel_event: threading.Event | None = None,
    ) -> BuildResult:
        """Build a frozen registry from ``raw_documents``.

        Raises :class:`DuplicateSourceError`, :class:`RouteCollisionError` or
        :class:`EmptyCorpusError` when the corpus as a whole is invalid, and
        :class:`BuildCancelledError` when ``cancel_event`` is set before all
        documents are processed.
        """
        counts = Counter(raw.source for raw in raw_documents)
        duplicates = sorted(source for source, count in counts.items() if count > 1)
        if duplicates:
            raise DuplicateSourceError(duplicates)

        started = time.monotonic()
        outcomes = self._process_all(list(raw_documents), cancel_event)

        stats = BuildStats()
        resolved: list[ResolvedDocument] = []
        errors: list[DocumentError] = []
        for raw, outcome in zip(raw_documents, outcomes):
            if outcome is None:
                LOGGER.info("Skipping unpublished document %s", raw.source)
                stats.increment("skipped", raw.source)
            elif isinstance(outcome, DocumentError):
                LOGGER.warning("Excluded %s", outcome)
                errors.append(outcome)
                stats.increment("failed", raw.source)
            else:
                LOGGER.debug("%s -> %s", raw.source, outcome.route)
                resolved.append(outcome)
                stats.increment("resolved", raw.source)

        collisions = find_collisions(resolved)
        if collisions:
            raise RouteCollisionError(collisions)
        if not resolved:
            raise EmptyCorpusError()

        registry = CorpusRegistry()
        for item in resolved:
            registry.add(item)
        registry.set_taxonomy(build_taxonomy(resolved))
        registry.freeze()

        LOGGER.info(
            "Built %d documents (%d failed, %d skipped) in %.2fs",
            stats.resolved,
            stats.failed,
            stats.skipped,
            time.monotonic() - started,
        )
        return BuildResult(registry=registry, errors=errors, stats=stats)

    def _process_all(
        self, raw_documents: list[RawDocument], cancel_event: threading.Event | None
    ) -> list[Outcome]:
        if not raw_documents:
            return []

        timeout = self.config.document_timeout
        workers = self.config.resolve_workers()
        outcomes: list[object] = [_PENDING] * len(raw_documents)
        # Each worker writes only its own slot.
        start_times: list[float | None] = [None] * len(raw_documents)

        def run(index: int) -> Outcome:
            start_times[index] = time.monotonic()
            return self.process(raw_documents[index])

        def new_pool() -> ThreadPoolExecutor:
            return ThreadPoolExecutor(max_workers=workers, thread_name_prefix="docroute")

        # Tasks are only submitted while a thread is free, so nothing waits in a
        # pool whose threads are all stuck on abandoned documents.
        queue = deque(range(len(raw_documents)))
        executor = new_pool()
        stuck: set[Future[Outcome]] = set()
        futures: dict[Future[Outcome], int] = {}
        pending: set[Future[Outcome]] = set()

        def fill() -> None:
            while queue and len(pending) < workers - len(stuck):
                index = queue.popleft()
                future = executor.submit(run, index)
                futures[future] = index
                pending.add(future)

        try:
            fill()
            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    raise BuildCancelledError("build cancelled")
                done, not_done = wait(pending, timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED)
                pending.intersection_update(not_done)
                for future in done:
                    index = futures[future]
                    outcomes[index] = self._collect(future, raw_documents[index])

                # An abandoned document that eventually returns frees its thread again.
                stuck = {future for future in stuck if not future.done()}
                now = time.monotonic()
                for future in list(pending):
                    index = futures[future]
                    began = start_times[index]
                    if began is not None and now - began > timeout and not future.done():
                        source = raw_documents[index].source
                        LOGGER.warning("Abandoning %s after %.1fs", source, timeout)
                        outcomes[index] = DocumentError.from_exception(
                            MetadataParseError(source, 0, f"timed out after {timeout:g}s")
                        )
                        pending.discard(future)
                        stuck.add(future)

                if len(stuck) >= workers:
                    LOGGER.warning("All %d workers are stuck, starting a new pool", workers)
                    executor.shutdown(wait=False, cancel_futures=True)
                    executor = new_pool()
                    stuck = set()
                fill()
        except BaseException:
            LOGGER.info("Build interrupted, discarding partial results")
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown(wait=not stuck, cancel_futures=True)
        return outcomes  # type: ignore[return-value]

    @staticmethod
    def _collect(future: Future[Outcome], raw: RawDocument) -> Outcome:
        try:
            return future.result()
        except Exception as exc:
            LOGGER.exception("Unexpected failure while processing %s", raw.source)
            return DocumentError(source=raw.source, kind="internal", message=str(exc))


def build(
    raw_documents: Sequence[RawDocument],
    config: BuildConfig | None = None,
    *,
    cancel_event: threading.Event | None = None,
) -> BuildResult:
    """Build a frozen :class:`CorpusRegistry` and collect per-document errors."""
    return CorpusBuilder(config).build(raw_documents, cancel_event=cancel_event)


def build_from_directory(source_dir: Path, config: BuildConfig | None = None) -> BuildResult:
    """Build every Markdown document found under ``source_dir``."""
    raw_documents = load_raw_documents(source_dir)
    LOGGER.info("Found %d documents under %s", len(raw_documents), source_dir)
    return build(raw_documents, config)
