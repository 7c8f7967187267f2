"""Tests for the corpus build pipeline."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from docroute.config import BuildConfig
from docroute.errors import (
    BuildCancelledError,
    DuplicateSourceError,
    EmptyCorpusError,
    RouteCollisionError,
)
from docroute.index.builder import BuildStats, CorpusBuilder, build, build_from_directory
from docroute.ingestion import frontmatter
from docroute.models import DocumentError, RawDocument, ResolvedDocument


def _raw(source: str, text: str) -> RawDocument:
    return RawDocument(source=source, content=text.encode("utf-8"))


def _post(source: str, title: str, extra: str = "") -> RawDocument:
    return _raw(source, f"---\ntitle: {title}\n{extra}---\nBody of {title}\n")


CONFIG = BuildConfig(permalink_template="/:year/:month/:slug/", workers=4)


class TestBuildStats:
    """Test BuildStats tracking."""

    def test_init_defaults(self) -> None:
        stats = BuildStats()

        assert (stats.resolved, stats.failed, stats.skipped) == (0, 0, 0)
        assert stats.processed == []

    def test_increment(self) -> None:
        stats = BuildStats()
        stats.increment("resolved", "a.md")
        stats.increment("skipped", "b.md")
        stats.increment("failed", "c.md")
        stats.increment("unknown", "d.md")

        assert (stats.resolved, stats.failed, stats.skipped) == (1, 2, 1)
        assert stats.processed == ["a.md", "b.md", "c.md", "d.md"]


class TestProcess:
    """Test single-document processing."""

    def test_resolves_document(self) -> None:
        outcome = CorpusBuilder(CONFIG).process(_post("2024-02-13-foo.md", "Foo"))

        assert isinstance(outcome, ResolvedDocument)
        assert outcome.route == "/2024/02/foo/"

    def test_metadata_error_is_returned(self) -> None:
        outcome = CorpusBuilder(CONFIG).process(_raw("bad.md", "---\ntitle: A\n"))

        assert isinstance(outcome, DocumentError)
        assert outcome.kind == "metadata"
        assert outcome.offset == 0

    def test_route_error_is_returned(self) -> None:
        outcome = CorpusBuilder(CONFIG).process(_post("undated.md", "Undated"))

        assert isinstance(outcome, DocumentError)
        assert outcome.kind == "route"

    def test_unpublished_is_skipped(self) -> None:
        raw = _post("2024-02-13-draft.md", "Draft", "published: false\n")

        assert CorpusBuilder(CONFIG).process(raw) is None

    def test_unpublished_included_on_request(self) -> None:
        raw = _post("2024-02-13-draft.md", "Draft", "published: false\n")
        config = CONFIG.replace(include_unpublished=True)

        assert isinstance(CorpusBuilder(config).process(raw), ResolvedDocument)


class TestBuild:
    """Test whole-corpus builds."""

    def test_successful_build(self) -> None:
        registry, errors, stats = build(
            [
                _post("2024-02-13-foo.md", "Foo", "tags: [python]\n"),
                _post("2024-03-01-bar.md", "Bar", "tags: [python]\n"),
                _post("about.md", "About", "permalink: /about/\n"),
            ],
            CONFIG,
        )

        assert errors == []
        assert stats.resolved == 3
        assert registry.lookup("/2024/02/foo/").source == "2024-02-13-foo.md"
        assert registry.lookup("/about/").document.title == "About"
        assert registry.taxonomy("tag:python") == ("2024-03-01-bar.md", "2024-02-13-foo.md")
        assert [item.source for item in registry.all_documents()] == [
            "2024-03-01-bar.md",
            "2024-02-13-foo.md",
            "about.md",
        ]

    def test_fault_isolation(self) -> None:
        """A broken document yields one warning and the rest still build."""
        registry, errors, stats = build(
            [
                _post("2024-02-13-foo.md", "Foo"),
                _raw("2024-02-14-broken.md", "---\ntitle: Broken\nno closing fence\n"),
                _post("2024-02-15-bar.md", "Bar"),
            ],
            CONFIG,
        )

        assert len(errors) == 1
        assert errors[0].source == "2024-02-14-broken.md"
        assert registry.get("2024-02-14-broken.md") is None
        assert len(registry) == 2
        assert stats.failed == 1

    def test_collision_aborts(self) -> None:
        """Two documents claiming /about/ abort the build naming both."""
        with pytest.raises(RouteCollisionError) as excinfo:
            build(
                [
                    _post("about.md", "About", "permalink: /about/\n"),
                    _post("2024-02-13-foo.md", "Foo"),
                    _post("pages/about.md", "About again", "permalink: /about\n"),
                ],
                CONFIG,
            )

        assert excinfo.value.collisions == {"/about/": ("about.md", "pages/about.md")}
        assert "about.md" in str(excinfo.value)
        assert "pages/about.md" in str(excinfo.value)

    def test_duplicate_sources_are_rejected(self) -> None:
        """Two inputs with one source name abort the build before any parsing."""
        documents = [
            _post("2024-02-13-foo.md", "Foo"),
            _post("2024-02-14-bar.md", "Bar"),
            _post("2024-02-13-foo.md", "Foo again"),
        ]

        with patch("docroute.index.builder.parse_document") as mock_parse:
            with pytest.raises(DuplicateSourceError) as excinfo:
                build(documents, CONFIG)

        assert excinfo.value.sources == ("2024-02-13-foo.md",)
        mock_parse.assert_not_called()

    def test_impossible_date_is_a_metadata_error(self) -> None:
        registry, errors, _ = build(
            [_post("2024-02-13-foo.md", "Foo"), _post("bad.md", "Bad", "date: 2024-13-45\n")],
            CONFIG,
        )

        assert [error.source for error in errors] == ["bad.md"]
        assert errors[0].kind == "metadata"
        assert errors[0].offset == 4
        assert len(registry) == 1

    def test_empty_corpus(self) -> None:
        with pytest.raises(EmptyCorpusError, match="no valid documents"):
            build([], CONFIG)

    def test_all_documents_failing(self) -> None:
        with pytest.raises(EmptyCorpusError):
            build([_raw("bad.md", "---\ntitle: A\n")], CONFIG)

    def test_stable_bucket_order_for_equal_dates(self) -> None:
        same_date = "date: 2024-02-13\ntags: [x]\n"
        registry, _, _ = build(
            [
                _post("first.md", "First", same_date),
                _post("second.md", "Second", same_date),
                _post("third.md", "Third", same_date),
            ],
            CONFIG,
        )

        assert registry.taxonomy("tag:x") == ("first.md", "second.md", "third.md")

    def test_idempotent(self) -> None:
        """Rebuilding the same input yields identical routes and buckets."""
        corpus = [
            _post(f"2024-01-{day:02d}-post-{day}.md", f"Post {day}", "tags: [a, b]\n")
            for day in range(1, 21)
        ]

        first, _, _ = build(corpus, CONFIG)
        second, _, _ = build(corpus, CONFIG)

        assert first is not second
        assert first.routes() == second.routes()
        assert first.taxonomy_keys() == second.taxonomy_keys()
        for key in first.taxonomy_keys():
            assert first.taxonomy(key) == second.taxonomy(key)

    def test_routes_are_unique(self) -> None:
        corpus = [_post(f"2024-01-{day:02d}-p.md", "P", f"slug: p{day}\n") for day in range(1, 10)]

        registry, _, _ = build(corpus, CONFIG)
        routes = registry.routes()

        assert len(routes) == len(set(routes)) == 9

    def test_unpublished_counted_as_skipped(self) -> None:
        _, errors, stats = build(
            [
                _post("2024-02-13-foo.md", "Foo"),
                _post("2024-02-14-draft.md", "Draft", "published: false\n"),
            ],
            CONFIG,
        )

        assert errors == []
        assert stats.skipped == 1
        assert stats.resolved == 1

    def test_slow_document_times_out(self) -> None:
        """A hung parse becomes a metadata error instead of stalling the build."""
        real_parse = frontmatter.parse_document

        def slow_parse(raw: RawDocument, **kwargs):
            if raw.source.endswith("slow.md"):
                time.sleep(1.0)
            return real_parse(raw, **kwargs)

        config = CONFIG.replace(document_timeout=0.2)
        with patch("docroute.index.builder.parse_document", side_effect=slow_parse):
            registry, errors, _ = build(
                [_post("2024-02-13-foo.md", "Foo"), _post("2024-02-14-slow.md", "Slow")],
                config,
            )

        assert [error.source for error in errors] == ["2024-02-14-slow.md"]
        assert errors[0].kind == "metadata"
        assert "timed out" in errors[0].message
        assert len(registry) == 1

    def test_hung_document_does_not_block_single_worker(self) -> None:
        """With one worker, documents queued behind a hung one still run."""
        real_parse = frontmatter.parse_document

        def slow_parse(raw: RawDocument, **kwargs):
            if raw.source.endswith("slow.md"):
                time.sleep(2.5)
            return real_parse(raw, **kwargs)

        config = CONFIG.replace(workers=1, document_timeout=0.2)
        documents = [
            _post("2024-02-12-slow.md", "Slow"),
            _post("2024-02-13-foo.md", "Foo"),
            _post("2024-02-14-bar.md", "Bar"),
        ]
        started = time.monotonic()
        with patch("docroute.index.builder.parse_document", side_effect=slow_parse):
            registry, errors, stats = build(documents, config)
        elapsed = time.monotonic() - started

        assert elapsed < 1.5
        assert [error.source for error in errors] == ["2024-02-12-slow.md"]
        assert len(registry) == 2
        assert stats.resolved == 2

    def test_several_hung_documents_with_single_worker(self) -> None:
        real_parse = frontmatter.parse_document

        def slow_parse(raw: RawDocument, **kwargs):
            if raw.source.endswith("slow.md"):
                time.sleep(2.5)
            return real_parse(raw, **kwargs)

        config = CONFIG.replace(workers=1, document_timeout=0.2)
        documents = [
            _post("2024-02-12-slow.md", "Slow"),
            _post("2024-02-13-also-slow.md", "Also Slow"),
            _post("2024-02-14-bar.md", "Bar"),
        ]
        started = time.monotonic()
        with patch("docroute.index.builder.parse_document", side_effect=slow_parse):
            registry, errors, _ = build(documents, config)

        assert time.monotonic() - started < 1.5
        assert [error.source for error in errors] == [
            "2024-02-12-slow.md",
            "2024-02-13-also-slow.md",
        ]
        assert [item.source for item in registry.all_documents()] == ["2024-02-14-bar.md"]

    def test_cancelled_build_discards_results(self) -> None:
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(BuildCancelledError):
            build([_post("2024-02-13-foo.md", "Foo")], CONFIG, cancel_event=cancel)

    def test_unexpected_failure_is_isolated(self) -> None:
        real_parse = frontmatter.parse_document

        def flaky_parse(raw: RawDocument, **kwargs):
            if raw.source == "boom.md":
                raise RuntimeError("boom")
            return real_parse(raw, **kwargs)

        with patch("docroute.index.builder.parse_document", side_effect=flaky_parse):
            registry, errors, _ = build(
                [_post("2024-02-13-foo.md", "Foo"), _post("boom.md", "Boom")], CONFIG
            )

        assert errors == [DocumentError(source="boom.md", kind="internal", message="boom")]
        assert len(registry) == 1


class TestBuildFromDirectory:
    """Test building from a source directory."""

    def test_builds_markdown_tree(self, tmp_path: Path) -> None:
        posts = tmp_path / "_posts"
        posts.mkdir()
        (posts / "2024-02-13-foo.md").write_text("---\ntitle: Foo\n---\n", encoding="utf-8")
        (tmp_path / "about.md").write_text(
            "---\ntitle: About\npermalink: /about/\n---\n", encoding="utf-8"
        )
        (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

        registry, errors, _ = build_from_directory(tmp_path, CONFIG)

        assert errors == []
        assert set(registry.routes()) == {"/2024/02/foo/", "/about/"}
        assert registry.lookup("/2024/02/foo/").source == "_posts/2024-02-13-foo.md"

    def test_empty_directory(self, tmp_path: Path) -> None:
        with pytest.raises(EmptyCorpusError):
            build_from_directory(tmp_path, CONFIG)
