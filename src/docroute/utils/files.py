"""Utility helpers for working with source files."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterable, Iterator

from docroute.models import RawDocument

MARKDOWN_SUFFIXES = frozenset({".md", ".markdown"})
_ALLOWED_UNDERSCORE_DIRS = frozenset({"_posts"})


def _is_hidden(path: Path, root: Path) -> bool:
    for part in path.relative_to(root).parts:
        if part.startswith("."):
            return True
        if part.startswith("_") and part not in _ALLOWED_UNDERSCORE_DIRS:
            return True
    return False


def iter_markdown_paths(inputs: Iterable[Path]) -> Iterator[Path]:
    """Yield Markdown paths from input paths, descending into directories.

    Inside directories, entries starting with ``.`` or ``_`` are skipped,
    except ``_posts``.
    """
    for item in inputs:
        if item.is_dir():
            for child in sorted(item.rglob("*")):
                if (
                    child.is_file()
                    and child.suffix.lower() in MARKDOWN_SUFFIXES
                    and not _is_hidden(child, item)
                ):
                    yield child
        elif item.is_file() and item.suffix.lower() in MARKDOWN_SUFFIXES:
            yield item


def load_raw_documents(source_dir: Path) -> list[RawDocument]:
    """Read every Markdown file under ``source_dir``.

    Source names are POSIX paths relative to ``source_dir``.
    """
    documents = []
    for path in iter_markdown_paths([source_dir]):
        documents.append(
            RawDocument(source=path.relative_to(source_dir).as_posix(), content=path.read_bytes())
        )
    return documents


def compute_sha256(data: bytes) -> str:
    """Compute SHA256 hash for raw document bytes."""
    return hashlib.sha256(data).hexdigest()
