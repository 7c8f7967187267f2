"""Front-matter extraction and metadata normalization.

A document may start with a YAML block fenced by ``---`` lines. Everything
after the closing fence is the body, which is passed through untouched.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from pathlib import PurePosixPath
from typing import Any

import yaml

from docroute.errors import MetadataParseError
from docroute.models import Document, RawDocument
from docroute.utils.files import compute_sha256
from docroute.utils.text import normalize_terms, slugify, split_filename, title_from_slug

LOGGER = logging.getLogger(__name__)

FENCE = "---"
_CLOSING_FENCES = (FENCE, "...")
_BOM = b"\xef\xbb\xbf"

_KNOWN_KEYS = frozenset(
    {
        "title",
        "slug",
        "permalink",
        "layout",
        "categories",
        "category",
        "tags",
        "tag",
        "date",
        "excerpt",
        "published",
    }
)

_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S %z",
    "%Y-%m-%d %H:%M %z",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
)


class _Text:
    """Decoded document text that can map character indexes to byte offsets."""

    def __init__(self, raw: RawDocument) -> None:
        content = raw.content
        self.prefix = len(_BOM) if content.startswith(_BOM) else 0
        try:
            self.value = content[self.prefix :].decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MetadataParseError(
                raw.source, self.prefix + exc.start, "document is not valid UTF-8"
            ) from exc

    def byte_offset(self, index: int) -> int:
        return self.prefix + len(self.value[:index].encode("utf-8"))


def split_front_matter(text: str, source: str = "<string>") -> tuple[str | None, str, int]:
    """Split ``text`` into ``(block, body, block_start)``.

    ``block`` is ``None`` when the text has no opening fence; ``block_start`` is
    the character index where the metadata block begins.
    """
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip() != FENCE:
        return None, text, 0

    start = len(lines[0])
    position = start
    for line in lines[1:]:
        if line.rstrip() in _CLOSING_FENCES:
            return text[start:position], text[position + len(line) :], start
        position += len(line)
    raise MetadataParseError(source, 0, "unterminated front matter block")


def _load_block(block: str, block_start: int, text: _Text, source: str) -> dict[str, Any]:
    try:
        data = yaml.safe_load(block)
    except yaml.MarkedYAMLError as exc:
        mark = exc.problem_mark or exc.context_mark
        index = block_start + (mark.index if mark is not None else 0)
        problem = exc.problem or "invalid YAML"
        raise MetadataParseError(source, text.byte_offset(index), problem) from exc
    except yaml.YAMLError as exc:
        raise MetadataParseError(source, text.byte_offset(block_start), str(exc)) from exc
    except (ValueError, TypeError) as exc:
        # PyYAML constructors raise these for scalars such as an impossible date.
        raise MetadataParseError(source, text.byte_offset(block_start), str(exc)) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise MetadataParseError(
            source, text.byte_offset(block_start), "front matter must be a mapping"
        )
    return {str(key): value for key, value in data.items()}


def parse_date(value: Any) -> datetime:
    """Coerce a YAML date, datetime or date string into a ``datetime``."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if not isinstance(value, str):
        raise ValueError(f"invalid date {value!r}")

    candidate = value.strip()
    try:
        return datetime.fromisoformat(candidate)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(candidate, fmt)
        except ValueError:
            continue
    raise ValueError(f"invalid date {value!r}")


def _optional_str(metadata: dict[str, Any], key: str) -> str | None:
    value = metadata.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ValueError(f"'{key}' must be a string")
    return str(value)


def parse_document(raw: RawDocument, *, date_fallback: str = "filename") -> Document:
    """Parse one raw document into an immutable :class:`Document`.

    Raises :class:`MetadataParseError` for any malformed metadata.
    """
    source = raw.source
    text = _Text(raw)
    block, body, block_start = split_front_matter(text.value, source)
    metadata = _load_block(block, block_start, text, source) if block is not None else {}
    block_offset = text.byte_offset(block_start)

    file_date, file_slug = split_filename(PurePosixPath(source).stem)

    try:
        title = _optional_str(metadata, "title")
        if "title" in metadata and (title is None or not title.strip()):
            raise ValueError("'title' must not be empty")
        slug = slugify(_optional_str(metadata, "slug") or "") or slugify(file_slug)
        if title is None:
            title = title_from_slug(file_slug)
        if not title.strip():
            raise ValueError("missing title")

        categories = normalize_terms(_merge_terms(metadata, "category", "categories"))
        tags = normalize_terms(_merge_terms(metadata, "tag", "tags"))

        if metadata.get("date") is not None:
            doc_date: datetime | None = parse_date(metadata["date"])
        elif date_fallback == "filename" and file_date is not None:
            doc_date = datetime.combine(file_date, time())
        else:
            doc_date = None

        published = metadata.get("published", True)
        if not isinstance(published, bool):
            raise ValueError("'published' must be true or false")

        document = Document(
            source=source,
            title=title.strip(),
            slug=slug,
            body=body,
            checksum=compute_sha256(raw.content),
            permalink=_optional_str(metadata, "permalink"),
            layout=_optional_str(metadata, "layout"),
            categories=categories,
            tags=tags,
            date=doc_date,
            excerpt=_optional_str(metadata, "excerpt"),
            published=published,
            extra={key: value for key, value in metadata.items() if key not in _KNOWN_KEYS},
        )
    except (TypeError, ValueError) as exc:
        raise MetadataParseError(source, block_offset, str(exc)) from exc

    LOGGER.debug("Parsed %s (%d metadata keys)", source, len(metadata))
    return document


def _merge_terms(metadata: dict[str, Any], singular: str, plural: str) -> list[Any] | None:
    """Combine the singular and plural spellings Jekyll accepts, singular first."""
    merged: list[Any] = []
    found = False
    for key in (singular, plural):
        value = metadata.get(key)
        if value is None:
            continue
        found = True
        if isinstance(value, (list, tuple)):
            merged.extend(value)
        elif isinstance(value, str):
            merged.extend(value.split())
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            merged.append(value)
        else:
            raise TypeError(f"'{key}' must be a list or string")
    return merged if found else None
