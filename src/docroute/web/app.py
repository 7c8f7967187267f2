"""Read-only FastAPI view over a frozen registry."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from docroute import __version__
from docroute.index.registry import CorpusRegistry
from docroute.models import ResolvedDocument

LOGGER = logging.getLogger(__name__)


class DocumentPayload(BaseModel):
    source: str
    route: str
    title: str
    slug: str
    layout: str | None = None
    categories: List[str] = []
    tags: List[str] = []
    date: datetime | None = None
    excerpt: str | None = None
    metadata: dict[str, Any] = {}

    @classmethod
    def from_resolved(cls, item: ResolvedDocument) -> "DocumentPayload":
        document = item.document
        return cls(
            source=document.source,
            route=item.route,
            title=document.title,
            slug=document.slug,
            layout=document.layout,
            categories=list(document.categories),
            tags=list(document.tags),
            date=document.date,
            excerpt=document.excerpt,
            metadata=dict(document.extra),
        )


class TaxonomyPayload(BaseModel):
    key: str
    sources: List[str]


def create_app(registry: CorpusRegistry) -> FastAPI:
    """Create an app serving ``registry``, which must already be frozen."""
    app = FastAPI(title="docroute", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.state.registry = registry

    @app.get("/documents")
    async def list_documents() -> dict[str, List[DocumentPayload]]:
        return {
            "documents": [DocumentPayload.from_resolved(item) for item in registry.all_documents()]
        }

    @app.get("/routes")
    async def lookup_route(path: str = Query(..., min_length=1)) -> DocumentPayload:
        item = registry.lookup(path)
        if item is None:
            raise HTTPException(status_code=404, detail=f"No document at route {path}")
        return DocumentPayload.from_resolved(item)

    @app.get("/taxonomy")
    async def list_taxonomy() -> dict[str, List[str]]:
        return {"keys": list(registry.taxonomy_keys())}

    @app.get("/taxonomy/{key:path}")
    async def get_taxonomy(key: str) -> TaxonomyPayload:
        sources = registry.taxonomy(key)
        if sources is None:
            raise HTTPException(status_code=404, detail=f"Unknown taxonomy key {key}")
        return TaxonomyPayload(key=key, sources=list(sources))

    LOGGER.debug("Serving %d documents", len(registry))
    return app
