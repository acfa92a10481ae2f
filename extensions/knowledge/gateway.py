"""
Knowledge query gateway.

The only seam between the analysis pipeline and the vector-search backend.
Providers are synchronous; the gateway moves every call off the event loop
and turns any backend failure into `KnowledgeUnavailable`.
"""

import asyncio
import sys
from typing import Any, Protocol

from analysis.errors import KnowledgeUnavailable

from .models import (
    AUDIT_FINDINGS,
    COLLECTIONS,
    EXPLOITS,
    SWC,
    KnowledgeMatch,
    KnowledgeRecord,
    KnowledgeSearch,
    parse_metadata,
)


class VectorSearchProvider(Protocol):
    """Contract a vector-search backend has to satisfy.

    `query` and `get` return column-oriented dicts: `ids`, `documents`,
    `metadatas` (and `distances` for `query`), one entry per hit.
    """

    def query(
        self,
        collection: str,
        text: str,
        n_results: int,
        where: dict[str, Any] | None = None,
    ) -> dict[str, list]: ...

    def add(
        self,
        collection: str,
        ids: list[str],
        documents: list[str],
        metadatas: list[dict[str, Any]],
    ) -> None: ...

    def get(self, collection: str, ids: list[str]) -> dict[str, list]: ...

    def count(self, collection: str) -> int: ...


class KnowledgeGateway:
    """Async query/add/count access to the knowledge collections."""

    def __init__(self, provider: VectorSearchProvider, verbose: bool = False):
        self.provider = provider
        self.verbose = verbose

    async def _call(self, operation: str, collection: str, fn, *args, **kwargs):
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        try:
            return await asyncio.to_thread(fn, collection, *args, **kwargs)
        except Exception as e:
            raise KnowledgeUnavailable(
                f"Knowledge backend {operation} failed: {e}",
                {"collection": collection, "operation": operation},
            ) from e

    async def query(
        self,
        collection: str,
        text: str,
        limit: int = 5,
        where: dict[str, Any] | None = None,
    ) -> list[KnowledgeMatch]:
        """Nearest neighbours of `text`, ordered by ascending distance."""
        raw = await self._call("query", collection, self.provider.query, text, limit, where)
        ids = raw.get("ids") or []
        documents = raw.get("documents") or []
        metadatas = raw.get("metadatas") or []
        distances = raw.get("distances") or []

        matches = []
        for i, match_id in enumerate(ids):
            matches.append(KnowledgeMatch(
                id=match_id,
                document=documents[i] if i < len(documents) and documents[i] else "",
                metadata=parse_metadata(collection, metadatas[i] if i < len(metadatas) else None),
                distance=float(distances[i]) if i < len(distances) and distances[i] is not None else 1.0,
                collection=collection,
            ))

        if self.verbose:
            print(f"[Knowledge] {collection}: {len(matches)} hits for {text[:60]!r}", file=sys.stderr)
        return matches

    async def get_by_ids(self, collection: str, ids: list[str]) -> list[KnowledgeMatch]:
        """Fetch stored records directly. Distance is reported as 0."""
        if not ids:
            return []
        raw = await self._call("get", collection, self.provider.get, ids)
        documents = raw.get("documents") or []
        metadatas = raw.get("metadatas") or []
        return [
            KnowledgeMatch(
                id=record_id,
                document=documents[i] if i < len(documents) and documents[i] else "",
                metadata=parse_metadata(collection, metadatas[i] if i < len(metadatas) else None),
                distance=0.0,
                collection=collection,
            )
            for i, record_id in enumerate(raw.get("ids") or [])
        ]

    async def add(self, collection: str, records: list[KnowledgeRecord]) -> int:
        """Add records to a collection. Returns how many were sent."""
        if not records:
            return 0
        await self._call(
            "add",
            collection,
            self.provider.add,
            [r.id for r in records],
            [r.document for r in records],
            [r.metadata for r in records],
        )
        return len(records)

    async def count(self, collection: str) -> int:
        return await self._call("count", collection, self.provider.count)

    async def stats(self) -> dict[str, int]:
        """Document count per collection."""
        counts = await asyncio.gather(*(self.count(c) for c in COLLECTIONS))
        return dict(zip(COLLECTIONS, counts))

    async def search_all(self, text: str, limit: int = 3) -> KnowledgeSearch:
        """Query the exploit, audit-finding and SWC collections concurrently.

        Raises KnowledgeUnavailable if any of the three fails.
        """
        exploits, findings, swc = await asyncio.gather(
            self.query(EXPLOITS, text, limit),
            self.query(AUDIT_FINDINGS, text, limit),
            self.query(SWC, text, limit),
        )
        return KnowledgeSearch(swc=swc, exploits=exploits, audit_findings=findings)

    async def find_similar_exploits(
        self,
        text: str,
        limit: int = 5,
        category: str | None = None,
    ) -> list[KnowledgeMatch]:
        return await self.query(EXPLOITS, text, limit, {"category": category} if category else None)

    async def find_similar_audit_findings(
        self,
        text: str,
        limit: int = 5,
        severity: str | None = None,
    ) -> list[KnowledgeMatch]:
        return await self.query(AUDIT_FINDINGS, text, limit, {"severity": severity} if severity else None)
