"""
ChromaDB-backed vector search provider.

Talks to a Chroma server over HTTP (CHROMA_URL). Collections are created on
first use with Chroma's default embedding function.
"""

from datetime import datetime
from typing import Any
from urllib.parse import urlparse

import chromadb

from .models import COLLECTIONS


class ChromaProvider:
    """VectorSearchProvider over a Chroma HTTP server."""

    def __init__(self, url: str = "http://localhost:8000"):
        self.url = url
        self._client = None
        self._collections: dict[str, Any] = {}

    def _connect(self):
        if self._client is None:
            parsed = urlparse(self.url)
            self._client = chromadb.HttpClient(
                host=parsed.hostname or "localhost",
                port=parsed.port or (443 if parsed.scheme == "https" else 8000),
                ssl=parsed.scheme == "https",
            )
        return self._client

    def _collection(self, name: str):
        if name not in self._collections:
            self._collections[name] = self._connect().get_or_create_collection(
                name=name,
                metadata={
                    "description": f"{name} collection for security knowledge base",
                    "created": datetime.now().isoformat(),
                },
            )
        return self._collections[name]

    def initialize(self) -> None:
        """Create every known collection up front."""
        for name in COLLECTIONS:
            self._collection(name)

    def query(
        self,
        collection: str,
        text: str,
        n_results: int,
        where: dict[str, Any] | None = None,
    ) -> dict[str, list]:
        results = self._collection(collection).query(
            query_texts=[text],
            n_results=n_results,
            where=where,
        )

        def _first(key: str) -> list:
            rows = results.get(key) or [[]]
            return list(rows[0] or [])

        return {
            "ids": _first("ids"),
            "documents": _first("documents"),
            "metadatas": _first("metadatas"),
            "distances": _first("distances"),
        }

    def add(
        self,
        collection: str,
        ids: list[str],
        documents: list[str],
        metadatas: list[dict[str, Any]],
    ) -> None:
        # Chroma rejects None metadata values
        cleaned = [{k: v for k, v in m.items() if v is not None} for m in metadatas]
        self._collection(collection).upsert(ids=ids, documents=documents, metadatas=cleaned)

    def get(self, collection: str, ids: list[str]) -> dict[str, list]:
        results = self._collection(collection).get(ids=ids)
        return {
            "ids": list(results.get("ids") or []),
            "documents": list(results.get("documents") or []),
            "metadatas": list(results.get("metadatas") or []),
        }

    def count(self, collection: str) -> int:
        return self._collection(collection).count()
