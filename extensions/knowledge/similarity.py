"""
Similar-exploit matching.

Probes the exploit collection with the raw contract source and with the
strongest indicators, then merges the probe results by id.
"""

import asyncio
import sys
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from analysis.contract import ContractAnalysis
from analysis.errors import KnowledgeUnavailable

from .aggregator import merge_first_seen
from .gateway import KnowledgeGateway
from .models import ExploitMetadata, KnowledgeMatch, KnowledgeMetadata

INDICATOR_PROBES = 3
INDICATOR_PROBE_LIMIT = 3
DESCRIPTION_EXCERPT = 500


@dataclass(frozen=True)
class SimilarExploit:
    """Display projection of an exploit match."""

    id: str
    similarity: int
    name: str | None = None
    protocol: str | None = None
    category: str | None = None
    loss: str | None = None
    date: str | None = None
    source: str | None = None
    attack_vector: str | None = None
    description: str = ""

    @classmethod
    def from_match(cls, match: KnowledgeMatch) -> "SimilarExploit":
        fields = _exploit_fields(match.metadata)
        return cls(
            id=match.id,
            similarity=match.relevance,
            description=match.document[:DESCRIPTION_EXCERPT],
            **fields,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "similarity": f"{self.similarity}%",
            "name": self.name,
            "protocol": self.protocol,
            "category": self.category,
            "loss": self.loss,
            "date": self.date,
            "source": self.source,
            "description": self.description,
            "attackVector": self.attack_vector,
        }


def _exploit_fields(meta: KnowledgeMetadata) -> dict[str, str | None]:
    if not isinstance(meta, ExploitMetadata):
        try:
            meta = ExploitMetadata.model_validate(meta.to_dict())
        except ValidationError:
            # Malformed record: read what is there as text
            raw = meta.to_dict()
            return {
                "name": _text(raw.get("name")),
                "protocol": _text(raw.get("protocol")),
                "category": _text(raw.get("category")),
                "loss": _text(raw.get("loss")),
                "date": _text(raw.get("date")),
                "source": _text(raw.get("source")),
                "attack_vector": _text(raw.get("attackVector")),
            }
    return {
        "name": meta.name,
        "protocol": meta.protocol,
        "category": meta.category,
        "loss": meta.loss,
        "date": meta.date,
        "source": meta.source,
        "attack_vector": meta.attack_vector,
    }


def _text(value: Any) -> str | None:
    return None if value is None else str(value)


class SimilarityMatcher:
    """Finds historical exploits resembling a contract."""

    def __init__(self, gateway: KnowledgeGateway, verbose: bool = False):
        self.gateway = gateway
        self.verbose = verbose

    async def _probe(self, text: str, limit: int) -> list[KnowledgeMatch]:
        try:
            return await self.gateway.find_similar_exploits(text, limit)
        except KnowledgeUnavailable as e:
            print(f"[!] Similar-exploit probe failed, skipping: {e}", file=sys.stderr)
            return []

    async def find_similar(
        self,
        analysis: ContractAnalysis,
        source: str,
        limit: int = 10,
        comprehensive: bool = True,
    ) -> list[SimilarExploit]:
        """Merge source and indicator probes into one deduplicated list.

        The source probe asks for `limit * 2` hits in comprehensive mode and
        `limit` otherwise; each indicator probe asks for 3. The merged list is
        capped at `limit * 2`.
        """
        probes = [(source, limit * 2 if comprehensive else limit)]
        if comprehensive:
            probes.extend(
                (str(i), INDICATOR_PROBE_LIMIT) for i in analysis.indicators[:INDICATOR_PROBES]
            )

        if self.verbose:
            print(f"[Analysis] Finding similar exploits with {len(probes)} probes", file=sys.stderr)

        batches = await asyncio.gather(*(self._probe(text, n) for text, n in probes))
        merged = merge_first_seen(list(batches))[:limit * 2]
        return [SimilarExploit.from_match(m) for m in merged]
