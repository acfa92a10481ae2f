"""
Multi-query knowledge aggregation.

Turns a contract analysis into a set of search queries, fans each one out to
the SWC, exploit and audit-finding collections, and merges the hits per
collection. Within a collection an id is kept from the first query that
returned it.
"""

import asyncio
import math
import sys
from dataclasses import dataclass, field
from typing import Any

from analysis.contract import ContractAnalysis
from analysis.errors import KnowledgeUnavailable
from analysis.indicators import Category, Severity

from .gateway import KnowledgeGateway
from .models import KnowledgeMatch, KnowledgeSearch

DEFAULT_QUERY = "smart contract security vulnerability"

# Function-name fragments worth their own search phrase
SENSITIVE_VERBS = ("withdraw", "transfer", "burn", "mint", "approve", "setOwner", "destroy", "kill", "upgrade")

SECONDARY_INDICATOR_COUNT = 3
SECONDARY_INDICATOR_LENGTH = 50


@dataclass
class AggregatedKnowledge:
    """Merged hits per collection plus the queries that produced them."""

    swc: list[KnowledgeMatch] = field(default_factory=list)
    exploits: list[KnowledgeMatch] = field(default_factory=list)
    audit_findings: list[KnowledgeMatch] = field(default_factory=list)
    queries: list[str] = field(default_factory=list)

    @property
    def total_matches(self) -> int:
        return len(self.swc) + len(self.exploits) + len(self.audit_findings)

    def critical_swc(self) -> list[KnowledgeMatch]:
        return [m for m in self.swc if getattr(m.metadata, "severity", None) == "critical"]

    def high_swc(self) -> list[KnowledgeMatch]:
        return [m for m in self.swc if getattr(m.metadata, "severity", None) == "high"]

    def exploit_sources(self) -> list[str]:
        sources = []
        for match in self.exploits:
            source = match.metadata.source
            if source and str(source) not in sources:
                sources.append(str(source))
        return sources

    def to_dict(self) -> dict[str, Any]:
        return {
            "swc": [m.format() for m in self.swc],
            "exploits": [m.format() for m in self.exploits],
            "auditFindings": [m.format() for m in self.audit_findings],
        }


def _append_unique(parts: list[str], phrase: str) -> None:
    if phrase not in parts:
        parts.append(phrase)


def build_primary_query(analysis: ContractAnalysis, comprehensive: bool = True) -> str:
    """One query string combining indicator categories, protocols and sensitive function names."""
    parts: list[str] = []

    for indicator in analysis.indicators:
        phrase = indicator.category.search_phrase
        if phrase:
            _append_unique(parts, phrase)

    for protocol in analysis.protocols:
        _append_unique(parts, protocol)

    names = [f.name.lower() for f in analysis.external_functions + analysis.public_functions]
    for verb in SENSITIVE_VERBS:
        if any(verb.lower() in name for name in names):
            _append_unique(parts, f"{verb} vulnerability")

    if comprehensive:
        for indicator in analysis.indicators:
            if indicator.severity is Severity.CRITICAL:
                _append_unique(parts, "critical vulnerability")
            if indicator.category is Category.REENTRANCY:
                _append_unique(parts, "reentrancy attack")
            if indicator.category is Category.ACCESS_CONTROL:
                _append_unique(parts, "access control")

    return " ".join(parts) if parts else DEFAULT_QUERY


def build_queries(analysis: ContractAnalysis, comprehensive: bool = True) -> list[str]:
    """Primary query, then (comprehensive mode only) indicator and protocol queries."""
    queries = [build_primary_query(analysis, comprehensive)]
    if comprehensive:
        queries.extend(
            str(i)[:SECONDARY_INDICATOR_LENGTH]
            for i in analysis.indicators[:SECONDARY_INDICATOR_COUNT]
        )
        queries.extend(f"{p} security vulnerability" for p in analysis.protocols)
    return queries


def merge_first_seen(batches: list[list[KnowledgeMatch]]) -> list[KnowledgeMatch]:
    """Concatenate batches in order, dropping ids already seen.

    The first occurrence of an id wins even when a later one has a lower
    distance.
    """
    merged: list[KnowledgeMatch] = []
    seen: set[str] = set()
    for batch in batches:
        for match in batch:
            if match.id not in seen:
                seen.add(match.id)
                merged.append(match)
    return merged


class KnowledgeAggregator:
    """Runs the query set for a contract and merges the results."""

    def __init__(self, gateway: KnowledgeGateway, verbose: bool = False):
        self.gateway = gateway
        self.verbose = verbose

    async def _search(self, query: str, limit: int) -> KnowledgeSearch:
        try:
            return await self.gateway.search_all(query, limit)
        except KnowledgeUnavailable as e:
            print(f"[!] Knowledge query failed, skipping: {e}", file=sys.stderr)
            return KnowledgeSearch()

    async def aggregate(
        self,
        analysis: ContractAnalysis,
        limit_per_collection: int = 10,
        comprehensive: bool = True,
    ) -> AggregatedKnowledge:
        """Query every collection with every derived query and merge the hits.

        Args:
            analysis: Contract analysis driving the queries
            limit_per_collection: Maximum hits kept per collection
            comprehensive: Add secondary indicator/protocol queries

        Returns:
            AggregatedKnowledge with each collection capped at limit_per_collection
        """
        queries = build_queries(analysis, comprehensive)
        per_query = max(1, math.ceil(limit_per_collection / len(queries)))

        if self.verbose:
            print(f"[Analysis] Querying knowledge base: {len(queries)} queries, {per_query} per collection",
                  file=sys.stderr)

        searches = await asyncio.gather(*(self._search(q, per_query) for q in queries))

        return AggregatedKnowledge(
            swc=merge_first_seen([s.swc for s in searches])[:limit_per_collection],
            exploits=merge_first_seen([s.exploits for s in searches])[:limit_per_collection],
            audit_findings=merge_first_seen([s.audit_findings for s in searches])[:limit_per_collection],
            queries=queries,
        )
