"""
Tests for query construction and multi-query knowledge aggregation.
"""

import asyncio

from analysis.contract import analyze_source
from extensions.knowledge.aggregator import (
    DEFAULT_QUERY,
    AggregatedKnowledge,
    KnowledgeAggregator,
    build_primary_query,
    build_queries,
    merge_first_seen,
)
from extensions.knowledge.gateway import KnowledgeGateway
from extensions.knowledge.models import EXPLOITS, SWC, KnowledgeMatch, SwcMetadata


def swc_hit(swc_id, distance, severity="high"):
    return (swc_id, f"{swc_id} doc", {"swc_id": swc_id, "severity": severity, "source": "swc_registry"}, distance)


class TestQueryConstruction:
    def test_primary_query(self, vault_source):
        query = build_primary_query(analyze_source(vault_source))

        assert query.startswith("reentrancy tx.origin phishing access control integer overflow")
        assert "ERC20" in query
        assert "withdraw vulnerability" in query
        assert "setOwner vulnerability" in query
        assert "critical vulnerability" in query
        assert "reentrancy attack" in query
        assert query.count("access control") == 1

    def test_quick_primary_query(self, vault_source):
        query = build_primary_query(analyze_source(vault_source), comprehensive=False)
        assert "critical vulnerability" not in query
        assert "reentrancy attack" not in query

    def test_default_query(self):
        analysis = analyze_source("pragma solidity 0.8.20;\ncontract Empty {}")
        assert build_primary_query(analysis) == DEFAULT_QUERY

    def test_comprehensive_queries(self, vault_source):
        queries = build_queries(analyze_source(vault_source))

        assert len(queries) == 5
        assert queries[1] == "CRITICAL: Potential reentrancy - external call wit"
        assert len(queries[1]) == 50
        assert queries[-1] == "ERC20 security vulnerability"

    def test_quick_queries(self, vault_source):
        assert len(build_queries(analyze_source(vault_source), comprehensive=False)) == 1


class TestMerge:
    def test_first_seen_wins(self):
        early = KnowledgeMatch("A", "doc", SwcMetadata(), 0.5)
        late = KnowledgeMatch("A", "doc", SwcMetadata(), 0.1)
        other = KnowledgeMatch("B", "doc", SwcMetadata(), 0.2)

        merged = merge_first_seen([[early], [late, other]])

        assert [m.id for m in merged] == ["A", "B"]
        assert merged[0].distance == 0.5

    def test_empty(self):
        assert merge_first_seen([]) == []
        assert merge_first_seen([[], []]) == []


class TestAggregate:
    def test_per_query_limit(self, vault_source, gateway, provider):
        analysis = analyze_source(vault_source)
        result = asyncio.run(KnowledgeAggregator(gateway).aggregate(analysis, limit_per_collection=10))

        # 5 queries -> ceil(10 / 5) = 2 per collection per query
        assert {q[2] for q in provider.queries} == {2}
        assert len(provider.queries) == 15
        assert result.queries == build_queries(analysis)

    def test_quick_mode_single_query(self, vault_source, gateway, provider):
        asyncio.run(KnowledgeAggregator(gateway).aggregate(analyze_source(vault_source), 10, comprehensive=False))

        assert len(provider.queries) == 3
        assert {q[2] for q in provider.queries} == {10}

    def test_minimum_one_per_query(self, vault_source, gateway, provider):
        asyncio.run(KnowledgeAggregator(gateway).aggregate(analyze_source(vault_source), 1))
        assert {q[2] for q in provider.queries} == {1}

    def test_dedup_keeps_first_query(self, vault_source, make_provider):
        analysis = analyze_source(vault_source)
        primary = build_primary_query(analysis)

        def swc_results(text):
            if text == primary:
                return [swc_hit("SWC-107", 0.4, "critical")]
            return [swc_hit("SWC-107", 0.1, "critical"), swc_hit("SWC-101", 0.2)]

        provider = make_provider({SWC: swc_results})
        result = asyncio.run(KnowledgeAggregator(KnowledgeGateway(provider)).aggregate(analysis, 10))

        assert [m.id for m in result.swc] == ["SWC-107", "SWC-101"]
        assert result.swc[0].distance == 0.4

    def test_idempotent(self, vault_source, gateway):
        analysis = analyze_source(vault_source)
        aggregator = KnowledgeAggregator(gateway)

        first = asyncio.run(aggregator.aggregate(analysis, 10))
        second = asyncio.run(aggregator.aggregate(analysis, 10))

        assert first.to_dict() == second.to_dict()

    def test_capped_at_limit(self, vault_source, make_provider):
        hits = [swc_hit(f"SWC-{100 + i}", i / 100) for i in range(10)]
        provider = make_provider({SWC: lambda text: hits[:2] if text.startswith("CRITICAL") else hits})
        result = asyncio.run(
            KnowledgeAggregator(KnowledgeGateway(provider)).aggregate(analyze_source(vault_source), 3)
        )
        assert len(result.swc) <= 3

    def test_failed_query_is_isolated(self, vault_source, capsys, make_provider):
        analysis = analyze_source(vault_source)
        provider = make_provider(
            {EXPLOITS: lambda text: [(f"x-{len(text)}", "doc", {"source": "DeFiHackLabs"}, 0.3)]},
            fail_on="CRITICAL: tx.origin",
        )
        result = asyncio.run(KnowledgeAggregator(KnowledgeGateway(provider)).aggregate(analysis, 10))

        assert len(result.exploits) >= 1
        assert len(result.queries) == 5
        assert "[!] Knowledge query failed" in capsys.readouterr().err

    def test_backend_down(self, vault_source, failing_provider):
        result = asyncio.run(
            KnowledgeAggregator(KnowledgeGateway(failing_provider)).aggregate(analyze_source(vault_source))
        )
        assert result.total_matches == 0
        assert result.to_dict() == {"swc": [], "exploits": [], "auditFindings": []}


class TestAggregatedKnowledge:
    def test_severity_helpers(self):
        knowledge = AggregatedKnowledge(swc=[
            KnowledgeMatch("SWC-107", "", SwcMetadata(severity="critical"), 0.1),
            KnowledgeMatch("SWC-115", "", SwcMetadata(severity="high"), 0.2),
            KnowledgeMatch("SWC-103", "", SwcMetadata(severity="low"), 0.3),
        ])

        assert [m.id for m in knowledge.critical_swc()] == ["SWC-107"]
        assert [m.id for m in knowledge.high_swc()] == ["SWC-115"]
        assert knowledge.total_matches == 3

    def test_exploit_sources(self, gateway):
        search = asyncio.run(gateway.search_all("drain"))
        knowledge = AggregatedKnowledge(exploits=search.exploits)
        assert knowledge.exploit_sources() == ["DeFiHackLabs", "learn-evm-attacks"]
