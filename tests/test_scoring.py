"""
Tests for risk scoring and recommendations.
"""

import dataclasses

import pytest

from analysis.contract import analyze_source
from analysis.indicators import Category, Indicator, Severity
from analysis.recommendations import NO_ISSUES, recommend
from analysis.scoring import risk_level, score
from extensions.knowledge.aggregator import AggregatedKnowledge
from extensions.knowledge.models import KnowledgeMatch, SwcMetadata
from extensions.knowledge.similarity import SimilarExploit


def swc(swc_id, severity):
    return KnowledgeMatch(swc_id, "", SwcMetadata(swc_id=swc_id, severity=severity), 0.2)


class TestRiskLevel:
    @pytest.mark.parametrize("value,level", [
        (70, "CRITICAL"),
        (69, "HIGH"),
        (50, "HIGH"),
        (49, "MEDIUM"),
        (30, "MEDIUM"),
        (29, "LOW"),
        (10, "LOW"),
        (9, "INFO"),
        (0, "INFO"),
    ])
    def test_thresholds(self, value, level):
        assert risk_level(value) == level


class TestScore:
    def test_vulnerable_vault(self, vault_source):
        risk = score(analyze_source(vault_source))

        # 3 critical, 4 high, 4 medium, 1 low = 215; +30 +20 +25 +15; 3 privileged * 15
        assert risk.score == 350
        assert risk.level == "CRITICAL"
        assert risk.factors == [
            "Missing reentrancy protection",
            "Missing access control",
            "Outdated Solidity compiler version",
            "Floating pragma - non-deterministic compilation",
            "3 privileged functions without access control",
        ]

    def test_hardened_contract(self, registry_source):
        risk = score(analyze_source(registry_source))

        assert risk.score == 0
        assert risk.level == "INFO"
        assert risk.factors == []

    def test_critical_indicator_adds_thirty(self, registry_source):
        analysis = analyze_source(registry_source)
        extra = Indicator(Severity.CRITICAL, Category.REENTRANCY, "Potential reentrancy")
        worse = dataclasses.replace(analysis, indicators=[*analysis.indicators, extra])

        assert score(worse).score == score(analysis).score + 30

    def test_knowledge_factors(self, registry_source):
        analysis = analyze_source(registry_source)
        knowledge = AggregatedKnowledge(swc=[swc("SWC-107", "critical"), swc("SWC-115", "high")])
        similar = [SimilarExploit("e1", 80), SimilarExploit("e2", 70)]

        risk = score(analysis, knowledge, similar)

        assert risk.score == 2 * 5 + 15
        assert "2 similar historical exploits found" in risk.factors
        assert "1 critical SWC entries matched" in risk.factors
        assert risk.level == "LOW"

    def test_disabled_stages_add_nothing(self, vault_source):
        analysis = analyze_source(vault_source)
        assert score(analysis, AggregatedKnowledge(), []).score == score(analysis).score

    def test_to_dict(self, registry_source):
        assert score(analyze_source(registry_source)).to_dict() == {"level": "INFO", "score": 0, "factors": []}


class TestRecommend:
    def test_hardened_contract(self, registry_source):
        assert recommend(analyze_source(registry_source)) == [NO_ISSUES]

    def test_vulnerable_vault(self, vault_source):
        advice = recommend(analyze_source(vault_source))

        assert advice[0] == "Add reentrancy protection (ReentrancyGuard or nonReentrant modifier)"
        assert "Implement access control for privileged functions (onlyOwner or AccessControl)" in advice
        assert "CRITICAL: Implement checks-effects-interactions pattern" in advice
        assert "CRITICAL: Replace tx.origin with msg.sender for authorization" in advice
        assert len(advice) == len(set(advice))

    def test_exploit_advice(self, registry_source):
        similar = [
            SimilarExploit("e1", 80, category="reentrancy", source="DeFiHackLabs"),
            SimilarExploit("e2", 75, category="reentrancy", source="DeFiHackLabs"),
            SimilarExploit("e3", 60, category="flash-loan", source="learn-evm-attacks"),
        ]
        advice = recommend(analyze_source(registry_source), similar_exploits=similar)

        assert advice[0] == "2 similar reentrancy exploits found from DeFiHackLabs - review historical attacks"
        assert "Use TWAP oracles instead of spot prices" in advice
        assert "DeFiHackLabs exploits matched - review real-world attack patterns" in advice
        assert "learn-evm-attacks exploits matched - review educational attack reproductions" in advice
        assert NO_ISSUES not in advice

    def test_swc_advice(self, registry_source):
        knowledge = AggregatedKnowledge(swc=[swc("SWC-107", "critical"), swc("SWC-105", "critical")])
        advice = recommend(analyze_source(registry_source), knowledge=knowledge)

        assert advice == [
            "2 critical SWC/Attack Vector entries matched - review carefully",
            "SWC-107 (Reentrancy) matched - implement reentrancy guards",
            "SWC-105 (Unprotected Ether Withdrawal) matched - add access control",
        ]

    def test_never_empty(self, registry_source):
        assert recommend(analyze_source(registry_source), AggregatedKnowledge(), [])
