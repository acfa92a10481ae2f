"""
Remediation advice keyed off what the analysis found.
"""

from typing import TYPE_CHECKING

from .contract import ContractAnalysis
from .indicators import Category

if TYPE_CHECKING:
    from extensions.knowledge.aggregator import AggregatedKnowledge
    from extensions.knowledge.similarity import SimilarExploit

NO_ISSUES = "No immediate security issues detected, but always perform thorough review"

INDICATOR_ADVICE: dict[Category, tuple[str, ...]] = {
    Category.REENTRANCY: (
        "CRITICAL: Implement checks-effects-interactions pattern",
        "CRITICAL: Add reentrancy guard to all external calls",
    ),
    Category.TX_ORIGIN: ("CRITICAL: Replace tx.origin with msg.sender for authorization",),
    Category.DELEGATECALL: ("CRITICAL: Validate delegatecall target addresses",),
}

EXPLOIT_CATEGORY_ADVICE: dict[str, tuple[str, ...]] = {
    "flash-loan": (
        "Implement flash loan attack protections",
        "Use TWAP oracles instead of spot prices",
        "Add slippage protection for all swaps",
    ),
    "oracle-manipulation": (
        "Use multiple oracle sources for price feeds",
        "Implement price deviation checks",
        "Add time-weighted average price (TWAP) protection",
    ),
    "access-control": (
        "Review all privileged functions for proper access control",
        "Use role-based access control (OpenZeppelin AccessControl)",
    ),
    "logic-error": (
        "Review contract logic for edge cases",
        "Add comprehensive unit tests",
    ),
    "integer-overflow": ("Use SafeMath or Solidity 0.8+ for arithmetic operations",),
}

SOURCE_ADVICE = {
    "DeFiHackLabs": "DeFiHackLabs exploits matched - review real-world attack patterns",
    "learn-evm-attacks": "learn-evm-attacks exploits matched - review educational attack reproductions",
}


def _exploit_advice(similar: "list[SimilarExploit]") -> list[str]:
    advice: list[str] = []
    categories = {e.category for e in similar}

    reentrancy = [e for e in similar if e.category == "reentrancy"]
    if reentrancy:
        sources = list(dict.fromkeys(e.source or "unknown" for e in reentrancy))
        advice.append(
            f"{len(reentrancy)} similar reentrancy exploits found from {', '.join(sources)} "
            "- review historical attacks"
        )
        advice.append("Implement checks-effects-interactions pattern")

    for category, lines in EXPLOIT_CATEGORY_ADVICE.items():
        if category in categories:
            advice.extend(lines)

    sources = {e.source or "unknown" for e in similar}
    advice.extend(line for source, line in SOURCE_ADVICE.items() if source in sources)
    return advice


def _swc_advice(knowledge: "AggregatedKnowledge") -> list[str]:
    if not knowledge.swc:
        return []

    advice: list[str] = []
    critical, high = knowledge.critical_swc(), knowledge.high_swc()
    if critical:
        advice.append(f"{len(critical)} critical SWC/Attack Vector entries matched - review carefully")
    if high:
        advice.append(f"{len(high)} high severity SWC/Attack Vector entries matched")

    swc_ids = [getattr(m.metadata, "swc_id", None) or m.id for m in knowledge.swc]
    if any("107" in i for i in swc_ids):
        advice.append("SWC-107 (Reentrancy) matched - implement reentrancy guards")
    if any("105" in i for i in swc_ids):
        advice.append("SWC-105 (Unprotected Ether Withdrawal) matched - add access control")
    return advice


def recommend(
    analysis: ContractAnalysis,
    knowledge: "AggregatedKnowledge | None" = None,
    similar_exploits: "list[SimilarExploit] | None" = None,
) -> list[str]:
    """Deduplicated remediation list. Never empty."""
    advice: list[str] = []

    if not analysis.has_reentrancy_guard:
        advice.append("Add reentrancy protection (ReentrancyGuard or nonReentrant modifier)")
    if not analysis.has_access_control:
        advice.append("Implement access control for privileged functions (onlyOwner or AccessControl)")

    for indicator in analysis.indicators:
        advice.extend(INDICATOR_ADVICE.get(indicator.category, ()))

    if similar_exploits:
        advice.extend(_exploit_advice(similar_exploits))
    if knowledge:
        advice.extend(_swc_advice(knowledge))

    return list(dict.fromkeys(advice)) or [NO_ISSUES]
