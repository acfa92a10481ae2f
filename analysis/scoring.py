"""
Additive risk scoring.

The score is a plain sum of fixed weights so every point can be traced back
to a factor. Levels are threshold buckets of the score.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .contract import ContractAnalysis
from .indicators import Severity

if TYPE_CHECKING:
    from extensions.knowledge.aggregator import AggregatedKnowledge
    from extensions.knowledge.similarity import SimilarExploit

NO_REENTRANCY_GUARD = 30
NO_ACCESS_CONTROL = 20
OUTDATED_COMPILER = 25
FLOATING_PRAGMA = 15
PER_PRIVILEGED_FUNCTION = 15
PER_SIMILAR_EXPLOIT = 5
PER_CRITICAL_SWC = 15

# (minimum score, level), highest first
LEVEL_THRESHOLDS = (
    (70, "CRITICAL"),
    (50, "HIGH"),
    (30, "MEDIUM"),
    (10, "LOW"),
)


@dataclass
class RiskAssessment:
    level: str
    score: int
    factors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"level": self.level, "score": self.score, "factors": self.factors}


def risk_level(score: int) -> str:
    for threshold, level in LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    return "INFO"


def score(
    analysis: ContractAnalysis,
    knowledge: "AggregatedKnowledge | None" = None,
    similar_exploits: "list[SimilarExploit] | None" = None,
) -> RiskAssessment:
    """Score a contract from its indicators, knowledge matches and similar exploits.

    Disabled stages pass None or empty lists and simply add nothing.
    """
    total = sum(severity.weight * analysis.count(severity) for severity in Severity)
    factors: list[str] = []

    if not analysis.has_reentrancy_guard:
        total += NO_REENTRANCY_GUARD
        factors.append("Missing reentrancy protection")

    if not analysis.has_access_control:
        total += NO_ACCESS_CONTROL
        factors.append("Missing access control")

    if analysis.has_outdated_compiler:
        total += OUTDATED_COMPILER
        factors.append("Outdated Solidity compiler version")

    if analysis.has_floating_pragma:
        total += FLOATING_PRAGMA
        factors.append("Floating pragma - non-deterministic compilation")

    if analysis.privileged_functions:
        count = len(analysis.privileged_functions)
        total += count * PER_PRIVILEGED_FUNCTION
        factors.append(f"{count} privileged functions without access control")

    if similar_exploits:
        total += len(similar_exploits) * PER_SIMILAR_EXPLOIT
        factors.append(f"{len(similar_exploits)} similar historical exploits found")

    critical_swc = knowledge.critical_swc() if knowledge else []
    if critical_swc:
        total += len(critical_swc) * PER_CRITICAL_SWC
        factors.append(f"{len(critical_swc)} critical SWC entries matched")

    return RiskAssessment(level=risk_level(total), score=total, factors=factors)
