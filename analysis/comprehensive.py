"""
Comprehensive contract analysis.

Stages run in this order:

    static analysis -> external tools -> knowledge aggregation
        -> similar exploits -> scoring -> recommendations -> report

The scan runs first because its indicators drive the knowledge queries.
External tools, aggregation and similarity matching don't depend on each
other and run concurrently. Disabled or failing stages contribute empty data
and the report is still assembled. Only file-access problems abort an
analysis.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from extensions.knowledge.aggregator import AggregatedKnowledge, KnowledgeAggregator
from extensions.knowledge.gateway import KnowledgeGateway
from extensions.knowledge.similarity import SimilarExploit, SimilarityMatcher
from extensions.static.pipeline import ExternalToolPipeline, PipelineResult

from .config import AnalysisConfig
from .contract import ContractAnalysis, analyze_file
from .errors import AnalysisError, AnalysisFailed, FileNotFound
from .indicators import RuleRegistry, Severity
from .recommendations import recommend
from .scoring import RiskAssessment, score
from .source import exists


class AnalysisOptions(BaseModel):
    """Caller flags for one analysis."""

    include_knowledge_base: bool = True
    knowledge_limit: int = Field(default=10, ge=1)
    include_similar_exploits: bool = True
    use_external_tools: bool = True
    comprehensive_mode: bool = True


def error_response(error: AnalysisError) -> dict[str, Any]:
    """Structured error returned instead of a report."""
    return {**error.to_dict(), "isError": True}


def is_error(response: dict[str, Any]) -> bool:
    return bool(response.get("isError"))


class ComprehensiveAnalyzer:
    """Composes scanning, knowledge retrieval, tools, scoring and advice into one report."""

    def __init__(
        self,
        gateway: KnowledgeGateway | None = None,
        tools: ExternalToolPipeline | None = None,
        audit_trail=None,
        config: AnalysisConfig | None = None,
        registry: RuleRegistry | None = None,
    ):
        """Initialize the analyzer.

        Args:
            gateway: Knowledge gateway; without one the knowledge stages return nothing
            tools: External tool pipeline; without one the tool stage returns nothing
            audit_trail: Optional AuditTrail that records each finished analysis
            config: Runtime settings (file size limit, verbosity)
            registry: Indicator rules; the default rule set when omitted
        """
        self.config = config or AnalysisConfig()
        self.gateway = gateway
        self.tools = tools
        self.audit_trail = audit_trail
        self.registry = registry

        verbose = self.config.verbose
        self.aggregator = KnowledgeAggregator(gateway, verbose) if gateway else None
        self.matcher = SimilarityMatcher(gateway, verbose) if gateway else None

    def _log(self, message: str) -> None:
        if self.config.verbose:
            print(f"[Analysis] {message}", file=sys.stderr)

    async def analyze(self, path: str | Path, options: AnalysisOptions | None = None) -> dict[str, Any]:
        """Analyze one contract.

        Returns:
            The report dict, or an error response (see `is_error`) when the
            file can't be used or an unexpected fault occurs
        """
        options = options or AnalysisOptions()
        try:
            return await self._analyze(Path(path), options)
        except AnalysisError as e:
            print(f"[!] Analysis of {path} aborted: {e.message}", file=sys.stderr)
            return error_response(e)
        except Exception as e:
            print(f"[!] Analysis of {path} failed: {e}", file=sys.stderr)
            return error_response(AnalysisFailed("Analysis failed", {"path": str(path), "error": str(e)}))

    def analyze_sync(self, path: str | Path, options: AnalysisOptions | None = None) -> dict[str, Any]:
        return asyncio.run(self.analyze(path, options))

    async def _analyze(self, path: Path, options: AnalysisOptions) -> dict[str, Any]:
        if not exists(path):
            raise FileNotFound(str(path))

        self._log(f"Starting comprehensive analysis of {path}")
        analysis, src = analyze_file(path, self.config.max_file_size, self.registry)
        self._log(f"Static analysis found {len(analysis.indicators)} indicators")

        tools, knowledge, similar = await asyncio.gather(
            self._run_tools(path, options),
            self._aggregate(analysis, options),
            self._find_similar(analysis, src, options),
        )

        risk = score(analysis, knowledge, similar)
        recommendations = recommend(analysis, knowledge, similar)
        self._log(f"Analysis complete: {risk.level} ({risk.score})")

        report = self._assemble(analysis, tools, knowledge, similar, risk, recommendations, options)
        self._record(path, report)
        return report

    async def _run_tools(self, path: Path, options: AnalysisOptions) -> PipelineResult | None:
        if not options.use_external_tools or self.tools is None:
            return None
        try:
            return await asyncio.to_thread(self.tools.run, path, options.comprehensive_mode)
        except Exception as e:
            print(f"[!] External tools failed, continuing without them: {e}", file=sys.stderr)
            return None

    async def _aggregate(self, analysis: ContractAnalysis, options: AnalysisOptions) -> AggregatedKnowledge:
        if not options.include_knowledge_base:
            return AggregatedKnowledge()
        if self.aggregator is None:
            self._log("No knowledge gateway configured, skipping knowledge queries")
            return AggregatedKnowledge()
        return await self.aggregator.aggregate(analysis, options.knowledge_limit, options.comprehensive_mode)

    async def _find_similar(
        self,
        analysis: ContractAnalysis,
        src: str,
        options: AnalysisOptions,
    ) -> list[SimilarExploit]:
        # Similar exploits live in the knowledge base
        if not (options.include_knowledge_base and options.include_similar_exploits) or self.matcher is None:
            return []
        return await self.matcher.find_similar(analysis, src, options.knowledge_limit, options.comprehensive_mode)

    def _assemble(
        self,
        analysis: ContractAnalysis,
        tools: PipelineResult | None,
        knowledge: AggregatedKnowledge,
        similar: list[SimilarExploit],
        risk: RiskAssessment,
        recommendations: list[str],
        options: AnalysisOptions,
    ) -> dict[str, Any]:
        sources = list(dict.fromkeys(
            [e.source for e in similar if e.source] + knowledge.exploit_sources()
        ))
        kb_enabled = options.include_knowledge_base

        return {
            "contract": analysis.to_dict(),
            "externalTools": tools.to_dict() if tools else {},
            "knowledgeBase": {
                "queries": knowledge.to_dict(),
                "similarExploits": [e.to_dict() for e in similar],
                "sourcesUsed": sources,
                "queriesIssued": knowledge.queries,
            } if kb_enabled else None,
            "riskAssessment": risk.to_dict(),
            "recommendations": recommendations,
            "analysisMode": {
                "comprehensive": options.comprehensive_mode,
                "knowledgeBaseEnabled": kb_enabled,
                "externalToolsEnabled": options.use_external_tools,
                "similarExploitsEnabled": options.include_similar_exploits,
            },
            "summary": {
                "totalFindings": len(analysis.indicators),
                "criticalIssues": analysis.count(Severity.CRITICAL),
                "highIssues": analysis.count(Severity.HIGH),
                "mediumIssues": analysis.count(Severity.MEDIUM),
                "lowIssues": analysis.count(Severity.LOW),
                "similarExploitsFound": len(similar),
                "knowledgeBaseMatches": knowledge.total_matches if kb_enabled else 0,
                "externalToolsUsed": tools.tools_used if tools else 0,
                "totalSources": {
                    "swcRegistry": len(knowledge.swc),
                    "exploits": len(knowledge.exploits),
                    "auditFindings": len(knowledge.audit_findings),
                    "similarExploits": len(similar),
                    "exploitSources": sources,
                } if kb_enabled else None,
            },
        }

    def _record(self, path: Path, report: dict[str, Any]) -> None:
        if self.audit_trail is None:
            return
        try:
            self.audit_trail.record_analysis(str(path), report)
        except Exception as e:
            print(f"[!] Could not record analysis: {e}", file=sys.stderr)
