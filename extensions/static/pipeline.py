"""
External tool pipeline.

Runs Slither, Solhint and (in comprehensive mode) Mythril against one
contract. Each tool is isolated: a missing or failing tool only changes its
own entry in the result.
"""

import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .mythril_runner import MythrilRunner
from .runner import ALLOWED_TOOLS, ToolAdapter, ToolReport, ToolRunner, install_hint
from .slither_runner import SlitherRunner
from .solhint_runner import SolhintRunner

if TYPE_CHECKING:
    from extensions.audit import AuditTrail


@dataclass
class PipelineResult:
    """Per-tool reports from one pipeline run."""

    reports: dict[str, ToolReport] = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)

    @property
    def tools_used(self) -> int:
        return sum(1 for r in self.reports.values() if r.used)

    def to_dict(self) -> dict[str, Any]:
        return {name: report.to_dict() for name, report in self.reports.items()}

    def summary(self) -> str:
        lines = ["External Tool Results:"]
        for name, report in self.reports.items():
            if not report.available:
                lines.append(f"  {name}: not installed ({report.hint})")
            else:
                detail = f", {len(report.findings)} findings" if report.findings else ""
                lines.append(f"  {name}: {report.status}{detail}")
        return "\n".join(lines)


class ExternalToolPipeline:
    """Orchestrates external security tools for a single contract."""

    def __init__(
        self,
        runner: ToolRunner | None = None,
        audit_trail: "AuditTrail | None" = None,
        analysis_timeout: int = 300,
        verbose: bool = False,
    ):
        """Initialize the pipeline.

        Args:
            runner: Tool runner shared by all adapters
            audit_trail: Where to log tool runs (optional)
            analysis_timeout: Timeout for slow analyzers (Slither, Mythril)
            verbose: Print progress to stderr
        """
        self.runner = runner or ToolRunner()
        self.audit_trail = audit_trail
        self.verbose = verbose
        self.slither = SlitherRunner(self.runner, timeout=analysis_timeout)
        self.solhint = SolhintRunner(self.runner)
        self.mythril = MythrilRunner(self.runner, timeout=analysis_timeout)

    def check_tools(self) -> dict[str, tuple[bool, str]]:
        """Check which allowed tools are installed.

        Returns:
            Dict mapping tool name to (available, version_or_install_hint)
        """
        status = {}
        for tool in ALLOWED_TOOLS:
            if self.runner.is_installed(tool):
                status[tool] = (True, self.runner.version(tool) or "installed")
            else:
                status[tool] = (False, install_hint(tool))
        return status

    def adapters(self, comprehensive: bool = True) -> list[tuple[str, ToolAdapter]]:
        adapters: list[tuple[str, ToolAdapter]] = [("slither", self.slither), ("solhint", self.solhint)]
        if comprehensive:
            adapters.append(("mythril", self.mythril))
        return adapters

    def run(self, path: Path, comprehensive: bool = True) -> PipelineResult:
        """Run every applicable tool on a contract.

        Args:
            path: Solidity file
            comprehensive: Include Mythril

        Returns:
            PipelineResult keyed by tool name
        """
        path = Path(path).resolve()
        result = PipelineResult(metadata={
            "target": str(path),
            "run_time": datetime.now().isoformat(),
        })

        for name, adapter in self.adapters(comprehensive):
            if self.verbose:
                print(f"[Analysis] Running {adapter.name}", file=sys.stderr)
            report = adapter.run(path)
            result.reports[name] = report
            if report.available:
                self._record(adapter, path, report)

        return result

    def _record(self, adapter: ToolAdapter, path: Path, report: ToolReport) -> None:
        if self.audit_trail is None:
            return
        try:
            self.audit_trail.record_tool_run(
                tool=adapter.tool,
                target=str(path),
                arguments=adapter.args(path),
                success=report.status != "failed",
                findings_count=len(report.findings) if report.findings else None,
                duration_ms=int((report.duration or 0) * 1000),
                error=report.error,
            )
        except Exception as e:
            print(f"[!] Could not record {adapter.tool} run: {e}", file=sys.stderr)
