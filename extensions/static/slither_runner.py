"""
Slither static analyzer wrapper.

Runs Slither (Trail of Bits) with JSON on stdout and parses its detector
results into findings for the report.
"""

import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .runner import CommandResult, ToolAdapter, ToolRunner


@dataclass
class SlitherFinding:
    """A single finding from Slither."""

    detector: str
    impact: str  # High, Medium, Low, Informational
    confidence: str  # High, Medium, Low
    description: str
    elements: list[dict] = field(default_factory=list)

    @property
    def primary(self) -> dict:
        """First source element Slither attached to the result, if any."""
        return self.elements[0] if self.elements else {}

    @property
    def file_path(self) -> str | None:
        return self.primary.get("source_mapping", {}).get("filename_relative")

    @property
    def lines(self) -> list[int]:
        return self.primary.get("source_mapping", {}).get("lines", [])

    @property
    def element_name(self) -> str:
        return self.primary.get("name", "Unknown")

    def to_dict(self) -> dict[str, Any]:
        location = self.file_path or ""
        if location and self.lines:
            location += f":{self.lines[0]}-{self.lines[-1]}"

        return {
            "detector": self.detector,
            "title": f"{self.detector}: {self.element_name}",
            "severity": SEVERITY_MAP.get(self.impact, "medium"),
            "impact": self.impact,
            "confidence": self.confidence,
            "description": self.description.strip(),
            "location": location,
        }


# Slither impact -> report severity
SEVERITY_MAP = {
    "High": "high",
    "Medium": "medium",
    "Low": "low",
    "Informational": "info",
    "Optimization": "info",
}

# Most to least severe
IMPACT_ORDER = ("High", "Medium", "Low", "Informational", "Optimization")
CONFIDENCE_ORDER = ("High", "Medium", "Low")


class SlitherRunner(ToolAdapter):
    """Runs Slither and parses its output."""

    name = "Slither"
    tool = "slither"
    output_limit = 5000

    # Detectors to exclude by default (too noisy or low-value)
    DEFAULT_EXCLUDE = [
        "naming-convention",
        "too-many-digits",
        "similar-names",
    ]

    def __init__(
        self,
        runner: ToolRunner,
        timeout: int = 300,
        exclude_detectors: list[str] | None = None,
        min_impact: str = "Low",  # High, Medium, Low, Informational
        min_confidence: str = "Low",  # High, Medium, Low
    ):
        """Initialize Slither runner.

        Args:
            runner: Tool runner used to launch slither
            timeout: Maximum seconds to wait for Slither
            exclude_detectors: List of detector names to skip
            min_impact: Minimum impact level to include
            min_confidence: Minimum confidence level to include
        """
        super().__init__(runner, timeout)
        self.exclude_detectors = self.DEFAULT_EXCLUDE if exclude_detectors is None else exclude_detectors
        self.min_impact = min_impact
        self.min_confidence = min_confidence

    def args(self, path: Path) -> list[str]:
        return [str(path), "--json", "-"]

    def status(self, result: CommandResult) -> str:
        # Slither exits non-zero whenever detectors fire
        return "completed"

    def parse(self, result: CommandResult) -> list[dict]:
        try:
            raw_data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            print(f"[!] Could not parse Slither JSON: {e}", file=sys.stderr)
            return []

        if not isinstance(raw_data, dict) or not raw_data.get("success", False):
            error = raw_data.get("error") if isinstance(raw_data, dict) else "unexpected output"
            print(f"[!] Slither reported an error: {error or 'unknown'}", file=sys.stderr)
            return []

        return [f.to_dict() for f in self.parse_findings(raw_data)]

    def parse_findings(self, raw_data: dict) -> list[SlitherFinding]:
        """Parse Slither JSON output into findings."""
        findings = []

        detectors = (raw_data.get("results") or {}).get("detectors", [])

        for detector in detectors:
            check = detector.get("check", "")
            if check in self.exclude_detectors:
                continue

            impact = detector.get("impact", "Informational")
            if not _at_least(impact, self.min_impact, IMPACT_ORDER):
                continue

            confidence = detector.get("confidence", "Low")
            if not _at_least(confidence, self.min_confidence, CONFIDENCE_ORDER):
                continue

            findings.append(SlitherFinding(
                detector=check,
                impact=impact,
                confidence=confidence,
                description=detector.get("description", ""),
                elements=detector.get("elements", []),
            ))

        return findings


def _at_least(value: str, threshold: str, order: tuple[str, ...]) -> bool:
    # Unknown levels are kept
    if value not in order or threshold not in order:
        return True
    return order.index(value) <= order.index(threshold)
