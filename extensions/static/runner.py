"""
Allow-listed subprocess runner for external security tools.
"""

import shutil
import subprocess
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path

from analysis.errors import ExternalToolExecutionFailed, ExternalToolNotFound

# Tools the runner will execute, with install hints
ALLOWED_TOOLS: dict[str, str] = {
    "slither": "pip install slither-analyzer",
    "myth": "pip install mythril",
    "forge": "curl -L https://foundry.paradigm.xyz | bash && foundryup",
    "echidna-test": "https://github.com/crytic/echidna",
    "solhint": "npm install -g solhint",
    "surya": "npm install -g surya",
    "aderyn": "cargo install aderyn",
    "halmos": "pip install halmos",
}


@dataclass
class CommandResult:
    """Outcome of one tool invocation.

    `success` means the tool produced usable output; many analyzers exit
    non-zero whenever they report findings, so check `exit_code` as well.
    """

    success: bool
    command: str
    stdout: str
    stderr: str
    exit_code: int
    duration: float  # seconds


def install_hint(tool: str) -> str:
    return ALLOWED_TOOLS.get(tool, f"Install {tool}")


class ToolRunner:
    """Runs allow-listed tools with a per-call timeout."""

    def __init__(self, default_timeout: int = 60, verbose: bool = False):
        self.default_timeout = default_timeout
        self.verbose = verbose

    def _find(self, tool: str) -> str | None:
        """Find the executable in PATH or a local venv."""
        if found := shutil.which(tool):
            return found

        base_dir = Path(__file__).parent.parent.parent
        for candidate in (
            base_dir / ".venv" / "bin" / tool,
            base_dir / "venv" / "bin" / tool,
            Path.home() / ".local" / "bin" / tool,
        ):
            if candidate.exists():
                return str(candidate)
        return None

    def is_installed(self, tool: str) -> bool:
        return tool in ALLOWED_TOOLS and self._find(tool) is not None

    def check_all(self) -> dict[str, bool]:
        """Installed status of every allowed tool."""
        return {tool: self.is_installed(tool) for tool in ALLOWED_TOOLS}

    def execute(
        self,
        tool: str,
        args: list[str],
        cwd: str | Path | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        """Run a tool and capture its output.

        Raises:
            ValueError: tool is not on the allow-list
            ExternalToolNotFound: tool is not installed
            ExternalToolExecutionFailed: timeout, or non-zero exit with no stdout
        """
        if tool not in ALLOWED_TOOLS:
            raise ValueError(f"Tool not allowed: {tool}")

        executable = self._find(tool)
        if executable is None:
            raise ExternalToolNotFound(tool, install_hint(tool))

        timeout = timeout or self.default_timeout
        command = " ".join([tool, *args])
        if self.verbose:
            print(f"[Tools] {command} (timeout {timeout}s)", file=sys.stderr)

        start = time.monotonic()
        try:
            proc = subprocess.run(
                [executable, *args],
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                cwd=cwd,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ExternalToolExecutionFailed(f"{tool} timed out after {timeout}s", tool) from e
        except OSError as e:
            raise ExternalToolExecutionFailed(f"{tool} could not be started: {e}", tool) from e

        duration = time.monotonic() - start
        if proc.returncode != 0 and not proc.stdout:
            message = (proc.stderr or "").strip()[:500] or f"exit code {proc.returncode}"
            raise ExternalToolExecutionFailed(f"{tool} failed: {message}", tool)

        return CommandResult(
            success=True,
            command=command,
            stdout=proc.stdout,
            stderr=proc.stderr or "",
            exit_code=proc.returncode,
            duration=duration,
        )

    def version(self, tool: str) -> str | None:
        """First line of `<tool> --version`, or None if unavailable."""
        try:
            result = self.execute(tool, ["--version"], timeout=10)
        except (ExternalToolNotFound, ExternalToolExecutionFailed):
            return None
        text = (result.stdout or result.stderr).strip()
        return text.splitlines()[0] if text else None


@dataclass
class ToolReport:
    """Per-tool entry in the analysis report."""

    available: bool
    status: str | None = None  # completed, passed, warnings, failed
    output: str | None = None
    error: str | None = None
    hint: str | None = None
    findings: list[dict] = field(default_factory=list)
    duration: float | None = None

    @property
    def used(self) -> bool:
        return self.available and self.status in ("completed", "passed")

    def to_dict(self) -> dict:
        data = {"available": self.available}
        for key in ("status", "output", "error", "hint", "duration"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.findings:
            data["findings"] = self.findings
        return data


class ToolAdapter:
    """Runs one external tool against a contract and summarizes the result.

    Subclasses set `name`, `tool` and `output_limit` and override `args`,
    `status` and optionally `parse`.
    """

    name = ""
    tool = ""
    output_limit = 5000

    def __init__(self, runner: ToolRunner, timeout: int | None = None):
        self.runner = runner
        self.timeout = timeout

    def args(self, path: Path) -> list[str]:
        return [str(path)]

    def status(self, result: CommandResult) -> str:
        return "completed" if result.exit_code == 0 else "warnings"

    def parse(self, result: CommandResult) -> list[dict]:
        return []

    def run(self, path: Path) -> ToolReport:
        if not self.runner.is_installed(self.tool):
            return ToolReport(available=False, hint=install_hint(self.tool))

        try:
            result = self.runner.execute(self.tool, self.args(path), cwd=path.parent, timeout=self.timeout)
            return ToolReport(
                available=True,
                status=self.status(result),
                output=result.stdout[:self.output_limit],
                findings=self.parse(result),
                duration=round(result.duration, 2),
            )
        except (ExternalToolNotFound, ExternalToolExecutionFailed) as e:
            print(f"[!] {self.name} analysis failed: {e}", file=sys.stderr)
            return ToolReport(available=True, status="failed", error=str(e))
        except Exception as e:
            print(f"[!] {self.name} analysis failed unexpectedly: {e}", file=sys.stderr)
            return ToolReport(available=True, status="failed", error=f"{self.name} failed: {e}")
