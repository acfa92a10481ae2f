"""
Solhint linter wrapper.
"""

from pathlib import Path

from .runner import CommandResult, ToolAdapter, ToolRunner


class SolhintRunner(ToolAdapter):
    """Lints a contract with solhint. Exit 0 means no warnings."""

    name = "Solhint"
    tool = "solhint"
    output_limit = 2000

    def __init__(self, runner: ToolRunner, timeout: int = 30):
        super().__init__(runner, timeout)

    def args(self, path: Path) -> list[str]:
        return [str(path)]

    def status(self, result: CommandResult) -> str:
        return "passed" if result.exit_code == 0 else "warnings"
