"""
Mythril symbolic execution wrapper.

Slow; only run in comprehensive mode.
"""

from pathlib import Path

from .runner import ToolAdapter, ToolRunner


class MythrilRunner(ToolAdapter):
    name = "Mythril"
    tool = "myth"
    output_limit = 5000

    def __init__(self, runner: ToolRunner, timeout: int = 300, execution_timeout: int = 60):
        super().__init__(runner, timeout)
        self.execution_timeout = execution_timeout

    def args(self, path: Path) -> list[str]:
        return ["analyze", str(path), "--execution-timeout", str(self.execution_timeout)]
