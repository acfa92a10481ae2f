"""
External static analysis tools for Solidity.

Supported tools:
- Slither (Trail of Bits)
- Solhint
- Mythril (comprehensive mode only)

Other allow-listed tools (forge, echidna, surya, aderyn, halmos) are only
health-checked.
"""

from .pipeline import ExternalToolPipeline, PipelineResult
from .runner import ALLOWED_TOOLS, CommandResult, ToolReport, ToolRunner
from .slither_runner import SlitherRunner
from .solhint_runner import SolhintRunner
from .mythril_runner import MythrilRunner

__all__ = [
    "ALLOWED_TOOLS",
    "CommandResult",
    "ExternalToolPipeline",
    "MythrilRunner",
    "PipelineResult",
    "SlitherRunner",
    "SolhintRunner",
    "ToolReport",
    "ToolRunner",
]
