"""
Structured summary of one Solidity source file.

A `ContractAnalysis` is built once per analysis call and then only read by
the knowledge, scoring and recommendation stages.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from . import solidity
from .indicators import Indicator, RuleRegistry, Severity, scan, severity_breakdown
from .source import DEFAULT_MAX_FILE_SIZE, file_info, read_source


@dataclass(frozen=True)
class ContractAnalysis:
    """Everything the pipeline knows about a contract before touching the knowledge base."""

    file: dict[str, Any]
    pragmas: list[str] = field(default_factory=list)
    imports: list[str] = field(default_factory=list)
    contracts: list[str] = field(default_factory=list)
    interfaces: list[str] = field(default_factory=list)
    libraries: list[str] = field(default_factory=list)
    compiler_versions: list[str] = field(default_factory=list)
    has_floating_pragma: bool = False
    has_outdated_compiler: bool = False
    dependencies: list[str] = field(default_factory=list)
    functions: list[solidity.SolidityFunction] = field(default_factory=list)
    indicators: list[Indicator] = field(default_factory=list)
    has_reentrancy_guard: bool = False
    has_access_control: bool = False
    has_safe_math: bool = False
    privileged_functions: list[str] = field(default_factory=list)
    protocols: list[str] = field(default_factory=list)

    @property
    def has_open_zeppelin(self) -> bool:
        return any("openzeppelin" in d.lower() for d in self.dependencies)

    @property
    def external_functions(self) -> list[solidity.SolidityFunction]:
        return [f for f in self.functions if f.visibility == "external"]

    @property
    def public_functions(self) -> list[solidity.SolidityFunction]:
        return [f for f in self.functions if f.visibility == "public"]

    @property
    def severity_breakdown(self) -> dict[str, int]:
        return severity_breakdown(self.indicators)

    def count(self, severity: Severity) -> int:
        return sum(1 for i in self.indicators if i.severity is severity)

    def function_summary(self) -> dict[str, int]:
        return {
            "totalFunctions": len(self.functions),
            "external": len(self.external_functions),
            "public": len(self.public_functions),
            "payable": sum(1 for f in self.functions if f.mutability == "payable"),
            "view": sum(1 for f in self.functions if not f.is_state_changing),
            "stateChanging": sum(1 for f in self.functions if f.is_state_changing),
        }

    def to_dict(self) -> dict[str, Any]:
        """Report shape for the `contract` section."""
        def _listing(fns):
            return [{"name": f.name, "line": f.line_number, "mutability": f.mutability} for f in fns]

        return {
            "file": self.file,
            "metadata": {
                "contracts": self.contracts,
                "interfaces": self.interfaces,
                "libraries": self.libraries,
                "compilerVersions": self.compiler_versions,
                "hasFloatingPragma": self.has_floating_pragma,
                "hasOutdatedCompiler": self.has_outdated_compiler,
                "dependencies": self.dependencies,
                "hasOpenZeppelin": self.has_open_zeppelin,
                "hasExternalDependencies": bool(self.dependencies),
            },
            "summary": self.function_summary(),
            "security": {
                "hasReentrancyGuard": self.has_reentrancy_guard,
                "hasAccessControl": self.has_access_control,
                "hasSafeMath": self.has_safe_math,
                "indicators": [str(i) for i in self.indicators],
                "severityBreakdown": self.severity_breakdown,
                "privilegedFunctionsWithoutAccessControl": self.privileged_functions,
            },
            "protocols": self.protocols,
            "functions": {
                "external": _listing(self.external_functions),
                "public": _listing(self.public_functions),
            },
        }


def analyze_source(
    src: str,
    info: dict[str, Any] | None = None,
    registry: RuleRegistry | None = None,
) -> ContractAnalysis:
    """Build a ContractAnalysis from source text.

    Args:
        src: Solidity source
        info: File metadata (path, name, size, lines); derived from the text when omitted
        registry: Rule set for the indicator scan; the default rules when omitted
    """
    if info is None:
        info = {"path": None, "name": None, "size": len(src.encode()), "lines": len(src.split("\n"))}

    metadata = solidity.extract_metadata(src)
    functions = solidity.extract_functions(src)
    versions = solidity.compiler_versions(metadata.pragmas)

    return ContractAnalysis(
        file=info,
        pragmas=metadata.pragmas,
        imports=metadata.imports,
        contracts=metadata.contracts,
        interfaces=metadata.interfaces,
        libraries=metadata.libraries,
        compiler_versions=versions,
        has_floating_pragma=solidity.has_floating_pragma(versions),
        has_outdated_compiler=solidity.has_outdated_compiler(versions),
        dependencies=solidity.import_paths(metadata.imports),
        functions=functions,
        indicators=scan(src, registry),
        has_reentrancy_guard=solidity.has_reentrancy_guard(src),
        has_access_control=solidity.has_access_control(src),
        has_safe_math=solidity.has_safe_math(src, versions),
        privileged_functions=[
            f.name for f in solidity.privileged_functions_without_access_control(src, functions)
        ],
        protocols=solidity.detect_protocols(src),
    )


def analyze_file(
    path: str | Path,
    max_size: int = DEFAULT_MAX_FILE_SIZE,
    registry: RuleRegistry | None = None,
) -> tuple[ContractAnalysis, str]:
    """Read a `.sol` file and analyze it. Returns (analysis, source)."""
    src = read_source(path, max_size)
    return analyze_source(src, file_info(path, src), registry), src
