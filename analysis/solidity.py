"""
Regex-level extraction helpers for Solidity source.

Nothing here builds an AST. Every helper works on raw text and returns an
empty result rather than failing on malformed input.
"""

import re
from dataclasses import dataclass, field

# Signatures that count as contract-wide protections
REENTRANCY_GUARD_SIGNATURES = ("nonReentrant", "ReentrancyGuard")
ACCESS_CONTROL_SIGNATURES = ("onlyOwner", "onlyRole", "AccessControl")

# Function names/bodies that touch funds or ownership
PRIVILEGED_KEYWORDS = ("transfer", "withdraw", "setOwner", "destroy", "kill")

_PRAGMA_RE = re.compile(r"pragma\s+solidity\s+[^;]+;")
_IMPORT_RE = re.compile(r"import\s+[^;]+;")
_CONTRACT_RE = re.compile(r"\bcontract\s+(\w+)")
_INTERFACE_RE = re.compile(r"\binterface\s+(\w+)")
_LIBRARY_RE = re.compile(r"\blibrary\s+(\w+)")
_FUNCTION_RE = re.compile(r"function\s+(\w+)\s*\(([^)]*)\)([^{;]*)")

_VISIBILITY = ("public", "external", "internal", "private")
_MUTABILITY = ("view", "pure", "payable")
_HEADER_KEYWORDS = set(_VISIBILITY) | set(_MUTABILITY) | {
    "virtual", "override", "returns", "memory", "calldata", "storage", "constant",
}

# Substring signatures for protocol detection, checked in this order
PROTOCOL_SIGNATURES: list[tuple[str, tuple[str, ...]]] = [
    ("ERC20", ("transfer(", "balanceOf(")),
    ("ERC721", ("ownerOf(", "tokenURI(")),
    ("Balancer", ("IVault", "getPoolTokens")),
    ("Uniswap", ("getReserves", "UniswapV2")),
    ("Chainlink", ("AggregatorV3", "latestRoundData")),
    ("OpenZeppelin", ("Ownable", "AccessControl")),
]


@dataclass
class SolidityMetadata:
    """Top-level declarations found in a source file."""

    pragmas: list[str] = field(default_factory=list)
    imports: list[str] = field(default_factory=list)
    contracts: list[str] = field(default_factory=list)
    interfaces: list[str] = field(default_factory=list)
    libraries: list[str] = field(default_factory=list)


@dataclass
class SolidityFunction:
    """A function header."""

    name: str
    visibility: str = "internal"  # public, external, internal, private
    mutability: str = "nonpayable"  # pure, view, payable, nonpayable
    modifiers: list[str] = field(default_factory=list)
    line_number: int = 0
    header: str = ""

    @property
    def is_state_changing(self) -> bool:
        return self.mutability not in ("view", "pure")


def extract_metadata(src: str) -> SolidityMetadata:
    """Collect pragmas, imports and contract/interface/library names."""
    return SolidityMetadata(
        pragmas=[m.strip() for m in _PRAGMA_RE.findall(src)],
        imports=[m.strip() for m in _IMPORT_RE.findall(src)],
        contracts=_CONTRACT_RE.findall(src),
        interfaces=_INTERFACE_RE.findall(src),
        libraries=_LIBRARY_RE.findall(src),
    )


def extract_functions(src: str) -> list[SolidityFunction]:
    """Find function headers in declaration order.

    Visibility defaults to `internal` and mutability to `nonpayable` when
    the header doesn't state them.
    """
    functions = []
    for match in _FUNCTION_RE.finditer(src):
        trailer = match.group(3)
        words = re.findall(r"\b\w+\b", re.sub(r"\([^)]*\)", "", trailer))

        visibility = next((w for w in words if w in _VISIBILITY), "internal")
        mutability = next((w for w in words if w in _MUTABILITY), "nonpayable")
        modifiers = [w for w in words if w not in _HEADER_KEYWORDS and not w[0].isdigit()]

        functions.append(SolidityFunction(
            name=match.group(1),
            visibility=visibility,
            mutability=mutability,
            modifiers=modifiers,
            line_number=src.count("\n", 0, match.start()) + 1,
            header=match.group(0).strip(),
        ))
    return functions


def extract_function_body(src: str, name: str) -> str | None:
    """Return the text between the braces of the first function called `name`.

    Uses brace counting so nested blocks are included. Returns None for
    unknown functions and for declarations without a body.
    """
    header = re.search(rf"function\s+{re.escape(name)}\s*\([^)]*\)[^{{;]*", src)
    if not header:
        return None

    start = header.end()
    if start >= len(src) or src[start] != "{":
        return None

    depth = 0
    for i in range(start, len(src)):
        char = src[i]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return src[start + 1:i]

    # Unbalanced braces: take everything after the opening brace
    return src[start + 1:]


def compiler_versions(pragmas: list[str]) -> list[str]:
    """Version constraints from `pragma solidity ...;` lines."""
    versions = []
    for pragma in pragmas:
        match = re.search(r"solidity\s+([^;]+)", pragma)
        versions.append(match.group(1).strip() if match else "unknown")
    return versions


def has_floating_pragma(versions: list[str]) -> bool:
    return any("^" in v or ">=" in v or "~" in v for v in versions)


def has_outdated_compiler(versions: list[str]) -> bool:
    """True when any constraint resolves to a 0.x release below 0.8."""
    for version in versions:
        match = re.search(r"0\.(\d+)", version)
        if match and int(match.group(1)) < 8:
            return True
    return False


def has_reentrancy_guard(src: str) -> bool:
    return any(sig in src for sig in REENTRANCY_GUARD_SIGNATURES)


def has_access_control(src: str) -> bool:
    return any(sig in src for sig in ACCESS_CONTROL_SIGNATURES)


def has_safe_math(src: str, versions: list[str]) -> bool:
    return "SafeMath" in src or any(re.search(r"0\.8\.", v) for v in versions)


def import_paths(imports: list[str]) -> list[str]:
    """Quoted paths from import statements."""
    paths = []
    for statement in imports:
        match = re.search(r"[\"']([^\"']+)[\"']", statement)
        paths.append(match.group(1) if match else statement)
    return paths


def detect_protocols(src: str) -> list[str]:
    """Protocol hints by substring signature (ERC20, Uniswap, Chainlink, ...)."""
    return [
        name for name, signatures in PROTOCOL_SIGNATURES
        if any(sig in src for sig in signatures)
    ]


def privileged_functions_without_access_control(
    src: str,
    functions: list[SolidityFunction],
) -> list[SolidityFunction]:
    """External functions that move funds or ownership with no access-control signature.

    The function name, its header modifiers and its body are all checked.
    """
    flagged = []
    for fn in functions:
        if fn.visibility != "external":
            continue
        body = extract_function_body(src, fn.name) or ""
        scope = f"{fn.name}\n{body}"
        if not any(word in scope for word in PRIVILEGED_KEYWORDS):
            continue
        guarded = f"{fn.header}\n{body}"
        if any(sig in guarded for sig in ACCESS_CONTROL_SIGNATURES):
            continue
        flagged.append(fn)
    return flagged
