"""
Heuristic vulnerability indicators.

Each check is a `Rule` held in an ordered `RuleRegistry`. Rules run against
raw source text (no AST), never suppress each other, and always run in
registry order so the same source yields the same indicator list.
"""

import re
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable

from . import solidity


class Severity(Enum):
    """Indicator severity, highest first."""
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def weight(self) -> int:
        return SEVERITY_WEIGHTS[self]


SEVERITY_WEIGHTS = {
    Severity.CRITICAL: 30,
    Severity.HIGH: 20,
    Severity.MEDIUM: 10,
    Severity.LOW: 5,
}


class Category(Enum):
    """What an indicator is about. Drives knowledge-base query phrases."""
    REENTRANCY = "reentrancy"
    ACCESS_CONTROL = "access-control"
    TX_ORIGIN = "tx-origin"
    DELEGATECALL = "delegatecall"
    OVERFLOW = "overflow"
    ORACLE = "oracle"
    FLASH_LOAN = "flash-loan"
    RANDOMNESS = "randomness"
    DOS = "dos"
    VALIDATION = "validation"
    LOGIC = "logic"
    SIGNATURE = "signature"
    STORAGE = "storage"
    VISIBILITY = "visibility"
    SELFDESTRUCT = "selfdestruct"
    UNCHECKED_CALL = "unchecked-call"
    COMPILER = "compiler"
    EVENTS = "events"
    ASSEMBLY = "assembly"

    @property
    def search_phrase(self) -> str | None:
        """Canonical knowledge-base phrase, or None if the category isn't searched."""
        return SEARCH_PHRASES.get(self)


SEARCH_PHRASES = {
    Category.REENTRANCY: "reentrancy",
    Category.ACCESS_CONTROL: "access control",
    Category.TX_ORIGIN: "tx.origin phishing",
    Category.DELEGATECALL: "delegatecall",
    Category.OVERFLOW: "integer overflow",
    Category.ORACLE: "oracle manipulation",
    Category.FLASH_LOAN: "flash loan",
    Category.RANDOMNESS: "weak randomness",
    Category.DOS: "denial of service",
    Category.VALIDATION: "input validation",
    Category.LOGIC: "logic error",
    Category.SIGNATURE: "signature",
    Category.STORAGE: "storage",
    Category.VISIBILITY: "visibility",
    Category.SELFDESTRUCT: "selfdestruct",
}


@dataclass(frozen=True)
class Indicator:
    """A tagged heuristic finding, rendered as "<SEVERITY>: <description>"."""

    severity: Severity
    category: Category
    description: str
    rule: str = ""

    def __str__(self) -> str:
        return f"{self.severity.value}: {self.description}"

    def to_dict(self) -> dict[str, str]:
        return {
            "severity": self.severity.value,
            "category": self.category.value,
            "description": self.description,
            "rule": self.rule,
            "text": str(self),
        }


@dataclass(frozen=True)
class Rule:
    """One independent pattern check.

    `matches` gets the raw source and decides whether the rule fires. Rules
    that can fire more than once override `evaluate`.
    """

    name: str
    severity: Severity
    category: Category
    description: str
    matches: Callable[[str], bool]

    def evaluate(self, src: str) -> list[Indicator]:
        if self.matches(src):
            return [Indicator(self.severity, self.category, self.description, self.name)]
        return []


class RuleRegistry:
    """Ordered collection of rules."""

    def __init__(self, rules: Iterable[Rule] | None = None):
        self._rules: list[Rule] = list(DEFAULT_RULES if rules is None else rules)

    def __iter__(self):
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def names(self) -> list[str]:
        return [r.name for r in self._rules]

    def get(self, name: str) -> Rule | None:
        return next((r for r in self._rules if r.name == name), None)

    def register(self, rule: Rule, before: str | None = None) -> None:
        """Add a rule at the end, or just before the named rule."""
        if self.get(rule.name):
            raise ValueError(f"Rule already registered: {rule.name}")
        if before is None:
            self._rules.append(rule)
            return
        names = self.names()
        if before not in names:
            raise KeyError(before)
        self._rules.insert(names.index(before), rule)

    def remove(self, name: str) -> Rule:
        rule = self.get(name)
        if rule is None:
            raise KeyError(name)
        self._rules.remove(rule)
        return rule

    def scan(self, src: str) -> list[Indicator]:
        """Run every rule in order and collect the indicators they fire."""
        indicators: list[Indicator] = []
        for rule in self._rules:
            try:
                indicators.extend(rule.evaluate(src))
            except Exception as e:
                print(f"[!] Rule {rule.name} failed, skipping: {e}", file=sys.stderr)
        return indicators


def scan(source: str, registry: RuleRegistry | None = None) -> list[Indicator]:
    """Scan Solidity source text for vulnerability indicators.

    Pure and deterministic. Returns an empty list when nothing matches.
    """
    if not source:
        return []
    return (registry if registry is not None else RuleRegistry()).scan(source)


def filter_by_severity(indicators: Iterable[Indicator], severity: Severity) -> list[Indicator]:
    return [i for i in indicators if i.severity is severity]


def severity_breakdown(indicators: Iterable[Indicator]) -> dict[str, int]:
    counts = {s.value.lower(): 0 for s in Severity}
    for indicator in indicators:
        counts[indicator.severity.value.lower()] += 1
    return counts


# ─────────────────────────────────────────────────────────────────────────────
# Checks
# ─────────────────────────────────────────────────────────────────────────────

_LOW_LEVEL_CALL = (".call{", ".call(", ".send(", ".transfer(")
_LOOP_WITH_CALL = re.compile(r"for\s*\([^)]*\)\s*\{[^}]*\.call\(")
_VALUE_TYPES = r"(?:uint\d*|int\d*|bool|address(?:\s+payable)?|string|bytes\d*)"


def _pragma_versions(src: str) -> list[str]:
    return solidity.compiler_versions(solidity.extract_metadata(src).pragmas)


def _external_call_without_guard(src: str) -> bool:
    return any(c in src for c in _LOW_LEVEL_CALL) and not solidity.has_reentrancy_guard(src)


def _value_call_without_guard(src: str) -> bool:
    return bool(re.search(r"\.call\{[^}]*value:", src)) and "nonReentrant" not in src


def _privileged_function(src: str) -> bool:
    pattern = r"function\s+\w+.*external.*\{[^}]*\b(transfer|withdraw|withdrawAll|setOwner|changeOwner|destroy|kill)\b"
    return bool(re.search(pattern, src, re.IGNORECASE)) and not solidity.has_access_control(src)


def _unguarded_delegatecall(src: str) -> bool:
    return "delegatecall" in src and not re.search(r"require\(.*==.*msg\.sender", src, re.IGNORECASE)


def _pre_08_arithmetic(src: str) -> bool:
    if "SafeMath" in src or not solidity.has_outdated_compiler(_pragma_versions(src)):
        return False
    return bool(re.search(r"\+\+|--|\+\s*[^=]|-\s*[^=]", src))


def _unchecked_call_return(src: str) -> bool:
    return bool(re.search(r"\.call\(|\.send\(|\.transfer\(", src)) and not re.search(
        r"require\(.*success|if\s*\(.*success", src
    )


def _timestamp_dependence(src: str) -> bool:
    return bool(re.search(r"block\.timestamp|block\.number|\bnow\b", src)) and bool(
        re.search(r"require\(.*block\.(timestamp|number)", src)
    )


def _missing_events(src: str) -> bool:
    functions = re.findall(r"function\s+(\w+).*\{", src)
    events = re.findall(r"event\s+\w+", src)
    return len(functions) > len(events) * 2


def _uninitialized_storage(src: str) -> bool:
    return bool(re.search(r"\b\w+\s+storage\s+\w+\s*;", src))


def _outdated_pragma(src: str) -> bool:
    return bool(re.search(r"pragma\s+solidity\s+[\^~>=<\s]*0\.[4-7]\.", src))


def _missing_zero_address_check(src: str) -> bool:
    return bool(re.search(r"function\s+\w+.*address.*\{", src)) and not re.search(
        r"require\(.*!=\s*address\(0\)", src
    )


def _unprotected_payable(src: str) -> bool:
    pattern = r"function\s+\w+[^{;]*\b(?:external\b[^{;]*\bpayable|payable\b[^{;]*\bexternal)\b[^{;]*\{"
    return bool(re.search(pattern, src)) and not solidity.has_access_control(src)


def _unchecked_transfer_send(src: str) -> bool:
    return bool(re.search(r"\.transfer\(|\.send\(", src)) and not re.search(r"require\(.*success", src)


def _weak_randomness(src: str) -> bool:
    return bool(re.search(r"block\.(timestamp|number|hash|difficulty|gaslimit|prevrandao)|blockhash\(", src)) and bool(
        re.search(r"random|Random", src)
    )


def _loop_call_without_escape(src: str) -> bool:
    return bool(_LOOP_WITH_CALL.search(src)) and not re.search(r"\bcontinue\b|\bbreak\b", src)


def _variable_shadowing(src: str) -> bool:
    """A parameter or local reuses the name of a declared state variable."""
    state_decl = re.compile(
        rf"^\s*(?:{_VALUE_TYPES}|mapping\s*\([^;]*?\))\s+(?:public|private|internal)\b[^;=]*?(\w+)\s*[;=]",
        re.MULTILINE,
    )
    state_names = set(state_decl.findall(src))
    if not state_names:
        return False

    local_decl = re.compile(rf"\b{_VALUE_TYPES}(?:\[\])?\s+(?:memory\s+|storage\s+|calldata\s+)?(\w+)\s*[;=,)]")
    for fn in solidity.extract_functions(src):
        scope = fn.header + "\n" + (solidity.extract_function_body(src, fn.name) or "")
        if state_names & set(local_decl.findall(scope)):
            return True
    return False


DEFAULT_RULES: tuple[Rule, ...] = (
    Rule("reentrancy-external-call", Severity.CRITICAL, Category.REENTRANCY,
         "Potential reentrancy - external call without guard", _external_call_without_guard),
    Rule("reentrancy-value-call", Severity.CRITICAL, Category.REENTRANCY,
         "ETH transfer via call without reentrancy protection", _value_call_without_guard),
    Rule("tx-origin", Severity.CRITICAL, Category.TX_ORIGIN,
         "tx.origin usage - vulnerable to phishing attacks", lambda src: "tx.origin" in src),
    Rule("privileged-function", Severity.HIGH, Category.ACCESS_CONTROL,
         "Privileged function without access control", _privileged_function),
    Rule("selfdestruct", Severity.CRITICAL, Category.SELFDESTRUCT,
         "selfdestruct without access control",
         lambda src: "selfdestruct" in src and "onlyOwner" not in src),
    Rule("delegatecall", Severity.CRITICAL, Category.DELEGATECALL,
         "delegatecall without proper validation", _unguarded_delegatecall),
    Rule("unchecked-arithmetic", Severity.HIGH, Category.OVERFLOW,
         "Unchecked arithmetic - potential overflow/underflow", _pre_08_arithmetic),
    Rule("unchecked-call-return", Severity.MEDIUM, Category.UNCHECKED_CALL,
         "Unchecked external call return value", _unchecked_call_return),
    Rule("timestamp-dependence", Severity.MEDIUM, Category.LOGIC,
         "Time-dependent logic - potential front-running", _timestamp_dependence),
    Rule("loop-external-call", Severity.MEDIUM, Category.DOS,
         "Loop with external calls - gas griefing risk", lambda src: bool(_LOOP_WITH_CALL.search(src))),
    Rule("missing-events", Severity.LOW, Category.EVENTS,
         "Missing event emissions for state changes", _missing_events),
    Rule("inline-assembly", Severity.HIGH, Category.ASSEMBLY,
         "Inline assembly - requires careful security review", lambda src: "assembly" in src),
    Rule("uninitialized-storage", Severity.HIGH, Category.STORAGE,
         "Uninitialized storage pointer", _uninitialized_storage),
    Rule("floating-pragma", Severity.MEDIUM, Category.COMPILER,
         "Floating pragma - use fixed version for production",
         lambda src: solidity.has_floating_pragma(_pragma_versions(src))),
    Rule("outdated-compiler", Severity.HIGH, Category.COMPILER,
         "Outdated Solidity version - known vulnerabilities", _outdated_pragma),
    Rule("missing-zero-address-check", Severity.MEDIUM, Category.VALIDATION,
         "Missing zero address validation", _missing_zero_address_check),
    Rule("unprotected-payable", Severity.HIGH, Category.ACCESS_CONTROL,
         "Unprotected payable function", _unprotected_payable),
    Rule("unchecked-transfer-send", Severity.MEDIUM, Category.UNCHECKED_CALL,
         "Missing return value check for transfer/send", _unchecked_transfer_send),
    Rule("weak-randomness", Severity.CRITICAL, Category.RANDOMNESS,
         "Weak randomness source - predictable values", _weak_randomness),
    Rule("dos-failed-call", Severity.MEDIUM, Category.DOS,
         "DoS risk - loop with external calls may fail", _loop_call_without_escape),
    Rule("variable-shadowing", Severity.LOW, Category.VISIBILITY,
         "Potential variable shadowing - verify manually", _variable_shadowing),
)
