"""Unchecked arithmetic detection."""

from typing import List, Optional, Tuple
import re

from ...results import Finding, Severity
from ..index import ProgramIndex
from ..source_model import ScanUnit
from .base import Rule


VALUE_NAMES = (
    "amount",
    "balance",
    "lamports",
    "supply",
    "price",
    "fee",
    "reward",
    "stake",
    "total",
    "deposit",
    "shares",
    "rate",
    "collateral",
    "debt",
)

_SAFE_CALLS = re.compile(r"\b(?:checked|saturating|wrapping|overflowing)_\w+")
_SKIP_PREFIXES = ("use ", "#[", "const ", "static ", "pub const ", "type ")
_COMPOUND = re.compile(r"([A-Za-z_][\w.\[\]]*(?:\(\))?)\s*(\+=|-=|\*=)")
_BINARY = re.compile(
    r"([A-Za-z_]\w*(?:\.\w+)*(?:\(\))?|\))\s*([+\-*])(?![=>])\s*([A-Za-z_(][\w.]*(?:\(\))?|\d[\w.]*)"
)
_KEYWORDS = {"as", "return", "in", "mut", "let", "if", "else", "match", "move", "ref", "dyn", "impl", "where"}
_FLOAT = re.compile(r"\bf(?:32|64)\b")


class UncheckedArithmeticRule(Rule):
    """Flags +, -, * on integers without checked/saturating helpers."""

    @property
    def rule_id(self) -> str:
        return "SOL-001"

    @property
    def title(self) -> str:
        return "Unchecked arithmetic"

    @property
    def default_severity(self) -> Severity:
        return Severity.MEDIUM

    @property
    def description(self) -> str:
        return (
            "Integer arithmetic in release builds of Solana programs wraps silently on "
            "overflow. Balances and amounts computed this way can be manipulated."
        )

    @property
    def remediation(self) -> str:
        return "Use checked_add/checked_sub/checked_mul and return an error on None."

    def evaluate(self, unit: ScanUnit, index: ProgramIndex) -> List[Finding]:
        model = unit.model
        value_pattern = self._value_pattern()
        findings = []

        for fn in model.functions:
            if model.is_test_code(fn):
                continue
            nested = [
                f for f in model.functions
                if f is not fn and fn.start_line < f.start_line and f.end_line <= fn.end_line
            ]
            for line in model.body_lines(fn):
                if any(n.contains_line(line.number) for n in nested):
                    continue
                match = self._match(line.code)
                if match is None:
                    continue
                operator, operands = match
                value_like = any(value_pattern.search(op) for op in operands)
                severity = Severity.HIGH if value_like else self.default_severity
                findings.append(self.make_finding(
                    unit,
                    line.number,
                    f"Unchecked '{operator}' in {fn.qualified_name}",
                    symbol=fn.qualified_name,
                    severity=severity,
                    evidence=[{"snippet": line.raw.strip(), "operator": operator}],
                    snippet=line.raw,
                ))
        return findings

    def _value_pattern(self) -> "re.Pattern":
        names = list(VALUE_NAMES) + self.option_list("value_names")
        return re.compile("|".join(re.escape(n) for n in names), re.IGNORECASE)

    def _match(self, code: str) -> Optional[Tuple[str, Tuple[str, ...]]]:
        stripped = code.strip()
        if not stripped or stripped.startswith(_SKIP_PREFIXES):
            return None
        if _SAFE_CALLS.search(code) or _FLOAT.search(code):
            return None

        m = _COMPOUND.search(code)
        if m:
            rhs = code[m.end():].strip().rstrip(";")
            return m.group(2), (m.group(1), rhs)

        for m in _BINARY.finditer(code):
            left, op, right = m.group(1), m.group(2), m.group(3)
            if left in _KEYWORDS or right in _KEYWORDS:
                continue
            left_literal = left[0].isdigit()
            right_literal = right[0].isdigit()
            if left_literal and right_literal:
                continue
            if right_literal or left_literal:
                # x + 1 is only interesting on value-like operands
                if not self._value_pattern().search(left if right_literal else right):
                    continue
            return op, (left, right)
        return None
