"""Memory-safety and panic rules."""

from typing import List
import re

from ...results import Finding, Severity
from ..index import ProgramIndex
from ..source_model import ScanUnit
from .base import Rule


_UNSAFE = re.compile(r"\bunsafe\s*(?:\{|fn\b|impl\b|trait\b)")
_PANICS = re.compile(
    r"\.\s*(unwrap|expect)\s*\(|\b(panic|unreachable|todo|unimplemented)!\s*[(\[{]"
)


class UnsafeCodeRule(Rule):
    """Any use of ``unsafe``."""

    @property
    def rule_id(self) -> str:
        return "SOL-007"

    @property
    def title(self) -> str:
        return "Unsafe code"

    @property
    def default_severity(self) -> Severity:
        return Severity.MEDIUM

    @property
    def description(self) -> str:
        return "unsafe blocks bypass Rust's memory-safety guarantees inside the on-chain program."

    @property
    def remediation(self) -> str:
        return "Replace unsafe code with safe equivalents (bytemuck, zero-copy accounts) or document its invariants."

    def evaluate(self, unit: ScanUnit, index: ProgramIndex) -> List[Finding]:
        findings = []
        model = unit.model
        for line in model.lines:
            if not _UNSAFE.search(line.code):
                continue
            fn = model.function_at(line.number)
            if fn is not None and model.is_test_code(fn):
                continue
            findings.append(self.make_finding(
                unit,
                line.number,
                "unsafe code" + (f" in {fn.qualified_name}" if fn else ""),
                symbol=fn.qualified_name if fn else None,
                evidence=[{"snippet": line.raw.strip()}],
            ))
        return findings


class PanicInHandlerRule(Rule):
    """unwrap/expect/panic! inside instruction handlers."""

    @property
    def rule_id(self) -> str:
        return "SOL-008"

    @property
    def title(self) -> str:
        return "Panic in instruction handler"

    @property
    def default_severity(self) -> Severity:
        return Severity.LOW

    @property
    def description(self) -> str:
        return (
            "A panic aborts the transaction with an opaque error instead of a program "
            "error code, which hides the failure cause from clients."
        )

    @property
    def remediation(self) -> str:
        return "Propagate errors with ? and a custom error type instead of unwrap/expect/panic!."

    def evaluate(self, unit: ScanUnit, index: ProgramIndex) -> List[Finding]:
        findings = []
        model = unit.model
        for fn in model.instruction_handlers():
            for line in model.body_lines(fn):
                m = _PANICS.search(line.code)
                if not m:
                    continue
                if model.function_at(line.number) is not fn:
                    continue
                call = m.group(1) or m.group(2) + "!"
                findings.append(self.make_finding(
                    unit,
                    line.number,
                    f"'{call}' in instruction handler {fn.qualified_name}",
                    symbol=fn.qualified_name,
                    evidence=[{"call": call, "snippet": line.raw.strip()}],
                ))
        return findings
