"""Cross-program invocation rules."""

from typing import List, Optional
import re

from ...results import Finding, Severity
from ..index import ProgramIndex
from ..source_model import FunctionDef, ScanUnit
from .base import Rule


_CPI_CALL = re.compile(
    r"\b(?:invoke_signed|invoke|invoke_signed_unchecked|invoke_unchecked)\s*\("
    r"|\bCpiContext\s*::\s*new(?:_with_signer)?\s*\("
    r"|\b\w+\s*::\s*cpi\s*::\s*\w+\s*\("
)
_STATE_WRITE = re.compile(
    r"\*\*\s*[\w.]+\s*\.\s*(?:try_borrow_mut_lamports\s*\(\s*\)\s*\??|lamports\s*\.\s*borrow_mut\s*\(\s*\))"
    r"|\.\s*(?:try_borrow_mut_data|data\s*\.\s*borrow_mut)\s*\("
    r"|\.\s*(?:serialize|pack_into_slice)\s*\(\s*&\s*mut\b"
    r"|\b\w+\s*::\s*pack\s*\("
    r"|\bctx\s*\.\s*accounts\s*\.\s*\w+(?:\s*\.\s*\w+)+\s*(?:[+\-*/]?=)(?!=)"
)
_NATIVE_PROGRAM_ID = re.compile(
    r"program_id\s*:\s*\*?\s*([A-Za-z_]\w*)\s*\.\s*key\b"
    r"|Instruction\s*::\s*new_with_\w+\s*\(\s*\*?\s*([A-Za-z_]\w*)\s*\.\s*key\b"
)
_ANCHOR_CPI_PROGRAM = re.compile(
    r"CpiContext\s*::\s*new(?:_with_signer)?\s*\(\s*ctx\s*\.\s*accounts\s*\.\s*([A-Za-z_]\w*)"
)
_UNVERIFIED_TYPES = {"AccountInfo", "UncheckedAccount"}


class StateChangeAfterCpiRule(Rule):
    """Account state written after a cross-program invocation."""

    @property
    def rule_id(self) -> str:
        return "SOL-005"

    @property
    def title(self) -> str:
        return "State change after CPI"

    @property
    def default_severity(self) -> Severity:
        return Severity.MEDIUM

    @property
    def description(self) -> str:
        return (
            "Account data or lamports are modified after a cross-program invocation. "
            "The callee can observe stale state or re-enter through another program."
        )

    @property
    def remediation(self) -> str:
        return "Update program state before invoking other programs (checks-effects-interactions)."

    def evaluate(self, unit: ScanUnit, index: ProgramIndex) -> List[Finding]:
        findings = []
        model = unit.model
        for fn in model.functions:
            if model.is_test_code(fn):
                continue
            cpi_line: Optional[int] = None
            for line in model.body_lines(fn):
                if cpi_line is None:
                    if _CPI_CALL.search(line.code):
                        cpi_line = line.number
                    continue
                if _CPI_CALL.search(line.code):
                    continue
                if _STATE_WRITE.search(line.code):
                    findings.append(self.make_finding(
                        unit,
                        line.number,
                        f"State modified after CPI on line {cpi_line} in {fn.qualified_name}",
                        symbol=fn.qualified_name,
                        evidence=[{"cpi_line": cpi_line, "snippet": line.raw.strip()}],
                    ))
        return findings


class ArbitraryCpiRule(Rule):
    """CPI whose target program id comes from an unverified account."""

    @property
    def rule_id(self) -> str:
        return "SOL-006"

    @property
    def title(self) -> str:
        return "Arbitrary CPI"

    @property
    def default_severity(self) -> Severity:
        return Severity.HIGH

    @property
    def description(self) -> str:
        return (
            "The program invoked through CPI is taken from a caller-supplied account "
            "without verifying its address, so an attacker can substitute a malicious program."
        )

    @property
    def remediation(self) -> str:
        return "Use Program<'info, T> or compare the account key with the expected program id."

    def evaluate(self, unit: ScanUnit, index: ProgramIndex) -> List[Finding]:
        findings = []
        model = unit.model
        for fn in model.functions:
            if model.is_test_code(fn):
                continue
            body = model.body_code(fn)
            for line in model.body_lines(fn):
                m = _NATIVE_PROGRAM_ID.search(line.code)
                if m:
                    account = m.group(1) or m.group(2)
                    if not self._verified(account, body):
                        findings.append(self._finding(unit, fn, line.number, account, line.raw))
                    continue

                m = _ANCHOR_CPI_PROGRAM.search(line.code)
                if m and self._unverified_field(fn, m.group(1), index):
                    if not self._verified(m.group(1), body):
                        findings.append(self._finding(unit, fn, line.number, m.group(1), line.raw))
        return findings

    def _finding(self, unit: ScanUnit, fn: FunctionDef, line: int, account: str, raw: str) -> Finding:
        return self.make_finding(
            unit,
            line,
            f"CPI target '{account}' is not verified in {fn.qualified_name}",
            symbol=fn.qualified_name,
            evidence=[{"account": account, "snippet": raw.strip()}],
        )

    @staticmethod
    def _verified(account: str, body: str) -> bool:
        name = re.escape(account)
        checks = (
            name + r"\s*\.\s*key\s*(?:\(\s*\))?\s*[!=]=",
            r"[!=]=\s*\*?\s*" + name + r"\s*\.\s*key\b",
            r"require_keys_eq!\s*\([^;]*\b" + name + r"\b",
            r"check_program_account\s*\(\s*\*?\s*" + name + r"\b",
        )
        return any(re.search(c, body) for c in checks)

    @staticmethod
    def _unverified_field(fn: FunctionDef, field_name: str, index: ProgramIndex) -> bool:
        context = fn.context_struct
        if not context:
            return False
        found = index.find_struct(context)
        if found is None:
            return False
        _, struct = found
        fld = struct.field(field_name)
        if fld is None or fld.type_name not in _UNVERIFIED_TYPES:
            return False
        return not (fld.has_attribute("address") or fld.has_attribute("constraint"))
