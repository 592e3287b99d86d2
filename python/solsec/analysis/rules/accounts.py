"""Account validation rules: signers, unchecked accounts, owners, PDA bumps."""

from typing import List
import re

from ...results import Finding, Severity
from ..index import ProgramIndex
from ..source_model import FieldDef, ScanUnit
from .base import AUTHORITY_NAMES, Rule


_RAW_ACCOUNT_TYPES = {"AccountInfo", "UncheckedAccount", "SystemAccount"}
_CHECK_CONSTRAINTS = ("address", "owner", "seeds", "constraint", "executable")
_NEXT_ACCOUNT = re.compile(r"let\s+(?:mut\s+)?([A-Za-z_]\w*)\s*=\s*next_account_info\s*\(")
_DESERIALIZE = re.compile(
    r"\b(try_from_slice|unpack_unchecked|unpack|try_deserialize_unchecked|try_deserialize|deserialize|load_mut|load)\s*\("
)
_DATA_ACCESS = re.compile(
    r"\b([A-Za-z_]\w*)\s*\.\s*(?:data\s*\.\s*borrow(?:_mut)?\s*\(\s*\)|try_borrow_data\s*\(\s*\)|try_borrow_mut_data\s*\(\s*\)|data)\b"
)
_OWNER_CHECK = re.compile(r"\.owner\b|check_account_owner|assert_owned_by|check_program_account|owner\s*[!=]=")


class MissingSignerCheckRule(Rule):
    """Authority-like accounts that are never required to sign."""

    @property
    def rule_id(self) -> str:
        return "SOL-002"

    @property
    def title(self) -> str:
        return "Missing signer check"

    @property
    def default_severity(self) -> Severity:
        return Severity.HIGH

    @property
    def description(self) -> str:
        return (
            "An account that authorizes the instruction is not required to sign the "
            "transaction, so anyone can pass an arbitrary public key in its place."
        )

    @property
    def remediation(self) -> str:
        return (
            "Declare the account as Signer<'info>, add #[account(signer)], or verify "
            "account.is_signer before acting on it."
        )

    def _authority_names(self) -> List[str]:
        return list(AUTHORITY_NAMES) + self.option_list("authority_names")

    def _is_authority(self, name: str) -> bool:
        names = self._authority_names()
        return name in names or any(name.endswith("_" + n) for n in names)

    def evaluate(self, unit: ScanUnit, index: ProgramIndex) -> List[Finding]:
        findings = []
        model = unit.model

        for struct in model.accounts_structs:
            mutates = any(f.has_attribute("mut") for f in struct.fields)
            handlers = index.handlers_for(struct.name)
            for fld in struct.fields:
                if not self._unsigned_authority(fld):
                    continue
                if self._checked_in_handlers(fld.name, handlers, index):
                    continue
                severity = Severity.CRITICAL if mutates else Severity.HIGH
                findings.append(self.make_finding(
                    unit,
                    fld.line,
                    f"Account '{fld.name}' in {struct.name} is not required to sign",
                    symbol=f"{struct.name}.{fld.name}",
                    severity=severity,
                    evidence=[{
                        "field": fld.name,
                        "type": fld.type,
                        "handlers": sorted(fn.name for _, fn in handlers),
                        "mutable_accounts": mutates,
                    }],
                ))

        for fn in model.functions:
            body = model.body_code(fn)
            for line in model.body_lines(fn):
                m = _NEXT_ACCOUNT.search(line.code)
                if not m or not self._is_authority(m.group(1)):
                    continue
                name = m.group(1)
                if re.search(re.escape(name) + r"\s*\.\s*is_signer", body):
                    continue
                findings.append(self.make_finding(
                    unit,
                    line.number,
                    f"'{name}' is read in {fn.qualified_name} without an is_signer check",
                    symbol=fn.qualified_name,
                    evidence=[{"account": name, "snippet": line.raw.strip()}],
                ))
        return findings

    def _unsigned_authority(self, fld: FieldDef) -> bool:
        if not self._is_authority(fld.name):
            return False
        if "Signer" in fld.type or fld.has_attribute("signer"):
            return False
        return fld.type_name in _RAW_ACCOUNT_TYPES

    @staticmethod
    def _checked_in_handlers(name: str, handlers, index: ProgramIndex) -> bool:
        pattern = re.compile(re.escape(name) + r"\s*\.\s*(?:to_account_info\s*\(\s*\)\s*\.\s*)?is_signer")
        for _, fn in handlers:
            if pattern.search(fn.params) or pattern.search(fn.body):
                return True
        return False


class UncheckedAccountRule(Rule):
    """Raw AccountInfo/UncheckedAccount fields without validation."""

    @property
    def rule_id(self) -> str:
        return "SOL-003"

    @property
    def title(self) -> str:
        return "Unchecked account"

    @property
    def default_severity(self) -> Severity:
        return Severity.MEDIUM

    @property
    def description(self) -> str:
        return (
            "AccountInfo and UncheckedAccount perform no ownership or type validation. "
            "Without explicit constraints an attacker can substitute any account."
        )

    @property
    def remediation(self) -> str:
        return (
            "Use a typed Account<'info, T>, add address/owner/seeds constraints, or "
            "document the manual validation with a '/// CHECK:' comment."
        )

    def evaluate(self, unit: ScanUnit, index: ProgramIndex) -> List[Finding]:
        findings = []
        for struct in unit.model.accounts_structs:
            for fld in struct.fields:
                if fld.type_name not in ("AccountInfo", "UncheckedAccount"):
                    continue
                if any(doc.upper().startswith("CHECK") for doc in fld.docs):
                    continue
                if any(fld.has_attribute(c) for c in _CHECK_CONSTRAINTS):
                    continue
                findings.append(self.make_finding(
                    unit,
                    fld.line,
                    f"'{fld.name}' in {struct.name} is an unchecked {fld.type_name}",
                    symbol=f"{struct.name}.{fld.name}",
                    evidence=[{"field": fld.name, "type": fld.type}],
                ))
        return findings


class MissingOwnerCheckRule(Rule):
    """Account data deserialized without verifying the owning program."""

    @property
    def rule_id(self) -> str:
        return "SOL-004"

    @property
    def title(self) -> str:
        return "Missing owner check"

    @property
    def default_severity(self) -> Severity:
        return Severity.HIGH

    @property
    def description(self) -> str:
        return (
            "Account data is deserialized without checking account.owner. A forged "
            "account owned by another program can carry attacker-chosen state."
        )

    @property
    def remediation(self) -> str:
        return "Compare account.owner with the expected program id before reading its data."

    def evaluate(self, unit: ScanUnit, index: ProgramIndex) -> List[Finding]:
        findings = []
        model = unit.model
        for fn in model.functions:
            body = model.body_code(fn)
            if _OWNER_CHECK.search(body):
                continue
            for line in model.body_lines(fn):
                if not _DESERIALIZE.search(line.code):
                    continue
                access = _DATA_ACCESS.search(line.code)
                if not access:
                    continue
                findings.append(self.make_finding(
                    unit,
                    line.number,
                    f"Data of '{access.group(1)}' deserialized in {fn.qualified_name} without an owner check",
                    symbol=fn.qualified_name,
                    evidence=[{"account": access.group(1), "snippet": line.raw.strip()}],
                ))
        return findings


class NonCanonicalBumpRule(Rule):
    """PDAs derived with a caller-chosen bump."""

    @property
    def rule_id(self) -> str:
        return "SOL-009"

    @property
    def title(self) -> str:
        return "Non-canonical PDA bump"

    @property
    def default_severity(self) -> Severity:
        return Severity.MEDIUM

    @property
    def description(self) -> str:
        return (
            "create_program_address accepts any bump. Unless the canonical bump from "
            "find_program_address is enforced, several valid PDAs exist for the same seeds."
        )

    @property
    def remediation(self) -> str:
        return "Derive the address with find_program_address or store and verify the canonical bump."

    def evaluate(self, unit: ScanUnit, index: ProgramIndex) -> List[Finding]:
        findings = []
        model = unit.model
        for fn in model.functions:
            body = model.body_code(fn)
            if "find_program_address" in body:
                continue
            for line in model.body_lines(fn):
                if re.search(r"\bcreate_program_address\s*\(", line.code):
                    findings.append(self.make_finding(
                        unit,
                        line.number,
                        f"PDA derived with create_program_address in {fn.qualified_name}",
                        symbol=fn.qualified_name,
                        evidence=[{"snippet": line.raw.strip()}],
                    ))
        return findings

