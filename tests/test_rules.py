"""Tests for the built-in detection rules."""

import pytest

from solsec.analysis import ProgramIndex, ScanUnit
from solsec.analysis.rules import (
    RULE_CLASSES,
    ArbitraryCpiRule,
    MissingOwnerCheckRule,
    MissingSignerCheckRule,
    NonCanonicalBumpRule,
    PanicInHandlerRule,
    StateChangeAfterCpiRule,
    UncheckedAccountRule,
    UncheckedArithmeticRule,
    UnsafeCodeRule,
    builtin_rules,
    create_rule,
    get_rule_class,
)
from solsec.config import RuleConfig
from solsec.results import Severity


def run_rule(rule, *units):
    """Evaluate one rule over units sharing one index."""
    index = ProgramIndex(units)
    findings = []
    for unit in units:
        findings.extend(rule.evaluate(unit, index))
    return findings


def unit_of(source, path="src/lib.rs"):
    return ScanUnit(path, source)


class TestRuleRegistry:
    """Tests for the built-in rule table."""

    def test_all_rules_registered(self):
        """Test rules SOL-001 to SOL-009 exist in declaration order."""
        assert list(RULE_CLASSES) == [f"SOL-00{i}" for i in range(1, 10)]
        for rule_id, rule_class in RULE_CLASSES.items():
            assert rule_class().rule_id == rule_id

    def test_get_rule_class(self):
        """Test lookup is case-insensitive."""
        assert get_rule_class("sol-007") is UnsafeCodeRule
        assert get_rule_class("SOL-999") is None

    def test_create_rule_unknown(self):
        """Test unknown ids are rejected."""
        with pytest.raises(ValueError):
            create_rule("SOL-999")

    def test_builtin_rules_honours_config(self):
        """Test disabled rules are skipped and overrides are applied."""
        config = RuleConfig.from_dict({
            "rules": {
                "SOL-007": False,
                "SOL-008": {"severity": "high"},
            }
        })
        rules = {r.rule_id: r for r in builtin_rules(config)}
        assert "SOL-007" not in rules
        assert rules["SOL-008"].severity == Severity.HIGH
        assert rules["SOL-008"].severity_overridden

    def test_metadata(self):
        """Test every rule documents itself."""
        for rule in builtin_rules():
            assert rule.title
            assert rule.description
            assert rule.remediation

    def test_skips_unknown_languages(self):
        """Test rules only apply to Rust units."""
        rule = UnsafeCodeRule()
        assert rule.applies_to(unit_of("", "src/lib.rs"))
        assert not rule.applies_to(unit_of("unsafe {", "README.md"))


class TestUncheckedArithmetic:
    """Tests for SOL-001."""

    def test_value_arithmetic_is_high(self, vault_unit):
        """Test arithmetic on amounts and balances is high severity."""
        findings = run_rule(UncheckedArithmeticRule(), vault_unit)
        assert sorted(f.location.start_line for f in findings) == [12, 20]
        assert all(f.severity == Severity.HIGH for f in findings)
        assert all(f.location.symbol == "vault::withdraw" for f in findings)
        assert {f.evidence[0]["operator"] for f in findings} == {"-", "+="}

    def test_plain_arithmetic_is_medium(self):
        """Test arithmetic on other operands keeps the default severity."""
        source = "fn calc(a: u64, b: u64) -> u64 {\n    let c = a * b;\n    c\n}\n"
        findings = run_rule(UncheckedArithmeticRule(), unit_of(source))
        assert len(findings) == 1
        assert findings[0].severity == Severity.MEDIUM
        assert findings[0].location.start_line == 2

    def test_checked_and_float_ignored(self):
        """Test checked helpers, floats and literal-only math are not flagged."""
        source = (
            "fn calc(a: u64, b: u64, x: f64) -> u64 {\n"
            "    let c = a.checked_add(b).unwrap();\n"
            "    let y: f64 = x * 2.0;\n"
            "    let z = 2 * 8;\n"
            "    let i = a + 1;\n"
            "    c\n"
            "}\n"
        )
        assert run_rule(UncheckedArithmeticRule(), unit_of(source)) == []

    def test_literal_on_value_operand(self):
        """Test 'amount + 1' is still flagged."""
        source = "fn f(amount: u64) -> u64 {\n    amount + 1\n}\n"
        findings = run_rule(UncheckedArithmeticRule(), unit_of(source))
        assert len(findings) == 1
        assert findings[0].severity == Severity.HIGH

    def test_extra_value_names(self):
        """Test configured value names widen the high-severity set."""
        source = "fn f(widget: u64) -> u64 {\n    widget + 1\n}\n"
        assert run_rule(UncheckedArithmeticRule(), unit_of(source)) == []
        rule = UncheckedArithmeticRule(options={"value_names": ["widget"]})
        assert len(run_rule(rule, unit_of(source))) == 1

    def test_test_code_ignored(self, safe_source):
        """Test #[cfg(test)] code is skipped."""
        assert run_rule(UncheckedArithmeticRule(), unit_of(safe_source)) == []

    def test_severity_override(self, vault_unit):
        """Test a configured severity replaces computed severities."""
        findings = run_rule(UncheckedArithmeticRule(severity="low"), vault_unit)
        assert {f.severity for f in findings} == {Severity.LOW}


class TestMissingSignerCheck:
    """Tests for SOL-002."""

    def test_unsigned_authority_with_mutable_accounts_is_critical(self, vault_unit):
        """Test an AccountInfo authority next to mutable accounts is critical."""
        findings = run_rule(MissingSignerCheckRule(), vault_unit)
        assert len(findings) == 1
        finding = findings[0]
        assert finding.severity == Severity.CRITICAL
        assert finding.location.start_line == 29
        assert finding.location.symbol == "Withdraw.authority"
        assert finding.evidence[0]["handlers"] == ["withdraw"]

    def test_read_only_struct_is_high(self):
        """Test structs without mutable accounts report high."""
        source = (
            "#[derive(Accounts)]\n"
            "pub struct Close<'info> {\n"
            "    pub vault: Account<'info, Vault>,\n"
            "    pub owner: UncheckedAccount<'info>,\n"
            "}\n"
        )
        findings = run_rule(MissingSignerCheckRule(), unit_of(source))
        assert [(f.severity, f.location.start_line) for f in findings] == [(Severity.HIGH, 4)]

    def test_checked_in_handler(self):
        """Test an is_signer check in a handler suppresses the finding."""
        accounts = (
            "#[derive(Accounts)]\n"
            "pub struct Close<'info> {\n"
            "    pub owner: UncheckedAccount<'info>,\n"
            "}\n"
        )
        handler = (
            "pub fn close(ctx: Context<Close>) -> Result<()> {\n"
            "    require!(ctx.accounts.owner.is_signer, ErrorCode::Unauthorized);\n"
            "    Ok(())\n"
            "}\n"
        )
        findings = run_rule(
            MissingSignerCheckRule(),
            unit_of(accounts, "src/accounts.rs"),
            unit_of(handler, "src/instructions.rs"),
        )
        assert findings == []

    def test_signer_types_pass(self, safe_source):
        """Test Signer<'info> and #[account(signer)] are accepted."""
        source = (
            "#[derive(Accounts)]\n"
            "pub struct Admin<'info> {\n"
            "    #[account(signer)]\n"
            "    pub admin: AccountInfo<'info>,\n"
            "    pub payer: Signer<'info>,\n"
            "}\n"
        )
        assert run_rule(MissingSignerCheckRule(), unit_of(source)) == []
        assert run_rule(MissingSignerCheckRule(), unit_of(safe_source)) == []

    def test_native_next_account_info(self, native_unit):
        """Test native programs reading an authority without is_signer."""
        findings = run_rule(MissingSignerCheckRule(), native_unit)
        assert len(findings) == 1
        assert findings[0].location.start_line == 9
        assert findings[0].severity == Severity.HIGH
        assert findings[0].evidence[0]["account"] == "admin"

    def test_native_with_is_signer(self):
        """Test native programs checking is_signer are not flagged."""
        source = (
            "pub fn process(accounts: &[AccountInfo]) -> ProgramResult {\n"
            "    let iter = &mut accounts.iter();\n"
            "    let authority = next_account_info(iter)?;\n"
            "    if !authority.is_signer {\n"
            "        return Err(ProgramError::MissingRequiredSignature);\n"
            "    }\n"
            "    Ok(())\n"
            "}\n"
        )
        assert run_rule(MissingSignerCheckRule(), unit_of(source)) == []


class TestUncheckedAccount:
    """Tests for SOL-003."""

    def test_undocumented_account_info(self, vault_unit):
        """Test AccountInfo without CHECK doc or constraints is flagged."""
        findings = run_rule(UncheckedAccountRule(), vault_unit)
        assert [f.location.symbol for f in findings] == ["Withdraw.authority"]
        assert findings[0].severity == Severity.MEDIUM

    def test_constraints_accepted(self):
        """Test address and owner constraints count as validation."""
        source = (
            "#[derive(Accounts)]\n"
            "pub struct Pay<'info> {\n"
            "    #[account(address = token::ID)]\n"
            "    pub token_program: AccountInfo<'info>,\n"
            "    #[account(owner = crate::ID)]\n"
            "    pub state: UncheckedAccount<'info>,\n"
            "    pub mystery: UncheckedAccount<'info>,\n"
            "}\n"
        )
        findings = run_rule(UncheckedAccountRule(), unit_of(source))
        assert [f.location.symbol for f in findings] == ["Pay.mystery"]


class TestMissingOwnerCheck:
    """Tests for SOL-004."""

    def test_deserialize_without_owner_check(self, native_unit):
        """Test account data deserialized without an owner comparison."""
        findings = run_rule(MissingOwnerCheckRule(), native_unit)
        assert len(findings) == 1
        assert findings[0].location.start_line == 12
        assert findings[0].evidence[0]["account"] == "config"

    def test_owner_checked(self):
        """Test an owner comparison anywhere in the function suppresses the finding."""
        source = (
            "pub fn process(program_id: &Pubkey, config: &AccountInfo) -> ProgramResult {\n"
            "    if config.owner != program_id {\n"
            "        return Err(ProgramError::IncorrectProgramId);\n"
            "    }\n"
            "    let state = Config::try_from_slice(&config.data.borrow())?;\n"
            "    Ok(())\n"
            "}\n"
        )
        assert run_rule(MissingOwnerCheckRule(), unit_of(source)) == []


class TestStateChangeAfterCpi:
    """Tests for SOL-005."""

    def test_write_after_cpi(self, vault_unit):
        """Test writing account state after a CPI is flagged."""
        findings = run_rule(StateChangeAfterCpiRule(), vault_unit)
        assert len(findings) == 1
        assert findings[0].location.start_line == 20
        assert findings[0].evidence[0]["cpi_line"] == 18

    def test_write_before_cpi(self):
        """Test checks-effects-interactions order is accepted."""
        source = (
            "pub fn pay(ctx: Context<Pay>, amount: u64) -> Result<()> {\n"
            "    ctx.accounts.vault.paid = true;\n"
            "    let cpi_ctx = CpiContext::new(ctx.accounts.token_program.to_account_info(), accounts);\n"
            "    token::transfer(cpi_ctx, amount)?;\n"
            "    Ok(())\n"
            "}\n"
        )
        assert run_rule(StateChangeAfterCpiRule(), unit_of(source)) == []

    def test_native_lamports_after_invoke(self):
        """Test lamport writes after invoke are flagged."""
        source = (
            "pub fn process(accounts: &[AccountInfo]) -> ProgramResult {\n"
            "    invoke(&ix, accounts)?;\n"
            "    **vault.try_borrow_mut_lamports()? -= 10;\n"
            "    Ok(())\n"
            "}\n"
        )
        findings = run_rule(StateChangeAfterCpiRule(), unit_of(source))
        assert [f.location.start_line for f in findings] == [3]


class TestArbitraryCpi:
    """Tests for SOL-006."""

    def test_anchor_unverified_program(self, vault_unit):
        """Test CPI into an AccountInfo program account is flagged."""
        findings = run_rule(ArbitraryCpiRule(), vault_unit)
        assert len(findings) == 1
        assert findings[0].location.start_line == 18
        assert findings[0].evidence[0]["account"] == "token_program"

    def test_anchor_program_type(self):
        """Test Program<'info, T> accounts are trusted."""
        source = (
            "pub fn pay(ctx: Context<Pay>, amount: u64) -> Result<()> {\n"
            "    let cpi_ctx = CpiContext::new(ctx.accounts.token_program.to_account_info(), accounts);\n"
            "    Ok(())\n"
            "}\n"
            "#[derive(Accounts)]\n"
            "pub struct Pay<'info> {\n"
            "    pub token_program: Program<'info, Token>,\n"
            "}\n"
        )
        assert run_rule(ArbitraryCpiRule(), unit_of(source)) == []

    def test_native_unverified_program(self, native_unit):
        """Test an instruction targeting a caller-supplied program id."""
        findings = run_rule(ArbitraryCpiRule(), native_unit)
        assert [f.location.start_line for f in findings] == [14]

    def test_native_verified_program(self):
        """Test a key comparison verifies the program."""
        source = (
            "pub fn process(accounts: &[AccountInfo]) -> ProgramResult {\n"
            "    if target_program.key != &spl_token::ID {\n"
            "        return Err(ProgramError::IncorrectProgramId);\n"
            "    }\n"
            "    let ix = Instruction { program_id: *target_program.key, accounts: vec![], data: vec![] };\n"
            "    Ok(())\n"
            "}\n"
        )
        assert run_rule(ArbitraryCpiRule(), unit_of(source)) == []


class TestUnsafeCode:
    """Tests for SOL-007."""

    def test_unsafe_block(self, native_unit):
        """Test unsafe blocks are flagged with their function."""
        findings = run_rule(UnsafeCodeRule(), native_unit)
        assert len(findings) == 1
        assert findings[0].location.start_line == 21
        assert findings[0].location.symbol == "raw_copy"

    def test_unsafe_in_comment_or_string(self):
        """Test masked text never matches."""
        source = '// unsafe { }\nfn f() {\n    let s = "unsafe { }";\n}\n'
        assert run_rule(UnsafeCodeRule(), unit_of(source)) == []


class TestPanicInHandler:
    """Tests for SOL-008."""

    def test_unwrap_in_handler(self, native_unit):
        """Test unwrap in a native entry point is flagged."""
        findings = run_rule(PanicInHandlerRule(), native_unit)
        assert sorted(f.location.start_line for f in findings) == [13, 16]
        assert all(f.severity == Severity.LOW for f in findings)

    def test_helpers_and_tests_ignored(self, safe_source):
        """Test panics outside handlers are not flagged."""
        source = "fn helper(v: Option<u8>) -> u8 {\n    v.unwrap()\n}\n"
        assert run_rule(PanicInHandlerRule(), unit_of(source)) == []
        assert run_rule(PanicInHandlerRule(), unit_of(safe_source)) == []

    def test_panic_macro(self):
        """Test panic! in a program module handler."""
        source = (
            "#[program]\n"
            "pub mod m {\n"
            "    pub fn go(ctx: Context<Go>) -> Result<()> {\n"
            "        panic!(\"boom\");\n"
            "    }\n"
            "}\n"
        )
        findings = run_rule(PanicInHandlerRule(), unit_of(source))
        assert [f.evidence[0]["call"] for f in findings] == ["panic!"]


class TestNonCanonicalBump:
    """Tests for SOL-009."""

    def test_create_program_address(self, native_unit):
        """Test create_program_address without find_program_address."""
        findings = run_rule(NonCanonicalBumpRule(), native_unit)
        assert [f.location.start_line for f in findings] == [16]

    def test_find_program_address(self):
        """Test canonical bump derivation is accepted."""
        source = (
            "fn derive(program_id: &Pubkey) -> Pubkey {\n"
            "    let (_, bump) = Pubkey::find_program_address(&[b\"cfg\"], program_id);\n"
            "    Pubkey::create_program_address(&[b\"cfg\", &[bump]], program_id).unwrap()\n"
            "}\n"
        )
        assert run_rule(NonCanonicalBumpRule(), unit_of(source)) == []


class TestCleanProgram:
    """A well-formed program produces no findings."""

    def test_no_findings(self, safe_source):
        unit = unit_of(safe_source)
        index = ProgramIndex([unit])
        for rule in builtin_rules():
            assert rule.evaluate(unit, index) == [], rule.rule_id
