"""Pytest configuration and fixtures."""

import pytest
import sys
from pathlib import Path

# Add python source to path
sys.path.insert(0, str(Path(__file__).parent.parent / "python"))


VAULT_SOURCE = '''use anchor_lang::prelude::*;
use anchor_spl::token::{self, Transfer};

declare_id!("Fg6PaFpoGXkYsidMpWTK6W2BeZ7FEfcYkg476zPFsLnS");

#[program]
pub mod vault {
    use super::*;

    pub fn withdraw(ctx: Context<Withdraw>, amount: u64) -> Result<()> {
        let vault = &mut ctx.accounts.vault;
        vault.balance = vault.balance - amount;
        let accounts = Transfer {
            from: ctx.accounts.vault_token.to_account_info(),
            to: ctx.accounts.user_token.to_account_info(),
            authority: ctx.accounts.authority.to_account_info(),
        };
        let cpi_ctx = CpiContext::new(ctx.accounts.token_program.to_account_info(), accounts);
        token::transfer(cpi_ctx, amount)?;
        ctx.accounts.vault.withdrawn += amount;
        Ok(())
    }
}

#[derive(Accounts)]
pub struct Withdraw<'info> {
    #[account(mut)]
    pub vault: Account<'info, Vault>,
    pub authority: AccountInfo<'info>,
    /// CHECK: token program
    pub token_program: AccountInfo<'info>,
    #[account(mut)]
    pub vault_token: Account<'info, TokenAccount>,
    #[account(mut)]
    pub user_token: Account<'info, TokenAccount>,
}

#[account]
pub struct Vault {
    pub balance: u64,
    pub withdrawn: u64,
}
'''

NATIVE_SOURCE = '''use solana_program::{account_info::{next_account_info, AccountInfo}, entrypoint::ProgramResult, program::invoke, pubkey::Pubkey};

pub fn process_instruction(
    program_id: &Pubkey,
    accounts: &[AccountInfo],
    data: &[u8],
) -> ProgramResult {
    let iter = &mut accounts.iter();
    let admin = next_account_info(iter)?;
    let config = next_account_info(iter)?;
    let target_program = next_account_info(iter)?;
    let state = Config::try_from_slice(&config.data.borrow())?;
    let amount = u64::from_le_bytes(data[..8].try_into().unwrap());
    let ix = Instruction { program_id: *target_program.key, accounts: vec![], data: data.to_vec() };
    invoke(&ix, &[admin.clone()])?;
    let (pda, _) = (Pubkey::create_program_address(&[b"cfg", &[state.bump]], program_id).unwrap(), 0);
    Ok(())
}

fn raw_copy(dst: &mut [u8], src: &[u8]) {
    unsafe {
        std::ptr::copy_nonoverlapping(src.as_ptr(), dst.as_mut_ptr(), src.len());
    }
}
'''

SAFE_SOURCE = '''use anchor_lang::prelude::*;

#[program]
pub mod counter {
    use super::*;

    pub fn increment(ctx: Context<Increment>) -> Result<()> {
        let counter = &mut ctx.accounts.counter;
        counter.count = counter.count.checked_add(1).ok_or(ErrorCode::Overflow)?;
        Ok(())
    }
}

#[derive(Accounts)]
pub struct Increment<'info> {
    #[account(mut, has_one = authority)]
    pub counter: Account<'info, Counter>,
    pub authority: Signer<'info>,
}

#[cfg(test)]
mod tests {
    #[test]
    fn increments() {
        let total = 1 + 2;
        assert_eq!(total, 3);
        let value: Option<u8> = Some(1);
        value.unwrap();
    }
}
'''


@pytest.fixture
def vault_source():
    """Anchor program with a missing signer, unchecked arithmetic and a CPI."""
    return VAULT_SOURCE


@pytest.fixture
def native_source():
    """Native Solana program with several unsafe patterns."""
    return NATIVE_SOURCE


@pytest.fixture
def safe_source():
    """Anchor program that should produce no findings."""
    return SAFE_SOURCE


@pytest.fixture
def vault_unit(vault_source):
    from solsec.analysis import ScanUnit

    return ScanUnit("programs/vault/src/lib.rs", vault_source)


@pytest.fixture
def native_unit(native_source):
    from solsec.analysis import ScanUnit

    return ScanUnit("programs/native/src/lib.rs", native_source)


@pytest.fixture
def workspace(tmp_path):
    """A project directory with two programs and a build directory."""
    vault = tmp_path / "programs" / "vault" / "src"
    vault.mkdir(parents=True)
    (vault / "lib.rs").write_text(VAULT_SOURCE)

    counter = tmp_path / "programs" / "counter" / "src"
    counter.mkdir(parents=True)
    (counter / "lib.rs").write_text(SAFE_SOURCE)

    build = tmp_path / "target" / "debug"
    build.mkdir(parents=True)
    (build / "generated.rs").write_text("fn f(a: u64, b: u64) -> u64 { a + b }\n")
    return tmp_path


@pytest.fixture
def make_finding():
    """Factory for findings with sensible defaults."""
    from solsec.results import Finding, Location, Severity

    def factory(
        rule_id="SOL-001",
        severity=Severity.MEDIUM,
        path="src/lib.rs",
        start_line=10,
        end_line=None,
        symbol=None,
        snippet=None,
        evidence=None,
        message="Test finding",
    ):
        return Finding.create(
            rule_id=rule_id,
            severity=severity,
            location=Location(path=path, start_line=start_line, end_line=end_line, symbol=symbol),
            message=message,
            evidence=evidence if evidence is not None else [{"line": start_line}],
            snippet=snippet if snippet is not None else f"{rule_id}:{path}:{start_line}",
        )

    return factory


PLUGIN_SOURCE = '''
from solsec.analysis.rules import Rule
from solsec.plugins import CAPABILITY_RULES, Plugin, RuleProvider
from solsec.results import Severity


class DebugMacroRule(Rule):
    rule_id = "ACME-001"
    title = "dbg! left in program"
    default_severity = Severity.LOW

    def evaluate(self, unit, index):
        return [
            self.make_finding(unit, number, "dbg! macro left in program code")
            for number, text in enumerate(unit.source.splitlines(), start=1)
            if "dbg!(" in text
        ]


class AcmePlugin(Plugin, RuleProvider):
    name = "{name}"
    version = "1.2.0"
    api_version = "{api_version}"
    capabilities = (CAPABILITY_RULES,)

    def list_rules(self):
        return [DebugMacroRule()]


def create_plugin():
    return AcmePlugin()
'''


@pytest.fixture
def plugin_file(tmp_path):
    """Factory writing a rule plugin file outside any plugin directory."""
    def factory(file_name="acme_rules.py", name="acme", api_version="1.0"):
        directory = tmp_path / "downloads"
        directory.mkdir(exist_ok=True)
        path = directory / file_name
        path.write_text(PLUGIN_SOURCE.replace("{name}", name).replace("{api_version}", api_version))
        return path

    return factory
