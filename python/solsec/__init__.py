"""
solsec - Solana Smart Contract Security Toolkit

Static rule engine, finding aggregation, report synthesis and
fuzz campaign orchestration for Solana programs.
"""

__version__ = "0.4.0"

__all__ = ["__version__"]
