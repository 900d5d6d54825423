"""
dBank Ledger Engine

A single-process banking ledger with per-user balances, interest accrual,
compounding staking rewards, collateralized loans and snapshot persistence.
"""

__version__ = "1.0.0"
