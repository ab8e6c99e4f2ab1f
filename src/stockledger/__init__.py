"""Stock and party-ledger reconciliation for bag-unit inventory billing."""

__version__ = "0.1.0"
