"""Goal-level reconciliation of bank transactions against per-fund ledger postings."""

__version__ = "0.1.0"
