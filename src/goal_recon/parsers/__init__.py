"""Parsers for bank transaction and ledger posting CSV files."""

from .bank_parser import BankTransactionParser
from .base import ParseResult
from .ledger_parser import LedgerPostingParser

__all__ = ["BankTransactionParser", "LedgerPostingParser", "ParseResult"]
