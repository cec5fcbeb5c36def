"""Tests for the bank and ledger CSV parsers."""

from datetime import date
from decimal import Decimal

import pytest

from goal_recon.config import load_config
from goal_recon.models import TransactionType
from goal_recon.parsers import BankTransactionParser, LedgerPostingParser
from goal_recon.utils.exceptions import ParseError

FUND_CODES = ["XUMMF", "XUBF", "XUDEF", "XUREF"]

BANK_CSV = """\
Goal Number,Acc Number,Client Name,Date,Total Amount,Transaction Type,Transaction ID,XUMMF,XUBF
G1,ACC1,John Smith,2025-01-15,"500,000",Deposit,TXN1,300000,200000
G1,ACC1,John Smith,2025-01-16,40000,REDEMPTION,,,
,ACC3,Nobody,2025-01-16,100,DEPOSIT,,,
G2,ACC2,Jane Doe,not a date,100,DEPOSIT,,,
G2,ACC2,Jane Doe,2025-01-17,abc,DEPOSIT,,,
G2,ACC2,Jane Doe,2025-01-17,100,TRANSFER,,,
G2,ACC2,Jane Doe,2025-01-18,100,DEPOSIT,,oops,
G2,ACC2,Jane Doe,2025-01-18,NaN,DEPOSIT,,,
G2,ACC2,Jane Doe,2025-01-19,100,DEPOSIT,,Infinity,
"""

LEDGER_CSV = """\
Goal Number,Acc Number,Client Name,Date,Fund,Amount,Transaction Type,Transaction ID,Source,Goal Transaction Code
G1,ACC1,John Smith,2025-01-15,xummf,300000,DEPOSIT,TXN1,Bank,C1
G1,ACC1,John Smith,2025-01-15,XUBF,200000,DEPOSIT,TXN1,Bank,
G1,ACC1,John Smith,2025-01-16,XUBF,-40000,WITHDRAWAL,,Transfer_Reversal,
G2,ACC2,Jane Doe,2025-01-17,,100,DEPOSIT,,,
G2,ACC2,Jane Doe,2025-01-17,XUBF,sNaN,DEPOSIT,,,
"""


@pytest.fixture
def input_config():
    return load_config(None).input


def test_bank_rows_are_parsed(tmp_path, input_config) -> None:
    path = tmp_path / "bank.csv"
    path.write_text(BANK_CSV)

    result = BankTransactionParser(input_config, FUND_CODES).parse_file(path)

    first, second = result.records
    assert first.id == "BANK-00001"
    assert first.goal_id == "G1"
    assert first.transaction_type is TransactionType.DEPOSIT
    assert first.transaction_date == date(2025, 1, 15)
    assert first.total_amount == Decimal("500000")
    assert first.fund_amounts == {"XUMMF": Decimal("300000"), "XUBF": Decimal("200000")}
    assert first.external_transaction_id == "TXN1"

    assert second.transaction_type is TransactionType.WITHDRAWAL
    assert second.fund_amounts == {}
    assert second.external_transaction_id is None


def test_bank_invalid_rows_are_skipped(tmp_path, input_config) -> None:
    path = tmp_path / "bank.csv"
    path.write_text(BANK_CSV)

    result = BankTransactionParser(input_config, FUND_CODES).parse_file(path)

    assert result.skipped_rows == [3, 4, 5, 6, 7, 8, 9]
    assert set(result.goals) == {"G1"}
    assert result.goals["G1"].client_name == "John Smith"
    assert result.goals["G1"].account_number == "ACC1"


def test_ledger_rows_are_parsed(tmp_path, input_config) -> None:
    path = tmp_path / "ledger.csv"
    path.write_text(LEDGER_CSV)

    result = LedgerPostingParser(input_config).parse_file(path)

    first, second, third = result.records
    assert first.fund_code == "XUMMF"
    assert first.goal_transaction_code == "C1"
    assert first.source == "Bank"
    assert first.id == "POST-00001"
    assert second.goal_transaction_code == "2025-01-15-ACC1-G1"
    assert third.amount == Decimal("-40000")
    assert third.transaction_type is TransactionType.WITHDRAWAL
    assert third.source == "Transfer_Reversal"
    assert result.skipped_rows == [4, 5]


def test_custom_column_names(tmp_path, input_config) -> None:
    input_config.bank_columns["goal_id"] = "Goal"
    path = tmp_path / "bank.csv"
    path.write_text("Goal,Date,Total Amount,Transaction Type\nG7,2025-02-01,10,DEPOSIT\n")

    result = BankTransactionParser(input_config, FUND_CODES).parse_file(path)

    assert [t.goal_id for t in result.records] == ["G7"]
    assert result.goals["G7"].account_number == ""


def test_missing_file_raises(tmp_path, input_config) -> None:
    with pytest.raises(ParseError):
        LedgerPostingParser(input_config).parse_file(tmp_path / "missing.csv")
