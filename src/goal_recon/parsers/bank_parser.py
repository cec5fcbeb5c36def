"""
Bank transaction CSV parser.
Reads the bank export and converts rows to BankTransaction records.
"""

from decimal import Decimal
from pathlib import Path
from typing import Iterable, Optional
import logging

import pandas as pd

from ..config import InputConfig
from ..models.transaction import BankTransaction
from .base import CsvParser, ParseResult

logger = logging.getLogger(__name__)


class BankTransactionParser(CsvParser):
    """
    Parser for bank transaction CSV files.

    One row per bank movement with a total amount and, optionally, one
    amount column per tracked fund named after the fund code.
    """

    columns_attr = "bank_columns"

    def __init__(self, input_config: InputConfig, fund_codes: Iterable[str]):
        super().__init__(input_config)
        self.fund_codes = list(fund_codes)

    def parse_file(self, file_path: Path) -> ParseResult[BankTransaction]:
        """
        Parse a bank CSV file.

        Args:
            file_path: Path to the CSV file

        Returns:
            Parsed transactions, their goals and the row numbers skipped

        Raises:
            ParseError: If the file cannot be read
        """
        logger.info(f"Parsing bank CSV file: {file_path}")
        df = self.read_csv(file_path)

        result: ParseResult[BankTransaction] = ParseResult()
        for idx, row in df.iterrows():
            row_number = int(idx) + 1
            txn = self._normalize_row(row, row_number, result)
            if txn is None:
                result.skipped_rows.append(row_number)
            else:
                result.records.append(txn)

        logger.info(
            f"Extracted {len(result.records)} bank transactions "
            f"({len(result.skipped_rows)} rows skipped)"
        )
        return result

    def _normalize_row(
        self, row: pd.Series, row_number: int, result: ParseResult
    ) -> Optional[BankTransaction]:
        goal_id = self.cell(row, "goal_id", "Goal Number")
        if not goal_id:
            logger.warning(f"Row {row_number}: Missing goal number, skipping")
            return None

        txn_date = self.parse_date(self.cell(row, "date", "Date"))
        if txn_date is None:
            logger.warning(f"Row {row_number}: Invalid date, skipping")
            return None

        total = self.parse_amount(self.cell(row, "total_amount", "Total Amount"))
        if total is None:
            logger.warning(f"Row {row_number}: Invalid total amount, skipping")
            return None

        raw_type = self.cell(row, "transaction_type", "Transaction Type")
        txn_type = self.parse_type(raw_type)
        if txn_type is None:
            logger.warning(f"Row {row_number}: Invalid transaction type {raw_type!r}, skipping")
            return None

        fund_amounts: dict[str, Decimal] = {}
        for code in self.fund_codes:
            raw = self.cell(row, code, code)
            if raw is None:
                continue
            amount = self.parse_amount(raw)
            if amount is None:
                logger.warning(f"Row {row_number}: Invalid {code} amount, skipping")
                return None
            fund_amounts[code] = amount

        self.remember_goal(result, row, goal_id)
        return BankTransaction(
            id=self.cell(row, "id", "id") or f"BANK-{row_number:05d}",
            goal_id=goal_id,
            transaction_type=txn_type,
            transaction_date=txn_date,
            total_amount=total,
            fund_amounts=fund_amounts,
            external_transaction_id=self.cell(row, "transaction_id", "Transaction ID"),
        )
