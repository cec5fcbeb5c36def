"""
Ledger posting CSV parser.
Reads the fund transaction export and converts rows to LedgerPosting records.
"""

from pathlib import Path
from typing import Optional
import logging

import pandas as pd

from ..models.transaction import LedgerPosting, generate_goal_transaction_code
from .base import CsvParser, ParseResult

logger = logging.getLogger(__name__)


class LedgerPostingParser(CsvParser):
    """
    Parser for per-fund ledger posting CSV files.

    Rows without a goal transaction code get one derived from the posting
    date, account number and goal number.
    """

    columns_attr = "ledger_columns"

    def parse_file(self, file_path: Path) -> ParseResult[LedgerPosting]:
        """
        Parse a ledger CSV file.

        Args:
            file_path: Path to the CSV file

        Returns:
            Parsed postings, their goals and the row numbers skipped

        Raises:
            ParseError: If the file cannot be read
        """
        logger.info(f"Parsing ledger CSV file: {file_path}")
        df = self.read_csv(file_path)

        result: ParseResult[LedgerPosting] = ParseResult()
        for idx, row in df.iterrows():
            row_number = int(idx) + 1
            posting = self._normalize_row(row, row_number, result)
            if posting is None:
                result.skipped_rows.append(row_number)
            else:
                result.records.append(posting)

        logger.info(
            f"Extracted {len(result.records)} ledger postings "
            f"({len(result.skipped_rows)} rows skipped)"
        )
        return result

    def _normalize_row(
        self, row: pd.Series, row_number: int, result: ParseResult
    ) -> Optional[LedgerPosting]:
        goal_id = self.cell(row, "goal_id", "Goal Number")
        fund_code = self.cell(row, "fund_code", "Fund")
        if not goal_id or not fund_code:
            logger.warning(f"Row {row_number}: Missing goal number or fund, skipping")
            return None

        txn_date = self.parse_date(self.cell(row, "date", "Date"))
        if txn_date is None:
            logger.warning(f"Row {row_number}: Invalid date, skipping")
            return None

        amount = self.parse_amount(self.cell(row, "amount", "Amount"))
        if amount is None:
            logger.warning(f"Row {row_number}: Invalid amount, skipping")
            return None

        raw_type = self.cell(row, "transaction_type", "Transaction Type")
        txn_type = self.parse_type(raw_type)
        if txn_type is None:
            logger.warning(f"Row {row_number}: Invalid transaction type {raw_type!r}, skipping")
            return None

        account = self.remember_goal(result, row, goal_id)
        code = self.cell(row, "goal_transaction_code", "Goal Transaction Code")
        if code is None:
            code = generate_goal_transaction_code(txn_date, account, goal_id)

        return LedgerPosting(
            id=self.cell(row, "id", "id") or f"POST-{row_number:05d}",
            goal_id=goal_id,
            fund_code=fund_code.upper(),
            transaction_type=txn_type,
            transaction_date=txn_date,
            amount=amount,
            goal_transaction_code=code,
            external_transaction_id=self.cell(row, "transaction_id", "Transaction ID"),
            source=self.cell(row, "source", "Source"),
        )
