"""
Shared CSV reading and cell parsing for the bank and ledger loaders.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Generic, Optional, TypeVar
import logging

import pandas as pd

from ..config import InputConfig
from ..models.transaction import Goal, TransactionType
from ..utils.exceptions import ParseError

logger = logging.getLogger(__name__)

R = TypeVar("R")

TRANSACTION_TYPE_ALIASES = {
    "DEPOSIT": TransactionType.DEPOSIT,
    "WITHDRAWAL": TransactionType.WITHDRAWAL,
    "REDEMPTION": TransactionType.WITHDRAWAL,
}


@dataclass
class ParseResult(Generic[R]):
    """Records loaded from one file, the goals they reference and skipped row numbers."""

    records: list[R] = field(default_factory=list)
    goals: dict[str, Goal] = field(default_factory=dict)
    skipped_rows: list[int] = field(default_factory=list)


class CsvParser:
    """Base class: reads a CSV with pandas and parses cells leniently."""

    columns_attr = ""

    def __init__(self, input_config: InputConfig):
        self.input_config = input_config
        self.column_mappings: dict[str, str] = getattr(input_config, self.columns_attr, {}) or {}

    def column(self, key: str, default: str) -> str:
        return self.column_mappings.get(key, default)

    def read_csv(self, file_path: Path) -> pd.DataFrame:
        """
        Read a CSV file as strings.

        Raises:
            ParseError: If the file is missing or unreadable
        """
        try:
            return pd.read_csv(
                file_path,
                encoding=self.input_config.encoding,
                delimiter=self.input_config.delimiter,
                dtype=str,
                keep_default_na=False,
                skipinitialspace=True,
            )
        except (OSError, UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            logger.error(f"Failed to read CSV file {file_path}: {e}")
            raise ParseError(f"Failed to read CSV file {file_path}: {e}") from e

    def cell(self, row: pd.Series, key: str, default: str) -> Optional[str]:
        value = row.get(self.column(key, default))
        if value is None or pd.isna(value):
            return None
        text = str(value).strip()
        return text or None

    def parse_date(self, value: Any) -> Optional[date]:
        if value is None or (not isinstance(value, str) and pd.isna(value)):
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value

        try:
            return datetime.strptime(str(value).strip(), self.input_config.date_format).date()
        except ValueError:
            # Fall back to the pandas parser for other layouts
            try:
                parsed = pd.to_datetime(str(value).strip())
            except (ValueError, TypeError):
                return None
            return None if pd.isna(parsed) else parsed.date()

    @staticmethod
    def parse_amount(value: Any) -> Optional[Decimal]:
        if value is None or value == "":
            return None
        if isinstance(value, str):
            value = value.replace(",", "").strip()
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return None
        return amount if amount.is_finite() else None

    @staticmethod
    def parse_type(value: Optional[str]) -> Optional[TransactionType]:
        if not value:
            return None
        return TRANSACTION_TYPE_ALIASES.get(value.strip().upper())

    def remember_goal(self, result: ParseResult, row: pd.Series, goal_id: str) -> str:
        account = self.cell(row, "account_number", "Acc Number") or ""
        client = self.cell(row, "client_name", "Client Name") or ""
        if goal_id not in result.goals:
            result.goals[goal_id] = Goal(goal_id=goal_id, account_number=account, client_name=client)
        return account
