"""Shared fixtures: record factories and an in-memory service."""

from datetime import date
from decimal import Decimal
import itertools

import pytest

from goal_recon.models import (
    BankTransaction,
    Goal,
    GoalTransaction,
    LedgerPosting,
    TransactionType,
    generate_goal_transaction_code,
)
from goal_recon.repository import InMemoryRepository
from goal_recon.service import ReconciliationService
from goal_recon.utils.dates import DateRange

DAY = date(2025, 1, 15)
PERIOD = DateRange(date(2025, 1, 1), date(2025, 1, 31))
FUND_CODES = ["XUMMF", "XUBF", "XUDEF", "XUREF"]


@pytest.fixture
def period() -> DateRange:
    return PERIOD


@pytest.fixture
def make_bank():
    counter = itertools.count(1)

    def _make(
        amount,
        txn_type=TransactionType.DEPOSIT,
        txn_date=DAY,
        goal_id="G1",
        external_id=None,
        id=None,
        **kwargs,
    ) -> BankTransaction:
        return BankTransaction(
            id=id or f"B{next(counter)}",
            goal_id=goal_id,
            transaction_type=txn_type,
            transaction_date=txn_date,
            total_amount=Decimal(str(amount)),
            external_transaction_id=external_id,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_posting():
    counter = itertools.count(1)

    def _make(
        amount,
        fund="XUMMF",
        txn_type=TransactionType.DEPOSIT,
        txn_date=DAY,
        goal_id="G1",
        code=None,
        external_id=None,
        source=None,
        id=None,
        **kwargs,
    ) -> LedgerPosting:
        return LedgerPosting(
            id=id or f"P{next(counter)}",
            goal_id=goal_id,
            fund_code=fund,
            transaction_type=txn_type,
            transaction_date=txn_date,
            amount=Decimal(str(amount)),
            goal_transaction_code=code
            or generate_goal_transaction_code(txn_date, "ACC1", goal_id),
            external_transaction_id=external_id,
            source=source,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_goal_txn():
    def _make(
        code,
        amount,
        txn_type=TransactionType.DEPOSIT,
        txn_date=DAY,
        goal_id="G1",
        external_id=None,
    ) -> GoalTransaction:
        return GoalTransaction(
            code=code,
            goal_id=goal_id,
            transaction_date=txn_date,
            transaction_type=txn_type,
            total_amount=Decimal(str(amount)),
            fund_amounts={"XUMMF": Decimal(str(amount))},
            posting_ids=(f"{code}-P1",),
            external_transaction_id=external_id,
        )

    return _make


@pytest.fixture
def repo() -> InMemoryRepository:
    repository = InMemoryRepository()
    repository.add_goal(Goal(goal_id="G1", account_number="ACC1", client_name="John Smith"))
    repository.add_goal(Goal(goal_id="G2", account_number="ACC2", client_name="Jane Doe"))
    return repository


@pytest.fixture
def service(repo) -> ReconciliationService:
    return ReconciliationService(repo)
