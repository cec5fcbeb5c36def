"""
Reversal pair linking.

Two unmatched bank transactions of one goal with opposite types and equal
absolute amounts net to zero. Linking tags both with REVERSAL_NETTED and
points each at the other.
"""

from datetime import datetime
from typing import Optional
import logging

from ..models.transaction import BankTransaction, ReviewTag
from ..repository import Repository
from ..utils.dates import DateRange
from ..utils.exceptions import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def is_reversal_of(source: BankTransaction, other: BankTransaction) -> bool:
    """Same goal, opposite type, equal absolute amount."""
    return (
        other.id != source.id
        and other.goal_id == source.goal_id
        and other.transaction_type is source.transaction_type.opposite
        and abs(other.total_amount) == abs(source.total_amount)
    )


class ReversalLinker:
    """Finds, links and unlinks reversal pairs of bank transactions."""

    def __init__(self, repository: Repository):
        self.repository = repository

    def find_candidates(
        self, transaction_id: str, date_range: Optional[DateRange] = None
    ) -> list[BankTransaction]:
        source = self._get(transaction_id)
        return [
            t
            for t in self.repository.list_bank_transactions(source.goal_id, date_range)
            if is_reversal_of(source, t)
            and not t.is_matched
            and not t.is_reversal_linked
        ]

    def link(
        self,
        first_id: str,
        second_id: str,
        linked_by: str,
        notes: Optional[str] = None,
    ) -> None:
        """
        Link two bank transactions as a reversal pair.

        Raises:
            ValidationError: Same transaction twice, missing reviewer, or the pair
                does not net to zero for one goal
            NotFoundError: Either transaction does not exist
            ConflictError: Either side is matched or already in a pair
        """
        if first_id == second_id:
            raise ValidationError("Cannot link a transaction to itself")
        if not linked_by or not linked_by.strip():
            raise ValidationError("Reviewer is required")

        first = self._get(first_id)
        second = self._get(second_id)

        if first.goal_id != second.goal_id:
            raise ValidationError(
                f"Transactions belong to different goals: {first.goal_id}, {second.goal_id}"
            )
        if first.transaction_type is second.transaction_type:
            raise ValidationError(
                f"Reversal pair needs opposite types, both are {first.transaction_type.value}"
            )
        if abs(first.total_amount) != abs(second.total_amount):
            raise ValidationError(
                f"Reversal amounts differ: {first.total_amount} vs {second.total_amount}"
            )
        for txn in (first, second):
            if txn.is_matched:
                raise ConflictError(f"Bank transaction {txn.id} is already matched")
            if txn.is_reversal_linked:
                raise ConflictError(f"Bank transaction {txn.id} is already in a reversal pair")

        now = datetime.now()
        fields = {
            "review_tag": ReviewTag.REVERSAL_NETTED,
            "reviewed_by": linked_by.strip(),
            "reviewed_at": now,
        }
        with self.repository.atomic():
            self.repository.update_bank_transactions(
                [first.id],
                linked_reversal_id=second.id,
                review_notes=notes or f"Reversal of {second.id}",
                **fields,
            )
            self.repository.update_bank_transactions(
                [second.id],
                linked_reversal_id=first.id,
                review_notes=notes or f"Reversal of {first.id}",
                **fields,
            )

        logger.info(f"Linked reversal pair {first.id} <-> {second.id} by {linked_by}")

    def unlink(self, transaction_id: str) -> list[str]:
        """Remove the pair marker from both sides; returns the ids cleared."""
        txn = self._get(transaction_id)
        if not txn.is_reversal_linked:
            raise ValidationError(f"Bank transaction {transaction_id} is not in a reversal pair")

        ids = [txn.id]
        partner_id = txn.linked_reversal_id
        if partner_id is not None and self.repository.get_bank_transaction(partner_id) is not None:
            ids.append(partner_id)

        with self.repository.atomic():
            self.repository.update_bank_transactions(
                ids,
                linked_reversal_id=None,
                review_tag=None,
                review_notes=None,
                reviewed_by=None,
                reviewed_at=None,
            )

        logger.info(f"Unlinked reversal pair {' <-> '.join(ids)}")
        return ids

    def _get(self, transaction_id: str) -> BankTransaction:
        txn = self.repository.get_bank_transaction(transaction_id)
        if txn is None:
            raise NotFoundError(f"Bank transaction not found: {transaction_id}")
        return txn
