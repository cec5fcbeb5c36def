"""
Reconciliation service facade.

Wires the repository, matching engine, review workflow, reversal linker and
summary projector together and exposes the operations used by the CLI and
any reporting collaborator.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator, Optional, Sequence
import logging
import threading

from .config import ReconConfig
from .matching.aggregator import LedgerAggregator
from .matching.engine import MatchingEngine
from .matching.tolerance import ToleranceClassifier
from .models.summary import (
    BatchResult,
    BulkReviewResult,
    FundSummary,
    GoalSummary,
    Page,
    ReviewStateFilter,
    ResolutionResult,
    ResolutionStats,
    ResolvedVariancesReport,
    ReviewStatusReport,
    SummaryFilters,
    VarianceListing,
)
from .models.transaction import (
    BankTransaction,
    GoalTransactionsView,
    Match,
    MatchingResult,
    MatchStatus,
    ReviewTag,
    TransactionType,
)
from .reports.summary import SummaryProjector
from .repository import Repository
from .review.resolution import VarianceResolver
from .review.reversals import ReversalLinker
from .review.state import TagLike, VarianceReviewWorkflow, parse_review_tag
from .utils.dates import DateRange
from .utils.exceptions import (
    ConflictError,
    NotFoundError,
    ProcessingError,
    ReconciliationError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@contextmanager
def _unexpected_as_processing_error(operation: str) -> Iterator[None]:
    try:
        yield
    except ReconciliationError:
        raise
    except Exception as e:
        logger.exception(f"{operation} failed")
        raise ProcessingError(f"{operation} failed: {e}") from e


class ReconciliationService:
    """
    Entry point for goal reconciliation.

    The service holds no per-call state; every operation reads a fresh
    snapshot from the repository.
    """

    def __init__(self, repository: Repository, config: Optional[ReconConfig] = None):
        """
        Initialize the service.

        Args:
            repository: Store of goals, bank transactions and ledger postings
            config: Application configuration (defaults when omitted)
        """
        self.repository = repository
        self.config = config or ReconConfig()
        self.classifier = ToleranceClassifier(self.config.tolerance)
        self.aggregator = LedgerAggregator(
            self.config.ledger.fund_codes, self.config.ledger.excluded_sources
        )
        self.engine = MatchingEngine(self.config, self.classifier)
        self.review = VarianceReviewWorkflow(repository, self.aggregator)
        self.reversals = ReversalLinker(repository)
        self.resolver = VarianceResolver(
            repository,
            self.aggregator,
            self.classifier,
            date_window_days=self.config.matching.date_window_days,
            timing_tolerance_days=self.config.resolution.timing_tolerance_days,
        )
        self.projector = SummaryProjector(
            repository, self.aggregator, self.classifier, self.config.pagination
        )

    # Summaries

    def get_goal_summary(
        self,
        date_range: DateRange,
        filters: Optional[SummaryFilters] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Page[GoalSummary]:
        with _unexpected_as_processing_error("Goal summary"):
            return self.projector.get_goal_summary(date_range, filters, page, page_size)

    def get_fund_summary(
        self,
        date_range: DateRange,
        filters: Optional[SummaryFilters] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Page[FundSummary]:
        with _unexpected_as_processing_error("Fund summary"):
            return self.projector.get_fund_summary(date_range, filters, page, page_size)

    def get_variance_transactions(
        self,
        date_range: DateRange,
        filters: Optional[SummaryFilters] = None,
        review_state: ReviewStateFilter = ReviewStateFilter.ALL,
        review_tag: Optional[ReviewTag] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> VarianceListing:
        with _unexpected_as_processing_error("Variance listing"):
            return self.projector.get_variance_transactions(
                date_range, filters, review_state, review_tag, page, page_size
            )

    # Matching

    def get_goal_transactions(
        self,
        goal_id: str,
        date_range: DateRange,
        transaction_type: Optional[TransactionType] = None,
        date_window_days: Optional[int] = None,
    ) -> GoalTransactionsView:
        """
        Drill into one goal: its bank and goal transactions plus a fresh matching run.

        Reversal-linked bank transactions are listed but never offered to the engine.
        """
        if self.repository.get_goal(goal_id) is None:
            raise NotFoundError(f"Goal not found: {goal_id}")

        with _unexpected_as_processing_error(f"Goal transactions for {goal_id}"):
            bank = self.repository.list_bank_transactions(goal_id, date_range)
            goal_txns = self.aggregator.aggregate(
                self.repository.list_ledger_postings(goal_id, date_range)
            )
            if transaction_type is not None:
                bank = [t for t in bank if t.transaction_type is transaction_type]
                goal_txns = [g for g in goal_txns if g.transaction_type is transaction_type]

            result = self.engine.match(_matchable(bank), goal_txns, date_window_days)
            return GoalTransactionsView(
                bank_transactions=bank,
                goal_transactions=goal_txns,
                matches=result.matches,
                unmatched_bank=result.unmatched_bank,
                unmatched_goal=result.unmatched_goal,
            )

    def apply_matches(self, matches: Sequence[Match]) -> int:
        """
        Write match results onto bank transactions.

        Each match lands atomically: all of its bank transactions are marked or
        none are. Every match is checked before the first write.

        Returns:
            Number of bank transactions updated
        """
        for match in matches:
            if not match.bank_ids or not match.goal_transaction_codes:
                raise ValidationError("Match needs at least one bank id and one goal transaction")
            for transaction_id in match.bank_ids:
                txn = self.repository.get_bank_transaction(transaction_id)
                if txn is None:
                    raise NotFoundError(f"Bank transaction not found: {transaction_id}")
                if txn.is_reversal_linked:
                    raise ConflictError(
                        f"Bank transaction {transaction_id} is part of a reversal pair"
                    )

        updated = 0
        for match in matches:
            with self.repository.atomic():
                updated += self.repository.update_bank_transactions(
                    match.bank_ids,
                    match_status=MatchStatus.MATCHED,
                    matched_goal_transaction_code=match.goal_transaction_codes[0],
                    match_confidence=match.confidence,
                    matched_at=datetime.now(),
                )
        logger.info(f"Applied {len(matches)} matches to {updated} bank transactions")
        return updated

    def run_batch(
        self,
        date_range: DateRange,
        goal_ids: Optional[Iterable[str]] = None,
        apply: bool = True,
        cancel_event: Optional[threading.Event] = None,
        date_window_days: Optional[int] = None,
    ) -> BatchResult:
        """
        Run matching for many goals on a thread pool.

        A failure on one goal is logged and counted; the rest of the batch
        continues. Setting ``cancel_event`` stops goals that have not started
        yet. Matches already applied for finished goals are kept.

        Args:
            date_range: Inclusive period to reconcile
            goal_ids: Goals to process (all known goals when omitted)
            apply: Write matches back to the repository
            cancel_event: Event checked before each goal starts
            date_window_days: Override for the amount pass window

        Returns:
            BatchResult with per-goal counts, errors and matching results
        """
        if goal_ids is None:
            targets = [g.goal_id for g in self.repository.list_goals()]
        else:
            targets = list(dict.fromkeys(goal_ids))

        start_time = datetime.now()
        result = BatchResult()
        logger.info(
            f"Starting batch over {len(targets)} goals "
            f"({date_range.start} to {date_range.end}, apply={apply})"
        )

        def process(goal_id: str) -> Optional[tuple[MatchingResult, int]]:
            if cancel_event is not None and cancel_event.is_set():
                return None
            view = self.get_goal_transactions(
                goal_id, date_range, date_window_days=date_window_days
            )
            matching = MatchingResult(
                matches=view.matches,
                unmatched_bank=view.unmatched_bank,
                unmatched_goal=view.unmatched_goal,
            )
            updated = self.apply_matches(view.matches) if apply else 0
            return matching, updated

        with ThreadPoolExecutor(max_workers=self.config.batch.max_workers) as pool:
            futures = {pool.submit(process, goal_id): goal_id for goal_id in targets}
            for future in as_completed(futures):
                goal_id = futures[future]
                try:
                    outcome = future.result()
                except Exception as e:
                    logger.error(f"Goal {goal_id} failed: {e}")
                    result.failed += 1
                    result.errors[goal_id] = str(e)
                    continue

                if outcome is None:
                    result.cancelled += 1
                    continue
                matching, updated = outcome
                result.processed += 1
                result.matches_found += len(matching.matches)
                result.bank_updated += updated
                result.results[goal_id] = matching

        elapsed = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"Batch complete in {elapsed:.2f}s: {result.processed} processed, "
            f"{result.failed} failed, {result.cancelled} cancelled, "
            f"{result.matches_found} matches"
        )
        return result

    # Review

    def review_bank_transaction(
        self,
        transaction_id: str,
        review_tag: TagLike,
        reviewed_by: str,
        review_notes: Optional[str] = None,
    ) -> BankTransaction:
        return self.review.review_bank_transaction(
            transaction_id, review_tag, reviewed_by, review_notes
        )

    def review_goal_transaction(
        self,
        goal_transaction_code: str,
        review_tag: TagLike,
        reviewed_by: str,
        review_notes: Optional[str] = None,
    ) -> int:
        return self.review.review_goal_transaction(
            goal_transaction_code, review_tag, reviewed_by, review_notes
        )

    def bulk_review(
        self,
        bank_transaction_ids: Iterable[str],
        goal_transaction_codes: Iterable[str],
        review_tag: TagLike,
        reviewed_by: str,
        review_notes: Optional[str] = None,
    ) -> BulkReviewResult:
        return self.review.bulk_review(
            bank_transaction_ids, goal_transaction_codes, review_tag, reviewed_by, review_notes
        )

    def get_goal_review_status(self, goal_id: str, date_range: DateRange) -> ReviewStatusReport:
        with _unexpected_as_processing_error(f"Review status for {goal_id}"):
            return self.review.get_goal_review_status(goal_id, date_range)

    # Reversals

    def find_reversal_candidates(
        self, transaction_id: str, date_range: Optional[DateRange] = None
    ) -> list[BankTransaction]:
        return self.reversals.find_candidates(transaction_id, date_range)

    def link_reversal(
        self,
        first_id: str,
        second_id: str,
        linked_by: str,
        notes: Optional[str] = None,
    ) -> None:
        self.reversals.link(first_id, second_id, linked_by, notes)

    def unlink_reversal(self, transaction_id: str) -> list[str]:
        return self.reversals.unlink(transaction_id)

    # Resolution

    def detect_resolved_variances(
        self,
        date_range: Optional[DateRange] = None,
        goal_ids: Optional[Iterable[str]] = None,
    ) -> ResolutionResult:
        """Mark reviewed variances resolved where a later upload supplies the counterpart."""
        with _unexpected_as_processing_error("Variance resolution"):
            return self.resolver.detect_resolved_variances(date_range, goal_ids)

    def get_resolved_variances_report(
        self,
        date_range: Optional[DateRange] = None,
        filters: Optional[SummaryFilters] = None,
        original_tag: Optional[TagLike] = None,
    ) -> ResolvedVariancesReport:
        tag = parse_review_tag(original_tag) if original_tag else None
        with _unexpected_as_processing_error("Resolved variances report"):
            return self.resolver.get_resolved_variances_report(date_range, filters, tag)

    def get_resolution_stats(self) -> ResolutionStats:
        with _unexpected_as_processing_error("Resolution stats"):
            return self.resolver.get_resolution_stats()


def _matchable(bank: Sequence[BankTransaction]) -> list[BankTransaction]:
    return [t for t in bank if not t.is_reversal_linked]
