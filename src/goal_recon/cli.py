"""
Command-line interface for the goal reconciliation tool.
"""

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional
import logging
import sys

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .config import ReconConfig, generate_default_config, load_config
from .models.summary import (
    BatchResult,
    ReviewStateFilter,
    StatusFilter,
    SummaryFilters,
)
from .models.transaction import BankTransaction, GoalTransaction, Match
from .parsers import BankTransactionParser, LedgerPostingParser
from .repository import InMemoryRepository
from .reports.excel_generator import ExcelReportGenerator
from .review.state import parse_review_tag
from .service import ReconciliationService
from .utils.dates import DateRange
from .utils.logging_config import setup_logging

console = Console()

DATE_TYPE = click.DateTime(formats=["%Y-%m-%d"])


@click.group()
@click.version_option(version=__version__)
def main():
    """Goal-level bank to ledger reconciliation tool."""
    pass


def _common_options(func):
    """Options shared by every command that loads the two CSV files."""
    decorators = [
        click.argument("bank_file", type=click.Path(exists=True, path_type=Path)),
        click.argument("ledger_file", type=click.Path(exists=True, path_type=Path)),
        click.option(
            "-c",
            "--config",
            type=click.Path(exists=True, path_type=Path),
            help="Path to configuration file (YAML)",
        ),
        click.option("--start", type=DATE_TYPE, help="Period start (YYYY-MM-DD)"),
        click.option("--end", type=DATE_TYPE, help="Period end (YYYY-MM-DD)"),
        click.option("-v", "--verbose", is_flag=True, help="Enable verbose output"),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


@main.command()
@_common_options
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Output Excel file path")
@click.option("--date-window", type=int, default=None, help="Override amount pass window in days")
@click.option(
    "--dry-run", is_flag=True, help="Run matching and show summary without writing a report"
)
def reconcile(
    bank_file: Path,
    ledger_file: Path,
    config: Optional[Path],
    start: Optional[datetime],
    end: Optional[datetime],
    verbose: bool,
    output: Optional[Path],
    date_window: Optional[int],
    dry_run: bool,
):
    """
    Match bank transactions to ledger postings goal by goal.

    BANK_FILE: Path to the bank transaction CSV
    LEDGER_FILE: Path to the ledger posting CSV
    """
    recon_config = _setup(config, verbose)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Loading CSV files...", total=None)
            service, date_range = _load_service(recon_config, bank_file, ledger_file, start, end)
            progress.update(task, completed=True)

            task = progress.add_task("Running matching...", total=None)
            batch = service.run_batch(
                date_range, apply=not dry_run, date_window_days=date_window
            )
            progress.update(task, completed=True)

        _display_batch(batch, date_range)

        if dry_run:
            console.print("\n[yellow]Dry run - no matches applied, no report generated[/yellow]")
            return

        if output is None:
            template = recon_config.output.excel.filename_template
            now = datetime.now()
            output = Path(
                template.format(date=now.strftime("%Y%m%d"), time=now.strftime("%H%M%S"))
            )

        matches, unmatched_bank, unmatched_goal = _collect_batch_records(service, batch)
        page_size = recon_config.pagination.max_page_size
        goal_rows = _all_pages(service.get_goal_summary, date_range, page_size)
        fund_rows = _all_pages(service.get_fund_summary, date_range, page_size)

        report_path = ExcelReportGenerator(recon_config).generate_report(
            goal_summaries=goal_rows,
            fund_summaries=fund_rows,
            matches=matches,
            unmatched_bank=unmatched_bank,
            unmatched_goal=unmatched_goal,
            output_path=output,
        )
        console.print(f"\n[green]Report generated: {report_path}[/green]")

        if batch.failed:
            sys.exit(1)

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)


@main.command("goal-summary")
@_common_options
@click.option(
    "--status",
    type=click.Choice([s.value for s in StatusFilter], case_sensitive=False),
    default=StatusFilter.ALL.value,
)
@click.option("--goal", help="Goal number substring")
@click.option("--client", help="Client name substring")
@click.option("--page", type=int, default=1, show_default=True)
@click.option("--page-size", type=int, default=None)
def goal_summary(
    bank_file: Path,
    ledger_file: Path,
    config: Optional[Path],
    start: Optional[datetime],
    end: Optional[datetime],
    verbose: bool,
    status: str,
    goal: Optional[str],
    client: Optional[str],
    page: int,
    page_size: Optional[int],
):
    """
    Show deposit and withdrawal totals per goal.

    BANK_FILE: Path to the bank transaction CSV
    LEDGER_FILE: Path to the ledger posting CSV
    """
    recon_config = _setup(config, verbose)

    try:
        service, date_range = _load_service(recon_config, bank_file, ledger_file, start, end)
        filters = SummaryFilters(
            goal_id=goal, client_search=client, status=StatusFilter(status.upper())
        )
        result = service.get_goal_summary(date_range, filters, page, page_size)

        table = Table(title=f"Goal Summary {date_range.start} to {date_range.end}")
        table.add_column("Goal")
        table.add_column("Client")
        table.add_column("Bank Dep", justify="right")
        table.add_column("Ledger Dep", justify="right")
        table.add_column("Bank Wd", justify="right")
        table.add_column("Ledger Wd", justify="right")
        table.add_column("Status")
        table.add_column("Review")

        for s in result.items:
            style = "red" if s.has_variance else None
            table.add_row(
                s.goal_id,
                s.client_name or "-",
                _fmt(s.bank_deposits),
                _fmt(s.ledger_deposits),
                _fmt(s.bank_withdrawals),
                _fmt(s.ledger_withdrawals),
                s.status.value,
                s.review_status.value,
                style=style,
            )

        console.print(table)
        console.print(
            f"\nPage {result.page} of {result.total_pages} ({result.total} goals) | "
            f"Deposit variance {_fmt(result.aggregates['deposit_variance'])} | "
            f"Withdrawal variance {_fmt(result.aggregates['withdrawal_variance'])}"
        )
        _warn_skipped(result.skipped_goals)

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@main.command("fund-summary")
@_common_options
@click.option(
    "--status",
    type=click.Choice([s.value for s in StatusFilter], case_sensitive=False),
    default=StatusFilter.ALL.value,
)
@click.option("--goal", help="Goal number substring")
@click.option("--client", help="Client name substring")
@click.option("--page", type=int, default=1, show_default=True)
@click.option("--page-size", type=int, default=None)
def fund_summary(
    bank_file: Path,
    ledger_file: Path,
    config: Optional[Path],
    start: Optional[datetime],
    end: Optional[datetime],
    verbose: bool,
    status: str,
    goal: Optional[str],
    client: Optional[str],
    page: int,
    page_size: Optional[int],
):
    """
    Show net amounts per fund for each goal.

    BANK_FILE: Path to the bank transaction CSV
    LEDGER_FILE: Path to the ledger posting CSV
    """
    recon_config = _setup(config, verbose)

    try:
        service, date_range = _load_service(recon_config, bank_file, ledger_file, start, end)
        filters = SummaryFilters(
            goal_id=goal, client_search=client, status=StatusFilter(status.upper())
        )
        result = service.get_fund_summary(date_range, filters, page, page_size)
        fund_codes = recon_config.ledger.fund_codes

        table = Table(title=f"Fund Summary {date_range.start} to {date_range.end}")
        table.add_column("Goal")
        for code in fund_codes:
            table.add_column(f"{code} Var", justify="right")
        table.add_column("Total Var", justify="right")
        table.add_column("Status")
        table.add_column("Review")

        for s in result.items:
            table.add_row(
                s.goal_id,
                *[_fmt(s.fund_variances[code]) for code in fund_codes],
                _fmt(s.total_variance),
                s.status.value,
                s.review_status.value,
            )

        console.print(table)
        console.print(f"\nPage {result.page} of {result.total_pages} ({result.total} goals)")
        _warn_skipped(result.skipped_goals)

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@main.command("variances")
@_common_options
@click.option(
    "--state",
    type=click.Choice([s.value for s in ReviewStateFilter], case_sensitive=False),
    default=ReviewStateFilter.ALL.value,
)
@click.option("--tag", help="Only items carrying this review tag")
@click.option("--goal", help="Goal number substring")
@click.option("--client", help="Client name substring")
@click.option("--page", type=int, default=1, show_default=True)
@click.option("--page-size", type=int, default=None)
def variances(
    bank_file: Path,
    ledger_file: Path,
    config: Optional[Path],
    start: Optional[datetime],
    end: Optional[datetime],
    verbose: bool,
    state: str,
    tag: Optional[str],
    goal: Optional[str],
    client: Optional[str],
    page: int,
    page_size: Optional[int],
):
    """
    List unmatched bank and goal transactions with their review state.

    BANK_FILE: Path to the bank transaction CSV
    LEDGER_FILE: Path to the ledger posting CSV
    """
    recon_config = _setup(config, verbose)

    try:
        service, date_range = _load_service(recon_config, bank_file, ledger_file, start, end)
        listing = service.get_variance_transactions(
            date_range,
            SummaryFilters(goal_id=goal, client_search=client),
            review_state=ReviewStateFilter(state.upper()),
            review_tag=parse_review_tag(tag) if tag else None,
            page=page,
            page_size=page_size,
        )

        table = Table(title=f"Unmatched Transactions {date_range.start} to {date_range.end}")
        table.add_column("Side")
        table.add_column("ID / Code")
        table.add_column("Goal")
        table.add_column("Date")
        table.add_column("Type")
        table.add_column("Amount", justify="right")
        table.add_column("Review Tag")

        for item in listing.page.items:
            table.add_row(
                item.source.value,
                item.id,
                item.goal_id,
                str(item.transaction_date),
                item.transaction_type.value,
                _fmt(item.amount),
                item.review_tag.value if item.review_tag else "-",
            )

        console.print(table)
        console.print(
            f"\nTotal {listing.total_unmatched} | Pending {listing.pending_review} | "
            f"Reviewed {listing.reviewed}"
        )
        _warn_skipped(listing.page.skipped_goals)

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=Path("config.yaml")
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


def _setup(config: Optional[Path], verbose: bool) -> ReconConfig:
    try:
        recon_config = load_config(config)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    log_level = (
        logging.DEBUG
        if verbose
        else getattr(logging, recon_config.logging.level.upper(), logging.INFO)
    )
    log_file = Path(recon_config.logging.file) if recon_config.logging.file else None
    setup_logging(log_level, log_file, recon_config.logging.format)
    return recon_config


def _load_service(
    recon_config: ReconConfig,
    bank_file: Path,
    ledger_file: Path,
    start: Optional[datetime],
    end: Optional[datetime],
) -> tuple[ReconciliationService, DateRange]:
    """Parse both files into an in-memory repository and settle the period."""
    fund_codes = recon_config.ledger.fund_codes
    bank = BankTransactionParser(recon_config.input, fund_codes).parse_file(bank_file)
    ledger = LedgerPostingParser(recon_config.input).parse_file(ledger_file)

    repository = InMemoryRepository(recon_config.ledger.excluded_sources)
    for goal in {**ledger.goals, **bank.goals}.values():
        repository.add_goal(goal)
    repository.add_bank_transactions(bank.records)
    repository.add_postings(ledger.records)

    dates = [t.transaction_date for t in bank.records] + [
        p.transaction_date for p in ledger.records
    ]
    start_date = start.date() if start else (min(dates) if dates else date.today())
    end_date = end.date() if end else (max(dates) if dates else date.today())

    return ReconciliationService(repository, recon_config), DateRange(start_date, end_date)


def _collect_batch_records(
    service: ReconciliationService, batch: BatchResult
) -> tuple[list[Match], list[BankTransaction], list[GoalTransaction]]:
    matches: list[Match] = []
    unmatched_bank: list[BankTransaction] = []
    unmatched_goal: list[GoalTransaction] = []

    for goal_id in sorted(batch.results):
        result = batch.results[goal_id]
        matches.extend(result.matches)
        for transaction_id in result.unmatched_bank:
            txn = service.repository.get_bank_transaction(transaction_id)
            if txn is not None:
                unmatched_bank.append(txn)
        for code in result.unmatched_goal:
            unmatched_goal.extend(
                service.aggregator.aggregate(service.repository.list_postings_by_code(code))
            )

    return matches, unmatched_bank, unmatched_goal


def _all_pages(fetch, date_range: DateRange, page_size: int) -> list:
    first = fetch(date_range, page=1, page_size=page_size)
    rows = list(first.items)
    for page in range(2, first.total_pages + 1):
        rows.extend(fetch(date_range, page=page, page_size=page_size).items)
    return rows


def _display_batch(batch: BatchResult, date_range: DateRange) -> None:
    """Display batch summary in console."""
    by_type: dict[str, int] = {}
    for result in batch.results.values():
        for key, count in result.matches_by_type.items():
            by_type[key] = by_type.get(key, 0) + count

    table = Table(title=f"Reconciliation {date_range.start} to {date_range.end}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Goals Processed", str(batch.processed))
    table.add_row("Goals Failed", str(batch.failed))
    table.add_row("Goals Cancelled", str(batch.cancelled))
    table.add_row("Matches Found", str(batch.matches_found))
    for key in sorted(by_type):
        table.add_row(f"  {key}", str(by_type[key]))
    table.add_row(
        "Unmatched Bank", str(sum(len(r.unmatched_bank) for r in batch.results.values()))
    )
    table.add_row(
        "Unmatched Ledger", str(sum(len(r.unmatched_goal) for r in batch.results.values()))
    )
    table.add_row("Bank Transactions Updated", str(batch.bank_updated))

    console.print(table)

    for goal_id, error in sorted(batch.errors.items()):
        console.print(f"[red]Goal {goal_id}: {error}[/red]")


def _warn_skipped(goal_ids: list[str]) -> None:
    for goal_id in goal_ids:
        console.print(f"[yellow]Goal {goal_id} skipped: ledger postings are inconsistent[/yellow]")


def _fmt(amount: Decimal) -> str:
    return f"{amount:,.2f}"


if __name__ == "__main__":
    main()
