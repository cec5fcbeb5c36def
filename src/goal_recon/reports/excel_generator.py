"""
Excel report generator for goal reconciliation results.
Creates a multi-sheet workbook with formatted output.
"""

from decimal import Decimal
from pathlib import Path
from typing import Any, Sequence
import logging

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.worksheet.worksheet import Worksheet

from ..config import ReconConfig, SheetConfig
from ..models.summary import FundSummary, GoalSummary, ReviewStatus, VarianceStatus
from ..models.transaction import BankTransaction, GoalTransaction, Match, MatchType
from ..utils.exceptions import ReportGenerationError

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
MATCH_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
VARIANCE_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
UNMATCHED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
AMOUNT_FORMAT = "#,##0.00"


def _num(value: Any) -> Any:
    return float(value) if isinstance(value, Decimal) else value


class ExcelReportGenerator:
    """Generates Excel goal reconciliation reports with multiple sheets."""

    def __init__(self, config: ReconConfig):
        """
        Initialize the report generator.

        Args:
            config: Application configuration
        """
        self.config = config
        self.sheet_config = config.output.sheets
        self.fund_codes = list(config.ledger.fund_codes)

    def generate_report(
        self,
        goal_summaries: Sequence[GoalSummary],
        fund_summaries: Sequence[FundSummary],
        matches: Sequence[Match],
        unmatched_bank: Sequence[BankTransaction],
        unmatched_goal: Sequence[GoalTransaction],
        output_path: Path,
    ) -> Path:
        """
        Generate the complete reconciliation report.

        Args:
            goal_summaries: One row per goal
            fund_summaries: One row per goal with per-fund nets
            matches: Matches found by the batch
            unmatched_bank: Bank transactions left unmatched
            unmatched_goal: Goal transactions left unmatched
            output_path: Path for output file

        Returns:
            Path to generated report

        Raises:
            ReportGenerationError: If the workbook cannot be written
        """
        logger.info(f"Generating Excel report: {output_path}")

        wb = Workbook()
        if wb.active:
            wb.remove(wb.active)

        sheets = self.sheet_config
        if sheets.goal_summary.enabled:
            self._create_goal_summary_sheet(wb, sheets.goal_summary, goal_summaries)
        if sheets.fund_summary.enabled:
            self._create_fund_summary_sheet(wb, sheets.fund_summary, fund_summaries)
        if sheets.matches.enabled:
            self._create_matches_sheet(wb, sheets.matches, matches)
        if sheets.unmatched_bank.enabled:
            self._create_unmatched_bank_sheet(wb, sheets.unmatched_bank, unmatched_bank)
        if sheets.unmatched_ledger.enabled:
            self._create_unmatched_goal_sheet(wb, sheets.unmatched_ledger, unmatched_goal)

        if not wb.worksheets:
            wb.create_sheet("Report")

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(output_path)
        except OSError as e:
            raise ReportGenerationError(f"Failed to write report {output_path}: {e}") from e

        logger.info(f"Report saved: {output_path}")
        return output_path

    def _create_goal_summary_sheet(
        self, wb: Workbook, sheet: SheetConfig, rows: Sequence[GoalSummary]
    ) -> None:
        ws = wb.create_sheet(sheet.name)
        headers = [
            "Goal Number",
            "Client",
            "Account",
            "Bank Deposits",
            "Ledger Deposits",
            "Deposit Variance",
            "Bank Withdrawals",
            "Ledger Withdrawals",
            "Withdrawal Variance",
            "Status",
            "Review Status",
            "Unreviewed",
            "Reviewed",
        ]
        self._write_headers(ws, headers)

        for row_num, s in enumerate(rows, start=2):
            row_data = [
                s.goal_id,
                s.client_name,
                s.account_number,
                s.bank_deposits,
                s.ledger_deposits,
                s.deposit_variance,
                s.bank_withdrawals,
                s.ledger_withdrawals,
                s.withdrawal_variance,
                s.status.value,
                s.review_status.value,
                s.unreviewed_count,
                s.reviewed_count,
            ]
            fill = self._status_fill(s.status, s.review_status)
            self._write_row(ws, row_num, row_data, fill)

        self._auto_fit_columns(ws)

    def _create_fund_summary_sheet(
        self, wb: Workbook, sheet: SheetConfig, rows: Sequence[FundSummary]
    ) -> None:
        ws = wb.create_sheet(sheet.name)
        headers = ["Goal Number", "Client", "Account"]
        headers += [f"Bank {code}" for code in self.fund_codes] + ["Bank Total"]
        headers += [f"Ledger {code}" for code in self.fund_codes] + ["Ledger Total"]
        headers += [f"{code} Variance" for code in self.fund_codes]
        headers += ["Total Variance", "Status", "Review Status"]
        self._write_headers(ws, headers)

        for row_num, s in enumerate(rows, start=2):
            row_data: list[Any] = [s.goal_id, s.client_name, s.account_number]
            row_data += [s.bank_funds.get(code, Decimal("0")) for code in self.fund_codes]
            row_data.append(s.bank_total)
            row_data += [s.ledger_funds.get(code, Decimal("0")) for code in self.fund_codes]
            row_data.append(s.ledger_total)
            row_data += [s.fund_variances.get(code, Decimal("0")) for code in self.fund_codes]
            row_data += [s.total_variance, s.status.value, s.review_status.value]
            fill = self._status_fill(s.status, s.review_status)
            self._write_row(ws, row_num, row_data, fill)

        self._auto_fit_columns(ws)

    def _create_matches_sheet(
        self, wb: Workbook, sheet: SheetConfig, matches: Sequence[Match]
    ) -> None:
        ws = wb.create_sheet(sheet.name)
        headers = [
            "Match Type",
            "Confidence",
            "Bank IDs",
            "Goal Transaction Codes",
            "Posting Count",
            "Bank Total",
            "Ledger Total",
            "Amount Variance",
        ]
        self._write_headers(ws, headers)

        for row_num, match in enumerate(matches, start=2):
            row_data = [
                match.match_type.value,
                f"{match.confidence:.2f}",
                ", ".join(match.bank_ids),
                ", ".join(match.goal_transaction_codes),
                len(match.posting_ids),
                match.bank_total,
                match.ledger_total,
                match.amount_variance,
            ]
            fill = MATCH_FILL if match.match_type is MatchType.EXACT else None
            self._write_row(ws, row_num, row_data, fill)
            if match.amount_variance:
                ws.cell(row=row_num, column=len(headers)).fill = VARIANCE_FILL

        self._auto_fit_columns(ws)

    def _create_unmatched_bank_sheet(
        self, wb: Workbook, sheet: SheetConfig, transactions: Sequence[BankTransaction]
    ) -> None:
        ws = wb.create_sheet(sheet.name)
        headers = [
            "ID",
            "Goal Number",
            "Date",
            "Type",
            "Total Amount",
            "Transaction ID",
            "Review Tag",
            "Reviewed By",
            "Notes",
        ]
        self._write_headers(ws, headers)

        for row_num, txn in enumerate(transactions, start=2):
            row_data = [
                txn.id,
                txn.goal_id,
                txn.transaction_date,
                txn.transaction_type.value,
                txn.total_amount,
                txn.external_transaction_id or "",
                txn.review_tag.value if txn.review_tag else "",
                txn.reviewed_by or "",
                txn.review_notes or "",
            ]
            self._write_row(ws, row_num, row_data, UNMATCHED_FILL)

        self._auto_fit_columns(ws)

    def _create_unmatched_goal_sheet(
        self, wb: Workbook, sheet: SheetConfig, transactions: Sequence[GoalTransaction]
    ) -> None:
        ws = wb.create_sheet(sheet.name)
        headers = [
            "Goal Transaction Code",
            "Goal Number",
            "Date",
            "Type",
            "Total Amount",
            *self.fund_codes,
            "Transaction ID",
            "Review Tag",
            "Reviewed By",
        ]
        self._write_headers(ws, headers)

        for row_num, g in enumerate(transactions, start=2):
            row_data = [
                g.code,
                g.goal_id,
                g.transaction_date,
                g.transaction_type.value,
                g.total_amount,
                *[g.fund_amounts.get(code, Decimal("0")) for code in self.fund_codes],
                g.external_transaction_id or "",
                g.review_tag.value if g.review_tag else "",
                g.reviewed_by or "",
            ]
            self._write_row(ws, row_num, row_data, UNMATCHED_FILL)

        self._auto_fit_columns(ws)

    @staticmethod
    def _status_fill(status: VarianceStatus, review_status: ReviewStatus):
        if status is VarianceStatus.MATCHED:
            return MATCH_FILL
        if review_status is ReviewStatus.REVIEWED:
            return None
        return VARIANCE_FILL

    def _write_headers(self, ws: Worksheet, headers: list[str]) -> None:
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER
            cell.alignment = Alignment(horizontal="center")
        ws.freeze_panes = "A2"

    def _write_row(self, ws: Worksheet, row_num: int, row_data: list[Any], fill=None) -> None:
        for col, value in enumerate(row_data, start=1):
            cell = ws.cell(row=row_num, column=col, value=_num(value))
            cell.border = THIN_BORDER
            if isinstance(value, Decimal):
                cell.number_format = AMOUNT_FORMAT
            if fill is not None:
                cell.fill = fill

    def _auto_fit_columns(self, ws: Worksheet) -> None:
        """Auto-fit column widths based on content."""
        for column_cells in ws.columns:
            column = column_cells[0].column_letter
            max_length = max(
                (len(str(cell.value)) for cell in column_cells if cell.value is not None),
                default=0,
            )
            ws.column_dimensions[column].width = min(max_length + 2, 50)
