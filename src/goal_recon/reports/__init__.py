"""Summary projections and Excel report output."""

from .excel_generator import ExcelReportGenerator
from .summary import SummaryProjector, net_amount

__all__ = ["ExcelReportGenerator", "SummaryProjector", "net_amount"]
