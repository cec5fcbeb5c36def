"""Utility modules."""

from .dates import DateRange, days_between, to_date, within
from .exceptions import (
    ReconciliationError,
    ValidationError,
    InvariantViolationError,
    ConflictError,
    NotFoundError,
    ProcessingError,
    ConfigurationError,
    ParseError,
    ReportGenerationError,
)
from .logging_config import setup_logging

__all__ = [
    "DateRange",
    "days_between",
    "to_date",
    "within",
    "ReconciliationError",
    "ValidationError",
    "InvariantViolationError",
    "ConflictError",
    "NotFoundError",
    "ProcessingError",
    "ConfigurationError",
    "ParseError",
    "ReportGenerationError",
    "setup_logging",
]
