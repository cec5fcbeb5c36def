"""Custom exceptions for the reconciliation application."""


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""

    status_code = 500


class ValidationError(ReconciliationError):
    """Missing or invalid input supplied by the caller."""

    status_code = 400


class InvariantViolationError(ValidationError):
    """Upstream data breaks an invariant the engine relies on."""

    pass


class ConflictError(ValidationError):
    """Transaction is already claimed by a match or a reversal pair."""

    status_code = 409


class NotFoundError(ReconciliationError):
    """Referenced goal or transaction does not exist."""

    status_code = 404


class ProcessingError(ReconciliationError):
    """Unexpected failure while computing a summary or running a batch."""

    status_code = 500


class ConfigurationError(ReconciliationError):
    """Error in configuration."""

    pass


class ParseError(ReconciliationError):
    """Error reading a bank or ledger CSV file."""

    pass


class ReportGenerationError(ReconciliationError):
    """Error generating Excel report."""

    pass
