"""Configuration loader and validation for reconciliation settings."""

from decimal import Decimal
from pathlib import Path
from typing import Any, Optional
import logging

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

PASS_EXACT = "exact"
PASS_AMOUNT = "amount"
PASS_SPLIT_BANK_TO_LEDGER = "split_bank_to_ledger"
PASS_SPLIT_LEDGER_TO_BANK = "split_ledger_to_bank"
KNOWN_PASSES = (
    PASS_EXACT,
    PASS_AMOUNT,
    PASS_SPLIT_BANK_TO_LEDGER,
    PASS_SPLIT_LEDGER_TO_BANK,
)


class ToleranceConfig(BaseModel):
    """Relative-with-floor amount tolerance."""

    relative: Decimal = Decimal("0.01")
    absolute_floor: Decimal = Decimal("1000")

    @field_validator("relative", "absolute_floor")
    @classmethod
    def _non_negative(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("tolerance values must be non-negative")
        return value


class MatchingPass(BaseModel):
    """A matching pass with priority."""

    name: str
    description: str = ""
    priority: int = 99
    enabled: bool = True

    @field_validator("name")
    @classmethod
    def _known_pass(cls, value: str) -> str:
        if value not in KNOWN_PASSES:
            raise ValueError(f"unknown matching pass: {value}")
        return value


class ConfidenceConfig(BaseModel):
    """Confidence scores emitted by each pass."""

    exact: float = 1.0
    amount_max: float = 0.8
    amount_min: float = 0.5
    split: float = 0.7


class MatchingConfig(BaseModel):
    """Configuration for the matching engine."""

    date_window_days: int = Field(default=30, ge=0)
    split_search_limit: int = Field(default=10, ge=1, le=20)
    passes: list[MatchingPass] = Field(
        default_factory=lambda: [
            MatchingPass(name=name, priority=i) for i, name in enumerate(KNOWN_PASSES, start=1)
        ]
    )
    confidence: ConfidenceConfig = Field(default_factory=ConfidenceConfig)


class LedgerConfig(BaseModel):
    """Which funds are tracked and which posting sources are excluded."""

    fund_codes: list[str] = Field(
        default_factory=lambda: ["XUMMF", "XUBF", "XUDEF", "XUREF"]
    )
    excluded_sources: list[str] = Field(default_factory=lambda: ["Transfer_Reversal"])


class BatchConfig(BaseModel):
    max_workers: int = Field(default=4, ge=1)


class ResolutionConfig(BaseModel):
    """Windows used when re-checking reviewed variances against later uploads."""

    timing_tolerance_days: int = Field(default=3, ge=0)


class PaginationConfig(BaseModel):
    default_page_size: int = Field(default=50, ge=1)
    max_page_size: int = Field(default=500, ge=1)


class InputConfig(BaseModel):
    """Configuration for CSV loading."""

    encoding: str = "utf-8"
    delimiter: str = ","
    date_format: str = "%Y-%m-%d"
    bank_columns: dict[str, str] = Field(default_factory=dict)
    ledger_columns: dict[str, str] = Field(default_factory=dict)


class ExcelOutputConfig(BaseModel):
    filename_template: str = "goal_reconciliation_{date}_{time}.xlsx"


class SheetConfig(BaseModel):
    enabled: bool = True
    name: str


class SheetsConfig(BaseModel):
    """Configuration for all report sheets."""

    goal_summary: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Goal Summary"))
    fund_summary: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Fund Summary"))
    matches: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Matches"))
    unmatched_bank: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Unmatched Bank"))
    unmatched_ledger: SheetConfig = Field(
        default_factory=lambda: SheetConfig(name="Unmatched Ledger")
    )


class OutputConfig(BaseModel):
    excel: ExcelOutputConfig = Field(default_factory=ExcelOutputConfig)
    sheets: SheetsConfig = Field(default_factory=SheetsConfig)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


class ReconConfig(BaseModel):
    """Main configuration model for reconciliation."""

    tolerance: ToleranceConfig = Field(default_factory=ToleranceConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    pagination: PaginationConfig = Field(default_factory=PaginationConfig)
    resolution: ResolutionConfig = Field(default_factory=ResolutionConfig)
    input: InputConfig = Field(default_factory=InputConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return {
        "tolerance": {
            "relative": "0.01",
            "absolute_floor": "1000",
        },
        "matching": {
            "date_window_days": 30,
            "split_search_limit": 10,
            "passes": [
                {
                    "name": PASS_EXACT,
                    "description": "Same external transaction id and type, amount within tolerance",
                    "priority": 1,
                    "enabled": True,
                },
                {
                    "name": PASS_AMOUNT,
                    "description": "Same type, amount within tolerance, date inside the window",
                    "priority": 2,
                    "enabled": True,
                },
                {
                    "name": PASS_SPLIT_BANK_TO_LEDGER,
                    "description": "Several same-day bank transactions sum to one goal transaction",
                    "priority": 3,
                    "enabled": True,
                },
                {
                    "name": PASS_SPLIT_LEDGER_TO_BANK,
                    "description": "Several same-day goal transactions sum to one bank transaction",
                    "priority": 4,
                    "enabled": True,
                },
            ],
            "confidence": {
                "exact": 1.0,
                "amount_max": 0.8,
                "amount_min": 0.5,
                "split": 0.7,
            },
        },
        "ledger": {
            "fund_codes": ["XUMMF", "XUBF", "XUDEF", "XUREF"],
            "excluded_sources": ["Transfer_Reversal"],
        },
        "batch": {"max_workers": 4},
        "pagination": {"default_page_size": 50, "max_page_size": 500},
        "resolution": {"timing_tolerance_days": 3},
        "input": {
            "encoding": "utf-8",
            "delimiter": ",",
            "date_format": "%Y-%m-%d",
            "bank_columns": {
                "id": "id",
                "goal_id": "Goal Number",
                "account_number": "Acc Number",
                "client_name": "Client Name",
                "date": "Date",
                "total_amount": "Total Amount",
                "transaction_type": "Transaction Type",
                "transaction_id": "Transaction ID",
            },
            "ledger_columns": {
                "id": "id",
                "goal_id": "Goal Number",
                "account_number": "Acc Number",
                "client_name": "Client Name",
                "date": "Date",
                "fund_code": "Fund",
                "amount": "Amount",
                "transaction_type": "Transaction Type",
                "transaction_id": "Transaction ID",
                "source": "Source",
                "goal_transaction_code": "Goal Transaction Code",
            },
        },
        "output": {
            "excel": {
                "filename_template": "goal_reconciliation_{date}_{time}.xlsx",
            },
            "sheets": {
                "goal_summary": {"enabled": True, "name": "Goal Summary"},
                "fund_summary": {"enabled": True, "name": "Fund Summary"},
                "matches": {"enabled": True, "name": "Matches"},
                "unmatched_bank": {"enabled": True, "name": "Unmatched Bank"},
                "unmatched_ledger": {"enabled": True, "name": "Unmatched Ledger"},
            },
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        },
    }


def load_config(config_path: Optional[Path] = None) -> ReconConfig:
    """
    Load configuration from a YAML file or use defaults.

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        ReconConfig object with loaded or default settings

    Raises:
        ConfigurationError: If the file cannot be read or fails validation
    """
    config_dict = get_default_config()

    if config_path and config_path.exists():
        logger.info(f"Loading configuration from: {config_path}")
        try:
            with open(config_path, "r") as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(user_config, dict):
            raise ConfigurationError(
                f"Configuration in {config_path} must be a mapping, got {type(user_config).__name__}"
            )

        config_dict = _deep_merge(config_dict, user_config)
        config_dict["config_file_path"] = str(config_path)
    else:
        logger.info("Using default configuration")

    try:
        return ReconConfig(**config_dict)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge on top

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def generate_default_config(output_path: Path) -> None:
    """
    Generate a default configuration file.

    Args:
        output_path: Path to write the configuration file
    """
    config_dict = get_default_config()

    yaml_content = """# Goal reconciliation configuration
# Tolerance is max(|expected| * relative, absolute_floor) in minor currency units

"""
    yaml_content += yaml.dump(config_dict, default_flow_style=False, sort_keys=False)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")
