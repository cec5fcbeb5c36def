"""Tests for configuration loading."""

from decimal import Decimal

import pytest

from goal_recon.config import (
    KNOWN_PASSES,
    generate_default_config,
    load_config,
)
from goal_recon.utils.exceptions import ConfigurationError


def test_defaults_without_file() -> None:
    config = load_config(None)

    assert config.tolerance.relative == Decimal("0.01")
    assert config.tolerance.absolute_floor == Decimal("1000")
    assert config.matching.date_window_days == 30
    assert config.resolution.timing_tolerance_days == 3
    assert [p.name for p in config.matching.passes] == list(KNOWN_PASSES)
    assert config.ledger.fund_codes == ["XUMMF", "XUBF", "XUDEF", "XUREF"]
    assert config.ledger.excluded_sources == ["Transfer_Reversal"]
    assert config.input.bank_columns["goal_id"] == "Goal Number"
    assert config.config_file_path is None


def test_yaml_overrides_are_merged(tmp_path) -> None:
    path = tmp_path / "recon.yaml"
    path.write_text(
        "matching:\n"
        "  date_window_days: 10\n"
        "tolerance:\n"
        "  absolute_floor: 500\n"
        "input:\n"
        "  bank_columns:\n"
        "    goal_id: Goal\n"
    )

    config = load_config(path)

    assert config.matching.date_window_days == 10
    assert config.matching.split_search_limit == 10
    assert config.tolerance.absolute_floor == Decimal("500")
    assert config.tolerance.relative == Decimal("0.01")
    assert config.input.bank_columns["goal_id"] == "Goal"
    assert config.input.bank_columns["date"] == "Date"
    assert config.config_file_path == str(path)


@pytest.mark.parametrize(
    "content",
    [
        "tolerance:\n  relative: -0.5\n",
        "matching:\n  passes:\n    - name: fuzzy\n",
        "matching:\n  date_window_days: -1\n",
        "matching: [unclosed\n",
        "- exact\n- amount\n",
        "just a string\n",
    ],
)
def test_invalid_config_raises(tmp_path, content) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text(content)

    with pytest.raises(ConfigurationError):
        load_config(path)


def test_generated_file_loads(tmp_path) -> None:
    path = tmp_path / "nested" / "config.yaml"

    generate_default_config(path)

    assert path.read_text().startswith("# Goal reconciliation configuration")
    config = load_config(path)
    assert config.matching.confidence.split == 0.7
    assert config.pagination.max_page_size == 500
