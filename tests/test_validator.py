"""
Unit tests for the Validator.
"""

from __future__ import annotations

import math

import pytest

from freight_baseline.config import ValidationConfig
from freight_baseline.schema import (
    FileExtractionResult,
    FileStatus,
    TabExtractionResult,
    VendorType,
)
from freight_baseline.validator import ValidationReport, Validator


def _tab(name: str = "Sheet1", amount: float = 100.0, **kwargs) -> TabExtractionResult:
    defaults = dict(
        tab_name=name,
        row_count=5,
        column_headers=["Origin", "Net Charge"],
        chosen_column="Net Charge",
        extracted_amount=amount,
        rows_excluded_as_totals=0,
    )
    defaults.update(kwargs)
    return TabExtractionResult(**defaults)


def _result(*tabs: TabExtractionResult, **kwargs) -> FileExtractionResult:
    return FileExtractionResult(
        file_name="ups.xlsx", vendor_type=VendorType.PARCEL, tabs=list(tabs), **kwargs
    )


@pytest.fixture
def validator() -> Validator:
    return Validator(config=ValidationConfig())


# ======================================================================
# Report
# ======================================================================

class TestValidationReport:
    def test_empty_report_is_valid(self) -> None:
        report = ValidationReport()
        assert report.is_valid
        assert report.findings == []

    def test_findings_prefix_errors(self) -> None:
        report = ValidationReport()
        report.add_error("bad")
        report.add_warning("odd")
        assert not report.is_valid
        assert report.findings == ["ERROR: bad", "odd"]


# ======================================================================
# Checks
# ======================================================================

class TestValidator:
    def test_clean_result(self, validator: Validator) -> None:
        report = validator.validate(_result(_tab(), _tab("Sheet2", 50)))
        assert report.is_valid
        assert report.warnings == []

    def test_negative_amount(self, validator: Validator) -> None:
        report = validator.validate(_result(_tab(amount=-5)))
        assert not report.is_valid
        assert "negative" in report.errors[0]

    def test_non_finite_amount(self, validator: Validator) -> None:
        report = validator.validate(_result(_tab(amount=math.inf)))
        assert any("non-finite" in e for e in report.errors)

    def test_implausible_total(self) -> None:
        validator = Validator(ValidationConfig(max_absolute_value=1_000))
        report = validator.validate(_result(_tab(amount=5_000)))
        assert report.is_valid
        assert "unit error" in report.warnings[0]

    def test_flagged_tab_warning_uses_diagnostic(self, validator: Validator) -> None:
        flagged = _tab("Notes", 0.0, chosen_column=None, flagged=True, diagnostic="ups.xlsx / Notes: nothing")
        report = validator.validate(_result(_tab(), flagged))
        assert report.warnings == ["ups.xlsx / Notes: nothing"]

    def test_flagged_empty_tab_is_silent(self, validator: Validator) -> None:
        empty = _tab("Blank", 0.0, row_count=0, chosen_column=None, flagged=True)
        assert validator.validate(_result(_tab(), empty)).warnings == []

    def test_gross_column_warning(self, validator: Validator) -> None:
        report = validator.validate(_result(_tab(chosen_column="Gross Charge")))
        assert "gross column" in report.warnings[0]

    def test_no_tabs(self, validator: Validator) -> None:
        report = validator.validate(_result())
        assert "no tabs" in report.warnings[0]

    def test_error_status_short_circuits(self, validator: Validator) -> None:
        report = validator.validate(
            _result(status=FileStatus.ERROR, error_message="cannot open workbook")
        )
        assert report.is_valid
        assert len(report.warnings) == 1
        assert "cannot open workbook" in report.warnings[0]
