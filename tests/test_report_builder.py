"""
Unit tests for the ReportBuilder.
"""

from __future__ import annotations

import csv
import json
from io import StringIO

import pytest

from freight_baseline.report_builder import ReportBuilder
from freight_baseline.schema import (
    FileExtractionResult,
    FileStatus,
    Quality,
    TabExtractionResult,
    VendorType,
)


@pytest.fixture
def results() -> list:
    ok = FileExtractionResult(
        file_name="ups.xlsx",
        vendor_type=VendorType.PARCEL,
        file_id="abc",
        tabs=[
            TabExtractionResult(
                tab_name="Shipments",
                row_count=3,
                column_headers=["Origin", "Net Charge"],
                chosen_column="Net Charge",
                extracted_amount=1234.567,
                rows_excluded_as_totals=1,
                method="exact_header",
                confidence=0.95,
                values_found=2,
                quality=Quality.VERIFIED,
            ),
            TabExtractionResult(
                tab_name="Notes",
                row_count=1,
                column_headers=["Comment"],
                chosen_column=None,
                extracted_amount=0.0,
                rows_excluded_as_totals=0,
                flagged=True,
                diagnostic="ups.xlsx / Notes: no column",
            ),
        ],
    )
    broken = FileExtractionResult(
        file_name="broken.xlsx",
        vendor_type=VendorType.LTL,
        file_id="def",
        status=FileStatus.ERROR,
        error_message="cannot open workbook",
    )
    return [ok, broken]


# ======================================================================
# Exports
# ======================================================================

class TestExports:
    def test_csv_one_row_per_tab(self, results: list) -> None:
        rows = list(csv.DictReader(StringIO(ReportBuilder.tabs_to_csv(results))))
        assert len(rows) == 3
        assert rows[0]["chosen_column"] == "Net Charge"
        assert rows[0]["extracted_amount"] == "1234.57"
        assert rows[1]["flagged"] == "yes"
        assert rows[2]["status"] == "error"
        assert rows[2]["diagnostic"] == "cannot open workbook"

    def test_csv_header(self) -> None:
        header = ReportBuilder.tabs_to_csv([]).splitlines()[0]
        assert header.split(",") == ReportBuilder.TAB_COLUMNS

    def test_json_list(self, results: list) -> None:
        data = json.loads(ReportBuilder.to_json(results))
        assert data[0]["total_extracted"] == pytest.approx(1234.567)
        assert data[1]["quality"] == "error"

    def test_json_plain(self) -> None:
        assert json.loads(ReportBuilder.to_json({"a": 1})) == {"a": 1}


class TestFormatCurrency:
    @pytest.mark.parametrize("amount, expected", [
        (2_930_000, "$2.93M"),
        (6_560_000, "$6.56M"),
        (750_000, "$750K"),
        (1_800, "$2K"),
        (950, "$950"),
        (99.5, "$99.5"),
        (0, "$0"),
    ])
    def test_labels(self, amount: float, expected: str) -> None:
        assert ReportBuilder.format_currency(amount) == expected
