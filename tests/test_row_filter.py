"""
Unit tests for the TotalRowFilter.
"""

from __future__ import annotations

import pytest

from freight_baseline.row_filter import TotalRowFilter, is_empty_marker
from freight_baseline.workbook_reader import WorkbookReader


@pytest.fixture
def row_filter() -> TotalRowFilter:
    return TotalRowFilter()


def make_tab(rows):
    return WorkbookReader().from_rows("Detail", rows)


# ======================================================================
# Descriptive columns
# ======================================================================

class TestDescriptiveColumns:
    def test_lane_columns(self, row_filter: TotalRowFilter) -> None:
        headers = ["Origin", "Dest", "Ship Date", "Carrier", "Net Charge"]
        assert row_filter.descriptive_columns(headers) == [0, 1, 3]

    def test_prefixed_tokens(self, row_filter: TotalRowFilter) -> None:
        assert row_filter.descriptive_columns(["Destination_City", "ZipCode"]) == [0, 1]

    def test_money_headers_excluded(self, row_filter: TotalRowFilter) -> None:
        assert row_filter.descriptive_columns(["Service Charge", "Service"]) == [1]

    @pytest.mark.parametrize("value", [None, "", " ", "N/A", "null", "-", "none"])
    def test_empty_markers(self, value) -> None:
        assert is_empty_marker(value)

    def test_zero_is_not_empty(self) -> None:
        assert not is_empty_marker(0)


# ======================================================================
# Filtering
# ======================================================================

class TestFilterColumn:
    def test_row_without_lane_data_excluded(self, row_filter: TotalRowFilter) -> None:
        tab = make_tab([
            ["Origin", "Dest", "NetCharge"],
            ["A", "B", 100],
            [None, None, 5000],
        ])
        outcome = row_filter.filter_column(tab, 2, floor=0.01)
        assert outcome.total == pytest.approx(100)
        assert outcome.values_found == 1
        assert outcome.rows_excluded == 1
        assert outcome.excluded_rows == [3]

    def test_total_keyword_excluded(self, row_filter: TotalRowFilter) -> None:
        tab = make_tab([
            ["Origin", "Dest", "Net Charge"],
            ["A", "B", 100],
            ["C", "D", 200],
            ["Grand Total", "", 300],
        ])
        outcome = row_filter.filter_column(tab, 2, floor=0.01)
        assert outcome.total == pytest.approx(300)
        assert outcome.rows_excluded == 1

    @pytest.mark.parametrize("label", ["Subtotal", "TOTAL", "sum", "Grand"])
    def test_total_spellings(self, row_filter: TotalRowFilter, label: str) -> None:
        tab = make_tab([["Lane", "Cost"], ["X-Y", 10], [label, 10]])
        assert row_filter.filter_column(tab, 1, floor=0.01).values_found == 1

    @pytest.mark.parametrize("city", ["Grand Rapids", "Grand Prairie"])
    def test_grand_city_names_are_kept(self, row_filter: TotalRowFilter, city: str) -> None:
        tab = make_tab([
            ["Origin", "Dest", "Net Charge"],
            ["Chicago", city, 100],
            [city, "Dallas", 50],
        ])
        outcome = row_filter.filter_column(tab, 2, floor=0.01)
        assert outcome.total == pytest.approx(150)
        assert outcome.rows_excluded == 0

    def test_sum_inside_word_is_kept(self, row_filter: TotalRowFilter) -> None:
        tab = make_tab([["Lane", "Cost"], ["Sumter-Macon", 10]])
        assert row_filter.filter_column(tab, 1, floor=0.01).values_found == 1

    def test_without_descriptive_columns_rows_are_kept(self, row_filter: TotalRowFilter) -> None:
        tab = make_tab([["Amount"], [100], [200]])
        outcome = row_filter.filter_column(tab, 0, floor=0.01)
        assert outcome.total == pytest.approx(300)
        assert outcome.rows_excluded == 0

    def test_floor_applied(self, row_filter: TotalRowFilter) -> None:
        tab = make_tab([["Lane", "Cost"], ["A", 50], ["B", 150], ["C", "$1,000"]])
        outcome = row_filter.filter_column(tab, 1, floor=100)
        assert outcome.total == pytest.approx(1150)
        assert outcome.values_found == 2

    def test_non_positive_and_text_ignored(self, row_filter: TotalRowFilter) -> None:
        tab = make_tab([["Lane", "Cost"], ["A", 0], ["B", "(25)"], ["C", "n/a"], ["D", 40]])
        outcome = row_filter.filter_column(tab, 1, floor=0.01)
        assert outcome.total == pytest.approx(40)
        assert outcome.rows_excluded == 0

    def test_blank_total_row_not_counted_as_excluded(self, row_filter: TotalRowFilter) -> None:
        tab = make_tab([["Lane", "Cost"], ["A", 40], ["Total", None]])
        assert row_filter.filter_column(tab, 1, floor=0.01).rows_excluded == 0
