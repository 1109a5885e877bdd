"""
Total-row filtering.

Carrier exports often end a block with a subtotal or grand-total line.
Summing those next to the detail rows double counts, so before a column is
summed each row is checked for two signs of being pre-aggregated:

1. A text cell mentions total, subtotal or sum, or reads just "grand".
2. The row carries a qualifying amount but none of the tab's descriptive
   columns (origin, destination, city, carrier ...) has a value.  Only
   applied when the tab has descriptive columns at all.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from freight_baseline.logging_setup import get_logger
from freight_baseline.normalizer import HeaderNormalizer
from freight_baseline.schema import RawRow, Tab

logger = get_logger("row_filter")

# "grand" alone marks a total row; "Grand Rapids" is a city
_TOTAL_RE = re.compile(r"total|^\s*grand\s*$|\bsum\b", re.IGNORECASE)

# "Service Charge" describes money, not the shipment
_MONEY_RE = re.compile(r"charge|cost|amount")

DESCRIPTIVE_TOKENS = frozenset({
    "origin", "orig", "destination", "dest", "from", "to", "route", "lane",
    "city", "state", "zip", "location", "service", "mode", "carrier",
    "consignee", "shipper",
})

# Header tokens starting with these also count ("destination_city", "zipcode").
_DESCRIPTIVE_PREFIXES = ("origin", "dest", "zip", "carrier", "service", "location")

_EMPTY_MARKERS = frozenset({"", "null", "n/a", "na", "none", "-"})


def is_empty_marker(value) -> bool:
    if value is None:
        return True
    return str(value).strip().lower() in _EMPTY_MARKERS


@dataclass
class FilterOutcome:
    """Rows of one column that survived filtering, with their amounts."""

    total: float = 0.0
    values: List[Tuple[int, float]] = field(default_factory=list)  # (row_number, amount)
    excluded_rows: List[int] = field(default_factory=list)

    @property
    def values_found(self) -> int:
        return len(self.values)

    @property
    def rows_excluded(self) -> int:
        return len(self.excluded_rows)


class TotalRowFilter:
    """Decide which rows of a tab are total-line artifacts."""

    def __init__(self, normalizer: Optional[HeaderNormalizer] = None) -> None:
        self._normalizer = normalizer or HeaderNormalizer()

    def descriptive_columns(self, headers: Sequence[str]) -> List[int]:
        """Indices of headers describing the shipment rather than its cost."""
        found = []
        for index, header in enumerate(headers):
            norm = self._normalizer.normalize(header)
            if _MONEY_RE.search(norm):
                continue
            tokens = norm.split()
            if any(t in DESCRIPTIVE_TOKENS or t.startswith(_DESCRIPTIVE_PREFIXES) for t in tokens):
                found.append(index)
        return found

    @staticmethod
    def has_total_keyword(row: RawRow) -> bool:
        return any(isinstance(v, str) and _TOTAL_RE.search(v) for v in row.values)

    @staticmethod
    def lacks_supporting_data(row: RawRow, descriptive: Sequence[int]) -> bool:
        if not descriptive:
            return False
        return all(is_empty_marker(row.get(i)) for i in descriptive)

    def filter_column(
        self,
        tab: Tab,
        column_index: int,
        floor: float,
        descriptive: Optional[Sequence[int]] = None,
    ) -> FilterOutcome:
        """Sum *column_index* over rows that are not total artifacts.

        A value counts when it cleans to a finite number at or above
        *floor*.  Only rows that would otherwise have contributed are
        reported as excluded.
        """
        if descriptive is None:
            descriptive = self.descriptive_columns(tab.headers)
        descriptive = [i for i in descriptive if i != column_index]

        outcome = FilterOutcome()
        for row in tab.rows:
            amount = self._normalizer.clean_amount(row.get(column_index))
            if amount is None or amount < floor or amount <= 0:
                continue
            if self.has_total_keyword(row):
                logger.debug("%s row %d: excluded %.2f (total keyword)", tab.name, row.row_number, amount)
                outcome.excluded_rows.append(row.row_number)
                continue
            if self.lacks_supporting_data(row, descriptive):
                logger.debug("%s row %d: excluded %.2f (no supporting data)", tab.name, row.row_number, amount)
                outcome.excluded_rows.append(row.row_number)
                continue
            outcome.values.append((row.row_number, amount))
            outcome.total += amount
        return outcome
