"""
Report Builder.

Serialises extraction and reconciliation results for audit display and
export: JSON for the API, CSV with one row per tab for spreadsheets, and the
short currency labels used on summary cards.
"""

from __future__ import annotations

import csv
import json
from io import StringIO
from typing import Any, Iterable

from freight_baseline.schema import FileExtractionResult


class ReportBuilder:
    """Builds audit exports from results."""

    TAB_COLUMNS = [
        "file_id", "file_name", "vendor_type", "status", "tab_name", "row_count",
        "chosen_column", "method", "extracted_amount", "rows_excluded_as_totals",
        "values_found", "confidence", "quality", "flagged", "diagnostic",
    ]

    @staticmethod
    def to_json(obj: Any, indent: int = 2) -> str:
        """Serialise anything with ``to_dict`` (or lists of such) to JSON."""
        if isinstance(obj, (list, tuple)):
            data = [o.to_dict() if hasattr(o, "to_dict") else o for o in obj]
        elif hasattr(obj, "to_dict"):
            data = obj.to_dict()
        else:
            data = obj
        return json.dumps(data, indent=indent, ensure_ascii=False, default=str)

    @classmethod
    def tabs_to_csv(cls, results: Iterable[FileExtractionResult]) -> str:
        """One audit row per tab; error files get a single row without a tab."""
        buf = StringIO()
        writer = csv.writer(buf)
        writer.writerow(cls.TAB_COLUMNS)
        for r in results:
            if not r.tabs:
                writer.writerow([
                    r.file_id, r.file_name, r.vendor_type.value, r.status.value,
                    "", 0, "", "", 0.0, 0, 0, 0.0, r.quality.value, "", r.error_message or "",
                ])
                continue
            for t in r.tabs:
                writer.writerow([
                    r.file_id,
                    r.file_name,
                    r.vendor_type.value,
                    r.status.value,
                    t.tab_name,
                    t.row_count,
                    t.chosen_column or "",
                    t.method or "",
                    round(t.extracted_amount, 2),
                    t.rows_excluded_as_totals,
                    t.values_found,
                    round(t.confidence, 2),
                    t.quality.value,
                    "yes" if t.flagged else "",
                    t.diagnostic or "",
                ])
        return buf.getvalue()

    @staticmethod
    def format_currency(amount: float) -> str:
        """``$2.93M``, ``$750K`` or ``$950``."""
        if amount > 1_000_000:
            return f"${amount / 1_000_000:.2f}M"
        if amount > 1_000:
            return f"${amount / 1_000:.0f}K"
        return f"${amount:,.2f}".rstrip("0").rstrip(".")
