"""
Validation Layer.

Post-extraction checks on a ``FileExtractionResult`` before it is stored or
reconciled.  Findings are informational: extraction already succeeded or
failed on its own terms, the validator only tells a reviewer where to look.

Checks performed
----------------
1. **Total consistency**: the file total equals the sum of its tabs.
2. **Numeric sanity**: tab amounts are finite, non-negative and plausible.
3. **Flagged tabs**: tabs where no ladder step found a column.
4. **Gross selections**: a tab whose amount came from a gross-labelled
   column (only possible positionally, when no net column exists).
"""

from __future__ import annotations

import math
from typing import Optional

from freight_baseline.config import ValidationConfig
from freight_baseline.logging_setup import get_logger
from freight_baseline.schema import FileExtractionResult, FileStatus

logger = get_logger("validator")


class ValidationReport:
    """Accumulates errors and warnings during a validation pass."""

    def __init__(self) -> None:
        self.errors: list[str] = []
        self.warnings: list[str] = []

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def findings(self) -> list[str]:
        return [f"ERROR: {e}" for e in self.errors] + list(self.warnings)

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)
        logger.error("Validation ERROR: %s", msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)
        logger.warning("Validation WARNING: %s", msg)


class Validator:
    """Validates one ``FileExtractionResult``."""

    def __init__(self, config: Optional[ValidationConfig] = None) -> None:
        self._config = config or ValidationConfig()

    def validate(self, result: FileExtractionResult) -> ValidationReport:
        report = ValidationReport()
        if result.status is FileStatus.ERROR:
            report.add_warning(f"{result.file_name}: not extracted ({result.error_message})")
            return report

        self._check_total(result, report)
        self._check_amounts(result, report)
        self._check_flagged(result, report)
        self._check_gross(result, report)
        if not result.tabs:
            report.add_warning(f"{result.file_name}: workbook has no tabs")
        return report

    # ------------------------------------------------------------------ #
    # Individual checks
    # ------------------------------------------------------------------ #

    def _check_total(self, result: FileExtractionResult, report: ValidationReport) -> None:
        tab_sum = math.fsum(t.extracted_amount for t in result.tabs)
        if abs(result.total_extracted - tab_sum) > self._config.total_tolerance:
            report.add_error(
                f"{result.file_name}: total {result.total_extracted} differs from "
                f"tab sum {tab_sum}"
            )

    def _check_amounts(self, result: FileExtractionResult, report: ValidationReport) -> None:
        for tab in result.tabs:
            amount = tab.extracted_amount
            where = f"{result.file_name} / {tab.tab_name}"
            if not math.isfinite(amount):
                report.add_error(f"{where}: non-finite amount {amount}")
            elif amount < 0:
                report.add_error(f"{where}: negative amount {amount}")
        if result.total_extracted > self._config.max_absolute_value:
            report.add_warning(
                f"{result.file_name}: total {result.total_extracted:,.2f} exceeds "
                f"{self._config.max_absolute_value:,.0f}. Possible unit error?"
            )

    def _check_flagged(self, result: FileExtractionResult, report: ValidationReport) -> None:
        for tab in result.tabs:
            if tab.flagged and tab.row_count:
                report.add_warning(tab.diagnostic or f"{result.file_name} / {tab.tab_name}: flagged")

    def _check_gross(self, result: FileExtractionResult, report: ValidationReport) -> None:
        for tab in result.tabs:
            if tab.chosen_column and "gross" in tab.chosen_column.lower():
                report.add_warning(
                    f"{result.file_name} / {tab.tab_name}: amount taken from gross column "
                    f"{tab.chosen_column!r}"
                )
