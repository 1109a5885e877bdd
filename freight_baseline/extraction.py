"""
Multi-tab extraction engine.

For one workbook: resolve every header once, run the vendor's column
ladder on each tab, and roll the tab amounts up into a
``FileExtractionResult``.  Batches run files as independent tasks, so one
corrupt upload never changes another file's result.
"""

from __future__ import annotations

import hashlib
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from freight_baseline.column_classifier import ColumnClassifier, TabClassification
from freight_baseline.column_ladder import ColumnLadder, candidate_summary
from freight_baseline.config import ExtractionConfig
from freight_baseline.header_resolver import HeaderResolver
from freight_baseline.logging_setup import get_logger
from freight_baseline.schema import (
    FileExtractionResult,
    FileStatus,
    HeaderResolution,
    ParsedWorkbook,
    Quality,
    Tab,
    TabExtractionResult,
    VendorType,
)
from freight_baseline.validator import Validator
from freight_baseline.vendors import VendorProfile, parse_vendor, profile_for
from freight_baseline.workbook_reader import WorkbookParseError, WorkbookReader, decode_content

logger = get_logger("extraction")


@dataclass
class FileUpload:
    """One file submitted for extraction."""

    file_name: str
    content: Union[bytes, str]
    vendor_type: Optional[Union[str, VendorType]] = None
    scope_key: Optional[str] = None
    file_id: Optional[str] = None


def content_file_id(content: Union[bytes, bytearray, str]) -> str:
    """Default file identity: sha256 of the decoded bytes."""
    try:
        data = decode_content(content)
    except WorkbookParseError:
        data = content.encode("utf-8") if isinstance(content, str) else bytes(content)
    return hashlib.sha256(data).hexdigest()


class ExtractionEngine:
    """Extract per-tab and per-file amounts.

    Parameters
    ----------
    resolver:
        Store-then-fuzzy header resolver; its decisions feed the ladder.
    config:
        Ladder guards, row caps and batch concurrency.
    """

    def __init__(
        self,
        resolver: HeaderResolver,
        config: Optional[ExtractionConfig] = None,
        ladder: Optional[ColumnLadder] = None,
        reader: Optional[WorkbookReader] = None,
        validator: Optional[Validator] = None,
        classifier: Optional[ColumnClassifier] = None,
    ) -> None:
        self._config = config or ExtractionConfig()
        self._resolver = resolver
        self._ladder = ladder or ColumnLadder(self._config)
        self._reader = reader or WorkbookReader(self._config.max_rows_per_tab)
        self._validator = validator or Validator()
        self._classifier = classifier or ColumnClassifier(row_limit=self._config.inspection_row_limit)

    # ------------------------------------------------------------------ #
    # Tab level
    # ------------------------------------------------------------------ #

    def extract_tab(
        self,
        tab: Tab,
        profile: VendorProfile,
        resolutions: Optional[Dict[str, HeaderResolution]] = None,
        file_name: str = "",
    ) -> TabExtractionResult:
        where = f"{file_name} / {tab.name}" if file_name else tab.name

        if not tab.headers or not tab.rows:
            logger.warning("%s: tab has no data rows; contributes 0", where)
            return TabExtractionResult(
                tab_name=tab.name,
                row_count=tab.row_count,
                column_headers=list(tab.headers),
                chosen_column=None,
                extracted_amount=0.0,
                rows_excluded_as_totals=0,
                quality=Quality.EMPTY,
                flagged=True,
                diagnostic=f"{where}: tab has no data rows",
            )

        chosen = self._ladder.select(tab, profile, resolutions)
        if chosen is None:
            ctx = self._ladder.context(tab, profile, resolutions)
            considered = {k: v for k, v in candidate_summary(self._ladder, ctx).items() if v}
            diagnostic = (
                f"{where}: no qualifying {profile.vendor.value} amount column among headers "
                f"{list(tab.headers)}"
            )
            if considered:
                diagnostic += f"; candidates below threshold: {considered}"
            logger.warning(diagnostic)
            return TabExtractionResult(
                tab_name=tab.name,
                row_count=tab.row_count,
                column_headers=list(tab.headers),
                chosen_column=None,
                extracted_amount=0.0,
                rows_excluded_as_totals=0,
                quality=Quality.EMPTY,
                flagged=True,
                diagnostic=diagnostic,
            )

        return TabExtractionResult(
            tab_name=tab.name,
            row_count=tab.row_count,
            column_headers=list(tab.headers),
            chosen_column=chosen.header,
            extracted_amount=chosen.outcome.total,
            rows_excluded_as_totals=chosen.outcome.rows_excluded,
            method=chosen.step,
            confidence=chosen.confidence,
            values_found=chosen.outcome.values_found,
            quality=chosen.quality,
        )

    # ------------------------------------------------------------------ #
    # File level
    # ------------------------------------------------------------------ #

    def extract_workbook(
        self,
        workbook: ParsedWorkbook,
        vendor_type: VendorType,
        scope_key: Optional[str] = None,
        file_id: Optional[str] = None,
    ) -> FileExtractionResult:
        profile = profile_for(vendor_type)
        headers = [h for tab in workbook.tabs for h in tab.headers]
        resolutions = self._resolver.resolve_headers(scope_key, headers)

        result = FileExtractionResult(
            file_name=workbook.file_name,
            vendor_type=vendor_type,
            file_id=file_id,
        )
        for tab in workbook.tabs:
            result.tabs.append(self.extract_tab(tab, profile, resolutions, workbook.file_name))

        report = self._validator.validate(result)
        result.warnings.extend(report.findings)

        logger.info(
            "%s [%s]: %.2f from %d tabs (%d flagged), quality=%s",
            workbook.file_name, vendor_type.value, result.total_extracted,
            len(result.tabs), len(result.flagged_tabs), result.quality.value,
        )
        return result

    def extract_file(
        self,
        file_name: str,
        content: Union[bytes, str],
        vendor_type: Optional[Union[str, VendorType]] = None,
        scope_key: Optional[str] = None,
        file_id: Optional[str] = None,
    ) -> FileExtractionResult:
        """Parse and extract one upload.  Bad content yields ``status=error``."""
        vendor = parse_vendor(vendor_type, file_name)
        file_id = file_id or content_file_id(content)
        try:
            workbook = self._reader.read_workbook(content, file_name)
        except WorkbookParseError as exc:
            logger.error("%s: parse failed: %s", file_name, exc)
            return FileExtractionResult(
                file_name=file_name,
                vendor_type=vendor,
                status=FileStatus.ERROR,
                file_id=file_id,
                error_message=str(exc),
            )
        return self.extract_workbook(workbook, vendor, scope_key, file_id)

    def extract_batch(self, files: List[FileUpload]) -> List[FileExtractionResult]:
        """Extract several files concurrently; results keep the input order."""
        if not files:
            return []

        results: List[Optional[FileExtractionResult]] = [None] * len(files)
        workers = max(1, min(self._config.batch_workers, len(files)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                pool.submit(
                    self.extract_file, f.file_name, f.content, f.vendor_type, f.scope_key, f.file_id
                ): i
                for i, f in enumerate(files)
            }
            for fut in as_completed(futures):
                i = futures[fut]
                upload = files[i]
                try:
                    results[i] = fut.result()
                except Exception as exc:  # one file must never sink the batch
                    logger.exception("%s: extraction failed", upload.file_name)
                    results[i] = FileExtractionResult(
                        file_name=upload.file_name,
                        vendor_type=parse_vendor(upload.vendor_type, upload.file_name),
                        status=FileStatus.ERROR,
                        file_id=upload.file_id or content_file_id(upload.content),
                        error_message=f"{upload.file_name}: {type(exc).__name__}: {exc}",
                    )

        completed = sum(1 for r in results if r and r.status is FileStatus.COMPLETED)
        logger.info("Batch done: %d/%d files completed", completed, len(files))
        return [r for r in results if r is not None]

    # ------------------------------------------------------------------ #
    # Diagnostics
    # ------------------------------------------------------------------ #

    def inspect_workbook(
        self, file_name: str, content: Union[bytes, str]
    ) -> List[TabClassification]:
        """Classify every column of every tab over the first rows.

        Raises ``WorkbookParseError`` for undecodable content.
        """
        workbook = self._reader.read_workbook(content, file_name)
        file_id = content_file_id(content)
        return [self._classifier.classify_columns(tab, file_id) for tab in workbook.tabs]
