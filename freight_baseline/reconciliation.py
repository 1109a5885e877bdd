"""
Baseline reconciliation.

Blends file results into one ``BaselineSummary``.  The summary is derived:
it is rebuilt from whatever results are currently available and is never a
source of truth itself.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional

from freight_baseline.logging_setup import get_logger
from freight_baseline.schema import (
    BaselineSummary,
    FileExtractionResult,
    FileStatus,
    SourceContribution,
    VendorType,
)
from freight_baseline.vendors import profile_for

logger = get_logger("reconciliation")

GENERAL_CATEGORY = "general_costs"


def category_for(vendor: VendorType) -> str:
    """Baseline bucket for a vendor; anything unknown lands in general costs."""
    try:
        return profile_for(vendor).category
    except KeyError:
        logger.warning("Vendor %r has no baseline category; counted as general", vendor)
        return GENERAL_CATEGORY


def _dedupe(results: Iterable[FileExtractionResult]) -> list[FileExtractionResult]:
    """Keep the last result per file id; results without an id are all kept."""
    by_id: Dict[str, int] = {}
    kept: list[Optional[FileExtractionResult]] = []
    for result in results:
        if result.file_id:
            if result.file_id in by_id:
                logger.info("Duplicate file id %s: keeping latest (%s)", result.file_id, result.file_name)
                kept[by_id[result.file_id]] = None
            by_id[result.file_id] = len(kept)
        kept.append(result)
    return [r for r in kept if r is not None]


def build_baseline(results: Iterable[FileExtractionResult]) -> BaselineSummary:
    """Aggregate file totals into the named baseline categories.

    Error files are listed as sources with a zero amount so reviewers see
    that something was uploaded but not counted.
    """
    summary = BaselineSummary()
    for result in _dedupe(results):
        category = category_for(result.vendor_type)
        amount = result.total_extracted if result.status is FileStatus.COMPLETED else 0.0

        if category == "ups_parcel_costs":
            summary.ups_parcel_costs += amount
        elif category == "tl_freight_costs":
            summary.tl_freight_costs += amount
        elif category == "rl_ltl_costs":
            summary.rl_ltl_costs += amount
        else:
            category = GENERAL_CATEGORY
            summary.general_costs += amount

        summary.sources.append(SourceContribution(
            file_id=result.file_id,
            file_name=result.file_name,
            vendor_type=result.vendor_type,
            category=category,
            amount=amount,
            status=result.status,
            confidence=result.confidence,
            quality=result.quality,
            tabs_count=len(result.tabs),
            flagged_tabs=result.flagged_tabs,
            error_message=result.error_message,
        ))

    logger.info(
        "Baseline: parcel=%.2f tl=%.2f ltl=%.2f general=%.2f total=%.2f from %d sources (%s)",
        summary.ups_parcel_costs, summary.tl_freight_costs, summary.rl_ltl_costs,
        summary.general_costs, summary.total_verified, len(summary.sources),
        summary.data_quality.value,
    )
    return summary
