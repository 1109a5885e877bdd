"""
Configuration for the freight baseline engine.

Thresholds, confidences, worker counts and storage locations are collected
here so that business modules never hard-code them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class MatchingConfig:
    """Header -> canonical field matching."""

    # Minimum resolver score (0.0-1.0) for a suggestion to count as mapped
    fuzzy_threshold: float = 0.55

    # A suggestion at or above this score is a named-pattern match
    pattern_threshold: float = 0.70

    # Confidence for a header that is literally the letter "V"
    exact_letter_confidence: float = 0.95

    # Confidence for the zero-indexed column 21 positional signal
    position_confidence: float = 0.60

    # Zero-indexed position of spreadsheet column V
    column_v_index: int = 21

    # Top-two candidates closer than this are logged as ambiguous
    ambiguity_delta: float = 0.05


@dataclass(frozen=True)
class MappingStoreConfig:
    """Adaptive mapping store and file record persistence."""

    # SQLAlchemy URL.  ``None`` keeps mappings in process memory only.
    database_url: Optional[str] = None

    # Confidence recorded when a human confirms a mapping without one
    customer_confirm_confidence: float = 0.9
    global_confirm_confidence: float = 0.8

    # Concurrent lookups issued by ``resolve_bulk_mappings``
    lookup_workers: int = 8

    # When False, resolutions are looked up but never written back
    learn: bool = True


@dataclass(frozen=True)
class ExtractionConfig:
    """Column ladder guards and resource caps."""

    # Cost-token step: a candidate column must yield at least this many
    # values and this total before it is accepted.
    cost_token_min_values: int = 2
    cost_token_min_total: float = 100.0

    # A header without a "net" money label is only a net column when a
    # stored (customer or global) net_charge mapping reaches this confidence.
    learned_net_min_confidence: float = 0.9

    # Rows per tab inspected by the diagnostic classification path
    inspection_row_limit: int = 200

    # Hard cap on data rows read per tab during extraction (None = all)
    max_rows_per_tab: Optional[int] = None

    # Worker threads for batch extraction
    batch_workers: int = 4


@dataclass(frozen=True)
class ValidationConfig:
    """Post-extraction checks."""

    # Anything above this per file is reported as a probable unit error
    max_absolute_value: float = 1e10

    # Allowed float drift between a file total and the sum of its tabs
    total_tolerance: float = 0.01


@dataclass(frozen=True)
class PipelineConfig:
    """Top-level configuration aggregating all sub-configs."""

    matching: MatchingConfig = field(default_factory=MatchingConfig)
    store: MappingStoreConfig = field(default_factory=MappingStoreConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)

    log_level: int = logging.INFO
    log_file: Optional[str] = None

    # Optional JSON file of ``{canonical_field: [synonym, ...]}`` merged
    # into the built-in synonym lists.
    custom_synonym_path: Optional[Path] = None
