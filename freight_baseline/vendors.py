"""
Vendor classification and per-vendor extraction profiles.

A vendor profile is pure data: which header the carrier's template uses for
its authoritative amount, where the amount sits positionally, and how small
a value may be before it is treated as a placeholder at each ladder step.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

from freight_baseline.logging_setup import get_logger
from freight_baseline.normalizer import HeaderNormalizer
from freight_baseline.schema import VendorType

logger = get_logger("vendors")

# Ladder step names, in priority order
EXACT_HEADER = "exact_header"
NET_PRIORITY = "net_priority"
COST_TOKEN = "cost_token"
POSITIONAL = "positional"

LADDER_STEPS = (EXACT_HEADER, NET_PRIORITY, COST_TOKEN, POSITIONAL)


@dataclass(frozen=True)
class VendorProfile:
    vendor: VendorType
    category: str

    # Exact step: normalised header spellings, optionally restricted to tabs
    # whose normalised name contains ``exact_tab_keyword``; ``exact_index``
    # is accepted as the exact column in those tabs as well.
    exact_headers: Tuple[str, ...] = ()
    exact_tab_keyword: Optional[str] = None
    exact_index: Optional[int] = None

    positional_index: Optional[int] = None

    # Minimum cleaned value per ladder step; a missing step is skipped.
    floors: Dict[str, float] = field(default_factory=dict)

    # Cost-token guard overrides (None = use ExtractionConfig)
    token_min_values: Optional[int] = None
    token_min_total: Optional[float] = None

    def floor(self, step: str) -> Optional[float]:
        return self.floors.get(step)

    def exact_applies(self, normalized_tab_name: str) -> bool:
        if not (self.exact_headers or self.exact_index is not None):
            return False
        if self.exact_tab_keyword is None:
            return True
        return self.exact_tab_keyword in normalized_tab_name


PROFILES: Dict[VendorType, VendorProfile] = {
    VendorType.PARCEL: VendorProfile(
        vendor=VendorType.PARCEL,
        category="ups_parcel_costs",
        exact_headers=("net charge",),
        positional_index=5,  # F
        floors={EXACT_HEADER: 0.01, NET_PRIORITY: 0.01, COST_TOKEN: 0.01, POSITIONAL: 0.01},
    ),
    VendorType.LTL: VendorProfile(
        vendor=VendorType.LTL,
        category="rl_ltl_costs",
        exact_headers=("v", "column v"),
        positional_index=21,  # V
        floors={EXACT_HEADER: 0.01, NET_PRIORITY: 0.01, COST_TOKEN: 50.0, POSITIONAL: 100.0},
    ),
    VendorType.TRUCKLOAD: VendorProfile(
        vendor=VendorType.TRUCKLOAD,
        category="tl_freight_costs",
        exact_headers=("h",),
        exact_tab_keyword="total",
        exact_index=7,  # H
        positional_index=7,
        floors={EXACT_HEADER: 1.0, NET_PRIORITY: 1.0, COST_TOKEN: 500.0, POSITIONAL: 1000.0},
    ),
    VendorType.OTHER: VendorProfile(
        vendor=VendorType.OTHER,
        category="general_costs",
        floors={NET_PRIORITY: 0.01, COST_TOKEN: 1.0},
    ),
}


def profile_for(vendor: VendorType) -> VendorProfile:
    return PROFILES[vendor]


# ---------------------------------------------------------------------------
# File-name classification
# ---------------------------------------------------------------------------

_normalizer = HeaderNormalizer()

# Checked in order; LTL before TRUCKLOAD because "ltl" contains "tl".
_VENDOR_PATTERNS: Tuple[Tuple[VendorType, re.Pattern[str]], ...] = (
    (VendorType.PARCEL, re.compile(r"\bups\b|\bfedex\b|\bparcel\b|individual item cost")),
    (VendorType.LTL, re.compile(r"\br&l\b|\br l\b|\bltl\b|\bcurriculum\b|less than truckload")),
    (VendorType.TRUCKLOAD, re.compile(r"\btl\b|\btruckload\b|\binbound\b|\boutbound\b")),
)


def classify_vendor(file_name: str) -> VendorType:
    """Infer the carrier category from an uploaded file's name."""
    name = _normalizer.normalize(file_name)
    for vendor, pattern in _VENDOR_PATTERNS:
        if pattern.search(name):
            logger.debug("File %r classified as %s", file_name, vendor.value)
            return vendor
    logger.debug("File %r matches no vendor pattern; OTHER", file_name)
    return VendorType.OTHER


def parse_vendor(value: Union[str, VendorType, None], file_name: str) -> VendorType:
    """Use a declared vendor tag when valid, else classify by file name.

    Accepts enum values and the common short tags (``UPS``, ``TL``, ``RL``).
    """
    if isinstance(value, VendorType):
        return value
    if value:
        tag = value.strip().upper().replace("&", "")
        aliases = {"UPS": "PARCEL", "TL": "TRUCKLOAD", "RL": "LTL", "GENERAL": "OTHER"}
        tag = aliases.get(tag, tag)
        try:
            return VendorType(tag)
        except ValueError:
            logger.warning("Unknown vendor tag %r for %s; classifying by name", value, file_name)
    return classify_vendor(file_name)
