"""
Freight Baseline: carrier workbook extraction and cost reconciliation.

Reads heterogeneous parcel, truckload and LTL spreadsheets, works out which
column of each tab holds the authoritative charge, drops subtotal lines,
and rolls everything up into one baseline figure per cost category.

Every number is auditable: each tab records the column it came from, the
ladder step that chose it, and a confidence / quality marker.
"""

__version__ = "1.0.0"

from freight_baseline.pipeline import BaselinePipeline  # noqa: F401
