"""
Canonical field vocabulary and the typed records carried through extraction.

Everything here is plain data: enums for the closed vocabularies and
dataclasses with ``to_dict`` helpers so that results stay JSON-serialisable
for audit display and for the ``uploaded_file`` JSON payload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


# ---------------------------------------------------------------------------
# Vocabularies
# ---------------------------------------------------------------------------

class CanonicalField(str, Enum):
    """Every business field a column header can be mapped to."""

    SKU = "sku"
    DESCRIPTION = "description"
    ITEM_CLASS = "item_class"
    UOM = "uom"
    QTY = "qty"
    LOCATION = "location"
    LOC_TYPE = "loc_type"
    LOT = "lot"
    SERIAL = "serial"
    OWNER = "owner"
    WAREHOUSE = "warehouse"
    AREA = "area"
    TRANSACTION_TYPE = "transaction_type"
    TRANSACTION_TS = "transaction_ts"
    ORDER_ID = "order_id"
    SHIP_DATE = "ship_date"
    ORIGIN_ZIP = "origin_zip"
    DEST_ZIP = "dest_zip"
    SERVICE_LEVEL = "service_level"
    MODE = "mode"
    CARRIER = "carrier"
    WEIGHT_LB = "weight_lb"
    CUBE_CF = "cube_cf"
    PKGS = "pkgs"
    FREIGHT_COST_USD = "freight_cost_usd"
    ON_HAND_QTY = "on_hand_qty"
    ALLOCATED_QTY = "allocated_qty"
    AVAILABLE_QTY = "available_qty"
    REORDER_POINT = "reorder_point"
    REORDER_QTY = "reorder_qty"
    UNIT_COST_USD = "unit_cost_usd"

    # Transport monetary fields
    NET_CHARGE = "net_charge"
    GROSS_CHARGE = "gross_charge"
    COLUMN_V = "column_v"
    LTL_COST = "ltl_cost"
    TL_COST = "tl_cost"
    PARCEL_COST = "parcel_cost"


MONETARY_FIELDS: frozenset[CanonicalField] = frozenset({
    CanonicalField.FREIGHT_COST_USD,
    CanonicalField.NET_CHARGE,
    CanonicalField.GROSS_CHARGE,
    CanonicalField.COLUMN_V,
    CanonicalField.LTL_COST,
    CanonicalField.TL_COST,
    CanonicalField.PARCEL_COST,
})


def canonical_lookup(name: str) -> Optional[CanonicalField]:
    """Case-insensitive lookup by value (``"Net_Charge"`` -> NET_CHARGE)."""
    key = name.strip().lower().replace(" ", "_")
    try:
        return CanonicalField(key)
    except ValueError:
        return None


class VendorType(str, Enum):
    PARCEL = "PARCEL"
    TRUCKLOAD = "TRUCKLOAD"
    LTL = "LTL"
    OTHER = "OTHER"


class MappingScope(str, Enum):
    CUSTOMER = "customer"
    GLOBAL = "global"


class FileStatus(str, Enum):
    COMPLETED = "completed"
    ERROR = "error"


class Quality(str, Enum):
    """Audit marker, ordered from strongest to weakest."""

    VERIFIED = "verified"
    ESTIMATED = "estimated"
    GENERATED = "generated"
    EMPTY = "empty"
    ERROR = "error"
    NO_DATA = "no_data"


_QUALITY_RANK = {q: i for i, q in enumerate(Quality)}


def weakest_quality(markers: list[Quality], default: Quality = Quality.NO_DATA) -> Quality:
    """Return the weakest marker in *markers* (or *default* when empty)."""
    if not markers:
        return default
    return max(markers, key=_QUALITY_RANK.__getitem__)


# ---------------------------------------------------------------------------
# Workbook structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RawRow:
    """One data row, positionally aligned with its tab's ``headers``."""

    values: tuple[Any, ...]
    row_number: int

    def get(self, index: int) -> Any:
        if 0 <= index < len(self.values):
            return self.values[index]
        return None


@dataclass
class Tab:
    name: str
    headers: tuple[str, ...]
    rows: list[RawRow] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def column_index(self, header: str) -> Optional[int]:
        try:
            return self.headers.index(header)
        except ValueError:
            return None

    def column_values(self, index: int, limit: Optional[int] = None) -> list[Any]:
        rows = self.rows if limit is None else self.rows[:limit]
        return [row.get(index) for row in rows]


@dataclass
class ParsedWorkbook:
    file_name: str
    tabs: list[Tab] = field(default_factory=list)

    @property
    def tab_names(self) -> list[str]:
        return [t.name for t in self.tabs]


@dataclass
class RawColumn:
    """A column as seen by the classifier: header plus sample values."""

    header: str
    tab_name: str
    file_id: str
    sample_values: list[Any] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Resolution records
# ---------------------------------------------------------------------------

@dataclass
class MappingRecord:
    scope: MappingScope
    scope_key: Optional[str]
    normalized_header: str
    canonical_field: CanonicalField
    confidence: float
    hits: int
    last_seen_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope.value,
            "scope_key": self.scope_key,
            "normalized_header": self.normalized_header,
            "canonical_field": self.canonical_field.value,
            "confidence": round(self.confidence, 4),
            "hits": self.hits,
            "last_seen_at": self.last_seen_at.isoformat() if self.last_seen_at else None,
        }


@dataclass
class MappingResolution:
    """Result of a store lookup.  Empty (``canonical is None``) on a miss."""

    canonical: Optional[CanonicalField] = None
    source: Optional[MappingScope] = None
    confidence: Optional[float] = None
    hits: Optional[int] = None

    @property
    def found(self) -> bool:
        return self.canonical is not None

    def to_dict(self) -> dict[str, Any]:
        if not self.found:
            return {}
        return {
            "canonical": self.canonical.value,
            "source": self.source.value if self.source else None,
            "confidence": self.confidence,
            "hits": self.hits,
        }


@dataclass
class HeaderResolution:
    """Final decision for one header in one extraction run."""

    header: str
    canonical: Optional[CanonicalField]
    confidence: float
    source: str  # "customer" | "global" | "fuzzy" | "unmapped"

    def to_dict(self) -> dict[str, Any]:
        return {
            "header": self.header,
            "canonical": self.canonical.value if self.canonical else None,
            "confidence": round(self.confidence, 4),
            "source": self.source,
        }


# ---------------------------------------------------------------------------
# Extraction results
# ---------------------------------------------------------------------------

@dataclass
class TabExtractionResult:
    tab_name: str
    row_count: int
    column_headers: list[str]
    chosen_column: Optional[str]
    extracted_amount: float
    rows_excluded_as_totals: int
    method: Optional[str] = None
    confidence: float = 0.0
    values_found: int = 0
    quality: Quality = Quality.EMPTY
    flagged: bool = False
    diagnostic: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tab_name": self.tab_name,
            "row_count": self.row_count,
            "column_headers": list(self.column_headers),
            "chosen_column": self.chosen_column,
            "extracted_amount": self.extracted_amount,
            "rows_excluded_as_totals": self.rows_excluded_as_totals,
            "method": self.method,
            "confidence": round(self.confidence, 4),
            "values_found": self.values_found,
            "quality": self.quality.value,
            "flagged": self.flagged,
            "diagnostic": self.diagnostic,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TabExtractionResult":
        return cls(
            tab_name=data["tab_name"],
            row_count=int(data.get("row_count", 0)),
            column_headers=list(data.get("column_headers", [])),
            chosen_column=data.get("chosen_column"),
            extracted_amount=float(data.get("extracted_amount", 0.0)),
            rows_excluded_as_totals=int(data.get("rows_excluded_as_totals", 0)),
            method=data.get("method"),
            confidence=float(data.get("confidence", 0.0)),
            values_found=int(data.get("values_found", 0)),
            quality=Quality(data.get("quality", Quality.EMPTY.value)),
            flagged=bool(data.get("flagged", False)),
            diagnostic=data.get("diagnostic"),
        )


@dataclass
class FileExtractionResult:
    file_name: str
    vendor_type: VendorType
    tabs: list[TabExtractionResult] = field(default_factory=list)
    status: FileStatus = FileStatus.COMPLETED
    file_id: Optional[str] = None
    error_message: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def total_extracted(self) -> float:
        # Derived so it can never drift from the tab breakdown.
        return sum(t.extracted_amount for t in self.tabs)

    @property
    def confidence(self) -> float:
        """Amount-weighted mean of the contributing tabs' confidence."""
        total = self.total_extracted
        if total <= 0:
            return 0.0
        return sum(t.confidence * t.extracted_amount for t in self.tabs) / total

    @property
    def quality(self) -> Quality:
        if self.status is FileStatus.ERROR:
            return Quality.ERROR
        contributing = [t.quality for t in self.tabs if not t.flagged]
        return weakest_quality(contributing, default=Quality.EMPTY)

    @property
    def flagged_tabs(self) -> list[str]:
        return [t.tab_name for t in self.tabs if t.flagged]

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_id": self.file_id,
            "file_name": self.file_name,
            "vendor_type": self.vendor_type.value,
            "tabs": [t.to_dict() for t in self.tabs],
            "total_extracted": self.total_extracted,
            "status": self.status.value,
            "confidence": round(self.confidence, 4),
            "quality": self.quality.value,
            "error_message": self.error_message,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FileExtractionResult":
        return cls(
            file_name=data["file_name"],
            vendor_type=VendorType(data.get("vendor_type", VendorType.OTHER.value)),
            tabs=[TabExtractionResult.from_dict(t) for t in data.get("tabs", [])],
            status=FileStatus(data.get("status", FileStatus.COMPLETED.value)),
            file_id=data.get("file_id"),
            error_message=data.get("error_message"),
            warnings=list(data.get("warnings", [])),
        )


# ---------------------------------------------------------------------------
# Reconciliation output
# ---------------------------------------------------------------------------

@dataclass
class SourceContribution:
    file_id: Optional[str]
    file_name: str
    vendor_type: VendorType
    category: str
    amount: float
    status: FileStatus
    confidence: float
    quality: Quality
    tabs_count: int
    flagged_tabs: list[str] = field(default_factory=list)
    error_message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_id": self.file_id,
            "file_name": self.file_name,
            "vendor_type": self.vendor_type.value,
            "category": self.category,
            "amount": self.amount,
            "status": self.status.value,
            "confidence": round(self.confidence, 4),
            "quality": self.quality.value,
            "tabs_count": self.tabs_count,
            "flagged_tabs": list(self.flagged_tabs),
            "error_message": self.error_message,
        }


@dataclass
class BaselineSummary:
    ups_parcel_costs: float = 0.0
    tl_freight_costs: float = 0.0
    rl_ltl_costs: float = 0.0
    general_costs: float = 0.0
    sources: list[SourceContribution] = field(default_factory=list)

    @property
    def total_verified(self) -> float:
        return (
            self.ups_parcel_costs
            + self.tl_freight_costs
            + self.rl_ltl_costs
            + self.general_costs
        )

    @property
    def data_quality(self) -> Quality:
        """Weakest marker of the contributing sources.

        Error uploads keep their own marker in ``sources`` and only decide
        the aggregate when nothing else was uploaded.
        """
        markers = [s.quality for s in self.sources if s.quality is not Quality.ERROR]
        if self.sources and not markers:
            return Quality.ERROR
        return weakest_quality(markers)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ups_parcel_costs": self.ups_parcel_costs,
            "tl_freight_costs": self.tl_freight_costs,
            "rl_ltl_costs": self.rl_ltl_costs,
            "general_costs": self.general_costs,
            "total_verified": self.total_verified,
            "data_quality": self.data_quality.value,
            "sources": [s.to_dict() for s in self.sources],
        }
