"""
Synonym Dictionary.

Per-field lists of header spellings seen in carrier and warehouse exports.
The fuzzy resolver scores a header against a field's own name *and* every
synonym listed here, keeping the best rating.

Design decisions
----------------
* Synonyms are stored **normalised** so the resolver compares like with like.
* A spelling may legitimately belong to several fields ("units" is both a
  unit of measure and a quantity); the resolver's boosts break such ties.
* Users extend the lists at runtime via ``add_synonym`` / ``add_synonyms``
  or from a JSON file of ``{canonical_field: [synonym, ...]}``.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Tuple, Union

from freight_baseline.logging_setup import get_logger
from freight_baseline.normalizer import HeaderNormalizer
from freight_baseline.schema import CanonicalField, canonical_lookup

logger = get_logger("synonym_mapper")

F = CanonicalField

# ---------------------------------------------------------------------------
# Built-in synonyms
# ---------------------------------------------------------------------------

_BUILTIN_SYNONYMS: Dict[CanonicalField, List[str]] = {
    # --- Identifiers & descriptive ---
    F.SKU: ["sku", "item", "item_code", "item id", "product", "product_code",
            "material", "part", "pn"],
    F.DESCRIPTION: ["description", "desc", "item_description", "name", "prod_desc"],
    F.ITEM_CLASS: ["class", "item_class", "category", "commodity", "abc", "abc_class"],
    F.UOM: ["uom", "unit", "unit_of_measure", "units", "measure", "pack uom"],
    F.QTY: ["qty", "quantity", "qty_ordered", "qty_picked", "qty_shipped", "units"],
    F.LOCATION: ["location", "loc", "bin", "slot", "pick location", "stow"],
    F.LOC_TYPE: ["loc_type", "location_type", "zone", "temp_zone", "rack_type"],
    F.LOT: ["lot", "lot_number", "batch"],
    F.SERIAL: ["serial", "serial_number", "sn"],
    F.OWNER: ["owner", "account", "client", "customer_owner"],
    F.WAREHOUSE: ["warehouse", "whse", "dc", "facility"],
    F.AREA: ["area", "aisle", "zone", "section"],
    F.TRANSACTION_TYPE: ["transaction_type", "txn_type", "movement_type", "reason_code"],
    F.TRANSACTION_TS: ["transaction_ts", "timestamp", "txn_time", "datetime",
                       "posting_date"],
    F.ORDER_ID: ["order_id", "order", "so", "shipment id", "load id", "manifest id",
                 "pro number", "tracking number"],
    F.SHIP_DATE: ["ship_date", "shipdate", "shipped_on", "departure_date",
                  "post_date", "pickup date"],

    # --- Lane / shipment ---
    F.ORIGIN_ZIP: ["origin_zip", "orig_zip", "from_zip", "shipper_zip",
                   "origin postal", "origin", "orig", "ship from"],
    F.DEST_ZIP: ["dest_zip", "to_zip", "postal_code", "zip", "consignee_zip",
                 "destination", "dest", "ship to", "consignee"],
    F.SERVICE_LEVEL: ["service_level", "svc", "svc_lvl", "ground", "2 day",
                      "next day", "service type"],
    F.MODE: ["mode", "parcel", "ltl", "tl", "intermodal", "air", "ocean"],
    F.CARRIER: ["carrier", "scac", "carrier_name", "ups", "fedex"],
    F.WEIGHT_LB: ["weight", "weight_lb", "lbs", "weight (lb)", "weight_lbs",
                  "billed weight"],
    F.CUBE_CF: ["cube", "cube_cf", "cuft", "cubic_feet", "volume"],
    F.PKGS: ["pkgs", "pieces", "packages", "pkg_cnt", "pallets"],
    F.FREIGHT_COST_USD: ["freight", "freight_cost", "cost", "ship cost", "charges",
                         "total_freight", "freight charge", "freight charges",
                         "total charge", "total charges"],

    # --- Inventory ---
    F.ON_HAND_QTY: ["on_hand", "oh_qty", "stock_qty", "inventory_on_hand"],
    F.ALLOCATED_QTY: ["allocated", "alloc_qty", "reserved_qty"],
    F.AVAILABLE_QTY: ["available", "avail_qty", "free_stock"],
    F.REORDER_POINT: ["reorder_point", "rop", "min"],
    F.REORDER_QTY: ["reorder_qty", "roq", "order_qty", "lot_size"],
    F.UNIT_COST_USD: ["unit_cost", "standard_cost", "cost_usd", "avg_cost"],

    # --- Transport monetary ---
    F.NET_CHARGE: ["net charge", "net_charge", "net", "net amount", "net cost",
                   "net chg"],
    F.GROSS_CHARGE: ["gross charge", "gross_charge", "gross", "gross amount",
                     "gross cost", "gross chg"],
    F.COLUMN_V: ["v", "column v", "net freight", "ltl charge", "customer charge"],
    F.LTL_COST: ["ltl", "ltl cost", "ltl charge", "less than truckload", "r&l",
                 "curriculum"],
    F.TL_COST: ["tl", "tl cost", "truckload", "freight rate", "line haul",
                "total 2024"],
    F.PARCEL_COST: ["parcel", "ups", "fedex", "ground", "package cost",
                    "shipping cost"],
}


class SynonymMapper:
    """Holds the per-field synonym lists used by the fuzzy resolver.

    Parameters
    ----------
    normalizer:
        Shared ``HeaderNormalizer`` so stored spellings match how headers are
        normalised at query time.
    include_builtins:
        When False the mapper starts empty (useful in tests).
    """

    def __init__(
        self,
        normalizer: HeaderNormalizer | None = None,
        include_builtins: bool = True,
    ) -> None:
        self._normalizer = normalizer or HeaderNormalizer()
        self._lock = threading.Lock()
        self._synonyms: Dict[CanonicalField, List[str]] = {f: [] for f in CanonicalField}
        self._version = 0

        if include_builtins:
            for field_, variants in _BUILTIN_SYNONYMS.items():
                for variant in variants:
                    self._append(field_, variant)

        logger.info("SynonymMapper initialised with %d synonyms", self.size)

    # ------------------------------------------------------------------ #
    # Lookup
    # ------------------------------------------------------------------ #

    def synonyms_for(self, field_: CanonicalField) -> List[str]:
        return list(self._synonyms[field_])

    def targets(self) -> List[Tuple[str, CanonicalField]]:
        """Every ``(normalised_text, field)`` the resolver should score.

        Each field's own name comes first, followed by its synonyms.
        """
        with self._lock:
            pairs: List[Tuple[str, CanonicalField]] = []
            for field_ in CanonicalField:
                own = self._normalizer.normalize(field_.value)
                pairs.append((own, field_))
                pairs.extend((s, field_) for s in self._synonyms[field_] if s != own)
            return pairs

    def fields_for(self, normalised_header: str) -> List[CanonicalField]:
        """Fields that list *normalised_header* verbatim."""
        return [
            f for f, variants in self._synonyms.items()
            if normalised_header in variants
        ]

    # ------------------------------------------------------------------ #
    # Extension API
    # ------------------------------------------------------------------ #

    def add_synonym(self, variant: str, canonical: Union[str, CanonicalField]) -> None:
        """Register *variant* as a spelling of *canonical*.

        Raises
        ------
        ValueError
            If ``canonical`` is not a known canonical field.
        """
        field_ = canonical if isinstance(canonical, CanonicalField) else canonical_lookup(canonical)
        if field_ is None:
            raise ValueError(
                f"Unknown canonical field {canonical!r}. "
                f"Must be one of the CanonicalField values."
            )
        with self._lock:
            added = self._append(field_, variant)
        if added:
            logger.debug("Added synonym %r -> %s", variant, field_.value)

    def add_synonyms(self, mapping: Dict[str, Iterable[str]]) -> int:
        """Bulk-add from ``{canonical_field: [variant, ...]}``.  Returns count."""
        count = 0
        for canonical, variants in mapping.items():
            if isinstance(variants, str):
                variants = [variants]
            for variant in variants:
                self.add_synonym(variant, canonical)
                count += 1
        return count

    def load_custom_synonyms(self, path: Path) -> int:
        """Load synonyms from a JSON file and return the number read."""
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"Synonym file {path} must contain a JSON object")
        count = self.add_synonyms(data)
        logger.info("Loaded %d custom synonyms from %s", count, path)
        return count

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    @property
    def size(self) -> int:
        return sum(len(v) for v in self._synonyms.values())

    @property
    def version(self) -> int:
        """Bumped on every successful addition; lets callers cache targets."""
        return self._version

    def all_synonyms(self) -> Dict[str, List[str]]:
        """Return a copy keyed by field value."""
        return {f.value: list(v) for f, v in self._synonyms.items()}

    # ------------------------------------------------------------------ #

    def _append(self, field_: CanonicalField, variant: str) -> bool:
        key = self._normalizer.normalize(variant)
        if not key or key in self._synonyms[field_]:
            return False
        self._synonyms[field_].append(key)
        self._version += 1
        return True
