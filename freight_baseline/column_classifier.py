"""
Column classification from header text *and* sample values.

Used by the inspection / diagnostic path: the resolver's header candidates
are adjusted by what the column actually contains (currency totals, zip
codes, dates, short numeric codes) and by the transport detection signals.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from freight_baseline.fuzzy_matcher import ColumnDetection, FuzzyMatcher
from freight_baseline.logging_setup import get_logger
from freight_baseline.normalizer import HeaderNormalizer
from freight_baseline.schema import MONETARY_FIELDS, CanonicalField, RawColumn, Tab

logger = get_logger("column_classifier")

F = CanonicalField

_ZIP_RE = re.compile(r"^\d{5}(?:-\d{4})?$")
_DATE_RE = re.compile(
    r"^(?:\d{1,2}[/.-]\d{1,2}[/.-]\d{2,4}|\d{4}[/.-]\d{1,2}[/.-]\d{1,2})(?:[ T].*)?$"
)
_LETTER_RE = re.compile(r"^[A-Z]$")

_NUMERIC_FIELDS = (
    F.QTY, F.PKGS, F.WEIGHT_LB, F.CUBE_CF, F.ON_HAND_QTY,
    F.ALLOCATED_QTY, F.AVAILABLE_QTY, F.FREIGHT_COST_USD,
)

# Currency columns must add up to more than this before boosts apply
CURRENCY_BOOST_MIN = 1000.0

# ... and to more than this to count as a transport cost column
TRANSPORT_MIN_AMOUNT = 100.0


@dataclass
class ValueFeatures:
    """Summary statistics over a column's sample values."""

    non_empty: int = 0
    is_currency: bool = False
    currency_amount: float = 0.0
    is_column_letter: bool = False
    has_zip: bool = False
    looks_date: bool = False
    numeric_heavy: bool = False


@dataclass
class ColumnClassification:
    header: str
    index: int
    guess: Optional[CanonicalField]
    p: float
    alternatives: List[Tuple[CanonicalField, float]] = field(default_factory=list)
    method: str = "header_similarity"
    detection: Optional[ColumnDetection] = None
    currency_amount: float = 0.0
    is_transport_column: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "header": self.header,
            "index": self.index,
            "guess": self.guess.value if self.guess else None,
            "p": round(self.p, 4),
            "alternatives": [{"field": f.value, "p": round(p, 4)} for f, p in self.alternatives],
            "method": self.method,
            "detection": self.detection.to_dict() if self.detection else None,
            "currency_amount": self.currency_amount,
            "is_transport_column": self.is_transport_column,
        }


@dataclass
class TabClassification:
    tab_name: str
    rows_inspected: int
    columns: List[ColumnClassification] = field(default_factory=list)
    best_transport_column: Optional[ColumnClassification] = None

    def to_dict(self) -> Dict[str, Any]:
        best = self.best_transport_column
        return {
            "tab_name": self.tab_name,
            "rows_inspected": self.rows_inspected,
            "columns": [c.to_dict() for c in self.columns],
            "best_transport_column": (
                {
                    "header": best.header,
                    "index": best.index,
                    "amount": best.currency_amount,
                    "confidence": round(best.p, 4),
                }
                if best
                else None
            ),
        }


class ColumnClassifier:
    """Combine header similarity with value features.

    Parameters
    ----------
    matcher:
        Resolver that supplies header candidates and transport detection.
    row_limit:
        Maximum sample rows looked at per column.
    """

    def __init__(
        self,
        matcher: Optional[FuzzyMatcher] = None,
        normalizer: Optional[HeaderNormalizer] = None,
        row_limit: int = 200,
    ) -> None:
        self._normalizer = normalizer or HeaderNormalizer()
        self._matcher = matcher or FuzzyMatcher(normalizer=self._normalizer)
        self._row_limit = row_limit

    # ------------------------------------------------------------------ #
    # Features
    # ------------------------------------------------------------------ #

    def value_features(self, header: str, sample: List[Any]) -> ValueFeatures:
        values = [v for v in sample[: self._row_limit] if v is not None and str(v).strip() != ""]
        feats = ValueFeatures(
            non_empty=len(values),
            is_column_letter=bool(_LETTER_RE.match((header or "").strip())),
        )
        if not values:
            return feats

        amounts = [self._normalizer.clean_amount(v) for v in values]
        numeric = [a for a in amounts if a is not None]
        feats.is_currency = len(numeric) > len(values) * 0.5
        if feats.is_currency:
            feats.currency_amount = sum(numeric)

        texts = [str(v).strip() for v in values]
        feats.has_zip = any(_ZIP_RE.match(t) for t in texts)
        feats.looks_date = any(
            isinstance(v, (datetime, date)) or _DATE_RE.match(t)
            for v, t in zip(values, texts)
        )
        avg_len = sum(len(t) for t in texts) / len(texts)
        uniq_ratio = len(set(texts)) / len(texts)
        feats.numeric_heavy = bool(numeric) and uniq_ratio > 0.1 and avg_len <= 8
        return feats

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def classify_column(self, column: RawColumn, column_index: int = -1) -> ColumnClassification:
        """Classify one column from its header and sample values."""
        suggestion = self._matcher.suggest(column.header)
        detection = self._matcher.detect_transport_column(column.header, column_index)
        feats = self.value_features(column.header, column.sample_values)

        boosts: Dict[CanonicalField, float] = {}

        def bump(f: CanonicalField, by: float) -> None:
            boosts[f] = boosts.get(f, 0.0) + by

        if feats.is_currency and feats.currency_amount > CURRENCY_BOOST_MIN:
            bump(F.FREIGHT_COST_USD, 0.15)
            bump(F.NET_CHARGE, 0.15)
            bump(F.GROSS_CHARGE, 0.10)
            bump(F.COLUMN_V, 0.10)
        if feats.is_column_letter:
            bump(F.COLUMN_V, 0.20)
        if detection.field is not None:
            bump(detection.field, detection.confidence * 0.3)
        if feats.has_zip:
            bump(F.ORIGIN_ZIP, 0.10)
            bump(F.DEST_ZIP, 0.10)
        if feats.looks_date:
            bump(F.SHIP_DATE, 0.10)
            bump(F.TRANSACTION_TS, 0.10)
        if feats.numeric_heavy:
            for f in _NUMERIC_FIELDS:
                bump(f, 0.05)

        pool = dict(suggestion.candidates)
        for f in boosts:
            pool.setdefault(f, 0.0)
        scored = sorted(
            ((f, min(1.0, s + boosts.get(f, 0.0))) for f, s in pool.items()),
            key=lambda fs: -fs[1],
        )
        guess, p = scored[0] if scored else (None, 0.0)

        method = "header_similarity"
        if detection.type == "exact_match":
            method = "exact_match"
        elif detection.type == "position_match":
            method = "position_match"
        elif feats.is_currency and guess in MONETARY_FIELDS:
            method = "currency_pattern"

        is_transport = (
            feats.is_currency
            and feats.currency_amount > TRANSPORT_MIN_AMOUNT
            and guess in MONETARY_FIELDS
        )

        return ColumnClassification(
            header=column.header,
            index=column_index,
            guess=guess,
            p=p,
            alternatives=scored[1:3],
            method=method,
            detection=detection,
            currency_amount=feats.currency_amount,
            is_transport_column=is_transport,
        )

    def classify_columns(self, tab: Tab, file_id: str = "") -> TabClassification:
        """Classify every column of *tab* over the first ``row_limit`` rows.

        The best transport column is the transport candidate with the
        highest confidence; equal confidence falls to the larger amount.
        """
        rows = tab.rows[: self._row_limit]
        result = TabClassification(tab_name=tab.name, rows_inspected=len(rows))
        for index, header in enumerate(tab.headers):
            column = RawColumn(
                header=header,
                tab_name=tab.name,
                file_id=file_id,
                sample_values=tab.column_values(index, self._row_limit),
            )
            result.columns.append(self.classify_column(column, index))

        transport = [c for c in result.columns if c.is_transport_column]
        if transport:
            result.best_transport_column = max(
                transport, key=lambda c: (c.p, c.currency_amount)
            )
            logger.info(
                "Tab %r: best transport column %r (p=%.2f, amount=%.2f)",
                tab.name,
                result.best_transport_column.header,
                result.best_transport_column.p,
                result.best_transport_column.currency_amount,
            )
        return result
