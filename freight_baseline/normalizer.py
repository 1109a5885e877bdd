"""
Header Normalization Layer.

Turns raw spreadsheet headers and cell values into comparable forms so that
the resolver and the column ladder work on clean strings and floats.

Header transformations (in order):
1. ``None`` becomes the empty string
2. Lowercase conversion
3. Separators (``_ - . / \\``) and whitespace runs collapse to one space
4. Leading / trailing space trimmed

Carrier reports abbreviate heavily, so ``normalize_transport`` additionally
rewrites known vendor tokens ("net chg", "col v", "R/L") and
``expand_variants`` produces two-way abbreviation expansions.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from freight_baseline.logging_setup import get_logger

logger = get_logger("normalizer")


# Transport rewrites applied on already-normalised text.
_TRANSPORT_REWRITES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\bnet chg\b"), "net charge"),
    (re.compile(r"\bgross chg\b"), "gross charge"),
    (re.compile(r"\bcol v\b"), "column v"),
    (re.compile(r"\br l\b"), "r&l"),
    (re.compile(r"\bfrt\b"), "freight"),
    (re.compile(r"\bamt\b"), "amount"),
]

# abbreviation -> expansion; applied in both directions on token boundaries
ABBREVIATIONS: dict[str, str] = {
    "qty": "quantity",
    "desc": "description",
    "loc": "location",
    "whse": "warehouse",
    "dc": "distribution center",
    "uom": "unit of measure",
    "sku": "stock keeping unit",
    "tl": "truckload",
    "ltl": "less than truckload",
    "ups": "united parcel service",
}


class HeaderNormalizer:
    """Stateless header / amount normaliser.  All methods are pure functions."""

    _SEPARATOR_RE = re.compile(r"[_\-./\\\s]+")

    _CURRENCY_RE = re.compile(r"[$€£¥₹]|\b(?:usd|us\$)\b", re.IGNORECASE)

    _PAREN_NEG_RE = re.compile(r"^\((.+)\)$")

    _TRAILING_NEG_RE = re.compile(r"^(.+)-$")

    # ------------------------------------------------------------------ #
    # Headers
    # ------------------------------------------------------------------ #

    def normalize(self, header: Optional[str]) -> str:
        """Return the comparable form of *header*.

        ``normalize(normalize(h)) == normalize(h)`` for every input, since
        the output contains no separator other than single inner spaces.
        """
        if header is None:
            return ""
        text = str(header).lower()
        return self._SEPARATOR_RE.sub(" ", text).strip()

    def normalize_transport(self, header: Optional[str]) -> str:
        """Normalise, then rewrite common carrier abbreviations."""
        text = self.normalize(header)
        for pattern, replacement in _TRANSPORT_REWRITES:
            text = pattern.sub(replacement, text)
        return text

    def expand_variants(self, header: Optional[str]) -> set[str]:
        """Return the normalised header plus its lexical variants.

        The set always contains the plain normalised form and the transport
        rewrite.  For every known abbreviation found as a whole token, the
        expanded spelling is added, and vice versa.
        """
        base = self.normalize(header)
        variants = {base, self.normalize_transport(header)}

        for abbrev, expanded in ABBREVIATIONS.items():
            abbrev_re = re.compile(rf"\b{re.escape(abbrev)}\b")
            expanded_re = re.compile(rf"\b{re.escape(expanded)}\b")
            if abbrev_re.search(base):
                variants.add(abbrev_re.sub(expanded, base))
            if expanded_re.search(base):
                variants.add(expanded_re.sub(abbrev, base))

        variants.discard("")
        if not variants:
            variants.add("")
        return variants

    # ------------------------------------------------------------------ #
    # Values
    # ------------------------------------------------------------------ #

    def clean_amount(self, raw: Any) -> Optional[float]:
        """Parse a monetary cell into a float.

        Handles ``"$1,234.50"``, ``" 12 000 "``, ``"(500)"``, ``"500-"`` and
        native numbers.  Returns ``None`` for blanks, booleans, dates,
        non-finite numbers and text that is not a number.
        """
        if raw is None or isinstance(raw, bool):
            return None
        if isinstance(raw, (datetime, date, time)):
            return None

        if isinstance(raw, (int, float, Decimal)):
            value = float(raw)
            return value if math.isfinite(value) else None

        if not isinstance(raw, str):
            logger.debug("clean_amount: unsupported type %s", type(raw).__name__)
            return None

        text = self._CURRENCY_RE.sub("", raw.strip())
        text = text.replace(",", "").replace(" ", "").replace(" ", "")
        if not text:
            return None

        negative = False
        m = self._PAREN_NEG_RE.match(text)
        if m:
            text, negative = m.group(1), True
        else:
            m = self._TRAILING_NEG_RE.match(text)
            if m:
                text, negative = m.group(1), True

        try:
            value = float(Decimal(text))
        except (InvalidOperation, ValueError):
            logger.debug("clean_amount: cannot parse %r", raw)
            return None

        if not math.isfinite(value):
            return None
        return -value if negative else value
