"""
Fuzzy Canonical-Field Resolver.

Scores a header, and each abbreviation spelling of it, against every
canonical field with ``rapidfuzz`` plus a set of small additive regex
boosts for freight-specific signals.  Results are confidence-gated:

* The top candidate is accepted only when its score reaches
  ``fuzzy_threshold`` (0.55 by default); otherwise the header stays unmapped
  and the caller falls back to positional detection.
* If the runner-up is within ``ambiguity_delta`` of the winner a warning is
  logged instead of silently picking one.

``detect_transport_column`` layers spreadsheet conventions on top: a header
that is literally the letter "V" and the zero-indexed column 21 position.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from rapidfuzz import fuzz, process

from freight_baseline.config import MatchingConfig
from freight_baseline.logging_setup import get_logger
from freight_baseline.normalizer import HeaderNormalizer
from freight_baseline.schema import CanonicalField
from freight_baseline.synonym_mapper import SynonymMapper

logger = get_logger("fuzzy_matcher")

F = CanonicalField

# (field, pattern on normalised header, additive boost)
_REGEX_BOOSTS: List[Tuple[CanonicalField, re.Pattern[str], float]] = [
    (F.COLUMN_V, re.compile(r"\bv\b|\bcolumn\s*v\b"), 0.20),
    (F.NET_CHARGE, re.compile(r"\bnet\b"), 0.10),
    (F.LTL_COST, re.compile(r"\bltl\b|\br&l\b|\bcurriculum\b|less than truckload"), 0.15),
    (F.TL_COST, re.compile(r"\btl\b|\btruckload\b|\btotal\b"), 0.15),
    (F.PARCEL_COST, re.compile(r"\bups\b|\bfedex\b|\bparcel\b"), 0.10),
    (F.SKU, re.compile(r"\b(?:sku|item|product|material)\b"), 0.05),
    (F.ORIGIN_ZIP, re.compile(r"\b(?:from|origin|orig)\b"), 0.03),
    (F.DEST_ZIP, re.compile(r"\b(?:to|dest|consignee)\b"), 0.03),
    (F.FREIGHT_COST_USD, re.compile(r"\b(?:freight|cost|charge|amount)\b"), 0.05),
]


@dataclass
class FieldSuggestion:
    """Outcome of ``FuzzyMatcher.suggest`` for one header."""

    raw_header: str
    mapped_to: Optional[CanonicalField]
    score: float
    candidates: List[Tuple[CanonicalField, float]] = field(default_factory=list)
    is_ambiguous: bool = False

    def to_dict(self) -> dict:
        return {
            "raw_header": self.raw_header,
            "mapped_to": self.mapped_to.value if self.mapped_to else None,
            "score": round(self.score, 4),
            "candidates": [
                {"field": f.value, "score": round(s, 4)} for f, s in self.candidates
            ],
            "is_ambiguous": self.is_ambiguous,
        }


@dataclass(frozen=True)
class ColumnDetection:
    """How a column was recognised as a transport cost column."""

    type: str  # exact_match | pattern_match | position_match | unknown
    confidence: float
    field: Optional[CanonicalField] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "confidence": round(self.confidence, 4),
            "field": self.field.value if self.field else None,
        }


UNKNOWN_DETECTION = ColumnDetection(type="unknown", confidence=0.0)


class FuzzyMatcher:
    """Map headers to canonical fields by similarity plus regex boosts.

    Parameters
    ----------
    config:
        Matching thresholds.
    synonyms:
        Synonym lists to score against.  The target pool is rebuilt
        whenever the mapper reports new entries.
    normalizer:
        Shared header normaliser.
    """

    def __init__(
        self,
        config: Optional[MatchingConfig] = None,
        synonyms: Optional[SynonymMapper] = None,
        normalizer: Optional[HeaderNormalizer] = None,
    ) -> None:
        self._config = config or MatchingConfig()
        self._normalizer = normalizer or HeaderNormalizer()
        self._synonyms = synonyms or SynonymMapper(self._normalizer)

        self._lock = threading.Lock()
        self._built_version = -1
        self._target_keys: List[str] = []
        self._target_fields: List[CanonicalField] = []
        self._field_names: Dict[CanonicalField, str] = {
            f: self._normalizer.normalize(f.value) for f in CanonicalField
        }

    @property
    def config(self) -> MatchingConfig:
        return self._config

    @property
    def synonyms(self) -> SynonymMapper:
        return self._synonyms

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def suggest(self, raw_header: Optional[str]) -> FieldSuggestion:
        """Score *raw_header* against every canonical field.

        Returns
        -------
        FieldSuggestion
            Top-3 candidates (descending) and ``mapped_to`` set only when
            the best score reaches the configured threshold.
        """
        raw = "" if raw_header is None else str(raw_header)
        norm = self._normalizer.normalize(raw)
        variants = self._normalizer.expand_variants(raw) if norm else set()
        keys, fields = self._targets()

        # best similarity per field over every spelling of the header, 0..1
        best: Dict[CanonicalField, float] = {f: 0.0 for f in CanonicalField}
        for variant in variants:
            for _, score, idx in process.extract(
                variant, keys, scorer=fuzz.token_sort_ratio, limit=None
            ):
                f = fields[idx]
                rating = score / 100.0
                if rating > best[f]:
                    best[f] = rating

        raw_scores: List[Tuple[CanonicalField, float]] = []
        for f in CanonicalField:
            boost = sum(b for bf, pattern, b in _REGEX_BOOSTS if bf is f and pattern.search(norm))
            raw_scores.append((f, best[f] + boost if norm else 0.0))

        order = {f: i for i, f in enumerate(CanonicalField)}
        raw_scores.sort(
            key=lambda fs: (-fs[1], self._field_names[fs[0]] not in variants, order[fs[0]])
        )

        candidates = [(f, min(1.0, s)) for f, s in raw_scores[:3]]
        top_field, top_score = candidates[0]
        mapped = top_field if top_score >= self._config.fuzzy_threshold else None

        is_ambiguous = False
        if mapped is not None and len(candidates) > 1:
            runner_field, runner_score = candidates[1]
            if raw_scores[0][1] - raw_scores[1][1] <= self._config.ambiguity_delta:
                is_ambiguous = True
                logger.warning(
                    "Ambiguous header %r: %s (%.2f) vs %s (%.2f)",
                    raw,
                    top_field.value,
                    top_score,
                    runner_field.value,
                    runner_score,
                )

        if mapped is None:
            logger.debug(
                "Header %r unmapped: best %s at %.2f below %.2f",
                raw, top_field.value, top_score, self._config.fuzzy_threshold,
            )
        else:
            logger.debug("Header %r -> %s (%.2f)", raw, mapped.value, top_score)

        return FieldSuggestion(
            raw_header=raw,
            mapped_to=mapped,
            score=top_score,
            candidates=candidates,
            is_ambiguous=is_ambiguous,
        )

    def suggest_batch(self, headers: List[str]) -> Dict[str, FieldSuggestion]:
        """Suggest for several headers.  Returns ``{header: suggestion}``."""
        return {h: self.suggest(h) for h in headers}

    def detect_transport_column(
        self, header: Optional[str], column_index: int
    ) -> ColumnDetection:
        """Recognise a transport cost column by letter, pattern or position.

        Priority: the literal header "V" (exact, 0.95), a resolver match at
        or above ``pattern_threshold`` (pattern, its own score), the
        spreadsheet column V position (position, 0.6).  A gross-labelled
        header is never accepted on position alone.
        """
        raw = "" if header is None else str(header).strip()
        if raw.lower() == "v":
            return ColumnDetection(
                "exact_match", self._config.exact_letter_confidence, F.COLUMN_V
            )

        suggestion = self.suggest(raw)
        if suggestion.mapped_to and suggestion.score >= self._config.pattern_threshold:
            return ColumnDetection("pattern_match", suggestion.score, suggestion.mapped_to)

        norm = self._normalizer.normalize(raw)
        if column_index == self._config.column_v_index and "gross" not in norm:
            return ColumnDetection(
                "position_match", self._config.position_confidence, F.COLUMN_V
            )

        return UNKNOWN_DETECTION

    # ------------------------------------------------------------------ #

    def _targets(self) -> Tuple[List[str], List[CanonicalField]]:
        with self._lock:
            if self._built_version != self._synonyms.version:
                pairs = self._synonyms.targets()
                self._target_keys = [text for text, _ in pairs]
                self._target_fields = [f for _, f in pairs]
                self._built_version = self._synonyms.version
                logger.debug("Rebuilt fuzzy target pool: %d entries", len(pairs))
            return self._target_keys, self._target_fields
