"""
Column ladder: which column of a tab holds the authoritative amount.

The ladder is an ordered list of steps, each a candidate selector plus an
acceptance rule.  Steps run in strict priority order and the first one that
yields a qualifying column wins:

1. ``exact_header``  the vendor template's own amount header or position
2. ``net_priority``  net charge / cost / amount columns
3. ``cost_token``    generic money words, guarded against noise columns
4. ``positional``    the vendor template's column index

Gross-labelled headers are never candidates at steps 1 to 3, and at step 4
only when the tab has no net-labelled column at all.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from freight_baseline.config import ExtractionConfig
from freight_baseline.logging_setup import get_logger
from freight_baseline.normalizer import HeaderNormalizer
from freight_baseline.row_filter import FilterOutcome, TotalRowFilter
from freight_baseline.schema import (
    MONETARY_FIELDS,
    CanonicalField,
    HeaderResolution,
    Quality,
    Tab,
)
from freight_baseline.vendors import (
    COST_TOKEN,
    EXACT_HEADER,
    NET_PRIORITY,
    POSITIONAL,
    VendorProfile,
)

logger = get_logger("column_ladder")

_NET_MONEY_TOKENS = frozenset({
    "charge", "charges", "chg", "cost", "costs", "amount", "amt",
})

# Ranked: an earlier token is a stronger money signal.
COST_TOKENS = ("charge", "cost", "amount", "total", "freight", "revenue")
_STRONG_TOKENS = frozenset({"charge", "cost", "amount", "freight", "revenue"})

QUANTITY_TOKENS = frozenset({
    "qty", "quantity", "count", "cnt", "pieces", "pcs", "pkgs", "packages",
    "weight", "wt", "lbs", "lb", "units", "unit", "zip", "id", "number", "no",
    "pallets", "pallet", "miles", "days",
})
_QUANTITY_SUBSTRINGS = ("qty", "quantity", "weight", "pallet")

_STORED_SOURCES = frozenset({"customer", "global"})


def is_quantity_like(normalized_header: str) -> bool:
    tokens = set(normalized_header.split())
    if tokens & QUANTITY_TOKENS:
        return True
    return any(s in normalized_header for s in _QUANTITY_SUBSTRINGS)


def is_net_label(normalized_header: str) -> bool:
    """``net`` as its own word next to a money word ("net charge", "netcharge")."""
    tokens = normalized_header.split()
    if "net" in tokens:
        return any(t in _NET_MONEY_TOKENS for t in tokens)
    return any(t.startswith("net") and t[3:] in _NET_MONEY_TOKENS for t in tokens)


STEP_CONFIDENCE = {
    EXACT_HEADER: 0.95,
    NET_PRIORITY: 0.85,
    COST_TOKEN: 0.70,
    POSITIONAL: 0.60,
}

STEP_QUALITY = {
    EXACT_HEADER: Quality.VERIFIED,
    NET_PRIORITY: Quality.ESTIMATED,
    COST_TOKEN: Quality.ESTIMATED,
    POSITIONAL: Quality.GENERATED,
}


@dataclass
class TabContext:
    """Everything a ladder step may look at for one tab."""

    tab: Tab
    profile: VendorProfile
    normalized: List[str]
    resolutions: Dict[str, HeaderResolution] = field(default_factory=dict)
    descriptive: List[int] = field(default_factory=list)
    normalized_tab_name: str = ""
    learned_net_min_confidence: float = 0.9

    def resolved(self, index: int) -> Optional[HeaderResolution]:
        return self.resolutions.get(self.tab.headers[index])

    def is_gross(self, index: int) -> bool:
        res = self.resolved(index)
        return "gross" in self.normalized[index] or (
            res is not None and res.canonical is CanonicalField.GROSS_CHARGE
        )

    def learned_net(self, index: int) -> float:
        """Confidence of a stored net_charge mapping; 0.0 for fuzzy or none."""
        res = self.resolved(index)
        if (
            res is not None
            and res.canonical is CanonicalField.NET_CHARGE
            and res.source in _STORED_SOURCES
        ):
            return res.confidence
        return 0.0

    def is_net(self, index: int) -> bool:
        norm = self.normalized[index]
        if self.is_gross(index) or is_quantity_like(norm):
            return False
        if is_net_label(norm):
            return True
        return self.learned_net(index) >= self.learned_net_min_confidence

    def has_net_column(self) -> bool:
        return any(self.is_net(i) for i in range(len(self.normalized)))


@dataclass
class LadderOutcome:
    step: str
    column_index: int
    header: str
    outcome: FilterOutcome
    confidence: float

    @property
    def quality(self) -> Quality:
        return STEP_QUALITY[self.step]


class ColumnLadder:
    """Evaluate the vendor's ladder on one tab.

    Parameters
    ----------
    config:
        Cost-token guard defaults.
    row_filter:
        Total-row filter applied to every candidate column.
    """

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        row_filter: Optional[TotalRowFilter] = None,
        normalizer: Optional[HeaderNormalizer] = None,
    ) -> None:
        self._config = config or ExtractionConfig()
        self._normalizer = normalizer or HeaderNormalizer()
        self._filter = row_filter or TotalRowFilter(self._normalizer)
        self._steps = (
            (EXACT_HEADER, self.exact_candidates),
            (NET_PRIORITY, self.net_candidates),
            (COST_TOKEN, self.cost_token_candidates),
            (POSITIONAL, self.positional_candidates),
        )

    def context(
        self,
        tab: Tab,
        profile: VendorProfile,
        resolutions: Optional[Dict[str, HeaderResolution]] = None,
    ) -> TabContext:
        return TabContext(
            tab=tab,
            profile=profile,
            normalized=[self._normalizer.normalize_transport(h) for h in tab.headers],
            resolutions=resolutions or {},
            descriptive=self._filter.descriptive_columns(tab.headers),
            normalized_tab_name=self._normalizer.normalize(tab.name),
            learned_net_min_confidence=self._config.learned_net_min_confidence,
        )

    # ------------------------------------------------------------------ #
    # Candidate selectors, one per step
    # ------------------------------------------------------------------ #

    def exact_candidates(self, ctx: TabContext) -> List[int]:
        profile = ctx.profile
        if not profile.exact_applies(ctx.normalized_tab_name):
            return []
        exact = {self._normalizer.normalize(h) for h in profile.exact_headers}
        found = [
            i for i, h in enumerate(ctx.tab.headers)
            if self._normalizer.normalize(h) in exact and not ctx.is_gross(i)
        ]
        idx = profile.exact_index
        if idx is not None and idx < len(ctx.normalized) and idx not in found:
            if not (ctx.is_gross(idx) and ctx.has_net_column()):
                found.append(idx)
        return found

    def net_candidates(self, ctx: TabContext) -> List[int]:
        net = [i for i in range(len(ctx.normalized)) if ctx.is_net(i)]
        return sorted(net, key=lambda i: (-ctx.learned_net(i), i))

    def cost_token_candidates(self, ctx: TabContext) -> List[int]:
        ranked = []
        for i, norm in enumerate(ctx.normalized):
            if ctx.is_gross(i) or is_quantity_like(norm):
                continue
            res = ctx.resolved(i)
            monetary = res is not None and res.canonical in MONETARY_FIELDS
            non_monetary = res is not None and res.canonical is not None and not monetary

            tokens = [t for t in COST_TOKENS if t in norm]
            if tokens:
                # "total" alone is weak: "Total Stops" is not money
                if not (_STRONG_TOKENS & set(tokens)) and non_monetary:
                    continue
                rank = COST_TOKENS.index(tokens[0])
            elif monetary:
                rank = len(COST_TOKENS)
            else:
                continue
            ranked.append((rank, i))
        return [i for _, i in sorted(ranked)]

    def positional_candidates(self, ctx: TabContext) -> List[int]:
        idx = ctx.profile.positional_index
        if idx is None or idx >= len(ctx.normalized):
            return []
        if ctx.is_gross(idx) and ctx.has_net_column():
            return []
        return [idx]

    # ------------------------------------------------------------------ #
    # Evaluation
    # ------------------------------------------------------------------ #

    def _accepts(self, step: str, ctx: TabContext, outcome: FilterOutcome) -> bool:
        if outcome.values_found < 1:
            return False
        if step != COST_TOKEN:
            return True
        min_values = ctx.profile.token_min_values or self._config.cost_token_min_values
        min_total = ctx.profile.token_min_total
        if min_total is None:
            min_total = self._config.cost_token_min_total
        return outcome.values_found >= min_values and outcome.total >= min_total

    def _confidence(self, step: str, ctx: TabContext, index: int) -> float:
        base = STEP_CONFIDENCE[step]
        if step == NET_PRIORITY:
            return max(base, ctx.learned_net(index))
        return base

    def select(
        self,
        tab: Tab,
        profile: VendorProfile,
        resolutions: Optional[Dict[str, HeaderResolution]] = None,
    ) -> Optional[LadderOutcome]:
        """Run the ladder; ``None`` when no step finds a qualifying column."""
        ctx = self.context(tab, profile, resolutions)
        for step, candidates in self._steps:
            floor = profile.floor(step)
            if floor is None:
                continue
            for index in candidates(ctx):
                outcome = self._filter.filter_column(tab, index, floor, ctx.descriptive)
                if self._accepts(step, ctx, outcome):
                    header = tab.headers[index]
                    logger.info(
                        "%s: %s chose %r (col %d) -> %.2f from %d rows, %d total rows excluded",
                        tab.name, step, header, index, outcome.total,
                        outcome.values_found, outcome.rows_excluded,
                    )
                    return LadderOutcome(
                        step=step,
                        column_index=index,
                        header=header,
                        outcome=outcome,
                        confidence=self._confidence(step, ctx, index),
                    )
                logger.debug(
                    "%s: %s rejected %r (%d values, %.2f)",
                    tab.name, step, tab.headers[index], outcome.values_found, outcome.total,
                )
        return None


def candidate_summary(ladder: ColumnLadder, ctx: TabContext) -> Dict[str, Sequence[str]]:
    """Headers each step would consider; used in flagged-tab diagnostics."""
    return {
        EXACT_HEADER: [ctx.tab.headers[i] for i in ladder.exact_candidates(ctx)],
        NET_PRIORITY: [ctx.tab.headers[i] for i in ladder.net_candidates(ctx)],
        COST_TOKEN: [ctx.tab.headers[i] for i in ladder.cost_token_candidates(ctx)],
        POSITIONAL: [ctx.tab.headers[i] for i in ladder.positional_candidates(ctx)],
    }
