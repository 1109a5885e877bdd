"""
Header resolution with write-back learning.

Store first, fuzzy second: headers already in the mapping store are reused
(and re-confirmed so their hit counters grow); the rest are scored by the
fuzzy resolver and, when mapped, written back so the next upload of the same
template skips fuzzy matching.

If the store is unavailable the batch continues in *degraded mode*: fuzzy
results are returned and nothing is persisted.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional

from freight_baseline.fuzzy_matcher import FuzzyMatcher
from freight_baseline.logging_setup import get_logger
from freight_baseline.mapping_store import AdaptiveMappingStore, MappingStoreError
from freight_baseline.normalizer import HeaderNormalizer
from freight_baseline.schema import HeaderResolution, MappingResolution, MappingScope

logger = get_logger("header_resolver")


class HeaderResolver:
    """Resolve a batch of headers against the store and the fuzzy resolver."""

    def __init__(
        self,
        store: AdaptiveMappingStore,
        matcher: FuzzyMatcher,
        normalizer: Optional[HeaderNormalizer] = None,
        learn: bool = True,
    ) -> None:
        self._store = store
        self._matcher = matcher
        self._normalizer = normalizer or HeaderNormalizer()
        self._learn = learn

    def resolve_headers(
        self, scope_key: Optional[str], headers: Iterable[str]
    ) -> Dict[str, HeaderResolution]:
        headers = list(dict.fromkeys(headers))
        resolutions: Dict[str, HeaderResolution] = {}
        named = [h for h in headers if self._normalizer.normalize(h)]
        for header in headers:
            if header not in named:
                resolutions[header] = HeaderResolution(header, None, 0.0, "unmapped")

        degraded = False
        try:
            stored = self._store.resolve_bulk_mappings(scope_key, named)
        except MappingStoreError as exc:
            degraded = True
            stored = {}
            logger.warning("Mapping store unavailable, resolving by fuzzy match only: %s", exc)

        for header in named:
            hit: MappingResolution = stored.get(header, MappingResolution())
            if hit.found:
                resolutions[header] = HeaderResolution(
                    header, hit.canonical, hit.confidence or 0.0, hit.source.value
                )
                if self._learn and not degraded:
                    degraded = not self._persist(
                        hit.source, scope_key, header, hit.canonical, hit.confidence or 0.0
                    )
                continue

            suggestion = self._matcher.suggest(header)
            if suggestion.mapped_to is None:
                resolutions[header] = HeaderResolution(header, None, suggestion.score, "unmapped")
                continue

            resolutions[header] = HeaderResolution(
                header, suggestion.mapped_to, suggestion.score, "fuzzy"
            )
            if self._learn and not degraded:
                scope = MappingScope.CUSTOMER if scope_key else MappingScope.GLOBAL
                degraded = not self._persist(
                    scope, scope_key, header, suggestion.mapped_to, suggestion.score
                )

        learned = sum(1 for r in resolutions.values() if r.source == "fuzzy")
        reused = sum(1 for r in resolutions.values() if r.source in ("customer", "global"))
        logger.info(
            "Resolved %d headers (scope=%s): %d from store, %d fuzzy, %d unmapped%s",
            len(resolutions), scope_key, reused, learned,
            len(resolutions) - reused - learned,
            " [degraded]" if degraded else "",
        )
        return resolutions

    def _persist(self, scope, scope_key, header, canonical, confidence) -> bool:
        """Write one decision back.  Returns False once the store has failed."""
        try:
            if scope is MappingScope.CUSTOMER:
                self._store.upsert_customer_mapping(scope_key, header, canonical, confidence)
            else:
                self._store.upsert_global_mapping(header, canonical, confidence)
        except MappingStoreError as exc:
            logger.warning("Mapping store write failed, learning disabled for this batch: %s", exc)
            return False
        return True
