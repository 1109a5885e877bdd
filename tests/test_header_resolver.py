"""
Unit tests for the HeaderResolver (store-first resolution with learning).
"""

from __future__ import annotations

import pytest
from conftest import FailingRepository

from freight_baseline.fuzzy_matcher import FuzzyMatcher
from freight_baseline.header_resolver import HeaderResolver
from freight_baseline.mapping_store import AdaptiveMappingStore
from freight_baseline.schema import CanonicalField, MappingScope


@pytest.fixture
def matcher() -> FuzzyMatcher:
    return FuzzyMatcher()


@pytest.fixture
def resolver(store: AdaptiveMappingStore, matcher: FuzzyMatcher) -> HeaderResolver:
    return HeaderResolver(store, matcher)


# ======================================================================
# Learning
# ======================================================================

class TestLearning:
    def test_fuzzy_result_is_persisted_for_customer(
        self, resolver: HeaderResolver, store: AdaptiveMappingStore
    ) -> None:
        resolved = resolver.resolve_headers("acme", ["Net Charge"])
        assert resolved["Net Charge"].source == "fuzzy"
        assert resolved["Net Charge"].canonical is CanonicalField.NET_CHARGE

        stored = store.resolve("acme", "Net Charge")
        assert stored.source is MappingScope.CUSTOMER
        assert stored.hits == 1

    def test_without_scope_key_learns_globally(
        self, resolver: HeaderResolver, store: AdaptiveMappingStore
    ) -> None:
        resolver.resolve_headers(None, ["Net Charge"])
        assert store.resolve(None, "Net Charge").source is MappingScope.GLOBAL

    def test_second_upload_reuses_and_counts(
        self, resolver: HeaderResolver, store: AdaptiveMappingStore
    ) -> None:
        resolver.resolve_headers("acme", ["Net Charge"])
        resolved = resolver.resolve_headers("acme", ["Net Charge"])
        assert resolved["Net Charge"].source == "customer"
        assert store.resolve("acme", "Net Charge").hits == 2

    def test_stored_decision_beats_fuzzy(
        self, resolver: HeaderResolver, store: AdaptiveMappingStore
    ) -> None:
        store.upsert_customer_mapping("acme", "Bill Amt", CanonicalField.NET_CHARGE, 0.95)
        resolved = resolver.resolve_headers("acme", ["Bill Amt"])
        assert resolved["Bill Amt"].canonical is CanonicalField.NET_CHARGE
        assert resolved["Bill Amt"].confidence == pytest.approx(0.95)

    def test_unmapped_not_persisted(
        self, resolver: HeaderResolver, store: AdaptiveMappingStore
    ) -> None:
        resolved = resolver.resolve_headers("acme", ["xyzzy qwerty"])
        assert resolved["xyzzy qwerty"].source == "unmapped"
        assert resolved["xyzzy qwerty"].canonical is None
        assert store.mapping_stats("acme")["customer_mappings"] == 0

    def test_learning_disabled(self, store: AdaptiveMappingStore, matcher: FuzzyMatcher) -> None:
        resolver = HeaderResolver(store, matcher, learn=False)
        resolver.resolve_headers("acme", ["Net Charge"])
        assert not store.resolve("acme", "Net Charge").found

    def test_blank_and_duplicate_headers(self, resolver: HeaderResolver) -> None:
        resolved = resolver.resolve_headers("acme", ["", "Net Charge", "Net Charge", "  "])
        assert set(resolved) == {"", "Net Charge", "  "}
        assert resolved[""].source == "unmapped"


# ======================================================================
# Degraded mode
# ======================================================================

class TestDegraded:
    def test_store_down_falls_back_to_fuzzy(self, matcher: FuzzyMatcher) -> None:
        resolver = HeaderResolver(AdaptiveMappingStore(FailingRepository()), matcher)
        resolved = resolver.resolve_headers("acme", ["Net Charge", "Gross Charge"])
        assert resolved["Net Charge"].canonical is CanonicalField.NET_CHARGE
        assert resolved["Net Charge"].source == "fuzzy"
        assert resolved["Gross Charge"].canonical is CanonicalField.GROSS_CHARGE
