"""
Adaptive Mapping Store.

A two-tier (customer, then global) persistent cache of header -> canonical
field decisions.  Every re-observation of a header increments its hit
counter and keeps the higher of the stored and incoming confidence, so
repeated uploads of the same vendor template stop needing fuzzy matching.

Storage sits behind ``MappingRepository``; ``SqlMappingRepository`` backs it
with the ``header_mapping`` table and ``InMemoryMappingRepository`` with a
lock-guarded dict.  Records are never deleted.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import case, func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from freight_baseline.config import MappingStoreConfig
from freight_baseline.db import make_session_factory, session_scope
from freight_baseline.logging_setup import get_logger
from freight_baseline.models import HeaderMapping
from freight_baseline.normalizer import HeaderNormalizer
from freight_baseline.schema import (
    CanonicalField,
    MappingRecord,
    MappingResolution,
    MappingScope,
    canonical_lookup,
)

logger = get_logger("mapping_store")

# Stored in place of ``None`` for global rows.
GLOBAL_SCOPE_KEY = ""


class MappingStoreError(RuntimeError):
    """The mapping store could not be read or written."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_field(canonical: Union[str, CanonicalField]) -> CanonicalField:
    if isinstance(canonical, CanonicalField):
        return canonical
    found = canonical_lookup(str(canonical))
    if found is None:
        raise ValueError(f"Unknown canonical field {canonical!r}")
    return found


def _check_confidence(confidence: float) -> float:
    value = float(confidence)
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"Confidence must be within [0, 1], got {confidence!r}")
    return value


# ---------------------------------------------------------------------------
# Repository interface
# ---------------------------------------------------------------------------

class MappingRepository(ABC):
    """Keyed storage of ``MappingRecord`` by (scope, scope_key, header)."""

    @abstractmethod
    def get(
        self, scope: MappingScope, scope_key: Optional[str], normalized_header: str
    ) -> Optional[MappingRecord]:
        ...

    @abstractmethod
    def upsert_max(
        self,
        scope: MappingScope,
        scope_key: Optional[str],
        normalized_header: str,
        canonical: CanonicalField,
        confidence: float,
    ) -> MappingRecord:
        """Insert, or update with max confidence, hits + 1 and a fresh timestamp."""

    @abstractmethod
    def list(self, scope: MappingScope, scope_key: Optional[str]) -> List[MappingRecord]:
        ...

    @abstractmethod
    def stats(self, scope_key: Optional[str]) -> Dict[str, Any]:
        ...


def _stats_dict(customer: List[MappingRecord], global_count: int) -> Dict[str, Any]:
    return {
        "customer_mappings": len(customer),
        "global_mappings": global_count,
        "total_hits": sum(r.hits for r in customer),
        "average_confidence": (
            sum(r.confidence for r in customer) / len(customer) if customer else 0.0
        ),
    }


class InMemoryMappingRepository(MappingRepository):
    """Process-local repository; every operation holds one lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[tuple, MappingRecord] = {}

    @staticmethod
    def _key(scope: MappingScope, scope_key: Optional[str], header: str) -> tuple:
        key = GLOBAL_SCOPE_KEY if scope is MappingScope.GLOBAL else (scope_key or GLOBAL_SCOPE_KEY)
        return (scope.value, key, header)

    @staticmethod
    def _copy(record: MappingRecord) -> MappingRecord:
        return MappingRecord(**vars(record))

    def get(self, scope, scope_key, normalized_header):
        with self._lock:
            record = self._records.get(self._key(scope, scope_key, normalized_header))
            return self._copy(record) if record else None

    def upsert_max(self, scope, scope_key, normalized_header, canonical, confidence):
        key = self._key(scope, scope_key, normalized_header)
        with self._lock:
            record = self._records.get(key)
            if record is None:
                record = MappingRecord(
                    scope=scope,
                    scope_key=None if scope is MappingScope.GLOBAL else scope_key,
                    normalized_header=normalized_header,
                    canonical_field=canonical,
                    confidence=confidence,
                    hits=1,
                    last_seen_at=_utcnow(),
                )
                self._records[key] = record
            else:
                record.canonical_field = canonical
                record.confidence = max(record.confidence, confidence)
                record.hits += 1
                record.last_seen_at = _utcnow()
            return self._copy(record)

    def list(self, scope, scope_key):
        with self._lock:
            wanted = self._key(scope, scope_key, "")[:2]
            return [self._copy(r) for k, r in self._records.items() if k[:2] == wanted]

    def stats(self, scope_key):
        customer = self.list(MappingScope.CUSTOMER, scope_key) if scope_key else []
        return _stats_dict(customer, len(self.list(MappingScope.GLOBAL, None)))


class SqlMappingRepository(MappingRepository):
    """``header_mapping`` table via SQLAlchemy.

    The conflict update is a single ``UPDATE`` with ``hits = hits + 1`` and
    a ``CASE`` for the max, so concurrent writers on a server database do not
    lose increments.  A racing first insert that hits the unique constraint
    is retried as an update.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._sessions = make_session_factory(engine)
        # a single shared in-memory connection cannot interleave transactions
        self._lock = threading.RLock() if isinstance(engine.pool, StaticPool) else nullcontext()

    @staticmethod
    def _scope_key(scope: MappingScope, scope_key: Optional[str]) -> str:
        if scope is MappingScope.GLOBAL:
            return GLOBAL_SCOPE_KEY
        return scope_key or GLOBAL_SCOPE_KEY

    @staticmethod
    def _to_record(row: HeaderMapping) -> MappingRecord:
        scope = MappingScope(row.scope)
        return MappingRecord(
            scope=scope,
            scope_key=None if scope is MappingScope.GLOBAL else row.scope_key,
            normalized_header=row.normalized_header,
            canonical_field=CanonicalField(row.canonical_field),
            confidence=row.confidence,
            hits=row.hits,
            last_seen_at=row.last_seen_at,
        )

    def _where(self, scope: MappingScope, scope_key: Optional[str], header: str):
        return (
            HeaderMapping.scope == scope.value,
            HeaderMapping.scope_key == self._scope_key(scope, scope_key),
            HeaderMapping.normalized_header == header,
        )

    def get(self, scope, scope_key, normalized_header):
        try:
            with self._lock, session_scope(self._sessions) as session:
                row = session.scalars(
                    select(HeaderMapping).where(*self._where(scope, scope_key, normalized_header))
                ).first()
                return self._to_record(row) if row else None
        except SQLAlchemyError as exc:
            raise MappingStoreError(f"Mapping lookup failed for {normalized_header!r}: {exc}") from exc

    def _update(self, session, scope, scope_key, header, canonical, confidence) -> int:
        stmt = (
            update(HeaderMapping)
            .where(*self._where(scope, scope_key, header))
            .values(
                canonical_field=canonical.value,
                confidence=case(
                    (HeaderMapping.confidence < confidence, confidence),
                    else_=HeaderMapping.confidence,
                ),
                hits=HeaderMapping.hits + 1,
                last_seen_at=_utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return session.execute(stmt).rowcount

    def upsert_max(self, scope, scope_key, normalized_header, canonical, confidence):
        try:
            with self._lock:
                try:
                    with session_scope(self._sessions) as session:
                        if not self._update(session, scope, scope_key, normalized_header,
                                            canonical, confidence):
                            session.add(HeaderMapping(
                                scope=scope.value,
                                scope_key=self._scope_key(scope, scope_key),
                                normalized_header=normalized_header,
                                canonical_field=canonical.value,
                                confidence=confidence,
                                hits=1,
                                last_seen_at=_utcnow(),
                            ))
                except IntegrityError:
                    logger.debug("Concurrent insert on %r; retrying as update", normalized_header)
                    with session_scope(self._sessions) as session:
                        self._update(session, scope, scope_key, normalized_header,
                                     canonical, confidence)
        except SQLAlchemyError as exc:
            raise MappingStoreError(f"Mapping upsert failed for {normalized_header!r}: {exc}") from exc

        record = self.get(scope, scope_key, normalized_header)
        if record is None:
            raise MappingStoreError(f"Mapping for {normalized_header!r} vanished after upsert")
        return record

    def list(self, scope, scope_key):
        try:
            with self._lock, session_scope(self._sessions) as session:
                rows = session.scalars(
                    select(HeaderMapping).where(
                        HeaderMapping.scope == scope.value,
                        HeaderMapping.scope_key == self._scope_key(scope, scope_key),
                    )
                ).all()
                return [self._to_record(r) for r in rows]
        except SQLAlchemyError as exc:
            raise MappingStoreError(f"Mapping listing failed: {exc}") from exc

    def stats(self, scope_key):
        try:
            with self._lock, session_scope(self._sessions) as session:
                global_count = session.scalar(
                    select(func.count()).select_from(HeaderMapping)
                    .where(HeaderMapping.scope == MappingScope.GLOBAL.value)
                ) or 0
        except SQLAlchemyError as exc:
            raise MappingStoreError(f"Mapping stats failed: {exc}") from exc
        customer = self.list(MappingScope.CUSTOMER, scope_key) if scope_key else []
        return _stats_dict(customer, int(global_count))


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

@dataclass
class ConfirmationReport:
    processed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": not self.errors, "count": self.processed, "errors": list(self.errors)}


class AdaptiveMappingStore:
    """Customer-then-global header mapping cache.

    Parameters
    ----------
    repository:
        Storage backend; defaults to an in-memory repository.
    config:
        Default confirmation confidences and lookup concurrency.
    """

    def __init__(
        self,
        repository: Optional[MappingRepository] = None,
        config: Optional[MappingStoreConfig] = None,
        normalizer: Optional[HeaderNormalizer] = None,
    ) -> None:
        self._repo = repository or InMemoryMappingRepository()
        self._config = config or MappingStoreConfig()
        self._normalizer = normalizer or HeaderNormalizer()

    @property
    def repository(self) -> MappingRepository:
        return self._repo

    # ------------------------------------------------------------------ #
    # Lookup
    # ------------------------------------------------------------------ #

    def resolve(self, scope_key: Optional[str], raw_header: str) -> MappingResolution:
        """Customer record first, then global; empty resolution on a miss."""
        header = self._normalizer.normalize(raw_header)
        if not header:
            return MappingResolution()

        if scope_key:
            record = self._repo.get(MappingScope.CUSTOMER, scope_key, header)
            if record is not None:
                return MappingResolution(
                    record.canonical_field, MappingScope.CUSTOMER, record.confidence, record.hits
                )

        record = self._repo.get(MappingScope.GLOBAL, None, header)
        if record is not None:
            return MappingResolution(
                record.canonical_field, MappingScope.GLOBAL, record.confidence, record.hits
            )
        return MappingResolution()

    def resolve_bulk_mappings(
        self, scope_key: Optional[str], headers: List[str]
    ) -> Dict[str, MappingResolution]:
        """Resolve many headers concurrently.  Keyed by the raw header."""
        unique = list(dict.fromkeys(headers))
        if not unique:
            return {}
        workers = max(1, min(self._config.lookup_workers, len(unique)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            resolved = list(pool.map(lambda h: self.resolve(scope_key, h), unique))
        hits = sum(1 for r in resolved if r.found)
        logger.debug("Bulk resolve: %d/%d headers found in store", hits, len(unique))
        return dict(zip(unique, resolved))

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def upsert_customer_mapping(
        self,
        scope_key: str,
        raw_header: str,
        canonical: Union[str, CanonicalField],
        confidence: Optional[float] = None,
    ) -> MappingRecord:
        if not scope_key:
            raise ValueError("A customer mapping needs a scope key")
        return self._upsert(
            MappingScope.CUSTOMER, scope_key, raw_header, canonical,
            self._config.customer_confirm_confidence if confidence is None else confidence,
        )

    def upsert_global_mapping(
        self,
        raw_header: str,
        canonical: Union[str, CanonicalField],
        confidence: Optional[float] = None,
    ) -> MappingRecord:
        return self._upsert(
            MappingScope.GLOBAL, None, raw_header, canonical,
            self._config.global_confirm_confidence if confidence is None else confidence,
        )

    def _upsert(self, scope, scope_key, raw_header, canonical, confidence) -> MappingRecord:
        field_ = _as_field(canonical)
        value = _check_confidence(confidence)
        header = self._normalizer.normalize(raw_header)
        if not header:
            raise ValueError(f"Header {raw_header!r} is empty after normalisation")
        record = self._repo.upsert_max(scope, scope_key, header, field_, value)
        logger.info(
            "Upserted %s mapping %r -> %s (confidence=%.2f, hits=%d)",
            scope.value, header, field_.value, record.confidence, record.hits,
        )
        return record

    def confirm_mappings(
        self, scope_key: Optional[str], confirmations: List[Dict[str, Any]]
    ) -> ConfirmationReport:
        """Apply human-confirmed mappings.

        Each confirmation is ``{raw_header, canonical_field, scope?,
        confidence?}`` with scope ``customer`` (default), ``global`` or
        ``both``.  Failures are collected per item, never raised.
        """
        report = ConfirmationReport()
        for item in confirmations:
            raw = item.get("raw_header") or item.get("rawHeader") or ""
            try:
                canonical = item.get("canonical_field") or item.get("canonicalField")
                scope = item.get("scope") or "customer"
                if scope not in ("customer", "global", "both"):
                    raise ValueError(f"Unknown scope {scope!r}")
                confidence = item.get("confidence")
                if scope in ("customer", "both"):
                    self.upsert_customer_mapping(scope_key or "", raw, canonical, confidence)
                if scope in ("global", "both"):
                    self.upsert_global_mapping(raw, canonical, confidence)
                report.processed += 1
            except (ValueError, MappingStoreError) as exc:
                message = f"Failed to save mapping for {raw!r}: {exc}"
                logger.error(message)
                report.errors.append(message)
        return report

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def mapping_stats(self, scope_key: Optional[str]) -> Dict[str, Any]:
        return self._repo.stats(scope_key)

    def customer_mappings(self, scope_key: str) -> List[MappingRecord]:
        """Customer records, most used first, then most recently seen."""
        epoch = datetime.min.replace(tzinfo=timezone.utc)

        def seen(r: MappingRecord) -> datetime:
            ts = r.last_seen_at
            if ts is None:
                return epoch
            return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)

        records = self._repo.list(MappingScope.CUSTOMER, scope_key)
        return sorted(records, key=lambda r: (r.hits, seen(r)), reverse=True)

    def global_mappings(self) -> List[MappingRecord]:
        return sorted(self._repo.list(MappingScope.GLOBAL, None),
                      key=lambda r: r.hits, reverse=True)
