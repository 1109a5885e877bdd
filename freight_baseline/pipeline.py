"""
Pipeline Orchestrator.

The public entry point wiring every layer together:

    Workbook bytes  ->  Reader  ->  Header Resolver (store <-> fuzzy)
                    ->  Column Ladder + Total-row Filter  ->  Validator
                    ->  File Store  ->  Reconciliation  ->  Baseline

Usage
-----
>>> from freight_baseline.pipeline import BaselinePipeline
>>> pipe = BaselinePipeline()
>>> result = pipe.extract_file("UPS Individual Item Cost.xlsx", content)
>>> pipe.build_baseline().total_verified
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Union

from freight_baseline.column_classifier import ColumnClassifier, TabClassification
from freight_baseline.column_ladder import ColumnLadder
from freight_baseline.config import PipelineConfig
from freight_baseline.db import make_engine
from freight_baseline.extraction import ExtractionEngine, FileUpload
from freight_baseline.file_store import FileRecordStore
from freight_baseline.fuzzy_matcher import FieldSuggestion, FuzzyMatcher
from freight_baseline.header_resolver import HeaderResolver
from freight_baseline.logging_setup import configure_logging, get_logger
from freight_baseline.mapping_store import (
    AdaptiveMappingStore,
    ConfirmationReport,
    InMemoryMappingRepository,
    MappingRepository,
    SqlMappingRepository,
)
from freight_baseline.normalizer import HeaderNormalizer
from freight_baseline.reconciliation import build_baseline
from freight_baseline.schema import (
    BaselineSummary,
    FileExtractionResult,
    HeaderResolution,
    MappingResolution,
    VendorType,
)
from freight_baseline.synonym_mapper import SynonymMapper
from freight_baseline.validator import Validator
from freight_baseline.workbook_reader import WorkbookReader

logger = get_logger("pipeline")


class BaselinePipeline:
    """Orchestrates extraction, learning and reconciliation.

    Parameters
    ----------
    config:
        All tuneable knobs.
    mapping_repository:
        Storage for learned header mappings.  Defaults to SQL when
        ``config.store.database_url`` is set, else process memory.
    file_store:
        Where extraction results are persisted.  Defaults to the configured
        database, or an in-memory SQLite database.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        mapping_repository: Optional[MappingRepository] = None,
        file_store: Optional[FileRecordStore] = None,
    ) -> None:
        self._config = config or PipelineConfig()

        configure_logging(level=self._config.log_level, log_file=self._config.log_file)

        engine = None
        if self._config.store.database_url:
            engine = make_engine(self._config.store.database_url)

        if mapping_repository is None:
            mapping_repository = (
                SqlMappingRepository(engine) if engine is not None else InMemoryMappingRepository()
            )
        self._file_store = file_store or FileRecordStore(engine if engine is not None else make_engine())

        self._normalizer = HeaderNormalizer()
        self._synonyms = SynonymMapper(self._normalizer)
        if self._config.custom_synonym_path:
            self._synonyms.load_custom_synonyms(self._config.custom_synonym_path)

        self._matcher = FuzzyMatcher(self._config.matching, self._synonyms, self._normalizer)
        self._store = AdaptiveMappingStore(mapping_repository, self._config.store, self._normalizer)
        self._resolver = HeaderResolver(
            self._store, self._matcher, self._normalizer, learn=self._config.store.learn
        )
        extraction = self._config.extraction
        self._engine = ExtractionEngine(
            self._resolver,
            extraction,
            ladder=ColumnLadder(extraction, normalizer=self._normalizer),
            reader=WorkbookReader(extraction.max_rows_per_tab),
            validator=Validator(self._config.validation),
            classifier=ColumnClassifier(
                self._matcher, self._normalizer, row_limit=extraction.inspection_row_limit
            ),
        )

        logger.info(
            "Pipeline initialised: synonyms=%d, fuzzy_threshold=%.2f, store=%s",
            self._synonyms.size,
            self._config.matching.fuzzy_threshold,
            type(mapping_repository).__name__,
        )

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def mapping_store(self) -> AdaptiveMappingStore:
        return self._store

    @property
    def file_store(self) -> FileRecordStore:
        return self._file_store

    @property
    def matcher(self) -> FuzzyMatcher:
        return self._matcher

    @property
    def synonyms(self) -> SynonymMapper:
        return self._synonyms

    # ------------------------------------------------------------------ #
    # Extraction
    # ------------------------------------------------------------------ #

    def extract_file(
        self,
        file_name: str,
        content: Union[bytes, str],
        vendor_type: Optional[Union[str, VendorType]] = None,
        scope_key: Optional[str] = None,
        file_id: Optional[str] = None,
        persist: bool = True,
    ) -> FileExtractionResult:
        """Extract one upload and (by default) store its result."""
        result = self._engine.extract_file(file_name, content, vendor_type, scope_key, file_id)
        if persist:
            self._file_store.save(result)
        return result

    def extract_batch(
        self, files: Iterable[Union[FileUpload, Dict[str, Any]]], persist: bool = True
    ) -> List[FileExtractionResult]:
        """Extract several uploads concurrently and store every result."""
        uploads = [f if isinstance(f, FileUpload) else FileUpload(**f) for f in files]
        results = self._engine.extract_batch(uploads)
        if persist:
            for result in results:
                self._file_store.save(result)
        return results

    def inspect_workbook(self, file_name: str, content: Union[bytes, str]) -> List[TabClassification]:
        return self._engine.inspect_workbook(file_name, content)

    # ------------------------------------------------------------------ #
    # Reconciliation
    # ------------------------------------------------------------------ #

    def build_baseline(
        self, results: Optional[Iterable[FileExtractionResult]] = None
    ) -> BaselineSummary:
        """Baseline from *results*, or from every stored completed result."""
        if results is None:
            results = self._file_store.completed_results()
        return build_baseline(results)

    def stored_results(self, status: Optional[str] = None) -> List[FileExtractionResult]:
        return self._file_store.list_results(status)

    # ------------------------------------------------------------------ #
    # Header mappings
    # ------------------------------------------------------------------ #

    def suggest(self, header: str) -> FieldSuggestion:
        return self._matcher.suggest(header)

    def resolve_headers(
        self, scope_key: Optional[str], headers: List[str]
    ) -> Dict[str, HeaderResolution]:
        return self._resolver.resolve_headers(scope_key, headers)

    def lookup_mapping(self, scope_key: Optional[str], header: str) -> MappingResolution:
        """Store lookup only; never learns."""
        return self._store.resolve(scope_key, header)

    def confirm_mappings(
        self, scope_key: Optional[str], confirmations: List[Dict[str, Any]]
    ) -> ConfirmationReport:
        return self._store.confirm_mappings(scope_key, confirmations)

    def mapping_stats(self, scope_key: Optional[str]) -> Dict[str, Any]:
        return self._store.mapping_stats(scope_key)
