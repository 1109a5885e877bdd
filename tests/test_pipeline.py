"""
Integration tests for the full BaselinePipeline.
"""

from __future__ import annotations

import base64
import json
import logging
from pathlib import Path

import pytest
from conftest import FailingRepository, build_xlsx, corrupt_sheet_xml

from freight_baseline.config import MappingStoreConfig, PipelineConfig
from freight_baseline.extraction import FileUpload
from freight_baseline.mapping_store import SqlMappingRepository
from freight_baseline.pipeline import BaselinePipeline
from freight_baseline.schema import CanonicalField, FileStatus, MappingScope, Quality


@pytest.fixture
def pipeline(quiet_config: PipelineConfig) -> BaselinePipeline:
    return BaselinePipeline(config=quiet_config)


@pytest.fixture
def uploads(parcel_workbook: bytes, truckload_workbook: bytes, ltl_workbook: bytes) -> list:
    return [
        FileUpload("UPS Individual Item Cost.xlsx", parcel_workbook),
        FileUpload("TL Inbound 2024.xlsx", truckload_workbook),
        FileUpload("R&L Curriculum 2024.xlsx", ltl_workbook),
    ]


# ======================================================================
# End to end
# ======================================================================

class TestBaseline:
    def test_three_carrier_baseline(self, pipeline: BaselinePipeline, uploads: list) -> None:
        results = pipeline.extract_batch(uploads)
        assert all(r.status is FileStatus.COMPLETED for r in results)

        summary = pipeline.build_baseline()
        assert summary.ups_parcel_costs == pytest.approx(2_930_000)
        assert summary.tl_freight_costs == pytest.approx(1_190_000)
        assert summary.rl_ltl_costs == pytest.approx(2_440_000)
        assert summary.total_verified == pytest.approx(6_560_000)
        assert summary.data_quality is Quality.VERIFIED

    def test_category_equals_file_total(self, pipeline: BaselinePipeline, uploads: list) -> None:
        results = pipeline.extract_batch(uploads)
        summary = pipeline.build_baseline(results)
        by_file = {s.file_name: s.amount for s in summary.sources}
        for result in results:
            assert by_file[result.file_name] == pytest.approx(result.total_extracted)

    def test_error_file_stored_but_not_counted(
        self, pipeline: BaselinePipeline, parcel_workbook: bytes
    ) -> None:
        pipeline.extract_batch([
            {"file_name": "UPS Individual Item Cost.xlsx", "content": parcel_workbook},
            {"file_name": "broken.xlsx", "content": b"PK\x03\x04 junk"},
        ])
        assert len(pipeline.stored_results()) == 2
        assert len(pipeline.stored_results("error")) == 1
        assert pipeline.build_baseline().total_verified == pytest.approx(2_930_000)

    def test_malformed_xml_upload_keeps_batch(
        self, pipeline: BaselinePipeline, parcel_workbook: bytes, ltl_workbook: bytes
    ) -> None:
        results = pipeline.extract_batch([
            FileUpload("UPS Individual Item Cost.xlsx", parcel_workbook),
            FileUpload("R&L broken.xlsx", corrupt_sheet_xml(ltl_workbook)),
        ])
        assert [r.status for r in results] == [FileStatus.COMPLETED, FileStatus.ERROR]
        assert len(pipeline.stored_results()) == 2
        assert pipeline.build_baseline().total_verified == pytest.approx(2_930_000)

    def test_reupload_replaces(self, pipeline: BaselinePipeline, parcel_workbook: bytes) -> None:
        pipeline.extract_file("UPS Individual Item Cost.xlsx", parcel_workbook)
        pipeline.extract_file("UPS Individual Item Cost.xlsx", parcel_workbook)
        assert len(pipeline.stored_results()) == 1
        assert pipeline.build_baseline().ups_parcel_costs == pytest.approx(2_930_000)

    def test_base64_upload(self, pipeline: BaselinePipeline, ltl_workbook: bytes) -> None:
        encoded = base64.b64encode(ltl_workbook).decode("ascii")
        result = pipeline.extract_file("R&L Curriculum 2024.xlsx", encoded)
        assert result.total_extracted == pytest.approx(2_440_000)

    def test_persist_disabled(self, pipeline: BaselinePipeline, ltl_workbook: bytes) -> None:
        pipeline.extract_file("R&L Curriculum 2024.xlsx", ltl_workbook, persist=False)
        assert pipeline.stored_results() == []

    def test_empty_baseline(self, pipeline: BaselinePipeline) -> None:
        summary = pipeline.build_baseline()
        assert summary.total_verified == 0.0
        assert summary.data_quality is Quality.NO_DATA


# ======================================================================
# Mappings through the pipeline
# ======================================================================

class TestMappings:
    def test_extraction_learns_for_customer(
        self, pipeline: BaselinePipeline, parcel_workbook: bytes
    ) -> None:
        pipeline.extract_file("UPS Individual Item Cost.xlsx", parcel_workbook, scope_key="acme")
        found = pipeline.lookup_mapping("acme", "Net Charge")
        assert found.source is MappingScope.CUSTOMER
        assert pipeline.mapping_stats("acme")["customer_mappings"] >= 1

    def test_confirmed_mapping_used_by_ladder(self, pipeline: BaselinePipeline) -> None:
        content = build_xlsx({"Sheet1": [
            ["Origin", "Destination", "Billed"],
            ["Chicago", "Dallas", 40],
        ]})
        flagged = pipeline.extract_file("misc.xlsx", content, scope_key="acme", persist=False)
        assert flagged.tabs[0].flagged

        report = pipeline.confirm_mappings("acme", [
            {"raw_header": "Billed", "canonical_field": "net_charge", "confidence": 0.97},
        ])
        assert report.to_dict()["ok"]

        result = pipeline.extract_file("misc.xlsx", content, scope_key="acme", persist=False)
        assert result.tabs[0].chosen_column == "Billed"
        assert result.tabs[0].confidence == pytest.approx(0.97)

    def test_resolve_headers(self, pipeline: BaselinePipeline) -> None:
        resolved = pipeline.resolve_headers("acme", ["Net Charge", "xyzzy qwerty"])
        assert resolved["Net Charge"].canonical is CanonicalField.NET_CHARGE
        assert resolved["xyzzy qwerty"].source == "unmapped"

    def test_suggest(self, pipeline: BaselinePipeline) -> None:
        assert pipeline.suggest("Gross Chg").mapped_to is CanonicalField.GROSS_CHARGE


# ======================================================================
# Configuration
# ======================================================================

class TestConfiguration:
    def test_database_url_selects_sql(self, tmp_path: Path) -> None:
        url = f"sqlite:///{tmp_path / 'mappings.db'}"
        pipeline = BaselinePipeline(PipelineConfig(
            store=MappingStoreConfig(database_url=url), log_level=logging.WARNING,
        ))
        assert isinstance(pipeline.mapping_store.repository, SqlMappingRepository)
        pipeline.mapping_store.upsert_global_mapping("Billed", CanonicalField.NET_CHARGE)

        reopened = BaselinePipeline(PipelineConfig(
            store=MappingStoreConfig(database_url=url), log_level=logging.WARNING,
        ))
        assert reopened.lookup_mapping(None, "Billed").found

    def test_custom_synonyms(self, tmp_path: Path) -> None:
        path = tmp_path / "synonyms.json"
        path.write_text(json.dumps({"net_charge": ["zorblat"]}), encoding="utf-8")
        pipeline = BaselinePipeline(PipelineConfig(
            custom_synonym_path=path, log_level=logging.WARNING,
        ))
        assert pipeline.suggest("Zorblat").mapped_to is CanonicalField.NET_CHARGE

    def test_degraded_store_still_extracts(self, quiet_config: PipelineConfig, parcel_workbook: bytes) -> None:
        pipeline = BaselinePipeline(quiet_config, mapping_repository=FailingRepository())
        result = pipeline.extract_file("UPS Individual Item Cost.xlsx", parcel_workbook, scope_key="acme")
        assert result.status is FileStatus.COMPLETED
        assert result.total_extracted == pytest.approx(2_930_000)
