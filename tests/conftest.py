"""
Shared fixtures: in-memory workbook builders and quiet pipeline configs.
"""

from __future__ import annotations

import logging
import zipfile
from io import BytesIO
from typing import Any, Callable, Dict, List, Sequence

import openpyxl
import pytest

from freight_baseline.config import PipelineConfig
from freight_baseline.mapping_store import (
    AdaptiveMappingStore,
    InMemoryMappingRepository,
    MappingRepository,
    MappingStoreError,
)
from freight_baseline.workbook_reader import WorkbookReader

Rows = List[Sequence[Any]]


def build_xlsx(tabs: Dict[str, Rows]) -> bytes:
    """Write ``{tab_name: rows}`` to xlsx bytes; the first row is the header."""
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for name, rows in tabs.items():
        ws = wb.create_sheet(title=name)
        for row in rows:
            ws.append(list(row))
    buf = BytesIO()
    wb.save(buf)
    wb.close()
    return buf.getvalue()


def corrupt_sheet_xml(content: bytes, part: str = "xl/worksheets/sheet1.xml") -> bytes:
    """Copy of an xlsx package whose *part* is truncated, unparsable XML."""
    src = zipfile.ZipFile(BytesIO(content))
    buf = BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as dst:
        for item in src.infolist():
            data = src.read(item.filename)
            if item.filename == part:
                data = b'<worksheet xmlns="'
            dst.writestr(item, data)
    src.close()
    return buf.getvalue()


def column_v_row(origin: str, dest: str, amount: Any) -> List[Any]:
    """A 22-column row with *amount* in spreadsheet column V."""
    return [origin, dest] + [None] * 19 + [amount]


class FailingRepository(MappingRepository):
    """Repository whose every call fails, as an unreachable database would."""

    def get(self, scope, scope_key, normalized_header):
        raise MappingStoreError("database unavailable")

    def upsert_max(self, scope, scope_key, normalized_header, canonical, confidence):
        raise MappingStoreError("database unavailable")

    def list(self, scope, scope_key):
        raise MappingStoreError("database unavailable")

    def stats(self, scope_key):
        raise MappingStoreError("database unavailable")


@pytest.fixture
def xlsx() -> Callable[[Dict[str, Rows]], bytes]:
    return build_xlsx


@pytest.fixture
def reader() -> WorkbookReader:
    return WorkbookReader()


@pytest.fixture
def quiet_config() -> PipelineConfig:
    return PipelineConfig(log_level=logging.WARNING)


@pytest.fixture
def store() -> AdaptiveMappingStore:
    return AdaptiveMappingStore(InMemoryMappingRepository())


@pytest.fixture
def parcel_workbook() -> bytes:
    """UPS-style export: two shipments totalling 2,930,000."""
    return build_xlsx({
        "Shipments": [
            ["Tracking Number", "Ship Date", "Service", "Origin Zip", "Dest Zip", "Net Charge"],
            ["1Z001", "2024-01-05", "Ground", "60601", "75201", 1_000_000],
            ["1Z002", "2024-01-06", "Next Day", "60601", "10001", 1_930_000],
        ],
    })


@pytest.fixture
def truckload_workbook() -> bytes:
    """Truckload report whose TOTAL tab keeps amounts in an unlabelled column H."""
    return build_xlsx({
        "TOTAL 2024": [
            ["Lane", "Origin", "Destination", "Carrier", "Mode", "Miles", "Loads", None],
            ["L1", "Chicago", "Dallas", "ABC", "TL", 920, 40, 590_000],
            ["L2", "Chicago", "Atlanta", "XYZ", "TL", 720, 35, 600_000],
        ],
    })


@pytest.fixture
def ltl_workbook() -> bytes:
    """R&L export with the charge in column V and no header above it."""
    return build_xlsx({
        "Detail": [
            ["Origin", "Destination"],
            column_v_row("Chicago", "Dallas", 1_220_000),
            column_v_row("Chicago", "Denver", 1_220_000),
        ],
    })
