"""
Workbook Reader.

Turns uploaded bytes (or their base64 text) into a ``ParsedWorkbook``: an
ordered list of tabs, each with a header tuple and typed ``RawRow`` data.

Handles:
- ``.xlsx`` / ``.xlsm`` via openpyxl in read-only, cached-values mode
- ``.csv`` (and other delimited text) via the csv module
- Header rows that do not start on row 1 (the first non-empty row wins)
- Unlabelled columns, named after their spreadsheet letter ("V", "H")
- Repeated headers, suffixed ``_1``, ``_2`` ...
"""

from __future__ import annotations

import base64
import binascii
import csv
import re
import zipfile
from io import BytesIO, StringIO
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import openpyxl
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

from freight_baseline.logging_setup import get_logger
from freight_baseline.schema import ParsedWorkbook, RawRow, Tab

logger = get_logger("workbook_reader")

EXCEL_SUFFIXES = (".xlsx", ".xlsm", ".xltx", ".xltm")
TEXT_SUFFIXES = (".csv", ".txt", ".tsv")

# What openpyxl raises for damaged packages: bad zips, missing parts, and
# malformed part XML (ElementTree and lxml parse errors are SyntaxErrors).
_EXCEL_ERRORS = (
    zipfile.BadZipFile, InvalidFileException, SyntaxError, KeyError,
    IndexError, AttributeError, TypeError, OSError, ValueError,
)

_DATA_URL_RE = re.compile(r"^data:[^,]*;base64,", re.IGNORECASE)


class WorkbookParseError(ValueError):
    """The content could not be decoded as a spreadsheet."""


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def decode_content(content: Union[bytes, bytearray, str]) -> bytes:
    """Return raw bytes; ``str`` input is treated as base64 (data URLs allowed)."""
    if isinstance(content, (bytes, bytearray)):
        return bytes(content)
    if not isinstance(content, str):
        raise WorkbookParseError(f"Unsupported content type: {type(content).__name__}")
    text = _DATA_URL_RE.sub("", content.strip())
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise WorkbookParseError(f"Content is not valid base64: {exc}") from exc


class WorkbookReader:
    """Parse workbook bytes into typed tabs.

    Parameters
    ----------
    max_rows_per_tab:
        Optional cap on data rows kept per tab.
    """

    def __init__(self, max_rows_per_tab: Optional[int] = None) -> None:
        self.max_rows_per_tab = max_rows_per_tab

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def read_workbook(
        self, content: Union[bytes, bytearray, str], file_name: str
    ) -> ParsedWorkbook:
        """Parse *content* (bytes or base64 text) uploaded as *file_name*.

        Raises
        ------
        WorkbookParseError
            If the content cannot be decoded as xlsx or delimited text.
        """
        data = decode_content(content)
        if not data:
            raise WorkbookParseError(f"{file_name}: file is empty")

        suffix = Path(file_name).suffix.lower()
        if suffix in TEXT_SUFFIXES:
            workbook = self._read_text(data, file_name)
        elif suffix in EXCEL_SUFFIXES or data[:2] == b"PK":
            workbook = self._read_excel(data, file_name)
        elif suffix == ".xls":
            raise WorkbookParseError(f"{file_name}: legacy .xls workbooks are not supported")
        else:
            workbook = self._read_text(data, file_name)

        logger.info(
            "Read %s: %d tabs, %d data rows",
            file_name, len(workbook.tabs), sum(t.row_count for t in workbook.tabs),
        )
        return workbook

    def from_rows(
        self, tab_name: str, rows: Iterable[Sequence[Any]], first_row_number: int = 1
    ) -> Tab:
        """Build a tab from raw row sequences, header row included."""
        header: Optional[Tuple[Any, ...]] = None
        header_row_number = 0
        body: List[Tuple[int, Tuple[Any, ...]]] = []

        for offset, row in enumerate(rows):
            values = tuple(row or ())
            if all(_is_blank(v) for v in values):
                continue
            if header is None:
                header, header_row_number = values, first_row_number + offset
                continue
            if self.max_rows_per_tab is not None and len(body) >= self.max_rows_per_tab:
                logger.debug("Tab %r: row cap %d reached", tab_name, self.max_rows_per_tab)
                break
            body.append((first_row_number + offset, values))

        if header is None:
            logger.debug("Tab %r is empty", tab_name)
            return Tab(name=tab_name, headers=())

        width = max([len(header)] + [len(v) for _, v in body])
        # trailing columns with neither a header nor any value are noise
        while width > 0 and _is_blank(header[width - 1] if width - 1 < len(header) else None) \
                and all(_is_blank(v[width - 1] if width - 1 < len(v) else None) for _, v in body):
            width -= 1

        headers = self._name_headers(header, width)
        typed_rows = [
            RawRow(values=tuple(v[:width]) + (None,) * max(0, width - len(v)), row_number=n)
            for n, v in body
        ]
        logger.debug(
            "Tab %r: header row %d, %d columns, %d rows",
            tab_name, header_row_number, width, len(typed_rows),
        )
        return Tab(name=tab_name, headers=headers, rows=typed_rows)

    def from_dataframes(self, file_name: str, frames: Dict[str, Any]) -> ParsedWorkbook:
        """Build a workbook from ``{tab_name: pandas.DataFrame}``."""
        try:
            import pandas as pd
        except ImportError as exc:
            raise ImportError("pandas is required to use from_dataframes") from exc

        tabs: List[Tab] = []
        for name, df in frames.items():
            if not isinstance(df, pd.DataFrame):
                raise TypeError(f"Expected pandas DataFrame for tab {name!r}, got {type(df).__name__}")
            clean = df.astype(object).where(pd.notna(df), None)
            header = [None if str(c).startswith("Unnamed:") else c for c in clean.columns]
            rows = [header] + [list(r) for r in clean.itertuples(index=False, name=None)]
            tabs.append(self.from_rows(str(name), rows))
        return ParsedWorkbook(file_name=file_name, tabs=tabs)

    # ------------------------------------------------------------------ #
    # Formats
    # ------------------------------------------------------------------ #

    def _read_excel(self, data: bytes, file_name: str) -> ParsedWorkbook:
        try:
            wb = openpyxl.load_workbook(BytesIO(data), read_only=True, data_only=True)
        except _EXCEL_ERRORS as exc:
            raise WorkbookParseError(f"{file_name}: cannot open workbook: {exc}") from exc

        try:
            tabs = []
            for ws in wb.worksheets:
                tabs.append(self.from_rows(ws.title, ws.iter_rows(values_only=True)))
        except _EXCEL_ERRORS as exc:
            raise WorkbookParseError(f"{file_name}: cannot read sheet data: {exc}") from exc
        finally:
            wb.close()
        return ParsedWorkbook(file_name=file_name, tabs=tabs)

    def _read_text(self, data: bytes, file_name: str) -> ParsedWorkbook:
        text: Optional[str] = None
        for encoding in ("utf-8-sig", "cp1252"):
            try:
                text = data.decode(encoding)
                break
            except UnicodeDecodeError:
                continue
        if text is None or "\x00" in text:
            raise WorkbookParseError(f"{file_name}: content is neither a workbook nor text")

        try:
            dialect = csv.Sniffer().sniff(text[:4096], delimiters=",;\t|")
        except csv.Error:
            dialect = csv.excel
        try:
            rows = list(csv.reader(StringIO(text), dialect))
        except csv.Error as exc:
            raise WorkbookParseError(f"{file_name}: malformed delimited text: {exc}") from exc

        tab = self.from_rows(Path(file_name).stem or "Sheet1", rows)
        return ParsedWorkbook(file_name=file_name, tabs=[tab])

    # ------------------------------------------------------------------ #

    @staticmethod
    def _name_headers(header: Sequence[Any], width: int) -> Tuple[str, ...]:
        names: List[str] = []
        seen: Dict[str, int] = {}
        for i in range(width):
            raw = header[i] if i < len(header) else None
            name = get_column_letter(i + 1) if _is_blank(raw) else str(raw).strip()
            if name in seen:
                seen[name] += 1
                candidate = f"{name}_{seen[name]}"
                while candidate in seen:
                    seen[name] += 1
                    candidate = f"{name}_{seen[name]}"
                seen[candidate] = 0
                name = candidate
            else:
                seen[name] = 0
            names.append(name)
        return tuple(names)


def read_workbook(
    content: Union[bytes, bytearray, str],
    file_name: str,
    max_rows_per_tab: Optional[int] = None,
) -> ParsedWorkbook:
    """Convenience wrapper around ``WorkbookReader.read_workbook``."""
    return WorkbookReader(max_rows_per_tab).read_workbook(content, file_name)
