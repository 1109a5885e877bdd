"""
Uploaded-file records.

Each extraction result is written once to the ``uploaded_file`` table,
keyed by file identity, with its processing status queryable and the full
result kept as JSON for reconciliation and audit.
"""

from __future__ import annotations

import threading
from contextlib import nullcontext
from typing import List, Optional, Union

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from freight_baseline.db import make_engine, make_session_factory, session_scope
from freight_baseline.logging_setup import get_logger
from freight_baseline.models import UploadedFile
from freight_baseline.schema import FileExtractionResult, FileStatus

logger = get_logger("file_store")


class FileRecordStore:
    """SQLAlchemy-backed store of ``FileExtractionResult`` records."""

    def __init__(self, engine: Optional[Engine] = None) -> None:
        self._engine = engine if engine is not None else make_engine()
        self._sessions = make_session_factory(self._engine)
        self._lock = threading.RLock() if isinstance(self._engine.pool, StaticPool) else nullcontext()

    def save(self, result: FileExtractionResult) -> str:
        """Insert or replace the record for ``result.file_id``.  Returns the id."""
        if not result.file_id:
            raise ValueError(f"{result.file_name}: result has no file_id")
        payload = result.to_dict()
        with self._lock, session_scope(self._sessions) as session:
            row = session.get(UploadedFile, result.file_id)
            if row is None:
                row = UploadedFile(file_id=result.file_id)
                session.add(row)
            row.file_name = result.file_name
            row.vendor_type = result.vendor_type.value
            row.processing_status = result.status.value
            row.total_extracted = result.total_extracted
            row.result_json = payload
        logger.info("Stored %s (%s, %s)", result.file_name, result.file_id[:12], result.status.value)
        return result.file_id

    def get(self, file_id: str) -> Optional[FileExtractionResult]:
        with self._lock, session_scope(self._sessions) as session:
            row = session.get(UploadedFile, file_id)
            return FileExtractionResult.from_dict(row.result_json) if row else None

    def list_results(
        self, status: Union[FileStatus, str, None] = None
    ) -> List[FileExtractionResult]:
        """All stored results, oldest first, optionally by processing status."""
        stmt = select(UploadedFile).order_by(UploadedFile.created_at, UploadedFile.file_id)
        if status is not None:
            stmt = stmt.where(UploadedFile.processing_status == FileStatus(status).value)
        with self._lock, session_scope(self._sessions) as session:
            return [FileExtractionResult.from_dict(r.result_json) for r in session.scalars(stmt)]

    def completed_results(self) -> List[FileExtractionResult]:
        return self.list_results(FileStatus.COMPLETED)

    def count(self) -> int:
        return len(self.list_results())

    def ping(self) -> bool:
        """True when the database answers a trivial query."""
        try:
            with self._lock, session_scope(self._sessions) as session:
                session.execute(select(1))
        except SQLAlchemyError as exc:
            logger.error("File store unreachable: %s", exc)
            return False
        return True
