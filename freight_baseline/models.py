"""
SQLAlchemy tables backing the mapping store and the uploaded-file records.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Timestamped:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class HeaderMapping(Timestamped, Base):
    """One learned header decision.

    Global rows store ``scope_key = ""`` so the unique constraint also holds
    for them (NULLs never collide in most databases).
    """

    __tablename__ = "header_mapping"
    __table_args__ = (
        UniqueConstraint("scope", "scope_key", "normalized_header", name="uq_header_mapping_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scope: Mapped[str] = mapped_column(String(16), index=True)
    scope_key: Mapped[str] = mapped_column(String(255), default="", index=True)
    normalized_header: Mapped[str] = mapped_column(String(512))
    canonical_field: Mapped[str] = mapped_column(String(64))
    confidence: Mapped[float] = mapped_column(Float, default=0.0)
    hits: Mapped[int] = mapped_column(Integer, default=1)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class UploadedFile(Timestamped, Base):
    __tablename__ = "uploaded_file"

    file_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    file_name: Mapped[str] = mapped_column(String(512))
    vendor_type: Mapped[str] = mapped_column(String(16), index=True)
    processing_status: Mapped[str] = mapped_column(String(16), index=True)
    total_extracted: Mapped[float] = mapped_column(Float, default=0.0)
    result_json: Mapped[dict] = mapped_column(JSON, default=dict)
