"""
Database models for the source registry.

One row per registered source file, tracking where it came from, which
table it was loaded into, and where it is in the ingestion lifecycle.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text  # type: ignore
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column  # type: ignore


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class SourceFile(Base):
    """
    A registered tabular source.

    ``id`` is the remote file id for listed files and a generated id for
    uploads. ``status`` is only changed by the ingestion pipeline.
    """
    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(512), nullable=False)
    mime_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    origin_location: Mapped[str] = mapped_column(Text, nullable=False)
    folder_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    row_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), default="pending", nullable=False)
    table_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'processed', 'failed', 'empty', 'unsupported')",
            name='files_status_check'),
        Index('idx_files_status', 'status'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "mime_type": self.mime_type,
            "origin_location": self.origin_location,
            "folder_path": self.folder_path,
            "row_count": self.row_count,
            "status": self.status,
            "table_name": self.table_name,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<SourceFile(id={self.id}, name={self.display_name}, status={self.status})>"
