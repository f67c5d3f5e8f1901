"""
SQLAlchemy ORM Models — Curriculum Materials & Processing Logs

Using SQLAlchemy mapped classes (2.x style) for full async support.

Ownership of columns:
  processing_* / extracted_text / text_extraction_error
      written only by the processing pipeline (MaterialProcessor)
  ai_summary / ai_outline / suggested_topics / learning_objectives
      written by GenerationGateway.analyze_material after a successful analysis
  usage_count / last_used_at
      bumped after a successful assignment generation
  deleted_at
      soft delete; rows are never physically removed by this service
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Declarative base: shared across all models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# CurriculumMaterial: curriculum_materials
# ---------------------------------------------------------------------------

class CurriculumMaterial(Base):
    """
    One uploaded curriculum document and its extraction state.

    State machine (processing_status column):
        pending    — file stored, extraction not yet started
        processing — claimed by a sweep or a manual trigger
        completed  — extracted_text holds validated, normalized text
        failed     — see text_extraction_error; re-entered only manually
    """

    __tablename__ = "curriculum_materials"
    __table_args__ = (
        CheckConstraint(
            "processing_status IN ('pending', 'processing', 'completed', 'failed')",
            name="curriculum_materials_status_check",
        ),
        Index("idx_curriculum_materials_status",  "processing_status", "created_at"),
        Index("idx_curriculum_materials_teacher", "school_id", "teacher_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )

    # Ownership
    teacher_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    school_id:  Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    # Descriptive
    title:              Mapped[str]           = mapped_column(Text, nullable=False)
    description:        Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    original_file_name: Mapped[str]           = mapped_column(Text, nullable=False)
    file_type: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Extension tag without the dot, e.g. pdf, docx, doc",
    )
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    file_path: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Absolute path, or a file name relative to the upload root",
    )
    mime_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Processing state
    processing_status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="pending",
        server_default="pending",
    )
    extracted_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    text_extraction_error: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Populated only when processing_status='failed'",
    )
    processing_started_at:   Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    processing_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Generation metadata
    ai_summary: Mapped[Optional[str]]  = mapped_column(Text, nullable=True)
    ai_outline: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    suggested_topics: Mapped[list[str]] = mapped_column(
        ARRAY(Text), nullable=False, default=list, server_default="{}",
    )
    learning_objectives: Mapped[list[str]] = mapped_column(
        ARRAY(Text), nullable=False, default=list, server_default="{}",
    )

    # Usage / lifecycle
    usage_count:  Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at:   Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_archived:  Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<CurriculumMaterial id={self.id} status={self.processing_status} "
            f"file={self.original_file_name!r}>"
        )


# ---------------------------------------------------------------------------
# MaterialProcessingLog: material_processing_logs
# ---------------------------------------------------------------------------

class MaterialProcessingLog(Base):
    """
    Append-only record of every processing and generation attempt.
    Written best-effort: a failed insert is logged and never fails the attempt.
    """

    __tablename__ = "material_processing_logs"
    __table_args__ = (
        Index("idx_material_processing_logs_material", "material_id"),
        Index("idx_material_processing_logs_created",  "created_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    material_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    action: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="process | generate_assignment",
    )
    status: Mapped[str] = mapped_column(Text, nullable=False, comment="success | failed")
    error_message:      Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processing_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<MaterialProcessingLog id={self.id} material={self.material_id} "
            f"action={self.action!r} status={self.status}>"
        )
