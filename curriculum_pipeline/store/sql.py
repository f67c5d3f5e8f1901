"""
PostgreSQL Material Store (SQLAlchemy async)

The claim is a single conditional UPDATE:

    UPDATE curriculum_materials
       SET processing_status = 'processing', processing_started_at = :now, ...
     WHERE id = :id
       AND (processing_status IN (:from_statuses)
            OR (processing_status = 'processing'
                AND processing_started_at < :stale_before))
       AND deleted_at IS NULL

PostgreSQL re-evaluates the WHERE clause against the latest committed row
version under READ COMMITTED, so two overlapping claims can never both see
rowcount == 1. There is deliberately no SELECT before the UPDATE.
The stale branch is only added for manual triggers; a scheduled sweep
passes no stale_before and never takes a record out of another worker's hands.

Terminal writes (completed / failed) are additionally guarded on
processing_status = 'processing' so a record only leaves 'processing' once.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from curriculum_pipeline.core.errors import PersistenceError
from curriculum_pipeline.db.session import session_scope
from curriculum_pipeline.models.materials import CurriculumMaterial, MaterialProcessingLog
from curriculum_pipeline.store.base import (
    MaterialRecord,
    MaterialStatus,
    MaterialStore,
    ProcessingLogEntry,
)

logger = logging.getLogger(__name__)


def _to_record(row: CurriculumMaterial) -> MaterialRecord:
    return MaterialRecord(
        id=row.id,
        title=row.title,
        original_file_name=row.original_file_name,
        file_type=row.file_type,
        file_path=row.file_path,
        processing_status=MaterialStatus(row.processing_status),
        extracted_text=row.extracted_text,
        text_extraction_error=row.text_extraction_error,
        processing_started_at=row.processing_started_at,
        processing_completed_at=row.processing_completed_at,
        usage_count=row.usage_count,
        last_used_at=row.last_used_at,
        created_at=row.created_at,
        ai_summary=row.ai_summary,
        ai_outline=row.ai_outline,
        suggested_topics=list(row.suggested_topics or []),
        learning_objectives=list(row.learning_objectives or []),
    )


class SqlMaterialStore(MaterialStore):
    """
    MaterialStore backed by the curriculum_materials table.

    Constructor args:
        session_factory : optional async_sessionmaker; defaults to the
                          application-wide AsyncSessionLocal
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._factory = session_factory

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, material_id: UUID) -> MaterialRecord | None:
        try:
            async with session_scope(self._factory) as db:
                result = await db.execute(
                    select(CurriculumMaterial).where(
                        CurriculumMaterial.id == material_id,
                        CurriculumMaterial.deleted_at.is_(None),
                    )
                )
                row = result.scalars().first()
                return _to_record(row) if row else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load curriculum material: {exc}") from exc

    async def list_pending(self, limit: int) -> list[UUID]:
        try:
            async with session_scope(self._factory) as db:
                result = await db.execute(
                    select(CurriculumMaterial.id)
                    .where(
                        CurriculumMaterial.processing_status == MaterialStatus.PENDING.value,
                        CurriculumMaterial.deleted_at.is_(None),
                    )
                    .order_by(CurriculumMaterial.created_at)
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to list pending materials: {exc}") from exc

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    async def claim(
        self,
        material_id:   UUID,
        from_statuses: Iterable[MaterialStatus],
        started_at:    datetime,
        stale_before:  datetime | None = None,
    ) -> bool:
        allowed = [MaterialStatus(s).value for s in from_statuses]
        claimable = CurriculumMaterial.processing_status.in_(allowed)
        if stale_before is not None:
            claimable = or_(
                claimable,
                and_(
                    CurriculumMaterial.processing_status == MaterialStatus.PROCESSING.value,
                    CurriculumMaterial.processing_started_at < stale_before,
                ),
            )
        stmt = (
            update(CurriculumMaterial)
            .where(
                CurriculumMaterial.id == material_id,
                claimable,
                CurriculumMaterial.deleted_at.is_(None),
            )
            .values(
                processing_status=MaterialStatus.PROCESSING.value,
                processing_started_at=started_at,
                processing_completed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            async with session_scope(self._factory) as db:
                result = await db.execute(stmt)
                claimed = result.rowcount == 1
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to claim curriculum material: {exc}") from exc

        logger.debug(
            "Claim | material=%s from=%s stale_before=%s claimed=%s",
            material_id, allowed, stale_before, claimed,
        )
        return claimed

    async def mark_completed(
        self,
        material_id:  UUID,
        text:         str,
        completed_at: datetime,
    ) -> None:
        await self._finish(
            material_id,
            extracted_text=text,
            processing_status=MaterialStatus.COMPLETED.value,
            text_extraction_error=None,
            processing_completed_at=completed_at,
        )

    async def mark_failed(
        self,
        material_id:  UUID,
        error:        str,
        completed_at: datetime,
    ) -> None:
        await self._finish(
            material_id,
            processing_status=MaterialStatus.FAILED.value,
            text_extraction_error=error,
            processing_completed_at=completed_at,
        )

    async def _finish(self, material_id: UUID, **values) -> None:
        stmt = (
            update(CurriculumMaterial)
            .where(
                CurriculumMaterial.id == material_id,
                CurriculumMaterial.processing_status == MaterialStatus.PROCESSING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            async with session_scope(self._factory) as db:
                result = await db.execute(stmt)
                updated = result.rowcount
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to update curriculum material: {exc}") from exc

        if updated != 1:
            raise PersistenceError(
                f"Curriculum material {material_id} is no longer in processing state"
            )

    # ------------------------------------------------------------------
    # Usage + logs
    # ------------------------------------------------------------------

    async def record_usage(self, material_id: UUID, used_at: datetime) -> None:
        stmt = (
            update(CurriculumMaterial)
            .where(CurriculumMaterial.id == material_id)
            .values(
                usage_count=CurriculumMaterial.usage_count + 1,
                last_used_at=used_at,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            async with session_scope(self._factory) as db:
                await db.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to record material usage: {exc}") from exc

    async def log_processing(self, entry: ProcessingLogEntry) -> None:
        try:
            async with session_scope(self._factory) as db:
                db.add(MaterialProcessingLog(
                    material_id=entry.material_id,
                    action=entry.action,
                    status=entry.status,
                    error_message=entry.error_message,
                    processing_time_ms=entry.processing_time_ms,
                ))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to write processing log: {exc}") from exc

    async def record_analysis(
        self,
        material_id:         UUID,
        summary:             str,
        outline:             dict,
        suggested_topics:    list[str],
        learning_objectives: list[str],
    ) -> None:
        stmt = (
            update(CurriculumMaterial)
            .where(
                CurriculumMaterial.id == material_id,
                CurriculumMaterial.deleted_at.is_(None),
            )
            .values(
                ai_summary=summary,
                ai_outline=outline,
                suggested_topics=suggested_topics,
                learning_objectives=learning_objectives,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            async with session_scope(self._factory) as db:
                result = await db.execute(stmt)
                updated = result.rowcount
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to store curriculum analysis: {exc}") from exc

        if updated != 1:
            raise PersistenceError(f"Curriculum material {material_id} no longer exists")
