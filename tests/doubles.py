"""
Test doubles for the MaterialStore contract.

InMemoryMaterialStore  compare-and-swap claim: the status check and the write
                       happen in one step with no suspension point between
                       them, so concurrent coroutines cannot both win.
NaiveMaterialStore     read-then-write claim with a suspension point in the
                       middle, the race the conditional update exists to
                       prevent. Used only to show that race in tests.
"""

from __future__ import annotations

import asyncio
import dataclasses
from datetime import datetime, timedelta, timezone
from typing import Iterable
from uuid import UUID, uuid4

from curriculum_pipeline.core.errors import PersistenceError
from curriculum_pipeline.store.base import (
    MaterialRecord,
    MaterialStatus,
    MaterialStore,
    ProcessingLogEntry,
)

_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_record(
    file_path:  str = "lesson.docx",
    file_type:  str = "docx",
    status:     MaterialStatus = MaterialStatus.PENDING,
    age:        int = 0,
    **fields,
) -> MaterialRecord:
    """Record factory; larger `age` means created earlier."""
    return MaterialRecord(
        id=fields.pop("id", None) or uuid4(),
        title=fields.pop("title", "Photosynthesis unit"),
        original_file_name=fields.pop("original_file_name", file_path),
        file_type=file_type,
        file_path=file_path,
        processing_status=status,
        created_at=_EPOCH - timedelta(minutes=age),
        **fields,
    )


def _claimable(
    record:        MaterialRecord,
    from_statuses: tuple,
    stale_before:  datetime | None,
) -> bool:
    if record.processing_status in from_statuses:
        return True
    return (
        stale_before is not None
        and record.processing_status is MaterialStatus.PROCESSING
        and record.processing_started_at is not None
        and record.processing_started_at < stale_before
    )


class InMemoryMaterialStore(MaterialStore):

    def __init__(self, records: Iterable[MaterialRecord] = ()) -> None:
        self.records: dict[UUID, MaterialRecord] = {r.id: r for r in records}
        self.deleted: set[UUID] = set()
        self.logs: list[ProcessingLogEntry] = []
        self.failing: set[str] = set()      # method names that raise PersistenceError
        self.claim_calls = 0

    def _maybe_fail(self, method: str) -> None:
        if method in self.failing:
            raise PersistenceError(f"{method} failed: database unavailable")

    def _visible(self, material_id: UUID) -> MaterialRecord | None:
        if material_id in self.deleted:
            return None
        return self.records.get(material_id)

    def add(self, record: MaterialRecord) -> MaterialRecord:
        self.records[record.id] = record
        return record

    async def get(self, material_id: UUID) -> MaterialRecord | None:
        self._maybe_fail("get")
        record = self._visible(material_id)
        return dataclasses.replace(record) if record else None

    async def claim(
        self,
        material_id:   UUID,
        from_statuses: Iterable[MaterialStatus],
        started_at:    datetime,
        stale_before:  datetime | None = None,
    ) -> bool:
        self.claim_calls += 1
        self._maybe_fail("claim")
        record = self._visible(material_id)
        if record is None or not _claimable(record, tuple(from_statuses), stale_before):
            return False
        record.processing_status = MaterialStatus.PROCESSING
        record.processing_started_at = started_at
        record.processing_completed_at = None
        return True

    def _finish(self, material_id: UUID) -> MaterialRecord:
        record = self._visible(material_id)
        if record is None or record.processing_status is not MaterialStatus.PROCESSING:
            raise PersistenceError("Material was not in processing state")
        return record

    async def mark_completed(self, material_id: UUID, text: str, completed_at: datetime) -> None:
        self._maybe_fail("mark_completed")
        record = self._finish(material_id)
        record.processing_status = MaterialStatus.COMPLETED
        record.extracted_text = text
        record.text_extraction_error = None
        record.processing_completed_at = completed_at

    async def mark_failed(self, material_id: UUID, error: str, completed_at: datetime) -> None:
        self._maybe_fail("mark_failed")
        record = self._finish(material_id)
        record.processing_status = MaterialStatus.FAILED
        record.text_extraction_error = error
        record.processing_completed_at = completed_at

    async def list_pending(self, limit: int) -> list[UUID]:
        self._maybe_fail("list_pending")
        pending = [
            r for r in self.records.values()
            if r.processing_status is MaterialStatus.PENDING and r.id not in self.deleted
        ]
        pending.sort(key=lambda r: r.created_at or _EPOCH)
        return [r.id for r in pending[:limit]]

    async def record_usage(self, material_id: UUID, used_at: datetime) -> None:
        self._maybe_fail("record_usage")
        record = self.records[material_id]
        record.usage_count += 1
        record.last_used_at = used_at

    async def log_processing(self, entry: ProcessingLogEntry) -> None:
        self._maybe_fail("log_processing")
        self.logs.append(entry)

    async def record_analysis(
        self,
        material_id:         UUID,
        summary:             str,
        outline:             dict,
        suggested_topics:    list[str],
        learning_objectives: list[str],
    ) -> None:
        self._maybe_fail("record_analysis")
        record = self._visible(material_id)
        if record is None:
            raise PersistenceError(f"Curriculum material {material_id} no longer exists")
        record.ai_summary = summary
        record.ai_outline = outline
        record.suggested_topics = list(suggested_topics)
        record.learning_objectives = list(learning_objectives)


class NaiveMaterialStore(InMemoryMaterialStore):
    """Same store, but claim() reads, yields to the loop, then writes."""

    async def claim(
        self,
        material_id:   UUID,
        from_statuses: Iterable[MaterialStatus],
        started_at:    datetime,
        stale_before:  datetime | None = None,
    ) -> bool:
        self.claim_calls += 1
        observed = await self.get(material_id)
        if observed is None or not _claimable(observed, tuple(from_statuses), stale_before):
            return False

        await asyncio.sleep(0)

        record = self.records[material_id]
        record.processing_status = MaterialStatus.PROCESSING
        record.processing_started_at = started_at
        record.processing_completed_at = None
        return True
