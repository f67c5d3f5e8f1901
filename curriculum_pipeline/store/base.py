"""
Material Record Store — Abstract Base

The processing pipeline only speaks this protocol. The durable store is an
external collaborator; SqlMaterialStore (store/sql.py) is the reference
adapter on PostgreSQL.

Claim contract (enforced by ALL implementations):
  - claim() is a single atomic conditional update: the record moves to
    'processing' only if its current status is still one of `from_statuses`.
  - Exactly one of any number of concurrent claims on the same record wins;
    the others observe False and must skip the record.
  - There is no read-then-write claim path and no second locking mechanism.
  - A stale 'processing' record (started before `stale_before`) is
    re-claimable through the same single update; a fresh one never is.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable
from uuid import UUID


class MaterialStatus(str, Enum):
    """Transitions: pending → processing → completed | failed (failed → processing manually)."""
    PENDING    = "pending"
    PROCESSING = "processing"
    COMPLETED  = "completed"
    FAILED     = "failed"


# ---------------------------------------------------------------------------
# Shared data types
# ---------------------------------------------------------------------------

@dataclass
class MaterialRecord:
    """Detached snapshot of one curriculum material row."""
    id:                 UUID
    title:              str
    original_file_name: str
    file_type:          str
    file_path:          str
    processing_status:  MaterialStatus = MaterialStatus.PENDING
    extracted_text:     str | None = None
    text_extraction_error:   str | None = None
    processing_started_at:   datetime | None = None
    processing_completed_at: datetime | None = None
    usage_count:        int = 0
    last_used_at:       datetime | None = None
    created_at:         datetime | None = None
    metadata:           dict = field(default_factory=dict)
    ai_summary:         str | None = None
    ai_outline:         dict | None = None
    suggested_topics:   list[str] = field(default_factory=list)
    learning_objectives: list[str] = field(default_factory=list)

    @property
    def has_extracted_text(self) -> bool:
        return bool(self.extracted_text)


@dataclass
class ProcessingLogEntry:
    """One append-only processing/generation log row."""
    material_id:        UUID
    action:             str             # "process" | "generate_assignment" | "analyze"
    status:             str             # "success" | "failed"
    error_message:      str | None = None
    processing_time_ms: int | None = None


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------

class MaterialStore(ABC):
    """
    Read/write contract for curriculum material records.

    Every write is atomic with respect to its own record only; implementations
    must not open transactions spanning several materials.
    Soft-deleted records are invisible to get(), claim() and list_pending().
    """

    @abstractmethod
    async def get(self, material_id: UUID) -> MaterialRecord | None:
        """Return a snapshot of the record, or None if missing or soft-deleted."""

    @abstractmethod
    async def claim(
        self,
        material_id:   UUID,
        from_statuses: Iterable[MaterialStatus],
        started_at:    datetime,
        stale_before:  datetime | None = None,
    ) -> bool:
        """
        Atomically move the record to 'processing' when its status is in
        `from_statuses`, stamping processing_started_at and clearing
        processing_completed_at. Returns True only if one row was updated.

        With `stale_before`, a record already in 'processing' whose
        processing_started_at is earlier than it is claimable too, in the
        same conditional update.
        """

    @abstractmethod
    async def mark_completed(
        self,
        material_id:  UUID,
        text:         str,
        completed_at: datetime,
    ) -> None:
        """Persist validated text; status=completed, error cleared."""

    @abstractmethod
    async def mark_failed(
        self,
        material_id:  UUID,
        error:        str,
        completed_at: datetime,
    ) -> None:
        """Persist a terminal failure; status=failed with the error message."""

    @abstractmethod
    async def list_pending(self, limit: int) -> list[UUID]:
        """Return up to `limit` pending material ids, oldest first."""

    @abstractmethod
    async def record_usage(self, material_id: UUID, used_at: datetime) -> None:
        """Increment usage_count and stamp last_used_at after a generation call."""

    @abstractmethod
    async def log_processing(self, entry: ProcessingLogEntry) -> None:
        """Append one processing log row."""

    @abstractmethod
    async def record_analysis(
        self,
        material_id:         UUID,
        summary:             str,
        outline:             dict,
        suggested_topics:    list[str],
        learning_objectives: list[str],
    ) -> None:
        """Persist an AI content analysis onto the material row."""
