"""
Unit Tests — SqlMaterialStore
═════════════════════════════

All tests use a mocked async_sessionmaker; statements are inspected by
compiling them against the PostgreSQL dialect. No database is contacted.

Coverage targets:
  ✅ claim is ONE conditional UPDATE (no SELECT first)
  ✅ claim WHERE covers id, allowed statuses and deleted_at IS NULL
  ✅ claim returns rowcount == 1
  ✅ stale_before adds the stuck-processing branch to the same UPDATE;
     without it a processing record is never claimable
  ✅ terminal writes are guarded on status = processing; 0 rows → PersistenceError
  ✅ SQLAlchemyError → PersistenceError on every path
  ✅ get maps the ORM row to a MaterialRecord; missing → None
  ✅ list_pending returns ids oldest first, capped
  ✅ record_usage increments in SQL; log_processing adds a log row
  ✅ record_analysis writes the four ai_* columns in one UPDATE
  ✅ get maps stored analysis columns onto the record
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from curriculum_pipeline.core.errors import PersistenceError
from curriculum_pipeline.models.materials import CurriculumMaterial, MaterialProcessingLog
from curriculum_pipeline.store.base import MaterialStatus, ProcessingLogEntry
from curriculum_pipeline.store.sql import SqlMaterialStore

NOW = datetime(2024, 9, 1, 8, 30, tzinfo=timezone.utc)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

class _AsyncContext:
    def __init__(self, value=None) -> None:
        self.value = value

    async def __aenter__(self):
        return self.value

    async def __aexit__(self, *exc_info):
        return False


def _compiled(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect())).replace("\n", " ")


@pytest.fixture
def mock_session():
    """
    AsyncSession stand-in.
    execute() returns a result with rowcount=1 by default (override per test).
    """
    db = MagicMock()
    db.execute = AsyncMock(return_value=MagicMock(rowcount=1))
    db.add = MagicMock(return_value=None)
    db.begin = MagicMock(return_value=_AsyncContext())
    return db


@pytest.fixture
def sql_store(mock_session):
    factory = MagicMock(return_value=_AsyncContext(mock_session))
    return SqlMaterialStore(session_factory=factory)


def _db_down() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("connection refused"))


# ─────────────────────────────────────────────────────────────────────────────
# Claim
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestClaim:

    async def test_single_conditional_update(self, sql_store, mock_session):
        material_id = uuid.uuid4()

        claimed = await sql_store.claim(material_id, (MaterialStatus.PENDING,), NOW)

        assert claimed is True
        assert mock_session.execute.await_count == 1

        sql = _compiled(mock_session.execute.await_args.args[0])
        assert sql.startswith("UPDATE curriculum_materials SET")
        assert "curriculum_materials.processing_status IN" in sql
        assert "curriculum_materials.deleted_at IS NULL" in sql
        assert "processing_started_at" in sql
        assert "processing_completed_at" in sql

    async def test_allowed_statuses_bound(self, sql_store, mock_session):
        await sql_store.claim(uuid.uuid4(), (MaterialStatus.PENDING, MaterialStatus.FAILED), NOW)

        stmt = mock_session.execute.await_args.args[0]
        params = stmt.compile(dialect=postgresql.dialect()).params
        assert ["pending", "failed"] in params.values()
        assert "processing" in params.values()

    async def test_zero_rows_means_lost_claim(self, sql_store, mock_session):
        mock_session.execute.return_value = MagicMock(rowcount=0)

        assert await sql_store.claim(uuid.uuid4(), (MaterialStatus.PENDING,), NOW) is False

    async def test_database_error(self, sql_store, mock_session):
        mock_session.execute.side_effect = _db_down()

        with pytest.raises(PersistenceError, match="Failed to claim"):
            await sql_store.claim(uuid.uuid4(), (MaterialStatus.PENDING,), NOW)

    async def test_stale_processing_branch_in_same_update(self, sql_store, mock_session):
        stale_before = NOW - timedelta(minutes=30)

        claimed = await sql_store.claim(
            uuid.uuid4(), (MaterialStatus.PENDING, MaterialStatus.FAILED), NOW, stale_before,
        )

        assert claimed is True
        assert mock_session.execute.await_count == 1
        stmt = mock_session.execute.await_args.args[0]
        sql = _compiled(stmt)
        assert sql.startswith("UPDATE curriculum_materials SET")
        assert " OR " in sql
        assert "curriculum_materials.processing_started_at <" in sql
        assert stale_before in stmt.compile(dialect=postgresql.dialect()).params.values()

    async def test_no_stale_branch_without_cutoff(self, sql_store, mock_session):
        await sql_store.claim(uuid.uuid4(), (MaterialStatus.PENDING,), NOW)

        sql = _compiled(mock_session.execute.await_args.args[0])
        assert " OR " not in sql
        assert "processing_started_at <" not in sql


# ─────────────────────────────────────────────────────────────────────────────
# Terminal writes
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestTerminalWrites:

    async def test_mark_completed_guarded_on_processing(self, sql_store, mock_session):
        await sql_store.mark_completed(uuid.uuid4(), "clean text", NOW)

        stmt = mock_session.execute.await_args.args[0]
        sql = _compiled(stmt)
        params = stmt.compile(dialect=postgresql.dialect()).params
        assert "curriculum_materials.processing_status = " in sql
        assert "text_extraction_error" in sql
        assert params["extracted_text"] == "clean text"

    async def test_mark_failed_stores_error(self, sql_store, mock_session):
        await sql_store.mark_failed(uuid.uuid4(), "Not enough words (less than 50)", NOW)

        params = mock_session.execute.await_args.args[0].compile(dialect=postgresql.dialect()).params
        assert params["text_extraction_error"] == "Not enough words (less than 50)"
        assert "failed" in params.values()

    async def test_record_left_processing_raises(self, sql_store, mock_session):
        mock_session.execute.return_value = MagicMock(rowcount=0)

        with pytest.raises(PersistenceError, match="no longer in processing state"):
            await sql_store.mark_failed(uuid.uuid4(), "boom", NOW)

    async def test_database_error(self, sql_store, mock_session):
        mock_session.execute.side_effect = _db_down()

        with pytest.raises(PersistenceError, match="Failed to update"):
            await sql_store.mark_completed(uuid.uuid4(), "text", NOW)


# ─────────────────────────────────────────────────────────────────────────────
# Reads
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestReads:

    async def test_get_maps_row(self, sql_store, mock_session):
        row = CurriculumMaterial(
            id=uuid.uuid4(),
            title="Cells",
            original_file_name="cells.pdf",
            file_type="pdf",
            file_path="cells.pdf",
            processing_status="failed",
            text_extraction_error="Text too short (less than 100 characters)",
            processing_completed_at=NOW,
            usage_count=2,
            created_at=NOW,
        )
        result = MagicMock()
        result.scalars.return_value.first.return_value = row
        mock_session.execute.return_value = result

        record = await sql_store.get(row.id)

        assert record.id == row.id
        assert record.processing_status is MaterialStatus.FAILED
        assert record.text_extraction_error == "Text too short (less than 100 characters)"
        assert record.has_extracted_text is False
        assert record.usage_count == 2
        assert record.ai_summary is None
        assert record.suggested_topics == []

        sql = _compiled(mock_session.execute.await_args.args[0])
        assert "curriculum_materials.deleted_at IS NULL" in sql

    async def test_get_maps_analysis_columns(self, sql_store, mock_session):
        row = CurriculumMaterial(
            id=uuid.uuid4(),
            title="Cells",
            original_file_name="cells.pdf",
            file_type="pdf",
            file_path="cells.pdf",
            processing_status="completed",
            ai_summary="Cell structure overview.",
            ai_outline={"topics": []},
            suggested_topics=["mitochondria"],
            learning_objectives=["Label a cell diagram"],
            usage_count=0,
            created_at=NOW,
        )
        result = MagicMock()
        result.scalars.return_value.first.return_value = row
        mock_session.execute.return_value = result

        record = await sql_store.get(row.id)

        assert record.ai_summary == "Cell structure overview."
        assert record.ai_outline == {"topics": []}
        assert record.suggested_topics == ["mitochondria"]
        assert record.learning_objectives == ["Label a cell diagram"]

    async def test_get_missing(self, sql_store, mock_session):
        result = MagicMock()
        result.scalars.return_value.first.return_value = None
        mock_session.execute.return_value = result

        assert await sql_store.get(uuid.uuid4()) is None

    async def test_list_pending_oldest_first(self, sql_store, mock_session):
        ids = [uuid.uuid4(), uuid.uuid4()]
        result = MagicMock()
        result.scalars.return_value.all.return_value = ids
        mock_session.execute.return_value = result

        assert await sql_store.list_pending(10) == ids

        sql = _compiled(mock_session.execute.await_args.args[0])
        assert "ORDER BY curriculum_materials.created_at" in sql
        assert "LIMIT" in sql
        assert "curriculum_materials.deleted_at IS NULL" in sql

    async def test_get_database_error(self, sql_store, mock_session):
        mock_session.execute.side_effect = _db_down()

        with pytest.raises(PersistenceError, match="Failed to load"):
            await sql_store.get(uuid.uuid4())


# ─────────────────────────────────────────────────────────────────────────────
# Usage + logs
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestUsageAndLogs:

    async def test_record_usage_increments_in_sql(self, sql_store, mock_session):
        await sql_store.record_usage(uuid.uuid4(), NOW)

        sql = _compiled(mock_session.execute.await_args.args[0])
        assert "curriculum_materials.usage_count +" in sql
        assert "last_used_at" in sql

    async def test_log_processing_adds_row(self, sql_store, mock_session):
        material_id = uuid.uuid4()

        await sql_store.log_processing(ProcessingLogEntry(
            material_id=material_id,
            action="process",
            status="failed",
            error_message="Unsupported file type: txt",
            processing_time_ms=12,
        ))

        added = mock_session.add.call_args.args[0]
        assert isinstance(added, MaterialProcessingLog)
        assert added.material_id == material_id
        assert added.action == "process"
        assert added.status == "failed"
        assert added.processing_time_ms == 12

    async def test_record_analysis_writes_ai_columns(self, sql_store, mock_session):
        outline = {"topics": [{"name": "Light reactions", "subtopics": ["Chlorophyll"]}]}

        await sql_store.record_analysis(
            uuid.uuid4(),
            summary="How plants turn light into sugar.",
            outline=outline,
            suggested_topics=["photosynthesis", "chlorophyll"],
            learning_objectives=["Describe the light reactions"],
        )

        assert mock_session.execute.await_count == 1
        stmt = mock_session.execute.await_args.args[0]
        sql = _compiled(stmt)
        params = stmt.compile(dialect=postgresql.dialect()).params
        assert sql.startswith("UPDATE curriculum_materials SET")
        assert "curriculum_materials.deleted_at IS NULL" in sql
        assert params["ai_summary"] == "How plants turn light into sugar."
        assert params["ai_outline"] == outline
        assert params["suggested_topics"] == ["photosynthesis", "chlorophyll"]
        assert params["learning_objectives"] == ["Describe the light reactions"]

    async def test_record_analysis_missing_row(self, sql_store, mock_session):
        mock_session.execute.return_value = MagicMock(rowcount=0)

        with pytest.raises(PersistenceError, match="no longer exists"):
            await sql_store.record_analysis(uuid.uuid4(), "s", {}, [], [])

    async def test_record_analysis_database_error(self, sql_store, mock_session):
        mock_session.execute.side_effect = _db_down()

        with pytest.raises(PersistenceError, match="Failed to store curriculum analysis"):
            await sql_store.record_analysis(uuid.uuid4(), "s", {}, [], [])
