from curriculum_pipeline.store.base import (
    MaterialRecord,
    MaterialStatus,
    MaterialStore,
    ProcessingLogEntry,
)

__all__ = [
    "MaterialRecord",
    "MaterialStatus",
    "MaterialStore",
    "ProcessingLogEntry",
]
