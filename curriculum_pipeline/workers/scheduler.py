"""
Batch Scheduler — bounded, non-reentrant sweeps over pending materials

One sweep:
  1. list up to `batch_size` pending ids (oldest first)
  2. process them one after another through MaterialProcessor
  3. aggregate outcomes: processed == succeeded + failed

Records lost to a concurrent claim (manual trigger racing the sweep) are
reported as `skipped` and are not part of `processed`.

Reentrancy: a sweep holds a non-blocking lock for its whole duration. A tick
that arrives while a sweep is running is dropped and logged, never queued.
The lock is a threading.Lock so it also holds when Celery runs the coroutine
on a helper thread.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import asdict, dataclass

from curriculum_pipeline.processing.orchestrator import MaterialProcessor
from curriculum_pipeline.store.base import MaterialStore

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    processed: int = 0
    succeeded: int = 0
    failed:    int = 0
    skipped:   int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class BatchScheduler:
    """
    Constructor args:
        processor        : MaterialProcessor used for every record
        store            : MaterialStore used to discover pending records
        batch_size       : max records per sweep
        interval_seconds : delay between ticks in run_forever()
    """

    def __init__(
        self,
        processor:        MaterialProcessor,
        store:            MaterialStore,
        batch_size:       int = 10,
        interval_seconds: float = 300,
    ) -> None:
        self._processor = processor
        self._store     = store
        self._batch_size = batch_size
        self._interval  = interval_seconds
        self._sweep_lock = threading.Lock()

    @property
    def sweep_in_progress(self) -> bool:
        return self._sweep_lock.locked()

    async def run_sweep(self) -> SweepResult | None:
        """
        Run one sweep. Returns None when another sweep already holds the slot.
        Errors for individual records never abort the sweep.
        """
        if not self._sweep_lock.acquire(blocking=False):
            logger.warning("Sweep already in progress, dropping tick")
            return None

        try:
            return await self._sweep()
        finally:
            self._sweep_lock.release()

    async def _sweep(self) -> SweepResult:
        t0 = time.monotonic()
        result = SweepResult()

        pending_ids = await self._store.list_pending(self._batch_size)
        if not pending_ids:
            logger.debug("Sweep | no pending materials")
            return result

        logger.info("Sweep start | pending=%d cap=%d", len(pending_ids), self._batch_size)

        for material_id in pending_ids:
            try:
                outcome = await self._processor.process(material_id)
            except Exception:
                # process() is not expected to raise; count it and keep going
                logger.exception("Sweep | unexpected error | material=%s", material_id)
                result.processed += 1
                result.failed += 1
                continue

            if outcome.claimed_elsewhere:
                result.skipped += 1
                continue

            result.processed += 1
            if outcome.success:
                result.succeeded += 1
            else:
                result.failed += 1

        logger.info(
            "Sweep complete | processed=%d succeeded=%d failed=%d skipped=%d elapsed_ms=%.0f",
            result.processed, result.succeeded, result.failed, result.skipped,
            (time.monotonic() - t0) * 1000,
        )
        return result

    async def run_forever(self, stop: asyncio.Event | None = None) -> None:
        """
        In-process driver: one tick every `interval_seconds` until `stop` is set.
        The first tick fires after one full interval.
        """
        stop = stop or asyncio.Event()
        logger.info("Sweep loop started | interval=%ss cap=%d", self._interval, self._batch_size)

        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
            if stop.is_set():
                break

            try:
                await self.run_sweep()
            except Exception:
                logger.exception("Sweep failed")

        logger.info("Sweep loop stopped")
