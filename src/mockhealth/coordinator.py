"""Process-scoped owner of the mock health-data background machinery.

One ``HealthDataCoordinator`` is created in the app lifespan and handed to
routers through ``app.state``.  It owns:

    - the base-weight cache (inside its ``MetricGenerator``)
    - the in-flight guard used by the freshness check
    - the per-patient worker registry
    - the maintenance task

Per-patient workers are asyncio tasks that wake every ``update_interval``
seconds and make sure today's record exists.  They are started lazily the
first time a patient's history is backfilled or checked, never twice, and
run until ``stop_worker`` or ``shutdown`` cancels them.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone

from src.config import Settings
from src.mockhealth.backfill import BackfillError, BackfillOrchestrator, BackfillResult
from src.mockhealth.base import (
    Clock,
    MetricStore,
    MetricStoreError,
    SystemClock,
    day_window,
)
from src.mockhealth.freshness import FreshnessEnsurer, InFlightGuard
from src.mockhealth.generator import MetricGenerator
from src.mockhealth.maintenance import MaintenancePass

logger = logging.getLogger("healthnest.mockhealth.coordinator")

DEFAULT_UPDATE_INTERVAL = 3600  # 1 hour
DEFAULT_MAINTENANCE_INTERVAL = 6 * 3600


@dataclass
class WorkerHandle:
    """A running per-patient freshness worker.

    Attributes:
        patient_id: Patient the worker keeps fresh.
        task:       The asyncio task running the tick loop.
        started_at: UTC time the worker was registered.
    """

    patient_id: int
    task: asyncio.Task
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def running(self) -> bool:
        return not self.task.done()


class WorkerRegistry:
    """Patient id → ``WorkerHandle`` map behind a lock."""

    def __init__(self) -> None:
        self._handles: dict[int, WorkerHandle] = {}
        self._lock = threading.Lock()

    def register(self, handle: WorkerHandle) -> bool:
        """Add ``handle`` unless the patient already has one."""
        with self._lock:
            if handle.patient_id in self._handles:
                return False
            self._handles[handle.patient_id] = handle
            return True

    def get(self, patient_id: int) -> WorkerHandle | None:
        with self._lock:
            return self._handles.get(patient_id)

    def pop(self, patient_id: int) -> WorkerHandle | None:
        with self._lock:
            return self._handles.pop(patient_id, None)

    def drain(self) -> list[WorkerHandle]:
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
            return handles

    def __contains__(self, patient_id: int) -> bool:
        with self._lock:
            return patient_id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)


class HealthDataCoordinator:
    """Start, run and stop mock-data generation for every monitored patient.

    Usage::

        coordinator = HealthDataCoordinator(PostgresMetricStore())
        coordinator.start_maintenance()
        await coordinator.ensure_history(patient_id)   # backfill + worker
        ...
        await coordinator.shutdown()
    """

    def __init__(
        self,
        store: MetricStore,
        generator: MetricGenerator | None = None,
        clock: Clock | None = None,
        update_interval: float = DEFAULT_UPDATE_INTERVAL,
        maintenance_interval: float = DEFAULT_MAINTENANCE_INTERVAL,
        backfill_days: int = 31,
        batch_size: int = 10,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self.generator = generator or MetricGenerator()
        self.guard = InFlightGuard()
        self.workers = WorkerRegistry()
        self.update_interval = update_interval
        self.maintenance_interval = maintenance_interval

        self.freshness = FreshnessEnsurer(store, self.generator, self.guard, self._clock)
        self.backfiller = BackfillOrchestrator(
            store, self.generator, days=backfill_days, batch_size=batch_size
        )
        self.maintenance = MaintenancePass(store)

        self._maintenance_task: asyncio.Task | None = None
        self._closed = False

    @classmethod
    def from_settings(
        cls, settings: Settings, store: MetricStore
    ) -> "HealthDataCoordinator":
        return cls(
            store,
            update_interval=settings.mock_update_interval_seconds,
            maintenance_interval=settings.maintenance_interval_seconds,
            backfill_days=settings.backfill_days,
            batch_size=settings.backfill_batch_size,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def store(self) -> MetricStore:
        return self._store

    @property
    def clock(self) -> Clock:
        return self._clock

    # ------------------------------------------------------------------
    # Data operations
    # ------------------------------------------------------------------

    async def ensure_today(self, patient_id: int) -> bool:
        """Create today's record if missing.  See ``FreshnessEnsurer``."""
        return await self.freshness.ensure_today(patient_id)

    async def backfill(self, patient_id: int) -> BackfillResult:
        """Backfill the full window for a new patient and start its worker.

        Raises:
            BackfillError: If the write fails; no worker is started then.
        """
        result = await self.backfiller.backfill(patient_id, self._clock.now())
        self.start_worker(patient_id)
        return result

    async def ensure_history(self, patient_id: int) -> BackfillResult:
        """Make sure the trailing window is populated, then start the worker.

        A patient with no records in the window gets a full backfill;
        otherwise only the missing days are generated.  Concurrent calls for
        the same patient are dropped while one is in progress.

        Raises:
            BackfillError: If reading or writing the history fails.
        """
        with self.guard.claim(patient_id) as claimed:
            if not claimed:
                logger.debug("History check already in flight for patient %d", patient_id)
                return BackfillResult(patient_id=patient_id)

            now = self._clock.now()
            _, end_of_today = day_window(now)
            try:
                count = await self._store.count_between(
                    patient_id, self.backfiller.window_start(now), end_of_today
                )
            except MetricStoreError as exc:
                raise BackfillError(
                    f"error checking history for patient {patient_id}: {exc}"
                ) from exc

            if count == 0:
                result = await self.backfiller.backfill(patient_id, now)
            else:
                result = await self.backfiller.fill_missing_days(patient_id, now)

        self.start_worker(patient_id)
        return result

    async def run_maintenance(self, patient_id: int | None = None) -> int:
        """Purge corrupted rows now, for one patient or all of them."""
        return await self.maintenance.run(patient_id)

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    def start_worker(self, patient_id: int) -> bool:
        """Launch the patient's freshness worker unless one is registered.

        Must be called from within a running event loop.

        Returns:
            True if a new worker was started.
        """
        if self._closed or patient_id in self.workers:
            return False

        task = asyncio.get_running_loop().create_task(
            self._worker_loop(patient_id), name=f"mockhealth-worker-{patient_id}"
        )
        if not self.workers.register(WorkerHandle(patient_id=patient_id, task=task)):
            # Lost a registration race; the other worker wins.
            task.cancel()
            return False

        logger.info(
            "Started mock data worker for patient %d (interval=%ss)",
            patient_id,
            self.update_interval,
        )
        return True

    async def stop_worker(self, patient_id: int) -> bool:
        """Cancel and forget the patient's worker.  False if none was running."""
        handle = self.workers.pop(patient_id)
        if handle is None:
            return False
        await _cancel(handle.task)
        logger.info("Stopped mock data worker for patient %d", patient_id)
        return True

    async def _worker_loop(self, patient_id: int) -> None:
        while True:
            await asyncio.sleep(self.update_interval)
            try:
                await self.freshness.ensure_today(patient_id)
            except Exception:
                logger.exception("Error updating data for patient %d", patient_id)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def start_maintenance(self) -> bool:
        """Launch the periodic corrupted-row purge.  Idempotent."""
        if self._closed:
            return False
        if self._maintenance_task is not None and not self._maintenance_task.done():
            return False
        self._maintenance_task = asyncio.get_running_loop().create_task(
            self._maintenance_loop(), name="mockhealth-maintenance"
        )
        return True

    async def _maintenance_loop(self) -> None:
        while True:
            try:
                await self.run_maintenance()
            except Exception:
                logger.exception("Metric maintenance pass failed")
            await asyncio.sleep(self.maintenance_interval)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def shutdown(self) -> None:
        """Cancel every worker and the maintenance task, then wait for them."""
        self._closed = True
        handles = self.workers.drain()
        tasks = [h.task for h in handles]
        if self._maintenance_task is not None:
            tasks.append(self._maintenance_task)
            self._maintenance_task = None

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        logger.info("Mock data coordinator shut down (%d worker(s) stopped)", len(handles))


async def _cancel(task: asyncio.Task) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
