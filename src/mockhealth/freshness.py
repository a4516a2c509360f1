"""Keep "today" populated for every monitored patient.

``FreshnessEnsurer.ensure_today`` counts the patient's records inside the
current UTC day window and, when there are none, generates and stores one.
An ``InFlightGuard`` makes overlapping calls for the same patient drop out
immediately instead of racing to insert a second record.

The guard is in-process only.  Two API replicas can still each write a
record for the same day; the day-level uniqueness is a soft invariant.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from src.mockhealth.base import Clock, MetricStore, SystemClock, day_window
from src.mockhealth.generator import MetricGenerator

logger = logging.getLogger("healthnest.mockhealth.freshness")


class InFlightGuard:
    """Set of patient ids with generation currently in progress.

    Usage::

        with guard.claim(patient_id) as claimed:
            if not claimed:
                return  # someone else is already on it
            ...
    """

    def __init__(self) -> None:
        self._active: set[int] = set()
        self._lock = threading.Lock()

    def try_acquire(self, patient_id: int) -> bool:
        """Mark ``patient_id`` as in flight.  False if it already was."""
        with self._lock:
            if patient_id in self._active:
                return False
            self._active.add(patient_id)
            return True

    def release(self, patient_id: int) -> None:
        with self._lock:
            self._active.discard(patient_id)

    @contextmanager
    def claim(self, patient_id: int) -> Iterator[bool]:
        acquired = self.try_acquire(patient_id)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(patient_id)

    def is_active(self, patient_id: int) -> bool:
        with self._lock:
            return patient_id in self._active

    def __len__(self) -> int:
        with self._lock:
            return len(self._active)


class FreshnessEnsurer:
    """Generate today's record for a patient when it is missing."""

    def __init__(
        self,
        store: MetricStore,
        generator: MetricGenerator,
        guard: InFlightGuard,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._generator = generator
        self._guard = guard
        self._clock = clock or SystemClock()

    async def ensure_today(self, patient_id: int) -> bool:
        """Ensure the patient has a record for the current day.

        Returns:
            True if a record was created, False if one already existed or
            another caller was already generating for this patient.

        Raises:
            MetricStoreError: If counting or inserting fails.
        """
        with self._guard.claim(patient_id) as claimed:
            if not claimed:
                logger.debug("Generation already in flight for patient %d", patient_id)
                return False

            now = self._clock.now()
            start, end = day_window(now)
            count = await self._store.count_between(patient_id, start, end)
            if count > 0:
                return False

            metric = self._generator.generate(patient_id, now)
            await self._store.insert(metric)
            logger.info("Generated today's metrics for patient %d", patient_id)
            return True
