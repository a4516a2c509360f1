"""Historical backfill for newly onboarded patients.

A new patient gets one synthetic record per day for the trailing window
(today and the 30 days before it by default).  Records are generated first,
then written through ``MetricStore.insert_batches`` in chunks; the store runs
every chunk inside one transaction, so a failed backfill leaves nothing
behind and can simply be retried.

Usage::

    orchestrator = BackfillOrchestrator(store, generator)
    result = await orchestrator.backfill(patient_id, now)
    logger.info("Backfilled %d records", result.records_saved)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from src.mockhealth.base import HealthMetric, MetricStore, MetricStoreError, start_of_day
from src.mockhealth.generator import MetricGenerator

logger = logging.getLogger("healthnest.mockhealth.backfill")

DEFAULT_BACKFILL_DAYS = 31
DEFAULT_BATCH_SIZE = 10


class BackfillError(Exception):
    """Raised when a backfill cannot be generated or persisted."""


@dataclass
class BackfillResult:
    """Outcome of a backfill or gap-fill run.

    Attributes:
        patient_id:    Patient the records were written for.
        dates_filled:  Calendar days that received a new record, oldest first.
        records_saved: Number of rows written.
    """

    patient_id: int
    dates_filled: list[date] = field(default_factory=list)
    records_saved: int = 0


class BackfillOrchestrator:
    """Generate and persist historical records for one patient at a time."""

    def __init__(
        self,
        store: MetricStore,
        generator: MetricGenerator,
        days: int = DEFAULT_BACKFILL_DAYS,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if days < 1:
            raise ValueError("backfill window must cover at least one day")
        self._store = store
        self._generator = generator
        self.days = days
        self.batch_size = batch_size

    def window_moments(self, now: datetime) -> list[datetime]:
        """Timestamps for every day in the window, oldest first, ending at ``now``."""
        return [now - timedelta(days=offset) for offset in range(self.days - 1, -1, -1)]

    def window_start(self, now: datetime) -> datetime:
        return start_of_day(now - timedelta(days=self.days - 1))

    async def backfill(self, patient_id: int, now: datetime) -> BackfillResult:
        """Write one record per day of the window for ``patient_id``.

        Raises:
            BackfillError: If the batched write fails.  Nothing is committed.
        """
        moments = self.window_moments(now)
        return await self._persist(patient_id, moments)

    async def fill_missing_days(self, patient_id: int, now: datetime) -> BackfillResult:
        """Write records only for window days that have none yet.

        Raises:
            BackfillError: If reading existing records or writing new ones fails.
        """
        try:
            existing = await self._store.list_between(patient_id, self.window_start(now))
        except MetricStoreError as exc:
            raise BackfillError(
                f"error reading existing metrics for patient {patient_id}: {exc}"
            ) from exc

        seen = {m.date.date() for m in existing}
        missing = [m for m in self.window_moments(now) if m.date() not in seen]
        if not missing:
            return BackfillResult(patient_id=patient_id)

        logger.info(
            "Filling %d missing day(s) for patient %d", len(missing), patient_id
        )
        return await self._persist(patient_id, missing)

    async def _persist(self, patient_id: int, moments: list[datetime]) -> BackfillResult:
        metrics: list[HealthMetric] = [
            self._generator.generate(patient_id, moment) for moment in moments
        ]
        try:
            saved = await self._store.insert_batches(metrics, self.batch_size)
        except MetricStoreError as exc:
            raise BackfillError(
                f"error batch inserting metrics for patient {patient_id}: {exc}"
            ) from exc

        logger.info(
            "Backfill complete for patient %d: %d records (%s → %s)",
            patient_id,
            saved,
            moments[0].date(),
            moments[-1].date(),
        )
        return BackfillResult(
            patient_id=patient_id,
            dates_filled=[m.date() for m in moments],
            records_saved=saved,
        )
