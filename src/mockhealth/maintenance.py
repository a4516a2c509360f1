"""Scheduled repair of corrupted metric rows.

Rows with ``heart_rate = 0`` come from an older ingestion bug and break the
charts and the AI context.  The maintenance pass deletes them on its own
interval instead of piggybacking on every freshness check.
"""

from __future__ import annotations

import logging

from src.mockhealth.base import MetricStore

logger = logging.getLogger("healthnest.mockhealth.maintenance")


class MaintenancePass:
    """Delete corrupted metric rows."""

    def __init__(self, store: MetricStore) -> None:
        self._store = store

    async def run(self, patient_id: int | None = None) -> int:
        """Purge corrupted rows, for one patient or for everyone.

        Returns:
            Number of rows deleted.

        Raises:
            MetricStoreError: If the delete fails.
        """
        removed = await self._store.delete_corrupted(patient_id)
        if removed:
            scope = f"patient {patient_id}" if patient_id is not None else "all patients"
            logger.warning("Removed %d corrupted metric row(s) for %s", removed, scope)
        return removed
