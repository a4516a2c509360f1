"""PostgreSQL-backed ``MetricStore`` for the ``health_metrics`` table."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, Sequence

import asyncpg

from src.mockhealth.base import (
    METRIC_COLUMNS,
    HealthMetric,
    MetricStoreError,
    chunked,
)
from src.services.database import get_connection

logger = logging.getLogger("healthnest.mockhealth.store")

_INSERT_SQL = (
    f"INSERT INTO health_metrics ({', '.join(METRIC_COLUMNS)}) "
    f"VALUES ({', '.join(f'${i}' for i in range(1, len(METRIC_COLUMNS) + 1))})"
)


@asynccontextmanager
async def _wrapped(action: str) -> AsyncGenerator[asyncpg.Connection, None]:
    """Acquire a transactional connection, re-raising DB failures as MetricStoreError."""
    try:
        async with get_connection() as conn:
            yield conn
    except (asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
        logger.warning("Metric store %s failed: %s", action, exc)
        raise MetricStoreError(f"{action} failed: {exc}") from exc


class PostgresMetricStore:
    """Read and write ``HealthMetric`` rows through the shared asyncpg pool."""

    async def count_between(
        self, patient_id: int, start: datetime, end: datetime
    ) -> int:
        async with _wrapped("count") as conn:
            return await conn.fetchval(
                """
                SELECT COUNT(*) FROM health_metrics
                WHERE patient_id = $1 AND date >= $2 AND date < $3
                """,
                patient_id,
                start,
                end,
            )

    async def insert(self, metric: HealthMetric) -> HealthMetric:
        async with _wrapped("insert") as conn:
            row = await conn.fetchrow(
                _INSERT_SQL + " RETURNING id, created_at", *metric.to_row()
            )
        metric.id = row["id"]
        metric.created_at = row["created_at"]
        return metric

    async def insert_batches(
        self, metrics: Sequence[HealthMetric], batch_size: int
    ) -> int:
        """Insert ``metrics`` in chunks of ``batch_size`` within one transaction."""
        saved = 0
        async with _wrapped("batch insert") as conn:
            for batch in chunked(metrics, batch_size):
                await conn.executemany(_INSERT_SQL, [m.to_row() for m in batch])
                saved += len(batch)
        return saved

    async def list_between(
        self, patient_id: int, start: datetime, end: datetime | None = None
    ) -> list[HealthMetric]:
        async with _wrapped("list") as conn:
            if end is None:
                rows = await conn.fetch(
                    """
                    SELECT * FROM health_metrics
                    WHERE patient_id = $1 AND date >= $2
                    ORDER BY date ASC
                    """,
                    patient_id,
                    start,
                )
            else:
                rows = await conn.fetch(
                    """
                    SELECT * FROM health_metrics
                    WHERE patient_id = $1 AND date >= $2 AND date < $3
                    ORDER BY date ASC
                    """,
                    patient_id,
                    start,
                    end,
                )
        return [HealthMetric.from_row(r) for r in rows]

    async def latest(self, patient_id: int) -> HealthMetric | None:
        async with _wrapped("latest") as conn:
            row = await conn.fetchrow(
                "SELECT * FROM health_metrics WHERE patient_id = $1 ORDER BY date DESC LIMIT 1",
                patient_id,
            )
        return HealthMetric.from_row(row) if row else None

    async def delete_corrupted(self, patient_id: int | None = None) -> int:
        async with _wrapped("delete corrupted") as conn:
            if patient_id is None:
                status = await conn.execute(
                    "DELETE FROM health_metrics WHERE heart_rate = 0"
                )
            else:
                status = await conn.execute(
                    "DELETE FROM health_metrics WHERE patient_id = $1 AND heart_rate = 0",
                    patient_id,
                )
        # asyncpg returns e.g. "DELETE 3"
        return int(status.split()[-1])
