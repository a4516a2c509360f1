"""Synthetic health-data generation for HealthNest.

Patients without a real device still need a populated dashboard, so the API
generates plausible daily metrics for them: a 31-day history on onboarding,
then one record per day kept fresh by a per-patient background worker.

Modules:
    base        — HealthMetric record, MetricStore / Clock protocols
    generator   — Probability-driven daily record generator + base-weight cache
    backfill    — Historical window backfill and gap filling
    freshness   — "Today has a record" check with in-flight guard
    maintenance — Scheduled purge of corrupted rows
    coordinator — Process-scoped owner of workers, guard and caches
    store       — PostgreSQL MetricStore
"""

from src.mockhealth.backfill import BackfillError, BackfillOrchestrator, BackfillResult
from src.mockhealth.base import HealthMetric, MetricStore, MetricStoreError, SleepStages
from src.mockhealth.coordinator import HealthDataCoordinator
from src.mockhealth.generator import MetricGenerator

__all__ = [
    "BackfillError",
    "BackfillOrchestrator",
    "BackfillResult",
    "HealthDataCoordinator",
    "HealthMetric",
    "MetricGenerator",
    "MetricStore",
    "MetricStoreError",
    "SleepStages",
]
