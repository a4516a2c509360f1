"""Synthetic daily health-metrics generator.

Produces one plausible ``HealthMetric`` per patient per day for demo and
onboarding purposes.  Distributions:

    Heart rate       70–90 bpm, 10% chance of a further −10..+10 shift
    Blood pressure   110–130 / 70–80 mmHg, 10% chance of −15..+15 / −10..+10
    SpO2             90% normal 95–100, 8% mild hypoxia 90–94, 2% severe 85–90
    Steps            scaled by hour of day (night quartered, afternoon peak)
    Sleep            4–10 h; light 45–55%, deep 20–30%, REM 25–35%; 0–30 min awake
    Anomalies        irregular rhythm 5%, fall detected 1%
    Weight           per-patient baseline (50–100 kg) ± 0.075 kg

Each call draws from a private ``random.Random`` seeded with the target
timestamp and patient id, so concurrent generation never shares RNG state.
"""

from __future__ import annotations

import logging
import random
import threading
from datetime import datetime

from src.mockhealth.base import HealthMetric, SleepStages

logger = logging.getLogger("healthnest.mockhealth.generator")

# Max distance between any two daily weights of one patient (kg).
WEIGHT_SPREAD_KG = 0.15

BASE_WEIGHT_MIN_KG = 50.0
BASE_WEIGHT_RANGE_KG = 50.0


class BaseWeightCache:
    """Per-patient baseline weight, drawn once and reused for every record.

    Thread-safe; entries live as long as the cache.
    """

    def __init__(self) -> None:
        self._weights: dict[int, float] = {}
        self._lock = threading.Lock()

    def get_or_create(self, patient_id: int, rng: random.Random) -> float:
        with self._lock:
            weight = self._weights.get(patient_id)
            if weight is None:
                weight = BASE_WEIGHT_MIN_KG + rng.random() * BASE_WEIGHT_RANGE_KG
                self._weights[patient_id] = weight
                logger.debug("Base weight for patient %d: %.2f kg", patient_id, weight)
            return weight

    def __contains__(self, patient_id: int) -> bool:
        with self._lock:
            return patient_id in self._weights

    def __len__(self) -> int:
        with self._lock:
            return len(self._weights)


# ---------------------------------------------------------------------------
# Component generators
# ---------------------------------------------------------------------------


def steps_for_hour(rng: random.Random, hour: int) -> int:
    """Step count for a reading taken at ``hour`` (0–23)."""
    base = rng.randrange(2000)
    if hour < 6:
        return base // 4
    if hour < 12:
        return base + rng.randrange(5000)
    if hour < 18:
        return base + rng.randrange(8000)
    return base + rng.randrange(4000)


def generate_sleep(rng: random.Random) -> tuple[SleepStages, float]:
    """Return (stages, duration_hours)."""
    duration = 4.0 + rng.random() * 6.0
    stages = SleepStages(
        light=45.0 + rng.random() * 10.0,
        deep=20.0 + rng.random() * 10.0,
        rem=25.0 + rng.random() * 10.0,
        awake_time=rng.randrange(31),
    )
    return stages, duration


def generate_oxygen_level(rng: random.Random) -> float:
    r = rng.random() * 100
    if r < 2:  # severe hypoxia
        return 85.0 + rng.random() * 5.0
    if r < 10:  # mild hypoxia
        return 90.0 + rng.random() * 4.0
    return 95.0 + rng.random() * 5.0


def generate_heart_rate(rng: random.Random) -> int:
    heart_rate = 70 + rng.randrange(21)
    if rng.random() < 0.1:
        heart_rate += rng.randrange(21) - 10
    return heart_rate


def generate_blood_pressure(rng: random.Random) -> tuple[int, int]:
    systolic = 110 + rng.randrange(21)
    diastolic = 70 + rng.randrange(11)
    if rng.random() < 0.1:
        systolic += rng.randrange(31) - 15
        diastolic += rng.randrange(21) - 10
    return systolic, diastolic


def seed_for(patient_id: int, moment: datetime) -> int:
    """RNG seed derived from the target timestamp and patient id."""
    return int(moment.timestamp() * 1_000_000) + patient_id


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class MetricGenerator:
    """Generate synthetic ``HealthMetric`` records.

    Usage::

        generator = MetricGenerator()
        metric = generator.generate(patient_id=7, moment=datetime.now(timezone.utc))
    """

    def __init__(self, base_weights: BaseWeightCache | None = None) -> None:
        self.base_weights = base_weights if base_weights is not None else BaseWeightCache()

    def generate(self, patient_id: int, moment: datetime) -> HealthMetric:
        """Produce one fully-populated record stamped with ``moment``.

        Pure apart from populating the base-weight cache on first use.
        """
        rng = random.Random(seed_for(patient_id, moment))

        base_weight = self.base_weights.get_or_create(patient_id, rng)
        weight = base_weight + (rng.random() - 0.5) * WEIGHT_SPREAD_KG

        sleep, sleep_duration = generate_sleep(rng)
        irregular_rhythm = rng.random() < 0.05
        fall_detected = rng.random() < 0.01

        heart_rate = generate_heart_rate(rng)
        systolic, diastolic = generate_blood_pressure(rng)

        return HealthMetric(
            patient_id=patient_id,
            date=moment,
            weight=weight,
            heart_rate=heart_rate,
            systolic_bp=systolic,
            diastolic_bp=diastolic,
            oxygen_saturation=generate_oxygen_level(rng),
            steps_count=steps_for_hour(rng, moment.hour),
            sleep=sleep,
            sleep_duration=sleep_duration,
            irregular_rhythm=irregular_rhythm,
            fall_detected=fall_detected,
        )
