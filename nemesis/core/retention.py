"""
Retention Model - exponential forgetting curve per topic.

Retention is always derived from the topic's last review time and its current
vulnerability; it is never stored. More vulnerable topics decay faster:

    half_life = 24 / max(1, vulnerability / 2)   (hours)
    retention = 100 * exp(-ln2 * elapsed_hours / half_life)
"""

from __future__ import annotations

import math
from datetime import datetime

from nemesis.core.models import Topic, round_half_up, utcnow

# Retention reported for an assessed topic that has never been reviewed
UNREVIEWED_RETENTION = 80

BASE_HALF_LIFE_HOURS = 24.0
LN2 = math.log(2)

# Thresholds for retention_band()
CRITICAL_BELOW = 50
FADING_BELOW = 75


def half_life_hours(vulnerability: int) -> float:
    """Hours for retention to halve at the given vulnerability."""
    return BASE_HALF_LIFE_HOURS / max(1.0, vulnerability / 2)


def _decay(elapsed_hours: float, vulnerability: int) -> float:
    elapsed_hours = max(0.0, elapsed_hours)
    return 100.0 * math.exp(-LN2 * elapsed_hours / half_life_hours(vulnerability))


def elapsed_hours(topic: Topic, now: datetime | None = None) -> float | None:
    """Hours since the topic was last reviewed, or None if never reviewed."""
    if topic.last_reviewed_at is None:
        return None
    now = now or utcnow()
    return (now - topic.last_reviewed_at).total_seconds() / 3600


def retention(topic: Topic, now: datetime | None = None) -> int:
    """
    Modeled retention percentage for a topic at ``now``.

    Returns an integer in [0, 100]. Never-reviewed topics get the
    fixed baseline. A review timestamp in the future counts as zero
    elapsed hours.
    """
    hours = elapsed_hours(topic, now)
    if hours is None:
        return UNREVIEWED_RETENTION
    return max(0, round_half_up(_decay(hours, topic.vulnerability)))


def hours_until(topic: Topic, threshold: float = 50) -> float:
    """Hours after the last review at which retention drops to ``threshold`` percent."""
    if not 0 < threshold < 100:
        raise ValueError("threshold must be strictly between 0 and 100")
    return half_life_hours(topic.vulnerability) * math.log(100 / threshold) / LN2


def decay_curve(
    vulnerability: int,
    horizon_hours: float = 72,
    points: int = 50,
) -> list[tuple[float, float]]:
    """Projected (hour, retention) samples from a fresh review out to the horizon."""
    if points < 2:
        raise ValueError("points must be at least 2")
    step = horizon_hours / (points - 1)
    return [(i * step, _decay(i * step, vulnerability)) for i in range(points)]


def retention_band(value: int) -> str:
    if value < CRITICAL_BELOW:
        return "critical"
    if value < FADING_BELOW:
        return "fading"
    return "fresh"
