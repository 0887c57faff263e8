"""
Urgency Ranker - remediation priority derived on read.

urgency = round(0.4 * (100 - retention) + 3.5 * vulnerability + 2.0 * exam_weight)

Because retention depends on the clock, the ranking shifts with the passage
of time alone. Nothing here is stored on the session.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime

from nemesis.core.models import Topic, round_half_up, utcnow
from nemesis.core.retention import retention

FORGETTING_WEIGHT = 0.4
VULNERABILITY_WEIGHT = 3.5
EXAM_WEIGHT = 2.0


def urgency(topic: Topic, now: datetime | None = None) -> int:
    """Scalar priority for a topic; higher means more urgent."""
    forgotten = 100 - retention(topic, now)
    return round_half_up(
        FORGETTING_WEIGHT * forgotten
        + VULNERABILITY_WEIGHT * topic.vulnerability
        + EXAM_WEIGHT * topic.exam_weight
    )


def rank_topics(topics: Iterable[Topic], now: datetime | None = None) -> list[Topic]:
    """Topics sorted by descending urgency; ties keep their input order."""
    now = now or utcnow()
    # sorted() is stable, so equal scores never swap places
    return sorted(topics, key=lambda t: urgency(t, now), reverse=True)


def top_urgent(topics: Sequence[Topic], n: int, now: datetime | None = None) -> list[Topic]:
    return rank_topics(topics, now)[: max(0, n)]


def most_urgent(topics: Sequence[Topic], now: datetime | None = None) -> Topic | None:
    ranked = rank_topics(topics, now)
    return ranked[0] if ranked else None
