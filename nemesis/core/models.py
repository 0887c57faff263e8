"""
Domain model for a Nemesis study session.

Every object here is immutable. The session aggregate is only ever replaced
by the reducer in :mod:`nemesis.core.session_store`, never edited in place.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nemesis.agents.schemas import CoachReading, OrchestratorDecision


SCALE_MIN = 1
SCALE_MAX = 10


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def round_half_up(value: float) -> int:
    """Round .5 upwards (2.5 -> 3) instead of to the nearest even integer."""
    return math.floor(value + 0.5)


def _check_scale(name: str, value: int) -> None:
    if not SCALE_MIN <= value <= SCALE_MAX:
        raise ValueError(f"{name} must be within [{SCALE_MIN}, {SCALE_MAX}], got {value}")


class ChatRole(str, Enum):
    """Speaker of a war-room chat turn."""
    LEARNER = "learner"
    ORCHESTRATOR = "orchestrator"
    COACH = "coach"


@dataclass(frozen=True)
class Topic:
    """A unit of study the learner can be vulnerable in."""

    id: str
    name: str
    category: str = ""
    difficulty: int = 5          # static, 1-10
    vulnerability: int = 5       # recomputed on Record, 1-10
    exam_weight: int = 5         # static importance, 1-10
    connections: frozenset[str] = frozenset()
    failure_mode: str = ""
    last_reviewed_at: datetime | None = None
    review_count: int = 0
    key_concept_count: int = 0

    def __post_init__(self) -> None:
        _check_scale("difficulty", self.difficulty)
        _check_scale("vulnerability", self.vulnerability)
        _check_scale("exam_weight", self.exam_weight)
        if self.review_count < 0:
            raise ValueError("review_count cannot be negative")
        if self.key_concept_count < 0:
            raise ValueError("key_concept_count cannot be negative")
        # Accept any iterable of ids from callers
        if not isinstance(self.connections, frozenset):
            object.__setattr__(self, "connections", frozenset(self.connections))

    @property
    def never_reviewed(self) -> bool:
        return self.last_reviewed_at is None


@dataclass(frozen=True)
class HistoryRecord:
    """One answered question. Never mutated or deleted."""

    topic_id: str
    correct: bool
    timestamp: datetime
    difficulty: int


@dataclass(frozen=True)
class ChatMessage:
    """One turn of the orchestrator conversation."""

    role: ChatRole
    text: str
    timestamp: datetime = field(default_factory=utcnow)
    routing: OrchestratorDecision | None = None
    coach: CoachReading | None = None


@dataclass(frozen=True)
class ExamResult:
    """Summary of a completed exam attempt."""

    topic_ids: tuple[str, ...]
    correctness: tuple[bool | None, ...]  # None = left unanswered
    score: int
    completed_at: datetime
    seconds_used: int = 0

    @property
    def total(self) -> int:
        return len(self.correctness)

    @property
    def percent(self) -> int:
        if not self.correctness:
            return 0
        return round_half_up(self.score / len(self.correctness) * 100)


@dataclass(frozen=True)
class Session:
    """Aggregate root: the whole state of one study session."""

    learner_label: str = ""
    raw_course_input: str = ""
    shadow_assessment: str = ""
    topics: tuple[Topic, ...] = ()
    history: tuple[HistoryRecord, ...] = ()
    chat_log: tuple[ChatMessage, ...] = ()
    exam_results: tuple[ExamResult, ...] = ()
    total_xp: int = 0

    def find_topic(self, topic_id: str | None) -> Topic | None:
        if topic_id is None:
            return None
        for topic in self.topics:
            if topic.id == topic_id:
                return topic
        return None

    def history_for(self, topic_id: str) -> tuple[HistoryRecord, ...]:
        return tuple(r for r in self.history if r.topic_id == topic_id)


@dataclass(frozen=True)
class BootstrapPayload:
    """Shape accepted by the Init action at session start."""

    learner_label: str
    raw_course_input: str
    topics: tuple[Topic, ...]
    shadow_assessment: str = ""
