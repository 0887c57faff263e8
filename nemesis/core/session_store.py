"""
Session Store - the single owner of session state.

State changes go through exactly five actions applied by a pure transition
function, ``reduce(session, action, now)``. ``SessionStore`` wraps it as an
injectable container with a clock so tests can replay actions deterministically.

Failure semantics:
- unknown actions are ignored (state returned unchanged)
- a Record for an unknown topic still appends history and XP
- the reducer never raises
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable

from loguru import logger

from nemesis.core.models import (
    SCALE_MAX,
    SCALE_MIN,
    BootstrapPayload,
    ChatMessage,
    ExamResult,
    HistoryRecord,
    Session,
    Topic,
    round_half_up,
    utcnow,
)
from nemesis.core.urgency import most_urgent, rank_topics

# Trailing attempts per topic used to recompute vulnerability
VULNERABILITY_WINDOW = 6
# Vulnerability drop between 0% and 100% recent accuracy
ACCURACY_SPAN = 7

CORRECT_BASE_XP = 10
CORRECT_XP_PER_DIFFICULTY = 4
PARTICIPATION_XP = 2
DEFAULT_DIFFICULTY = 5


# =============================================================================
# Actions
# =============================================================================


@dataclass(frozen=True)
class Init:
    """Merge the bootstrap payload into the session. Fields left None are not merged."""
    learner_label: str | None = None
    raw_course_input: str | None = None
    topics: tuple[Topic, ...] | None = None
    shadow_assessment: str | None = None

    @classmethod
    def from_payload(cls, payload: BootstrapPayload) -> Init:
        return cls(
            learner_label=payload.learner_label,
            raw_course_input=payload.raw_course_input,
            topics=tuple(payload.topics),
            shadow_assessment=payload.shadow_assessment,
        )


@dataclass(frozen=True)
class SetTopics:
    topics: tuple[Topic, ...]


@dataclass(frozen=True)
class Record:
    topic_id: str
    correct: bool
    difficulty: int


@dataclass(frozen=True)
class Chat:
    message: ChatMessage


@dataclass(frozen=True)
class ExamResultAction:
    result: ExamResult


Action = Init | SetTopics | Record | Chat | ExamResultAction


# =============================================================================
# Transition function
# =============================================================================


def xp_for(correct: bool, difficulty: int) -> int:
    if correct:
        return CORRECT_BASE_XP + difficulty * CORRECT_XP_PER_DIFFICULTY
    return PARTICIPATION_XP


def recompute_vulnerability(history: tuple[HistoryRecord, ...], topic_id: str) -> int:
    """Vulnerability from the last few attempts on one topic (recency-biased)."""
    recent = [r for r in history if r.topic_id == topic_id][-VULNERABILITY_WINDOW:]
    if not recent:
        raise ValueError(f"no history for topic {topic_id!r}")
    ratio = sum(1 for r in recent if r.correct) / len(recent)
    raw = SCALE_MAX - ratio * ACCURACY_SPAN
    return round_half_up(max(SCALE_MIN, min(SCALE_MAX, raw)))


def _unique_topics(topics: tuple[Topic, ...]) -> tuple[Topic, ...]:
    seen: set[str] = set()
    unique = []
    for topic in topics:
        if topic.id in seen:
            logger.warning(f"Dropping duplicate topic id {topic.id!r}")
            continue
        seen.add(topic.id)
        unique.append(topic)
    return tuple(unique)


def _record_difficulty(difficulty: Any) -> int:
    """Difficulty clamped to the 1-10 scale; non-integers fall back to the default."""
    if isinstance(difficulty, bool) or not isinstance(difficulty, int):
        logger.debug(f"Record difficulty {difficulty!r} is not an integer, using {DEFAULT_DIFFICULTY}")
        return DEFAULT_DIFFICULTY
    clamped = max(SCALE_MIN, min(SCALE_MAX, difficulty))
    if clamped != difficulty:
        logger.debug(f"Record difficulty {difficulty} clamped to {clamped}")
    return clamped


def _apply_record(session: Session, action: Record, now: datetime) -> Session:
    action = replace(action, difficulty=_record_difficulty(action.difficulty))
    history = session.history + (
        HistoryRecord(
            topic_id=action.topic_id,
            correct=action.correct,
            timestamp=now,
            difficulty=action.difficulty,
        ),
    )
    total_xp = session.total_xp + xp_for(action.correct, action.difficulty)

    if session.find_topic(action.topic_id) is None:
        logger.debug(f"Record for unknown topic {action.topic_id!r}: history only")
        return replace(session, history=history, total_xp=total_xp)

    vulnerability = recompute_vulnerability(history, action.topic_id)
    topics = tuple(
        replace(
            t,
            vulnerability=vulnerability,
            last_reviewed_at=now,
            review_count=t.review_count + 1,
        )
        if t.id == action.topic_id
        else t
        for t in session.topics
    )
    return replace(session, history=history, total_xp=total_xp, topics=topics)


def reduce(session: Session, action: Any, now: datetime | None = None) -> Session:
    """Apply one action and return the next session snapshot."""
    now = now or utcnow()

    if isinstance(action, Init):
        changes: dict[str, Any] = {}
        if action.learner_label is not None:
            changes["learner_label"] = action.learner_label
        if action.raw_course_input is not None:
            changes["raw_course_input"] = action.raw_course_input
        if action.shadow_assessment is not None:
            changes["shadow_assessment"] = action.shadow_assessment
        if action.topics is not None:
            changes["topics"] = _unique_topics(tuple(action.topics))
        return replace(session, **changes)

    if isinstance(action, SetTopics):
        return replace(session, topics=_unique_topics(tuple(action.topics)))

    if isinstance(action, Record):
        return _apply_record(session, action, now)

    if isinstance(action, Chat):
        return replace(session, chat_log=session.chat_log + (action.message,))

    if isinstance(action, ExamResultAction):
        return replace(session, exam_results=session.exam_results + (action.result,))

    logger.debug(f"Ignoring unknown action {type(action).__name__}")
    return session


# =============================================================================
# Store
# =============================================================================


@dataclass(frozen=True)
class SessionStats:
    answered: int
    correct: int
    accuracy: int          # percent, 0 when nothing answered
    avg_vulnerability: int
    total_xp: int


class SessionStore:
    """
    Injectable container around ``reduce``.

    Actions are applied synchronously in submission order. Readers get
    immutable snapshots; retention and urgency views are computed on read.
    """

    def __init__(
        self,
        initial: Session | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._state = initial or Session()
        self._clock = clock

    @property
    def state(self) -> Session:
        return self._state

    def now(self) -> datetime:
        return self._clock()

    def dispatch(self, action: Any) -> Session:
        self._state = reduce(self._state, action, self._clock())
        return self._state

    # -- derived views -------------------------------------------------------

    def topic(self, topic_id: str | None) -> Topic | None:
        return self._state.find_topic(topic_id)

    def ranked_topics(self, now: datetime | None = None) -> list[Topic]:
        return rank_topics(self._state.topics, now or self._clock())

    def most_urgent(self, now: datetime | None = None) -> Topic | None:
        return most_urgent(self._state.topics, now or self._clock())

    def stats(self) -> SessionStats:
        state = self._state
        answered = len(state.history)
        correct = sum(1 for r in state.history if r.correct)
        accuracy = round_half_up(correct / answered * 100) if answered else 0
        avg_vuln = (
            round_half_up(sum(t.vulnerability for t in state.topics) / len(state.topics))
            if state.topics
            else 0
        )
        return SessionStats(
            answered=answered,
            correct=correct,
            accuracy=accuracy,
            avg_vulnerability=avg_vuln,
            total_xp=state.total_xp,
        )

    def topic_accuracy(self, topic_id: str) -> int | None:
        records = self._state.history_for(topic_id)
        if not records:
            return None
        return round_half_up(sum(1 for r in records if r.correct) / len(records) * 100)
