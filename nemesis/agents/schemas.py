"""
Response shapes for every external prompt role, plus the validation boundary.

The reasoning service answers in loosely formatted JSON. ``parse_structured``
turns raw text into one of the models below or an explicit ``NoDecision`` -
callers never see half-parsed dictionaries or None sentinels.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from nemesis.core.models import SCALE_MAX, SCALE_MIN, Topic, round_half_up

AgentName = Literal["nemesis", "socrates", "coach", "exam", "review", "shadow"]
UrgencyTier = Literal["high", "medium", "low"]
OptionKey = Literal["A", "B", "C", "D"]

OPTION_KEYS = ("A", "B", "C", "D")

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


@dataclass(frozen=True)
class NoDecision:
    """The service produced nothing usable: transport failure, empty body or bad shape."""
    reason: str


class _Shape(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


# =============================================================================
# Orchestrator
# =============================================================================


class OrchestratorDecision(_Shape):
    agent: AgentName
    topic_id: str | None = Field(default=None, alias="topicId")
    reasoning: str = ""
    coach_note: str | None = Field(default=None, alias="coachNote")
    urgency: UrgencyTier = "medium"

    @field_validator("topic_id", mode="before")
    @classmethod
    def _coerce_topic_id(cls, value: Any) -> Any:
        # Services sometimes send numeric ids
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


# =============================================================================
# Topic mapping (shadow agent)
# =============================================================================


def _clamp_scale(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return max(SCALE_MIN, min(SCALE_MAX, round_half_up(value)))
    return value


class MappedTopic(_Shape):
    id: str
    name: str
    category: str = ""
    difficulty: int = 5
    vulnerability: int = 5
    exam_weight: int = Field(default=5, alias="examWeight")
    connections: list[str] = Field(default_factory=list)
    failure_mode: str = Field(default="", alias="failureMode")
    key_concept_count: int = Field(default=0, ge=0, alias="keyConceptCount")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("difficulty", "vulnerability", "exam_weight", mode="before")
    @classmethod
    def _scale(cls, value: Any) -> Any:
        return _clamp_scale(value)

    def to_topic(self, known_ids: set[str]) -> Topic:
        return Topic(
            id=self.id,
            name=self.name,
            category=self.category,
            difficulty=self.difficulty,
            vulnerability=self.vulnerability,
            exam_weight=self.exam_weight,
            connections=frozenset(c for c in self.connections if c in known_ids and c != self.id),
            failure_mode=self.failure_mode,
            key_concept_count=self.key_concept_count,
        )


class TopicMapping(_Shape):
    topics: list[MappedTopic] = Field(default_factory=list)
    assessment: str = ""

    def to_topics(self) -> tuple[Topic, ...]:
        """Domain topics, first occurrence wins on duplicate ids."""
        known = {t.id for t in self.topics}
        seen: set[str] = set()
        result = []
        for mapped in self.topics:
            if mapped.id in seen:
                continue
            seen.add(mapped.id)
            result.append(mapped.to_topic(known))
        return tuple(result)


# =============================================================================
# Questions
# =============================================================================


class _Question(_Shape):
    question: str
    options: dict[OptionKey, str]
    correct: OptionKey
    concept: str = ""
    explanation: str = ""

    @model_validator(mode="after")
    def _complete_options(self) -> _Question:
        missing = [k for k in OPTION_KEYS if k not in self.options]
        if missing:
            raise ValueError(f"missing options: {', '.join(missing)}")
        return self

    def effective_difficulty(self, default: int = 5) -> int:
        return getattr(self, "difficulty", None) or default


class AttackQuestion(_Question):
    difficulty: int | None = Field(default=None, ge=1, le=10)
    trap: str = ""


class ReviewQuestion(_Question):
    difficulty: int | None = Field(default=None, ge=1, le=5)


# =============================================================================
# Coach
# =============================================================================


class CoachReading(_Shape):
    state: Literal["focused", "tired", "anxious", "frustrated", "avoidant", "overconfident"]
    intensity: int = Field(default=3, ge=1, le=5)
    message: str
    observation: str = ""
    recommendation: Literal["nemesis", "socrates", "review", "break", "exam"] | None = None
    energy_level: Literal["high", "medium", "low"] | None = Field(default=None, alias="energyLevel")


# =============================================================================
# Validation boundary
# =============================================================================

M = TypeVar("M", bound=BaseModel)


def _load_json(text: str) -> Any:
    cleaned = _FENCE.sub("", text).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    # Tolerate prose around a single JSON object
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("no JSON object in response")
    return json.loads(cleaned[start:end + 1])


def parse_structured(raw: Any, shape: type[M]) -> M | NoDecision:
    """Validate a raw response against ``shape``; anything unusable becomes NoDecision."""
    if not isinstance(raw, str):
        return NoDecision(f"expected text, got {type(raw).__name__}")
    if not raw.strip():
        return NoDecision("empty response")
    try:
        data = _load_json(raw)
    except ValueError as e:  # JSONDecodeError is a ValueError
        logger.warning(f"Unparseable {shape.__name__} response: {e}")
        return NoDecision(f"unparseable response: {e}")
    if not isinstance(data, dict):
        return NoDecision(f"expected a JSON object, got {type(data).__name__}")
    try:
        return shape.model_validate(data)
    except ValidationError as e:
        logger.warning(f"{shape.__name__} failed validation: {e.error_count()} error(s)")
        return NoDecision(f"invalid {shape.__name__}: {e.errors()[0]['msg']}")
