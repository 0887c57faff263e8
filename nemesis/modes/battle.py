"""
Battle mode: one multiple-choice question at a time on a single topic.

States: LOADING -> PRESENTED -> REVEALED -> LOADING ...
FAILED replaces PRESENTED when the question request produced nothing;
``next_question()`` retries.

Attack mode ("nemesis") asks for hard, trap-laden questions; review mode
asks for easy-medium ones.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from loguru import logger

from nemesis.agents.prompts import NEMESIS_PROMPT, REVIEW_PROMPT, SOCRATES_PROMPT, question_context
from nemesis.agents.provider import DecisionProvider, request_structured, request_text
from nemesis.agents.schemas import AttackQuestion, NoDecision, ReviewQuestion
from nemesis.core.models import Topic
from nemesis.core.session_store import Record, SessionStore
from nemesis.modes.base import ControllerClosed, ModeController


class BattleMode(str, Enum):
    ATTACK = "nemesis"
    REVIEW = "review"

    @property
    def band(self) -> str:
        return "easy-medium" if self is BattleMode.REVIEW else "hard"


class BattlePhase(str, Enum):
    LOADING = "loading"
    PRESENTED = "presented"
    REVEALED = "revealed"
    FAILED = "failed"


@dataclass(frozen=True)
class AnswerOutcome:
    selected: str
    correct: bool
    correct_option: str
    explanation: str


class BattleController(ModeController):
    """Drives the question / reveal loop for one topic."""

    mode_name = "battle"

    def __init__(
        self,
        store: SessionStore,
        provider: DecisionProvider,
        topic: Topic,
        mode: BattleMode = BattleMode.ATTACK,
        max_output: int = 1200,
    ):
        super().__init__(store, provider)
        self.topic_id = topic.id
        self._fallback_topic = topic
        self.mode = BattleMode(mode)
        self.max_output = max_output
        self.phase = BattlePhase.LOADING
        self.question: AttackQuestion | ReviewQuestion | None = None
        self.selected: str | None = None
        self.question_count = 0

    @property
    def topic(self) -> Topic:
        """Latest snapshot of the topic (vulnerability moves as answers land)."""
        return self.store.topic(self.topic_id) or self._fallback_topic

    async def start(self) -> BattlePhase:
        return await self.next_question()

    async def next_question(self) -> BattlePhase:
        """Request a fresh question. Ignored while one is already loading."""
        if self.busy:
            return self.phase
        self.phase = BattlePhase.LOADING
        self.question = None
        self.selected = None

        topic = self.topic
        prompt, shape = (
            (REVIEW_PROMPT, ReviewQuestion)
            if self.mode is BattleMode.REVIEW
            else (NEMESIS_PROMPT, AttackQuestion)
        )
        context = question_context(
            topic.name,
            topic.failure_mode,
            topic.vulnerability,
            self.mode.band,
            self.store.state.raw_course_input,
        )
        try:
            result = await self._request(
                request_structured(self.provider, prompt, context, shape, self.max_output)
            )
        except ControllerClosed:
            return self.phase

        if isinstance(result, NoDecision):
            logger.warning(f"No {self.mode.value} question for {topic.name}: {result.reason}")
            self.phase = BattlePhase.FAILED
            return self.phase

        self.question = result
        self.question_count += 1
        self.phase = BattlePhase.PRESENTED
        return self.phase

    def answer(self, option: str) -> AnswerOutcome | None:
        """
        Reveal the answer and record the outcome.

        Only the first selection per question counts; later input is ignored.
        """
        if self.closed or self.phase is not BattlePhase.PRESENTED or self.question is None:
            return None
        option = option.strip().upper()
        if option not in self.question.options:
            return None

        self.selected = option
        self.phase = BattlePhase.REVEALED
        correct = option == self.question.correct
        self.store.dispatch(
            Record(
                topic_id=self.topic_id,
                correct=correct,
                difficulty=self.question.effective_difficulty(),
            )
        )
        return AnswerOutcome(
            selected=option,
            correct=correct,
            correct_option=self.question.correct,
            explanation=self.question.explanation,
        )

    async def ask_hint(self, remark: str) -> str | None:
        """Socratic nudge about the current question; never reveals the answer."""
        if not remark.strip() or self.question is None or self.busy:
            return None
        context = (
            f"Topic: {self.topic.name}. Question was: {self.question.question}. "
            f'Student says: "{remark}"'
        )
        try:
            reply = await self._request(
                request_text(self.provider, SOCRATES_PROMPT, context, self.max_output)
            )
        except ControllerClosed:
            return None
        return None if isinstance(reply, NoDecision) else reply

    def topic_accuracy(self) -> int | None:
        return self.store.topic_accuracy(self.topic_id)
