"""
Exam mode: timed simulation across the most urgent topics.

States (linear): INTRO -> BUILDING -> RUNNING -> RESULTS, with ``restart()``
as the only way back. The countdown timer exists only while RUNNING and is
cancelled on every exit from it, including finishing early.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from nemesis.agents.prompts import NEMESIS_PROMPT, question_context
from nemesis.agents.provider import DecisionProvider, request_structured
from nemesis.agents.schemas import AttackQuestion, NoDecision
from nemesis.core.models import ExamResult, Topic
from nemesis.core.session_store import ExamResultAction, Record, SessionStore
from nemesis.modes.base import ControllerClosed, ModeController
from nemesis.modes.timer import CountdownTimer

DEFAULT_QUESTION_COUNT = 8
DEFAULT_SECONDS_PER_QUESTION = 90


class ExamPhase(str, Enum):
    INTRO = "intro"
    BUILDING = "building"
    RUNNING = "running"
    RESULTS = "results"


@dataclass(frozen=True)
class ExamQuestion:
    topic_id: str
    topic_name: str
    question: AttackQuestion


class ExamController(ModeController):
    """
    Builds one question per urgent topic, runs the countdown and scores.

    ``tick_interval=None`` disables the wall-clock timer; the owner then
    drives the countdown by calling ``tick()`` itself.
    """

    mode_name = "exam"

    def __init__(
        self,
        store: SessionStore,
        provider: DecisionProvider,
        question_count: int = DEFAULT_QUESTION_COUNT,
        seconds_per_question: int = DEFAULT_SECONDS_PER_QUESTION,
        tick_interval: float | None = 1.0,
        max_output: int = 1200,
    ):
        if question_count < 1:
            raise ValueError("question_count must be at least 1")
        super().__init__(store, provider)
        self.question_count = question_count
        self.seconds_per_question = seconds_per_question
        self.tick_interval = tick_interval
        self.max_output = max_output
        self._timer: CountdownTimer | None = None
        self._reset()

    def _reset(self) -> None:
        self.phase = ExamPhase.INTRO
        self.questions: list[ExamQuestion] = []
        self.answers: dict[int, str] = {}
        self.current = 0
        self.time_left = 0
        self.time_budget = 0
        self.result: ExamResult | None = None

    # -- building ------------------------------------------------------------

    async def begin(self) -> ExamPhase:
        """
        Select topics by urgency and request their questions concurrently.

        Failed requests are dropped. If none succeed the exam returns to INTRO.
        """
        if self.closed or self.phase is not ExamPhase.INTRO:
            return self.phase
        self.phase = ExamPhase.BUILDING

        selected = self.store.ranked_topics()[: self.question_count]
        course_context = self.store.state.raw_course_input
        logger.info(f"Building exam over {len(selected)} topics")

        async def build() -> list:
            return await asyncio.gather(
                *(self._question_for(topic, course_context) for topic in selected)
            )

        try:
            results = await self._request(build())
        except ControllerClosed:
            return self.phase

        self.questions = [
            ExamQuestion(topic_id=topic.id, topic_name=topic.name, question=result)
            for topic, result in zip(selected, results)
            if not isinstance(result, NoDecision)
        ]
        dropped = len(selected) - len(self.questions)
        if dropped:
            logger.warning(f"Dropped {dropped} exam question(s) that failed to generate")

        if not self.questions:
            self.phase = ExamPhase.INTRO
            return self.phase

        self.answers = {}
        self.current = 0
        self.time_budget = len(self.questions) * self.seconds_per_question
        self.time_left = self.time_budget
        self.phase = ExamPhase.RUNNING
        if self.tick_interval is not None:
            self._timer = CountdownTimer(self.tick, self.tick_interval)
            self._timer.start()
        return self.phase

    async def _question_for(self, topic: Topic, course_context: str) -> AttackQuestion | NoDecision:
        context = question_context(
            topic.name, topic.failure_mode, topic.vulnerability, "hard", course_context
        )
        return await request_structured(
            self.provider, NEMESIS_PROMPT, context, AttackQuestion, self.max_output
        )

    # -- running -------------------------------------------------------------

    def tick(self) -> None:
        """One second of the countdown. Hitting zero forces the results."""
        if self.closed or self.phase is not ExamPhase.RUNNING:
            return
        self.time_left = max(0, self.time_left - 1)
        if self.time_left == 0:
            logger.info("Exam time expired")
            self._finish()

    def select_answer(self, index: int, option: str) -> bool:
        """Answer question ``index``. Returns False when the input is ignored."""
        if self.closed or self.phase is not ExamPhase.RUNNING:
            return False
        if not 0 <= index < len(self.questions) or index in self.answers:
            return False
        option = option.strip().upper()
        question = self.questions[index].question
        if option not in question.options:
            return False

        self.answers[index] = option
        self.store.dispatch(
            Record(
                topic_id=self.questions[index].topic_id,
                correct=option == question.correct,
                difficulty=question.effective_difficulty(),
            )
        )
        if index == len(self.questions) - 1:
            self._finish()
        else:
            self.current = index + 1
        return True

    @property
    def score(self) -> int:
        return sum(
            1 for i, q in enumerate(self.questions) if self.answers.get(i) == q.question.correct
        )

    def _finish(self) -> None:
        self._stop_timer()
        self.phase = ExamPhase.RESULTS
        self.result = ExamResult(
            topic_ids=tuple(q.topic_id for q in self.questions),
            correctness=tuple(
                (self.answers[i] == q.question.correct) if i in self.answers else None
                for i, q in enumerate(self.questions)
            ),
            score=self.score,
            completed_at=self.store.now(),
            seconds_used=self.time_budget - self.time_left,
        )
        self.store.dispatch(ExamResultAction(self.result))
        logger.info(f"Exam finished: {self.result.score}/{self.result.total}")

    # -- lifecycle -----------------------------------------------------------

    def restart(self) -> ExamPhase:
        if self.closed or self.phase is ExamPhase.BUILDING:
            return self.phase
        self._stop_timer()
        self._reset()
        return self.phase

    def _stop_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_teardown(self) -> None:
        self._stop_timer()
