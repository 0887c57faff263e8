"""
Orchestrator Dispatcher.

Turns a free-text learner utterance plus the current session into a routing
decision, validates it, and starts the matching mode:

    nemesis / review -> BattleController on the resolved topic
    socrates         -> DialogueController on the resolved topic
    exam             -> ExamController (re-selects topics by urgency itself)
    coach            -> background empathy call, appended to the chat when it lands
    shadow           -> topic re-assessment, replacing topics via SetTopics

Only one dispatch runs at a time; a second utterance while one is pending is
rejected as BUSY. A failed or cancelled dispatch leaves the session untouched.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import TypeVar

from loguru import logger

from nemesis.agents.mapping import TopicMapper
from nemesis.agents.prompts import COACH_PROMPT, ORCHESTRATOR_PROMPT
from nemesis.agents.provider import DecisionProvider, request_structured
from nemesis.agents.schemas import CoachReading, NoDecision, OrchestratorDecision
from nemesis.config import Settings, get_settings
from nemesis.core.models import ChatMessage, ChatRole, Topic
from nemesis.core.session_store import Chat, SessionStore, SetTopics
from nemesis.modes.base import ModeController
from nemesis.modes.battle import BattleController, BattleMode
from nemesis.modes.dialogue import DialogueController
from nemesis.modes.exam import ExamController

T = TypeVar("T")


class DispatchStatus(str, Enum):
    ROUTED = "routed"
    BUSY = "busy"                  # another dispatch is still pending
    NO_DECISION = "no_decision"    # transport failure or malformed decision; retryable
    CANCELLED = "cancelled"        # learner navigated away before it resolved
    IGNORED = "ignored"            # empty utterance


@dataclass(frozen=True)
class DispatchResult:
    status: DispatchStatus
    decision: OrchestratorDecision | None = None
    topic: Topic | None = None
    controller: ModeController | None = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status is DispatchStatus.ROUTED


class _Cancelled(Exception):
    pass


def carry_review_state(new_topics: Sequence[Topic], old_topics: Sequence[Topic]) -> tuple[Topic, ...]:
    """Keep review timestamps and counts for topics that survive a re-assessment."""
    previous = {t.id: t for t in old_topics}
    carried = []
    for topic in new_topics:
        old = previous.get(topic.id)
        if old is not None:
            topic = replace(
                topic,
                last_reviewed_at=old.last_reviewed_at,
                review_count=old.review_count,
            )
        carried.append(topic)
    return tuple(carried)


class OrchestratorDispatcher:
    """Routes learner utterances to mode controllers."""

    def __init__(
        self,
        store: SessionStore,
        provider: DecisionProvider,
        settings: Settings | None = None,
        mapper: TopicMapper | None = None,
    ):
        self.store = store
        self.provider = provider
        self.settings = settings or get_settings()
        self.mapper = mapper or TopicMapper(provider, self.settings.mapping_max_output_tokens)
        self.active_controller: ModeController | None = None
        self._busy = False
        self._pending: asyncio.Future | None = None
        self._generation = 0
        self._side_tasks: set[asyncio.Task] = set()

    @property
    def busy(self) -> bool:
        return self._busy

    # -- summary -------------------------------------------------------------

    def summary(self, utterance: str) -> str:
        """Compact session context for the orchestrator role."""
        state = self.store.state
        stats = self.store.stats()
        top = self.store.most_urgent()
        topics = ", ".join(f"{t.id}:{t.name}(vuln:{t.vulnerability})" for t in state.topics)
        most_urgent = f"{top.name} ({top.id})" if top else "none"
        return (
            f'Student {state.learner_label}: "{utterance}"\n'
            f"Session: Answered {stats.answered} questions. "
            f"Accuracy: {stats.accuracy}%. XP: {stats.total_xp}.\n"
            f"Topics: {topics}\n"
            f"Most urgent: {most_urgent}"
        )

    # -- dispatch ------------------------------------------------------------

    async def dispatch(self, utterance: str) -> DispatchResult:
        utterance = utterance.strip()
        if not utterance:
            return DispatchResult(DispatchStatus.IGNORED, reason="empty utterance")
        if self._busy:
            logger.debug("Dispatch rejected: previous request still pending")
            return DispatchResult(DispatchStatus.BUSY, reason="dispatch already in flight")

        self._busy = True
        generation = self._generation
        try:
            decision = await self._owned(
                request_structured(
                    self.provider,
                    ORCHESTRATOR_PROMPT,
                    self.summary(utterance),
                    OrchestratorDecision,
                    self.settings.max_output_tokens,
                ),
                generation,
            )
            if isinstance(decision, NoDecision):
                logger.warning(f"Orchestrator produced no decision: {decision.reason}")
                return DispatchResult(DispatchStatus.NO_DECISION, reason=decision.reason)
            return await self._route(utterance, decision, generation)
        except _Cancelled:
            logger.info("Dispatch cancelled before it resolved")
            return DispatchResult(DispatchStatus.CANCELLED, reason="cancelled")
        finally:
            self._busy = False

    async def _owned(self, awaitable: Awaitable[T], generation: int) -> T:
        future = asyncio.ensure_future(awaitable)
        self._pending = future
        try:
            result = await future
        except asyncio.CancelledError:
            if generation != self._generation:
                raise _Cancelled() from None
            raise
        finally:
            if self._pending is future:
                self._pending = None
        if generation != self._generation:
            raise _Cancelled()
        return result

    async def _route(
        self,
        utterance: str,
        decision: OrchestratorDecision,
        generation: int,
    ) -> DispatchResult:
        target = self.store.topic(decision.topic_id) or self.store.most_urgent()
        if decision.agent == "shadow":
            # a cancel during the re-map leaves the chat log untouched
            await self._reassess(utterance, generation)
        now = self.store.now()
        self.store.dispatch(Chat(ChatMessage(role=ChatRole.LEARNER, text=utterance, timestamp=now)))
        self.store.dispatch(
            Chat(
                ChatMessage(
                    role=ChatRole.ORCHESTRATOR,
                    text=decision.reasoning,
                    timestamp=now,
                    routing=decision,
                )
            )
        )
        logger.info(
            f"Routing to {decision.agent} "
            f"(topic={target.id if target else None}, urgency={decision.urgency})"
        )

        controller: ModeController | None = None
        if decision.agent in ("nemesis", "review"):
            if target is not None:
                controller = BattleController(
                    self.store,
                    self.provider,
                    target,
                    BattleMode(decision.agent),
                    max_output=self.settings.max_output_tokens,
                )
        elif decision.agent == "socrates":
            if target is not None:
                controller = DialogueController(
                    self.store,
                    self.provider,
                    target,
                    max_output=self.settings.max_output_tokens,
                )
        elif decision.agent == "exam":
            controller = ExamController(
                self.store,
                self.provider,
                question_count=self.settings.exam_question_count,
                seconds_per_question=self.settings.exam_seconds_per_question,
                tick_interval=self.settings.exam_tick_seconds,
                max_output=self.settings.max_output_tokens,
            )
        elif decision.agent == "coach":
            self._spawn(self._coach(utterance, decision))

        if controller is not None:
            self.activate(controller)
        elif decision.agent not in ("coach", "shadow"):
            logger.warning(f"No topics to route {decision.agent} to")

        return DispatchResult(
            DispatchStatus.ROUTED,
            decision=decision,
            topic=target,
            controller=controller,
        )

    # -- routed side effects -------------------------------------------------

    async def _coach(self, utterance: str, decision: OrchestratorDecision) -> None:
        """Empathy sub-call. Its failure never blocks or surfaces."""
        context = (
            f'Student "{self.store.state.learner_label}" says: "{utterance}". '
            f"State from orchestrator: {decision.coach_note or 'general'}"
        )
        try:
            reading = await request_structured(
                self.provider,
                COACH_PROMPT,
                context,
                CoachReading,
                self.settings.max_output_tokens,
            )
        except Exception as e:
            logger.warning(f"Coach sub-call crashed, ignoring: {e}")
            return
        if isinstance(reading, NoDecision):
            logger.info(f"Coach produced nothing: {reading.reason}")
            return
        self.store.dispatch(
            Chat(
                ChatMessage(
                    role=ChatRole.COACH,
                    text=reading.message,
                    timestamp=self.store.now(),
                    coach=reading,
                )
            )
        )

    async def _reassess(self, utterance: str, generation: int) -> None:
        state = self.store.state
        course_input = f"{state.raw_course_input}\n\nLearner update: {utterance}"
        mapping = await self._owned(
            self.mapper.map_topics(state.learner_label, course_input, current_topics=state.topics),
            generation,
        )
        if isinstance(mapping, NoDecision) or not mapping.topics:
            logger.warning("Re-assessment produced no topics; keeping current map")
            return
        self.store.dispatch(SetTopics(carry_review_state(mapping.to_topics(), self.store.state.topics)))

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._side_tasks.add(task)
        task.add_done_callback(self._side_tasks.discard)

    async def drain(self) -> None:
        """Wait for background sub-calls (coach) to settle."""
        if self._side_tasks:
            await asyncio.gather(*self._side_tasks, return_exceptions=True)

    # -- navigation ----------------------------------------------------------

    def activate(self, controller: ModeController) -> None:
        """Make ``controller`` the active mode, tearing down the previous one."""
        if self.active_controller is not None and self.active_controller is not controller:
            self.active_controller.teardown()
        self.active_controller = controller

    def leave_mode(self) -> None:
        if self.active_controller is not None:
            self.active_controller.teardown()
            self.active_controller = None

    def cancel(self) -> None:
        """Abandon the pending dispatch; its eventual result is discarded."""
        self._generation += 1
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()

    def close(self) -> None:
        self.cancel()
        self.leave_mode()
        for task in list(self._side_tasks):
            task.cancel()
