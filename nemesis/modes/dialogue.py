"""
Dialogue mode: open-ended Socratic conversation on one topic.

Append-only and unbounded; the learner or the surrounding UI ends it.
A learner turn is kept only together with the tutor reply it produced, so a
failed request leaves the transcript untouched and the turn can be resent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from loguru import logger

from nemesis.agents.prompts import SOCRATES_OPENER, SOCRATES_PROMPT
from nemesis.agents.provider import DecisionProvider, request_text
from nemesis.agents.schemas import NoDecision
from nemesis.core.models import Topic, utcnow
from nemesis.core.session_store import SessionStore
from nemesis.modes.base import ControllerClosed, ModeController


@dataclass(frozen=True)
class DialogueTurn:
    """A single exchange in the Socratic dialogue."""
    role: Literal["tutor", "learner"]
    content: str
    timestamp: datetime = field(default_factory=utcnow)


class DialogueController(ModeController):
    """Turn-based Socratic tutor over the external text generator."""

    mode_name = "dialogue"

    def __init__(
        self,
        store: SessionStore,
        provider: DecisionProvider,
        topic: Topic,
        max_output: int = 1200,
    ):
        super().__init__(store, provider)
        self.topic = topic
        self.max_output = max_output
        self.turns: list[DialogueTurn] = [
            DialogueTurn(role="tutor", content=SOCRATES_OPENER.format(topic=topic.name))
        ]

    @property
    def turn_count(self) -> int:
        return len(self.turns)

    def get_dialogue_history(self) -> str:
        """Format dialogue history for LLM context."""
        lines = []
        for turn in self.turns:
            prefix = "Socrates" if turn.role == "tutor" else "Student"
            lines.append(f"{prefix}: {turn.content}")
        return "\n\n".join(lines)

    async def send(self, text: str) -> str | None:
        """
        Send one learner turn and return the tutor's reply.

        Returns None when the input is empty, a reply is still pending,
        the request failed, or the controller was torn down.
        """
        text = text.strip()
        if not text or self.closed:
            return None
        if self.busy:
            logger.debug("Dialogue turn rejected: reply still pending")
            return None

        context = (
            f"Topic: {self.topic.name}. Failure mode: {self.topic.failure_mode or 'general'}.\n\n"
            f"Conversation:\n{self.get_dialogue_history()}\n\nStudent: {text}"
        )
        try:
            reply = await self._request(
                request_text(self.provider, SOCRATES_PROMPT, context, self.max_output)
            )
        except ControllerClosed:
            return None

        if isinstance(reply, NoDecision):
            logger.warning(f"Socratic reply failed: {reply.reason}")
            return None

        self.turns.append(DialogueTurn(role="learner", content=text))
        self.turns.append(DialogueTurn(role="tutor", content=reply))
        return reply
