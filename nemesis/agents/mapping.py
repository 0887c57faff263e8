"""
Topic Mapper (shadow agent).

Builds the topic-mapping request from the learner's course description and
study materials. Used once at session start (bootstrap payload for Init) and
again whenever the orchestrator asks for a re-assessment.
"""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from nemesis.agents.prompts import SHADOW_PROMPT
from nemesis.agents.provider import DecisionProvider, request_structured
from nemesis.agents.schemas import NoDecision, TopicMapping
from nemesis.core.models import BootstrapPayload, Topic
from nemesis.documents import StudyDocument

DEFAULT_LEARNER_LABEL = "OPERATIVE"
DEFAULT_MAPPING_OUTPUT = 2000


def mapping_context(
    learner_label: str,
    course_input: str,
    documents: Sequence[StudyDocument] = (),
    current_topics: Sequence[Topic] = (),
) -> str:
    context = f"Student: {learner_label}. Courses and topics: {course_input}"
    if current_topics:
        listed = ", ".join(f"{t.id}:{t.name}(vuln:{t.vulnerability})" for t in current_topics)
        context += f"\n\nCURRENT TOPICS:\n{listed}"
    if documents:
        blocks = "\n\n".join(f"--- FILE: {d.name} ---\n{d.text}" for d in documents)
        context += f"\n\nATTACHED MATERIALS:\n{blocks}"
    return context


class TopicMapper:
    """Requests a topic map and converts it into domain topics."""

    def __init__(self, provider: DecisionProvider, max_output: int = DEFAULT_MAPPING_OUTPUT):
        self.provider = provider
        self.max_output = max_output

    async def map_topics(
        self,
        learner_label: str,
        course_input: str,
        documents: Sequence[StudyDocument] = (),
        current_topics: Sequence[Topic] = (),
    ) -> TopicMapping | NoDecision:
        context = mapping_context(learner_label, course_input, documents, current_topics)
        result = await request_structured(
            self.provider, SHADOW_PROMPT, context, TopicMapping, self.max_output
        )
        if isinstance(result, NoDecision):
            logger.warning(f"Topic mapping produced no decision: {result.reason}")
        else:
            logger.info(f"Mapped {len(result.topics)} topics")
        return result

    async def bootstrap(
        self,
        course_input: str,
        learner_label: str = "",
        documents: Sequence[StudyDocument] = (),
    ) -> BootstrapPayload:
        """
        Payload for the Init action.

        A failed mapping still starts a session, just with no topics;
        the learner can ask for a re-assessment later.
        """
        label = learner_label.strip() or DEFAULT_LEARNER_LABEL
        result = await self.map_topics(label, course_input, documents)
        if isinstance(result, NoDecision):
            return BootstrapPayload(label, course_input, (), "")
        return BootstrapPayload(label, course_input, result.to_topics(), result.assessment)
