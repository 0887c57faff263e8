"""
Agents: everything that talks to the external reasoning service.

- schemas: response shapes per prompt role and the NoDecision boundary
- prompts: role instructions
- provider: DecisionProvider protocol and request helpers
- mapping: topic mapping (session bootstrap and re-assessment)
- dispatcher: orchestrator routing into mode controllers

The dispatcher is imported from its module directly
(``nemesis.agents.dispatcher``) because it depends on ``nemesis.modes``.
"""
from nemesis.agents.provider import DecisionProvider, ProviderError, request_structured, request_text
from nemesis.agents.schemas import (
    AttackQuestion,
    CoachReading,
    MappedTopic,
    NoDecision,
    OrchestratorDecision,
    ReviewQuestion,
    TopicMapping,
    parse_structured,
)

__all__ = [
    "DecisionProvider",
    "ProviderError",
    "request_structured",
    "request_text",
    "NoDecision",
    "parse_structured",
    "OrchestratorDecision",
    "TopicMapping",
    "MappedTopic",
    "AttackQuestion",
    "ReviewQuestion",
    "CoachReading",
]
