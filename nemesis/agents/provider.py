"""
Decision-provider interface.

The dispatcher and mode controllers only know this protocol. Transport, empty
bodies and malformed shapes all collapse into ``NoDecision`` here so the
scheduling logic can be tested against a deterministic stub.
"""

from __future__ import annotations

from typing import Protocol, TypeVar, runtime_checkable

from loguru import logger
from pydantic import BaseModel

from nemesis.agents.prompts import JSON_ONLY_SUFFIX
from nemesis.agents.schemas import NoDecision, parse_structured

DEFAULT_MAX_OUTPUT = 1200

M = TypeVar("M", bound=BaseModel)


class ProviderError(Exception):
    """Transport or authentication failure talking to the reasoning service."""


@runtime_checkable
class DecisionProvider(Protocol):
    async def complete(
        self,
        role_instructions: str,
        context_text: str,
        max_output: int = DEFAULT_MAX_OUTPUT,
    ) -> str:
        """Return the raw reply text. Raise ProviderError on transport failure."""
        ...


async def request_structured(
    provider: DecisionProvider,
    role_instructions: str,
    context_text: str,
    shape: type[M],
    max_output: int = DEFAULT_MAX_OUTPUT,
) -> M | NoDecision:
    """Ask for JSON and validate it against ``shape``."""
    try:
        raw = await provider.complete(role_instructions + JSON_ONLY_SUFFIX, context_text, max_output)
    except ProviderError as e:
        logger.warning(f"{shape.__name__} request failed: {e}")
        return NoDecision(f"provider error: {e}")
    return parse_structured(raw, shape)


async def request_text(
    provider: DecisionProvider,
    role_instructions: str,
    context_text: str,
    max_output: int = DEFAULT_MAX_OUTPUT,
) -> str | NoDecision:
    """Ask for a free-text reply; an empty body counts as no decision."""
    try:
        raw = await provider.complete(role_instructions, context_text, max_output)
    except ProviderError as e:
        logger.warning(f"Text request failed: {e}")
        return NoDecision(f"provider error: {e}")
    if not isinstance(raw, str):
        return NoDecision(f"expected text, got {type(raw).__name__}")
    if not raw.strip():
        return NoDecision("empty response")
    return raw.strip()
