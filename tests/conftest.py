"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests,
including a scripted DecisionProvider so no test talks to the network.
"""
import asyncio
import json
import sys
from collections import defaultdict, deque
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from nemesis.agents.prompts import (  # noqa: E402
    COACH_PROMPT,
    NEMESIS_PROMPT,
    ORCHESTRATOR_PROMPT,
    REVIEW_PROMPT,
    SHADOW_PROMPT,
    SOCRATES_PROMPT,
)
from nemesis.config import Settings  # noqa: E402
from nemesis.core.models import Session, Topic  # noqa: E402
from nemesis.core.session_store import SessionStore  # noqa: E402

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

ROLE_PROMPTS = {
    "orchestrator": ORCHESTRATOR_PROMPT,
    "shadow": SHADOW_PROMPT,
    "nemesis": NEMESIS_PROMPT,
    "review": REVIEW_PROMPT,
    "socrates": SOCRATES_PROMPT,
    "coach": COACH_PROMPT,
}


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Scripted provider
# =============================================================================


class Hang:
    """Queue marker: the call blocks until released (or cancelled)."""

    def __init__(self, then=None):
        self.then = then
        self.release = asyncio.Event()


class ScriptedProvider:
    """
    DecisionProvider returning queued replies per role.

    Queue items: str (raw reply), dict (JSON-encoded), Exception (raised),
    or Hang (blocks until ``hang.release`` is set, then yields ``hang.then``).
    An empty queue returns "".
    """

    def __init__(self):
        self.replies = defaultdict(deque)
        self.calls = []

    def queue(self, role, *replies):
        self.replies[role].extend(replies)
        return self

    def hang(self, role, then=None):
        """Queue a reply that blocks until the returned Hang is released."""
        item = Hang(then)
        self.replies[role].append(item)
        return item

    def calls_for(self, role):
        return [c for c in self.calls if c[0] == role]

    @staticmethod
    def role_of(role_instructions):
        for role, prompt in ROLE_PROMPTS.items():
            if role_instructions.startswith(prompt):
                return role
        raise AssertionError(f"unknown role prompt: {role_instructions[:40]!r}")

    async def complete(self, role_instructions, context_text, max_output=1200):
        role = self.role_of(role_instructions)
        self.calls.append((role, context_text, max_output))
        item = self.replies[role].popleft() if self.replies[role] else ""
        if isinstance(item, Hang):
            await item.release.wait()
            item = item.then if item.then is not None else ""
        if isinstance(item, Exception):
            raise item
        if isinstance(item, dict):
            return json.dumps(item)
        return item


# =============================================================================
# Fixtures
# =============================================================================


class FixedClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, start=NOW):
        self.current = start

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def settings():
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        mistral_api_key="test-key",
        exam_question_count=8,
        exam_seconds_per_question=90,
        log_level="DEBUG",
    )


@pytest.fixture
def sample_topics():
    """Three topics with distinct urgency (recursion most urgent)."""
    return (
        Topic(
            id="t1",
            name="Recursion",
            category="Algorithms",
            difficulty=7,
            vulnerability=9,
            exam_weight=8,
            failure_mode="Forgets the base case",
        ),
        Topic(
            id="t2",
            name="Big-O Notation",
            category="Algorithms",
            difficulty=5,
            vulnerability=5,
            exam_weight=6,
            connections=frozenset({"t1"}),
            failure_mode="Confuses worst and average case",
        ),
        Topic(
            id="t3",
            name="Hash Tables",
            category="Data Structures",
            difficulty=4,
            vulnerability=3,
            exam_weight=4,
            failure_mode="Ignores collisions",
        ),
    )


@pytest.fixture
def session(sample_topics):
    return Session(
        learner_label="ADA",
        raw_course_input="CS201 Algorithms and Data Structures",
        topics=sample_topics,
    )


@pytest.fixture
def store(session, clock):
    return SessionStore(session, clock=clock)


@pytest.fixture
def attack_question():
    """A valid nemesis question payload (correct answer B)."""
    return {
        "question": "What happens when a recursive function has no base case?",
        "options": {
            "A": "It returns None",
            "B": "It recurses until the stack overflows",
            "C": "The interpreter adds one automatically",
            "D": "It runs exactly once",
        },
        "correct": "B",
        "trap": "A",
        "concept": "Base case",
        "explanation": "Without a base case nothing stops the recursion.",
        "difficulty": 8,
    }


@pytest.fixture
def review_question():
    """A valid review question payload (correct answer C)."""
    return {
        "question": "What is the average lookup cost of a hash table?",
        "options": {"A": "O(n)", "B": "O(log n)", "C": "O(1)", "D": "O(n log n)"},
        "correct": "C",
        "concept": "Hashing",
        "explanation": "A good hash spreads keys evenly.",
        "difficulty": 2,
    }
