"""
Unit tests for the battle (question / reveal) controller.
"""

import asyncio

import pytest

from nemesis.agents.provider import ProviderError
from nemesis.modes.battle import BattleController, BattleMode, BattlePhase


@pytest.fixture
def battle(store, provider, sample_topics):
    return BattleController(store, provider, sample_topics[0], BattleMode.ATTACK)


class TestQuestionFlow:
    """Tests for loading, answering and revealing."""

    @pytest.mark.asyncio
    async def test_start_presents_question(self, battle, provider, attack_question):
        provider.queue("nemesis", attack_question)

        phase = await battle.start()

        assert phase is BattlePhase.PRESENTED
        assert battle.question.correct == "B"
        assert battle.question_count == 1
        context = provider.calls_for("nemesis")[0][1]
        assert "Topic: Recursion" in context
        assert "Difficulty requested: hard" in context

    @pytest.mark.asyncio
    async def test_correct_answer_records_once(self, battle, provider, store, attack_question):
        provider.queue("nemesis", attack_question)
        await battle.start()

        outcome = battle.answer("b")

        assert outcome.correct is True
        assert outcome.correct_option == "B"
        assert battle.phase is BattlePhase.REVEALED
        assert store.state.total_xp == 10 + 8 * 4
        # Later selections on the same question are ignored
        assert battle.answer("A") is None
        assert len(store.state.history) == 1

    @pytest.mark.asyncio
    async def test_wrong_answer_raises_vulnerability(self, battle, provider, attack_question):
        provider.queue("nemesis", attack_question)
        await battle.start()

        outcome = battle.answer("A")

        assert outcome.correct is False
        assert battle.topic.vulnerability == 10
        assert battle.topic_accuracy() == 0

    @pytest.mark.asyncio
    async def test_invalid_option_ignored(self, battle, provider, store, attack_question):
        provider.queue("nemesis", attack_question)
        await battle.start()

        assert battle.answer("E") is None
        assert battle.phase is BattlePhase.PRESENTED
        assert store.state.history == ()

    @pytest.mark.asyncio
    async def test_review_mode_uses_review_role(self, store, provider, sample_topics, review_question):
        provider.queue("review", review_question)
        battle = BattleController(store, provider, sample_topics[2], BattleMode.REVIEW)

        await battle.start()
        outcome = battle.answer("C")

        assert outcome.correct
        assert "Difficulty requested: easy-medium" in provider.calls_for("review")[0][1]
        assert store.state.history[0].difficulty == 2


class TestFailures:
    """Tests for failed loads and teardown."""

    @pytest.mark.asyncio
    async def test_failed_load_then_retry(self, battle, provider, attack_question):
        provider.queue("nemesis", "not a question", attack_question)

        assert await battle.start() is BattlePhase.FAILED
        assert battle.answer("B") is None
        assert await battle.next_question() is BattlePhase.PRESENTED

    @pytest.mark.asyncio
    async def test_transport_error_fails(self, battle, provider):
        provider.queue("nemesis", ProviderError("502"))
        assert await battle.start() is BattlePhase.FAILED

    @pytest.mark.asyncio
    async def test_teardown_discards_pending_question(self, battle, provider, store, attack_question):
        hang = provider.hang("nemesis", then=attack_question)

        task = asyncio.create_task(battle.start())
        for _ in range(5):
            await asyncio.sleep(0)
        battle.teardown()
        hang.release.set()
        await task

        assert battle.closed
        assert battle.question is None
        assert battle.answer("B") is None
        assert store.state.history == ()

    @pytest.mark.asyncio
    async def test_next_question_ignored_while_loading(self, battle, provider, attack_question):
        hang = provider.hang("nemesis", then=attack_question)

        task = asyncio.create_task(battle.start())
        for _ in range(5):
            await asyncio.sleep(0)
        assert await battle.next_question() is BattlePhase.LOADING

        hang.release.set()
        await task
        assert len(provider.calls_for("nemesis")) == 1


class TestHints:
    """Tests for Socratic hints during a battle."""

    @pytest.mark.asyncio
    async def test_hint_mentions_question(self, battle, provider, attack_question):
        provider.queue("nemesis", attack_question)
        provider.queue("socrates", "What stops the calls from piling up?")
        await battle.start()

        hint = await battle.ask_hint("is it A?")

        assert hint == "What stops the calls from piling up?"
        assert attack_question["question"] in provider.calls_for("socrates")[0][1]

    @pytest.mark.asyncio
    async def test_no_hint_without_question(self, battle, provider):
        assert await battle.ask_hint("help") is None
        assert provider.calls == []
