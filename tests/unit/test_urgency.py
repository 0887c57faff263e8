"""
Unit tests for urgency scoring and ranking.
"""

from dataclasses import replace
from datetime import timedelta

from nemesis.core.models import Topic
from nemesis.core.urgency import most_urgent, rank_topics, top_urgent, urgency


class TestUrgency:
    """Tests for urgency()."""

    def test_never_reviewed_formula(self, now):
        # 0.4 * 20 + 3.5 * 9 + 2.0 * 8 = 55.5 -> 56 (half rounds up)
        topic = Topic(id="t", name="Recursion", vulnerability=9, exam_weight=8)
        assert urgency(topic, now) == 56

    def test_rises_as_memory_fades(self, now):
        topic = Topic(id="t", name="Topic", last_reviewed_at=now, review_count=1)
        later = now + timedelta(days=3)
        assert urgency(topic, later) > urgency(topic, now)

    def test_higher_exam_weight_is_more_urgent(self, now):
        low = Topic(id="a", name="A", exam_weight=2)
        high = replace(low, id="b", exam_weight=9)
        assert urgency(high, now) > urgency(low, now)


class TestRanking:
    """Tests for rank_topics() and friends."""

    def test_descending_order(self, sample_topics, now):
        ranked = rank_topics(sample_topics, now)
        assert [t.id for t in ranked] == ["t1", "t2", "t3"]

    def test_ties_keep_input_order(self, now):
        topics = [Topic(id=str(i), name=f"Same {i}") for i in range(5)]
        assert [t.id for t in rank_topics(reversed(topics), now)] == ["4", "3", "2", "1", "0"]

    def test_ranking_shifts_with_time_alone(self, now):
        fresh_but_weak = Topic(
            id="weak", name="Weak", vulnerability=7, exam_weight=5,
            last_reviewed_at=now, review_count=3,
        )
        stale = Topic(
            id="stale", name="Stale", vulnerability=5, exam_weight=5,
            last_reviewed_at=now, review_count=3,
        )
        # Right after review vulnerability dominates
        assert rank_topics([stale, fresh_but_weak], now)[0].id == "weak"
        # Much later both are fully forgotten; vulnerability still decides
        later = now + timedelta(days=30)
        assert rank_topics([stale, fresh_but_weak], later)[0].id == "weak"

    def test_top_urgent_and_most_urgent(self, sample_topics, now):
        assert [t.id for t in top_urgent(sample_topics, 2, now)] == ["t1", "t2"]
        assert top_urgent(sample_topics, 0, now) == []
        assert most_urgent(sample_topics, now).id == "t1"

    def test_most_urgent_empty(self, now):
        assert most_urgent([], now) is None
