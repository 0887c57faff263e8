"""
Nemesis - adaptive study-scheduling engine.

Estimates forgetting per topic, ranks topics by remediation urgency and
routes the learner to the next pedagogical mode (attack quiz, Socratic
dialogue, review, exam, coach check-in, re-assessment).
"""

__version__ = "1.0.0"
