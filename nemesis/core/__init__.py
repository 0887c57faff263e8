"""
Scheduling core.

Components:
- retention: exponential forgetting curve per topic
- urgency: remediation priority and stable ranking
- models: immutable session aggregate
- session_store: action reducer and injectable state container
"""
from nemesis.core.models import (
    BootstrapPayload,
    ChatMessage,
    ChatRole,
    ExamResult,
    HistoryRecord,
    Session,
    Topic,
)
from nemesis.core.retention import retention, half_life_hours, hours_until
from nemesis.core.session_store import (
    Chat,
    ExamResultAction,
    Init,
    Record,
    SessionStore,
    SetTopics,
    reduce,
)
from nemesis.core.urgency import most_urgent, rank_topics, urgency

__all__ = [
    # Models
    "BootstrapPayload",
    "ChatMessage",
    "ChatRole",
    "ExamResult",
    "HistoryRecord",
    "Session",
    "Topic",
    # Derived views
    "retention",
    "half_life_hours",
    "hours_until",
    "urgency",
    "rank_topics",
    "most_urgent",
    # State
    "SessionStore",
    "reduce",
    "Init",
    "SetTopics",
    "Record",
    "Chat",
    "ExamResultAction",
]
