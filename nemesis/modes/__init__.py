"""
Mode controllers: bounded interaction state machines.

- BattleController: question / reveal loop on one topic (attack or review)
- ExamController: timed multi-topic exam with a cancellable countdown
- DialogueController: open-ended Socratic conversation
"""
from nemesis.modes.base import ControllerClosed, ModeController
from nemesis.modes.battle import AnswerOutcome, BattleController, BattleMode, BattlePhase
from nemesis.modes.dialogue import DialogueController, DialogueTurn
from nemesis.modes.exam import ExamController, ExamPhase, ExamQuestion
from nemesis.modes.timer import CountdownTimer

__all__ = [
    "ModeController",
    "ControllerClosed",
    "CountdownTimer",
    "BattleController",
    "BattleMode",
    "BattlePhase",
    "AnswerOutcome",
    "ExamController",
    "ExamPhase",
    "ExamQuestion",
    "DialogueController",
    "DialogueTurn",
]
