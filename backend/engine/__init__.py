"""Adaptive card selection and mastery tracking for live practice runs."""

from backend.engine.mastery import AnswerLabel, CardContent, CardState, apply_answer
from backend.engine.practice import PracticeService
from backend.engine.runs import Run, RunDirectory, RunStatus
from backend.engine.selector import AnswerResult, NextCard, Progress, Selector
from backend.engine.store import InMemoryRunDirectory, InMemoryStateStore, StateStore

__all__ = [
    "AnswerLabel",
    "AnswerResult",
    "CardContent",
    "CardState",
    "InMemoryRunDirectory",
    "InMemoryStateStore",
    "NextCard",
    "PracticeService",
    "Progress",
    "Run",
    "RunDirectory",
    "RunStatus",
    "Selector",
    "StateStore",
    "apply_answer",
]
