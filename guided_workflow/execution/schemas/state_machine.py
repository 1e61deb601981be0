"""
Transition Types - FSM State Transition Definitions

Type definitions for workflow state machine transitions, and the results the
engine hands back to callers of its input entry points.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import List, Optional

from ...state.models import EngineStatus
from ..commands import CommandOutcome


class StateMachineTransition(Enum):
    """
    Strict State Machine terminology describing what happened to the step pointer
    after processing one pending step.
    """

    HOLD = auto()  # Waiting on a question or collect row.
    ADVANCE = auto()  # The cursor moved to the next pending step.
    PUSH = auto()  # A sub-workflow frame was pushed onto the stack.
    POP = auto()  # A sub-workflow was exhausted; the parent resumed.
    EXIT = auto()  # Top-level list exhausted, or the session was superseded.


@dataclass
class AnswerResult:
    """
    Outcome of answer_question. A rejected answer leaves the session untouched
    and the engine still waiting.
    """

    accepted: bool
    status: EngineStatus
    reason: Optional[str] = None
    retracted_row_ids: List[str] = field(default_factory=list)
    commands: Optional[CommandOutcome] = None


@dataclass
class CollectResult:
    accepted: bool
    status: EngineStatus
    value: Optional[str] = None
    error: Optional[str] = None
