"""
State Layer - Runtime Data Models

Defines the runtime state model that tracks progress through guided
workflows: materialized rows, the sub-workflow call stack and the
scoped variable store.
"""

from guided_workflow.state.models import (
    EngineStatus,
    InteractionState,
    ParentFrame,
    PendingStep,
    Row,
    SessionState,
)
from guided_workflow.state.variables import VariableScope, VariableStore

__all__ = [
    "EngineStatus",
    "InteractionState",
    "ParentFrame",
    "PendingStep",
    "Row",
    "SessionState",
    "VariableScope",
    "VariableStore",
]
