"""
Guided Workflow Engine

Walks server-supplied, tree-shaped workflow definitions and materializes them
into a linear sequence of interactive rows for a call-center agent, with
scoped variables, conditional formulas, nested sub-workflows and branch
retraction when an earlier answer changes.
"""

from guided_workflow.domain import (
    Answer,
    CollectFormat,
    CollectStep,
    LoadWorkflowStep,
    QuestionStep,
    Step,
    StepKind,
    UserInstructionStep,
    Workflow,
)
from guided_workflow.state import (
    EngineStatus,
    ParentFrame,
    Row,
    SessionState,
    VariableScope,
    VariableStore,
)
from guided_workflow.execution import (
    AnswerResult,
    CollectResult,
    CommandOutcome,
    FormulaEvaluator,
    WorkflowEngine,
)

__all__ = [
    # Domain Layer
    "Answer",
    "CollectFormat",
    "CollectStep",
    "LoadWorkflowStep",
    "QuestionStep",
    "Step",
    "StepKind",
    "UserInstructionStep",
    "Workflow",
    # State Layer
    "EngineStatus",
    "ParentFrame",
    "Row",
    "SessionState",
    "VariableScope",
    "VariableStore",
    # Execution Layer
    "AnswerResult",
    "CollectResult",
    "CommandOutcome",
    "FormulaEvaluator",
    "WorkflowEngine",
]
