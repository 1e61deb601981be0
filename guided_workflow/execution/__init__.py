"""
Execution Layer - Workflow Sequencing

Defines the WorkflowEngine (deterministic state machine) together with the
formula evaluator, command processor and sub-workflow call stack it uses.
"""

from guided_workflow.execution.commands import CommandOutcome, CommandProcessor
from guided_workflow.execution.engine import WorkflowEngine
from guided_workflow.execution.formulas import FormulaEvaluator
from guided_workflow.execution.schemas.state_machine import AnswerResult, CollectResult


__all__ = [
    "AnswerResult",
    "CollectResult",
    "CommandOutcome",
    "CommandProcessor",
    "FormulaEvaluator",
    "WorkflowEngine",
]
