"""
Domain Layer - Static Data Models

Defines the core domain model representing the static structure of
guided workflows: Workflows, Steps, Answers and their payloads.
"""

from guided_workflow.domain.models import (
    Answer,
    CollectFormat,
    CollectStep,
    LightInstructionStep,
    LoadWorkflowStep,
    NotesBlockStep,
    QuestionStep,
    Step,
    StepKind,
    UnknownStep,
    UserInstructionStep,
    ValidationRule,
    VariableAssignment,
    VariableAssignmentStep,
    Workflow,
)

__all__ = [
    "Answer",
    "CollectFormat",
    "CollectStep",
    "LightInstructionStep",
    "LoadWorkflowStep",
    "NotesBlockStep",
    "QuestionStep",
    "Step",
    "StepKind",
    "UnknownStep",
    "UserInstructionStep",
    "ValidationRule",
    "VariableAssignment",
    "VariableAssignmentStep",
    "Workflow",
]
