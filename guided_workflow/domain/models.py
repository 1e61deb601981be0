"""
Domain Layer - Static Data Models

This module defines the core domain model representing the static structure
of guided workflows as they are authored and served: Workflows, Steps,
Answers and the small payload types attached to them.

Workflow documents are authored externally and arrive as JSON. The JSON field
names (GUID, StepType, Prompt, Answers, SubSteps, ...) are a compatibility
surface, so every field keeps its document name as an alias while Python code
uses snake_case names. Models are frozen: a loaded workflow is never mutated.
"""

import uuid
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    field_validator,
    model_validator,
)


class StepKind(str, Enum):
    """
    StepKind classifies step behavior:
    - userinstruction: Guidance shown to the agent, no input required
    - userinstruction-light: Same as userinstruction, rendered in a lighter style
    - question: Decision point with predefined answers (blocking)
    - collect: Collects a typed value from the agent (blocking)
    - notesblock: Renders an interpolated notes template
    - variableassignment: Sets workflow variables, never rendered
    - loadworkflow: Triggers a nested sub-workflow
    - unknown: Anything the engine does not recognize (skipped)
    """

    USER_INSTRUCTION = "userinstruction"
    USER_INSTRUCTION_LIGHT = "userinstruction-light"
    QUESTION = "question"
    COLLECT = "collect"
    NOTES_BLOCK = "notesblock"
    VARIABLE_ASSIGNMENT = "variableassignment"
    LOAD_WORKFLOW = "loadworkflow"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: Any) -> "StepKind":
        """Case-insensitive lookup. Unrecognized values map to UNKNOWN."""
        if isinstance(raw, StepKind):
            return raw
        if raw is None:
            return cls.UNKNOWN
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_blocking(self) -> bool:
        return self in (StepKind.QUESTION, StepKind.COLLECT)


class CollectFormat(str, Enum):
    TEXT = "text"
    NUMERIC = "numeric"
    ALPHANUMERIC = "alphanumeric"
    EMAIL = "email"
    PHONE = "phone"
    DATE = "date"
    DATETIME = "datetime"
    MONEY = "money"


def _new_guid() -> str:
    return str(uuid.uuid4())


def _as_flag(value: Any) -> bool:
    # Documents carry booleans both as JSON booleans and as "true"/"false" strings.
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


class DocumentModel(BaseModel):
    """Base for all workflow document models."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class VariableAssignment(DocumentModel):
    """
    A single assignment carried by a variableassignment step.

    Attributes:
        variable_name: Target variable (stored in the Workflow scope).
        variable_value: Raw value to store.
        evaluate: Optional formula; the assignment only applies when it
            evaluates to "true".
    """

    variable_name: Optional[str] = Field(None, alias="VariableName")
    variable_value: Any = Field(None, alias="VariableValue")
    evaluate: Optional[str] = Field(None, alias="Evaluate")


class ValidationRule(DocumentModel):
    """Input constraints for a collect step."""

    required: bool = False
    min_length: Optional[int] = Field(None, alias="minLength")
    max_length: Optional[int] = Field(None, alias="maxLength")
    pattern: Optional[str] = None
    min_date: Optional[str] = Field(None, alias="minDate")
    max_date: Optional[str] = Field(None, alias="maxDate")

    @field_validator("required", mode="before")
    @classmethod
    def _required_flag(cls, value: Any) -> bool:
        return _as_flag(value)


class StepBase(DocumentModel):
    """
    Fields shared by every step kind.

    Attributes:
        guid: Stable identifier, reused for duplicate-row detection.
        kind: StepKind (document field StepType, matched case-insensitively).
        prompt: Primary text template; may contain ~variable~ tokens.
        secondary_text: Optional secondary text template.
        title: Optional display title.
    """

    guid: str = Field(default_factory=_new_guid, alias="GUID")
    kind: StepKind = Field(StepKind.UNKNOWN, alias="StepType")
    prompt: str = Field("", alias="Prompt")
    secondary_text: Optional[str] = Field(None, alias="SecondaryText")
    title: Optional[str] = Field(None, alias="Title")

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: Any) -> StepKind:
        return StepKind.parse(value)

    @field_validator("prompt", mode="before")
    @classmethod
    def _prompt_or_empty(cls, value: Any) -> str:
        return "" if value is None else value


class Answer(DocumentModel):
    """
    One selectable answer of a question step.

    Answers are what turn the step list into a tree: an answer's sub_steps are
    spliced into the pending list when the answer is chosen.

    Attributes:
        guid: Stable identifier, recorded on the row as the selected answer and
            on spawned rows as their parent_answer_guid.
        prompt: Button text template (legacy documents use AnswerText).
        variable_name / variable_value: Workflow variable set on selection.
        evaluate: Formula; when it evaluates "true" the question auto-answers.
        hide_if_evaluate_true: Auto-answer invisibly (the row is hidden).
        execute: Command string (e.g. "system.endworkflow").
        notes_template: Appended to the session notes on selection.
        sub_steps: Steps spliced in front of the remaining pending steps.
    """

    guid: str = Field(default_factory=_new_guid, alias="GUID")
    prompt: str = Field(
        "",
        alias="Prompt",
        validation_alias=AliasChoices("Prompt", "AnswerText", "prompt"),
    )
    variable_name: Optional[str] = Field(None, alias="VariableName")
    variable_value: Any = Field(None, alias="VariableValue")
    evaluate: Optional[str] = Field(None, alias="Evaluate")
    hide_if_evaluate_true: bool = Field(False, alias="HideIfEvaluateTrue")
    execute: Optional[str] = Field(None, alias="Execute")
    notes_template: Optional[str] = Field(
        None,
        alias="NotesTemplate",
        validation_alias=AliasChoices("NotesTemplate", "NoteGeneration", "notes_template"),
    )
    sub_steps: List["Step"] = Field(default_factory=list, alias="SubSteps")

    @field_validator("prompt", mode="before")
    @classmethod
    def _prompt_or_empty(cls, value: Any) -> str:
        return "" if value is None else value

    @field_validator("hide_if_evaluate_true", mode="before")
    @classmethod
    def _hide_flag(cls, value: Any) -> bool:
        return _as_flag(value)

    @field_validator("sub_steps", mode="before")
    @classmethod
    def _sub_steps_or_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class UserInstructionStep(StepBase):
    kind: StepKind = Field(StepKind.USER_INSTRUCTION, alias="StepType")


class LightInstructionStep(StepBase):
    kind: StepKind = Field(StepKind.USER_INSTRUCTION_LIGHT, alias="StepType")


class QuestionStep(StepBase):
    kind: StepKind = Field(StepKind.QUESTION, alias="StepType")
    answers: List[Answer] = Field(default_factory=list, alias="Answers")

    @field_validator("answers", mode="before")
    @classmethod
    def _answers_or_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    def find_answer(self, answer_guid: str) -> Optional[Answer]:
        return next((a for a in self.answers if a.guid == answer_guid), None)


class CollectStep(StepBase):
    """
    Collects a value from the agent.

    Attributes:
        variable_name: Workflow variable receiving the collected value.
        format: CollectFormat used to validate and normalize input.
        validation: Additional ValidationRule constraints.
        notes_template: Appended to notes; ~value~ is the collected value.
    """

    kind: StepKind = Field(StepKind.COLLECT, alias="StepType")
    variable_name: Optional[str] = Field(None, alias="VariableName")
    format: CollectFormat = Field(CollectFormat.TEXT, alias="Format")
    validation: ValidationRule = Field(default_factory=ValidationRule, alias="Validation")
    notes_template: Optional[str] = Field(None, alias="NotesTemplate")

    @field_validator("format", mode="before")
    @classmethod
    def _normalize_format(cls, value: Any) -> CollectFormat:
        if isinstance(value, CollectFormat):
            return value
        try:
            return CollectFormat(str(value or "text").strip().lower())
        except ValueError:
            return CollectFormat.TEXT

    @field_validator("validation", mode="before")
    @classmethod
    def _validation_or_default(cls, value: Any) -> Any:
        return {} if value is None else value


class NotesBlockStep(StepBase):
    kind: StepKind = Field(StepKind.NOTES_BLOCK, alias="StepType")
    notes_template: Optional[str] = Field(None, alias="NotesTemplate")


class VariableAssignmentStep(StepBase):
    kind: StepKind = Field(StepKind.VARIABLE_ASSIGNMENT, alias="StepType")
    assignments: List[VariableAssignment] = Field(
        default_factory=list, alias="VariableAssignments"
    )

    @field_validator("assignments", mode="before")
    @classmethod
    def _assignments_or_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class LoadWorkflowStep(StepBase):
    """
    Loads a nested workflow by name and returns here when it is exhausted.

    Attributes:
        workflow_name: Name of the sub-workflow to resolve.
        clear_window: Hide the parent's rows while the sub-workflow runs.
    """

    kind: StepKind = Field(StepKind.LOAD_WORKFLOW, alias="StepType")
    workflow_name: Optional[str] = Field(None, alias="WorkflowName")
    clear_window: bool = Field(False, alias="ClearWindow")

    @field_validator("clear_window", mode="before")
    @classmethod
    def _clear_window_flag(cls, value: Any) -> bool:
        return _as_flag(value)


class UnknownStep(StepBase):
    """A step whose StepType is not recognized. Kept so the document still loads."""

    raw_type: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _capture_raw_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and "raw_type" not in data:
            raw = data.get("StepType", data.get("kind"))
            data = {**data, "raw_type": None if raw is None else str(raw)}
        return data


def _step_tag(value: Any) -> str:
    if isinstance(value, dict):
        raw = value.get("StepType", value.get("kind"))
    else:
        raw = getattr(value, "kind", None)
    return StepKind.parse(raw).value


Step = Annotated[
    Union[
        Annotated[UserInstructionStep, Tag(StepKind.USER_INSTRUCTION.value)],
        Annotated[LightInstructionStep, Tag(StepKind.USER_INSTRUCTION_LIGHT.value)],
        Annotated[QuestionStep, Tag(StepKind.QUESTION.value)],
        Annotated[CollectStep, Tag(StepKind.COLLECT.value)],
        Annotated[NotesBlockStep, Tag(StepKind.NOTES_BLOCK.value)],
        Annotated[VariableAssignmentStep, Tag(StepKind.VARIABLE_ASSIGNMENT.value)],
        Annotated[LoadWorkflowStep, Tag(StepKind.LOAD_WORKFLOW.value)],
        Annotated[UnknownStep, Tag(StepKind.UNKNOWN.value)],
    ],
    Discriminator(_step_tag),
]

Answer.model_rebuild()
QuestionStep.model_rebuild()


class Workflow(DocumentModel):
    """
    Ordered list of steps forming a complete guided workflow.

    Top-level organizational unit. Can be loaded directly (by UID or alias)
    or by name from a loadworkflow step, in which case the engine pushes a
    ParentFrame and runs these steps before returning to the caller.

    Attributes:
        name: Workflow name (also the target of loadworkflow steps).
        uid: Server-assigned unique identifier.
        steps: Root steps in document order.
    """

    name: str = Field(alias="WorkflowName")
    uid: Optional[str] = Field(None, alias="WorkflowUID")
    steps: List[Step] = Field(default_factory=list, alias="Steps")
    last_updated: Optional[str] = Field(None, alias="LastUpdated")
    last_updated_by: Optional[str] = Field(None, alias="LastUpdatedBy")

    @field_validator("steps", mode="before")
    @classmethod
    def _steps_or_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @classmethod
    def from_document(
        cls, name: str, uid: Optional[str], definition: Optional[Dict[str, Any]]
    ) -> "Workflow":
        """
        Builds a Workflow from a stored document: the name and UID live next
        to the definition body, which holds the steps.
        """
        body = dict(definition or {})
        body["WorkflowName"] = name
        body["WorkflowUID"] = uid
        return cls.model_validate(body)

    def referenced_workflows(self) -> List[str]:
        """Names of every workflow reachable through loadworkflow steps, in order."""
        names: List[str] = []

        def visit(steps: List[StepBase]) -> None:
            for step in steps:
                if isinstance(step, LoadWorkflowStep) and step.workflow_name:
                    if step.workflow_name not in names:
                        names.append(step.workflow_name)
                if isinstance(step, QuestionStep):
                    for answer in step.answers:
                        visit(answer.sub_steps)

        visit(self.steps)
        return names
