"""
State Layer - Runtime Data Models

This module defines the runtime state model that tracks an agent's journey
through guided workflows. Workflows are materialized into a linear list of
Rows; nested workflows are supported through a Call Stack of ParentFrames
that remember where the parent left off.

All state of a conversation lives on one SessionState object, so several
sessions can run side by side in the same process.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Literal

from pydantic import BaseModel, Field, PrivateAttr

from ..domain.models import Step, Workflow
from .variables import VariableStore


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EngineStatus(str, Enum):
    IDLE = "IDLE"  # No active workflow
    ADVANCING = "ADVANCING"  # Pulling pending steps
    BLOCKED = "BLOCKED"  # Waiting for a question or collect row
    SUSPENDED = "SUSPENDED"  # Awaiting sub-workflow resolution


class Row(BaseModel):
    """
    One materialized step instance shown to the agent.

    `id` is unique per row; `step.guid` identifies the authored step and is
    shared by every row the step could ever produce.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    step: Step
    workflow_name: str
    parent_answer_guid: Optional[str] = None
    answered: bool = False
    selected_answer_guid: Optional[str] = None
    collected_value: Optional[str] = None
    visible: bool = True

    @property
    def is_waiting(self) -> bool:
        """A question or collect row that still needs input."""
        return self.step.kind.is_blocking and not self.answered


class PendingStep(BaseModel):
    """
    An entry of the pending list. The parent tag travels with the entry so
    spliced sub-steps keep their answer while the rest keep their own.
    """

    step: Step
    parent_answer_guid: Optional[str] = None


class ParentFrame(BaseModel):
    """
    Represents a single item on the call stack: the parent context saved when
    a loadworkflow step switches to a nested workflow.
    """

    saved_workflow: Optional[Workflow] = None
    saved_workflow_name: Optional[str] = None
    # Answer whose branch loaded the nested workflow
    parent_answer_guid: Optional[str] = None
    saved_pending_steps: List[PendingStep] = Field(default_factory=list)
    saved_cursor: int = 0

    # Empty when the nested workflow was loaded with ClearWindow
    saved_rows: List[Row] = Field(default_factory=list)
    cleared_window: bool = False


class WorkflowExecution(BaseModel):
    workflow_uid: str
    workflow_name: str
    started_at: datetime = Field(default_factory=_utcnow)
    ended_at: Optional[datetime] = None
    status: Literal["running", "completed", "cancelled"] = "running"


class InteractionState(BaseModel):
    """
    A multi-workflow interaction (e.g. one customer call). Several workflows can
    run within one interaction and share its notes and variables.
    """

    enabled: bool = False
    interaction_id: Optional[str] = None
    started_at: Optional[datetime] = None
    workflows: List[WorkflowExecution] = Field(default_factory=list)
    shared_notes: str = ""

    @property
    def is_active(self) -> bool:
        return self.enabled and self.interaction_id is not None

    def start(self) -> str:
        self.enabled = True
        self.interaction_id = str(uuid.uuid4())
        self.started_at = _utcnow()
        self.workflows = []
        self.shared_notes = ""
        return self.interaction_id

    def end(self):
        for execution in self.workflows:
            if execution.status == "running":
                execution.status = "cancelled"
                execution.ended_at = _utcnow()
        self.interaction_id = None
        self.started_at = None
        self.workflows = []
        self.shared_notes = ""

    def add_workflow(self, workflow_uid: str, workflow_name: str):
        if any(w.workflow_uid == workflow_uid and w.status == "running" for w in self.workflows):
            return
        self.workflows.append(
            WorkflowExecution(workflow_uid=workflow_uid, workflow_name=workflow_name)
        )

    def complete_workflow(self, workflow_uid: str):
        for execution in self.workflows:
            if execution.workflow_uid == workflow_uid and execution.status == "running":
                execution.status = "completed"
                execution.ended_at = _utcnow()

    def append_shared_notes(self, text: str):
        self.shared_notes = f"{self.shared_notes}\n{text}" if self.shared_notes else text


class SessionState(BaseModel):
    """
    The complete state for a single conversation.

    Attributes:
        workflow: Workflow whose steps are currently pending (None when idle).
        workflow_name: Name new rows are tagged with.
        pending_steps / cursor: The step list being walked and the next index.
        rows: Materialized rows, in display order.
        stack: ParentFrames of suspended parent workflows (LIFO).
        generation: Bumped on every reset; in-flight work from an older
            generation is discarded.
    """

    session_id: str
    username: Optional[str] = None

    workflow: Optional[Workflow] = None
    workflow_name: Optional[str] = None
    pending_steps: List[PendingStep] = Field(default_factory=list)
    cursor: int = 0
    rows: List[Row] = Field(default_factory=list)
    stack: List[ParentFrame] = Field(default_factory=list)

    notes: str = ""
    status: EngineStatus = EngineStatus.IDLE
    generation: int = 0

    interaction_id: str = ""
    workflow_instance_id: str = ""

    variables: VariableStore = Field(default_factory=VariableStore)
    interaction: InteractionState = Field(default_factory=InteractionState)

    updated_at: datetime = Field(default_factory=_utcnow)

    _lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    def find_row(self, row_id: str) -> Optional[Row]:
        return next((row for row in self.rows if row.id == row_id), None)

    def has_row_for(self, step_guid: str, workflow_name: Optional[str]) -> bool:
        return any(
            row.step.guid == step_guid and row.workflow_name == (workflow_name or "")
            for row in self.rows
        )

    def has_waiting_row(self) -> bool:
        return any(row.is_waiting for row in self.rows)

    def visible_rows(self) -> List[Row]:
        return [row for row in self.rows if row.visible]

    def append_notes(self, text: str):
        if not text:
            return
        self.notes = f"{self.notes}\n{text}" if self.notes else text
        if self.interaction.is_active:
            self.interaction.append_shared_notes(text)

    def clear_execution(self):
        """
        Drops the workflow, rows, pending steps and call stack. Notes survive
        while an interaction is active. In-flight work becomes stale.
        """
        self.generation += 1
        self.workflow = None
        self.workflow_name = None
        self.pending_steps = []
        self.cursor = 0
        self.rows = []
        self.stack = []
        self.status = EngineStatus.IDLE
        if not self.interaction.is_active:
            self.notes = ""

    def reset(self):
        """Ends the session: execution state plus the per-session identifiers."""
        self.clear_execution()
        self.interaction_id = ""
        self.workflow_instance_id = ""
