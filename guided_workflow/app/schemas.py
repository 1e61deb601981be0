"""
API Layer - Request/Response Schemas

Pydantic models for API request and response validation.
"""

from datetime import datetime
from typing import Optional, Any

from pydantic import BaseModel


class CreateSessionRequest(BaseModel):
    username: Optional[str] = None


class CreateSessionResponse(BaseModel):
    session_id: str


class StartWorkflowRequest(BaseModel):
    # Workflow UID, alias or name
    workflow: str


class AnswerRequest(BaseModel):
    answer_guid: str
    # Confirms commands that ask for it (system.endinteraction)
    confirmed: bool = False


class CollectRequest(BaseModel):
    value: str


class AnswerOption(BaseModel):
    guid: str
    text: str
    selected: bool = False


class RowRead(BaseModel):
    """A row as the presentation layer renders it (templates already interpolated)."""
    id: str
    step_guid: str
    kind: str
    workflow_name: str
    title: Optional[str] = None
    prompt: str
    secondary_text: Optional[str] = None
    notes: Optional[str] = None
    answers: list[AnswerOption] = []
    answered: bool
    collected_value: Optional[str] = None
    format: Optional[str] = None


class InteractionRead(BaseModel):
    interaction_id: Optional[str] = None
    active: bool
    workflows: list[dict[str, Any]] = []
    shared_notes: str = ""


class SessionRead(BaseModel):
    session_id: str
    status: str
    current_workflow: Optional[str] = None
    depth: int = 0
    rows: list[RowRead]
    notes: str
    interaction: InteractionRead
    updated_at: datetime
    debug: Optional[dict[str, Any]] = None


class AnswerResponse(BaseModel):
    accepted: bool
    status: str
    reason: Optional[str] = None
    retracted_row_ids: list[str] = []
    confirmation_required: Optional[str] = None
    navigate_away: bool = False
    session: SessionRead


class CollectResponse(BaseModel):
    accepted: bool
    status: str
    value: Optional[str] = None
    error: Optional[str] = None
    session: SessionRead
