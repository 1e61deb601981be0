"""
Database Table Definitions.

This module defines the SQL schema using SQLModel.
We use the 'DBModel' suffix to distinguish these persistence models
from the Pydantic domain models (SessionState, Workflow).
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Column
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionDBModel(SQLModel, table=True):
    """
    Persistence model for engine sessions.
    Maps 1-to-1 with the 'sessions' table in Postgres.
    """

    __tablename__ = "sessions"

    session_id: str = Field(primary_key=True, index=True)

    # Store the entire SessionState (rows, pending steps, call stack, variables) as JSONB.
    state: Dict[str, Any] = Field(sa_column=Column(JSONB, nullable=False))

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class WorkflowDBModel(SQLModel, table=True):
    """
    Persistence model for Workflows.
    Maps 1-to-1 with the 'workflows' table in Postgres.
    """

    __tablename__ = "workflows"

    workflow_uid: str = Field(primary_key=True)
    name: str = Field(index=True)

    # The authored document body (Steps, Answers, SubSteps) as JSONB.
    definition: Dict[str, Any] = Field(sa_column=Column(JSONB, nullable=False))

    last_updated_by: Optional[str] = None
    version: int = Field(default=1)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class WorkflowAliasDBModel(SQLModel, table=True):
    """
    Alternative names a workflow can be started by.
    """

    __tablename__ = "workflow_aliases"

    alias_text: str = Field(primary_key=True)
    workflow_name: str = Field(index=True)


class VariableSnapshotDBModel(SQLModel, table=True):
    """
    Persisted Workflow/Customer variables of a session.
    """

    __tablename__ = "variable_snapshots"

    snapshot_key: str = Field(primary_key=True)
    data: Dict[str, Any] = Field(sa_column=Column(JSONB, nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow)
