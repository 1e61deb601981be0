"""
Dependency Injection Wiring (Composition Root).

This module acts as the central "container" for the application's services.
It is responsible for:
1. Instantiating the core Singleton services (Repositories, Engine).
2. Wiring them together (e.g., injecting the Workflow Repository into the Engine).
3. Managing the lifecycle of these objects using @lru_cache to ensure
   they are created only once per application process.

Which storage backs workflows, sessions and variable snapshots is decided by
settings (WORKFLOW_SOURCE, SESSION_STORE). Tests override get_session_service.
"""


from functools import lru_cache
from fastapi import Depends

from ..config import settings
from ..repositories.workflow import WorkflowRepository, StaticWorkflowRepository, PostgresWorkflowRepository
from ..repositories.session import SessionRepository, InMemorySessionRepository, PostgresSessionRepository
from ..repositories.variables import (
    VariableSnapshotRepository,
    InMemoryVariableSnapshotRepository,
    PostgresVariableSnapshotRepository,
)
from ..execution.engine import WorkflowEngine
from ..services.session import SessionService

# Workflow Repository (Singleton)
@lru_cache()
def get_workflow_repository() -> WorkflowRepository:
    if settings.WORKFLOW_SOURCE == "postgres":
        return PostgresWorkflowRepository()
    return StaticWorkflowRepository()

# Session Repository (Singleton)
# Note: In-memory storage must be a singleton so data persists across requests!
@lru_cache()
def get_session_repository() -> SessionRepository:
    if settings.SESSION_STORE == "postgres":
        return PostgresSessionRepository()
    return InMemorySessionRepository()

# Variable snapshots follow the session store
@lru_cache()
def get_snapshot_repository() -> VariableSnapshotRepository:
    if settings.SESSION_STORE == "postgres":
        return PostgresVariableSnapshotRepository()
    return InMemoryVariableSnapshotRepository()

# The Engine (Singleton Service)
@lru_cache()
def get_workflow_engine(
    repo: WorkflowRepository = Depends(get_workflow_repository)
) -> WorkflowEngine:
    return WorkflowEngine(repository=repo, pacing_delay=settings.PACING_DELAY_SECONDS)

# The Session Service (Singleton Service)
@lru_cache()
def get_session_service(
    session_repo: SessionRepository = Depends(get_session_repository),
    workflow_repo: WorkflowRepository = Depends(get_workflow_repository),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    snapshot_repo: VariableSnapshotRepository = Depends(get_snapshot_repository),
) -> SessionService:
    """
    Injects all necessary components into the SessionService.
    """
    return SessionService(
        session_repository=session_repo,
        workflow_repository=workflow_repo,
        engine=engine,
        snapshot_repository=snapshot_repo,
        interaction_mode=settings.INTERACTION_MODE,
    )
