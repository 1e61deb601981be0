"""
Session Service - Application Orchestration Layer

This service is the entry point for all session operations. It orchestrates
the interaction between the Data Layer (Repositories), the Logic Layer (Engine),
and the API. It ensures that sessions are loaded, processed, and saved correctly.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from ..state.models import SessionState
from ..repositories.session import SessionRepository
from ..repositories.variables import VariableSnapshotRepository
from ..repositories.workflow import WorkflowRepository
from ..execution.engine import WorkflowEngine
from ..execution.schemas.state_machine import AnswerResult, CollectResult
from .exceptions import SessionNotFoundError

logger = logging.getLogger(__name__)


class SessionService:
    def __init__(
        self,
        session_repository: SessionRepository,
        workflow_repository: WorkflowRepository,
        engine: WorkflowEngine,
        snapshot_repository: Optional[VariableSnapshotRepository] = None,
        interaction_mode: bool = False,
    ):
        self.session_repo = session_repository
        self.workflow_repo = workflow_repository
        self.engine = engine
        self.snapshot_repo = snapshot_repository
        self.interaction_mode = interaction_mode

    def start_session(self, username: Optional[str] = None) -> SessionState:
        """Creates a new empty session."""
        session = self.session_repo.create(username=username)
        session.interaction.enabled = self.interaction_mode
        self._bind_variables(session)
        # A fresh session starts from clean variables.
        session.variables.clear_all_variables()
        self.session_repo.save(session)
        logger.info(f"Started session {session.session_id}")
        return session

    def get_session(self, session_id: str) -> Optional[SessionState]:
        """Retrieves a session (for resuming)."""
        session = self.session_repo.live(session_id) or self.session_repo.get(session_id)
        if session is not None:
            self._bind_variables(session)
        return session

    def require_session(self, session_id: str) -> SessionState:
        session = self.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    def end_session(self, session_id: str) -> SessionState:
        """
        Ends the running workflow. Variables are kept while an interaction
        is active, so the next workflow of the interaction can use them.
        """
        session = self.require_session(session_id)
        in_interaction = session.interaction.is_active
        self.engine.end_session(session)
        if not in_interaction:
            session.variables.clear_all_variables()
        self.session_repo.save(session)
        return session

    def delete_session(self, session_id: str) -> bool:
        """Ends and deletes a session."""
        session = self.get_session(session_id)
        if session is None:
            return False
        self.engine.end_session(session)
        session.variables.clear_all_variables()
        return self.session_repo.delete(session_id)

    # ==========================================================================
    # Workflow operations
    # ==========================================================================

    async def start_workflow(self, session_id: str, identifier: str) -> SessionState:
        """
        Resolves a workflow by UID, alias or name and starts it.
        Raises WorkflowNotFoundError if nothing matches.
        """
        async with self._checkout(session_id) as session:
            workflow = await self.workflow_repo.resolve_by_uid_or_alias(identifier)
            await self.engine.load_workflow(session, workflow)
        return session

    async def answer_question(
        self, session_id: str, row_id: str, answer_guid: str, confirmed: bool = False
    ) -> AnswerResult:
        async with self._checkout(session_id) as session:
            return await self.engine.answer_question(
                session, row_id, answer_guid, confirm=lambda _message: confirmed
            )

    async def collect_value(self, session_id: str, row_id: str, value: str) -> CollectResult:
        async with self._checkout(session_id) as session:
            return await self.engine.collect_value(session, row_id, value)

    @asynccontextmanager
    async def _checkout(self, session_id: str) -> AsyncIterator[SessionState]:
        """Shared live session for one get -> engine -> save sequence."""
        async with self.session_repo.checkout(session_id) as session:
            if session is None:
                raise SessionNotFoundError(f"Session {session_id} not found")
            self._bind_variables(session)
            yield session

    # ==========================================================================
    # Interactions
    # ==========================================================================

    def start_interaction(self, session_id: str) -> SessionState:
        session = self.require_session(session_id)
        interaction_id = session.interaction.start()
        session.interaction_id = interaction_id
        logger.info(f"Started interaction {interaction_id} in session {session_id}")
        self.session_repo.save(session)
        return session

    def end_interaction(self, session_id: str) -> SessionState:
        session = self.require_session(session_id)
        session.interaction.end()
        self.engine.end_session(session)
        session.variables.clear_all_variables()
        logger.info(f"Ended interaction in session {session_id}")
        self.session_repo.save(session)
        return session

    def _bind_variables(self, session: SessionState):
        if self.snapshot_repo is None:
            return
        session.variables.bind_snapshots(self.snapshot_repo, f"session:{session.session_id}")
        if not session.variables.workflow and not session.variables.customer:
            session.variables.restore()
