import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Dict
from datetime import datetime, timezone

from sqlmodel import Session, select

# Domain & Infra Imports
from ..state.models import SessionState
from ..infrastructure.database.tables import SessionDBModel
from ..infrastructure.database.connection import get_engine


class SessionRepository(ABC):
    """
    Defines how the application accesses sessions.
    This allows us change how data is accessed (Memory -> SQL -> API) later
    without changing the WorkflowEngine code.

    checkout() hands every concurrent caller the same live SessionState, and
    with it the same session lock, until the last caller is done.
    """

    def __init__(self):
        self._live: Dict[str, SessionState] = {}
        self._holders: Dict[str, int] = {}

    def live(self, session_id: str) -> Optional[SessionState]:
        """The session object currently checked out, if any."""
        return self._live.get(session_id)

    @asynccontextmanager
    async def checkout(self, session_id: str) -> AsyncIterator[Optional[SessionState]]:
        """
        Yields the live session (None if it does not exist) and saves it when
        the block completes. A session deleted meanwhile is not saved back.
        """
        session = self._live.get(session_id) or self.get(session_id)
        if session is None:
            yield None
            return

        self._live[session_id] = session
        self._holders[session_id] = self._holders.get(session_id, 0) + 1
        try:
            yield session
            if self._live.get(session_id) is session:
                self.save(session)
        finally:
            self._holders[session_id] -= 1
            if not self._holders[session_id]:
                del self._holders[session_id]
                if self._live.get(session_id) is session:
                    del self._live[session_id]

    @abstractmethod
    def create(self, username: Optional[str] = None) -> SessionState:
        """Creates a new empty session with a unique ID."""
        pass

    @abstractmethod
    def get(self, session_id: str) -> Optional[SessionState]:
        """Retrieves a session by ID."""
        pass

    @abstractmethod
    def save(self, session: SessionState):
        """Persists the session state."""
        pass

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        """Deletes a session. Returns True if found and deleted."""
        pass


class InMemorySessionRepository(SessionRepository):
    """
    Uses in-memory dictionary for session storage for testing/dev purposes.
    The same SessionState object is handed out on every get(), so its lock
    is shared by concurrent requests.
    """

    def __init__(self):
        super().__init__()
        self._store: Dict[str, SessionState] = {}

    def create(self, username: Optional[str] = None) -> SessionState:
        new_id = str(uuid.uuid4())
        session = SessionState(session_id=new_id, username=username)
        self._store[new_id] = session
        return session

    def get(self, session_id: str) -> Optional[SessionState]:
        return self._store.get(session_id)

    def save(self, session: SessionState):
        session.updated_at = datetime.now(timezone.utc)
        self._store[session.session_id] = session

    def delete(self, session_id: str) -> bool:
        self._live.pop(session_id, None)
        if session_id in self._store:
            del self._store[session_id]
            return True
        return False


class PostgresSessionRepository(SessionRepository):
    """
    PostgreSQL + JSONB storage for session state. Every get() rebuilds the
    SessionState from its JSON row; use checkout() around engine calls.
    """

    @staticmethod
    def _fetch(db: Session, session_id: str) -> Optional[SessionDBModel]:
        statement = select(SessionDBModel).where(SessionDBModel.session_id == session_id)
        return db.exec(statement).first()

    def create(self, username: Optional[str] = None) -> SessionState:
        session = SessionState(session_id=str(uuid.uuid4()), username=username)
        with Session(get_engine()) as db:
            db.add(SessionDBModel(session_id=session.session_id, state=session.model_dump(mode="json")))
            db.commit()
        return session

    def get(self, session_id: str) -> Optional[SessionState]:
        with Session(get_engine()) as db:
            record = self._fetch(db, session_id)
            if record is None:
                return None
            session = SessionState.model_validate(record.state)
            session.updated_at = record.updated_at
            return session

    def save(self, session: SessionState):
        with Session(get_engine()) as db:
            record = self._fetch(db, session.session_id)
            if record is None:
                raise ValueError(f"Session {session.session_id} does not exist in DB.")

            session.updated_at = datetime.now(timezone.utc)
            record.state = session.model_dump(mode="json")
            record.updated_at = session.updated_at
            db.add(record)
            db.commit()

    def delete(self, session_id: str) -> bool:
        self._live.pop(session_id, None)
        with Session(get_engine()) as db:
            record = self._fetch(db, session_id)
            if record is None:
                return False
            db.delete(record)
            db.commit()
            return True
