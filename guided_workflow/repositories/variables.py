from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlmodel import Session, select

from ..infrastructure.database.tables import VariableSnapshotDBModel
from ..infrastructure.database.connection import get_engine


class VariableSnapshotRepository(ABC):
    """
    Defines where persisted variable snapshots live.
    A snapshot is a plain dict keyed by scope name.
    """

    @abstractmethod
    def save(self, key: str, snapshot: Dict[str, Any]):
        pass

    @abstractmethod
    def load(self, key: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        pass


class InMemoryVariableSnapshotRepository(VariableSnapshotRepository):
    def __init__(self):
        self._store: Dict[str, Dict[str, Any]] = {}

    def save(self, key: str, snapshot: Dict[str, Any]):
        self._store[key] = snapshot

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        return self._store.get(key)

    def delete(self, key: str) -> bool:
        return self._store.pop(key, None) is not None


class PostgresVariableSnapshotRepository(VariableSnapshotRepository):
    """
    PostgreSQL + JSONB storage for variable snapshots.
    """

    def save(self, key: str, snapshot: Dict[str, Any]):
        with Session(get_engine()) as db:
            result = db.get(VariableSnapshotDBModel, key)
            if result:
                result.data = snapshot
                result.updated_at = datetime.now(timezone.utc)
            else:
                result = VariableSnapshotDBModel(snapshot_key=key, data=snapshot)
            db.add(result)
            db.commit()

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        with Session(get_engine()) as db:
            statement = select(VariableSnapshotDBModel).where(
                VariableSnapshotDBModel.snapshot_key == key
            )
            result = db.exec(statement).first()
            return dict(result.data) if result else None

    def delete(self, key: str) -> bool:
        with Session(get_engine()) as db:
            result = db.get(VariableSnapshotDBModel, key)
            if result:
                db.delete(result)
                db.commit()
                return True
            return False
