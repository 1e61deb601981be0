import asyncio
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Mapping, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from ..domain.models import Workflow
from ..infrastructure.database.tables import WorkflowAliasDBModel, WorkflowDBModel
from ..infrastructure.database.connection import get_engine
from ..data.sample_workflows import SAMPLE_ALIASES, SAMPLE_WORKFLOWS
from ..services.exceptions import WorkflowNotFoundError


# The Interface
class WorkflowRepository(ABC):
    """
    Defines how the application resolves Workflow definitions.
    This allows us change how data is accessed (Memory -> SQL -> API) later
    without changing the WorkflowEngine code.
    """

    @abstractmethod
    async def resolve_by_name(self, name: str) -> Workflow:
        """
        Retrieves a workflow by name (used by loadworkflow steps).
        Raises WorkflowNotFoundError if not found.
        """
        pass

    @abstractmethod
    async def resolve_by_uid_or_alias(self, identifier: str) -> Workflow:
        """
        Retrieves a workflow by UID, then alias, then name.
        Raises WorkflowNotFoundError if not found.
        """
        pass


class StaticWorkflowRepository(WorkflowRepository):
    """
    Get workflows from an in-memory list (the bundled sample workflows by default).
    """

    def __init__(
        self,
        workflows: Optional[Iterable[Workflow]] = None,
        aliases: Optional[Mapping[str, str]] = None,
    ):
        if workflows is None:
            workflows = SAMPLE_WORKFLOWS.values()
            aliases = SAMPLE_ALIASES if aliases is None else aliases

        # Indexes for O(1) lookup
        self._by_name: Dict[str, Workflow] = {}
        self._by_uid: Dict[str, Workflow] = {}
        self._aliases: Dict[str, str] = {}

        for workflow in workflows:
            self.add(workflow)
        for alias, workflow_name in (aliases or {}).items():
            self._aliases[alias.strip().lower()] = workflow_name

    def add(self, workflow: Workflow):
        self._by_name[workflow.name.strip().lower()] = workflow
        if workflow.uid:
            self._by_uid[workflow.uid] = workflow

    async def resolve_by_name(self, name: str) -> Workflow:
        workflow = self._by_name.get(name.strip().lower())
        if workflow is None:
            raise WorkflowNotFoundError(f"Workflow '{name}' not found.")
        return workflow

    async def resolve_by_uid_or_alias(self, identifier: str) -> Workflow:
        key = identifier.strip()
        if key in self._by_uid:
            return self._by_uid[key]
        target = self._aliases.get(key.lower())
        if target is not None:
            return await self.resolve_by_name(target)
        return await self.resolve_by_name(key)


class PostgresWorkflowRepository(WorkflowRepository):
    """
    Reads from the PostgreSQL 'workflows' table (JSONB) and its alias table.
    Queries run in a worker thread so the event loop is never blocked.
    """

    async def resolve_by_name(self, name: str) -> Workflow:
        return await asyncio.to_thread(self._get_by_name, name)

    async def resolve_by_uid_or_alias(self, identifier: str) -> Workflow:
        return await asyncio.to_thread(self._get_by_uid_or_alias, identifier)

    def _get_by_name(self, name: str) -> Workflow:
        with Session(get_engine()) as db:
            record = self._find_by_name(db, name)
            if not record:
                raise WorkflowNotFoundError(f"Workflow '{name}' not found in database.")
            return self._to_domain(record)

    def _get_by_uid_or_alias(self, identifier: str) -> Workflow:
        key = identifier.strip()
        with Session(get_engine()) as db:
            record = db.get(WorkflowDBModel, key)

            if not record:
                statement = select(WorkflowAliasDBModel).where(
                    func.lower(WorkflowAliasDBModel.alias_text) == key.lower()
                )
                alias = db.exec(statement).first()
                record = self._find_by_name(db, alias.workflow_name if alias else key)

            if not record:
                raise WorkflowNotFoundError(f"Workflow '{identifier}' not found in database.")
            return self._to_domain(record)

    @staticmethod
    def _find_by_name(db: Session, name: str) -> Optional[WorkflowDBModel]:
        statement = select(WorkflowDBModel).where(
            func.lower(WorkflowDBModel.name) == name.strip().lower()
        )
        return db.exec(statement).first()

    @staticmethod
    def _to_domain(record: WorkflowDBModel) -> Workflow:
        # Deserialize JSONB -> Pydantic
        return Workflow.from_document(record.name, record.workflow_uid, record.definition)
