"""
State Layer - Variable Store

Scoped key/value state shared by every step of a session. Three scopes exist:
System (seeded once per top-level session), Workflow (answers, collected values
and assignments) and Customer (caller data). Names are case-insensitive.

Text templates reference variables as ~name~ or ~#name#~; interpolation never
raises and leaves unresolved tokens untouched.
"""

import logging
import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, PrivateAttr

from ..repositories.variables import VariableSnapshotRepository

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"~#?([^~#]+)#?~")

# Well-known System variable names
INTERACTION_ID = "interactionguid"
WORKFLOW_ID = "workflowguid"
USERNAME = "loggedinusername"
TODAY = "today"
NOW = "now"


class VariableScope(str, Enum):
    SYSTEM = "system"
    WORKFLOW = "workflow"
    CUSTOMER = "customer"


# Order used when a lookup does not name a scope.
LOOKUP_ORDER = (VariableScope.SYSTEM, VariableScope.WORKFLOW, VariableScope.CUSTOMER)
PERSISTED_SCOPES = (VariableScope.WORKFLOW, VariableScope.CUSTOMER)


class Variable(BaseModel):
    name: str
    value: Any = None
    scope: VariableScope


def format_value(value: Any) -> str:
    """Renders a variable value the way templates display it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(format_value(item) for item in value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _normalize(name: str) -> str:
    return name.strip().lower()


class VariableStore(BaseModel):
    """
    Scoped variable storage.

    Attributes:
        system: Identity and environment values, never persisted.
        workflow: Values produced while walking workflows.
        customer: Caller data.
    """

    system: Dict[str, Any] = Field(default_factory=dict)
    workflow: Dict[str, Any] = Field(default_factory=dict)
    customer: Dict[str, Any] = Field(default_factory=dict)

    _snapshots: Optional[VariableSnapshotRepository] = PrivateAttr(default=None)
    _snapshot_key: Optional[str] = PrivateAttr(default=None)

    # ==========================================================================
    # Snapshot persistence
    # ==========================================================================

    def bind_snapshots(self, repository: VariableSnapshotRepository, key: str):
        """Persists Workflow and Customer writes under `key` from now on."""
        self._snapshots = repository
        self._snapshot_key = key

    def restore(self) -> bool:
        """Reloads the persisted snapshot. Returns True if one existed."""
        if self._snapshots is None or self._snapshot_key is None:
            return False
        snapshot = self._snapshots.load(self._snapshot_key)
        if not snapshot:
            return False
        self.workflow = dict(snapshot.get(VariableScope.WORKFLOW.value, {}))
        self.customer = dict(snapshot.get(VariableScope.CUSTOMER.value, {}))
        logger.debug(f"Restored variable snapshot '{self._snapshot_key}'")
        return True

    def _persist(self):
        if self._snapshots is None or self._snapshot_key is None:
            return
        self._snapshots.save(
            self._snapshot_key,
            {scope.value: dict(self._scope(scope)) for scope in PERSISTED_SCOPES},
        )

    # ==========================================================================
    # Read / Write
    # ==========================================================================

    def _scope(self, scope: VariableScope) -> Dict[str, Any]:
        if scope == VariableScope.SYSTEM:
            return self.system
        if scope == VariableScope.CUSTOMER:
            return self.customer
        return self.workflow

    def set_variable(
        self, name: str, value: Any, scope: VariableScope = VariableScope.WORKFLOW
    ):
        if not name or not name.strip():
            return
        self._scope(scope)[_normalize(name)] = value
        if scope in PERSISTED_SCOPES:
            self._persist()

    def get_variable(self, name: str, scope: Optional[VariableScope] = None) -> Any:
        """
        Returns the variable value or None.

        Without a scope the lookup order is System > Workflow > Customer, then
        the computed `today` / `now` values.
        """
        if not name:
            return None
        key = _normalize(name)

        if scope is not None:
            return self._scope(scope).get(key)

        for candidate in LOOKUP_ORDER:
            values = self._scope(candidate)
            if key in values:
                return values[key]

        if key == TODAY:
            return date.today().isoformat()
        if key == NOW:
            return datetime.now().isoformat(timespec="seconds")
        return None

    def list_variables(self, scope: Optional[VariableScope] = None) -> List[Variable]:
        scopes = [scope] if scope is not None else list(LOOKUP_ORDER)
        return [
            Variable(name=name, value=value, scope=current)
            for current in scopes
            for name, value in self._scope(current).items()
        ]

    def clear_variables(self, scope: Optional[VariableScope] = None):
        """Clears one scope, or Workflow and Customer when no scope is given."""
        if scope is None:
            self.workflow.clear()
            self.customer.clear()
        else:
            self._scope(scope).clear()
        if scope is None or scope in PERSISTED_SCOPES:
            self._persist()

    def clear_all_variables(self):
        """Clears every scope and drops the persisted snapshot."""
        self.system.clear()
        self.workflow.clear()
        self.customer.clear()
        if self._snapshots is not None and self._snapshot_key is not None:
            self._snapshots.delete(self._snapshot_key)

    def init_system_variables(
        self, interaction_id: str, workflow_id: str, username: Optional[str] = None
    ):
        self.set_variable(INTERACTION_ID, interaction_id, VariableScope.SYSTEM)
        self.set_variable(WORKFLOW_ID, workflow_id, VariableScope.SYSTEM)
        if username:
            self.set_variable(USERNAME, username, VariableScope.SYSTEM)

    # ==========================================================================
    # Templates
    # ==========================================================================

    def interpolate(self, text: Optional[str]) -> str:
        """Replaces ~name~ and ~#name#~ tokens. Unknown names stay verbatim."""
        if not text:
            return ""

        def replace(match: re.Match) -> str:
            value = self.get_variable(match.group(1))
            if value is None:
                return match.group(0)
            return format_value(value)

        return TOKEN_PATTERN.sub(replace, text)
