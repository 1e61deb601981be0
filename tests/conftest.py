import pytest

from guided_workflow.execution.engine import WorkflowEngine
from guided_workflow.repositories.workflow import StaticWorkflowRepository
from guided_workflow.state.models import SessionState


@pytest.fixture
def session():
    return SessionState(session_id="test-session", username="agent7")


@pytest.fixture
def make_engine():
    """Builds an engine whose repository serves only the given workflows."""

    def build(*workflows, pacing_delay: float = 0.0) -> WorkflowEngine:
        repository = StaticWorkflowRepository(workflows=list(workflows), aliases={})
        return WorkflowEngine(repository=repository, pacing_delay=pacing_delay)

    return build
