import pytest

from guided_workflow.data.sample_workflows import PASSWORD_RESET, VERIFY_CALLER
from guided_workflow.domain.models import QuestionStep
from guided_workflow.repositories.session import InMemorySessionRepository
from guided_workflow.repositories.workflow import StaticWorkflowRepository
from guided_workflow.services.exceptions import WorkflowNotFoundError
from guided_workflow.state.models import Row, SessionState


@pytest.mark.asyncio
async def test_static_repository_resolution():
    repo = StaticWorkflowRepository()

    assert await repo.resolve_by_name("verify caller") is VERIFY_CALLER
    assert await repo.resolve_by_uid_or_alias(PASSWORD_RESET.uid) is PASSWORD_RESET
    assert await repo.resolve_by_uid_or_alias("Forgot Password") is PASSWORD_RESET
    assert await repo.resolve_by_uid_or_alias("Password Reset") is PASSWORD_RESET

    with pytest.raises(WorkflowNotFoundError):
        await repo.resolve_by_name("Nope")
    with pytest.raises(WorkflowNotFoundError):
        await repo.resolve_by_uid_or_alias("Nope")


def test_in_memory_session_repository():
    repo = InMemorySessionRepository()

    session = repo.create(username="agent7")
    assert repo.get(session.session_id) is session
    assert session.username == "agent7"

    assert repo.delete(session.session_id) is True
    assert repo.get(session.session_id) is None
    assert repo.delete(session.session_id) is False


def test_session_state_survives_json_round_trip():
    """Postgres stores sessions as JSON; step types must come back intact."""
    question = VERIFY_CALLER.steps[1]
    session = SessionState(session_id="s1", workflow=VERIFY_CALLER, workflow_name=VERIFY_CALLER.name)
    session.rows.append(Row(step=question, workflow_name=VERIFY_CALLER.name, answered=True))
    session.variables.set_variable("accountnumber", "12345678")

    restored = SessionState.model_validate(session.model_dump(mode="json"))

    assert isinstance(restored.rows[0].step, QuestionStep)
    assert restored.rows[0].step.answers[1].execute == "system.endworkflow"
    assert restored.workflow == VERIFY_CALLER
    assert restored.variables.get_variable("accountnumber") == "12345678"
