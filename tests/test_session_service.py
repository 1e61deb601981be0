import asyncio

import pytest

from guided_workflow.domain.models import Answer, QuestionStep, UserInstructionStep, Workflow
from guided_workflow.execution.engine import WorkflowEngine
from guided_workflow.repositories.session import InMemorySessionRepository
from guided_workflow.repositories.workflow import StaticWorkflowRepository
from guided_workflow.services.exceptions import SessionNotFoundError
from guided_workflow.services.session import SessionService
from guided_workflow.state.models import SessionState


class JsonSessionRepository(InMemorySessionRepository):
    """Rebuilds sessions from JSON on every get(), like the Postgres store."""

    def get(self, session_id):
        stored = self._store.get(session_id)
        if stored is None:
            return None
        return SessionState.model_validate(stored.model_dump(mode="json"))

    def save(self, session):
        self._store[session.session_id] = SessionState.model_validate(session.model_dump(mode="json"))


WORKFLOW = Workflow(
    name="W",
    steps=[
        QuestionStep(
            guid="Q1",
            answers=[
                Answer(
                    guid="YES",
                    sub_steps=[UserInstructionStep(guid=f"U{i}") for i in range(1, 4)],
                ),
                Answer(guid="NO"),
            ],
        ),
        QuestionStep(guid="Q2", answers=[Answer(guid="B1")]),
    ],
)


@pytest.fixture
def repository():
    return JsonSessionRepository()


@pytest.fixture
def service(repository):
    workflows = StaticWorkflowRepository(workflows=[WORKFLOW], aliases={})
    return SessionService(
        session_repository=repository,
        workflow_repository=workflows,
        engine=WorkflowEngine(repository=workflows, pacing_delay=0.01),
    )


@pytest.mark.asyncio
async def test_concurrent_answers_share_one_session(service, repository):
    session_id = service.start_session().session_id
    await service.start_workflow(session_id, "W")
    q1_id = repository.get(session_id).rows[0].id

    first, second = await asyncio.gather(
        service.answer_question(session_id, q1_id, "YES"),
        service.answer_question(session_id, q1_id, "YES"),
    )

    assert first.accepted
    assert not second.accepted
    assert second.reason == "Answer already selected"

    stored = repository.get(session_id)
    assert [row.step.guid for row in stored.rows] == ["Q1", "U1", "U2", "U3", "Q2"]
    assert repository.live(session_id) is None


@pytest.mark.asyncio
async def test_checked_out_session_is_returned_to_readers(service, repository):
    session_id = service.start_session().session_id

    async with repository.checkout(session_id) as session:
        assert service.get_session(session_id) is session
        session.append_notes("Caller verified.")

    assert repository.get(session_id).notes == "Caller verified."


@pytest.mark.asyncio
async def test_session_deleted_during_checkout_is_not_saved_back(service, repository):
    session_id = service.start_session().session_id

    async with repository.checkout(session_id):
        assert repository.delete(session_id)

    assert repository.get(session_id) is None
    with pytest.raises(SessionNotFoundError):
        await service.answer_question(session_id, "r1", "YES")
