import pytest
from fastapi.testclient import TestClient

from guided_workflow.app.dependencies import get_session_service
from guided_workflow.app.main import app
from guided_workflow.execution.engine import WorkflowEngine
from guided_workflow.repositories.session import InMemorySessionRepository
from guided_workflow.repositories.variables import InMemoryVariableSnapshotRepository
from guided_workflow.repositories.workflow import StaticWorkflowRepository
from guided_workflow.services.session import SessionService


@pytest.fixture
def client():
    workflows = StaticWorkflowRepository()
    service = SessionService(
        session_repository=InMemorySessionRepository(),
        workflow_repository=workflows,
        engine=WorkflowEngine(repository=workflows),
        snapshot_repository=InMemoryVariableSnapshotRepository(),
    )
    app.dependency_overrides[get_session_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_session(client):
    response = client.post("/sessions", json={"username": "agent7"})
    assert response.status_code == 201
    return response.json()["session_id"]


def _last_row(body):
    return body["rows"][-1]


def test_password_reset_walkthrough(client):
    session_id = _create_session(client)

    response = client.post(f"/sessions/{session_id}/workflow", json={"workflow": "forgot password"})
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "BLOCKED"
    assert body["depth"] == 1
    assert body["rows"][0]["prompt"] == "Thank the caller. You are signed in as agent7."
    account_row = _last_row(body)
    assert account_row["kind"] == "collect"
    assert account_row["format"] == "numeric"

    # Too short for the 8 digit rule
    response = client.post(
        f"/sessions/{session_id}/rows/{account_row['id']}/collect", json={"value": "1234"}
    )
    assert response.json()["accepted"] is False
    assert response.json()["error"] == "Must be at least 8 characters"

    response = client.post(
        f"/sessions/{session_id}/rows/{account_row['id']}/collect", json={"value": "12345678"}
    )
    body = response.json()
    assert body["accepted"] is True
    identity_row = _last_row(body["session"])
    assert "account 12345678" in identity_row["prompt"]
    assert [a["text"] for a in identity_row["answers"]] == ["Yes", "No"]

    response = client.post(
        f"/sessions/{session_id}/rows/{identity_row['id']}/answer",
        json={"answer_guid": "verify-02-yes"},
    )
    body = response.json()
    assert body["accepted"] is True
    assert body["session"]["depth"] == 0
    locked_row = _last_row(body["session"])
    assert locked_row["step_guid"] == "reset-04-locked"

    response = client.post(
        f"/sessions/{session_id}/rows/{locked_row['id']}/answer",
        json={"answer_guid": "reset-04-no"},
    )
    email_row = _last_row(response.json()["session"])
    assert email_row["prompt"] == "Confirm the email address the reset link should go to."

    response = client.post(
        f"/sessions/{session_id}/rows/{email_row['id']}/collect", json={"value": "a@b.com"}
    )
    body = response.json()["session"]
    assert body["status"] == "IDLE"
    assert body["current_workflow"] is None
    assert _last_row(body)["notes"] == "Password reset for account 12345678 (locked out: no)."
    assert body["notes"].splitlines() == [
        "Caller provided account number 12345678.",
        "Caller verified.",
        "Reset link sent to a@b.com.",
    ]


def test_failed_verification_ends_sub_workflow(client):
    session_id = _create_session(client)
    body = client.post(f"/sessions/{session_id}/workflow", json={"workflow": "Password Reset"}).json()
    account_row = _last_row(body)
    body = client.post(
        f"/sessions/{session_id}/rows/{account_row['id']}/collect", json={"value": "12345678"}
    ).json()["session"]
    identity_row = _last_row(body)

    body = client.post(
        f"/sessions/{session_id}/rows/{identity_row['id']}/answer",
        json={"answer_guid": "verify-02-no"},
    ).json()

    assert body["accepted"] is True
    # Only the nested workflow ends; the parent continues with its next step
    assert body["session"]["depth"] == 0
    assert _last_row(body["session"])["step_guid"] == "reset-04-locked"


def test_get_and_delete_session(client):
    session_id = _create_session(client)

    response = client.get(f"/sessions/{session_id}", params={"debug": True})
    assert response.status_code == 200
    assert response.json()["rows"] == []
    assert response.json()["debug"]["session_id"] == session_id

    assert client.delete(f"/sessions/{session_id}").status_code == 204
    assert client.get(f"/sessions/{session_id}").status_code == 404
    assert client.delete(f"/sessions/{session_id}").status_code == 404


def test_unknown_workflow_and_session_are_404(client):
    session_id = _create_session(client)

    response = client.post(f"/sessions/{session_id}/workflow", json={"workflow": "Nope"})
    assert response.status_code == 404

    response = client.post("/sessions/missing/workflow", json={"workflow": "Password Reset"})
    assert response.status_code == 404

    response = client.post("/sessions/missing/rows/r1/answer", json={"answer_guid": "a"})
    assert response.status_code == 404


def test_interaction_lifecycle(client):
    session_id = _create_session(client)

    body = client.post(f"/sessions/{session_id}/interaction").json()
    assert body["interaction"]["active"] is True

    body = client.post(f"/sessions/{session_id}/workflow", json={"workflow": "Password Reset"}).json()
    assert body["interaction"]["workflows"][0]["workflow_name"] == "Password Reset"
    account_row = _last_row(body)
    body = client.post(
        f"/sessions/{session_id}/rows/{account_row['id']}/collect", json={"value": "12345678"}
    ).json()["session"]
    assert body["interaction"]["shared_notes"] == "Caller provided account number 12345678."

    # Ending the workflow inside an interaction keeps notes
    body = client.delete(f"/sessions/{session_id}/workflow").json()
    assert body["rows"] == []
    assert body["notes"] == "Caller provided account number 12345678."

    body = client.delete(f"/sessions/{session_id}/interaction").json()
    assert body["interaction"]["active"] is False
    assert body["notes"] == ""
