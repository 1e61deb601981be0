import logging

from fastapi import FastAPI, HTTPException, Depends, status
from fastapi.responses import Response

from ..config import settings
from ..domain.models import CollectStep, NotesBlockStep, QuestionStep
from ..execution.formulas import TRUE, FormulaEvaluator
from ..services.exceptions import SessionNotFoundError, WorkflowNotFoundError
from ..services.session import SessionService
from ..state.models import Row, SessionState
from .dependencies import get_session_service
from .schemas import (
    AnswerOption,
    AnswerRequest,
    AnswerResponse,
    CollectRequest,
    CollectResponse,
    CreateSessionRequest,
    CreateSessionResponse,
    InteractionRead,
    RowRead,
    SessionRead,
    StartWorkflowRequest,
)

logging.basicConfig(level=settings.LOG_LEVEL)

app = FastAPI(title="Guided Workflow Engine")

# --- Presentation helpers ---

def _render_row(session: SessionState, row: Row) -> RowRead:
    """
    Turns an engine Row into what the agent sees: templates interpolated
    against the current variables, answers hidden by their own formulas removed.
    """
    variables = session.variables
    step = row.step

    answers = []
    if isinstance(step, QuestionStep):
        evaluator = FormulaEvaluator(variables)
        for answer in step.answers:
            selected = answer.guid == row.selected_answer_guid
            hidden = (
                answer.hide_if_evaluate_true
                and answer.evaluate
                and evaluator.evaluate(answer.evaluate) == TRUE
            )
            if hidden and not selected:
                continue
            answers.append(
                AnswerOption(
                    guid=answer.guid,
                    text=variables.interpolate(answer.prompt),
                    selected=selected,
                )
            )

    notes = None
    if isinstance(step, NotesBlockStep) and step.notes_template:
        notes = variables.interpolate(step.notes_template)

    return RowRead(
        id=row.id,
        step_guid=step.guid,
        kind=step.kind.value,
        workflow_name=row.workflow_name,
        title=variables.interpolate(step.title) if step.title else None,
        prompt=variables.interpolate(step.prompt),
        secondary_text=variables.interpolate(step.secondary_text) if step.secondary_text else None,
        notes=notes,
        answers=answers,
        answered=row.answered,
        collected_value=row.collected_value,
        format=step.format.value if isinstance(step, CollectStep) else None,
    )


def _to_session_read(session: SessionState, debug: bool = False) -> SessionRead:
    # "dto" stands for Data Transfer Object.
    rows_dto = [_render_row(session, row) for row in session.visible_rows()]
    interaction = session.interaction

    return SessionRead(
        session_id=session.session_id,
        status=session.status.value,
        current_workflow=session.workflow.name if session.workflow else None,
        depth=len(session.stack),
        rows=rows_dto,
        notes=session.notes,
        interaction=InteractionRead(
            interaction_id=interaction.interaction_id,
            active=interaction.is_active,
            workflows=[w.model_dump(mode="json") for w in interaction.workflows],
            shared_notes=interaction.shared_notes,
        ),
        updated_at=session.updated_at,
        debug=session.model_dump(mode="json") if debug else None,
    )


# --- Endpoints ---

@app.post(
    "/sessions",
    response_model=CreateSessionResponse,
    status_code=status.HTTP_201_CREATED
)
def create_session(
    request: CreateSessionRequest | None = None,
    service: SessionService = Depends(get_session_service)
):
    """Starts a new empty session."""
    session = service.start_session(username=request.username if request else None)
    return CreateSessionResponse(session_id=session.session_id)


@app.get("/sessions/{session_id}", response_model=SessionRead)
def get_session(
    session_id: str,
    debug: bool = False,
    service: SessionService = Depends(get_session_service)
):
    """Retrieves the rendered session: visible rows, notes, interaction."""
    session = service.get_session(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return _to_session_read(session, debug=debug)


@app.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(
    session_id: str,
    service: SessionService = Depends(get_session_service)
):
    """
    Ends and deletes a session. Returns 204 No Content on success.
    """
    success = service.delete_session(session_id)
    if not success:
        raise HTTPException(status_code=404, detail="Session not found")

    # For 204, we must explicitly return a Response object with no content
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/sessions/{session_id}/workflow", response_model=SessionRead)
async def start_workflow(
    session_id: str,
    request: StartWorkflowRequest,
    service: SessionService = Depends(get_session_service)
):
    try:
        session = await service.start_workflow(session_id, request.workflow)
    except (SessionNotFoundError, WorkflowNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _to_session_read(session)


@app.delete("/sessions/{session_id}/workflow", response_model=SessionRead)
def end_workflow(
    session_id: str,
    service: SessionService = Depends(get_session_service)
):
    """Ends the running workflow without deleting the session."""
    try:
        session = service.end_session(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _to_session_read(session)


@app.post("/sessions/{session_id}/rows/{row_id}/answer", response_model=AnswerResponse)
async def answer_question(
    session_id: str,
    row_id: str,
    request: AnswerRequest,
    service: SessionService = Depends(get_session_service)
):
    try:
        result = await service.answer_question(
            session_id, row_id, request.answer_guid, confirmed=request.confirmed
        )
        session = service.require_session(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    commands = result.commands
    return AnswerResponse(
        accepted=result.accepted,
        status=result.status.value,
        reason=result.reason,
        retracted_row_ids=result.retracted_row_ids,
        confirmation_required=commands.confirmation_required if commands else None,
        navigate_away=commands.navigate_away if commands else False,
        session=_to_session_read(session),
    )


@app.post("/sessions/{session_id}/rows/{row_id}/collect", response_model=CollectResponse)
async def collect_value(
    session_id: str,
    row_id: str,
    request: CollectRequest,
    service: SessionService = Depends(get_session_service)
):
    try:
        result = await service.collect_value(session_id, row_id, request.value)
        session = service.require_session(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return CollectResponse(
        accepted=result.accepted,
        status=result.status.value,
        value=result.value,
        error=result.error,
        session=_to_session_read(session),
    )


@app.post("/sessions/{session_id}/interaction", response_model=SessionRead)
def start_interaction(
    session_id: str,
    service: SessionService = Depends(get_session_service)
):
    try:
        session = service.start_interaction(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _to_session_read(session)


@app.delete("/sessions/{session_id}/interaction", response_model=SessionRead)
def end_interaction(
    session_id: str,
    service: SessionService = Depends(get_session_service)
):
    try:
        session = service.end_interaction(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _to_session_read(session)
