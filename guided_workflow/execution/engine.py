"""
Engine - Workflow Orchestration Layer

The WorkflowEngine is the deterministic state machine that walks a workflow's
step list, materializes Rows, manages the sub-workflow call stack and applies
the agent's answers.
-----------------------------------------------

The engine is proactive. It executes a loop that continuously pulls pending
steps until it hits a blocking state (a question or collect row waiting for
input) or runs out of steps.

The Control Logic is "Momentum-Based":
1. If a step was processed and the cursor moved (Transition=ADVANCE), or the
    call stack changed (PUSH / POP), the engine keeps the floor and pulls the
    next step immediately.
2. If the engine waits (Transition=HOLD) or finishes (Transition=EXIT), it
    yields control back to the caller.

Every public entry point holds the session lock, so sequencing never runs
twice at once for the same session. end_session is the exception: it resets
synchronously and bumps the session generation, and any work still in flight
for the old generation is discarded when it resumes.
"""

import asyncio
import logging
import re
import uuid
from enum import Enum, auto
from typing import Any, Dict, List, Optional

from ..domain.models import (
    Answer,
    CollectStep,
    LoadWorkflowStep,
    QuestionStep,
    StepKind,
    VariableAssignmentStep,
    Workflow,
)
from ..repositories.workflow import WorkflowRepository
from ..state.models import EngineStatus, PendingStep, Row, SessionState
from ..state.variables import VariableScope
from .call_stack import pop_frame, push_frame, unwind_frames
from .commands import CommandProcessor, ConfirmCallback
from .formulas import TRUE, FormulaEvaluator
from .schemas.state_machine import AnswerResult, CollectResult, StateMachineTransition
from .validation import InvalidCollectValueError, validate_collected_value

logger = logging.getLogger(__name__)

# Collect notes templates refer to the collected value as ~value~
VALUE_TOKEN = re.compile(r"~#?value#?~", re.IGNORECASE)


class DialogueControlAction(Enum):
    """Next sequencing action"""

    WAIT_FOR_USER_INPUT = auto()  # Yield to caller
    CONTINUE_IMMEDIATELY = auto()  # Loop internally


class WorkflowEngine:
    def __init__(self, repository: WorkflowRepository, pacing_delay: float = 0.0):
        self.repository = repository
        self.pacing_delay = pacing_delay
        self.commands = CommandProcessor()

    # ==========================================================================
    # Entry Points
    # ==========================================================================

    async def load_workflow(self, session: SessionState, workflow: Workflow) -> EngineStatus:
        """
        Starts `workflow` as the top-level workflow of the session.
        Loading the workflow that is already running is a no-op.
        """
        async with session.lock:
            if session.workflow is not None and session.workflow.name == workflow.name:
                logger.info(f"Workflow '{workflow.name}' already active in session {session.session_id}")
                return session.status

            # 1. Reset execution state (notes survive inside an interaction)
            session.clear_execution()

            # 2. Seed identity variables
            if not session.interaction_id:
                session.interaction_id = session.interaction.interaction_id or str(uuid.uuid4())
            session.workflow_instance_id = str(uuid.uuid4())
            session.variables.init_system_variables(
                session.interaction_id, session.workflow_instance_id, session.username
            )

            # 3. Point the sequencer at the root steps
            session.workflow = workflow
            session.workflow_name = workflow.name
            session.pending_steps = [PendingStep(step=step) for step in workflow.steps]
            session.cursor = 0

            if session.interaction.is_active and workflow.uid:
                session.interaction.add_workflow(workflow.uid, workflow.name)

            logger.info(f"Loaded workflow '{workflow.name}' into session {session.session_id}")
            await self._advance(session)
            return session.status

    async def process_next_step(self, session: SessionState) -> EngineStatus:
        """
        Resumes sequencing. Does nothing while a question or collect row is
        still waiting for input.
        """
        async with session.lock:
            if session.has_waiting_row():
                session.status = EngineStatus.BLOCKED
                return session.status
            if session.workflow is None and not session.pending_steps:
                return session.status
            await self._advance(session)
            return session.status

    async def answer_question(
        self,
        session: SessionState,
        row_id: str,
        answer_guid: str,
        confirm: Optional[ConfirmCallback] = None,
    ) -> AnswerResult:
        async with session.lock:
            row = session.find_row(row_id)
            if row is None or not isinstance(row.step, QuestionStep):
                logger.warning(f"No question row '{row_id}' in session {session.session_id}")
                return AnswerResult(accepted=False, status=session.status, reason="Row not found")

            answer = row.step.find_answer(answer_guid)
            if answer is None:
                logger.warning(f"Answer '{answer_guid}' does not belong to row '{row_id}'")
                return AnswerResult(accepted=False, status=session.status, reason="Answer not found")

            result = self._apply_answer(session, row, answer, confirm)
            if result.accepted:
                await self._advance(session)
            result.status = session.status
            return result

    async def collect_value(self, session: SessionState, row_id: str, value: Any) -> CollectResult:
        async with session.lock:
            row = session.find_row(row_id)
            if row is None or not isinstance(row.step, CollectStep):
                logger.warning(f"No collect row '{row_id}' in session {session.session_id}")
                return CollectResult(accepted=False, status=session.status, error="Row not found")

            step = row.step
            try:
                stored = validate_collected_value(step, value)
            except InvalidCollectValueError as e:
                logger.info(f"Rejected value for collect step {step.guid}: {e}")
                return CollectResult(accepted=False, status=session.status, error=str(e))

            if step.variable_name:
                session.variables.set_variable(step.variable_name, stored, VariableScope.WORKFLOW)
            row.collected_value = stored

            if step.notes_template:
                template = VALUE_TOKEN.sub(lambda _: stored, step.notes_template)
                session.append_notes(session.variables.interpolate(template))

            first_answer = not row.answered
            row.answered = True
            if first_answer:
                await self._advance(session)
            return CollectResult(accepted=True, status=session.status, value=stored)

    def end_session(self, session: SessionState):
        """Resets the session immediately, without waiting for in-flight work."""
        session.reset()
        logger.info(f"Session {session.session_id} ended (generation {session.generation})")

    # ==========================================================================
    # Logic & Control (Pure Domain)
    # ==========================================================================

    def _derive_control_action(
        self, transition: StateMachineTransition
    ) -> DialogueControlAction:
        """
        Derives the loop control signal based purely on FSM mechanics.
        """
        # Momentum Logic:
        # Any pointer movement keeps the floor; the next step is pulled at once.
        if transition in (
            StateMachineTransition.ADVANCE,
            StateMachineTransition.PUSH,
            StateMachineTransition.POP,
        ):
            return DialogueControlAction.CONTINUE_IMMEDIATELY

        # If we HOLD (waiting for input) or EXIT (nothing left), we yield.
        return DialogueControlAction.WAIT_FOR_USER_INPUT

    async def _advance(self, session: SessionState):
        generation = session.generation
        session.status = EngineStatus.ADVANCING

        while True:
            rows_before = len(session.rows)
            transition = await self._process_step(session, generation)

            if session.generation != generation:
                logger.info(f"Session {session.session_id} was reset; stopping stale sequencing")
                return

            if self._derive_control_action(transition) == DialogueControlAction.WAIT_FOR_USER_INPUT:
                return

            if self.pacing_delay > 0 and len(session.rows) > rows_before:
                await asyncio.sleep(self.pacing_delay)
                if session.generation != generation:
                    return

    # ==========================================================================
    # Step Processing
    # ==========================================================================

    async def _process_step(self, session: SessionState, generation: int) -> StateMachineTransition:
        """
        Processes the pending step at the cursor and reports the transition.
        """
        if session.cursor >= len(session.pending_steps):
            return self._finish_step_list(session)

        entry = session.pending_steps[session.cursor]
        step = entry.step

        # Case 1: Step already on screen
        if session.has_row_for(step.guid, session.workflow_name):
            logger.debug(f"Skipping duplicate step {step.guid} in '{session.workflow_name}'")
            session.cursor += 1
            return StateMachineTransition.ADVANCE

        # Case 2: Steps that never produce a row
        if isinstance(step, VariableAssignmentStep):
            self._apply_assignments(session, step)
            session.cursor += 1
            return StateMachineTransition.ADVANCE

        if isinstance(step, LoadWorkflowStep):
            return await self._enter_sub_workflow(session, entry, step, generation)

        if step.kind == StepKind.UNKNOWN:
            raw_type = getattr(step, "raw_type", None)
            logger.warning(f"Skipping step {step.guid} with unrecognized type '{raw_type}'")
            session.cursor += 1
            return StateMachineTransition.ADVANCE

        # Case 3: Materialize a row
        row = Row(
            step=step,
            workflow_name=session.workflow_name or "",
            parent_answer_guid=entry.parent_answer_guid,
        )
        session.rows.append(row)
        session.cursor += 1
        logger.debug(f"Materialized {step.kind.value} row for step {step.guid}")

        if isinstance(step, QuestionStep):
            answer = self._find_auto_answer(session, step)
            if answer is not None:
                if answer.hide_if_evaluate_true:
                    row.visible = False
                logger.debug(f"Auto-answering step {step.guid} with {answer.guid}")
                result = self._apply_answer(session, row, answer, confirm=None)
                if result.accepted:
                    return StateMachineTransition.ADVANCE
                row.visible = True

        if step.kind.is_blocking or session.has_waiting_row():
            session.status = EngineStatus.BLOCKED
            return StateMachineTransition.HOLD

        return StateMachineTransition.ADVANCE

    def _finish_step_list(self, session: SessionState) -> StateMachineTransition:
        if session.stack:
            pop_frame(session)
            session.status = EngineStatus.ADVANCING
            return StateMachineTransition.POP

        workflow = session.workflow
        if workflow is not None:
            logger.info(f"Workflow '{workflow.name}' completed in session {session.session_id}")
            if session.interaction.is_active and workflow.uid:
                session.interaction.complete_workflow(workflow.uid)

        # workflow_name is kept so re-answered rows can still be tagged.
        session.workflow = None
        session.pending_steps = []
        session.cursor = 0
        session.status = EngineStatus.IDLE
        return StateMachineTransition.EXIT

    async def _enter_sub_workflow(
        self,
        session: SessionState,
        entry: PendingStep,
        step: LoadWorkflowStep,
        generation: int,
    ) -> StateMachineTransition:
        name = (step.workflow_name or "").strip()
        if not name:
            logger.warning(f"Skipping loadworkflow step {step.guid} without a workflow name")
            session.cursor += 1
            return StateMachineTransition.ADVANCE

        active = {
            frame.saved_workflow_name.lower() for frame in session.stack if frame.saved_workflow_name
        }
        if session.workflow_name:
            active.add(session.workflow_name.lower())
        if name.lower() in active:
            logger.warning(f"Skipping recursive load of workflow '{name}'")
            session.cursor += 1
            return StateMachineTransition.ADVANCE

        session.status = EngineStatus.SUSPENDED
        try:
            workflow = await self.repository.resolve_by_name(name)
        except Exception as e:
            if session.generation != generation:
                return StateMachineTransition.EXIT
            logger.error(f"Failed to load sub-workflow '{name}': {e}")
            session.cursor += 1
            session.status = EngineStatus.ADVANCING
            return StateMachineTransition.ADVANCE

        if session.generation != generation:
            logger.info(f"Discarding sub-workflow '{name}' resolved for a reset session")
            return StateMachineTransition.EXIT

        push_frame(session, workflow, step.clear_window, entry.parent_answer_guid)
        session.status = EngineStatus.ADVANCING
        return StateMachineTransition.PUSH

    def _apply_assignments(self, session: SessionState, step: VariableAssignmentStep):
        evaluator = FormulaEvaluator(session.variables)
        for assignment in step.assignments:
            if not assignment.variable_name or assignment.variable_value is None:
                continue
            if assignment.evaluate and evaluator.evaluate(assignment.evaluate) != TRUE:
                logger.debug(f"Assignment to '{assignment.variable_name}' skipped by condition")
                continue
            session.variables.set_variable(
                assignment.variable_name, assignment.variable_value, VariableScope.WORKFLOW
            )

    def _find_auto_answer(self, session: SessionState, step: QuestionStep) -> Optional[Answer]:
        evaluator = FormulaEvaluator(session.variables)
        for answer in step.answers:
            if answer.evaluate and evaluator.evaluate(answer.evaluate) == TRUE:
                return answer
        return None

    # ==========================================================================
    # Answers & Retraction
    # ==========================================================================

    def _apply_answer(
        self,
        session: SessionState,
        row: Row,
        answer: Answer,
        confirm: Optional[ConfirmCallback],
    ) -> AnswerResult:
        """
        Records `answer` on `row`. Does not resume sequencing.
        """
        previous = row.selected_answer_guid if row.answered else None
        if previous == answer.guid:
            return AnswerResult(accepted=False, status=session.status, reason="Answer already selected")

        # 1. Answer variable
        if answer.variable_name and answer.variable_value is not None:
            session.variables.set_variable(
                answer.variable_name, answer.variable_value, VariableScope.WORKFLOW
            )

        # 2. Commands
        outcome = None
        if answer.execute:
            outcome = self.commands.process(session, answer.execute, confirm)
            if outcome.confirmation_required is not None:
                return AnswerResult(
                    accepted=False,
                    status=session.status,
                    reason="Confirmation required",
                    commands=outcome,
                )
            if outcome.halted:
                if session.find_row(row.id) is row:
                    row.answered = True
                    row.selected_answer_guid = answer.guid
                return AnswerResult(accepted=True, status=session.status, commands=outcome)

        # 3. Retract the branch of the previous answer
        retracted: List[str] = []
        if previous is not None:
            retracted = self._retract_branch(session, row, previous)

        # 4. Record the selection
        row.answered = True
        row.selected_answer_guid = answer.guid

        if answer.notes_template:
            session.append_notes(session.variables.interpolate(answer.notes_template))

        # 5. Splice sub-steps in front of the remaining steps
        if answer.sub_steps:
            remainder = session.pending_steps[session.cursor:]
            session.pending_steps = [
                PendingStep(step=sub_step, parent_answer_guid=answer.guid)
                for sub_step in answer.sub_steps
            ] + remainder
            session.cursor = 0
            if session.workflow_name is None:
                session.workflow_name = row.workflow_name

        session.status = EngineStatus.ADVANCING
        return AnswerResult(
            accepted=True,
            status=session.status,
            retracted_row_ids=retracted,
            commands=outcome,
        )

    def _retract_branch(self, session: SessionState, question_row: Row, answer_guid: str) -> List[str]:
        """
        Removes every row after `question_row` that descends from `answer_guid`,
        and drops pending entries of that branch that were not reached yet.
        """
        owners = self._answer_owners(session)

        def descends(parent_answer_guid: Optional[str]) -> bool:
            seen = set()
            current = parent_answer_guid
            while current and current not in seen:
                if current == answer_guid:
                    return True
                seen.add(current)
                owner = owners.get(current)
                current = owner.parent_answer_guid if owner else None
            return False

        # Sub-workflows entered from the branch are abandoned; the answer's
        # new sub-steps run in the context that owns the question.
        depth = next(
            (i for i, frame in enumerate(session.stack) if descends(frame.parent_answer_guid)),
            None,
        )
        if depth is not None:
            unwound = unwind_frames(session, depth)
            logger.info(f"Unwound {len(unwound)} sub-workflow frame(s) for answer change on {question_row.id}")

        index = next(i for i, row in enumerate(session.rows) if row.id == question_row.id)
        retracted = [row for row in session.rows[index + 1:] if descends(row.parent_answer_guid)]
        retracted_ids = {row.id for row in retracted}
        session.rows = [row for row in session.rows if row.id not in retracted_ids]

        session.pending_steps = [
            entry for entry in session.pending_steps[session.cursor:]
            if not descends(entry.parent_answer_guid)
        ]
        session.cursor = 0
        for frame in session.stack:
            frame.saved_pending_steps = [
                entry for i, entry in enumerate(frame.saved_pending_steps)
                if i < frame.saved_cursor or not descends(entry.parent_answer_guid)
            ]

        if retracted:
            logger.info(f"Retracted {len(retracted)} row(s) after answer change on {question_row.id}")
        return [row.id for row in retracted]

    @staticmethod
    def _answer_owners(session: SessionState) -> Dict[str, Row]:
        """Maps each answer guid to the row that offered it."""
        owners: Dict[str, Row] = {}
        for row in session.rows:
            if isinstance(row.step, QuestionStep):
                for answer in row.step.answers:
                    owners.setdefault(answer.guid, row)
        for row in session.rows:
            if row.selected_answer_guid:
                owners[row.selected_answer_guid] = row
        return owners
