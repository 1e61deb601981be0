"""
Sub-workflow Call Stack

Push/pop of the parent execution context around nested workflows. A frame is
pushed when a loadworkflow step resolves and popped when the nested step list
is exhausted (or a command ends the nested workflow early).
"""

import logging
from typing import List, Optional

from ..domain.models import Workflow
from ..state.models import ParentFrame, PendingStep, Row, SessionState

logger = logging.getLogger(__name__)


def push_frame(
    session: SessionState,
    workflow: Workflow,
    clear_window: bool = False,
    parent_answer_guid: Optional[str] = None,
) -> ParentFrame:
    """
    Suspends the current step list and switches to `workflow` at cursor 0.

    The parent resumes after the loadworkflow step. Nested steps inherit
    `parent_answer_guid` so retracting the answer that led here also removes
    the nested workflow's rows.
    """
    frame = ParentFrame(
        saved_workflow=session.workflow,
        saved_workflow_name=session.workflow_name,
        saved_pending_steps=session.pending_steps,
        saved_cursor=session.cursor + 1,
        saved_rows=[] if clear_window else list(session.rows),
        cleared_window=clear_window,
        parent_answer_guid=parent_answer_guid,
    )
    session.stack.append(frame)

    session.workflow = workflow
    session.workflow_name = workflow.name
    session.pending_steps = [
        PendingStep(step=step, parent_answer_guid=parent_answer_guid)
        for step in workflow.steps
    ]
    session.cursor = 0
    if clear_window:
        session.rows = []

    logger.info(f"Entered sub-workflow '{workflow.name}' (depth {len(session.stack)})")
    return frame


def pop_frame(session: SessionState) -> Optional[ParentFrame]:
    """Restores the most recent parent context. Returns None on an empty stack."""
    if not session.stack:
        return None

    finished = session.workflow_name
    frame = session.stack.pop()
    session.workflow = frame.saved_workflow
    session.workflow_name = frame.saved_workflow_name
    session.pending_steps = frame.saved_pending_steps
    session.cursor = frame.saved_cursor
    session.rows = merge_rows(frame.saved_rows, session.rows)

    logger.info(f"Returned from sub-workflow '{finished}' to '{session.workflow_name}'")
    return frame


def unwind_frames(session: SessionState, depth: int) -> List[ParentFrame]:
    """Pops frames until `depth` remain, innermost first."""
    popped = []
    while len(session.stack) > depth:
        popped.append(pop_frame(session))
    return popped


def merge_rows(saved: List[Row], current: List[Row]) -> List[Row]:
    """
    Combines the parent's saved rows with the rows present on return.

    An empty snapshot means the window was cleared, so the current rows are
    kept as they are. Otherwise saved rows still present come first, followed
    by rows produced since the push.
    """
    if not saved:
        return list(current)

    # Take row objects from `current`: they carry answers given after the push.
    current_by_id = {row.id: row for row in current}
    saved_ids = {row.id for row in saved}
    kept = [current_by_id[row.id] for row in saved if row.id in current_by_id]
    return kept + [row for row in current if row.id not in saved_ids]
