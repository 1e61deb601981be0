"""
Command Processor - Answer Side Effects

Answers may carry an `Execute` string of side-effect directives, e.g.
"system.endworkflow" or "system.endworkflow;system.endinteraction".
Commands are split on ';' when present, otherwise on ','. Each is trimmed and
matched case-insensitively; unknown commands are logged and ignored.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..state.models import SessionState
from .call_stack import pop_frame

logger = logging.getLogger(__name__)

END_WORKFLOW = "system.endworkflow"
END_INTERACTION = "system.endinteraction"

END_INTERACTION_PROMPT = (
    "Are you sure you want to end this interaction? All workflow data will be cleared."
)

# Receives the confirmation message, returns the user's decision.
ConfirmCallback = Callable[[str], bool]


@dataclass
class CommandOutcome:
    """What a command string did to the session."""

    executed: List[str] = field(default_factory=list)
    ignored: List[str] = field(default_factory=list)
    ended_workflow: bool = False  # A sub-workflow was popped
    ended_session: bool = False
    ended_interaction: bool = False
    navigate_away: bool = False
    confirmation_required: Optional[str] = None

    @property
    def halted(self) -> bool:
        """True when answer processing must stop after the commands."""
        return (
            self.ended_workflow
            or self.ended_session
            or self.ended_interaction
            or self.confirmation_required is not None
        )


def split_commands(execute: Optional[str]) -> List[str]:
    if not execute or not execute.strip():
        return []
    separator = ";" if ";" in execute else ","
    return [part.strip() for part in execute.split(separator) if part.strip()]


class CommandProcessor:
    def process(
        self,
        session: SessionState,
        execute: Optional[str],
        confirm: Optional[ConfirmCallback] = None,
    ) -> CommandOutcome:
        outcome = CommandOutcome()

        for command in split_commands(execute):
            name = command.lower()
            if name == END_WORKFLOW:
                self._end_workflow(session, outcome)
            elif name == END_INTERACTION:
                self._end_interaction(session, outcome, confirm)
            else:
                logger.warning(f"Ignoring unknown command '{command}'")
                outcome.ignored.append(command)
                continue
            outcome.executed.append(name)

        return outcome

    def _end_workflow(self, session: SessionState, outcome: CommandOutcome):
        if session.interaction.is_active and session.workflow and session.workflow.uid:
            session.interaction.complete_workflow(session.workflow.uid)

        if session.stack:
            # Inside a sub-workflow only that level ends; the parent resumes.
            pop_frame(session)
            outcome.ended_workflow = True
            return

        in_interaction = session.interaction.is_active
        logger.info(f"Workflow ended by command for session {session.session_id}")
        session.reset()
        if not in_interaction:
            session.variables.clear_all_variables()
        outcome.ended_session = True

    def _end_interaction(
        self,
        session: SessionState,
        outcome: CommandOutcome,
        confirm: Optional[ConfirmCallback],
    ):
        if confirm is None or not confirm(END_INTERACTION_PROMPT):
            logger.info(f"End of interaction not confirmed for session {session.session_id}")
            outcome.confirmation_required = END_INTERACTION_PROMPT
            return

        logger.info(f"Interaction ended for session {session.session_id}")
        session.interaction.end()
        session.reset()
        session.variables.clear_all_variables()
        outcome.ended_interaction = True
        outcome.ended_session = True
        outcome.navigate_away = True
