from typing import Dict

from guided_workflow.domain.models import (
    Answer,
    CollectFormat,
    CollectStep,
    LoadWorkflowStep,
    NotesBlockStep,
    QuestionStep,
    UserInstructionStep,
    ValidationRule,
    VariableAssignment,
    VariableAssignmentStep,
    Workflow,
)

# ==============================================================================
# SUB-WORKFLOW: VERIFY CALLER
# ==============================================================================

# --- Collect the account number ---
verify_account = CollectStep(
    guid="verify-01-account",
    prompt="Ask the caller for their 8 digit account number.",
    variable_name="accountnumber",
    format=CollectFormat.NUMERIC,
    validation=ValidationRule(required=True, min_length=8, max_length=8),
    notes_template="Caller provided account number ~value~.",
)

# --- Security question ---
verify_identity = QuestionStep(
    guid="verify-02-identity",
    prompt="Ask the security question on file for account ~accountnumber~. Did the caller answer correctly?",
    answers=[
        Answer(
            guid="verify-02-yes",
            prompt="Yes",
            variable_name="callerverified",
            variable_value=True,
            notes_template="Caller verified.",
        ),
        Answer(
            guid="verify-02-no",
            prompt="No",
            variable_name="callerverified",
            variable_value=False,
            notes_template="Caller failed verification. Call ended.",
            execute="system.endworkflow",
        ),
    ],
)

VERIFY_CALLER = Workflow(
    name="Verify Caller",
    uid="2f0c6a8e-51d4-4c52-9a43-6f3b0d1c9e10",
    steps=[verify_account, verify_identity],
)

# ==============================================================================
# WORKFLOW: PASSWORD RESET
# ==============================================================================

reset_greeting = UserInstructionStep(
    guid="reset-01-greeting",
    title="Greeting",
    prompt="Thank the caller. You are signed in as ~loggedinusername~.",
)

reset_defaults = VariableAssignmentStep(
    guid="reset-02-defaults",
    assignments=[
        VariableAssignment(variable_name="resetchannel", variable_value="email"),
        VariableAssignment(
            variable_name="priority",
            variable_value="high",
            evaluate="customer.tier.equals(gold)",
        ),
    ],
)

reset_verify = LoadWorkflowStep(
    guid="reset-03-verify",
    workflow_name="Verify Caller",
)

reset_locked_out = QuestionStep(
    guid="reset-04-locked",
    prompt="Is the caller locked out of their account?",
    answers=[
        Answer(
            guid="reset-04-yes",
            prompt="Yes",
            variable_name="lockedout",
            variable_value="yes",
            notes_template="Account was locked.",
            sub_steps=[
                UserInstructionStep(
                    guid="reset-04a-unlock",
                    prompt="Unlock the account in the admin console before resetting.",
                ),
            ],
        ),
        Answer(
            guid="reset-04-no",
            prompt="No",
            variable_name="lockedout",
            variable_value="no",
        ),
    ],
)

reset_email = CollectStep(
    guid="reset-05-email",
    prompt="Confirm the ~resetchannel~ address the reset link should go to.",
    variable_name="resetemail",
    format=CollectFormat.EMAIL,
    notes_template="Reset link sent to ~value~.",
)

reset_summary = NotesBlockStep(
    guid="reset-06-summary",
    title="Call summary",
    notes_template="Password reset for account ~accountnumber~ (locked out: ~lockedout~).",
)

PASSWORD_RESET = Workflow(
    name="Password Reset",
    uid="8b7d1f3c-0e2a-4d6b-b8f5-3a9c2e7d4f61",
    steps=[
        reset_greeting,
        reset_defaults,
        reset_verify,
        reset_locked_out,
        reset_email,
        reset_summary,
    ],
)

# ==============================================================================
# REGISTRY
# ==============================================================================

SAMPLE_WORKFLOWS: Dict[str, Workflow] = {
    VERIFY_CALLER.uid: VERIFY_CALLER,
    PASSWORD_RESET.uid: PASSWORD_RESET,
}

SAMPLE_ALIASES: Dict[str, str] = {
    "forgot password": "Password Reset",
    "reset password": "Password Reset",
}
