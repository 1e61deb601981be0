from guided_workflow.domain.models import (
    CollectFormat,
    CollectStep,
    LoadWorkflowStep,
    QuestionStep,
    StepKind,
    UnknownStep,
    UserInstructionStep,
    Workflow,
)


def _document():
    return {
        "Steps": [
            {
                "GUID": "q1",
                "StepType": "Question",
                "Prompt": "Did the payment go through?",
                "Answers": [
                    {
                        "GUID": "a1",
                        "AnswerText": "Yes",
                        "NoteGeneration": "Payment confirmed.",
                        "HideIfEvaluateTrue": "true",
                        "Evaluate": "paid.equals(true)",
                        "SubSteps": [
                            {"GUID": "u1", "StepType": "userInstruction", "Prompt": "Thank them."}
                        ],
                    },
                    {"GUID": "a2", "Prompt": "No", "Execute": "system.endworkflow", "SubSteps": None},
                ],
            },
            {"GUID": "l1", "StepType": "LOADWORKFLOW", "WorkflowName": "Verify Caller", "ClearWindow": "true"},
            {
                "GUID": "c1",
                "StepType": "collect",
                "VariableName": "phone",
                "Format": "Phone",
                "Validation": {"required": True, "minLength": 10},
            },
            {"GUID": "x1", "StepType": "Carousel", "Prompt": None},
        ]
    }


def test_from_document_parses_every_step_kind():
    workflow = Workflow.from_document("Billing", "uid-1", _document())

    assert workflow.name == "Billing"
    assert workflow.uid == "uid-1"

    question, load, collect, unknown = workflow.steps
    assert isinstance(question, QuestionStep)
    assert isinstance(load, LoadWorkflowStep)
    assert isinstance(collect, CollectStep)
    assert isinstance(unknown, UnknownStep)

    assert load.kind == StepKind.LOAD_WORKFLOW
    assert load.workflow_name == "Verify Caller"
    assert load.clear_window is True

    assert collect.format == CollectFormat.PHONE
    assert collect.validation.required is True
    assert collect.validation.min_length == 10

    assert unknown.kind == StepKind.UNKNOWN
    assert unknown.raw_type == "Carousel"
    assert unknown.prompt == ""


def test_answer_legacy_aliases_and_sub_steps():
    workflow = Workflow.from_document("Billing", "uid-1", _document())
    question = workflow.steps[0]

    yes = question.find_answer("a1")
    assert yes.prompt == "Yes"
    assert yes.notes_template == "Payment confirmed."
    assert yes.hide_if_evaluate_true is True
    assert isinstance(yes.sub_steps[0], UserInstructionStep)

    no = question.find_answer("a2")
    assert no.sub_steps == []
    assert no.execute == "system.endworkflow"
    assert question.find_answer("zzz") is None


def test_python_field_names_are_accepted():
    workflow = Workflow(
        name="Tiny",
        steps=[QuestionStep(guid="q", prompt="Ok?", answers=[])],
    )
    assert workflow.steps[0].kind == StepKind.QUESTION
    assert workflow.uid is None


def test_referenced_workflows_walks_sub_steps():
    workflow = Workflow.model_validate(
        {
            "WorkflowName": "Parent",
            "Steps": [
                {"GUID": "l1", "StepType": "loadworkflow", "WorkflowName": "A"},
                {
                    "GUID": "q1",
                    "StepType": "question",
                    "Answers": [
                        {
                            "GUID": "a1",
                            "SubSteps": [
                                {"GUID": "l2", "StepType": "loadworkflow", "WorkflowName": "B"},
                                {"GUID": "l3", "StepType": "loadworkflow", "WorkflowName": "A"},
                            ],
                        }
                    ],
                },
            ],
        }
    )
    assert workflow.referenced_workflows() == ["A", "B"]
