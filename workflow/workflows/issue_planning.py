"""Phased issue planning.

Three question phases (requirements, clarify, technical). Each phase loops
over question batches: generate a batch, present it and pause, process the
answers, stop once every question in the batch is answered. Artifact
generation and a finalize step follow.
"""

from __future__ import annotations

from typing import List

from ..engine.definitions import (
    CodeStep,
    ConditionalStep,
    LLMStep,
    LoopStep,
    QuestionStep,
    StepDefinition,
    WorkflowDefinition,
)
from ..handlers.planning import PLANNING_PHASES
from ..settings import MAX_PLANNING_BATCHES

ISSUE_PLANNING_WORKFLOW_ID = "issue_planning"

QUESTION_BATCH_SCHEMA = {
    "type": "object",
    "properties": {
        "questions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "question": {"type": "string"},
                    "type": {"type": "string", "enum": ["text", "choice", "multi_choice"]},
                    "options": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["question"],
            },
        },
    },
    "required": ["questions"],
}

PHASE_FOCUS = {
    "requirements": "functional requirements, scope and acceptance criteria",
    "clarify": "ambiguities, edge cases and conflicting statements in the answers so far",
    "technical": "architecture, data model, integrations and non-functional constraints",
}

ARTIFACTS = {
    "diagrams": (
        "Produce Mermaid diagrams (flowchart and sequence) for the planned change.",
        {"type": "object", "properties": {"diagrams": {"type": "array", "items": {"type": "object"}}},
         "required": ["diagrams"]},
    ),
    "tasks": (
        "Break the work into implementation tasks with titles, descriptions and estimates.",
        {"type": "object", "properties": {"tasks": {"type": "array", "items": {"type": "object"}}},
         "required": ["tasks"]},
    ),
    "api_spec": (
        "Describe the API endpoints this change adds or modifies.",
        {"type": "object", "properties": {"endpoints": {"type": "array", "items": {"type": "object"}}},
         "required": ["endpoints"]},
    ),
}

_PROCESS_NODE = "process_{phase}_answers"


def process_node_id(phase: str) -> str:
    return _PROCESS_NODE.format(phase=phase)


def _phase_steps(phase: str) -> List[StepDefinition]:
    generation_key = f"{phase}_generation"
    return [
        CodeStep(id=f"start_{phase}", handler="start_planning_phase", input={"phase": phase}),
        LoopStep(
            id=f"{phase}_batches",
            collection="batch_slots",
            item_variable="batch_slot",
            max_iterations=MAX_PLANNING_BATCHES,
            steps=[
                LLMStep(
                    id=f"generate_{phase}_questions",
                    system_prompt="You are a senior engineer planning work on a GitHub issue.",
                    user_prompt=(
                        "Issue: {{issue_title}}\n{{issue_body}}\n\n"
                        f"Focus: {PHASE_FOCUS[phase]}\n\n"
                        "Answers so far:\n{{answers}}\n\n"
                        "Ask up to five questions that still need answers."
                    ),
                    output_schema=QUESTION_BATCH_SCHEMA,
                    output_key=generation_key,
                    max_tokens=1000,
                ),
                QuestionStep(
                    id=f"wait_{phase}_answers",
                    questions_path=f"{generation_key}.structured.questions",
                ),
                CodeStep(id=process_node_id(phase), handler="process_phase_answers", input={"phase": phase}),
                ConditionalStep(
                    id=f"check_{phase}_complete",
                    condition="phase_complete",
                    then_steps=[CodeStep(id=f"finish_{phase}", handler="break_loop")],
                ),
            ],
        ),
    ]


def build_issue_planning_workflow(workflow_id: str = ISSUE_PLANNING_WORKFLOW_ID) -> WorkflowDefinition:
    steps: List[StepDefinition] = []
    for phase in PLANNING_PHASES:
        steps.extend(_phase_steps(phase))

    for name, (instruction, schema) in ARTIFACTS.items():
        steps.append(LLMStep(
            id=f"generate_{name}",
            system_prompt="You produce planning artifacts for software changes.",
            user_prompt=(
                "Issue: {{issue_title}}\n{{issue_body}}\n\n"
                "Planning answers:\n{{answers}}\n\n"
                f"{instruction}"
            ),
            output_schema=schema,
            output_key=f"{name}_artifact",
            max_tokens=2000,
        ))

    steps.append(CodeStep(
        id="finalize",
        handler="finalize_planning",
        input={"sources": {name: f"{name}_artifact.structured" for name in ARTIFACTS}},
    ))

    return WorkflowDefinition(
        id=workflow_id,
        name="Issue planning",
        description="Requirements, clarification and technical questions, then planning artifacts.",
        initial_context={"issue_title": "", "issue_body": "", "answers": {}, "artifacts": {}},
        resume_nodes={phase: process_node_id(phase) for phase in PLANNING_PHASES},
        steps=steps,
    )
