"""Topic-based requirements interview.

For each topic: ask generated questions one at a time (pausing for each
answer) until a follow-up check declines or the topic's estimate is reached,
never more than MAX_QUESTIONS_PER_TOPIC. After all topics a completeness
check proposes gaps; at most MAX_GAP_QUESTIONS clarifying questions follow.
A summary is compiled and the project phase advances.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..engine.definitions import (
    CodeStep,
    ConditionalStep,
    LLMStep,
    LoopStep,
    QuestionStep,
    WorkflowDefinition,
)
from ..settings import MAX_GAP_QUESTIONS, MAX_QUESTIONS_PER_TOPIC

TOPIC_QA_WORKFLOW_ID = "topic_qa"

DEFAULT_TOPICS: List[Dict[str, Any]] = [
    {"id": "problem-statement", "name": "Problem Statement", "order": 1, "estimated_questions": 3,
     "description": "What problem are we solving and why does it matter now?"},
    {"id": "target-users", "name": "Target Users", "order": 2, "estimated_questions": 3,
     "description": "Who experiences the problem and what characterizes them?"},
    {"id": "core-features", "name": "Core Features", "order": 3, "estimated_questions": 5,
     "description": "Which capabilities must the first version deliver?"},
    {"id": "user-flows", "name": "User Flows", "order": 4, "estimated_questions": 3,
     "description": "How do users move through the key journeys?"},
    {"id": "priorities", "name": "Priorities", "order": 5, "estimated_questions": 3,
     "description": "What is must-have versus nice-to-have?"},
    {"id": "success-metrics", "name": "Success Metrics", "order": 6, "estimated_questions": 2,
     "description": "How will we know the product is working?"},
    {"id": "competitive-landscape", "name": "Competitive Landscape", "order": 7, "estimated_questions": 2,
     "description": "What alternatives exist and how do we differ?"},
    {"id": "constraints", "name": "Constraints", "order": 8, "estimated_questions": 2,
     "description": "Budget, timeline, technical or regulatory limits."},
]

FOLLOW_UP_SCHEMA = {
    "type": "object",
    "properties": {
        "follow_up_needed": {"type": "boolean"},
        "follow_up_question": {"type": "string"},
        "reasoning": {"type": "string"},
    },
    "required": ["follow_up_needed"],
}

COMPLETENESS_SCHEMA = {
    "type": "object",
    "properties": {
        "complete": {"type": "boolean"},
        "gaps": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "topic": {"type": "string"},
                    "issue": {"type": "string"},
                    "question": {"type": "string"},
                },
                "required": ["topic", "issue", "question"],
            },
        },
        "summary": {"type": "string"},
    },
    "required": ["complete", "gaps", "summary"],
}

QUESTION_PROMPT = (
    "Project: {{project_name}}\n"
    "Topic: {{topic.name}} - {{topic.description}}\n"
    "Questions asked on this topic so far: {{topic_question_count}}\n"
    "Suggested follow-up: {{follow_up_question}}\n\n"
    "Interview transcript:\n{{transcript}}\n\n"
    "Ask the single most useful next question for this topic."
)

FOLLOW_UP_PROMPT = (
    "Topic: {{current_topic.name}} - {{current_topic.description}}\n"
    "Latest answer: {{last_answer}}\n"
    "Questions asked on this topic: {{topic_question_count}} "
    "(estimate {{current_topic.estimated_questions}})\n\n"
    "Decide whether one more question on this topic is warranted."
)

COMPLETENESS_PROMPT = (
    "Project: {{project_name}}\n"
    "Topics: {{topics}}\n\n"
    "Interview transcript:\n{{transcript}}\n\n"
    "Check whether the requirements are complete. List concrete gaps, each with one "
    "clarifying question, and summarize the requirements."
)


def build_topic_qa_workflow(
    topics: Optional[List[Dict[str, Any]]] = None,
    workflow_id: str = TOPIC_QA_WORKFLOW_ID,
) -> WorkflowDefinition:
    """Build the interview workflow for ``topics`` (default: DEFAULT_TOPICS)."""
    topics = sorted(topics or DEFAULT_TOPICS, key=lambda t: t.get("order", 0))

    question_loop = LoopStep(
        id="question_loop",
        collection="question_slots",
        item_variable="question_slot",
        max_iterations=MAX_QUESTIONS_PER_TOPIC,
        steps=[
            QuestionStep(
                id="ask_question",
                question_source="generated",
                topic_path="current_topic",
                prompt=QUESTION_PROMPT,
                max_tokens=300,
                temperature=0.7,
            ),
            CodeStep(id="save_answer", handler="save_answer"),
            LLMStep(
                id="check_followup",
                system_prompt="You judge whether an interview topic needs another question.",
                user_prompt=FOLLOW_UP_PROMPT,
                output_schema=FOLLOW_UP_SCHEMA,
                merge_structured=True,
                max_tokens=150,
                temperature=0.5,
            ),
            ConditionalStep(
                id="handle_followup",
                condition=(
                    "follow_up_needed == False "
                    "or topic_question_count >= current_topic.estimated_questions"
                ),
                then_steps=[CodeStep(id="end_topic_questions", handler="break_loop")],
            ),
        ],
    )

    topic_loop = LoopStep(
        id="topic_loop",
        collection="topics",
        item_variable="current_topic",
        steps=[
            CodeStep(id="init_topic", handler="init_topic"),
            question_loop,
            CodeStep(id="complete_topic", handler="complete_topic"),
        ],
    )

    gap_loop = LoopStep(
        id="gap_loop",
        collection="gap_questions",
        item_variable="current_gap",
        max_iterations=MAX_GAP_QUESTIONS,
        steps=[
            QuestionStep(
                id="ask_gap_question",
                question={"question": "{{current_gap.question}}"},
            ),
            CodeStep(id="save_gap_answer", handler="save_gap_answer"),
        ],
    )

    return WorkflowDefinition(
        id=workflow_id,
        name="Topic-based requirements interview",
        description="Interview the product owner topic by topic, then close gaps.",
        initial_context={"topics": topics, "project_phase": "cpo", "project_name": ""},
        resume_nodes={"topics": "save_answer", "gaps": "save_gap_answer"},
        steps=[
            CodeStep(id="init_interview", handler="init_interview"),
            topic_loop,
            LLMStep(
                id="check_completeness",
                system_prompt="You review requirement interviews for missing information.",
                user_prompt=COMPLETENESS_PROMPT,
                output_schema=COMPLETENESS_SCHEMA,
                merge_structured=True,
                max_tokens=500,
                temperature=0.3,
            ),
            ConditionalStep(
                id="handle_gaps",
                condition="gaps",
                then_steps=[
                    CodeStep(id="prepare_gaps", handler="prepare_gaps"),
                    gap_loop,
                ],
            ),
            CodeStep(id="generate_summary", handler="generate_summary"),
            CodeStep(id="update_phase", handler="advance_phase"),
        ],
    )
