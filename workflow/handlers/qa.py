"""Handlers for the topic-based requirements interview."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..settings import MAX_GAP_QUESTIONS, MAX_QUESTIONS_PER_TOPIC
from .registry import register_handler

logger = logging.getLogger(__name__)

# Project phases in the order an artifact moves through them
PHASE_ORDER = ["cpo", "clarify", "cto", "planning", "complete"]


def _question_text(context: Dict[str, Any], question_id: str) -> Optional[str]:
    for question in reversed(context.get("question_log") or []):
        if question.get("id") == question_id:
            return question.get("question")
    return None


def _collect_answers(context: Dict[str, Any]) -> List[Dict[str, Any]]:
    answers = context.get("answers") or {}
    records = []
    for question_id in context.get("last_question_ids") or []:
        records.append({
            "question_id": question_id,
            "question": _question_text(context, question_id),
            "answer": answers.get(question_id),
        })
    return records


@register_handler("init_interview", category="qa")
def init_interview(context: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
    """Reset interview state; topics supplied in the run input are ordered here."""
    topics = sorted(context.get("topics") or [], key=lambda t: t.get("order", 0))
    return {
        "current_phase": "topics",
        "topics": topics,
        "answers": context.get("answers") or {},
        "transcript": [],
        "completed_topics": [],
        "total_questions": 0,
        "gap_question_count": 0,
    }


@register_handler("init_topic", category="qa")
def init_topic(context: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
    """Reset per-topic counters; the slot list bounds the question loop."""
    topic = context.get("current_topic") or {}
    logger.info(f"Starting topic {topic.get('id')} (estimate {topic.get('estimated_questions')})")
    return {
        "current_phase": "topics",
        "topic_question_count": 0,
        "follow_up_needed": True,
        "follow_up_question": "",
        "question_slots": list(range(MAX_QUESTIONS_PER_TOPIC)),
    }


@register_handler("save_answer", category="qa")
def save_answer(context: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
    topic_id = (context.get("current_topic") or {}).get("id")
    records = _collect_answers(context)
    transcript = list(context.get("transcript") or [])
    for record in records:
        transcript.append({**record, "topic_id": topic_id, "kind": "topic"})
    last_answer = records[-1]["answer"] if records else None
    return {
        "transcript": transcript,
        "last_answer": last_answer,
        "topic_question_count": int(context.get("topic_question_count") or 0) + len(records),
        "total_questions": int(context.get("total_questions") or 0) + len(records),
    }


@register_handler("complete_topic", category="qa")
def complete_topic(context: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
    topic_id = (context.get("current_topic") or {}).get("id")
    completed = list(context.get("completed_topics") or [])
    if topic_id and topic_id not in completed:
        completed.append(topic_id)
    return {"completed_topics": completed}


@register_handler("prepare_gaps", category="qa")
def prepare_gaps(context: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
    """Keep at most MAX_GAP_QUESTIONS gaps that carry a question."""
    gaps = [g for g in (context.get("gaps") or []) if isinstance(g, dict) and g.get("question")]
    if len(gaps) > MAX_GAP_QUESTIONS:
        logger.info(f"Dropping {len(gaps) - MAX_GAP_QUESTIONS} gap(s) over the limit")
    return {"current_phase": "gaps", "gap_questions": gaps[:MAX_GAP_QUESTIONS]}


@register_handler("save_gap_answer", category="qa")
def save_gap_answer(context: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
    gap = context.get("current_gap") or {}
    records = _collect_answers(context)
    transcript = list(context.get("transcript") or [])
    for record in records:
        transcript.append({**record, "topic_id": gap.get("topic"), "kind": "gap", "issue": gap.get("issue")})
    return {
        "transcript": transcript,
        "gap_question_count": int(context.get("gap_question_count") or 0) + len(records),
        "total_questions": int(context.get("total_questions") or 0) + len(records),
    }


@register_handler("generate_summary", category="qa")
def generate_summary(context: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
    """Group the transcript by topic into the requirements summary."""
    by_topic: Dict[str, List[Dict[str, Any]]] = {}
    for entry in context.get("transcript") or []:
        by_topic.setdefault(entry.get("topic_id") or "general", []).append({
            "question": entry.get("question"),
            "answer": entry.get("answer"),
        })
    topics = {t.get("id"): t.get("name") for t in context.get("topics") or []}
    sections = [
        {"topic_id": topic_id, "topic": topics.get(topic_id, topic_id), "entries": entries}
        for topic_id, entries in by_topic.items()
    ]
    return {
        "requirements_summary": {
            "overview": context.get("summary") or "",
            "sections": sections,
            "question_count": context.get("total_questions", 0),
            "gap_question_count": context.get("gap_question_count", 0),
        }
    }


@register_handler("advance_phase", category="qa")
def advance_phase(context: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
    """Move the owning artifact to the next phase in PHASE_ORDER."""
    current = context.get("project_phase") or params.get("from_phase") or PHASE_ORDER[0]
    target = params.get("to_phase")
    if target is None:
        index = PHASE_ORDER.index(current) if current in PHASE_ORDER else 0
        target = PHASE_ORDER[min(index + 1, len(PHASE_ORDER) - 1)]
    history = list(context.get("phase_history") or [])
    history.append({"from": current, "to": target})
    logger.info(f"Advancing project phase {current} -> {target}")
    return {"project_phase": target, "phase_history": history, "current_phase": None}
