"""Handlers for phased issue planning (requirements → clarify → technical)."""

from __future__ import annotations

from typing import Any, Dict

from ..engine.templating import resolve_path
from ..settings import MAX_PLANNING_BATCHES
from .registry import register_handler

PLANNING_PHASES = ("requirements", "clarify", "technical")


@register_handler("start_planning_phase", category="planning")
def start_planning_phase(context: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
    phase = params["phase"]
    batches = dict(context.get("question_batches") or {})
    batches.setdefault(phase, [])
    return {
        "current_phase": phase,
        "phase_complete": False,
        "question_batches": batches,
        "batch_slots": list(range(MAX_PLANNING_BATCHES)),
    }


@register_handler("process_phase_answers", category="planning")
def process_phase_answers(context: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
    """Record the answered batch; the phase is complete once every question has an answer."""
    phase = params["phase"]
    answers = context.get("answers") or {}
    question_ids = context.get("last_question_ids") or []
    answered = {qid: answers[qid] for qid in question_ids if answers.get(qid) not in (None, "")}

    batches = dict(context.get("question_batches") or {})
    phase_batches = list(batches.get(phase) or [])
    phase_batches.append({
        "batch_index": len(phase_batches),
        "question_ids": list(question_ids),
        "answers": answered,
    })
    batches[phase] = phase_batches

    completed = list(context.get("completed_phases") or [])
    phase_complete = len(answered) == len(question_ids)
    if phase_complete and phase not in completed:
        completed.append(phase)
    return {
        "question_batches": batches,
        "phase_complete": phase_complete,
        "completed_phases": completed,
        "current_batch_index": len(phase_batches),
    }


@register_handler("finalize_planning", category="planning")
def finalize_planning(context: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
    """Collect generated artifacts from the outputs named in ``sources``."""
    artifacts = dict(context.get("artifacts") or {})
    for name, path in (params.get("sources") or {}).items():
        value = resolve_path(context, path)
        if value is not None:
            artifacts[name] = value
    return {
        "artifacts": artifacts,
        "planning_status": "complete",
        "current_phase": None,
    }
