"""Code step handlers and the handler registry (workflow/handlers/)."""

import pytest

from workflow.engine.errors import WorkflowConfigError
from workflow.handlers import build_handler_registry
from workflow.handlers.planning import finalize_planning, process_phase_answers, start_planning_phase
from workflow.handlers.qa import advance_phase, generate_summary, prepare_gaps, save_answer
from workflow.settings import MAX_GAP_QUESTIONS, MAX_PLANNING_BATCHES


class TestRegistry:
    def test_builtins_registered(self):
        registry = build_handler_registry()
        for name in ("set_values", "break_loop", "save_answer", "process_phase_answers", "advance_phase"):
            assert name in registry
        assert {h.name for h in registry.list_by_category("planning")} >= {"start_planning_phase", "finalize_planning"}

    def test_registry_is_read_only(self):
        registry = build_handler_registry()
        with pytest.raises(TypeError):
            registry._handlers["evil"] = None

    def test_unknown_handler(self):
        with pytest.raises(WorkflowConfigError, match="Unknown handler"):
            build_handler_registry().resolve("eval")

    def test_extra_handlers_override(self):
        registry = build_handler_registry({"set_values": lambda context, params: {"custom": True}})
        assert registry["set_values"].category == "custom"

    @pytest.mark.asyncio
    async def test_invoke_passes_a_copy(self):
        def mutate(context, params):
            context["nested"]["x"] = "changed"
            return {}

        registry = build_handler_registry({"mutate": mutate})
        context = {"nested": {"x": "original"}}
        assert await registry.invoke("mutate", context, {}) == {}
        assert context["nested"]["x"] == "original"

    @pytest.mark.asyncio
    async def test_invoke_awaits_async_handlers(self):
        async def fetch(context, params):
            return {"fetched": params["id"]}

        registry = build_handler_registry({"fetch": fetch})
        assert await registry.invoke("fetch", {}, {"id": 3}) == {"fetched": 3}


class TestQaHandlers:
    def test_save_answer_records_transcript(self):
        context = {
            "current_topic": {"id": "scope"},
            "question_log": [{"id": "q-1", "question": "What?"}],
            "last_question_ids": ["q-1"],
            "answers": {"q-1": "This"},
            "topic_question_count": 2,
        }
        updates = save_answer(context, {})
        assert updates["transcript"] == [
            {"question_id": "q-1", "question": "What?", "answer": "This", "topic_id": "scope", "kind": "topic"}
        ]
        assert updates["topic_question_count"] == 3
        assert updates["last_answer"] == "This"

    def test_prepare_gaps_filters_and_caps(self):
        gaps = [{"topic": "t", "issue": "i", "question": f"q{i}"} for i in range(MAX_GAP_QUESTIONS + 3)]
        gaps.insert(0, {"topic": "t", "issue": "no question"})
        updates = prepare_gaps({"gaps": gaps}, {})
        assert len(updates["gap_questions"]) == MAX_GAP_QUESTIONS
        assert updates["gap_questions"][0]["question"] == "q0"
        assert updates["current_phase"] == "gaps"

    def test_generate_summary_groups_by_topic(self):
        context = {
            "topics": [{"id": "a", "name": "Alpha"}],
            "transcript": [
                {"topic_id": "a", "question": "q1", "answer": "x"},
                {"topic_id": None, "question": "q2", "answer": "y"},
                {"topic_id": "a", "question": "q3", "answer": "z"},
            ],
        }
        sections = generate_summary(context, {})["requirements_summary"]["sections"]
        assert [(s["topic"], len(s["entries"])) for s in sections] == [("Alpha", 2), ("general", 1)]

    @pytest.mark.parametrize("current, params, expected", [
        ("cpo", {}, "clarify"),
        ("planning", {}, "complete"),
        ("complete", {}, "complete"),
        ("cpo", {"to_phase": "planning"}, "planning"),
    ])
    def test_advance_phase(self, current, params, expected):
        assert advance_phase({"project_phase": current}, params)["project_phase"] == expected


class TestPlanningHandlers:
    def test_start_phase_resets_batches(self):
        updates = start_planning_phase({"question_batches": {"requirements": [{"batch_index": 0}]}}, {"phase": "clarify"})
        assert updates["current_phase"] == "clarify"
        assert updates["question_batches"]["clarify"] == []
        assert updates["question_batches"]["requirements"] == [{"batch_index": 0}]
        assert len(updates["batch_slots"]) == MAX_PLANNING_BATCHES

    def test_blank_answers_do_not_complete_phase(self):
        context = {"last_question_ids": ["a", "b"], "answers": {"a": "yes", "b": ""}}
        updates = process_phase_answers(context, {"phase": "technical"})
        assert updates["phase_complete"] is False
        assert updates["question_batches"]["technical"][0]["answers"] == {"a": "yes"}
        assert updates["completed_phases"] == []

    def test_finalize_skips_missing_sources(self):
        context = {"tasks_artifact": {"structured": {"tasks": []}}}
        updates = finalize_planning(context, {"sources": {"tasks": "tasks_artifact.structured", "diagrams": "nope"}})
        assert updates["artifacts"] == {"tasks": {"tasks": []}}
        assert updates["planning_status"] == "complete"
