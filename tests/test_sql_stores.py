"""SQL adapters for the engine and automation contracts (app/stores.py).

The automation chain runs here end to end against the database: SQL state
store, SQL catalog, SQL automation and issue stores.
"""

import pytest

from app.database import session_scope
from app.repositories.automation import AutomationRepository
from app.repositories.issue import IssueRepository
from app.stores import SqlStateStore
from workflow.automation.models import RunOutcome, TriggerType
from workflow.engine.definitions import CodeStep, WorkflowDefinition
from workflow.engine.state import ExecutionState, ExecutionStatus
from workflow.workflows import TOPIC_QA_WORKFLOW_ID


async def _add_workflow(services, workflow_id, **values):
    await services.catalog.save_workflow(WorkflowDefinition(
        id=workflow_id, name=workflow_id, steps=[CodeStep(id="work", handler="set_values", input=values)],
    ))


class TestSqlStateStore:
    @pytest.mark.asyncio
    async def test_round_trip(self, services, session_factory):
        store = SqlStateStore(session_factory)
        state = ExecutionState(
            execution_id="exec-1",
            workflow_id=TOPIC_QA_WORKFLOW_ID,
            current_node="init_interview",
            status=ExecutionStatus.RUNNING,
            context={"answers": {"q": "a"}},
        )
        await store.save_state("exec-1", state)
        state.status = ExecutionStatus.WAITING_FOR_INPUT
        await store.save_state("exec-1", state)

        loaded = await store.get_state("exec-1")
        assert loaded.status is ExecutionStatus.WAITING_FOR_INPUT
        assert loaded.context == {"answers": {"q": "a"}}
        assert await store.get_state("missing") is None


class TestSqlWorkflowCatalog:
    @pytest.mark.asyncio
    async def test_builtins_are_served_and_seeded(self, services, test_session):
        assert await services.catalog.get_workflow(TOPIC_QA_WORKFLOW_ID) is not None
        assert services.catalog.is_builtin(TOPIC_QA_WORKFLOW_ID)

        from app.repositories.workflow import WorkflowRepository
        seeded = await WorkflowRepository(test_session).list()
        assert {w.id for w in seeded} >= set(services.catalog.builtin_ids)
        assert all(w.builtin for w in seeded)

    @pytest.mark.asyncio
    async def test_stored_workflow_round_trip(self, services):
        await _add_workflow(services, "custom", answer=42)
        workflow = await services.catalog.get_workflow("custom")
        assert workflow.steps[0].input == {"answer": 42}
        assert await services.catalog.get_workflow("nope") is None

    @pytest.mark.asyncio
    async def test_engine_checkpoints_through_sql(self, services):
        await _add_workflow(services, "custom", answer=42)
        result = await services.engine.start("custom", execution_id="exec-sql")
        assert result.status is ExecutionStatus.COMPLETED

        stored = await services.engine.get_state("exec-sql")
        assert stored.context["answer"] == 42
        assert stored.node_states["work"].status.value == "completed"


class TestSqlAutomationChain:
    @pytest.mark.asyncio
    async def test_status_chain_is_recorded(self, services, session_factory, status_pusher):
        await _add_workflow(services, "plan", planned=True)
        await _add_workflow(services, "build", built=True)
        async with session_scope(session_factory) as session:
            automations = AutomationRepository(session)
            await automations.create(
                "p1", "plan", "status_enter", "plan", trigger_status="ready",
                transitions=[{"condition": "success", "next_status": "in_progress"}],
            )
            await automations.create(
                "p1", "build", "status_enter", "build", trigger_status="in_progress",
                transitions=[{"condition": "custom", "custom_expression": "context.built === \"True\"",
                              "next_status": "never", "priority": 0},
                             {"condition": "success", "next_status": "done", "priority": 1}],
            )
            issue = await IssueRepository(session).create("p1", "acme", "api", 3, current_status="ready", issue_id="i-1")

        report = await services.automation.on_status_change("p1", issue.id, "ready")

        assert report.applied_statuses == ["in_progress", "done"]
        assert (await services.issue_store.get_issue("i-1")).current_status == "done"
        assert [u[3] for u in status_pusher.updates] == ["in_progress", "done"]

        async with session_scope(session_factory) as session:
            records = await IssueRepository(session).list_executions("i-1")
        assert sorted((r.trigger_status, r.result, r.next_status_applied) for r in records) == [
            ("in_progress", "success", "done"),
            ("ready", "success", "in_progress"),
        ]
        assert all(r.workflow_execution_id for r in records)

    @pytest.mark.asyncio
    async def test_store_conversions(self, services, session_factory):
        async with session_scope(session_factory) as session:
            automation = await AutomationRepository(session).create(
                "p1", "button", "manual", "plan", button_label="Plan it",
                transitions=[{"condition": "failure", "next_status": "blocked"}],
            )
            await IssueRepository(session).create("p1", "acme", "api", 4, issue_id="i-2")

        [found] = await services.automation_store.find_by_trigger("p1", TriggerType.MANUAL, None)
        assert found.id == automation.id
        assert found.trigger_type is TriggerType.MANUAL
        assert found.button_label == "Plan it"

        [transition] = await services.automation_store.list_transitions(automation.id)
        assert transition.next_status == "blocked"

        record = await services.issue_store.create_issue_execution("i-2", automation.id, "manual", None, None)
        await services.issue_store.complete_issue_execution(record.id, RunOutcome.FAILURE, None, "boom")
        async with session_scope(session_factory) as session:
            stored = await IssueRepository(session).get_execution(record.id)
        assert stored.result == "failure"
        assert stored.error == "boom"
        assert stored.completed_at is not None
