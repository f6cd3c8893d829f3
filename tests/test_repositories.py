"""Tests for the SQL repositories (app/repositories/)."""

import pytest

from app.repositories.automation import AutomationRepository
from app.repositories.issue import IssueRepository
from app.repositories.workflow import ExecutionRepository, WorkflowRepository

DEFINITION = {"id": "wf", "name": "wf", "steps": [{"type": "code", "id": "a", "handler": "set_values"}]}


class TestWorkflowRepository:
    @pytest.mark.asyncio
    async def test_upsert_creates_then_replaces(self, test_session):
        repo = WorkflowRepository(test_session)
        await repo.upsert("wf", "First", DEFINITION)
        await repo.upsert("wf", "Second", DEFINITION, description="updated")

        workflows = await repo.list()
        assert [(w.id, w.name, w.description) for w in workflows] == [("wf", "Second", "updated")]

    @pytest.mark.asyncio
    async def test_list_can_hide_builtins(self, test_session):
        repo = WorkflowRepository(test_session)
        await repo.upsert("builtin", "B", DEFINITION, builtin=True)
        await repo.upsert("custom", "C", DEFINITION)
        assert [w.id for w in await repo.list(include_builtin=False)] == ["custom"]

    @pytest.mark.asyncio
    async def test_delete_cascades_to_executions(self, test_session):
        await WorkflowRepository(test_session).upsert("wf", "wf", DEFINITION)
        executions = ExecutionRepository(test_session)
        await executions.save("exec-1", "wf", "running", "a", {"k": 1})

        assert await WorkflowRepository(test_session).delete("wf") is True
        assert await executions.get("exec-1") is None
        assert await WorkflowRepository(test_session).delete("wf") is False


class TestExecutionRepository:
    @pytest.mark.asyncio
    async def test_save_updates_in_place(self, test_session):
        await WorkflowRepository(test_session).upsert("wf", "wf", DEFINITION)
        repo = ExecutionRepository(test_session)
        await repo.save("exec-1", "wf", "running", "a", {"step": 1})
        await repo.save("exec-1", "wf", "completed", "__end__", {"step": 2})

        record = await repo.get("exec-1")
        assert record.status == "completed"
        assert record.state == {"step": 2}

    @pytest.mark.asyncio
    async def test_list_filters_and_pages(self, test_session):
        await WorkflowRepository(test_session).upsert("wf", "wf", DEFINITION)
        await WorkflowRepository(test_session).upsert("other", "other", DEFINITION)
        repo = ExecutionRepository(test_session)
        for i, status in enumerate(["completed", "failed", "waiting_for_input", "completed"]):
            await repo.save(f"exec-{i}", "wf", status, "a", {})
        await repo.save("exec-other", "other", "completed", "a", {})

        items, total = await repo.list(workflow_id="wf", status="completed, failed")
        assert total == 3
        assert {r.id for r in items} == {"exec-0", "exec-1", "exec-3"}

        page, total = await repo.list(page=2, page_size=2)
        assert total == 5
        assert len(page) == 2


class TestAutomationRepository:
    @pytest.mark.asyncio
    async def test_create_with_transitions(self, test_session):
        repo = AutomationRepository(test_session)
        automation = await repo.create(
            project_id="p1",
            name="Plan on ready",
            trigger_type="status_enter",
            trigger_status="ready",
            workflow_id="issue_planning",
            transitions=[
                {"condition": "failure", "next_status": "blocked", "priority": 2},
                {"condition": "success", "next_status": "planned", "priority": 1},
            ],
        )
        assert automation.id.startswith("auto_")
        assert [t.next_status for t in automation.transitions] == ["planned", "blocked"]

        transitions = await repo.list_transitions(automation.id)
        assert [t.priority for t in transitions] == [1, 2]

    @pytest.mark.asyncio
    async def test_find_by_trigger(self, test_session):
        repo = AutomationRepository(test_session)
        late = await repo.create("p1", "late", "status_enter", "wf", trigger_status="ready", priority=5)
        early = await repo.create("p1", "early", "status_enter", "wf", trigger_status="ready", priority=1)
        off = await repo.create("p1", "off", "status_enter", "wf", trigger_status="ready")
        await repo.set_enabled(off.id, False)
        await repo.create("p2", "elsewhere", "status_enter", "wf", trigger_status="ready")
        button = await repo.create("p1", "button", "manual", "wf")

        found = await repo.find_by_trigger("p1", "status_enter", "ready")
        assert [a.id for a in found] == [early.id, late.id]
        assert [a.id for a in await repo.find_by_trigger("p1", "manual", None)] == [button.id]

    @pytest.mark.asyncio
    async def test_add_transition_and_delete(self, test_session):
        repo = AutomationRepository(test_session)
        automation = await repo.create("p1", "a", "manual", "wf")
        await repo.add_transition(automation.id, "custom", "review", custom_expression="context.score > 5")

        reloaded = await repo.get(automation.id)
        assert reloaded.transitions[0].custom_expression == "context.score > 5"

        assert await repo.delete(automation.id) is True
        assert await repo.list_transitions(automation.id) == []
        assert await repo.delete(automation.id) is False


class TestIssueRepository:
    @pytest.mark.asyncio
    async def test_status_and_execution_audit(self, test_session):
        repo = IssueRepository(test_session)
        issue = await repo.create("p1", "acme", "api", 12, title="Add SSO", current_status="backlog")
        await repo.update_status(issue.id, "ready")
        assert (await repo.get(issue.id)).current_status == "ready"

        record = await repo.create_execution(issue.id, "auto-1", "status_enter", "ready", "ready")
        await repo.update_execution(record.id, workflow_execution_id="exec-9")
        await repo.update_execution(record.id, result="success", next_status_applied="planned", completed=True)

        [stored] = await repo.list_executions(issue.id)
        assert stored.workflow_execution_id == "exec-9"
        assert stored.result == "success"
        assert stored.next_status_applied == "planned"
        assert stored.completed_at is not None

    @pytest.mark.asyncio
    async def test_missing_rows(self, test_session):
        repo = IssueRepository(test_session)
        assert await repo.update_status("ghost", "ready") is None
        assert await repo.update_execution("ghost", result="failure") is None
