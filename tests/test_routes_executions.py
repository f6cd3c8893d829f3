"""Tests for the execution endpoints (app/routes/executions.py), including SSE."""

import pytest
import pytest_asyncio

INTERVIEW = {
    "id": "interview",
    "steps": [
        {"type": "code", "id": "intro", "handler": "set_phase", "input": {"phase": "questions"}},
        {"type": "question", "id": "ask", "question": {"question": "What is the goal?"}},
        {"type": "code", "id": "record", "handler": "set_values", "input": {"recorded": True}},
    ],
    "resume_nodes": {"questions": "record"},
}

BROKEN = {
    "id": "broken",
    "steps": [{"type": "llm", "id": "think", "user_prompt": "hi", "max_retries": 0}],
}

LEAF = {"id": "leaf", "steps": [{"type": "code", "id": "work", "handler": "set_values", "input": {"leaf": True}}]}
PARENT = {"id": "parent", "steps": [{"type": "nested_workflow", "id": "call", "workflow_id": "leaf"}]}


@pytest_asyncio.fixture
async def workflows(client):
    for definition in (INTERVIEW, BROKEN, LEAF, PARENT):
        resp = await client.post("/api/v1/workflows", json=definition)
        assert resp.status_code == 201, resp.text


async def _start(client, workflow_id, execution_id, **extra):
    return await client.post("/api/v1/executions", json={
        "workflow_id": workflow_id, "execution_id": execution_id, **extra,
    })


def _sse_events(text):
    return [line.split(": ", 1)[1] for line in text.splitlines() if line.startswith("event: ")]


class TestExecutionLifecycle:
    @pytest.mark.asyncio
    async def test_start_wait_answer_complete(self, client, workflows):
        resp = await _start(client, "interview", "exec-1", input={"project": "Foundry"})
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "waiting_for_input"
        assert data["waiting_for_input"] is True
        question = data["pending_questions"][0]
        assert question["question"] == "What is the goal?"

        resp = await client.get("/api/v1/executions/exec-1")
        assert resp.json()["current_node"] == "record"

        resp = await client.post(
            "/api/v1/executions/exec-1/answers",
            json={"answers": {question["id"]: "Ship it"}},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "completed"
        assert data["context"]["answers"] == {question["id"]: "Ship it"}
        assert data["context"]["recorded"] is True

        resp = await client.get("/api/v1/executions/exec-1/state")
        state = resp.json()
        assert state["status"] == "completed"
        assert state["conversation_history"][-1] == {"role": "user", "content": "Ship it", "node_id": "ask"}

    @pytest.mark.asyncio
    async def test_answering_finished_execution_conflicts(self, client, workflows):
        await _start(client, "leaf", "exec-done")
        resp = await client.post("/api/v1/executions/exec-done/answers", json={"answers": {"x": 1}})
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_not_found(self, client, workflows):
        assert (await _start(client, "ghost", "exec-x")).status_code == 404
        assert (await client.get("/api/v1/executions/nope")).status_code == 404
        assert (await client.get("/api/v1/executions/nope/state")).status_code == 404
        assert (await client.get("/api/v1/executions/nope/stream")).status_code == 404
        resp = await client.post("/api/v1/executions/nope/answers", json={"answers": {}})
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_background_start(self, client, workflows):
        resp = await _start(client, "leaf", "exec-bg", background=True)
        assert resp.status_code == 201
        assert resp.json()["status"] == "pending"

        # The in-process transport finishes background tasks before returning
        resp = await client.get("/api/v1/executions/exec-bg")
        assert resp.json()["status"] == "completed"

    @pytest.mark.asyncio
    async def test_cancel(self, client, workflows):
        await _start(client, "interview", "exec-c")
        resp = await client.post("/api/v1/executions/exec-c/cancel")
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"
        assert (await client.post("/api/v1/executions/exec-c/cancel")).status_code == 409

    @pytest.mark.asyncio
    async def test_pause_only_while_running(self, client, workflows):
        await _start(client, "interview", "exec-p")
        assert (await client.post("/api/v1/executions/exec-p/pause")).status_code == 409

    @pytest.mark.asyncio
    async def test_failure_and_retry(self, client, workflows):
        resp = await _start(client, "broken", "exec-f")
        data = resp.json()
        assert data["status"] == "failed"
        assert "unexpected schema" in data["error"]

        resp = await client.post("/api/v1/executions/exec-f/retry")
        assert resp.status_code == 200
        assert resp.json()["status"] == "failed"
        state = (await client.get("/api/v1/executions/exec-f/state")).json()
        assert state["retry_count"] == 1
        assert state["failed_node"] == "think"

    @pytest.mark.asyncio
    async def test_retry_requires_failure(self, client, workflows):
        await _start(client, "leaf", "exec-ok")
        assert (await client.post("/api/v1/executions/exec-ok/retry")).status_code == 409

    @pytest.mark.asyncio
    async def test_child_execution_ids_are_addressable(self, client, workflows):
        resp = await _start(client, "parent", "exec-parent")
        assert resp.json()["status"] == "completed"
        assert resp.json()["context"]["call"]["leaf"] is True

        resp = await client.get("/api/v1/executions/exec-parent/call/1")
        assert resp.status_code == 200
        assert resp.json()["status"] == "completed"

        resp = await client.get("/api/v1/executions/exec-parent/call/1/state")
        assert resp.json()["parent_execution_id"] == "exec-parent"


class TestExecutionListing:
    @pytest.mark.asyncio
    async def test_filters_and_pagination(self, client, workflows):
        await _start(client, "interview", "exec-w")
        await _start(client, "leaf", "exec-l1")
        await _start(client, "leaf", "exec-l2")
        await _start(client, "broken", "exec-b")

        resp = await client.get("/api/v1/executions", params={"workflow_id": "leaf"})
        data = resp.json()
        assert data["total"] == 2
        assert {i["execution_id"] for i in data["items"]} == {"exec-l1", "exec-l2"}

        resp = await client.get("/api/v1/executions", params={"status": "waiting_for_input,failed"})
        assert {i["execution_id"] for i in resp.json()["items"]} == {"exec-w", "exec-b"}

        resp = await client.get("/api/v1/executions", params={"page": 2, "page_size": 3})
        data = resp.json()
        assert data["total"] == 4
        assert len(data["items"]) == 1


class TestExecutionStream:
    @pytest.mark.asyncio
    async def test_stream_replays_until_pause_then_until_completion(self, client, workflows):
        resp = await _start(client, "interview", "exec-s")
        question_id = resp.json()["pending_questions"][0]["id"]

        resp = await client.get("/api/v1/executions/exec-s/stream")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        events = _sse_events(resp.text)
        assert events[0] == "node_started"
        assert events[-1] == "workflow_paused"
        assert '"questions"' in resp.text

        await client.post("/api/v1/executions/exec-s/answers", json={"answers": {question_id: "ok"}})
        resp = await client.get("/api/v1/executions/exec-s/stream")
        events = _sse_events(resp.text)
        assert events[0] == "workflow_resumed"
        assert events[-1] == "planning_completed"
