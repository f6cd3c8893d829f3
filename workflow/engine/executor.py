"""Graph Engine: drives one execution node by node.

The engine is constructed explicitly with its collaborators. Everything a
run needs is loaded from the store by execution id, so one engine instance
serves any number of concurrent executions. The only per-execution state it
holds is the claim taken by run/resume/retry, which keeps a second driver
off an execution that is already being driven.

Loop, while ``current_node`` is not END/ERROR:
    node_started → execute → merge patch → next → node_completed → persist
    → stop if the node asked for input (workflow_paused)

Cancellation and manual pause are cooperative: the persisted status is
re-read at every node boundary, and the loop stops there. An external call
already in flight is never interrupted.
"""

from __future__ import annotations

import copy
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Set

from ..agents.base import LLMAgent
from ..handlers.registry import HandlerRegistry
from ..nodes import NodeContext
from ..settings import ENGINE_MAX_STEPS, LLM_RETRY_BASE_DELAY
from .catalog import WorkflowCatalog
from .errors import (
    ExecutionNotFoundError,
    InvalidStateError,
    MaxStepsExceeded,
    WorkflowNotFoundError,
)
from .events import Broadcaster, EventType, ExecutionEvent
from .graph_builder import CompiledGraph, compile_workflow
from .state import (
    END,
    ERROR,
    ConversationEntry,
    ExecutionResult,
    ExecutionState,
    ExecutionStatus,
    NodeStatus,
)
from .store import StateStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_execution_id() -> str:
    return f"exec_{uuid.uuid4().hex[:12]}"


class GraphEngine:
    """Resumable state-machine executor for workflow definitions."""

    def __init__(
        self,
        *,
        store: StateStore,
        broadcaster: Broadcaster,
        agent: LLMAgent,
        workflows: WorkflowCatalog,
        handlers: HandlerRegistry,
        max_steps: int = ENGINE_MAX_STEPS,
        llm_retry_base_delay: float = LLM_RETRY_BASE_DELAY,
    ):
        self.store = store
        self.broadcaster = broadcaster
        self.agent = agent
        self.workflows = workflows
        self.handlers = handlers
        self.max_steps = max_steps
        self.llm_retry_base_delay = llm_retry_base_delay
        # Executions currently driven by this engine instance
        self._active: Set[str] = set()

    # --- Public API ---

    async def get_state(self, execution_id: str) -> Optional[ExecutionState]:
        return await self.store.get_state(execution_id)

    async def create(
        self,
        workflow_id: str,
        input: Optional[Dict[str, Any]] = None,
        execution_id: Optional[str] = None,
        parent_execution_id: Optional[str] = None,
    ) -> ExecutionState:
        """Create and persist a Pending execution without running it."""
        graph = await self._load_graph(workflow_id)
        execution_id = execution_id or new_execution_id()
        if await self.store.get_state(execution_id) is not None:
            raise InvalidStateError(execution_id, "exists", "create")

        context = copy.deepcopy(graph.workflow.initial_context)
        context.update(input or {})
        state = ExecutionState(
            execution_id=execution_id,
            workflow_id=workflow_id,
            current_node=graph.entry,
            status=ExecutionStatus.PENDING,
            context=context,
            parent_execution_id=parent_execution_id,
        )
        await self.store.save_state(execution_id, state)
        logger.info(f"Created execution {execution_id} for workflow {workflow_id}")
        return state

    async def start(
        self,
        workflow_id: str,
        input: Optional[Dict[str, Any]] = None,
        execution_id: Optional[str] = None,
        parent_execution_id: Optional[str] = None,
    ) -> ExecutionResult:
        """Create an execution and run it until it pauses or ends.

        Starting an ``execution_id`` that already exists continues it when it
        is still Pending/Running and no driver holds it, and otherwise
        returns its current result.
        """
        if execution_id is not None:
            existing = await self.store.get_state(execution_id)
            if existing is not None:
                resumable = existing.status in (ExecutionStatus.PENDING, ExecutionStatus.RUNNING)
                if resumable and not self.is_active(execution_id):
                    return await self.run(execution_id)
                return ExecutionResult.from_state(existing)

        state = await self.create(workflow_id, input, execution_id, parent_execution_id)
        return await self.run(state.execution_id)

    def is_active(self, execution_id: str) -> bool:
        """True while a run/resume/retry of this engine is driving the execution."""
        return execution_id in self._active

    @contextmanager
    def _claim(self, execution_id: str, operation: str) -> Iterator[None]:
        # No await between the check and the add, so the claim is atomic on the loop
        if execution_id in self._active:
            raise InvalidStateError(execution_id, "running", operation)
        self._active.add(execution_id)
        try:
            yield
        finally:
            self._active.discard(execution_id)

    async def run(self, execution_id: str) -> ExecutionResult:
        """Drive a Pending or Running execution from its stored boundary.

        Raises:
            InvalidStateError: another run/resume/retry is already driving it
        """
        with self._claim(execution_id, "run"):
            return await self._run(execution_id)

    async def _run(self, execution_id: str) -> ExecutionResult:
        state = await self._require(execution_id)
        if state.status not in (ExecutionStatus.PENDING, ExecutionStatus.RUNNING):
            raise InvalidStateError(execution_id, state.status.value, "run")

        graph = await self._load_graph(state.workflow_id)
        state.status = ExecutionStatus.RUNNING
        state.touch()
        await self.store.save_state(execution_id, state)
        return await self._drive(graph, state)

    async def resume(
        self,
        execution_id: str,
        answers: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> ExecutionResult:
        """Continue a suspended execution with new input.

        Answers are merged into ``context["answers"]`` and ``data`` into the
        context top level. An execution waiting for input re-enters at the
        processing node for its current phase, never at the pausing node.
        """
        with self._claim(execution_id, "resume"):
            return await self._resume(execution_id, answers, data)

    async def _resume(
        self,
        execution_id: str,
        answers: Optional[Dict[str, Any]],
        data: Optional[Dict[str, Any]],
    ) -> ExecutionResult:
        state = await self._require(execution_id)
        if not state.status.is_suspended:
            raise InvalidStateError(execution_id, state.status.value, "resume")

        graph = await self._load_graph(state.workflow_id)

        if answers:
            merged = dict(state.context.get("answers") or {})
            merged.update(answers)
            state.context["answers"] = merged
            for question in state.pending_questions:
                if question.get("id") in answers:
                    state.conversation_history.append(ConversationEntry(
                        role="user",
                        content=str(answers[question["id"]]),
                        node_id=question.get("node_id"),
                    ))
        if data:
            state.context.update(data)

        phase = state.context.get("current_phase")
        if state.status is ExecutionStatus.WAITING_FOR_INPUT:
            target = graph.workflow.resume_nodes.get(phase) if phase else None
            # Without a phase mapping, the stored node already points past the question
            state.current_node = target or state.current_node
            graph.get(state.current_node)

        state.pending_questions = []
        state.status = ExecutionStatus.RUNNING
        state.touch()
        await self.store.save_state(execution_id, state)

        logger.info(f"Resuming execution {execution_id} at {state.current_node} (phase={phase})")
        await self._emit(execution_id, EventType.WORKFLOW_RESUMED, {
            "current_node": state.current_node,
            "phase": phase,
        })
        return await self._drive(graph, state)

    async def pause(self, execution_id: str) -> ExecutionState:
        """Request a pause; a running loop stops at its next node boundary."""
        state = await self._require(execution_id)
        if state.status not in (ExecutionStatus.PENDING, ExecutionStatus.RUNNING):
            raise InvalidStateError(execution_id, state.status.value, "pause")
        state.status = ExecutionStatus.PAUSED
        state.touch()
        await self.store.save_state(execution_id, state)
        logger.info(f"Pause requested for execution {execution_id}")
        return state

    async def cancel(self, execution_id: str) -> ExecutionState:
        """Mark an execution cancelled; no further progress is persisted."""
        state = await self._require(execution_id)
        if state.status.is_terminal:
            raise InvalidStateError(execution_id, state.status.value, "cancel")
        state.status = ExecutionStatus.CANCELLED
        state.last_error = "cancelled"
        state.completed_at = _utcnow()
        state.touch()
        await self.store.save_state(execution_id, state)
        logger.info(f"Cancelled execution {execution_id}")
        await self._emit(execution_id, EventType.PLANNING_FAILED, {"error": "cancelled"})
        return state

    async def retry(self, execution_id: str) -> ExecutionResult:
        """Restart a Failed execution at the node that failed."""
        with self._claim(execution_id, "retry"):
            return await self._retry(execution_id)

    async def _retry(self, execution_id: str) -> ExecutionResult:
        state = await self._require(execution_id)
        if state.status is not ExecutionStatus.FAILED or not state.failed_node:
            raise InvalidStateError(execution_id, state.status.value, "retry")

        graph = await self._load_graph(state.workflow_id)
        graph.get(state.failed_node)

        state.current_node = state.failed_node
        state.failed_node = None
        state.last_error = None
        state.completed_at = None
        state.retry_count += 1
        state.status = ExecutionStatus.RUNNING
        state.touch()
        await self.store.save_state(execution_id, state)
        logger.info(f"Retrying execution {execution_id} at {state.current_node} (attempt {state.retry_count})")
        return await self._drive(graph, state)

    # --- Loop ---

    async def _drive(self, graph: CompiledGraph, state: ExecutionState) -> ExecutionResult:
        ctx = NodeContext(
            execution_id=state.execution_id,
            agent=self.agent,
            handlers=self.handlers,
            run_child=self._child_runner(state.execution_id),
            llm_retry_base_delay=self.llm_retry_base_delay,
        )
        visits = 0

        while state.current_node not in (END, ERROR):
            visits += 1
            if visits > self.max_steps:
                return await self._fail(state, state.current_node, MaxStepsExceeded(state.execution_id, self.max_steps))

            node = graph.get(state.current_node)
            node_id = node.node_id
            node_state = state.node_state(node_id)
            node_state.status = NodeStatus.RUNNING
            node_state.started_at = _utcnow()
            node_state.executions += 1

            await self._emit(state.execution_id, EventType.NODE_STARTED, {
                "node_id": node_id,
                "step_type": node.step_type.value,
            })

            try:
                patch = await node.execute(state, ctx)
            except Exception as e:
                return await self._fail(state, node_id, e)

            patch.apply(state)
            node_state.status = NodeStatus.COMPLETED
            node_state.completed_at = _utcnow()
            node_state.result = patch.result
            node_state.error = None
            state.touch()

            state.current_node = node.next(state)
            await self._emit(state.execution_id, EventType.NODE_COMPLETED, {
                "node_id": node_id,
                "next_node": state.current_node,
            })

            waiting = patch.wait_for_input and bool(patch.questions)
            if waiting:
                state.status = ExecutionStatus.WAITING_FOR_INPUT
                state.pending_questions = patch.questions

            if not await self._checkpoint(state):
                return ExecutionResult.from_state(state)

            if waiting:
                logger.info(
                    f"Execution {state.execution_id} waiting for input after {node_id} "
                    f"({len(patch.questions)} question(s))"
                )
                await self._emit(state.execution_id, EventType.WORKFLOW_PAUSED, {
                    "node_id": node_id,
                    "phase": state.context.get("current_phase"),
                    "questions": patch.questions,
                })
                return ExecutionResult.from_state(state)

        if state.current_node == END:
            state.status = ExecutionStatus.COMPLETED
            state.completed_at = _utcnow()
            state.touch()
            if await self._checkpoint(state):
                logger.info(f"Execution {state.execution_id} completed")
                await self._emit(state.execution_id, EventType.PLANNING_COMPLETED, {
                    "workflow_id": state.workflow_id,
                })
        return ExecutionResult.from_state(state)

    async def _checkpoint(self, state: ExecutionState) -> bool:
        """Persist a completed boundary unless a pause/cancel was requested.

        Returns False when the loop must stop.
        """
        stored = await self.store.get_state(state.execution_id)
        if stored is not None and stored.status is ExecutionStatus.CANCELLED:
            logger.info(f"Execution {state.execution_id} was cancelled; discarding progress")
            state.status = ExecutionStatus.CANCELLED
            state.last_error = stored.last_error
            return False

        pause_requested = stored is not None and stored.status is ExecutionStatus.PAUSED
        if pause_requested and state.status is ExecutionStatus.RUNNING:
            state.status = ExecutionStatus.PAUSED

        await self.store.save_state(state.execution_id, state)
        if state.status is ExecutionStatus.PAUSED:
            logger.info(f"Execution {state.execution_id} paused at {state.current_node}")
            return False
        return True

    async def _fail(self, state: ExecutionState, node_id: str, error: Exception) -> ExecutionResult:
        message = str(error) or type(error).__name__
        logger.error(f"Execution {state.execution_id} failed at {node_id}: {message}")

        node_state = state.node_state(node_id)
        node_state.status = NodeStatus.FAILED
        node_state.completed_at = _utcnow()
        node_state.error = message

        state.current_node = ERROR
        state.status = ExecutionStatus.FAILED
        state.failed_node = node_id
        state.last_error = message
        state.completed_at = _utcnow()
        state.touch()

        if await self._checkpoint(state):
            await self._emit(state.execution_id, EventType.STEP_ERROR, {
                "node_id": node_id,
                "error": message,
            })
            await self._emit(state.execution_id, EventType.PLANNING_FAILED, {"error": message})
        return ExecutionResult.from_state(state)

    # --- Helpers ---

    def _child_runner(self, parent_execution_id: str):
        async def run_child(workflow_id: str, child_input: Dict[str, Any], child_id: str) -> ExecutionResult:
            return await self.start(
                workflow_id,
                child_input,
                execution_id=child_id,
                parent_execution_id=parent_execution_id,
            )
        return run_child

    async def _load_graph(self, workflow_id: str) -> CompiledGraph:
        workflow = await self.workflows.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return compile_workflow(workflow, self.handlers)

    async def _require(self, execution_id: str) -> ExecutionState:
        state = await self.store.get_state(execution_id)
        if state is None:
            raise ExecutionNotFoundError(execution_id)
        return state

    async def _emit(self, execution_id: str, event_type: EventType, data: Dict[str, Any]) -> None:
        try:
            await self.broadcaster.broadcast(execution_id, ExecutionEvent(type=event_type, data=data))
        except Exception as e:
            # Event delivery never changes the outcome of an execution
            logger.error(f"Failed to broadcast {event_type.value} for {execution_id}: {e}")
