"""Step and Workflow Definitions

Pure data: a workflow is an ordered list of typed steps, where Conditional and
Loop steps nest further step lists. Nothing here executes; the graph builder
compiles these definitions into node runtimes.

Key Components:
- StepType: the closed set of step tags
- CodeStep / LLMStep / QuestionStep / ConditionalStep / LoopStep /
  NestedWorkflowStep: one dataclass per tag
- WorkflowDefinition: steps plus initial context and the resume map
- workflow_from_dict / workflow_to_dict: JSON form used by stored workflows
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Union

from ..settings import (
    LLM_DEFAULT_MAX_TOKENS,
    LLM_DEFAULT_TEMPERATURE,
    LLM_MAX_RETRIES,
    LOOP_MAX_ITERATIONS_DEFAULT,
)
from .errors import WorkflowConfigError


class StepType(str, Enum):
    CODE = "code"
    LLM = "llm"
    QUESTION = "question"
    CONDITIONAL = "conditional"
    LOOP = "loop"
    NESTED_WORKFLOW = "nested_workflow"


def _require_id(step_id: str, kind: str) -> None:
    if not step_id:
        raise WorkflowConfigError(f"{kind} step id cannot be empty")


@dataclass
class CodeStep:
    """Runs a named handler from the handler registry.

    Attributes:
        id: Unique step identifier
        handler: Registered handler name
        input: Static parameters passed to the handler
        name: Optional display name
    """

    id: str
    handler: str
    input: Dict[str, Any] = field(default_factory=dict)
    name: Optional[str] = None
    type: StepType = field(default=StepType.CODE, init=False)

    def __post_init__(self):
        _require_id(self.id, "code")
        if not self.handler:
            raise WorkflowConfigError(f"code step '{self.id}': handler cannot be empty")


@dataclass
class LLMStep:
    """One bounded agent call.

    Prompts use ``{{dotted.path}}`` placeholders resolved against context.
    The response is stored under ``output_key``; when ``merge_structured`` is
    set, the parsed structured object is also merged into context.
    """

    id: str
    user_prompt: str
    system_prompt: str = ""
    model: Optional[str] = None
    output_schema: Optional[Dict[str, Any]] = None
    max_tokens: int = LLM_DEFAULT_MAX_TOKENS
    temperature: float = LLM_DEFAULT_TEMPERATURE
    output_key: Optional[str] = None
    merge_structured: bool = False
    max_retries: int = LLM_MAX_RETRIES
    name: Optional[str] = None
    type: StepType = field(default=StepType.LLM, init=False)

    def __post_init__(self):
        _require_id(self.id, "llm")
        if not self.user_prompt:
            raise WorkflowConfigError(f"llm step '{self.id}': user_prompt cannot be empty")
        if self.max_tokens <= 0:
            raise WorkflowConfigError(f"llm step '{self.id}': max_tokens must be positive")
        if not 0.0 <= self.temperature <= 1.0:
            raise WorkflowConfigError(f"llm step '{self.id}': temperature must be in [0, 1]")
        if self.max_retries < 0:
            raise WorkflowConfigError(f"llm step '{self.id}': max_retries cannot be negative")
        if self.merge_structured and not self.output_schema:
            raise WorkflowConfigError(
                f"llm step '{self.id}': merge_structured requires an output_schema"
            )
        if self.output_key is None:
            self.output_key = self.id


@dataclass
class QuestionStep:
    """Presents one question (or a batch) to the user.

    ``question_source`` is ``static`` (use ``question`` or the list found at
    ``questions_path``) or ``generated`` (one agent call scoped to the topic
    found at ``topic_path``). With ``pause`` set the engine suspends after
    this step until answers arrive.
    """

    id: str
    question_source: str = "static"
    question: Optional[Dict[str, Any]] = None
    questions_path: Optional[str] = None
    topic_path: Optional[str] = None
    prompt: Optional[str] = None
    pause: bool = True
    max_tokens: int = 300
    temperature: float = 0.7
    name: Optional[str] = None
    type: StepType = field(default=StepType.QUESTION, init=False)

    def __post_init__(self):
        _require_id(self.id, "question")
        if self.question_source not in ("static", "generated"):
            raise WorkflowConfigError(
                f"question step '{self.id}': question_source must be 'static' or 'generated'"
            )
        if self.question_source == "static" and not (self.question or self.questions_path):
            raise WorkflowConfigError(
                f"question step '{self.id}': static questions need question or questions_path"
            )
        if self.question_source == "generated" and not self.topic_path:
            raise WorkflowConfigError(
                f"question step '{self.id}': generated questions need a topic_path"
            )


@dataclass
class ConditionalStep:
    id: str
    condition: str
    then_steps: List["StepDefinition"] = field(default_factory=list)
    else_steps: List["StepDefinition"] = field(default_factory=list)
    name: Optional[str] = None
    type: StepType = field(default=StepType.CONDITIONAL, init=False)

    def __post_init__(self):
        _require_id(self.id, "conditional")
        if not self.condition or not self.condition.strip():
            raise WorkflowConfigError(f"conditional step '{self.id}': condition cannot be empty")


@dataclass
class LoopStep:
    """Iterates the list at ``collection`` binding each item to ``item_variable``.

    The body never runs more than ``max_iterations`` times.
    """

    id: str
    collection: str
    item_variable: str
    steps: List["StepDefinition"] = field(default_factory=list)
    max_iterations: int = LOOP_MAX_ITERATIONS_DEFAULT
    name: Optional[str] = None
    type: StepType = field(default=StepType.LOOP, init=False)

    def __post_init__(self):
        _require_id(self.id, "loop")
        if not self.collection:
            raise WorkflowConfigError(f"loop step '{self.id}': collection cannot be empty")
        if not self.item_variable:
            raise WorkflowConfigError(f"loop step '{self.id}': item_variable cannot be empty")
        if not self.steps:
            raise WorkflowConfigError(f"loop step '{self.id}': body cannot be empty")
        if self.max_iterations < 1:
            raise WorkflowConfigError(f"loop step '{self.id}': max_iterations must be >= 1")


@dataclass
class NestedWorkflowStep:
    """Calls another workflow and waits for it to return.

    ``input`` is passed as-is; ``input_mapping`` maps child keys to dotted
    paths in the parent context.
    """

    id: str
    workflow_id: str
    input: Dict[str, Any] = field(default_factory=dict)
    input_mapping: Dict[str, str] = field(default_factory=dict)
    output_key: Optional[str] = None
    name: Optional[str] = None
    type: StepType = field(default=StepType.NESTED_WORKFLOW, init=False)

    def __post_init__(self):
        _require_id(self.id, "nested_workflow")
        if not self.workflow_id:
            raise WorkflowConfigError(f"nested_workflow step '{self.id}': workflow_id cannot be empty")
        if self.output_key is None:
            self.output_key = self.id


StepDefinition = Union[
    CodeStep, LLMStep, QuestionStep, ConditionalStep, LoopStep, NestedWorkflowStep
]


@dataclass
class WorkflowDefinition:
    """Declarative workflow definition.

    Attributes:
        id: Workflow identifier used by automations and nested steps
        name: Display name
        steps: Top-level steps, executed in order
        initial_context: Merged into context before caller input
        resume_nodes: Phase name → processing node entered on resume
        description: Optional description
    """

    id: str
    name: str
    steps: List[StepDefinition]
    initial_context: Dict[str, Any] = field(default_factory=dict)
    resume_nodes: Dict[str, str] = field(default_factory=dict)
    description: str = ""

    def __post_init__(self):
        if not self.id:
            raise WorkflowConfigError("workflow id cannot be empty")
        if not self.steps:
            raise WorkflowConfigError(f"workflow '{self.id}' must have at least one step")

        step_ids = [step.id for step in iter_steps(self.steps)]
        if len(step_ids) != len(set(step_ids)):
            duplicates = {sid for sid in step_ids if step_ids.count(sid) > 1}
            raise WorkflowConfigError(f"workflow '{self.id}': duplicate step ids {sorted(duplicates)}")

        for phase, node_id in self.resume_nodes.items():
            if node_id not in step_ids:
                raise WorkflowConfigError(
                    f"workflow '{self.id}': resume node '{node_id}' for phase '{phase}' not found"
                )


def iter_steps(steps: List[StepDefinition]) -> Iterator[StepDefinition]:
    """Depth-first walk over a step list, including nested branches and bodies."""
    for step in steps:
        yield step
        if isinstance(step, ConditionalStep):
            yield from iter_steps(step.then_steps)
            yield from iter_steps(step.else_steps)
        elif isinstance(step, LoopStep):
            yield from iter_steps(step.steps)


# --- JSON form ---


_SIMPLE_STEP_CLASSES = {
    StepType.CODE: CodeStep,
    StepType.LLM: LLMStep,
    StepType.QUESTION: QuestionStep,
    StepType.NESTED_WORKFLOW: NestedWorkflowStep,
}


def step_from_dict(data: Dict[str, Any]) -> StepDefinition:
    """Parse one step from its JSON form.

    Raises:
        WorkflowConfigError: unknown type tag or invalid fields
    """
    if not isinstance(data, dict):
        raise WorkflowConfigError(f"step must be an object, got {type(data).__name__}")

    raw = dict(data)
    tag = raw.pop("type", None)
    try:
        step_type = StepType(tag)
    except ValueError:
        raise WorkflowConfigError(f"step '{raw.get('id')}': unknown step type '{tag}'") from None

    try:
        if step_type is StepType.CONDITIONAL:
            raw["then_steps"] = [step_from_dict(s) for s in raw.get("then_steps", [])]
            raw["else_steps"] = [step_from_dict(s) for s in raw.get("else_steps", [])]
            return ConditionalStep(**raw)
        if step_type is StepType.LOOP:
            raw["steps"] = [step_from_dict(s) for s in raw.get("steps", [])]
            return LoopStep(**raw)
        return _SIMPLE_STEP_CLASSES[step_type](**raw)
    except TypeError as e:
        raise WorkflowConfigError(f"step '{raw.get('id')}': {e}") from e


def step_to_dict(step: StepDefinition) -> Dict[str, Any]:
    data: Dict[str, Any] = {"type": step.type.value}
    for key, value in vars(step).items():
        if key == "type":
            continue
        if key in ("then_steps", "else_steps", "steps"):
            data[key] = [step_to_dict(s) for s in value]
        else:
            data[key] = value
    return data


def workflow_from_dict(data: Dict[str, Any]) -> WorkflowDefinition:
    """Parse a stored workflow definition."""
    if not isinstance(data, dict):
        raise WorkflowConfigError("workflow definition must be an object")
    steps = data.get("steps")
    if not isinstance(steps, list):
        raise WorkflowConfigError("workflow definition requires a 'steps' list")
    return WorkflowDefinition(
        id=data.get("id", ""),
        name=data.get("name") or data.get("id", ""),
        steps=[step_from_dict(s) for s in steps],
        initial_context=dict(data.get("initial_context") or {}),
        resume_nodes=dict(data.get("resume_nodes") or {}),
        description=data.get("description", ""),
    )


def workflow_to_dict(workflow: WorkflowDefinition) -> Dict[str, Any]:
    return {
        "id": workflow.id,
        "name": workflow.name,
        "description": workflow.description,
        "steps": [step_to_dict(s) for s in workflow.steps],
        "initial_context": workflow.initial_context,
        "resume_nodes": workflow.resume_nodes,
    }
