"""Built-in workflow definitions."""

from typing import List

from ..engine.definitions import WorkflowDefinition
from .issue_planning import ISSUE_PLANNING_WORKFLOW_ID, build_issue_planning_workflow
from .topic_qa import DEFAULT_TOPICS, TOPIC_QA_WORKFLOW_ID, build_topic_qa_workflow


def builtin_workflows() -> List[WorkflowDefinition]:
    return [build_topic_qa_workflow(), build_issue_planning_workflow()]


__all__ = [
    "DEFAULT_TOPICS",
    "ISSUE_PLANNING_WORKFLOW_ID",
    "TOPIC_QA_WORKFLOW_ID",
    "build_issue_planning_workflow",
    "build_topic_qa_workflow",
    "builtin_workflows",
]
