"""SQLAlchemy ORM models for the pipeline service.

Tables:
- workflows: Workflow definitions (built-in ones are seeded at startup)
- workflow_executions: Checkpointed ExecutionState per execution
- automations: Status/manual triggers bound to a workflow
- transitions: Outcome → next-status rules of an automation
- issues: Tracked issues and their current status
- issue_executions: One automation firing for one issue
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─── Workflow Definition ─────────────────────────────────────────────


class WorkflowModel(Base):
    """Persistent workflow definition.

    ``definition`` holds the JSON form produced by ``workflow_to_dict``.
    """

    __tablename__ = "workflows"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    builtin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    definition: Mapped[Dict[str, Any]] = mapped_column(
        JSON, nullable=False, comment="WorkflowDefinition JSON: {id, name, steps, initial_context, resume_nodes}",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    executions: Mapped[List["WorkflowExecutionModel"]] = relationship(
        back_populates="workflow", cascade="all, delete-orphan",
    )


# ─── Workflow Execution ──────────────────────────────────────────────


class WorkflowExecutionModel(Base):
    """Latest checkpoint of one execution.

    The full ExecutionState lives in ``state``; status and position are
    denormalized for listing and filtering.
    """

    __tablename__ = "workflow_executions"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    workflow_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False,
    )
    parent_execution_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="pending",
        comment="pending | running | paused | waiting_for_input | completed | failed | cancelled",
    )
    current_node: Mapped[str] = mapped_column(String(128), nullable=False)
    state: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    workflow: Mapped["WorkflowModel"] = relationship(back_populates="executions")

    __table_args__ = (
        Index("ix_executions_workflow_id", "workflow_id"),
        Index("ix_executions_status", "status"),
        Index("ix_executions_parent", "parent_execution_id"),
    )


# ─── Automations ─────────────────────────────────────────────────────


class AutomationModel(Base):
    __tablename__ = "automations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    trigger_type: Mapped[str] = mapped_column(
        String(32), nullable=False, comment="status_enter | manual",
    )
    trigger_status: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    button_label: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    workflow_id: Mapped[str] = mapped_column(String(128), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    transitions: Mapped[List["TransitionModel"]] = relationship(
        back_populates="automation",
        cascade="all, delete-orphan",
        order_by="TransitionModel.priority",
    )

    __table_args__ = (
        Index("ix_automations_trigger", "project_id", "trigger_type", "trigger_status"),
    )


class TransitionModel(Base):
    __tablename__ = "transitions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    automation_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("automations.id", ondelete="CASCADE"), nullable=False,
    )
    condition: Mapped[str] = mapped_column(
        String(32), nullable=False, comment="success | failure | custom",
    )
    custom_expression: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    next_status: Mapped[str] = mapped_column(String(128), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    automation: Mapped["AutomationModel"] = relationship(back_populates="transitions")

    __table_args__ = (
        Index("ix_transitions_automation_id", "automation_id"),
    )


# ─── Issues ──────────────────────────────────────────────────────────


class IssueModel(Base):
    __tablename__ = "issues"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(String(128), nullable=False)
    owner: Mapped[str] = mapped_column(String(128), nullable=False)
    repo: Mapped[str] = mapped_column(String(128), nullable=False)
    issue_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    current_status: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    executions: Mapped[List["IssueExecutionModel"]] = relationship(
        back_populates="issue", cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_issues_project_id", "project_id"),
    )


class IssueExecutionModel(Base):
    """Audit record of one automation firing for one issue."""

    __tablename__ = "issue_executions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    issue_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("issues.id", ondelete="CASCADE"), nullable=False,
    )
    automation_id: Mapped[str] = mapped_column(String(64), nullable=False)
    triggered_by: Mapped[str] = mapped_column(
        String(32), nullable=False, comment="status_enter | manual",
    )
    trigger_status: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    from_status: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    workflow_execution_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    result: Mapped[Optional[str]] = mapped_column(
        String(32), nullable=True, comment="success | failure",
    )
    next_status_applied: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    issue: Mapped["IssueModel"] = relationship(back_populates="executions")

    __table_args__ = (
        Index("ix_issue_executions_issue_id", "issue_id"),
    )
