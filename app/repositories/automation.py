"""Repository layer for automations and their transitions."""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.db import AutomationModel, TransitionModel


def _gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class AutomationRepository:
    """Data access layer for automations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        project_id: str,
        name: str,
        trigger_type: str,
        workflow_id: str,
        trigger_status: Optional[str] = None,
        button_label: Optional[str] = None,
        enabled: bool = True,
        priority: int = 0,
        transitions: Optional[List[Dict[str, Any]]] = None,
        automation_id: Optional[str] = None,
    ) -> AutomationModel:
        """Create an automation together with its transitions.

        Args:
            transitions: Dicts with condition, next_status, custom_expression, priority

        Returns:
            Created AutomationModel with transitions loaded
        """
        automation = AutomationModel(
            id=automation_id or _gen_id("auto"),
            project_id=project_id,
            name=name,
            trigger_type=trigger_type,
            trigger_status=trigger_status,
            button_label=button_label,
            workflow_id=workflow_id,
            enabled=enabled,
            priority=priority,
        )
        self.session.add(automation)

        for item in transitions or []:
            self.session.add(TransitionModel(
                id=item.get("id") or _gen_id("tr"),
                automation_id=automation.id,
                condition=item["condition"],
                custom_expression=item.get("custom_expression"),
                next_status=item["next_status"],
                priority=item.get("priority", 0),
            ))

        await self.session.flush()
        return await self.get(automation.id)

    async def get(self, automation_id: str) -> Optional[AutomationModel]:
        result = await self.session.execute(
            select(AutomationModel)
            .options(selectinload(AutomationModel.transitions))
            .where(AutomationModel.id == automation_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list(self, project_id: Optional[str] = None) -> List[AutomationModel]:
        query = select(AutomationModel).options(selectinload(AutomationModel.transitions))
        if project_id:
            query = query.where(AutomationModel.project_id == project_id)
        query = query.order_by(AutomationModel.priority, AutomationModel.created_at)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def find_by_trigger(
        self,
        project_id: str,
        trigger_type: str,
        trigger_status: Optional[str],
    ) -> List[AutomationModel]:
        """Enabled automations for a trigger, ascending by priority."""
        query = select(AutomationModel).where(
            AutomationModel.project_id == project_id,
            AutomationModel.trigger_type == trigger_type,
            AutomationModel.enabled.is_(True),
        )
        if trigger_status is None:
            query = query.where(AutomationModel.trigger_status.is_(None))
        else:
            query = query.where(AutomationModel.trigger_status == trigger_status)
        query = query.order_by(AutomationModel.priority, AutomationModel.created_at)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_transitions(self, automation_id: str) -> List[TransitionModel]:
        result = await self.session.execute(
            select(TransitionModel)
            .where(TransitionModel.automation_id == automation_id)
            .order_by(TransitionModel.priority)
        )
        return list(result.scalars().all())

    async def add_transition(
        self,
        automation_id: str,
        condition: str,
        next_status: str,
        custom_expression: Optional[str] = None,
        priority: int = 0,
    ) -> TransitionModel:
        transition = TransitionModel(
            id=_gen_id("tr"),
            automation_id=automation_id,
            condition=condition,
            custom_expression=custom_expression,
            next_status=next_status,
            priority=priority,
        )
        self.session.add(transition)
        await self.session.flush()
        return transition

    async def set_enabled(self, automation_id: str, enabled: bool) -> Optional[AutomationModel]:
        automation = await self.get(automation_id)
        if not automation:
            return None
        automation.enabled = enabled
        await self.session.flush()
        return automation

    async def delete(self, automation_id: str) -> bool:
        """Delete an automation and all its transitions."""
        automation = await self.get(automation_id)
        if not automation:
            return False
        await self.session.delete(automation)
        await self.session.flush()
        return True
