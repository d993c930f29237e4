"""Read-only queries backing the forecasting engine's data stores."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from demand_matrix.models.entities import Client, RecurringTask, Skill


def _parse_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


class ForecastRepository:
    """Task, skill, client, fee rate and client revenue lookups.

    Every call opens its own session, so one repository can be shared by the
    process-wide orchestrator.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    # ---------- Recurring tasks ----------
    async def load_active_recurring_tasks(self) -> list[dict[str, Any]]:
        async with self.session_factory() as session:
            tasks = (
                await session.scalars(
                    select(RecurringTask)
                    .where(RecurringTask.is_active.is_(True))
                    .order_by(RecurringTask.name.asc(), RecurringTask.id.asc())
                )
            ).all()
            return [self.task_record(task) for task in tasks]

    @staticmethod
    def task_record(task: RecurringTask) -> dict[str, Any]:
        return {
            "id": str(task.id),
            "client_id": str(task.client_id),
            "template_id": str(task.template_id) if task.template_id is not None else None,
            "name": task.name,
            "estimated_hours": task.estimated_hours,
            "required_skills": list(task.required_skills or []),
            "priority": task.priority,
            "category": task.category,
            "recurrence_type": task.recurrence_type,
            "recurrence_interval": task.recurrence_interval,
            "weekdays": list(task.weekdays) if task.weekdays is not None else None,
            "day_of_month": task.day_of_month,
            "month_of_year": task.month_of_year,
            "due_date": task.due_date,
            "end_date": task.end_date,
            "is_active": task.is_active,
            "preferred_staff_id": str(task.preferred_staff_id) if task.preferred_staff_id is not None else None,
            "preferred_staff_name": task.preferred_staff.full_name if task.preferred_staff is not None else None,
            "client_name": task.client.legal_name if task.client is not None else None,
        }

    # ---------- Skills ----------
    async def list_skills(self) -> list[dict[str, str]]:
        async with self.session_factory() as session:
            skills = (await session.scalars(select(Skill).order_by(Skill.name.asc()))).all()
            return [{"id": str(skill.id), "name": skill.name} for skill in skills]

    async def get_skill_fee_rates(self) -> dict[str, Decimal]:
        async with self.session_factory() as session:
            rows = (
                await session.execute(select(Skill.name, Skill.fee_rate).where(Skill.fee_rate.is_not(None)))
            ).all()
            return {name: fee_rate for name, fee_rate in rows}

    # ---------- Clients ----------
    async def resolve_client_ids(self, client_ids: Sequence[str]) -> dict[str, str]:
        parsed = {value: _parse_uuid(value) for value in client_ids}
        lookup = [value for value in parsed.values() if value is not None]
        if not lookup:
            return {}
        async with self.session_factory() as session:
            rows = (await session.execute(select(Client.id, Client.legal_name).where(Client.id.in_(lookup)))).all()
        names = {client_id: legal_name for client_id, legal_name in rows}
        return {raw: names[value] for raw, value in parsed.items() if value is not None and value in names}

    async def fetch_clients_with_expected_revenue(self) -> list[dict[str, Any]]:
        async with self.session_factory() as session:
            rows = (
                await session.execute(
                    select(Client.id, Client.expected_monthly_revenue).where(
                        Client.expected_monthly_revenue.is_not(None)
                    )
                )
            ).all()
            return [
                {"id": str(client_id), "expected_monthly_revenue": revenue}
                for client_id, revenue in rows
            ]
