"""Per-skill, per-period demand aggregation and task-level breakdown rows."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from demand_matrix.models.demand import (
    ClientTaskDemand,
    ForecastPeriod,
    GenerationDiagnostics,
    RecurrencePattern,
    RecurringTaskDefinition,
)
from demand_matrix.services.recurrence import MonthlyDemand, RecurrenceCalculator
from demand_matrix.services.stores import ClientStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SkillPeriodDemand:
    total_demand: float = 0.0
    total_tasks: int = 0
    total_clients: int = 0


def mapped_skills(task: RecurringTaskDefinition, skill_mapping: Mapping[str, str]) -> set[str]:
    return {skill_mapping.get(skill, skill) for skill in task.required_skills}


class ClientDirectory:
    """Client display names resolved once per generation pass."""

    def __init__(self, names: Mapping[str, str] | None = None) -> None:
        self._names = dict(names or {})

    @classmethod
    async def load(cls, store: ClientStore, tasks: Iterable[RecurringTaskDefinition]) -> ClientDirectory:
        task_list = list(tasks)
        client_ids = sorted({task.client_id for task in task_list if task.client_id})
        names: dict[str, str] = {}
        for task in task_list:
            if task.client_name:
                names.setdefault(task.client_id, task.client_name)
        if client_ids:
            resolved = await store.resolve_client_ids(client_ids)
            names.update({client_id: name for client_id, name in resolved.items() if name})
        logger.debug("Resolved %d/%d client ids", len(names), len(client_ids))
        return cls(names)

    def name_for(self, client_id: str) -> str | None:
        return self._names.get(client_id)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._names

    def __len__(self) -> int:
        return len(self._names)


class DemandCalculator:
    """Sums monthly hours of the tasks requiring one skill in one period."""

    def __init__(
        self,
        recurrence: RecurrenceCalculator,
        diagnostics: GenerationDiagnostics | None = None,
    ) -> None:
        self.recurrence = recurrence
        self.diagnostics = diagnostics or GenerationDiagnostics()

    def demand_for_skill_period(
        self,
        skill: str,
        period: ForecastPeriod,
        tasks: Sequence[RecurringTaskDefinition],
        skill_mapping: Mapping[str, str],
    ) -> SkillPeriodDemand:
        result = SkillPeriodDemand()
        client_ids: set[str] = set()
        for task in tasks:
            try:
                if skill not in mapped_skills(task, skill_mapping):
                    continue
                demand = self.recurrence.monthly_demand(task, period)
            except Exception as exc:
                logger.exception("Skipping task %s for %s/%s", task.id, skill, period.period)
                self.diagnostics.skip_task(task.id, f"Demand calculation failed: {exc}")
                continue
            if demand.hours <= 0:
                continue
            result.total_demand += demand.hours
            result.total_tasks += 1
            client_ids.add(task.client_id)
        result.total_clients = len(client_ids)
        return result


class TaskBreakdownBuilder:
    """Builds the per-task rows behind each matrix cell."""

    def __init__(
        self,
        recurrence: RecurrenceCalculator,
        clients: ClientDirectory,
        diagnostics: GenerationDiagnostics | None = None,
    ) -> None:
        self.recurrence = recurrence
        self.clients = clients
        self.diagnostics = diagnostics or GenerationDiagnostics()

    def breakdown(
        self,
        skill: str,
        period: ForecastPeriod,
        tasks: Sequence[RecurringTaskDefinition],
        skill_mapping: Mapping[str, str],
    ) -> list[ClientTaskDemand]:
        rows: list[ClientTaskDemand] = []
        for task in tasks:
            try:
                if skill not in mapped_skills(task, skill_mapping):
                    continue
                row = self.row_for(task, skill, period)
            except Exception as exc:
                logger.exception("Skipping breakdown of task %s for %s/%s", task.id, skill, period.period)
                self.diagnostics.skip_task(task.id, f"Breakdown failed: {exc}")
                continue
            if row is not None:
                rows.append(row)
        return rows

    def row_for(self, task: RecurringTaskDefinition, skill: str, period: ForecastPeriod) -> ClientTaskDemand | None:
        demand = self.recurrence.monthly_demand(task, period)
        if demand.hours <= 0:
            return None
        client_name = self.clients.name_for(task.client_id)
        if client_name is None:
            self.diagnostics.skip_task(task.id, f"Unresolved client {task.client_id}")
            return None
        return self._build_row(task, skill, client_name, demand)

    @staticmethod
    def _build_row(
        task: RecurringTaskDefinition,
        skill: str,
        client_name: str,
        demand: MonthlyDemand,
    ) -> ClientTaskDemand:
        return ClientTaskDemand(
            client_id=task.client_id,
            client_name=client_name,
            recurring_task_id=task.id,
            task_name=task.name,
            skill_type=skill,
            estimated_hours=task.estimated_hours,
            recurrence_pattern=RecurrencePattern(
                type=task.recurrence_type.value if task.recurrence_type else "",
                interval=task.recurrence_interval,
                frequency=demand.occurrences,
            ),
            monthly_hours=demand.hours,
            preferred_staff_id=task.preferred_staff_id,
            preferred_staff_name=task.preferred_staff_name,
        )
