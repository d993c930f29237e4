"""Skill-based and staff-based aggregation of task demand into matrix cells."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from demand_matrix.models.demand import (
    AggregationStrategy,
    ClientTaskDemand,
    DemandDataPoint,
    DemandFilters,
    ForecastPeriod,
    GenerationDiagnostics,
    RecurringTaskDefinition,
)
from demand_matrix.services.demand_calculation import DemandCalculator, TaskBreakdownBuilder

logger = logging.getLogger(__name__)

UNASSIGNED_LABEL = "Unassigned"
UNKNOWN_STAFF_NAME = "Unknown Staff"


def normalize_staff_id(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text.lower() or None


class SkillBasedAggregator:
    """One data point per (month, skill), including empty cells."""

    def __init__(self, calculator: DemandCalculator, breakdown_builder: TaskBreakdownBuilder) -> None:
        self.calculator = calculator
        self.breakdown_builder = breakdown_builder

    def aggregate(
        self,
        periods: Sequence[ForecastPeriod],
        tasks: Sequence[RecurringTaskDefinition],
        skills: Sequence[str],
        skill_mapping: Mapping[str, str],
    ) -> list[DemandDataPoint]:
        data_points: list[DemandDataPoint] = []
        for period in periods:
            for skill in sorted(set(skills)):
                demand = self.calculator.demand_for_skill_period(skill, period, tasks, skill_mapping)
                rows = self.breakdown_builder.breakdown(skill, period, tasks, skill_mapping)
                data_points.append(
                    DemandDataPoint(
                        skill_type=skill,
                        month=period.period,
                        month_label=period.label,
                        demand_hours=demand.total_demand,
                        task_count=demand.total_tasks,
                        client_count=len({row.client_name for row in rows}),
                        task_breakdown=rows,
                    )
                )
        return data_points


class StaffBasedAggregator:
    """Data points per (preferred staff, primary skill) plus unassigned buckets per skill.

    Only staff present in the active filter are kept. Tasks without a preferred
    staff member land in ``Unassigned (<skill>)`` cells when ``include_unassigned``
    is set. Groups with no demand in a period produce no data point.
    """

    def __init__(self, breakdown_builder: TaskBreakdownBuilder, diagnostics: GenerationDiagnostics) -> None:
        self.breakdown_builder = breakdown_builder
        self.diagnostics = diagnostics

    def aggregate(
        self,
        periods: Sequence[ForecastPeriod],
        tasks: Sequence[RecurringTaskDefinition],
        skill_mapping: Mapping[str, str],
        *,
        staff_ids: Sequence[str],
        include_unassigned: bool,
    ) -> list[DemandDataPoint]:
        groups = self._group_tasks(tasks, skill_mapping, staff_ids=staff_ids, include_unassigned=include_unassigned)
        logger.debug("Staff aggregation over %d staff/skill groups", len(groups))

        data_points: list[DemandDataPoint] = []
        for period in periods:
            period_points: list[DemandDataPoint] = []
            for (staff_key, skill), group in groups.items():
                rows = self._rows_for_group(group, skill, period)
                if not rows:
                    continue
                period_points.append(self._data_point(period, staff_key, skill, group, rows))
            period_points.sort(key=lambda point: point.skill_type)
            data_points.extend(period_points)
        return data_points

    def _group_tasks(
        self,
        tasks: Sequence[RecurringTaskDefinition],
        skill_mapping: Mapping[str, str],
        *,
        staff_ids: Sequence[str],
        include_unassigned: bool,
    ) -> dict[tuple[str | None, str], list[RecurringTaskDefinition]]:
        wanted = {normalize_staff_id(staff_id) for staff_id in staff_ids} - {None}
        groups: dict[tuple[str | None, str], list[RecurringTaskDefinition]] = {}
        for task in tasks:
            primary = task.primary_skill
            if primary is None:
                self.diagnostics.skip_task(task.id, "No resolved skill for staff aggregation")
                continue
            skill = skill_mapping.get(primary, primary)
            staff_key = normalize_staff_id(task.preferred_staff_id)
            if staff_key is None:
                if not include_unassigned:
                    continue
            elif staff_key not in wanted:
                continue
            groups.setdefault((staff_key, skill), []).append(task)
        return groups

    def _rows_for_group(
        self,
        group: Sequence[RecurringTaskDefinition],
        skill: str,
        period: ForecastPeriod,
    ) -> list[ClientTaskDemand]:
        rows: list[ClientTaskDemand] = []
        for task in group:
            try:
                row = self.breakdown_builder.row_for(task, skill, period)
            except Exception as exc:
                logger.exception("Skipping task %s for staff aggregation in %s", task.id, period.period)
                self.diagnostics.skip_task(task.id, f"Staff aggregation failed: {exc}")
                continue
            if row is not None:
                rows.append(row)
        return rows

    @staticmethod
    def _data_point(
        period: ForecastPeriod,
        staff_key: str | None,
        skill: str,
        group: Sequence[RecurringTaskDefinition],
        rows: list[ClientTaskDemand],
    ) -> DemandDataPoint:
        hours = sum(row.monthly_hours for row in rows)
        client_count = len({row.client_name for row in rows})
        if staff_key is None:
            return DemandDataPoint(
                skill_type=f"{UNASSIGNED_LABEL} ({skill})",
                month=period.period,
                month_label=period.label,
                demand_hours=hours,
                task_count=len(rows),
                client_count=client_count,
                task_breakdown=rows,
                is_staff_specific=False,
                underlying_skill_type=skill,
                is_unassigned=True,
            )

        staff_name = next((task.preferred_staff_name for task in group if task.preferred_staff_name), None)
        staff_name = staff_name or UNKNOWN_STAFF_NAME
        return DemandDataPoint(
            skill_type=f"{staff_name} ({skill})",
            month=period.period,
            month_label=period.label,
            demand_hours=hours,
            task_count=len(rows),
            client_count=client_count,
            task_breakdown=rows,
            is_staff_specific=True,
            actual_staff_id=group[0].preferred_staff_id,
            actual_staff_name=staff_name,
            underlying_skill_type=skill,
        )


class AggregationStrategySelector:
    """Chooses the grouping axis for one generation call and dispatches to it."""

    def __init__(
        self,
        skill_aggregator: SkillBasedAggregator,
        staff_aggregator: StaffBasedAggregator,
    ) -> None:
        self.skill_aggregator = skill_aggregator
        self.staff_aggregator = staff_aggregator

    @staticmethod
    def select(filters: DemandFilters | None) -> AggregationStrategy:
        if filters is not None and filters.staff_ids:
            return AggregationStrategy.STAFF_BASED
        return AggregationStrategy.SKILL_BASED

    def aggregate(
        self,
        strategy: AggregationStrategy,
        periods: Sequence[ForecastPeriod],
        tasks: Sequence[RecurringTaskDefinition],
        skills: Sequence[str],
        skill_mapping: Mapping[str, str],
        *,
        filters: DemandFilters | None = None,
        include_unassigned: bool = True,
    ) -> list[DemandDataPoint]:
        logger.info("Aggregating %d tasks over %d periods using %s", len(tasks), len(periods), strategy.value)
        if strategy is AggregationStrategy.STAFF_BASED:
            return self.staff_aggregator.aggregate(
                periods,
                tasks,
                skill_mapping,
                staff_ids=filters.staff_ids if filters is not None else [],
                include_unassigned=include_unassigned,
            )
        return self.skill_aggregator.aggregate(periods, tasks, skills, skill_mapping)
