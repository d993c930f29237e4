"""Composition of data points, summaries and revenue rollups into a demand matrix."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from decimal import Decimal

from demand_matrix.models.demand import (
    ZERO,
    AggregationStrategy,
    ClientTaskDemand,
    DemandDataPoint,
    DemandMatrixData,
    ForecastPeriod,
    GenerationDiagnostics,
    SkillSummary,
    StaffSummary,
)
from demand_matrix.services.revenue import Q2, RevenueRollups

logger = logging.getLogger(__name__)

UNASSIGNED_STAFF_KEY = "UNASSIGNED"
UNASSIGNED_STAFF_NAME = "Unassigned"


def _money(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _hours(value: float) -> float:
    return round(value, 2)


class MatrixAssembler:
    """Builds :class:`DemandMatrixData` values and their JSON-ready form."""

    def assemble(
        self,
        periods: Sequence[ForecastPeriod],
        data_points: Sequence[DemandDataPoint],
        *,
        strategy: AggregationStrategy,
        skills: Iterable[str] = (),
        rollups: RevenueRollups | None = None,
    ) -> DemandMatrixData:
        rollups = rollups or RevenueRollups()
        skill_names = sorted(set(skills) | {point.skill_type for point in data_points})
        client_names = {row.client_name for point in data_points for row in point.task_breakdown}

        matrix = DemandMatrixData(
            months=list(periods),
            skills=skill_names,
            data_points=list(data_points),
            total_demand=sum(point.demand_hours for point in data_points),
            total_tasks=sum(point.task_count for point in data_points),
            total_clients=len(client_names),
            skill_summary=self.build_skill_summary(data_points, skill_names),
            aggregation_strategy=strategy,
            staff_summary=self.build_staff_summary(data_points),
            client_totals=dict(rollups.client_totals),
            client_revenue=dict(rollups.client_revenue),
            client_hourly_rates=dict(rollups.client_hourly_rates),
            client_suggested_revenue=dict(rollups.client_suggested_revenue),
            client_expected_less_suggested=dict(rollups.client_expected_less_suggested),
            revenue_totals=rollups.revenue_totals,
            skill_fee_rates=dict(rollups.skill_fee_rates),
        )
        logger.info(
            "Assembled %s matrix: %d months, %d skills, %d points, %.2fh, %d clients",
            strategy.value,
            len(matrix.months),
            len(matrix.skills),
            len(matrix.data_points),
            matrix.total_demand,
            matrix.total_clients,
        )
        return matrix

    def empty(
        self,
        periods: Sequence[ForecastPeriod],
        strategy: AggregationStrategy = AggregationStrategy.SKILL_BASED,
    ) -> DemandMatrixData:
        return DemandMatrixData(
            months=list(periods),
            skills=[],
            data_points=[],
            total_demand=0.0,
            total_tasks=0,
            total_clients=0,
            skill_summary={},
            aggregation_strategy=strategy,
        )

    @staticmethod
    def build_skill_summary(
        data_points: Sequence[DemandDataPoint],
        skills: Iterable[str],
    ) -> dict[str, SkillSummary]:
        summary = {skill: SkillSummary() for skill in skills}
        clients: dict[str, set[str]] = {skill: set() for skill in summary}
        for point in data_points:
            entry = summary.setdefault(point.skill_type, SkillSummary())
            entry.total_hours += point.demand_hours
            entry.total_tasks += point.task_count
            entry.total_suggested_revenue += point.suggested_revenue or ZERO
            entry.total_expected_revenue += point.expected_revenue or ZERO
            entry.total_expected_less_suggested += point.expected_less_suggested or ZERO
            clients.setdefault(point.skill_type, set()).update(row.client_name for row in point.task_breakdown)

        for skill, entry in summary.items():
            entry.total_clients = len(clients.get(skill, ()))
            if entry.total_hours > 0:
                entry.average_fee_rate = (
                    entry.total_suggested_revenue / Decimal(str(entry.total_hours))
                ).quantize(Q2)
        return summary

    @staticmethod
    def build_staff_summary(data_points: Sequence[DemandDataPoint]) -> dict[str, StaffSummary]:
        """Hours per preferred staff member, with unassigned work under ``UNASSIGNED``."""

        summary: dict[str, StaffSummary] = {}
        for point in data_points:
            skill = point.revenue_skill
            for row in point.task_breakdown:
                entry = summary.get(MatrixAssembler._staff_key(row))
                if entry is None:
                    entry = MatrixAssembler._new_staff_entry(row)
                    summary[entry.staff_id] = entry
                entry.total_hours += row.monthly_hours
                entry.total_tasks += 1
                entry.skill_breakdown[skill] = entry.skill_breakdown.get(skill, 0.0) + row.monthly_hours
                entry.client_breakdown[row.client_name] = (
                    entry.client_breakdown.get(row.client_name, 0.0) + row.monthly_hours
                )
        return summary

    @staticmethod
    def _staff_key(row: ClientTaskDemand) -> str:
        if row.preferred_staff_id is None or not str(row.preferred_staff_id).strip():
            return UNASSIGNED_STAFF_KEY
        return str(row.preferred_staff_id)

    @staticmethod
    def _new_staff_entry(row: ClientTaskDemand) -> StaffSummary:
        key = MatrixAssembler._staff_key(row)
        if key == UNASSIGNED_STAFF_KEY:
            return StaffSummary(staff_id=key, staff_name=UNASSIGNED_STAFF_NAME, is_unassigned=True)
        return StaffSummary(staff_id=key, staff_name=row.preferred_staff_name or "Unknown Staff")

    # ---------- Serialization ----------
    @staticmethod
    def serialize_task_demand(row: ClientTaskDemand) -> dict[str, object]:
        return {
            "client_id": row.client_id,
            "client_name": row.client_name,
            "recurring_task_id": row.recurring_task_id,
            "task_name": row.task_name,
            "skill_type": row.skill_type,
            "estimated_hours": row.estimated_hours,
            "recurrence_pattern": {
                "type": row.recurrence_pattern.type,
                "interval": row.recurrence_pattern.interval,
                "frequency": row.recurrence_pattern.frequency,
            },
            "monthly_hours": _hours(row.monthly_hours),
            "preferred_staff_id": row.preferred_staff_id,
            "preferred_staff_name": row.preferred_staff_name,
            "suggested_revenue": _money(row.suggested_revenue),
            "expected_revenue": _money(row.expected_revenue),
            "expected_less_suggested": _money(row.expected_less_suggested),
        }

    @staticmethod
    def serialize_data_point(point: DemandDataPoint) -> dict[str, object]:
        payload: dict[str, object] = {
            "skill_type": point.skill_type,
            "month": point.month,
            "month_label": point.month_label,
            "demand_hours": _hours(point.demand_hours),
            "task_count": point.task_count,
            "client_count": point.client_count,
            "task_breakdown": [MatrixAssembler.serialize_task_demand(row) for row in point.task_breakdown],
            "suggested_revenue": _money(point.suggested_revenue),
            "expected_revenue": _money(point.expected_revenue),
            "expected_less_suggested": _money(point.expected_less_suggested),
        }
        if point.is_staff_specific or point.is_unassigned:
            payload.update(
                {
                    "is_staff_specific": point.is_staff_specific,
                    "actual_staff_id": point.actual_staff_id,
                    "actual_staff_name": point.actual_staff_name,
                    "underlying_skill_type": point.underlying_skill_type,
                    "is_unassigned": point.is_unassigned,
                }
            )
        return payload

    @staticmethod
    def serialize(matrix: DemandMatrixData) -> dict[str, object]:
        return {
            "months": [{"key": month.period, "label": month.label} for month in matrix.months],
            "skills": list(matrix.skills),
            "data_points": [MatrixAssembler.serialize_data_point(point) for point in matrix.data_points],
            "total_demand": _hours(matrix.total_demand),
            "total_tasks": matrix.total_tasks,
            "total_clients": matrix.total_clients,
            "aggregation_strategy": matrix.aggregation_strategy.value,
            "skill_summary": {
                skill: {
                    "total_hours": _hours(entry.total_hours),
                    "total_tasks": entry.total_tasks,
                    "total_clients": entry.total_clients,
                    "total_suggested_revenue": str(entry.total_suggested_revenue),
                    "total_expected_revenue": str(entry.total_expected_revenue),
                    "total_expected_less_suggested": str(entry.total_expected_less_suggested),
                    "average_fee_rate": str(entry.average_fee_rate),
                }
                for skill, entry in matrix.skill_summary.items()
            },
            "staff_summary": {
                key: {
                    "staff_id": entry.staff_id,
                    "staff_name": entry.staff_name,
                    "total_hours": _hours(entry.total_hours),
                    "total_tasks": entry.total_tasks,
                    "skill_breakdown": {skill: _hours(hours) for skill, hours in entry.skill_breakdown.items()},
                    "client_breakdown": {name: _hours(hours) for name, hours in entry.client_breakdown.items()},
                    "is_unassigned": entry.is_unassigned,
                }
                for key, entry in matrix.staff_summary.items()
            },
            "client_totals": {name: _hours(hours) for name, hours in matrix.client_totals.items()},
            "client_revenue": {name: str(value) for name, value in matrix.client_revenue.items()},
            "client_hourly_rates": {name: str(value) for name, value in matrix.client_hourly_rates.items()},
            "client_suggested_revenue": {
                name: str(value) for name, value in matrix.client_suggested_revenue.items()
            },
            "client_expected_less_suggested": {
                name: str(value) for name, value in matrix.client_expected_less_suggested.items()
            },
            "revenue_totals": {
                "total_suggested_revenue": str(matrix.revenue_totals.total_suggested_revenue),
                "total_expected_revenue": str(matrix.revenue_totals.total_expected_revenue),
                "total_expected_less_suggested": str(matrix.revenue_totals.total_expected_less_suggested),
            },
            "skill_fee_rates": {skill: str(rate) for skill, rate in matrix.skill_fee_rates.items()},
        }

    @staticmethod
    def serialize_diagnostics(diagnostics: GenerationDiagnostics) -> dict[str, object]:
        return {
            "invalid_tasks": [
                {"task_id": str(entry.get("task_id")), "errors": list(entry.get("errors", []))}
                for entry in diagnostics.invalid_tasks
            ],
            "unresolved_skills": {task_id: list(refs) for task_id, refs in diagnostics.unresolved_skills.items()},
            "unresolved_clients": list(diagnostics.unresolved_clients),
            "skipped_tasks": [dict(entry) for entry in diagnostics.skipped_tasks],
            "fallback_fee_rates": list(diagnostics.fallback_fee_rates),
            "warnings": list(diagnostics.warnings),
            "cache_hit": diagnostics.cache_hit,
            "used_fallback": diagnostics.used_fallback,
            "error": diagnostics.error,
        }
