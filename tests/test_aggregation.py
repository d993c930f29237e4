from __future__ import annotations

from datetime import date

import pytest

from demand_matrix.models.demand import (
    AggregationStrategy,
    DemandFilters,
    GenerationDiagnostics,
    RecurrenceType,
    RecurringTaskDefinition,
)
from demand_matrix.services.aggregation import (
    AggregationStrategySelector,
    SkillBasedAggregator,
    StaffBasedAggregator,
)
from demand_matrix.services.demand_calculation import ClientDirectory, DemandCalculator, TaskBreakdownBuilder
from demand_matrix.services.periods import build_forecast_periods
from demand_matrix.services.recurrence import RecurrenceCalculator


def _task(task_id: str, skills: tuple[str, ...], **overrides: object) -> RecurringTaskDefinition:
    values: dict[str, object] = {
        "id": task_id,
        "client_id": "client-a",
        "name": f"Task {task_id}",
        "estimated_hours": 4.0,
        "recurrence_type": RecurrenceType.MONTHLY,
        "due_date": date(2024, 1, 5),
        "required_skills": skills,
    }
    values.update(overrides)
    return RecurringTaskDefinition(**values)  # type: ignore[arg-type]


def _selector(diagnostics: GenerationDiagnostics | None = None) -> AggregationStrategySelector:
    diagnostics = diagnostics or GenerationDiagnostics()
    recurrence = RecurrenceCalculator()
    builder = TaskBreakdownBuilder(recurrence, ClientDirectory({"client-a": "Acme Ltd"}), diagnostics)
    return AggregationStrategySelector(
        SkillBasedAggregator(DemandCalculator(recurrence, diagnostics), builder),
        StaffBasedAggregator(builder, diagnostics),
    )


@pytest.mark.parametrize(
    ("filters", "expected"),
    [
        (None, AggregationStrategy.SKILL_BASED),
        (DemandFilters(), AggregationStrategy.SKILL_BASED),
        (DemandFilters(preferred_staff=["", "  ", None]), AggregationStrategy.SKILL_BASED),
        (DemandFilters(preferred_staff=["staff-1"]), AggregationStrategy.STAFF_BASED),
        (DemandFilters(preferred_staff=[None, "staff-2"]), AggregationStrategy.STAFF_BASED),
    ],
)
def test_select_strategy(filters: DemandFilters | None, expected: AggregationStrategy) -> None:
    assert AggregationStrategySelector.select(filters) is expected


def test_skill_based_emits_every_month_and_skill() -> None:
    periods = build_forecast_periods(date(2024, 1, 1), 3)
    tasks = [
        _task("t1", ("Tax Preparation",)),
        _task("t2", ("Audit",), recurrence_type=RecurrenceType.QUARTERLY, due_date=date(2024, 2, 10)),
    ]

    points = _selector().aggregate(
        AggregationStrategy.SKILL_BASED, periods, tasks, ["Tax Preparation", "Audit"], {}
    )

    assert [(point.month, point.skill_type) for point in points] == [
        ("2024-01", "Audit"),
        ("2024-01", "Tax Preparation"),
        ("2024-02", "Audit"),
        ("2024-02", "Tax Preparation"),
        ("2024-03", "Audit"),
        ("2024-03", "Tax Preparation"),
    ]
    hours = {(point.month, point.skill_type): point.demand_hours for point in points}
    assert hours[("2024-01", "Audit")] == 0.0
    assert hours[("2024-02", "Audit")] == pytest.approx(4.0)
    assert hours[("2024-03", "Tax Preparation")] == pytest.approx(4.0)
    assert all(point.client_count == (1 if point.demand_hours else 0) for point in points)
    assert points[0].month_label == "Jan 2024"


def test_staff_based_groups_by_staff_and_unassigned_buckets() -> None:
    periods = build_forecast_periods(date(2024, 1, 1), 2)
    tasks = [
        _task("t1", ("Tax Preparation",), preferred_staff_id="staff-1", preferred_staff_name="Dana Whitfield"),
        _task("t2", ("Audit", "Tax Preparation"), preferred_staff_id="staff-1", preferred_staff_name="Dana Whitfield"),
        _task("t3", ("Tax Preparation",), preferred_staff_id="staff-2", preferred_staff_name="Sam Ortiz"),
        _task("t4", ("Tax Preparation",)),
        _task("t5", ("Audit",), due_date=date(2024, 2, 1)),
    ]

    points = _selector().aggregate(
        AggregationStrategy.STAFF_BASED,
        periods,
        tasks,
        [],
        {},
        filters=DemandFilters(preferred_staff=["staff-1"]),
        include_unassigned=True,
    )

    january = [point.skill_type for point in points if point.month == "2024-01"]
    february = [point.skill_type for point in points if point.month == "2024-02"]
    assert january == ["Dana Whitfield (Audit)", "Dana Whitfield (Tax Preparation)", "Unassigned (Tax Preparation)"]
    assert february == [
        "Dana Whitfield (Audit)",
        "Dana Whitfield (Tax Preparation)",
        "Unassigned (Audit)",
        "Unassigned (Tax Preparation)",
    ]

    staff_point = points[0]
    assert staff_point.is_staff_specific is True
    assert staff_point.actual_staff_id == "staff-1"
    assert staff_point.actual_staff_name == "Dana Whitfield"
    assert staff_point.underlying_skill_type == "Audit"
    assert staff_point.revenue_skill == "Audit"

    unassigned = next(point for point in points if point.skill_type == "Unassigned (Tax Preparation)")
    assert unassigned.is_unassigned is True
    assert unassigned.is_staff_specific is False
    assert unassigned.task_breakdown[0].preferred_staff_id is None


def test_staff_based_can_exclude_unassigned_work() -> None:
    periods = build_forecast_periods(date(2024, 1, 1), 1)
    tasks = [
        _task("t1", ("Tax Preparation",), preferred_staff_id="staff-1"),
        _task("t2", ("Tax Preparation",)),
    ]

    points = _selector().aggregate(
        AggregationStrategy.STAFF_BASED,
        periods,
        tasks,
        [],
        {},
        filters=DemandFilters(preferred_staff=["staff-1"]),
        include_unassigned=False,
    )

    assert [point.skill_type for point in points] == ["Unknown Staff (Tax Preparation)"]
    assert points[0].demand_hours == pytest.approx(4.0)
    assert points[0].task_count == 1
