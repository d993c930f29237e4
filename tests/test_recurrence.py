from __future__ import annotations

import logging
from datetime import date

import pytest

from demand_matrix.models.demand import ForecastPeriod, RecurrenceType, RecurringTaskDefinition
from demand_matrix.services.recurrence import RecurrenceCalculator


def _task(**overrides: object) -> RecurringTaskDefinition:
    values: dict[str, object] = {
        "id": "task-1",
        "client_id": "client-a",
        "name": "Recurring work",
        "estimated_hours": 4.0,
        "recurrence_type": RecurrenceType.MONTHLY,
        "due_date": date(2024, 1, 15),
        "required_skills": ("Tax Preparation",),
    }
    values.update(overrides)
    return RecurringTaskDefinition(**values)  # type: ignore[arg-type]


def test_monthly_task_occurs_once_per_month_within_its_window() -> None:
    calculator = RecurrenceCalculator()
    task = _task(day_of_month=15, end_date=date(2024, 6, 30))

    assert calculator.occurrences_in_month(task, 12, 2023) == 0
    for month in range(1, 7):
        assert calculator.occurrences_in_month(task, month, 2024) == 1
    assert calculator.occurrences_in_month(task, 7, 2024) == 0


def test_monthly_task_respects_end_date_inside_month() -> None:
    calculator = RecurrenceCalculator()
    task = _task(day_of_month=15, end_date=date(2024, 3, 10))

    assert calculator.occurrences_in_month(task, 2, 2024) == 1
    assert calculator.occurrences_in_month(task, 3, 2024) == 0


def test_monthly_day_is_clamped_to_short_months() -> None:
    calculator = RecurrenceCalculator()
    task = _task(due_date=date(2024, 1, 31), day_of_month=31)

    assert calculator.occurrence_dates(task, 2, 2024) == [date(2024, 2, 29)]
    assert calculator.occurrence_dates(task, 4, 2024) == [date(2024, 4, 30)]


def test_calendar_tasks_are_not_due_before_their_anchor() -> None:
    calculator = RecurrenceCalculator()
    monthly = _task(due_date=date(2024, 1, 20), day_of_month=15)
    quarterly = _task(recurrence_type=RecurrenceType.QUARTERLY, due_date=date(2024, 3, 20), day_of_month=5)

    assert calculator.occurrence_dates(monthly, 1, 2024) == []
    assert calculator.occurrences_in_month(monthly, 2, 2024) == 1
    assert calculator.next_due_date(monthly, date(2024, 1, 1)) == date(2024, 2, 15)
    assert calculator.occurrences_in_month(quarterly, 3, 2024) == 0
    assert calculator.occurrence_dates(quarterly, 6, 2024) == [date(2024, 6, 5)]


@pytest.mark.parametrize(
    ("interval", "due_months"),
    [
        (1, {(2024, 3), (2024, 6), (2024, 9), (2024, 12), (2025, 3)}),
        (2, {(2024, 3), (2024, 9), (2025, 3)}),
    ],
)
def test_quarterly_task_follows_interval_from_anchor(interval: int, due_months: set[tuple[int, int]]) -> None:
    calculator = RecurrenceCalculator()
    task = _task(recurrence_type=RecurrenceType.QUARTERLY, due_date=date(2024, 3, 15), recurrence_interval=interval)

    for year, month in [(2024, m) for m in range(1, 13)] + [(2025, m) for m in range(1, 4)]:
        expected = 1 if (year, month) in due_months else 0
        assert calculator.occurrences_in_month(task, month, year) == expected, (year, month)


def test_annual_task_uses_due_date_month_and_warns_on_mismatch(caplog: pytest.LogCaptureFixture) -> None:
    calculator = RecurrenceCalculator()
    task = _task(recurrence_type=RecurrenceType.ANNUALLY, due_date=date(2024, 4, 30), month_of_year=6)

    with caplog.at_level(logging.WARNING, logger="demand_matrix.services.recurrence"):
        assert calculator.occurrences_in_month(task, 4, 2024) == 1
    assert calculator.occurrences_in_month(task, 6, 2024) == 0
    assert calculator.occurrences_in_month(task, 4, 2025) == 1
    assert any("month_of_year" in record.getMessage() for record in caplog.records)


def test_weekly_task_counts_matching_weekdays() -> None:
    calculator = RecurrenceCalculator()
    # 2024-01-01 is a Monday; weekdays use 0=Sunday.
    mondays = _task(recurrence_type=RecurrenceType.WEEKLY, due_date=date(2024, 1, 1), weekdays=(1,))
    mondays_and_wednesdays = _task(recurrence_type=RecurrenceType.WEEKLY, due_date=date(2024, 1, 1), weekdays=(1, 3))
    default_weekday = _task(recurrence_type=RecurrenceType.WEEKLY, due_date=date(2024, 1, 1))

    assert calculator.occurrences_in_month(mondays, 1, 2024) == 5
    assert calculator.occurrences_in_month(mondays_and_wednesdays, 1, 2024) == 10
    assert calculator.occurrences_in_month(default_weekday, 1, 2024) == 5


def test_biweekly_task_skips_alternate_weeks() -> None:
    calculator = RecurrenceCalculator()
    task = _task(recurrence_type=RecurrenceType.WEEKLY, due_date=date(2024, 1, 1), weekdays=(1,), recurrence_interval=2)

    assert calculator.occurrence_dates(task, 1, 2024) == [date(2024, 1, 1), date(2024, 1, 15), date(2024, 1, 29)]


def test_daily_task_counts_days_from_anchor() -> None:
    calculator = RecurrenceCalculator()
    every_day = _task(recurrence_type=RecurrenceType.DAILY, due_date=date(2024, 2, 10))
    weekly_cadence = _task(recurrence_type=RecurrenceType.DAILY, due_date=date(2024, 2, 10), recurrence_interval=7)
    ending = _task(recurrence_type=RecurrenceType.DAILY, due_date=date(2024, 2, 10), end_date=date(2024, 2, 20))

    assert calculator.occurrences_in_month(every_day, 2, 2024) == 20
    assert calculator.occurrences_in_month(every_day, 3, 2024) == 31
    assert calculator.occurrences_in_month(weekly_cadence, 2, 2024) == 3
    assert calculator.occurrences_in_month(ending, 2, 2024) == 11
    assert calculator.occurrences_in_month(ending, 3, 2024) == 0


def test_hours_in_month_multiplies_occurrences() -> None:
    calculator = RecurrenceCalculator()
    task = _task(recurrence_type=RecurrenceType.WEEKLY, due_date=date(2024, 1, 1), weekdays=(1,), estimated_hours=1.5)

    assert calculator.hours_in_month(task, 1, 2024) == pytest.approx(7.5)
    demand = calculator.monthly_demand(task, ForecastPeriod.from_month_start(date(2024, 1, 1)))
    assert demand.occurrences == 5
    assert demand.hours == pytest.approx(7.5)


@pytest.mark.parametrize(
    "overrides",
    [
        {"is_active": False},
        {"due_date": None},
        {"recurrence_type": None},
        {"recurrence_interval": 0},
    ],
)
def test_unusable_tasks_yield_zero_without_raising(overrides: dict[str, object]) -> None:
    calculator = RecurrenceCalculator()
    task = _task(**overrides)

    assert calculator.occurrences_in_month(task, 2, 2024) == 0
    assert calculator.hours_in_month(task, 2, 2024) == 0.0


def test_next_due_date() -> None:
    calculator = RecurrenceCalculator()
    task = _task(day_of_month=15)
    ended = _task(day_of_month=15, end_date=date(2024, 1, 31))

    assert calculator.next_due_date(task, date(2024, 1, 20)) == date(2024, 2, 15)
    assert calculator.next_due_date(task, date(2023, 6, 1)) == date(2024, 1, 15)
    assert calculator.next_due_date(ended, date(2024, 1, 20)) is None
