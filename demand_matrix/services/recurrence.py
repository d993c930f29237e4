"""Recurrence-to-calendar math for recurring task definitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta

from demand_matrix.models.demand import ForecastPeriod, RecurrenceType, RecurringTaskDefinition
from demand_matrix.services.periods import add_months, month_distance, month_end, parse_date

logger = logging.getLogger(__name__)

MONTH_STEP = {
    RecurrenceType.MONTHLY: 1,
    RecurrenceType.QUARTERLY: 3,
    RecurrenceType.ANNUALLY: 12,
}


def sunday_weekday(value: date) -> int:
    """Weekday index with 0=Sunday ... 6=Saturday, the convention stored on tasks."""

    return value.isoweekday() % 7


def week_start(value: date) -> date:
    return value - timedelta(days=sunday_weekday(value))


@dataclass(slots=True)
class MonthlyDemand:
    task_id: str
    occurrences: int
    hours: float


class RecurrenceCalculator:
    """Counts task occurrences per calendar month.

    Every public method is total: malformed tasks yield zero occurrences and a
    log record instead of an exception, so one bad record cannot abort a matrix.
    Occurrences are never counted before the task's anchor ``due_date`` nor
    after its ``end_date``.
    """

    def occurrence_dates(self, task: RecurringTaskDefinition, target_month: int, target_year: int) -> list[date]:
        try:
            return self._occurrence_dates(task, target_month, target_year)
        except Exception:
            logger.exception(
                "Recurrence calculation failed for task %s in %04d-%02d", task.id, target_year, target_month
            )
            return []

    def occurrences_in_month(self, task: RecurringTaskDefinition, target_month: int, target_year: int) -> int:
        return len(self.occurrence_dates(task, target_month, target_year))

    def hours_in_month(self, task: RecurringTaskDefinition, target_month: int, target_year: int) -> float:
        occurrences = self.occurrences_in_month(task, target_month, target_year)
        if occurrences == 0:
            return 0.0
        return occurrences * float(task.estimated_hours or 0)

    def monthly_demand(self, task: RecurringTaskDefinition, period: ForecastPeriod) -> MonthlyDemand:
        occurrences = self.occurrences_in_month(task, period.month, period.year)
        hours = occurrences * float(task.estimated_hours or 0) if occurrences else 0.0
        return MonthlyDemand(task_id=task.id, occurrences=occurrences, hours=max(0.0, hours))

    def next_due_date(self, task: RecurringTaskDefinition, after: date) -> date | None:
        """First occurrence strictly after ``after``, or ``None`` when the series has ended."""

        anchor = parse_date(task.due_date)
        if anchor is None or task.recurrence_type is None or not task.is_active:
            return None
        if after < anchor:
            after = anchor - timedelta(days=1)
        end_date = parse_date(task.end_date)
        interval = task.recurrence_interval if isinstance(task.recurrence_interval, int) else 1
        # A full recurrence cycle always contains an occurrence.
        horizon = 12 * max(interval, 1) + 1
        current = date(after.year, after.month, 1)
        for _ in range(horizon + 1):
            for occurrence in self.occurrence_dates(task, current.month, current.year):
                if occurrence > after:
                    return occurrence
            if end_date is not None and current > end_date:
                return None
            current = add_months(current, 1)
        return None

    def _occurrence_dates(self, task: RecurringTaskDefinition, target_month: int, target_year: int) -> list[date]:
        if not task.is_active:
            return []

        anchor = parse_date(task.due_date)
        if anchor is None:
            logger.debug("Task %s has no usable due_date (%r); excluded", task.id, task.due_date)
            return []

        recurrence_type = task.recurrence_type
        if recurrence_type is None:
            logger.debug("Task %s has no recognised recurrence type; excluded", task.id)
            return []

        interval = task.recurrence_interval
        if not isinstance(interval, int) or isinstance(interval, bool) or interval < 1:
            logger.debug("Task %s has invalid recurrence interval %r; excluded", task.id, interval)
            return []

        first = date(target_year, target_month, 1)
        last = month_end(first)
        end_date = parse_date(task.end_date)
        if end_date is not None and end_date < first:
            return []

        if recurrence_type in (RecurrenceType.DAILY, RecurrenceType.WEEKLY):
            window_start = max(first, anchor)
            window_end = min(last, end_date) if end_date is not None else last
            if window_start > window_end:
                return []
            days = [window_start + timedelta(days=offset) for offset in range((window_end - window_start).days + 1)]
            if recurrence_type is RecurrenceType.DAILY:
                return [day for day in days if (day - anchor).days % interval == 0]
            return self._weekly_dates(task, anchor, days, interval)

        step = MONTH_STEP[recurrence_type] * interval
        distance = month_distance(anchor, first)
        if distance < 0 or distance % step != 0:
            return []

        if recurrence_type is RecurrenceType.ANNUALLY and task.month_of_year not in (None, anchor.month):
            logger.warning(
                "Task %s month_of_year=%s disagrees with due_date %s; using the due_date month",
                task.id,
                task.month_of_year,
                anchor.isoformat(),
            )

        day = min(task.day_of_month or anchor.day, last.day)
        occurrence = date(target_year, target_month, day)
        if occurrence < anchor:
            return []
        if end_date is not None and occurrence > end_date:
            return []
        return [occurrence]

    @staticmethod
    def _weekly_dates(
        task: RecurringTaskDefinition,
        anchor: date,
        days: list[date],
        interval: int,
    ) -> list[date]:
        weekdays = {value for value in task.weekdays if isinstance(value, int) and 0 <= value <= 6}
        if not weekdays:
            weekdays = {sunday_weekday(anchor)}
        anchor_week = week_start(anchor)
        return [
            day
            for day in days
            if sunday_weekday(day) in weekdays and ((week_start(day) - anchor_week).days // 7) % interval == 0
        ]
