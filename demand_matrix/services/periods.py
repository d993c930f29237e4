"""Calendar month helpers and forecast horizon construction."""

from __future__ import annotations

import calendar
from datetime import date, datetime

from demand_matrix.models.demand import ForecastPeriod


def normalize_month_start(value: date) -> date:
    return date(value.year, value.month, 1)


def add_months(value: date, months: int) -> date:
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def month_end(value: date) -> date:
    return date(value.year, value.month, calendar.monthrange(value.year, value.month)[1])


def month_distance(start: date, end: date) -> int:
    """Whole calendar months from ``start``'s month to ``end``'s month (may be negative)."""

    return (end.year - start.year) * 12 + (end.month - start.month)


def month_sequence(start_month: date, end_month: date) -> list[date]:
    current = date(start_month.year, start_month.month, 1)
    end = date(end_month.year, end_month.month, 1)
    months: list[date] = []
    while current <= end:
        months.append(current)
        if current.month == 12:
            current = date(current.year + 1, 1, 1)
        else:
            current = date(current.year, current.month + 1, 1)
    return months


def build_forecast_periods(start: date, horizon_months: int) -> list[ForecastPeriod]:
    if horizon_months < 1:
        raise ValueError("horizon_months must be at least 1.")
    first = normalize_month_start(start)
    last = add_months(first, horizon_months - 1)
    return [ForecastPeriod.from_month_start(month) for month in month_sequence(first, last)]


def parse_period_key(value: str) -> date:
    """Parse a ``YYYY-MM`` key into the first day of that month."""

    return datetime.strptime(value, "%Y-%m").date()


def parse_date(value: object) -> date | None:
    """Best-effort ISO date parsing; ``None`` when the value is missing or malformed."""

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    return None
