"""Suggested/expected revenue overlays for demand matrix cells and client rollups."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from demand_matrix.models.demand import (
    ZERO,
    ClientTaskDemand,
    DemandDataPoint,
    GenerationDiagnostics,
    RevenueTotals,
)

logger = logging.getLogger(__name__)

Q2 = Decimal("0.01")


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2)


def _safe_div(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator == ZERO:
        return ZERO
    return (numerator / denominator).quantize(Q2)


def to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def hours_decimal(hours: float) -> Decimal:
    return Decimal(str(hours))


class FeeRateTable:
    """Skill fee rates with the single configured fallback rate.

    Lookups are case-insensitive on the skill display name. The first fallback
    use for a skill is logged and recorded on the diagnostics; later lookups
    for the same skill stay quiet.
    """

    def __init__(
        self,
        rates: Mapping[str, Any] | None,
        fallback_rate: Decimal,
        diagnostics: GenerationDiagnostics | None = None,
    ) -> None:
        self.fallback_rate = _q2(fallback_rate)
        self.diagnostics = diagnostics or GenerationDiagnostics()
        self._rates: dict[str, Decimal] = {}
        for skill, raw_rate in (rates or {}).items():
            rate = to_decimal(raw_rate)
            if not skill or rate is None or rate < ZERO:
                continue
            self._rates[str(skill).strip().lower()] = _q2(rate)
        self._fallback_logged: set[str] = set()

    def __len__(self) -> int:
        return len(self._rates)

    def rate_for(self, skill: str) -> Decimal:
        rate = self._rates.get(skill.strip().lower())
        if rate is not None:
            return rate
        if skill not in self._fallback_logged:
            self._fallback_logged.add(skill)
            logger.warning("No fee rate for skill %r; using fallback %s", skill, self.fallback_rate)
            if skill not in self.diagnostics.fallback_fee_rates:
                self.diagnostics.fallback_fee_rates.append(skill)
        return self.fallback_rate

    def rates_for(self, skills: Iterable[str]) -> dict[str, Decimal]:
        return {skill: self.rate_for(skill) for skill in skills}


@dataclass(slots=True)
class DataPointRevenue:
    suggested: Decimal = ZERO
    expected: Decimal = ZERO
    expected_less_suggested: Decimal = ZERO


@dataclass(slots=True)
class RevenueContext:
    fee_rates: FeeRateTable
    expected_monthly_by_client: dict[str, Decimal] = field(default_factory=dict)
    # (client_id, YYYY-MM) -> hours across every breakdown row of that month
    client_month_hours: dict[tuple[str, str], float] = field(default_factory=dict)


@dataclass(slots=True)
class RevenueRollups:
    client_totals: dict[str, float] = field(default_factory=dict)
    client_revenue: dict[str, Decimal] = field(default_factory=dict)
    client_hourly_rates: dict[str, Decimal] = field(default_factory=dict)
    client_suggested_revenue: dict[str, Decimal] = field(default_factory=dict)
    client_expected_less_suggested: dict[str, Decimal] = field(default_factory=dict)
    revenue_totals: RevenueTotals = field(default_factory=RevenueTotals)
    skill_fee_rates: dict[str, Decimal] = field(default_factory=dict)


class RevenueCalculator:
    """Prices demand cells and builds client-level revenue rollups."""

    @staticmethod
    def expected_revenue_map(rows: Iterable[Mapping[str, Any]]) -> dict[str, Decimal]:
        result: dict[str, Decimal] = {}
        for row in rows:
            client_id = str(row.get("id") or "").strip()
            amount = to_decimal(row.get("expected_monthly_revenue"))
            if not client_id or amount is None or amount < ZERO:
                continue
            result[client_id] = amount
        return result

    def build_context(
        self,
        data_points: Sequence[DemandDataPoint],
        fee_rates: FeeRateTable,
        expected_by_client: Mapping[str, Decimal] | None = None,
    ) -> RevenueContext:
        client_month_hours: dict[tuple[str, str], float] = {}
        for point in data_points:
            for row in point.task_breakdown:
                key = (row.client_id, point.month)
                client_month_hours[key] = client_month_hours.get(key, 0.0) + row.monthly_hours
        return RevenueContext(
            fee_rates=fee_rates,
            expected_monthly_by_client=dict(expected_by_client or {}),
            client_month_hours=client_month_hours,
        )

    def row_expected_revenue(self, row: ClientTaskDemand, month: str, context: RevenueContext) -> Decimal:
        """Share of the client's monthly expected revenue carried by one breakdown row."""

        monthly = context.expected_monthly_by_client.get(row.client_id)
        if monthly is None or row.monthly_hours <= 0:
            return ZERO
        client_hours = context.client_month_hours.get((row.client_id, month), 0.0)
        if client_hours <= 0:
            return ZERO
        return _q2(monthly * hours_decimal(row.monthly_hours) / hours_decimal(client_hours))

    def data_point_revenue(
        self,
        hours: float,
        skill: str,
        context: RevenueContext,
        rows: Sequence[ClientTaskDemand] = (),
        month: str | None = None,
    ) -> DataPointRevenue:
        suggested = _q2(hours_decimal(max(hours, 0.0)) * context.fee_rates.rate_for(skill))
        expected = ZERO
        if month is not None:
            expected = _q2(sum((self.row_expected_revenue(row, month, context) for row in rows), ZERO))
        return DataPointRevenue(
            suggested=suggested,
            expected=expected,
            expected_less_suggested=_q2(expected - suggested),
        )

    def enrich(self, data_points: Sequence[DemandDataPoint], context: RevenueContext) -> None:
        """Attach revenue to every data point and its breakdown rows in place."""

        for point in data_points:
            skill = point.revenue_skill
            rate = context.fee_rates.rate_for(skill)
            for row in point.task_breakdown:
                row.suggested_revenue = _q2(hours_decimal(row.monthly_hours) * rate)
                row.expected_revenue = self.row_expected_revenue(row, point.month, context)
                row.expected_less_suggested = _q2(row.expected_revenue - row.suggested_revenue)

            revenue = self.data_point_revenue(
                point.demand_hours, skill, context, rows=point.task_breakdown, month=point.month
            )
            point.suggested_revenue = revenue.suggested
            point.expected_revenue = revenue.expected
            point.expected_less_suggested = revenue.expected_less_suggested

    def rollups(
        self,
        data_points: Sequence[DemandDataPoint],
        context: RevenueContext,
        month_count: int,
        skills: Iterable[str] = (),
    ) -> RevenueRollups:
        result = RevenueRollups()
        expected_by_name: dict[str, dict[str, Decimal]] = {}
        for point in data_points:
            for row in point.task_breakdown:
                name = row.client_name
                result.client_totals[name] = result.client_totals.get(name, 0.0) + row.monthly_hours
                suggested = row.suggested_revenue
                if suggested is None:
                    suggested = _q2(hours_decimal(row.monthly_hours) * context.fee_rates.rate_for(point.revenue_skill))
                result.client_suggested_revenue[name] = result.client_suggested_revenue.get(name, ZERO) + suggested
                monthly = context.expected_monthly_by_client.get(row.client_id)
                if monthly is not None:
                    expected_by_name.setdefault(name, {})
                    expected_by_name[name][row.client_id] = monthly

        for name, hours in result.client_totals.items():
            monthly_total = sum(expected_by_name.get(name, {}).values(), ZERO)
            revenue = _q2(monthly_total * month_count)
            result.client_revenue[name] = revenue
            if hours > 0:
                result.client_hourly_rates[name] = _safe_div(revenue, hours_decimal(hours))
            suggested = _q2(result.client_suggested_revenue.get(name, ZERO))
            result.client_suggested_revenue[name] = suggested
            result.client_expected_less_suggested[name] = _q2(revenue - suggested)

        total_suggested = _q2(sum(result.client_suggested_revenue.values(), ZERO))
        total_expected = _q2(sum(result.client_revenue.values(), ZERO))
        result.revenue_totals = RevenueTotals(
            total_suggested_revenue=total_suggested,
            total_expected_revenue=total_expected,
            total_expected_less_suggested=_q2(total_expected - total_suggested),
        )
        result.skill_fee_rates = context.fee_rates.rates_for(skills)
        logger.debug(
            "Revenue rollups for %d clients: suggested=%s expected=%s",
            len(result.client_totals),
            total_suggested,
            total_expected,
        )
        return result
