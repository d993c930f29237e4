"""Value types flowing through the demand forecasting engine."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

ZERO = Decimal("0.00")

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class RecurrenceType(str, enum.Enum):
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    ANNUALLY = "Annually"

    @classmethod
    def parse(cls, value: object) -> RecurrenceType | None:
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        if normalized == "annual":
            normalized = "annually"
        for member in cls:
            if member.value.lower() == normalized:
                return member
        return None


class AggregationStrategy(str, enum.Enum):
    SKILL_BASED = "skill-based"
    STAFF_BASED = "staff-based"


class DemandMatrixMode(str, enum.Enum):
    DEMAND_ONLY = "demand-only"


class SkillReferenceKind(str, enum.Enum):
    UUID = "uuid"
    NAME = "name"


@dataclass(frozen=True, slots=True)
class SkillReference:
    """A skill as stored on a task: either a skill record id or its display name."""

    kind: SkillReferenceKind
    value: str

    @classmethod
    def parse(cls, raw: str) -> SkillReference:
        value = raw.strip()
        if UUID_PATTERN.match(value):
            return cls(kind=SkillReferenceKind.UUID, value=value)
        return cls(kind=SkillReferenceKind.NAME, value=value)

    @property
    def is_uuid(self) -> bool:
        return self.kind is SkillReferenceKind.UUID


@dataclass(slots=True)
class RecurringTaskDefinition:
    id: str
    client_id: str
    name: str
    estimated_hours: float
    recurrence_type: RecurrenceType | None
    due_date: date | None
    required_skills: tuple[str, ...] = ()
    skill_references: tuple[SkillReference, ...] = ()
    template_id: str | None = None
    priority: str | None = None
    category: str | None = None
    recurrence_interval: int = 1
    weekdays: tuple[int, ...] = ()
    day_of_month: int | None = None
    month_of_year: int | None = None
    end_date: date | None = None
    is_active: bool = True
    preferred_staff_id: str | None = None
    preferred_staff_name: str | None = None
    client_name: str | None = None

    @property
    def primary_skill(self) -> str | None:
        return self.required_skills[0] if self.required_skills else None


@dataclass(frozen=True, slots=True)
class ForecastPeriod:
    period: str
    year: int
    month: int
    label: str

    @property
    def month_start(self) -> date:
        return date(self.year, self.month, 1)

    @classmethod
    def from_month_start(cls, value: date) -> ForecastPeriod:
        return cls(
            period=f"{value.year:04d}-{value.month:02d}",
            year=value.year,
            month=value.month,
            label=value.strftime("%b %Y"),
        )


@dataclass(slots=True)
class RecurrencePattern:
    type: str
    interval: int
    frequency: int


@dataclass(slots=True)
class ClientTaskDemand:
    client_id: str
    client_name: str
    recurring_task_id: str
    task_name: str
    skill_type: str
    estimated_hours: float
    recurrence_pattern: RecurrencePattern
    monthly_hours: float
    preferred_staff_id: str | None
    preferred_staff_name: str | None
    suggested_revenue: Decimal | None = None
    expected_revenue: Decimal | None = None
    expected_less_suggested: Decimal | None = None


@dataclass(slots=True)
class DemandDataPoint:
    skill_type: str
    month: str
    month_label: str
    demand_hours: float
    task_count: int
    client_count: int
    task_breakdown: list[ClientTaskDemand] = field(default_factory=list)
    suggested_revenue: Decimal | None = None
    expected_revenue: Decimal | None = None
    expected_less_suggested: Decimal | None = None
    is_staff_specific: bool = False
    actual_staff_id: str | None = None
    actual_staff_name: str | None = None
    underlying_skill_type: str | None = None
    is_unassigned: bool = False

    @property
    def revenue_skill(self) -> str:
        """Skill whose fee rate prices this cell."""

        return self.underlying_skill_type or self.skill_type


@dataclass(slots=True)
class SkillSummary:
    total_hours: float = 0.0
    total_tasks: int = 0
    total_clients: int = 0
    total_suggested_revenue: Decimal = ZERO
    total_expected_revenue: Decimal = ZERO
    total_expected_less_suggested: Decimal = ZERO
    average_fee_rate: Decimal = ZERO


@dataclass(slots=True)
class StaffSummary:
    staff_id: str
    staff_name: str
    total_hours: float = 0.0
    total_tasks: int = 0
    skill_breakdown: dict[str, float] = field(default_factory=dict)
    client_breakdown: dict[str, float] = field(default_factory=dict)
    is_unassigned: bool = False


@dataclass(slots=True)
class RevenueTotals:
    total_suggested_revenue: Decimal = ZERO
    total_expected_revenue: Decimal = ZERO
    total_expected_less_suggested: Decimal = ZERO


@dataclass(slots=True)
class DemandMatrixData:
    months: list[ForecastPeriod]
    skills: list[str]
    data_points: list[DemandDataPoint]
    total_demand: float
    total_tasks: int
    total_clients: int
    skill_summary: dict[str, SkillSummary]
    aggregation_strategy: AggregationStrategy = AggregationStrategy.SKILL_BASED
    staff_summary: dict[str, StaffSummary] = field(default_factory=dict)
    client_totals: dict[str, float] = field(default_factory=dict)
    client_revenue: dict[str, Decimal] = field(default_factory=dict)
    client_hourly_rates: dict[str, Decimal] = field(default_factory=dict)
    client_suggested_revenue: dict[str, Decimal] = field(default_factory=dict)
    client_expected_less_suggested: dict[str, Decimal] = field(default_factory=dict)
    revenue_totals: RevenueTotals = field(default_factory=RevenueTotals)
    skill_fee_rates: dict[str, Decimal] = field(default_factory=dict)


@dataclass(slots=True)
class DemandFilters:
    """Filters the caller has active on the matrix view."""

    preferred_staff: list[str | None] = field(default_factory=list)
    skills: list[str] = field(default_factory=list)
    clients: list[str] = field(default_factory=list)
    include_unassigned: bool | None = None

    @property
    def staff_ids(self) -> list[str]:
        values = (str(value).strip() for value in self.preferred_staff if value is not None)
        return sorted({value for value in values if value})


@dataclass(slots=True)
class GenerationDiagnostics:
    invalid_tasks: list[dict[str, object]] = field(default_factory=list)
    unresolved_skills: dict[str, list[str]] = field(default_factory=dict)
    unresolved_clients: list[str] = field(default_factory=list)
    skipped_tasks: list[dict[str, str]] = field(default_factory=list)
    fallback_fee_rates: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    cache_hit: bool = False
    used_fallback: bool = False
    error: str | None = None

    def skip_task(self, task_id: str, reason: str) -> None:
        entry = {"task_id": task_id, "reason": reason}
        if entry not in self.skipped_tasks:
            self.skipped_tasks.append(entry)


@dataclass(slots=True)
class DemandMatrixResult:
    matrix_data: DemandMatrixData
    diagnostics: GenerationDiagnostics
