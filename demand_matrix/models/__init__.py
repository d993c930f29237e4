"""ORM and engine model package."""

from demand_matrix.models.demand import (
    AggregationStrategy,
    ClientTaskDemand,
    DemandDataPoint,
    DemandFilters,
    DemandMatrixData,
    DemandMatrixMode,
    DemandMatrixResult,
    ForecastPeriod,
    GenerationDiagnostics,
    RecurrencePattern,
    RecurrenceType,
    RecurringTaskDefinition,
    RevenueTotals,
    SkillReference,
    SkillReferenceKind,
    SkillSummary,
    StaffSummary,
)
from demand_matrix.models.entities import Client, RecurringTask, Skill, Staff

__all__ = [
    "AggregationStrategy",
    "Client",
    "ClientTaskDemand",
    "DemandDataPoint",
    "DemandFilters",
    "DemandMatrixData",
    "DemandMatrixMode",
    "DemandMatrixResult",
    "ForecastPeriod",
    "GenerationDiagnostics",
    "RecurrencePattern",
    "RecurrenceType",
    "RecurringTask",
    "RecurringTaskDefinition",
    "RevenueTotals",
    "Skill",
    "SkillReference",
    "SkillReferenceKind",
    "SkillSummary",
    "Staff",
    "StaffSummary",
]
