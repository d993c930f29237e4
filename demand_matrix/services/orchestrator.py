"""End-to-end demand matrix generation with caching and a safe fallback."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import date
from decimal import Decimal
from functools import lru_cache
from typing import Any

from demand_matrix.core.config import Settings, get_settings
from demand_matrix.db.session import get_session_factory
from demand_matrix.models.demand import (
    AggregationStrategy,
    DemandFilters,
    DemandMatrixMode,
    DemandMatrixResult,
    ForecastPeriod,
    GenerationDiagnostics,
    RecurringTaskDefinition,
)
from demand_matrix.repositories.forecast_repository import ForecastRepository
from demand_matrix.services.aggregation import (
    AggregationStrategySelector,
    SkillBasedAggregator,
    StaffBasedAggregator,
)
from demand_matrix.services.demand_calculation import ClientDirectory, DemandCalculator, TaskBreakdownBuilder
from demand_matrix.services.matrix_assembly import MatrixAssembler
from demand_matrix.services.matrix_cache import MatrixCache, get_cache_key, get_matrix_cache
from demand_matrix.services.periods import build_forecast_periods, normalize_month_start
from demand_matrix.services.recurrence import RecurrenceCalculator
from demand_matrix.services.revenue import FeeRateTable, RevenueCalculator
from demand_matrix.services.skill_resolution import SkillResolver, get_skill_resolver
from demand_matrix.services.stores import DemandDataSources, RawTaskRecord
from demand_matrix.services.task_validation import TaskValidator

logger = logging.getLogger(__name__)


class DemandMatrixOrchestrator:
    """Generates demand matrices from the configured data sources.

    ``generate`` never raises: any failure past input parsing yields an empty
    skill-based matrix and a diagnostics record carrying the error. Results
    produced with the configured defaults are cached per mode, start month,
    strategy and staff filter.
    """

    def __init__(
        self,
        sources: DemandDataSources,
        *,
        skill_resolver: SkillResolver | None = None,
        cache: MatrixCache | None = None,
        settings: Settings | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.sources = sources
        self.settings = settings or get_settings()
        self.skill_resolver = skill_resolver or SkillResolver(sources.skills)
        self.cache = cache or MatrixCache(
            ttl_seconds=self.settings.matrix_cache_ttl_seconds,
            max_entries=self.settings.matrix_cache_max_entries,
        )
        self.assembler = MatrixAssembler()
        self._today = today

    def cache_key(
        self,
        mode: DemandMatrixMode = DemandMatrixMode.DEMAND_ONLY,
        active_filters: DemandFilters | None = None,
        start_date: date | None = None,
    ) -> str:
        start = normalize_month_start(start_date or self._today())
        strategy = AggregationStrategySelector.select(active_filters)
        staff_ids: Sequence[str] = ()
        if strategy is AggregationStrategy.STAFF_BASED and active_filters is not None:
            staff_ids = active_filters.staff_ids
        return get_cache_key(mode, start, strategy, staff_ids)

    def clear_cache(self, strategy: AggregationStrategy | None = None) -> int:
        return self.cache.clear(strategy)

    async def generate(
        self,
        mode: DemandMatrixMode = DemandMatrixMode.DEMAND_ONLY,
        active_filters: DemandFilters | None = None,
        start_date: date | None = None,
        *,
        include_unassigned: bool | None = None,
        permissive: bool | None = None,
    ) -> DemandMatrixResult:
        start = normalize_month_start(start_date or self._today())
        if include_unassigned is None and active_filters is not None:
            include_unassigned = active_filters.include_unassigned
        if include_unassigned is None:
            include_unassigned = self.settings.include_unassigned_tasks
        if permissive is None:
            permissive = self.settings.validation_permissive
        # Only default-option results are shared through the cache.
        use_cache = (
            include_unassigned == self.settings.include_unassigned_tasks
            and permissive == self.settings.validation_permissive
            and not (active_filters is not None and (active_filters.skills or active_filters.clients))
        )

        diagnostics = GenerationDiagnostics()
        periods: list[ForecastPeriod] = []
        try:
            periods = build_forecast_periods(start, self.settings.forecast_horizon_months)
            mode = DemandMatrixMode(mode)
            key = self.cache_key(mode, active_filters, start)
            if use_cache:
                cached = self.cache.get(key)
                if cached is not None:
                    logger.info("Demand matrix cache hit for %s", key)
                    return DemandMatrixResult(
                        matrix_data=cached.matrix_data,
                        diagnostics=replace(cached.diagnostics, cache_hit=True),
                    )

            result = await self._build(
                periods,
                active_filters,
                diagnostics,
                include_unassigned=include_unassigned,
                permissive=permissive,
            )
            if use_cache:
                self.cache.set(key, result, result.matrix_data.aggregation_strategy)
            return result
        except Exception as exc:
            logger.exception("Demand matrix generation failed; returning empty matrix")
            diagnostics.used_fallback = True
            diagnostics.error = str(exc) or exc.__class__.__name__
            return DemandMatrixResult(
                matrix_data=self.assembler.empty(periods, AggregationStrategy.SKILL_BASED),
                diagnostics=diagnostics,
            )

    async def _build(
        self,
        periods: list[ForecastPeriod],
        filters: DemandFilters | None,
        diagnostics: GenerationDiagnostics,
        *,
        include_unassigned: bool,
        permissive: bool,
    ) -> DemandMatrixResult:
        raw_tasks, _, fee_rates, revenue_rows = await asyncio.gather(
            self.sources.tasks.load_active_recurring_tasks(),
            self.skill_resolver.initialize(),
            self._load_fee_rates(diagnostics),
            self._load_client_revenue(diagnostics),
        )
        logger.info("Loaded %d recurring tasks for %d forecast months", len(raw_tasks), len(periods))

        tasks = await self._validated_tasks(raw_tasks, diagnostics, permissive=permissive)
        tasks = self._apply_filters(tasks, filters)

        clients = await ClientDirectory.load(self.sources.clients, tasks)
        tasks = self._drop_unresolved_clients(tasks, clients, diagnostics)

        skill_mapping = self.skill_resolver.mapping_for({skill for task in tasks for skill in task.required_skills})
        skills = sorted({skill_mapping.get(skill, skill) for task in tasks for skill in task.required_skills})
        if filters is not None and filters.skills:
            wanted = {skill.strip().lower() for skill in filters.skills}
            skills = [skill for skill in skills if skill.lower() in wanted]

        recurrence = RecurrenceCalculator()
        breakdown_builder = TaskBreakdownBuilder(recurrence, clients, diagnostics)
        selector = AggregationStrategySelector(
            SkillBasedAggregator(DemandCalculator(recurrence, diagnostics), breakdown_builder),
            StaffBasedAggregator(breakdown_builder, diagnostics),
        )
        strategy = selector.select(filters)
        data_points = selector.aggregate(
            strategy,
            periods,
            tasks,
            skills,
            skill_mapping,
            filters=filters,
            include_unassigned=include_unassigned,
        )

        revenue = RevenueCalculator()
        fee_table = FeeRateTable(fee_rates, self.settings.fallback_fee_rate, diagnostics)
        context = revenue.build_context(data_points, fee_table, revenue.expected_revenue_map(revenue_rows))
        revenue.enrich(data_points, context)
        priced_skills = sorted({point.revenue_skill for point in data_points} | set(skills))
        rollups = revenue.rollups(data_points, context, len(periods), priced_skills)

        matrix = self.assembler.assemble(
            periods,
            data_points,
            strategy=strategy,
            skills=skills if strategy is AggregationStrategy.SKILL_BASED else (),
            rollups=rollups,
        )
        return DemandMatrixResult(matrix_data=matrix, diagnostics=diagnostics)

    async def _validated_tasks(
        self,
        raw_tasks: Sequence[RawTaskRecord],
        diagnostics: GenerationDiagnostics,
        *,
        permissive: bool,
    ) -> list[RecurringTaskDefinition]:
        validation = await TaskValidator(self.skill_resolver).validate(raw_tasks, permissive=permissive)
        for invalid in validation.invalid_tasks:
            diagnostics.invalid_tasks.append(
                {"task_id": invalid.task_id, "errors": list(invalid.errors)}
            )
        diagnostics.unresolved_skills.update(validation.unresolved_skills)
        if validation.invalid_tasks:
            logger.warning(
                "%d of %d recurring tasks failed validation (permissive=%s)",
                len(validation.invalid_tasks),
                len(raw_tasks),
                permissive,
            )
        return validation.valid_tasks

    @staticmethod
    def _apply_filters(
        tasks: list[RecurringTaskDefinition],
        filters: DemandFilters | None,
    ) -> list[RecurringTaskDefinition]:
        if filters is None:
            return tasks
        if filters.clients:
            wanted_clients = {str(client) for client in filters.clients}
            tasks = [task for task in tasks if task.client_id in wanted_clients or task.client_name in wanted_clients]
        if filters.skills:
            wanted_skills = {skill.strip().lower() for skill in filters.skills}
            tasks = [
                task for task in tasks if any(skill.lower() in wanted_skills for skill in task.required_skills)
            ]
        return tasks

    @staticmethod
    def _drop_unresolved_clients(
        tasks: list[RecurringTaskDefinition],
        clients: ClientDirectory,
        diagnostics: GenerationDiagnostics,
    ) -> list[RecurringTaskDefinition]:
        kept: list[RecurringTaskDefinition] = []
        for task in tasks:
            if task.client_id in clients:
                kept.append(task)
                continue
            if task.client_id not in diagnostics.unresolved_clients:
                diagnostics.unresolved_clients.append(task.client_id)
            diagnostics.skip_task(task.id, f"Unresolved client {task.client_id}")
        if len(kept) != len(tasks):
            logger.warning("Dropped %d tasks with unresolved clients", len(tasks) - len(kept))
        return kept

    async def _load_fee_rates(self, diagnostics: GenerationDiagnostics) -> dict[str, Decimal]:
        try:
            return await self.sources.fee_rates.get_skill_fee_rates()
        except Exception as exc:
            logger.warning("Fee rate lookup failed; using fallback rate %s", self.settings.fallback_fee_rate, exc_info=True)
            diagnostics.warnings.append(f"Fee rates unavailable: {exc}")
            return {}

    async def _load_client_revenue(self, diagnostics: GenerationDiagnostics) -> list[dict[str, Any]]:
        try:
            return await self.sources.client_revenue.fetch_clients_with_expected_revenue()
        except Exception as exc:
            logger.warning("Client revenue lookup failed; expected revenue will be zero", exc_info=True)
            diagnostics.warnings.append(f"Client revenue unavailable: {exc}")
            return []


@lru_cache
def get_demand_matrix_orchestrator() -> DemandMatrixOrchestrator:
    """Process-wide orchestrator over the database-backed stores."""

    repository = ForecastRepository(get_session_factory())
    resolver = get_skill_resolver()
    resolver.bind_loader(repository)
    return DemandMatrixOrchestrator(
        DemandDataSources.from_store(repository),
        skill_resolver=resolver,
        cache=get_matrix_cache(),
        settings=get_settings(),
    )


async def generate_demand_matrix(
    mode: DemandMatrixMode = DemandMatrixMode.DEMAND_ONLY,
    active_filters: DemandFilters | None = None,
    start_date: date | None = None,
) -> DemandMatrixResult:
    return await get_demand_matrix_orchestrator().generate(mode, active_filters, start_date)


def clear_cache(strategy: AggregationStrategy | None = None) -> int:
    return get_matrix_cache().clear(strategy)


__all__ = [
    "DemandMatrixOrchestrator",
    "clear_cache",
    "generate_demand_matrix",
    "get_cache_key",
    "get_demand_matrix_orchestrator",
]
