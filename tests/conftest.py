from __future__ import annotations

from collections.abc import Callable, Generator
from decimal import Decimal
from typing import Any

import pytest
from fastapi.testclient import TestClient

from demand_matrix.core.config import Settings
from demand_matrix.main import create_app
from demand_matrix.services.matrix_cache import MatrixCache
from demand_matrix.services.orchestrator import DemandMatrixOrchestrator, get_demand_matrix_orchestrator
from demand_matrix.services.skill_resolution import SkillResolver
from demand_matrix.services.stores import DemandDataSources
from tests.fakes import AUDIT_SKILL_ID, START_MONTH, FakeForecastStore, build_task


@pytest.fixture()
def make_task() -> Callable[..., dict[str, Any]]:
    return build_task


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        forecast_horizon_months=12,
        fallback_fee_rate=Decimal("75.00"),
        matrix_cache_ttl_seconds=300,
        matrix_cache_max_entries=10,
        include_unassigned_tasks=True,
        validation_permissive=False,
    )


@pytest.fixture()
def store() -> FakeForecastStore:
    return FakeForecastStore(
        [
            build_task(),
            build_task(
                id="task-2",
                client_id="client-b",
                name="Quarterly audit review",
                estimated_hours=8,
                required_skills=[AUDIT_SKILL_ID],
                recurrence_type="Quarterly",
                day_of_month=None,
                due_date="2024-03-15",
                preferred_staff_id="staff-1",
                preferred_staff_name="Dana Whitfield",
            ),
            build_task(
                id="task-3",
                client_id="client-b",
                name="Advisory check-in",
                estimated_hours=2,
                required_skills=["Advisory", "Tax Preparation"],
                recurrence_type="Monthly",
                day_of_month=1,
                due_date="2024-02-01",
                end_date="2024-06-30",
            ),
        ],
        fee_rates={"Tax Preparation": Decimal("120.00"), "Audit": Decimal("150.00")},
        client_revenue=[
            {"id": "client-a", "expected_monthly_revenue": Decimal("1500.00")},
            {"id": "client-b", "expected_monthly_revenue": Decimal("2000.00")},
        ],
    )


@pytest.fixture()
def make_orchestrator(settings: Settings) -> Callable[[FakeForecastStore], DemandMatrixOrchestrator]:
    def factory(fake_store: FakeForecastStore) -> DemandMatrixOrchestrator:
        return DemandMatrixOrchestrator(
            DemandDataSources.from_store(fake_store),
            skill_resolver=SkillResolver(fake_store),
            cache=MatrixCache(
                ttl_seconds=settings.matrix_cache_ttl_seconds,
                max_entries=settings.matrix_cache_max_entries,
            ),
            settings=settings,
            today=lambda: START_MONTH,
        )

    return factory


@pytest.fixture()
def orchestrator(
    store: FakeForecastStore,
    make_orchestrator: Callable[[FakeForecastStore], DemandMatrixOrchestrator],
) -> DemandMatrixOrchestrator:
    return make_orchestrator(store)


@pytest.fixture()
def client(orchestrator: DemandMatrixOrchestrator) -> Generator[TestClient, None, None]:
    app = create_app()
    app.dependency_overrides[get_demand_matrix_orchestrator] = lambda: orchestrator
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
