"""Liveness and readiness endpoints."""

from fastapi import APIRouter, Depends

from demand_matrix.services.orchestrator import DemandMatrixOrchestrator, get_demand_matrix_orchestrator

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str]:
    """Simple liveness endpoint."""

    return {"status": "ok"}


@router.get("/health/ready")
def readiness(
    orchestrator: DemandMatrixOrchestrator = Depends(get_demand_matrix_orchestrator),
) -> dict[str, object]:
    """Report whether the forecasting engine has warmed its caches."""

    return {
        "status": "ready",
        "skill_catalogue_loaded": orchestrator.skill_resolver.initialized,
        "cached_matrices": orchestrator.cache.stats()["size"],
        "forecast_horizon_months": orchestrator.settings.forecast_horizon_months,
    }
