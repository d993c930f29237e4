"""Demand forecast matrix endpoints."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status

from demand_matrix.models.demand import AggregationStrategy, DemandFilters, DemandMatrixMode
from demand_matrix.services.matrix_assembly import MatrixAssembler
from demand_matrix.services.orchestrator import DemandMatrixOrchestrator, get_demand_matrix_orchestrator
from demand_matrix.services.periods import parse_period_key

router = APIRouter(prefix="/forecast", tags=["forecast"])


def _parse_mode(value: str) -> DemandMatrixMode:
    try:
        return DemandMatrixMode(value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unsupported mode: {value}.",
        ) from exc


def _parse_start_month(value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return parse_period_key(value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="start_month must use the YYYY-MM format.",
        ) from exc


def _parse_strategy(value: str | None) -> AggregationStrategy | None:
    if value is None:
        return None
    try:
        return AggregationStrategy(value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unsupported strategy: {value}.",
        ) from exc


def _filters(
    preferred_staff: list[str] | None,
    skills: list[str] | None,
    clients: list[str] | None,
    include_unassigned: bool | None,
) -> DemandFilters | None:
    if not (preferred_staff or skills or clients) and include_unassigned is None:
        return None
    return DemandFilters(
        preferred_staff=list(preferred_staff or []),
        skills=list(skills or []),
        clients=list(clients or []),
        include_unassigned=include_unassigned,
    )


@router.get("/demand-matrix")
async def get_demand_matrix(
    mode: str = Query(default=DemandMatrixMode.DEMAND_ONLY.value),
    start_month: str | None = Query(default=None),
    preferred_staff: list[str] | None = Query(default=None),
    skills: list[str] | None = Query(default=None),
    clients: list[str] | None = Query(default=None),
    include_unassigned: bool | None = Query(default=None),
    permissive: bool | None = Query(default=None),
    orchestrator: DemandMatrixOrchestrator = Depends(get_demand_matrix_orchestrator),
) -> dict[str, object]:
    matrix_mode = _parse_mode(mode)
    start_date = _parse_start_month(start_month)
    filters = _filters(preferred_staff, skills, clients, include_unassigned)

    result = await orchestrator.generate(
        matrix_mode,
        filters,
        start_date,
        include_unassigned=include_unassigned,
        permissive=permissive,
    )
    return {
        "cache_key": orchestrator.cache_key(matrix_mode, filters, start_date),
        "matrix": MatrixAssembler.serialize(result.matrix_data),
        "diagnostics": MatrixAssembler.serialize_diagnostics(result.diagnostics),
    }


@router.get("/demand-matrix/cache")
def get_demand_matrix_cache(
    mode: str = Query(default=DemandMatrixMode.DEMAND_ONLY.value),
    start_month: str | None = Query(default=None),
    preferred_staff: list[str] | None = Query(default=None),
    orchestrator: DemandMatrixOrchestrator = Depends(get_demand_matrix_orchestrator),
) -> dict[str, object]:
    matrix_mode = _parse_mode(mode)
    start_date = _parse_start_month(start_month)
    filters = _filters(preferred_staff, None, None, None)
    return {
        "cache_key": orchestrator.cache_key(matrix_mode, filters, start_date),
        "stats": orchestrator.cache.stats(),
    }


@router.delete("/demand-matrix/cache")
def delete_demand_matrix_cache(
    strategy: str | None = Query(default=None),
    orchestrator: DemandMatrixOrchestrator = Depends(get_demand_matrix_orchestrator),
) -> dict[str, object]:
    parsed = _parse_strategy(strategy)
    removed = orchestrator.clear_cache(parsed)
    return {"cleared": removed, "strategy": parsed.value if parsed is not None else None}
