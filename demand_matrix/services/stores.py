"""Collaborator interfaces the forecasting engine reads from."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

RawTaskRecord = Mapping[str, Any]


class TaskStore(Protocol):
    async def load_active_recurring_tasks(self) -> list[RawTaskRecord]:
        """Return active recurring tasks with joined ``client_name`` and ``preferred_staff_name``."""


class SkillStore(Protocol):
    async def list_skills(self) -> list[dict[str, str]]:
        """Return ``{"id", "name"}`` rows for every skill."""


class ClientStore(Protocol):
    async def resolve_client_ids(self, client_ids: Sequence[str]) -> dict[str, str]:
        """Map client ids to display names; unknown ids are omitted."""


class FeeRateStore(Protocol):
    async def get_skill_fee_rates(self) -> dict[str, Decimal]:
        """Map skill display names to hourly fee rates."""


class ClientRevenueStore(Protocol):
    async def fetch_clients_with_expected_revenue(self) -> list[dict[str, Any]]:
        """Return ``{"id", "expected_monthly_revenue"}`` rows."""


@dataclass(slots=True)
class DemandDataSources:
    """Bundle of stores consumed by one orchestrator."""

    tasks: TaskStore
    skills: SkillStore
    clients: ClientStore
    fee_rates: FeeRateStore
    client_revenue: ClientRevenueStore

    @classmethod
    def from_store(cls, store: Any) -> DemandDataSources:
        """Use one object implementing every store protocol."""

        return cls(tasks=store, skills=store, clients=store, fee_rates=store, client_revenue=store)
