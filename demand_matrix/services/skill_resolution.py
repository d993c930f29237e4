"""Bidirectional skill UUID / display-name resolution backed by a lazy cache."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from functools import lru_cache

from demand_matrix.models.demand import UUID_PATTERN, SkillReference
from demand_matrix.services.stores import SkillStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SkillResolution:
    valid_skills: list[str] = field(default_factory=list)
    invalid_skills: list[str] = field(default_factory=list)


class SkillResolver:
    """Resolves skill references against the skill catalogue.

    The catalogue is read once from the backing store on first use and served
    from memory until :meth:`clear` is called. Concurrent first callers share a
    single in-flight load. A failed load leaves the cache empty and is retried
    by the next caller; resolution then degrades to reporting UUIDs as invalid.
    """

    def __init__(self, loader: SkillStore | None = None) -> None:
        self._loader = loader
        self._name_by_id: dict[str, str] = {}
        self._id_by_name: dict[str, str] = {}
        self._initialized = False
        self._loading: asyncio.Future[None] | None = None
        self._generation = 0

    @property
    def initialized(self) -> bool:
        return self._initialized

    def bind_loader(self, loader: SkillStore) -> None:
        self._loader = loader

    @staticmethod
    def is_uuid(value: object) -> bool:
        return isinstance(value, str) and UUID_PATTERN.match(value.strip()) is not None

    async def initialize(self) -> None:
        if self._initialized:
            return
        if self._loading is None or self._loading.done():
            self._loading = asyncio.ensure_future(self._load())
        await asyncio.shield(self._loading)

    async def _load(self) -> None:
        generation = self._generation
        if self._loader is None:
            logger.warning("Skill resolver has no backing store; references will not resolve")
            return
        try:
            rows = await self._loader.list_skills()
        except Exception:
            logger.exception("Failed to load skill catalogue; resolution will retry on next use")
            return

        name_by_id: dict[str, str] = {}
        id_by_name: dict[str, str] = {}
        for row in rows:
            skill_id = str(row.get("id") or "").strip()
            name = str(row.get("name") or "").strip()
            if not skill_id or not name:
                continue
            name_by_id[skill_id.lower()] = name
            id_by_name[name.lower()] = skill_id

        if generation != self._generation:
            logger.debug("Discarding skill catalogue loaded before the cache was cleared")
            return
        self._name_by_id = name_by_id
        self._id_by_name = id_by_name
        self._initialized = True
        logger.info("Skill cache initialised with %d/%d skills", len(name_by_id), len(rows))

    def clear(self) -> None:
        self._name_by_id = {}
        self._id_by_name = {}
        self._initialized = False
        self._loading = None
        self._generation += 1
        logger.debug("Skill cache cleared")

    def lookup_name(self, skill_id: str) -> str | None:
        return self._name_by_id.get(skill_id.strip().lower())

    def canonical_name(self, name: str) -> str:
        """Catalogue spelling of ``name`` when known case-insensitively, else ``name`` itself."""

        skill_id = self._id_by_name.get(name.strip().lower())
        if skill_id is None:
            return name.strip()
        return self._name_by_id.get(skill_id.lower(), name.strip())

    async def all_skill_names(self) -> list[str]:
        await self.initialize()
        return sorted(self._name_by_id.values())

    async def resolve_names(self, skill_ids: Iterable[str]) -> list[str]:
        await self.initialize()
        names: list[str] = []
        for skill_id in skill_ids:
            if not isinstance(skill_id, str) or not skill_id.strip():
                continue
            value = skill_id.strip()
            if self.is_uuid(value):
                names.append(self.lookup_name(value) or value)
            else:
                names.append(value)
        return names

    async def resolve_references(self, refs: Iterable[str | SkillReference]) -> SkillResolution:
        await self.initialize()
        result = SkillResolution()
        for ref in refs:
            if isinstance(ref, str):
                if not ref.strip():
                    result.invalid_skills.append(ref)
                    continue
                ref = SkillReference.parse(ref)
            elif not isinstance(ref, SkillReference):
                result.invalid_skills.append(str(ref))
                continue

            if ref.is_uuid:
                name = self.lookup_name(ref.value)
                if name is None:
                    result.invalid_skills.append(ref.value)
                else:
                    result.valid_skills.append(name)
            else:
                result.valid_skills.append(self.canonical_name(ref.value))

        if result.invalid_skills:
            logger.debug("Unresolved skill references: %s", result.invalid_skills)
        return result

    def mapping_for(self, refs: Iterable[str]) -> dict[str, str]:
        """Reference-to-display-name mapping for already loaded references."""

        mapping: dict[str, str] = {}
        for ref in refs:
            if self.is_uuid(ref):
                name = self.lookup_name(ref)
                if name is not None:
                    mapping[ref] = name
            else:
                mapping[ref] = self.canonical_name(ref)
        return mapping


@lru_cache
def get_skill_resolver() -> SkillResolver:
    """Process-wide resolver; the orchestrator binds its skill store on first use."""

    return SkillResolver()
