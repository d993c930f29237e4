"""Structural screening of raw recurring task records."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from demand_matrix.models.demand import RecurrenceType, RecurringTaskDefinition, SkillReference
from demand_matrix.services.periods import parse_date
from demand_matrix.services.skill_resolution import SkillResolver
from demand_matrix.services.stores import RawTaskRecord

logger = logging.getLogger(__name__)

MAX_ESTIMATED_HOURS = 1000
MAX_RECURRENCE_INTERVAL = 100
REQUIRED_STRING_FIELDS = ("id", "client_id", "name")
MISSING_TASK_ID = "<missing id>"


@dataclass(slots=True)
class InvalidTask:
    task: Any
    errors: list[str]
    task_id: str = MISSING_TASK_ID


@dataclass(slots=True)
class ValidationResult:
    valid_tasks: list[RecurringTaskDefinition] = field(default_factory=list)
    invalid_tasks: list[InvalidTask] = field(default_factory=list)
    resolved_tasks: list[RecurringTaskDefinition] = field(default_factory=list)
    unresolved_skills: dict[str, list[str]] = field(default_factory=dict)


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class TaskValidator:
    """Turns raw task records into :class:`RecurringTaskDefinition` values.

    Strict mode (the default) excludes every record with at least one error.
    Permissive mode keeps such records with unusable fields neutralised, so
    a partially malformed task still shows up in the matrix when it can.
    """

    def __init__(self, skill_resolver: SkillResolver) -> None:
        self.skill_resolver = skill_resolver

    async def validate(self, tasks: Sequence[RawTaskRecord], *, permissive: bool = False) -> ValidationResult:
        result = ValidationResult()
        for record in tasks:
            if not isinstance(record, Mapping):
                logger.warning("Skipping task record of type %s", type(record).__name__)
                result.invalid_tasks.append(InvalidTask(task=record, errors=["Task record is not a mapping"]))
                continue

            task_id = str(record.get("id") or MISSING_TASK_ID)
            try:
                task, errors, unresolved, skills_changed = await self._validate_record(record)
            except Exception as exc:
                logger.exception("Unexpected validation failure for task %s", task_id)
                result.invalid_tasks.append(
                    InvalidTask(task=record, errors=[f"Validation error: {exc}"], task_id=task_id)
                )
                continue

            if unresolved:
                result.unresolved_skills[task_id] = unresolved
            if skills_changed:
                result.resolved_tasks.append(task)

            if errors:
                result.invalid_tasks.append(InvalidTask(task=record, errors=errors, task_id=task_id))
                logger.debug("Task %s failed validation: %s", task_id, errors)
                if permissive:
                    result.valid_tasks.append(task)
            else:
                result.valid_tasks.append(task)

        logger.info(
            "Validated %d tasks: %d valid, %d invalid, %d resolved (permissive=%s)",
            len(tasks),
            len(result.valid_tasks),
            len(result.invalid_tasks),
            len(result.resolved_tasks),
            permissive,
        )
        return result

    async def _validate_record(
        self,
        record: RawTaskRecord,
    ) -> tuple[RecurringTaskDefinition, list[str], list[str], bool]:
        errors: list[str] = []

        for field_name in REQUIRED_STRING_FIELDS:
            value = record.get(field_name)
            if not isinstance(value, str) or not value.strip():
                errors.append(f"Missing or invalid {field_name}")

        raw_hours = record.get("estimated_hours")
        estimated_hours = 0.0
        if raw_hours is None:
            errors.append("Missing estimated_hours")
        elif not _is_number(raw_hours):
            errors.append(f"Invalid estimated_hours: {raw_hours!r}")
        elif not 0 < raw_hours <= MAX_ESTIMATED_HOURS:
            errors.append(f"estimated_hours must be in (0, {MAX_ESTIMATED_HOURS}], got {raw_hours}")
        else:
            estimated_hours = float(raw_hours)

        recurrence_type = RecurrenceType.parse(record.get("recurrence_type"))
        if recurrence_type is None:
            errors.append(f"Invalid recurrence_type: {record.get('recurrence_type')!r}")

        raw_interval = record.get("recurrence_interval")
        recurrence_interval = 1
        if raw_interval is not None:
            if not _is_integer(raw_interval) or not 1 <= raw_interval <= MAX_RECURRENCE_INTERVAL:
                errors.append(f"recurrence_interval must be an integer in [1, {MAX_RECURRENCE_INTERVAL}]")
            else:
                recurrence_interval = raw_interval

        weekdays: tuple[int, ...] = ()
        raw_weekdays = record.get("weekdays")
        if raw_weekdays is not None:
            if not isinstance(raw_weekdays, (list, tuple)):
                errors.append("weekdays must be a list")
            else:
                bad = [value for value in raw_weekdays if not _is_integer(value) or not 0 <= value <= 6]
                if bad:
                    errors.append(f"weekdays must be integers in [0, 6], got {bad}")
                weekdays = tuple(sorted({value for value in raw_weekdays if value not in bad}))

        day_of_month = self._bounded_int(record, "day_of_month", 1, 31, errors)
        month_of_year = self._bounded_int(record, "month_of_year", 1, 12, errors)

        raw_due_date = record.get("due_date")
        due_date = parse_date(raw_due_date)
        if raw_due_date is None:
            errors.append("Missing due_date")
        elif due_date is None:
            errors.append(f"Unparseable due_date: {raw_due_date!r}")

        raw_end_date = record.get("end_date")
        end_date = parse_date(raw_end_date)
        if raw_end_date not in (None, "") and end_date is None:
            errors.append(f"Unparseable end_date: {raw_end_date!r}")
        elif end_date is not None and due_date is not None and end_date < due_date:
            errors.append("end_date precedes due_date")

        is_active = record.get("is_active", True) is True
        if not is_active:
            errors.append("Task is not active")

        skills, references, unresolved, skills_changed = await self._resolve_skills(record, errors)

        task = RecurringTaskDefinition(
            id=str(record.get("id") or ""),
            client_id=str(record.get("client_id") or ""),
            name=str(record.get("name") or ""),
            estimated_hours=estimated_hours,
            recurrence_type=recurrence_type,
            due_date=due_date,
            required_skills=skills,
            skill_references=references,
            template_id=_optional_str(record.get("template_id")),
            priority=_optional_str(record.get("priority")),
            category=_optional_str(record.get("category")),
            recurrence_interval=recurrence_interval,
            weekdays=weekdays,
            day_of_month=day_of_month,
            month_of_year=month_of_year,
            end_date=end_date,
            is_active=is_active,
            preferred_staff_id=record.get("preferred_staff_id"),
            preferred_staff_name=_optional_str(record.get("preferred_staff_name")),
            client_name=_optional_str(record.get("client_name")),
        )
        return task, errors, unresolved, skills_changed

    @staticmethod
    def _bounded_int(record: RawTaskRecord, field_name: str, low: int, high: int, errors: list[str]) -> int | None:
        value = record.get(field_name)
        if value is None:
            return None
        if not _is_integer(value) or not low <= value <= high:
            errors.append(f"{field_name} must be an integer in [{low}, {high}], got {value!r}")
            return None
        return value

    async def _resolve_skills(
        self,
        record: RawTaskRecord,
        errors: list[str],
    ) -> tuple[tuple[str, ...], tuple[SkillReference, ...], list[str], bool]:
        raw_skills = record.get("required_skills")
        if not isinstance(raw_skills, (list, tuple)):
            errors.append("required_skills is not a list")
            return (), (), [], False
        if not raw_skills:
            errors.append("No required skills specified")
            return (), (), [], False

        references = tuple(
            SkillReference.parse(value) for value in raw_skills if isinstance(value, str) and value.strip()
        )
        if not references:
            errors.append("No valid skill references found")
            return (), (), [], False

        if not any(reference.is_uuid for reference in references):
            names = tuple(dict.fromkeys(reference.value for reference in references))
            return names, references, [], False

        resolution = await self.skill_resolver.resolve_references(references)
        names = tuple(dict.fromkeys(resolution.valid_skills))
        if not names:
            errors.append(f"No valid skills after resolution: {', '.join(resolution.invalid_skills)}")
        return names, references, resolution.invalid_skills, names != tuple(ref.value for ref in references)
