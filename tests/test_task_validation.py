from __future__ import annotations

import asyncio
from datetime import date

import pytest

from demand_matrix.models.demand import RecurrenceType
from demand_matrix.services.skill_resolution import SkillResolver
from demand_matrix.services.task_validation import TaskValidator
from tests.fakes import TAX_SKILL_ID, UNKNOWN_SKILL_ID, FakeForecastStore, build_task


def _validator() -> TaskValidator:
    return TaskValidator(SkillResolver(FakeForecastStore()))


def test_valid_task_is_converted() -> None:
    result = asyncio.run(_validator().validate([build_task(preferred_staff_id="staff-9", recurrence_type="annual")]))

    assert result.invalid_tasks == []
    [task] = result.valid_tasks
    assert task.recurrence_type is RecurrenceType.ANNUALLY
    assert task.due_date == date(2024, 1, 15)
    assert task.estimated_hours == 10.0
    assert task.preferred_staff_id == "staff-9"
    assert task.required_skills == ("Tax Preparation",)


def test_missing_estimated_hours_strict_excludes_task() -> None:
    record = build_task()
    del record["estimated_hours"]

    result = asyncio.run(_validator().validate([record]))

    assert result.valid_tasks == []
    assert len(result.invalid_tasks) == 1
    assert "Missing estimated_hours" in result.invalid_tasks[0].errors


def test_missing_estimated_hours_permissive_keeps_task() -> None:
    record = build_task()
    del record["estimated_hours"]

    result = asyncio.run(_validator().validate([record], permissive=True))

    assert [task.id for task in result.valid_tasks] == ["task-1"]
    assert result.valid_tasks[0].estimated_hours == 0.0
    assert "Missing estimated_hours" in result.invalid_tasks[0].errors


@pytest.mark.parametrize(
    ("overrides", "fragment"),
    [
        ({"estimated_hours": 0}, "estimated_hours"),
        ({"estimated_hours": 1500}, "estimated_hours"),
        ({"estimated_hours": "ten"}, "estimated_hours"),
        ({"recurrence_type": "Fortnightly"}, "recurrence_type"),
        ({"recurrence_interval": 0}, "recurrence_interval"),
        ({"recurrence_interval": 2.5}, "recurrence_interval"),
        ({"weekdays": [1, 7]}, "weekdays"),
        ({"day_of_month": 32}, "day_of_month"),
        ({"month_of_year": 13}, "month_of_year"),
        ({"due_date": None}, "due_date"),
        ({"due_date": "not-a-date"}, "due_date"),
        ({"end_date": "2023-12-31"}, "end_date"),
        ({"is_active": False}, "not active"),
        ({"name": ""}, "name"),
        ({"required_skills": []}, "required skills"),
        ({"required_skills": "Tax Preparation"}, "required_skills"),
    ],
)
def test_structural_errors_are_reported(overrides: dict[str, object], fragment: str) -> None:
    result = asyncio.run(_validator().validate([build_task(**overrides)]))

    assert result.valid_tasks == []
    assert any(fragment in error for error in result.invalid_tasks[0].errors)


def test_uuid_skills_are_resolved_to_names() -> None:
    result = asyncio.run(_validator().validate([build_task(required_skills=[TAX_SKILL_ID])]))

    [task] = result.valid_tasks
    assert task.required_skills == ("Tax Preparation",)
    assert [resolved.id for resolved in result.resolved_tasks] == ["task-1"]


def test_partially_resolved_skills_keep_task_and_record_reference() -> None:
    result = asyncio.run(_validator().validate([build_task(required_skills=[TAX_SKILL_ID, UNKNOWN_SKILL_ID])]))

    assert [task.required_skills for task in result.valid_tasks] == [("Tax Preparation",)]
    assert result.unresolved_skills == {"task-1": [UNKNOWN_SKILL_ID]}


def test_unresolvable_skills_invalidate_task() -> None:
    result = asyncio.run(_validator().validate([build_task(required_skills=[UNKNOWN_SKILL_ID])]))

    assert result.valid_tasks == []
    assert any("No valid skills" in error for error in result.invalid_tasks[0].errors)


def test_non_mapping_records_are_reported_per_task() -> None:
    result = asyncio.run(_validator().validate([build_task(), None, ["task-2"]]))

    assert [task.id for task in result.valid_tasks] == ["task-1"]
    assert [invalid.task_id for invalid in result.invalid_tasks] == ["<missing id>", "<missing id>"]
    assert all(invalid.errors == ["Task record is not a mapping"] for invalid in result.invalid_tasks)
