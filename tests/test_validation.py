"""Tests for habit field validation."""

from __future__ import annotations

import pytest

from habitkeeper.errors import ValidationFailure
from habitkeeper.models.habit import Frequency
from habitkeeper.services.validation import clean_habit_fields


def test_create_defaults_frequency_and_strips():
    cleaned = clean_habit_fields({"title": "  Read ", "description": "  "})
    assert cleaned == {"title": "Read", "description": None, "frequency": "daily"}


def test_accepts_enum_members():
    assert clean_habit_fields({"title": "Read", "frequency": Frequency.MONTHLY})["frequency"] == "monthly"


@pytest.mark.parametrize(
    "fields, field",
    [
        ({"title": ""}, "title"),
        ({"title": "x" * 121}, "title"),
        ({"title": "Read", "frequency": "yearly"}, "frequency"),
        ({"title": "Read", "description": "d" * 501}, "description"),
    ],
)
def test_rejects_bad_fields(fields, field):
    with pytest.raises(ValidationFailure) as excinfo:
        clean_habit_fields(fields)
    assert excinfo.value.field == field


def test_rejects_unknown_fields():
    with pytest.raises(ValidationFailure):
        clean_habit_fields({"title": "Read", "user_id": 3})


def test_partial_only_checks_supplied_fields():
    assert clean_habit_fields({"frequency": "weekly"}, partial=True) == {"frequency": "weekly"}
    with pytest.raises(ValidationFailure):
        clean_habit_fields({}, partial=True)
