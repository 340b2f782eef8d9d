"""Habit field validation, run before any store call or cache mutation."""

from __future__ import annotations

from typing import Any, Mapping

from ..errors import ValidationFailure
from ..models.habit import EDITABLE_HABIT_FIELDS, Frequency

TITLE_MAX_LENGTH = 120
DESCRIPTION_MAX_LENGTH = 500


def _clean_title(raw: Any) -> str:
    title = str(raw or "").strip()
    if not title:
        raise ValidationFailure("Title is required.", field="title")
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationFailure(
            f"Title must be at most {TITLE_MAX_LENGTH} characters.", field="title"
        )
    return title


def _clean_description(raw: Any) -> str | None:
    if raw is None:
        return None
    description = str(raw).strip()
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationFailure(
            f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters.",
            field="description",
        )
    return description or None


def _clean_frequency(raw: Any) -> str:
    value = raw.value if isinstance(raw, Frequency) else str(raw or "").strip().lower()
    try:
        return Frequency(value).value
    except ValueError:
        allowed = ", ".join(f.value for f in Frequency)
        raise ValidationFailure(f"Frequency must be one of: {allowed}.", field="frequency") from None


def clean_habit_fields(fields: Mapping[str, Any], *, partial: bool = False) -> dict[str, Any]:
    """Return normalized editable fields or raise :class:`ValidationFailure`.

    With ``partial=True`` only the supplied keys are validated (edits);
    otherwise title is mandatory and frequency defaults to daily.
    """

    unknown = set(fields) - set(EDITABLE_HABIT_FIELDS)
    if unknown:
        raise ValidationFailure(f"Unknown habit field(s): {', '.join(sorted(unknown))}.")

    cleaned: dict[str, Any] = {}
    if not partial or "title" in fields:
        cleaned["title"] = _clean_title(fields.get("title"))
    if "description" in fields:
        cleaned["description"] = _clean_description(fields["description"])
    if "frequency" in fields:
        cleaned["frequency"] = _clean_frequency(fields["frequency"])
    elif not partial:
        cleaned["frequency"] = Frequency.DAILY.value

    if partial and not cleaned:
        raise ValidationFailure("Nothing to update.")
    return cleaned


__all__ = ["clean_habit_fields"]
