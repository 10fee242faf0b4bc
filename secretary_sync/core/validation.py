"""
Task input validation.

Structural rules live in a JSON schema checked with jsonschema; the
text rules operate on the trimmed value and are checked by hand. Every
problem is reported as a FieldError so callers can show them per field.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

from jsonschema import Draft7Validator

from ..utils.date import parse_date
from .exceptions import TaskValidationError
from .models import Priority, Section

DEFAULT_TEXT_MAX_LENGTH = 500
MIN_TEXT_LENGTH = 3
MAX_SUBTASK_LENGTH = 200
MIN_DURATION = 5
MAX_DURATION = 480


@dataclass(frozen=True)
class FieldError:
    """A single validation problem tied to an input field."""

    field: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message}


_SECTION_NAMES = [s.value for s in Section] + [f"{s.value}Tasks" for s in Section]
_DURATION = {"type": ["integer", "null"], "minimum": MIN_DURATION, "maximum": MAX_DURATION}

TASK_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "text": {"type": "string"},
        "section": {"enum": _SECTION_NAMES},
        "priority": {"enum": [p.value for p in Priority]},
        "completed": {"type": "boolean"},
        "date": {"type": ["string", "null"], "pattern": r"^\d{4}-\d{2}-\d{2}"},
        "estimatedDuration": _DURATION,
        "actualDuration": _DURATION,
        "subTasks": {
            "type": "array",
            "items": {"type": "string", "pattern": r"\S", "maxLength": MAX_SUBTASK_LENGTH},
        },
        "reminders": {"type": "array", "items": {"type": "string"}},
        "details": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["text"],
}

_VALIDATOR = Draft7Validator(TASK_SCHEMA)

_MESSAGES = {
    ("section", "enum"): "Invalid task category",
    ("priority", "enum"): "Invalid priority level",
    ("date", "pattern"): "Invalid date format",
    ("estimatedDuration", "minimum"): f"Duration must be between {MIN_DURATION} and {MAX_DURATION} minutes",
    ("estimatedDuration", "maximum"): f"Duration must be between {MIN_DURATION} and {MAX_DURATION} minutes",
    ("estimatedDuration", "type"): f"Duration must be between {MIN_DURATION} and {MAX_DURATION} minutes",
    ("actualDuration", "minimum"): f"Duration must be between {MIN_DURATION} and {MAX_DURATION} minutes",
    ("actualDuration", "maximum"): f"Duration must be between {MIN_DURATION} and {MAX_DURATION} minutes",
    ("actualDuration", "type"): f"Duration must be between {MIN_DURATION} and {MAX_DURATION} minutes",
    ("subTasks", "pattern"): "Sub-task cannot be empty",
    ("subTasks", "type"): "Sub-task cannot be empty",
    ("subTasks", "maxLength"): f"Sub-task cannot exceed {MAX_SUBTASK_LENGTH} characters",
}


def _field_name(path) -> str:
    """Render a jsonschema error path as ``subTasks[2]``."""
    name = ""
    for part in path:
        if isinstance(part, int):
            name += f"[{part}]"
        else:
            name = f"{name}.{part}" if name else str(part)
    return name


def _check_text(text: Any, max_length: int) -> List[FieldError]:
    if not isinstance(text, str) or not text.strip():
        return [FieldError("text", "Task description is required")]
    if len(text.strip()) < MIN_TEXT_LENGTH:
        return [FieldError("text", f"Task description must be at least {MIN_TEXT_LENGTH} characters")]
    if len(text) > max_length:
        return [FieldError("text", f"Task description cannot exceed {max_length} characters")]
    return []


def validate_task_input(data: Dict[str, Any], text_max_length: int = DEFAULT_TEXT_MAX_LENGTH) -> List[FieldError]:
    """
    Validate a task document (camelCase keys, as produced by Task.to_dict).

    Args:
        data: Task fields to check
        text_max_length: Upper bound on the description length

    Returns:
        List of field errors, empty when the input is valid
    """
    if not isinstance(data, dict):
        return [FieldError("task", "Task data must be an object")]

    errors: List[FieldError] = _check_text(data.get("text"), text_max_length)

    for error in sorted(_VALIDATOR.iter_errors(data), key=lambda e: list(e.absolute_path)):
        path = list(error.absolute_path)
        if error.validator == "required" or (path and path[0] == "text"):
            # Covered by the text checks above
            continue
        root = str(path[0]) if path else ""
        message = _MESSAGES.get((root, error.validator), error.message)
        errors.append(FieldError(_field_name(path) or root, message))

    date_value = data.get("date")
    if isinstance(date_value, str) and date_value and parse_date(date_value) is None:
        if not any(e.field == "date" for e in errors):
            errors.append(FieldError("date", "Invalid date format"))

    return errors


def ensure_valid(data: Dict[str, Any], text_max_length: int = DEFAULT_TEXT_MAX_LENGTH) -> None:
    """
    Raise TaskValidationError if the input has any field errors.
    """
    errors = validate_task_input(data, text_max_length)
    if errors:
        raise TaskValidationError(errors)
