"""
Shared validation helpers for ChatGate services.
"""

from __future__ import annotations

from chatgate.config import (
    MAX_IDENTIFIER_LENGTH,
    MAX_PERSONA_LENGTH,
    MAX_SESSION_NAME_LENGTH,
)
from chatgate.errors import ValidationIssue


def validate_required_text(value: str, field: str, max_len: int) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationIssue(f"{field} must be a non-empty string", field=field, error_type="required")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_identifier(value: str, field: str) -> str:
    validate_required_text(value, field, MAX_IDENTIFIER_LENGTH)
    return value.strip()


def validate_session_name(name: str) -> str:
    validate_required_text(name, "name", MAX_SESSION_NAME_LENGTH)
    return name.strip()


def validate_persona(persona: str) -> str:
    validate_required_text(persona, "persona", MAX_PERSONA_LENGTH)
    return persona.strip()


def parse_temperature(raw: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationIssue(
            "temperature must be a number",
            field="temperature",
            error_type="invalid_type",
        ) from exc
    if value != value or value < 0.0 or value > 1.0:
        raise ValidationIssue(
            "temperature must be between 0.0 and 1.0",
            field="temperature",
            error_type="out_of_range",
        )
    return value
