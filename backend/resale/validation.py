# Overview: Request payload validation driven by SQLAlchemy column metadata.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable

from sqlalchemy import Date, DateTime, Integer, String, Text

from resale.time_utils import parse_iso_date, parse_iso_datetime


# Largest yen amount accepted in any single field
MAX_AMOUNT = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    What a route lets clients send for one model.

    - writable_fields: allowlist; anything else is rejected
    - required_on_create: must be present when partial=False
    - amount_fields: integer yen fields, checked against 0..MAX_AMOUNT

    Computed columns (allocated_cost, cost_at_sale, net_profit, ...) are
    never writable.
    """
    writable_fields: frozenset[str] | set[str]
    required_on_create: frozenset[str] | set[str] = field(default_factory=frozenset)
    amount_fields: frozenset[str] | set[str] = field(default_factory=frozenset)

    def check_keys(self, payload: dict, *, partial: bool) -> None:
        if not partial:
            missing = sorted(k for k in self.required_on_create if k not in payload)
            if missing:
                raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        for key in payload:
            if key not in self.writable_fields:
                raise ValidationError(f"Field not allowed: {key}")


def _to_int(key: str, value: Any) -> int:
    # bool is an int subclass; JSON true/false is never an amount
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
    raise ValidationError(f"{key} must be an integer")


def _to_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    parsed = None
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
    if parsed is None:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")
    return parsed


def _to_date(key: str, value: Any) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = None
    if isinstance(value, str):
        try:
            parsed = parse_iso_date(value)
        except ValueError:
            parsed = None
    if parsed is None:
        raise ValidationError(f"{key} must be an ISO-8601 date")
    return parsed


def _to_text(key: str, value: Any) -> str:
    return str(value).strip()


# Column type -> coercer; first match wins
_COERCERS: list[tuple[type, Callable[[str, Any], Any]]] = [
    (Integer, _to_int),
    (DateTime, _to_datetime),
    (Date, _to_date),
    (String, _to_text),
    (Text, _to_text),
]


def _coerce(column, value: Any) -> Any:
    for column_type, coercer in _COERCERS:
        if isinstance(column.type, column_type):
            return coercer(column.key, value)
    return value


def _check_column_limits(column, value: Any) -> None:
    if not isinstance(value, str):
        return
    if value == "" and not column.nullable:
        raise ValidationError(f"{column.key} cannot be blank")
    length = getattr(column.type, "length", None)
    if length and len(value) > length:
        raise ValidationError(f"{column.key} exceeds max length {length}")


def _check_amount(key: str, value: int) -> None:
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > MAX_AMOUNT:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT:,}")


def validate_payload(
    *,
    model,
    payload: dict | None,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Check a JSON body against the policy and the model's columns.

    Returns a cleaned dict holding only the keys that were sent, with values
    coerced to their column types. partial=True (PUT) skips the
    required_on_create check.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    policy.check_keys(payload, partial=partial)
    columns = {c.key: c for c in model.__mapper__.columns}

    cleaned: dict = {}
    for key, raw in payload.items():
        column = columns.get(key)
        if column is None:
            raise ValidationError(f"Unknown field: {key}")

        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            cleaned[key] = None
            continue

        value = _coerce(column, raw)
        _check_column_limits(column, value)
        if key in policy.amount_fields:
            _check_amount(key, value)
        cleaned[key] = value

    return cleaned


def require_int_arg(payload: dict, key: str, *, required: bool = True, minimum: int = 0) -> int | None:
    """Validate a bare integer from a JSON body that is not a model column."""
    value = payload.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    value = _to_int(key, value)
    if value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    if value > MAX_AMOUNT:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT:,}")
    return value
