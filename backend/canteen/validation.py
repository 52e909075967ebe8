# Overview: Payload validation helpers; strict integer coercion and column-driven checks for writable models.

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text

from .errors import ValidationError


# 9,999,999.99 in minor units
MAX_PRICE_CENTS = 999_999_999
MAX_STOCK = 1_000_000
# Largest value a signed 64-bit INTEGER column can hold
MAX_ID = 2**63 - 1

INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")

DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 500


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    What a client may send for one model.

    writable_fields is the allow-list; anything else is rejected outright.
    bounds maps integer fields to an inclusive (low, high) range.
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()
    bounds: dict[str, tuple[int, int]] = field(default_factory=dict)


def coerce_int(value: Any, field_name: str) -> int:
    """
    Accept real ints and plain ASCII digit strings. Booleans, floats, decimal
    strings and scientific notation are all rejected.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{field_name} must be an integer, not a decimal")
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be an integer")

    text = value.strip()
    if INTEGER_PATTERN.fullmatch(text):
        try:
            return int(text)
        except ValueError:
            # Longer than the interpreter's int-from-str digit limit
            raise ValidationError(f"{field_name} is out of range")
    if "." in text:
        raise ValidationError(f"{field_name} must be an integer (no decimals)")
    raise ValidationError(f"{field_name} must be an integer")


def _check_maximum(number: int, field_name: str, maximum: int | None) -> int:
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field_name} cannot exceed {maximum}")
    return number


def coerce_positive_int(value: Any, field_name: str, *, maximum: int | None = MAX_ID) -> int:
    number = coerce_int(value, field_name)
    if number <= 0:
        raise ValidationError(f"{field_name} must be > 0")
    return _check_maximum(number, field_name, maximum)


def coerce_non_negative_int(
    value: Any,
    field_name: str,
    default: int = 0,
    *,
    maximum: int | None = MAX_ID,
) -> int:
    if value is None:
        return default
    number = coerce_int(value, field_name)
    if number < 0:
        raise ValidationError(f"{field_name} must be >= 0")
    return _check_maximum(number, field_name, maximum)


def _check_column(col, value: Any, bounds: tuple[int, int] | None):
    coltype = col.type

    if isinstance(coltype, Boolean):
        # "false" would be truthy
        if not isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a boolean")
        return value

    if isinstance(coltype, Integer):
        number = coerce_int(value, col.key)
        if bounds is not None:
            low, high = bounds
            if number < low:
                raise ValidationError(f"{col.key} must be >= {low}")
            if number > high:
                raise ValidationError(f"{col.key} cannot exceed {high}")
        return number

    if isinstance(coltype, (String, Text)):
        text = str(value).strip()
        if not text and not col.nullable:
            raise ValidationError(f"{col.key} cannot be blank")
        if isinstance(coltype, String) and coltype.length and len(text) > coltype.length:
            raise ValidationError(f"{col.key} exceeds max length {coltype.length}")
        return text

    return value


def validate_payload(*, model, payload: Any, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Turn a JSON body into a clean attribute dict for `model`.

    partial=False is create: every required_on_create field must be present.
    partial=True is patch: only the keys sent are checked.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    not_allowed = sorted(k for k in payload if k not in policy.writable_fields)
    if not_allowed:
        raise ValidationError(f"Field not allowed: {', '.join(not_allowed)}")

    if not partial:
        missing = sorted(policy.required_on_create - payload.keys())
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    cleaned: dict = {}
    for key, raw in payload.items():
        col = columns[key]
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            cleaned[key] = None
            continue
        cleaned[key] = _check_column(col, raw, policy.bounds.get(key))
    return cleaned


def clamp_page(limit: int | None, offset: int | None) -> tuple[int, int]:
    """Normalize list paging: limit within 1..MAX_PAGE_SIZE, offset within 0..MAX_ID."""
    limit = DEFAULT_PAGE_SIZE if limit is None else limit
    offset = 0 if offset is None else offset
    return max(1, min(limit, MAX_PAGE_SIZE)), max(0, min(offset, MAX_ID))
