from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text

from .errors import ValidationError
from .time_utils import parse_iso_datetime


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Per-endpoint write policy:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required when partial=False
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _columns_by_key(model) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def coerce_int(value: Any, name: str) -> int:
    """
    Strict integer coercion for JSON/query input: ints and plain digit
    strings pass; bools, floats, decimals and scientific notation do not.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer", details={"field": name})
        if "e" in stripped.lower():
            raise ValidationError(
                f"{name} must be a plain integer (scientific notation not allowed)", details={"field": name}
            )
        if "." in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)", details={"field": name})
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer", details={"field": name})
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal", details={"field": name})
    raise ValidationError(f"{name} must be an integer", details={"field": name})


def coerce_positive_int(value: Any, name: str) -> int:
    n = coerce_int(value, name)
    if n <= 0:
        raise ValidationError(f"{name} must be > 0", details={"field": name})
    return n


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean", details={"field": col.key})

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                dt = None
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", details={"field": col.key})
            return dt
        raise ValidationError(f"{col.key} must be a datetime", details={"field": col.key})

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model,
    payload: dict | None,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against the model's column metadata
    (nullable, type, String length) and the policy allowlist.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", details={"fields": missing})

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", details={"field": k})
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", details={"field": k})

    patch: dict = {}
    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", details={"field": k})
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            raise ValidationError(f"{k} cannot be blank", details={"field": k})

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", details={"field": k})

        patch[k] = val

    return patch


def require_json_object(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def parse_item_list(payload: dict, *, allow_empty: bool = False, with_price: bool = False) -> list[dict]:
    """
    Parse payload["items"] into [{"product_id", "quantity"[, "price_cents"]}].

    price_cents is optional per item; when absent the catalog price applies.
    """
    items = payload.get("items")
    if not isinstance(items, list):
        raise ValidationError("items must be a list", details={"field": "items"})
    if not items and not allow_empty:
        raise ValidationError("items must contain at least one item", details={"field": "items"})

    parsed = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object", details={"field": "items"})
        item = {
            "product_id": coerce_positive_int(raw.get("product_id"), f"items[{index}].product_id"),
            "quantity": coerce_positive_int(raw.get("quantity"), f"items[{index}].quantity"),
        }
        if with_price and raw.get("price_cents") is not None:
            item["price_cents"] = coerce_positive_int(raw["price_cents"], f"items[{index}].price_cents")
        parsed.append(item)
    return parsed


def optional_id(payload: dict, name: str) -> int | None:
    value = payload.get(name)
    if value is None:
        return None
    return coerce_positive_int(value, name)


def optional_text(payload: dict, name: str, *, max_length: int = 255) -> str | None:
    value = payload.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string", details={"field": name})
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{name} exceeds max length {max_length}", details={"field": name})
    return value or None


def paging_args(args) -> tuple[int, int]:
    page = coerce_positive_int(args.get("page", 1), "page")
    limit = coerce_positive_int(args.get("limit", 10), "limit")
    return page, limit
