from __future__ import annotations

import json
from typing import Any

from flask import request

from .errors import ValidationError


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def request_fields() -> dict:
    """JSON body, or form fields for multipart/form-encoded requests."""
    if request.is_json:
        return json_body()
    return request.form.to_dict()


def require_int(data: dict, key: str, *, minimum: int | None = None) -> int:
    value = data.get(key)
    if value is None or value == "":
        raise ValidationError(f"{key} is required", fields={key: "required"})
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer", fields={key: "must be an integer"})
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
        parsed = int(value.strip())
    else:
        raise ValidationError(f"{key} must be an integer", fields={key: "must be an integer"})
    if minimum is not None and parsed < minimum:
        raise ValidationError(f"{key} must be at least {minimum}", fields={key: f"must be >= {minimum}"})
    return parsed


def optional_int(value: Any, key: str, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer", fields={key: "must be an integer"})


def require_str(data: dict, key: str) -> str:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{key} is required", fields={key: "required"})
    return str(value).strip()


def maybe_json(value: Any, key: str) -> Any:
    """Multipart forms carry nested objects as JSON strings."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            raise ValidationError(f"{key} must be valid JSON", fields={key: "invalid JSON"})
    return value


def page_ids(value: Any) -> list[int] | None:
    value = maybe_json(value, "selectedPages")
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValidationError("selectedPages must be a list", fields={"selectedPages": "must be a list"})
    ids = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, int) or item < 0:
            raise ValidationError("selectedPages must hold page numbers", fields={"selectedPages": "invalid page id"})
        ids.append(item)
    return ids


def as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)
