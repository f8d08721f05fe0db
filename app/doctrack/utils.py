from __future__ import annotations

from typing import Any

from flask import jsonify, request


def request_payload() -> dict[str, Any]:
    """Return the request body as a dict, accepting JSON or form-encoded input."""
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()


def clean_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def optional_str(value: Any) -> str | None:
    return clean_str(value) or None


def parse_int(value: Any) -> int | None:
    """Parse an id-like value; empty/invalid input yields None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    s = str(value).strip()
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        return None


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return clean_str(value).lower() in ("1", "true", "yes", "on", "si", "sí")


def json_ok(status: int = 200, **payload: Any):
    return jsonify({"success": True, **payload}), status


def json_error(message: str, status: int = 400, **extra: Any):
    return jsonify({"success": False, "error": message, **extra}), status
