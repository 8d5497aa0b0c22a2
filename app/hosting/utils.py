from __future__ import annotations

from app.hosting.errors import ApiError


def parse_bool(payload: dict, key: str, default: bool | None = None) -> bool | None:
    """JSON boolean from a request payload; missing or null gives ``default``."""
    value = payload.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ApiError(f"{key} must be true or false.", 400)
    return value
