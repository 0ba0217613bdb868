from __future__ import annotations

from typing import Any


def ok(message: str, **data: Any) -> dict[str, Any]:
    """Success envelope shared by every endpoint: {success, message, data}."""
    body: dict[str, Any] = {"success": True, "message": message}
    if data:
        body["data"] = data
    return body
