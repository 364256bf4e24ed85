"""Response error extraction for load test observability.

Parses Cartline API error responses into human-readable messages. Every
error body has the shape ``{"error": ..., "code": ...}`` where ``error`` is
a message, a field map, or a list of request validation errors.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from requests import Response


def extract_error_detail(response: Response) -> str:
    """Extract a human-readable error message from an API error response.

    Returns a compact string suitable for Locust failure messages and log lines.
    """
    try:
        body = response.json()
    except ValueError:
        text = getattr(response, "text", "") or ""
        return text[:300] or "(empty response body)"

    if not isinstance(body, dict) or "error" not in body:
        return str(body)[:300]

    code = body.get("code", "Error")
    error = body["error"]

    # Request validation: [{"loc": [...], "msg": "..."}]
    if isinstance(error, list):
        parts = []
        for err in error:
            loc = ".".join(str(p) for p in err.get("loc", []))
            msg = err.get("msg", str(err))
            parts.append(f"{loc}: {msg}" if loc else msg)
        return f"{code}: " + " | ".join(parts)

    # Field map: {"field": ["msg", ...]}
    if isinstance(error, dict):
        return f"{code}: " + " | ".join(f"{k}: {v}" for k, v in error.items())

    return f"{code}: {error}"
