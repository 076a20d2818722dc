"""Response helpers shared by the routers."""

from __future__ import annotations

import hashlib
import json
from typing import Any, Optional

from fastapi import Response
from fastapi.encoders import jsonable_encoder

from ..schemas import ProblemDetail

PROBLEM_CONTENT = {"application/problem+json": {"schema": ProblemDetail.model_json_schema()}}
BAD_REQUEST_RESPONSE = {
    "description": "Invalid request.",
    "content": PROBLEM_CONTENT,
}
UNAUTHORIZED_RESPONSE = {
    "description": "Authentication required.",
    "content": PROBLEM_CONTENT,
    "headers": {"WWW-Authenticate": {"schema": {"type": "string"}}},
}
FORBIDDEN_RESPONSE = {
    "description": "Insufficient privileges.",
    "content": PROBLEM_CONTENT,
}
CACHED_HEADERS = {
    "ETag": {"schema": {"type": "string"}},
    "Cache-Control": {"schema": {"type": "string"}},
}


def not_found_response(resource: str) -> dict[str, Any]:
    return {"description": f"{resource} not found.", "content": PROBLEM_CONTENT}


def compute_etag(payload: object) -> str:
    """Create an ETag for the given payload."""

    encoded = json.dumps(jsonable_encoder(payload, by_alias=True), sort_keys=True, separators=(",", ":")).encode("utf-8")
    digest = hashlib.sha256(encoded).hexdigest()
    return f'W/"{digest}"'


def envelope(data: Any = None, message: Optional[str] = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    body["data"] = data
    return body


def json_response(payload: object, *, status_code: int = 200, headers: Optional[dict[str, str]] = None) -> Response:
    return Response(
        status_code=status_code,
        content=json.dumps(jsonable_encoder(payload), ensure_ascii=False, separators=(",", ":")),
        media_type="application/json; charset=utf-8",
        headers=headers,
    )


def cached_response(payload: object, *, status_code: int = 200, headers: Optional[dict[str, str]] = None) -> Response:
    """JSON response carrying an ETag and a no-cache directive."""

    merged = {"ETag": compute_etag(payload), "Cache-Control": "no-cache"}
    merged.update(headers or {})
    return json_response(payload, status_code=status_code, headers=merged)
