"""Payload parser middleware: deserializes target fields into the context."""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import urlencode
from uuid import uuid4

import structlog
from starlette.datastructures import QueryParams
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from scrubgate.middleware.pipeline import Middleware, RequestContext

logger = structlog.get_logger()

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def query_to_dict(params: QueryParams) -> dict[str, Any]:
    """Flatten query params; repeated keys become lists in arrival order."""
    result: dict[str, Any] = {}
    for key, value in params.multi_items():
        if key not in result:
            result[key] = value
        elif isinstance(result[key], list):
            result[key].append(value)
        else:
            result[key] = [result[key], value]
    return result


def encode_query(query: dict[str, Any]) -> str:
    return urlencode(query, doseq=True)


def is_json_content_type(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


class PayloadParser(Middleware):
    """Populate ``context.payload`` with the request's body, query and params.

    Only JSON bodies are deserialized; other bodies are forwarded untouched.
    Bodies over ``max_body_bytes`` are rejected with 413.
    """

    def __init__(self, max_body_bytes: int | None = None) -> None:
        self._max_body_bytes = max_body_bytes

    async def process_request(self, request: Request, context: RequestContext) -> Request | Response | None:
        context.payload["params"] = dict(request.path_params)
        context.payload["query"] = query_to_dict(request.query_params)

        if request.method.upper() not in _BODY_METHODS:
            return None

        if self._max_body_bytes is not None:
            content_length = request.headers.get("content-length")
            if content_length:
                try:
                    if int(content_length) > self._max_body_bytes:
                        return Response(content="Request body too large", status_code=413)
                except (ValueError, OverflowError):
                    return Response(content="Invalid Content-Length", status_code=400)

        body = await request.body()
        if self._max_body_bytes is not None and len(body) > self._max_body_bytes:
            return Response(content="Request body too large", status_code=413)
        if not body:
            return None

        if not is_json_content_type(request.headers.get("content-type", "")):
            return None

        try:
            context.payload["body"] = json.loads(body)
        except RecursionError:
            error_id = uuid4().hex[:8]
            logger.warning("payload_body_too_deep", path=request.url.path, size=len(body), error_id=error_id)
            return JSONResponse(
                status_code=400,
                content={"error": True, "message": "Request payload is nested too deeply.", "error_id": error_id},
            )
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("payload_body_not_json", path=request.url.path, size=len(body))
            return None

        context.extra["body_format"] = "json"
        return None
