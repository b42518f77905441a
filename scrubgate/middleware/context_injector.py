"""Context injector middleware: request IDs and structured log context."""

from __future__ import annotations

from uuid import uuid4

import structlog
from starlette.requests import Request
from starlette.responses import Response

from scrubgate.middleware.pipeline import Middleware, RequestContext
from scrubgate.sanitize.patterns import strip_control_chars

logger = structlog.get_logger()

_MAX_CLIENT_ID_LENGTH = 256


def _client_request_id(request: Request) -> str | None:
    """The caller's X-Request-ID, truncated and stripped of control characters."""
    raw = request.headers.get("x-request-id")
    if not raw:
        return None
    return strip_control_chars(raw[:_MAX_CLIENT_ID_LENGTH]) or None


class ContextInjector(Middleware):
    """Give every request its own ID and bind it to the log context.

    A client-supplied X-Request-ID is never trusted as our ID; it is echoed
    back as X-Original-Request-ID.
    """

    async def process_request(self, request: Request, context: RequestContext) -> Request | Response | None:
        context.request_id = uuid4().hex[:8]
        original = _client_request_id(request)
        if original is not None:
            context.extra["original_request_id"] = original

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=context.request_id,
            method=request.method,
            path=request.url.path,
        )
        logger.debug("context_injected", original_request_id=original)
        return None

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        response.headers["x-request-id"] = context.request_id
        original = context.extra.get("original_request_id")
        if original:
            response.headers["x-original-request-id"] = original
        return response
