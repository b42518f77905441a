"""Request sanitizer middleware: scrubs query-injection tokens from payloads."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from uuid import uuid4

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from scrubgate.middleware.pipeline import Middleware, RequestContext
from scrubgate.sanitize import SanitizeError, SanitizeOptions, SkipMatcher, build_options, sanitize_fields

logger = structlog.get_logger()


class RequestSanitizer(Middleware):
    """Sanitize the target fields held in ``context.payload``.

    Modes (fixed at construction):
      - auto: every request not on a skip route is sanitized before the
        handler runs
      - manual: nothing happens automatically; the handler calls
        ``context.sanitize()``, optionally with per-call overrides

    Options are validated here, so a bad configuration fails at setup with
    ConfigurationError. If a field fails to sanitize, fields already handled
    stay sanitized and the rest stay raw; in auto mode the request is then
    rejected with 400.
    """

    def __init__(self, options: SanitizeOptions | Mapping[str, Any] | None = None) -> None:
        if isinstance(options, SanitizeOptions):
            self._options = options
        else:
            self._options = build_options(options)
        self._skip_routes = SkipMatcher(self._options.skip_routes)

        logger.info(
            "sanitizer_registered",
            mode=self._options.mode,
            fields=list(self._options.sanitize_objects),
            skip_routes=sorted(self._skip_routes.routes),
            custom_sanitizer=self._options.custom_sanitizer is not None,
        )

    @property
    def options(self) -> SanitizeOptions:
        return self._options

    @property
    def skip_routes(self) -> SkipMatcher:
        return self._skip_routes

    async def process_request(self, request: Request, context: RequestContext) -> Request | Response | None:
        if self._options.mode == "manual":
            context.bind_sanitizer(lambda overrides=None: self.sanitize_now(context, overrides))
            return None

        path = request.url.path
        if self._skip_routes.matches(path):
            context.extra["sanitize_skipped"] = True
            if self._options.debug.log_skipped_routes:
                logger.info("route_skipped", method=request.method, path=path)
            return None

        try:
            fields = sanitize_fields(context.payload, self._options)
        except SanitizeError as exc:
            error_id = uuid4().hex[:8]
            logger.warning(
                "request_sanitize_failed",
                error_id=error_id,
                request_id=context.request_id,
                path=path,
                error=exc.message,
                error_type=exc.type,
            )
            return JSONResponse(
                status_code=400,
                content={
                    "error": True,
                    "message": "Request payload could not be sanitized.",
                    "error_id": error_id,
                },
            )

        context.extra["sanitized_fields"] = fields
        logger.debug("request_sanitized", request_id=context.request_id, fields=fields)
        return None

    def sanitize_now(self, context: RequestContext, overrides: Mapping[str, Any] | None = None) -> list[str]:
        """Run the field loop immediately on this request's payload.

        Errors propagate to the caller.
        """
        options = self._options.merge(overrides) if overrides else self._options
        logger.info("manual_sanitize_triggered", request_id=context.request_id, overrides=sorted(overrides or {}))
        fields = sanitize_fields(context.payload, options)
        context.extra["sanitized_fields"] = fields
        return fields
