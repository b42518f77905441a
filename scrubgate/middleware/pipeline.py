"""Ordered middleware chain framework."""

from __future__ import annotations

import abc
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

import structlog
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

ManualSanitizer = Callable[[Mapping[str, Any] | None], list[str]]


@dataclass
class RequestContext:
    """Mutable per-request state passed through the middleware pipeline.

    ``payload`` holds the deserialized target fields (body, query, params)
    that the sanitizer reads and replaces. The proxy handler forwards
    whatever is left in it.
    """

    request_id: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)
    _sanitizer: ManualSanitizer | None = field(default=None, repr=False)

    def __post_init__(self):
        if not self.request_id:
            self.request_id = uuid4().hex[:8]

    def bind_sanitizer(self, sanitizer: ManualSanitizer) -> None:
        self._sanitizer = sanitizer

    def sanitize(self, overrides: Mapping[str, Any] | None = None) -> list[str]:
        """Sanitize the payload now (manual mode only).

        Optional overrides are merged over the registered configuration for
        this call only. Returns the names of the fields that were replaced.
        """
        if self._sanitizer is None:
            raise RuntimeError("Manual sanitization is not enabled for this request")
        return self._sanitizer(overrides)


class Middleware(abc.ABC):
    """Base class for middleware in the pipeline."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abc.abstractmethod
    async def process_request(self, request: Request, context: RequestContext) -> Request | Response | None:
        """Process an incoming request.

        Return None to continue the pipeline, or a Response to short-circuit.
        """
        ...

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        """Process an outgoing response. Override if needed."""
        return response


@dataclass
class _Stage:
    middleware: Middleware
    enabled: bool = True

    @property
    def name(self) -> str:
        return self.middleware.name


class MiddlewarePipeline:
    """Middleware stages run forward on the request and backward on the response.

    A stage that raises on the request side ends the chain with a 502; one
    that raises on the response side is skipped and the response still goes
    out.
    """

    def __init__(self) -> None:
        self._stages: list[_Stage] = []

    def add(self, middleware: Middleware, enabled: bool = True) -> None:
        self._stages.append(_Stage(middleware, enabled))
        logger.info("middleware_registered", name=middleware.name, enabled=enabled)

    def set_enabled(self, name: str, enabled: bool) -> None:
        """Toggle every stage registered under name; unknown names are ignored."""
        for stage in self._stages:
            if stage.name == name:
                stage.enabled = enabled

    def is_enabled(self, name: str) -> bool:
        return any(stage.enabled for stage in self._stages if stage.name == name)

    def get_middleware(self, cls: type[Middleware]) -> Middleware | None:
        """First registered middleware of the given type, or None."""
        return next((stage.middleware for stage in self._stages if isinstance(stage.middleware, cls)), None)

    @property
    def names(self) -> list[str]:
        return [stage.name for stage in self._stages]

    def _active(self, reverse: bool = False) -> Iterator[Middleware]:
        stages = reversed(self._stages) if reverse else self._stages
        return (stage.middleware for stage in stages if stage.enabled)

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        """Return the first short-circuit Response, or None to forward the request."""
        for mw in self._active():
            try:
                result = await mw.process_request(request, context)
            except Exception:
                logger.exception("middleware_request_error", middleware=mw.name, request_id=context.request_id)
                return Response(content="Internal proxy error", status_code=502)
            if isinstance(result, Response):
                logger.info("middleware_short_circuit", middleware=mw.name, status=result.status_code)
                return result
        return None

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        for mw in self._active(reverse=True):
            try:
                response = await mw.process_response(response, context)
            except Exception:
                logger.exception("middleware_response_error", middleware=mw.name, request_id=context.request_id)
        return response
