"""FastAPI reverse proxy that sanitizes request payloads before forwarding."""

from __future__ import annotations

import json
from collections.abc import Mapping
from contextlib import asynccontextmanager
from urllib.parse import quote

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import Response

from scrubgate.config.loader import get_settings, load_sanitizer_options, load_settings
from scrubgate.health import router as health_router
from scrubgate.logging_config import setup_logging
from scrubgate.middleware.context_injector import ContextInjector
from scrubgate.middleware.payload import PayloadParser, encode_query
from scrubgate.middleware.pipeline import MiddlewarePipeline, RequestContext
from scrubgate.middleware.request_sanitizer import RequestSanitizer
from scrubgate.sanitize import SanitizeOptions

logger = structlog.get_logger()

_http_client: httpx.AsyncClient | None = None
_pipeline: MiddlewarePipeline | None = None


def _build_pipeline(options: SanitizeOptions | None = None) -> MiddlewarePipeline:
    """Build the ordered middleware pipeline.

    PayloadParser must run before RequestSanitizer: it fills the payload the
    sanitizer rewrites.
    """
    settings = get_settings()
    if options is None:
        options = load_sanitizer_options(settings.config_file)
    if options.mode == "manual":
        logger.warning("sanitizer_manual_mode", detail="payloads are forwarded as received")

    pipeline = MiddlewarePipeline()
    pipeline.add(ContextInjector())                        # 0: request ID, log context
    pipeline.add(PayloadParser(settings.max_body_bytes))   # 1: body/query/params -> payload
    pipeline.add(RequestSanitizer(options))                # 2: scrub payload
    return pipeline


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    global _http_client, _pipeline

    settings = load_settings()
    setup_logging(log_level=settings.log_level, json_format=settings.log_json)

    _http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.proxy_timeout),
        follow_redirects=settings.upstream_follow_redirects,
        limits=httpx.Limits(
            max_connections=settings.upstream_max_connections,
            max_keepalive_connections=settings.upstream_max_keepalive,
        ),
    )

    # A bad sanitizer config raises here and aborts startup
    _pipeline = _build_pipeline()
    sanitizer = _pipeline.get_middleware(RequestSanitizer)
    app.state.sanitizer_mode = sanitizer.options.mode if sanitizer else "disabled"

    logger.info("proxy_started", upstream=settings.upstream_url, port=settings.listen_port)

    yield

    logger.info("proxy_shutting_down")
    if _http_client:
        await _http_client.aclose()
    logger.info("proxy_stopped")


app = FastAPI(title="scrubgate", lifespan=lifespan)

app.include_router(health_router)


HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

# Recomputed for the rewritten body, or replaced with our own ID
_REQUEST_HEADERS_REPLACED = frozenset({"host", "content-length", "x-request-id"})
_RESPONSE_HEADERS_REPLACED = frozenset({"content-length", "content-encoding"})

# RFC 3986 pchar sub-delims plus "/"; "?", "#" and "%" must be re-escaped
_PATH_SAFE_CHARS = "/:@!$&'()*+,;="


def _filter_headers(headers: Mapping[str, str], dropped: frozenset[str]) -> dict[str, str]:
    return {
        key: value
        for key, value in headers.items()
        if key.lower() not in HOP_BY_HOP_HEADERS and key.lower() not in dropped
    }


def _upstream_body(raw_body: bytes, context: RequestContext) -> bytes:
    """Re-encode the sanitized JSON body, or pass the raw body through."""
    if "body" not in context.payload:
        return raw_body
    return json.dumps(context.payload["body"], separators=(",", ":")).encode("utf-8")


def _upstream_url(base_url: str, path: str, request: Request, context: RequestContext) -> str:
    """Join the re-quoted path with the sanitized query string.

    The route parameter arrives percent-decoded, so an encoded "?" or "#" in
    the client path would otherwise start a query or fragment upstream.
    """
    url = f"{base_url.rstrip('/')}/{quote(path, safe=_PATH_SAFE_CHARS)}"
    if "query" in context.payload:
        query = encode_query(context.payload["query"])
    else:
        query = request.url.query
    return f"{url}?{query}" if query else url


@app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"])
async def proxy_request(request: Request, path: str) -> Response:
    """Catch-all reverse proxy handler: sanitize, then forward."""
    if _http_client is None:
        return Response(content="Proxy not initialized", status_code=503)

    settings = get_settings()
    context = RequestContext()

    if _pipeline:
        short_circuit = await _pipeline.process_request(request, context)
        if short_circuit is not None:
            return await _pipeline.process_response(short_circuit, context)

    upstream_url = _upstream_url(settings.upstream_url, path, request, context)
    headers = _filter_headers(request.headers, _REQUEST_HEADERS_REPLACED)
    headers["x-request-id"] = context.request_id

    try:
        upstream_resp = await _http_client.request(
            method=request.method,
            url=upstream_url,
            headers=headers,
            content=_upstream_body(await request.body(), context),
        )
    except httpx.TimeoutException:
        logger.error("upstream_timeout", url=upstream_url, request_id=context.request_id)
        return Response(content="Upstream timeout", status_code=504)
    except httpx.ConnectError:
        logger.error("upstream_connect_error", url=upstream_url, request_id=context.request_id)
        return Response(content="Upstream unreachable", status_code=502)
    except httpx.HTTPError as exc:
        logger.error("upstream_error", url=upstream_url, request_id=context.request_id, error=str(exc))
        return Response(content="Upstream error", status_code=502)

    content = upstream_resp.content
    if len(content) > settings.max_body_bytes:
        logger.error(
            "upstream_response_too_large",
            actual_size=len(content),
            max=settings.max_body_bytes,
            request_id=context.request_id,
        )
        return Response(content="Upstream response too large", status_code=502)

    response = Response(
        content=content,
        status_code=upstream_resp.status_code,
        headers=_filter_headers(upstream_resp.headers, _RESPONSE_HEADERS_REPLACED),
    )
    if _pipeline:
        response = await _pipeline.process_response(response, context)
    return response


def run() -> None:
    """Console entry point: serve the proxy with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host="0.0.0.0", port=settings.listen_port, log_config=None)
