from __future__ import annotations

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from chatpanels import __version__
from chatpanels.api.chat import router as chat_router
from chatpanels.api.dify import router as dify_router
from chatpanels.api.health import router as health_router
from chatpanels.api.providers import router as providers_router
from chatpanels.config.settings import settings
from chatpanels.core.errors import APIError
from chatpanels.core.logging import request_id_var, setup_logging
from chatpanels.providers.base import default_timeout
from chatpanels.providers.registry import registry
from chatpanels.security.cors import cors_kwargs
from chatpanels.services.relay import RequestRelay

setup_logging(level=settings.log_level, json_output=settings.log_json, log_file=settings.log_file or None)
logger = logging.getLogger("chatpanels")

_SENSITIVE_KEYS = {
    "apikey",
    "api_key",
    "authorization",
    "secret",
    "token",
    "x-api-key",
    "x-dify-api-key",
}


def _redact_value(value):
    if isinstance(value, dict):
        redacted = {}
        for key, item in value.items():
            if str(key).lower() in _SENSITIVE_KEYS:
                redacted[key] = "***"
            else:
                redacted[key] = _redact_value(item)
        return redacted
    if isinstance(value, list):
        return [_redact_value(item) for item in value]
    return value


def _safe_headers(request: Request) -> dict:
    allowlist = {
        "user-agent",
        "origin",
        "referer",
        "content-type",
        "x-forwarded-for",
        "x-request-id",
        "x-dify-base-url",
    }
    return {key: value for key, value in request.headers.items() if key.lower() in allowlist}


async def _safe_body_preview(request: Request, max_bytes: int = 4096) -> str | None:
    try:
        body = await request.body()
    except Exception:
        return None

    if not body:
        return None

    truncated = len(body) > max_bytes
    body = body[:max_bytes]

    if "application/json" not in request.headers.get("content-type", "").lower():
        return None
    try:
        payload = _redact_value(json.loads(body.decode("utf-8", errors="replace")))
        text = json.dumps(payload, ensure_ascii=False)
    except ValueError:
        # Truncated or malformed JSON may still carry a key
        return None

    return f"{text}…(truncated)" if truncated else text


async def _request_context(request: Request) -> dict:
    context = {
        "method": request.method,
        "path": request.url.path,
        "query": request.url.query,
        "client_ip": request.client.host if request.client else None,
        "headers": _safe_headers(request),
    }
    body_preview = await _safe_body_preview(request)
    if body_preview:
        context["body_preview"] = body_preview
    return context


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """One pooled HTTP client for every vendor call made through the relay."""
    client = httpx.AsyncClient(timeout=default_timeout())
    app.state.relay = RequestRelay(registry=registry, client=client)
    logger.info("Relay started", extra={"providers": [p["provider_id"] for p in registry.list_providers()]})
    try:
        yield
    finally:
        await client.aclose()


app = FastAPI(title="Chat Panels Relay", version=__version__, lifespan=lifespan)

app.add_middleware(CORSMiddleware, **cors_kwargs(settings.cors_origins_list))


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)

        route = getattr(request.scope.get("route"), "path", request.url.path)
        logger.info(
            "Request completed",
            extra={
                "method": request.method,
                "route": route,
                "status": response.status_code,
                "latency_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            request_id_var.reset(token)


# Last added runs first: the request id is set before anything is logged
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(RequestIDMiddleware)

app.include_router(health_router)
app.include_router(providers_router)
app.include_router(chat_router)
app.include_router(dify_router)


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    request_id = _request_id(request)
    context = await _request_context(request)
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "APIError",
        extra={
            "status_code": exc.status_code,
            "error_code": exc.code,
            "error_message": exc.message,
            **context,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={**exc.to_payload(), "request_id": request_id},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    request_id = _request_id(request)
    detail = exc.detail if isinstance(exc.detail, dict) else {"code": "HTTP_ERROR", "message": str(exc.detail)}
    logger.warning(
        "HTTPException",
        extra={"status_code": exc.status_code, "error_code": detail.get("code"), "error_message": detail.get("message")},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": detail.get("message", "Request failed"),
            "code": detail.get("code", "HTTP_ERROR"),
            "request_id": request_id,
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = _request_id(request)
    context = await _request_context(request)
    logger.warning("RequestValidationError", extra={"error_detail": exc.errors(), **context})
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid request",
            "code": "VALIDATION_ERROR",
            "detail": json.loads(json.dumps(exc.errors(), default=str)),
            "request_id": request_id,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    request_id = _request_id(request)
    logger.error("Unhandled exception", extra={"path": request.url.path}, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "code": "INTERNAL_ERROR", "request_id": request_id},
    )
