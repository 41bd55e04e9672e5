import asyncio
from contextlib import suppress
from datetime import datetime, timezone
import logging
import time
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chantier_charges.db import engine
from chantier_charges.errors import ApiError, error_response
from chantier_charges.logging_utils import setup_json_logging
from chantier_charges.routers import charges, overhead, transport_fees
from chantier_charges.services.overhead_distribution import run_daily_overhead_distribution
from chantier_charges.services.schema_guard import SchemaGuardResult, verify_runtime_schema
from chantier_charges.services.transport_fees import run_daily_transport_fees
from chantier_charges.settings import get_cors_origins, get_settings

settings = get_settings()
setup_json_logging(settings.app_name, settings.log_level)
logger = logging.getLogger("chantier_charges.request")
transport_worker_logger = logging.getLogger("chantier_charges.transport_worker")


app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid4())
    request.state.request_id = request_id

    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-Id"] = request_id
        return response
    finally:
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.info(
            "request_complete",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": status_code,
                "latency_ms": latency_ms,
            },
        )


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning(
            "api_error",
            extra={
                "request_id": getattr(request.state, "request_id", "unknown"),
                "path": request.url.path,
                "code": exc.code,
            },
        )
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
    )


@app.exception_handler(HTTPException)
async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    code_map = {
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
    }
    message = str(exc.detail) if exc.detail else "Request failed."
    return error_response(
        request,
        status_code=exc.status_code,
        code=code_map.get(exc.status_code, "HTTP_ERROR"),
        message=message,
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        request,
        status_code=422,
        code="VALIDATION_ERROR",
        message=str(exc.errors()),
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_error",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "path": request.url.path,
            "method": request.method,
        },
    )
    return error_response(
        request,
        status_code=500,
        code="INTERNAL_ERROR",
        message="Unexpected server error.",
    )


app.include_router(charges.router)
app.include_router(transport_fees.router)
app.include_router(overhead.router)


def _default_schema_guard_result() -> SchemaGuardResult:
    return SchemaGuardResult(
        ok=False,
        checked_at_utc=datetime.now(timezone.utc),
        issues=["SCHEMA_GUARD_NOT_RUN"],
        warnings=[],
    )


async def _transport_worker_loop(stop_event: asyncio.Event) -> None:
    interval_seconds = max(60, int(settings.transport_worker_interval_seconds))
    while not stop_event.is_set():
        try:
            overhead_result = await asyncio.to_thread(run_daily_overhead_distribution)
        except Exception:
            transport_worker_logger.exception("overhead_worker_tick_failed")
        else:
            if overhead_result is not None and (overhead_result.created_count or overhead_result.failed_count):
                transport_worker_logger.info("overhead_worker_tick", extra=overhead_result.to_dict())

        try:
            result = await asyncio.to_thread(run_daily_transport_fees)
        except Exception:
            transport_worker_logger.exception("transport_worker_tick_failed")
        else:
            if result is not None and (result.created_count or result.failed_count):
                transport_worker_logger.info("transport_worker_tick", extra=result.to_dict())

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue


@app.on_event("startup")
async def run_schema_guard() -> None:
    result = await asyncio.to_thread(verify_runtime_schema, engine)
    app.state.schema_guard_result = result
    if result.ok:
        transport_worker_logger.info("schema_guard_ok", extra=result.to_dict())
        return

    transport_worker_logger.error("schema_guard_failed", extra=result.to_dict())
    if settings.schema_guard_strict:
        joined_issues = "; ".join(result.issues)
        raise RuntimeError(f"Runtime schema guard failed: {joined_issues}")


@app.on_event("startup")
async def start_transport_worker() -> None:
    if not settings.transport_worker_enabled:
        return
    if getattr(app.state, "transport_worker_task", None) is not None:
        return

    stop_event = asyncio.Event()
    app.state.transport_worker_stop_event = stop_event
    app.state.transport_worker_task = asyncio.create_task(_transport_worker_loop(stop_event))
    transport_worker_logger.info(
        "transport_worker_started",
        extra={"interval_seconds": max(60, int(settings.transport_worker_interval_seconds))},
    )


@app.on_event("shutdown")
async def stop_transport_worker() -> None:
    stop_event: asyncio.Event | None = getattr(app.state, "transport_worker_stop_event", None)
    task: asyncio.Task[None] | None = getattr(app.state, "transport_worker_task", None)
    if stop_event is not None:
        stop_event.set()
    if task is not None:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
    app.state.transport_worker_stop_event = None
    app.state.transport_worker_task = None


@app.get("/health")
def health() -> dict[str, Any]:
    schema_guard_result: SchemaGuardResult = getattr(app.state, "schema_guard_result", _default_schema_guard_result())
    return {
        "status": "ok",
        "schema_guard": schema_guard_result.to_dict(),
        "transport_worker_enabled": settings.transport_worker_enabled,
    }
