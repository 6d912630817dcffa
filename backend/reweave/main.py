import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from reweave.api.routes import health, items
from reweave.config import settings
from reweave.logging import configure_logging
from reweave.models.contracts import ErrorResponse
from reweave.pipeline.errors import InputValidationError

configure_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect to Temporal on startup when ``use_temporal`` is enabled.

    A connection failure propagates so the process refuses to start rather
    than accepting analysis requests it cannot dispatch.
    """
    if settings.use_temporal:
        from reweave.worker import create_temporal_client

        logger.info(
            "temporal_connecting",
            address=settings.temporal_address,
            namespace=settings.temporal_namespace,
        )
        app.state.temporal_client = await create_temporal_client()
    yield


app = FastAPI(
    title="Reweave API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url=None,
    lifespan=lifespan,
)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", request.headers.get("X-Request-ID", ""))


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Attach a request ID to every request and log one access line.

    The ID is bound into structlog context vars, so orchestrator events for
    an in-process run started by this request carry it too, and is echoed in
    the X-Request-ID response header.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    started = time.perf_counter()
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "http_request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 1),
    )
    return response


def _error_response(request: Request, status: int, error: str, message: str, *, retryable: bool) -> JSONResponse:
    """Every error leaves the API in the ErrorResponse shape, tagged with the request ID."""
    body = ErrorResponse(error=error, message=message, retryable=retryable)
    response = JSONResponse(status_code=status, content=body.model_dump(exclude_none=True))
    response.headers["X-Request-ID"] = _request_id(request)
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # FastAPI's default 422 body is {"detail": [...]}
    message = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors())
    return _error_response(request, 422, "validation_error", message, retryable=False)


@app.exception_handler(InputValidationError)
async def input_validation_handler(request: Request, exc: InputValidationError) -> JSONResponse:
    return _error_response(request, 422, "invalid_input", exc.message, retryable=False)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return _error_response(request, 500, "internal_error", "An unexpected error occurred", retryable=True)


app.include_router(health.router)
app.include_router(items.router, prefix="/api/v1")
