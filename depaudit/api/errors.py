"""Unified error handling — ServiceError, ScanError and RequestValidationError → JSON."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from depaudit.engines.scan_runner.errors import (
    RepositoryAccessError,
    ScanError,
    VulnerabilityLookupError,
)
from depaudit.services import (
    ConflictError,
    NotFoundError,
    ServiceError,
    ValidationError,
)

_STATUS_MAP: dict[type[Exception], int] = {
    NotFoundError: 404,
    ConflictError: 409,
    ValidationError: 422,
    RepositoryAccessError: 502,
    VulnerabilityLookupError: 502,
}


def _status_for(exc: Exception) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_MAP:
            return _STATUS_MAP[cls]
    return 500


async def _service_error_handler(_request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=_status_for(exc), content={"detail": str(exc)})


async def _scan_error_handler(_request: Request, exc: ScanError) -> JSONResponse:
    return JSONResponse(
        status_code=_status_for(exc),
        content={"detail": str(exc), "retryable": exc.retryable},
    )


async def _validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    messages = []
    for err in errors:
        loc = " → ".join(str(part) for part in err["loc"])
        messages.append(f"{loc}: {err['msg']}")
    return JSONResponse(
        status_code=422,
        content={"detail": "; ".join(messages)},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register exception handlers on the app."""
    app.add_exception_handler(ServiceError, _service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ScanError, _scan_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
