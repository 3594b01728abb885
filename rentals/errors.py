"""
Error taxonomy for the booking engine.

Service code raises these; `install_error_handlers` turns them into JSON
responses of the same shape FastAPI uses for HTTPException (`{"detail": ...}`).
"""

from __future__ import annotations

import sqlite3
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger
from tortoise.exceptions import BaseORMException

# ORM errors plus raw driver errors the client does not wrap.
STORE_ERRORS: tuple[type[Exception], ...] = (BaseORMException, sqlite3.Error, ConnectionError)


class RentalError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, **extra: Any) -> None:
        super().__init__(detail)
        self.detail = detail
        self.extra = extra

    def to_body(self) -> dict[str, Any]:
        return {"detail": self.detail, **self.extra}


class ValidationError(RentalError):
    """Malformed input, rejected before any write."""

    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT


class AvailabilityConflictError(RentalError):
    status_code = status.HTTP_409_CONFLICT


class GuardViolationError(RentalError):
    """Lifecycle transition attempted without its precondition."""

    status_code = status.HTTP_400_BAD_REQUEST


class AuthorizationError(RentalError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(RentalError):
    status_code = status.HTTP_404_NOT_FOUND


class ExternalDependencyError(RentalError):
    """Store or payment provider failed. Retryable; details stay in the logs."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, detail: str = "Service temporarily unavailable, please try again") -> None:
        super().__init__(detail)


@asynccontextmanager
async def store_errors(action: str, **context: Any):
    """Convert ORM/driver failures into ExternalDependencyError, logging the context."""
    try:
        yield
    except STORE_ERRORS as exc:
        logger.bind(**context).error("Store failure during {}: {}", action, exc)
        raise ExternalDependencyError() from exc


async def _rental_error_handler(request: Request, exc: RentalError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RentalError, _rental_error_handler)  # type: ignore[arg-type]
