"""Error responses.

Every failure leaves the API as ``{"error": true, "code", "message", "details"}``.
Services raise :class:`ApiError` (or :class:`ParameterError` from the
validation helpers); the handlers registered by :func:`install_error_handlers`
render them.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from coral_api.backend.core.stats.glm import ModelFittingError
from coral_api.backend.core.utils.serialization import to_jsonable
from coral_api.backend.core.utils.validation import ParameterError

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An error with an HTTP status and a machine-readable code."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details or {}

    @classmethod
    def data_unavailable(cls, message: str, hint: str | None = None) -> ApiError:
        return cls(500, "DATA_UNAVAILABLE", message, {"hint": hint} if hint else {})

    @classmethod
    def not_found(cls, message: str, details: dict[str, Any] | None = None) -> ApiError:
        return cls(404, "NO_DATA_FOUND", message, details)

    @classmethod
    def insufficient(cls, message: str, n: int, minimum: int, **details: Any) -> ApiError:
        return cls(400, "INSUFFICIENT_DATA", message, {"n": n, "minimum_required": minimum, **details})


def error_body(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"error": True, "code": code, "message": message, "details": to_jsonable(details or {})}


def error_response(status_code: int, code: str, message: str, details: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_body(code, message, details))


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


async def _parameter_error_handler(request: Request, exc: ParameterError) -> JSONResponse:
    return error_response(400, exc.code, exc.message, exc.details)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    name = str(first.get("loc", ["", "parameter"])[-1])
    return error_response(
        400,
        "INVALID_PARAMETER",
        f"Parameter '{name}' is invalid: {first.get('msg', 'validation failed')}",
        {"parameter": name, "errors": [{"loc": list(e.get("loc", [])), "msg": e.get("msg")} for e in errors]},
    )


async def _model_error_handler(request: Request, exc: ModelFittingError) -> JSONResponse:
    logger.warning("Model fitting failed on %s: %s", request.url.path, exc)
    return error_response(500, "MODEL_FITTING_FAILED", "GLM model fitting failed", {"error_message": str(exc)})


def install_error_handlers(app: FastAPI, production: bool = False) -> None:
    """Register the JSON error handlers on ``app``."""

    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s", request.url.path)
        details: dict[str, Any] = {"path": request.url.path}
        if not production:
            details["error_message"] = str(exc)
        return error_response(500, "INTERNAL_ERROR", "An unexpected server error occurred", details)

    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(ParameterError, _parameter_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(ModelFittingError, _model_error_handler)
    app.add_exception_handler(Exception, _unhandled)
