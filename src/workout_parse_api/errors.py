"""API error taxonomy and error-response helpers."""
import asyncio
import json
from typing import Any, Literal, Optional

from fastapi.responses import JSONResponse
from pydantic import ValidationError


ApiErrorCode = Literal[
    "ZOD_INVALID",
    "UNAUTHORIZED",
    "CONTENT_REFUSED",
    "PARSE_FAILED",
    "DB_FAILED",
    "UNKNOWN",
]


class ApiError(Exception):
    """Error surfaced to the client with an HTTP status and a stable code."""

    def __init__(
        self,
        status: int,
        code: ApiErrorCode,
        message: str,
        details: Any = None,
    ):
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message
        self.details = details

    def to_dict(self, correlation_id: Optional[str] = None) -> dict:
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        if correlation_id:
            body["correlationId"] = correlation_id
        return body


class ParserRefusalError(Exception):
    """The model declined to produce output for the given notes."""


class AgentIterationLimitError(Exception):
    """The resolution agent kept requesting tools past its iteration cap."""


class ExerciseResolutionError(Exception):
    """An exercise name could not be resolved even after fallback."""


class PersistenceError(Exception):
    """A database write or read failed after the workout was parsed."""


def validation_details(error: ValidationError) -> list[dict]:
    """Flatten pydantic errors into ``[{field, message}]`` for the client."""
    details = []
    for issue in error.errors():
        field = ".".join(str(part) for part in issue.get("loc", ())) or "body"
        details.append({"field": field, "message": issue.get("msg", "Invalid value")})
    return details


def normalize_error(error: BaseException) -> ApiError:
    """Map any exception to an ApiError, defaulting to UNKNOWN."""
    if isinstance(error, ApiError):
        return error

    if isinstance(error, json.JSONDecodeError):
        return ApiError(400, "ZOD_INVALID", "Invalid JSON body", str(error))

    if isinstance(error, ValidationError):
        return ApiError(400, "ZOD_INVALID", "Invalid request", validation_details(error))

    if isinstance(error, asyncio.TimeoutError):
        return ApiError(408, "PARSE_FAILED", "Workout parsing timed out")

    if isinstance(error, (AgentIterationLimitError, ExerciseResolutionError)):
        return ApiError(500, "PARSE_FAILED", "Exercise resolution failed", str(error))

    if isinstance(error, PersistenceError):
        return ApiError(500, "DB_FAILED", "Database operation failed", str(error))

    return ApiError(500, "UNKNOWN", "Unexpected error occurred", {"error": str(error)})


def to_error_response(error: ApiError, correlation_id: Optional[str] = None) -> JSONResponse:
    return JSONResponse(status_code=error.status, content=error.to_dict(correlation_id))
