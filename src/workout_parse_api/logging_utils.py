"""Correlation-id helpers so every log line of a request can be stitched together."""
import logging
import uuid
from typing import Any, MutableMapping


LOG_PREFIX = "ParseWorkout"


def create_correlation_id() -> str:
    """Return a new correlation id for one request."""
    return str(uuid.uuid4())


class CorrelationLogger(logging.LoggerAdapter):
    """Logger adapter that prefixes messages with ``[ParseWorkout][<id>]``.

    The id is also attached to the record as ``correlation_id`` so structured
    handlers can index on it.
    """

    def __init__(self, logger: logging.Logger, correlation_id: str):
        super().__init__(logger, {"correlation_id": correlation_id})

    @property
    def correlation_id(self) -> str:
        return self.extra["correlation_id"]

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]):
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("correlation_id", self.correlation_id)
        kwargs["extra"] = extra
        return f"[{LOG_PREFIX}][{self.correlation_id}] {msg}", kwargs


def with_correlation(logger: logging.Logger, correlation_id: str) -> CorrelationLogger:
    return CorrelationLogger(logger, correlation_id)
