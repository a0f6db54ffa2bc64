"""Error helpers and JSON response builders shared across the service."""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger("orderinfo")

JSON_HEADERS = {"Content-Type": "application/json"}


class ServiceError(Exception):
    """An error carrying a context message and the error that caused it."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message}: {self.cause}"


class NoRowsError(LookupError):
    """Raised when a query that must return a row returns none."""

    def __init__(self, message: str = "sql: no rows in result set") -> None:
        super().__init__(message)


def log_error(message: str, error: BaseException) -> ServiceError:
    """Log ``message: error`` and return a ServiceError wrapping ``error``."""
    logger.error("%s: %s", message, error)
    return ServiceError(message, error)


def _default(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    raise TypeError(f"cannot serialise {type(value).__name__}")


def json_response(code: int, payload: Any) -> tuple[bytes, int, dict[str, str]]:
    """Build a JSON response as ``(body, status, headers)``."""
    body = json.dumps(payload, default=_default, ensure_ascii=False).encode("utf-8")
    return body, code, dict(JSON_HEADERS)


def error_response(code: int, message: str) -> tuple[bytes, int, dict[str, str]]:
    """Build a JSON error response of the form ``{"error": message}``."""
    return json_response(code, {"error": message})