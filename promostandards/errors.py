"""
Error taxonomy.

Every failure raised by the library is a PromoStandardsError carrying a
machine-checkable kind, a human readable message and a structured details
mapping. Callers branch on ``error.kind`` instead of on exception subclasses.

Example:
AUTH_ERROR blocks before any request is built.
VALIDATION_ERROR names the missing field or the supported versions.
SERVICE_ERROR names the service and operation that failed upstream.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    AUTHENTICATION = "AUTH_ERROR"
    VALIDATION = "VALIDATION_ERROR"
    NETWORK = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT_ERROR"
    SERVICE = "SERVICE_ERROR"
    CONFIGURATION = "CONFIGURATION_ERROR"
    NOT_FOUND = "NOT_FOUND"


class PromoStandardsError(Exception):
    """Single error type for the library, tagged with an ErrorKind."""

    def __init__(self, kind: ErrorKind, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details: dict[str, Any] = dict(details or {})
        self.timestamp = datetime.now(UTC).isoformat()

    @property
    def code(self) -> str:
        return self.kind.value

    def with_details(self, **extra: Any) -> PromoStandardsError:
        """Add context keys without overwriting the ones already present."""
        for key, value in extra.items():
            self.details.setdefault(key, value)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": _json_safe(self.details),
            "timestamp": self.timestamp,
        }

    def __repr__(self) -> str:
        return f"PromoStandardsError(kind={self.kind.value!r}, message={self.message!r})"

    @classmethod
    def authentication(cls, message: str, details: dict[str, Any] | None = None) -> PromoStandardsError:
        return cls(ErrorKind.AUTHENTICATION, message, details)

    @classmethod
    def validation(cls, message: str, details: dict[str, Any] | None = None) -> PromoStandardsError:
        return cls(ErrorKind.VALIDATION, message, details)

    @classmethod
    def network(cls, message: str, details: dict[str, Any] | None = None) -> PromoStandardsError:
        return cls(ErrorKind.NETWORK, message, details)

    @classmethod
    def timeout(
        cls,
        message: str,
        timeout_seconds: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> PromoStandardsError:
        return cls(ErrorKind.TIMEOUT, message, {"timeout_seconds": timeout_seconds, **(details or {})})

    @classmethod
    def service(
        cls,
        message: str,
        service: str,
        operation: str,
        details: dict[str, Any] | None = None,
    ) -> PromoStandardsError:
        return cls(ErrorKind.SERVICE, message, {"service": service, "operation": operation, **(details or {})})

    @classmethod
    def configuration(cls, message: str, details: dict[str, Any] | None = None) -> PromoStandardsError:
        return cls(ErrorKind.CONFIGURATION, message, details)

    @classmethod
    def not_found(cls, message: str, details: dict[str, Any] | None = None) -> PromoStandardsError:
        return cls(ErrorKind.NOT_FOUND, message, details)


def _json_safe(value: Any) -> Any:
    if isinstance(value, PromoStandardsError):
        return value.to_dict()
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return value
