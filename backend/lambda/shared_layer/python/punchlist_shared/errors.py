"""punchlist_shared.errors — Error taxonomy shared by all punchlist Lambdas.

Every error carries the HTTP status code and the machine-readable error
code the handlers surface in the response envelope.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "BackendError",
    "ConfigError",
    "NotFoundError",
    "PersistenceError",
    "PunchlistError",
    "RenderError",
    "SchemaBootstrapRequired",
    "ValidationError",
]


class PunchlistError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def extra(self) -> Dict[str, Any]:
        """Fields merged into the error envelope payload."""
        out: Dict[str, Any] = {"code": self.code}
        if self.details not in (None, ""):
            out["details"] = self.details
        return out


class ConfigError(PunchlistError):
    """Required configuration is absent."""

    code = "CONFIG_ERROR"


class ValidationError(PunchlistError):
    """Malformed or missing request input."""

    status_code = 400
    code = "INVALID_INPUT"


class BackendError(PunchlistError):
    """Non-2xx response (or transport failure) from the data store."""

    code = "UPSTREAM_ERROR"

    def __init__(self, message: str, *, status: int = 0, details: Optional[Any] = None) -> None:
        super().__init__(message, details=details)
        self.status = status

    def extra(self) -> Dict[str, Any]:
        out = super().extra()
        if self.status:
            out["upstream_status"] = self.status
        return out


class PersistenceError(BackendError):
    """A punchlist write did not succeed."""

    code = "PERSISTENCE_ERROR"


class NotFoundError(PunchlistError):
    status_code = 404
    code = "NOT_FOUND"


class RenderError(PunchlistError):
    """Failure while composing the PDF document."""

    code = "RENDER_ERROR"


class SchemaBootstrapRequired(PunchlistError):
    """The store lacks the schema an operator must provision out-of-band."""

    status_code = 501
    code = "SCHEMA_BOOTSTRAP_REQUIRED"

    def __init__(self, message: str, *, action: str, details: Optional[Any] = None) -> None:
        super().__init__(message, details=details)
        self.action = action

    def extra(self) -> Dict[str, Any]:
        out = super().extra()
        out["action"] = self.action
        return out
