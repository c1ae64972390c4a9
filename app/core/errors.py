"""Service-layer exception taxonomy.

Services raise these; app.api.envelope maps each class to an HTTP status
and renders the error envelope.  Services never import FastAPI.
"""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    status_code = 400

    def __init__(self, message: str, errors: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors


class ValidationError(ServiceError):
    """Malformed input, rejected before any write."""

    status_code = 400


class StateConflictError(ServiceError):
    """Action attempted from the wrong lifecycle state."""

    status_code = 400


class AuthorizationError(ServiceError):
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class DuplicateError(ServiceError):
    status_code = 409
