"""Exception hierarchy for the captcha relay.

Every application error carries an HTTP status code and a machine-readable
error code so the API layer can map it to a response without a lookup table.
Provider failures (:class:`InferenceError`) are the exception: they are
recorded as task state by the background step and never reach a client.
"""

from __future__ import annotations

from typing import Any


class RelayError(Exception):
    """Base exception for all application-specific errors."""

    default_message: str = "An unexpected error occurred"
    default_error_code: str = "INTERNAL_ERROR"
    default_status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        *,
        error_code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.error_code = error_code or self.default_error_code
        self.status_code = status_code or self.default_status_code
        self.details = details or {}
        super().__init__(self.message)


# Validation Errors (400)
class InvalidInputError(RelayError):
    default_message = "Invalid input provided"
    default_error_code = "INVALID_INPUT"
    default_status_code = 400

    def __init__(
        self,
        message: str | None = None,
        *,
        field: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {}) or {}
        if field:
            details["field"] = field
        super().__init__(message, details=details, **kwargs)


# Authentication Errors (401)
class AuthenticationError(RelayError):
    default_message = "Authentication required"
    default_error_code = "AUTHENTICATION_REQUIRED"
    default_status_code = 401


class InvalidAuthTokenError(AuthenticationError):
    default_message = "Unauthorized: Invalid AUTH_TOKEN"
    default_error_code = "INVALID_AUTH_TOKEN"


class InvalidApiKeyError(AuthenticationError):
    default_message = "Unauthorized: Invalid API_KEY"
    default_error_code = "INVALID_API_KEY"


# Not Found Errors (404)
class TaskNotFoundError(RelayError):
    default_message = "Task not found or expired"
    default_error_code = "TASK_NOT_FOUND"
    default_status_code = 404

    def __init__(self, task_id: str, **kwargs: Any) -> None:
        self.task_id = task_id
        super().__init__(details={"task_id": task_id}, **kwargs)


# External Service Errors (5xx)
class ResultStoreError(RelayError):
    """Raised when the result store cannot be read or written."""

    default_message = "Result store temporarily unavailable"
    default_error_code = "RESULT_STORE_UNAVAILABLE"
    default_status_code = 503


class InferenceError(RelayError):
    """Raised when the inference provider fails or returns an unusable body."""

    default_message = "Inference provider request failed"
    default_error_code = "INFERENCE_FAILED"
    default_status_code = 502


# Internal Errors (500)
class ConfigurationError(RelayError):
    default_message = "Service is not fully configured"
    default_error_code = "CONFIGURATION_ERROR"
    default_status_code = 500

    def __init__(self, message: str | None = None, *, setting: str | None = None) -> None:
        self.setting = setting
        if message is None and setting:
            message = f'Required setting "{setting}" is not configured.'
        super().__init__(message, details={"setting": setting} if setting else None)
