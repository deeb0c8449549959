"""
Domain exceptions raised by services.

Each carries the HTTP status the API should answer with plus optional extra
fields merged into the JSON error body.
"""

from typing import Any, Dict, Optional


class QuizHubError(Exception):
    status_code = 400

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}


class ValidationError(QuizHubError):
    status_code = 400


class PermissionDeniedError(QuizHubError):
    status_code = 403


class NotFoundError(QuizHubError):
    status_code = 404


class ConflictError(QuizHubError):
    status_code = 409


class GoneError(QuizHubError):
    status_code = 410


class TooEarlyError(QuizHubError):
    status_code = 425


class ExternalServiceError(QuizHubError):
    status_code = 502

    def __init__(self, message: str, status_code: Optional[int] = None, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message, extra)
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(QuizHubError):
    status_code = 500
