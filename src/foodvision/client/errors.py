"""Failure kinds of a classification attempt.

Every error raised by the transport, the interpreter or the example catalog
derives from ``ClassificationError``. The session converts them into its
``Error`` state; none of them escape a submission.
"""

from __future__ import annotations

NETWORK_ERROR_MESSAGE = "Network error: failed to contact prediction API. Check CORS, network, or server status."


class ClassificationError(Exception):
    """Base class for classification failures."""

    @property
    def user_message(self) -> str:
        """Human-readable text for the error banner."""
        return str(self)


class NetworkError(ClassificationError):
    """Neither the primary nor the fallback attempt received an HTTP response."""

    def __init__(self, cause: BaseException, primary_cause: BaseException | None = None) -> None:
        super().__init__(f"Failed to contact prediction API: {cause or primary_cause}")
        self.cause = cause
        self.primary_cause = primary_cause

    @property
    def user_message(self) -> str:
        return NETWORK_ERROR_MESSAGE


class HttpError(ClassificationError):
    """The service answered with a non-2xx status. Never retried."""

    def __init__(self, status_code: int, detail: str | None = None) -> None:
        message = f"API error: {status_code}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class ParseError(ClassificationError):
    """A 2xx response body did not have the expected shape."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Failed to classify image: {reason}")
        self.reason = reason


class ExampleFetchError(ClassificationError):
    """A catalog example could not be fetched; raised before any classification."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Failed to load example: {reason}")
        self.name = name
        self.reason = reason
