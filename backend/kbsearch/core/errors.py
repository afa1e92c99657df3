"""
Error taxonomy and the Result wrapper returned at component boundaries.

Errors are raised inside the HTTP helpers and caught by AgentClient and
KnowledgeStore, which hand them to callers as ``Result.fail(error)``.
"""
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class KnowledgeSearchError(Exception):
    """Base class for every recoverable failure in the client layer."""

    default_message = "Something went wrong"

    def __init__(
        self,
        message: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.default_message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(KnowledgeSearchError):
    """Rejected before any I/O: bad file type or size, or a busy pipeline."""

    default_message = "Invalid request"


class TransportError(KnowledgeSearchError):
    """Network unreachable, connection reset or timed out."""

    default_message = "A network error occurred. Please check your connection and try again."


class ServerError(KnowledgeSearchError):
    """Non-2xx response or an application-level error status."""

    default_message = "The server could not complete the request"


class MalformedResponseError(KnowledgeSearchError):
    """The payload did not have the expected shape."""

    default_message = "Received an unexpected response from the server"


@dataclass(frozen=True)
class Result(Generic[T]):
    success: bool
    value: T | None = None
    error: KnowledgeSearchError | None = None

    @classmethod
    def ok(cls, value: T | None = None) -> "Result[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: KnowledgeSearchError) -> "Result[T]":
        return cls(success=False, error=error)

    @property
    def error_message(self) -> str | None:
        return self.error.message if self.error else None
