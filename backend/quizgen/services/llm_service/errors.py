"""Exceptions raised by the structured-output layer.

Every per-attempt failure is one of the ``StructuredOutputError`` subclasses
below; the extractor catches them, turns them into feedback for the next
attempt, and only lets ``ExhaustedRetriesError`` or
``ExtractionCancelledError`` reach the caller.
"""

from __future__ import annotations

from typing import Optional


class StructuredOutputError(Exception):
    """Base class. ``reason`` is a short machine-readable code."""

    reason = "structured-output-error"

    def __init__(self, message: Optional[str] = None, *, reason: Optional[str] = None):
        if reason is not None:
            self.reason = reason
        super().__init__(message or self.reason)


class CompletionTransportError(StructuredOutputError):
    """Network, auth, rate-limit or timeout failure from the model client."""

    reason = "transport-error"


class MalformedOutputError(StructuredOutputError):
    """Completion text could not be parsed as JSON after repair."""

    reason = "json-parse-error"


class ShapeMismatchError(StructuredOutputError):
    """Parsed value was not the array/object the request expected."""

    reason = "expected-array"


class SchemaViolationError(StructuredOutputError):
    """A required field was missing or a field value could not be resolved."""

    reason = "schema-violation"


class ExhaustedRetriesError(StructuredOutputError):
    """Raised after ``max_attempts`` consecutive failed attempts."""

    reason = "exhausted-retries"

    def __init__(self, last_error: Optional[BaseException], attempts: int):
        self.last_error = last_error
        self.attempts = attempts
        last = f"{type(last_error).__name__}: {last_error}" if last_error else "unknown error"
        super().__init__(
            f"Failed to produce valid structured output after {attempts} attempt(s). "
            f"Last error: {last}"
        )


class ExtractionCancelledError(StructuredOutputError):
    """The caller's deadline expired before an attempt could succeed."""

    reason = "cancelled"
