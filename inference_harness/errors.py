"""
Error Types

Exceptions raised by the inference harness.
"""

from typing import Optional


class HarnessError(Exception):
    """Base exception for harness operations."""


# ============ Loading ============

class LoadError(HarnessError):
    """Raised when a model cannot be loaded."""


class FetchError(LoadError):
    """Raised when a model, descriptor or frame cannot be retrieved."""

    def __init__(self, url: str, status: Optional[int] = None, reason: str = ""):
        self.url = url
        self.status = status
        self.reason = reason
        message = f"Failed to load {url} status: {status}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class UnrecognizedFormatError(LoadError):
    """Raised when the model file extension maps to no known format."""

    def __init__(self, extension: str):
        self.extension = extension
        super().__init__(f"Unrecognized model format: '{extension}'")


class InvalidModelError(LoadError):
    """Raised when model bytes fail to decode or verify."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid model: {reason}")


class RequestSupersededError(HarnessError):
    """Raised to the awaiter of a retrieval that a newer request cancelled."""


# ============ Lifecycle ============

class NotInitializedError(HarnessError, RuntimeError):
    """Raised when inference is requested before init() completed."""


class UnsupportedBackendError(HarnessError, ValueError):
    """Raised when an importer does not know a backend or preference."""


# ============ Data ============

class InvalidShapeError(HarnessError, ValueError):
    """Raised for empty shapes or non-positive dimensions."""


class TruncatedFrameError(HarnessError, ValueError):
    """Raised when an ark frame is shorter than header plus payload."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Truncated frame: expected at least {expected} elements, got {actual}"
        )


class NumericDomainError(HarnessError, ArithmeticError):
    """Raised when an aggregate statistic has no valid real value."""
