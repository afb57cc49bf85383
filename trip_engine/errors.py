"""Error taxonomy for itinerary generation.

``GenerationError`` subclasses describe a failed AI-backed step and are the
only exceptions the pipeline recovers from locally (fallback day, legacy path,
unchanged duplicate).  Anything else is a bug and surfaces as a terminal
error to the consumer.
"""

from __future__ import annotations

from typing import Optional


class TripEngineError(Exception):
    """Base class for every error raised by ``trip_engine``."""


class ConfigurationError(TripEngineError):
    """Trip or provider configuration is missing or unusable."""


class GenerationError(TripEngineError):
    """A generation step failed; callers may fall back."""


class ProviderTimeoutError(GenerationError):
    def __init__(self, timeout_sec: float, provider: str = "") -> None:
        self.timeout_sec = timeout_sec
        self.provider = provider
        label = f"{provider} " if provider else ""
        super().__init__(f"{label}request timed out after {timeout_sec:.1f}s")


class ProviderAPIError(GenerationError):
    def __init__(self, message: str, status_code: Optional[int] = None, provider: str = "") -> None:
        self.status_code = status_code
        self.provider = provider
        super().__init__(message)


class JSONParseError(GenerationError):
    def __init__(self, message: str, excerpt: str = "") -> None:
        self.excerpt = excerpt
        super().__init__(message)


class ValidationError(GenerationError):
    """Well-formed JSON that does not have the required structure."""


class DeadlineExceededError(GenerationError):
    """The request deadline leaves no room for another AI call."""


class DuplicateResolutionFailure(TripEngineError):
    """A duplicate could not be replaced.

    Never raised out of the resolver; instances are collected in its report.
    """

    def __init__(self, location: str, day_number: int, reason: str) -> None:
        self.location = location
        self.day_number = day_number
        self.reason = reason
        super().__init__(f"could not replace '{location}' on day {day_number}: {reason}")
