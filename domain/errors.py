"""Error taxonomy shared by every layer of the order entry service."""
from __future__ import annotations

from typing import Optional


class OrderEntryError(Exception):
    """Base class for recoverable order entry failures."""


class ValidationFailed(OrderEntryError, ValueError):
    """Raised when a state change is rejected by a validation rule."""


class UnknownCustomer(ValidationFailed):
    """Raised when a customer id does not match any known customer."""


class EmptyInput(OrderEntryError, ValueError):
    """Raised when an utterance is blank after trimming."""


class NoValidItems(OrderEntryError):
    """Raised when a normalized item list has no entry with a usable name."""


class NoActiveDraft(OrderEntryError):
    """Raised when a draft operation is attempted with no draft open."""


class NormalizationInProgress(OrderEntryError):
    """Raised when a second normalization is requested for the same draft."""


class StaleResponse(OrderEntryError):
    """Raised when a normalization reply arrives for a draft that was replaced."""


class LLMUnavailable(OrderEntryError):
    """Raised when no completion client is configured."""


class MalformedResponse(OrderEntryError):
    """Raised when the model reply does not match the expected shape."""


class UpstreamError(OrderEntryError):
    """Raised when the completion endpoint cannot be reached or answers non-2xx."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"HTTP {self.status_code}: {self.message}"
