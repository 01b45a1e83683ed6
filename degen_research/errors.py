"""Error taxonomy for a research run.

Exactly one of these surfaces to the caller per failed run. ``phase`` names the
pipeline phase the error escaped from and ``context`` carries the stage log and
any partial results gathered before the failure.
"""
from __future__ import annotations

from typing import Any


class ResearchError(Exception):
    def __init__(
        self,
        message: str,
        *,
        phase: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.phase = phase
        self.context: dict[str, Any] = dict(context or {})

    def __str__(self) -> str:
        message = super().__str__()
        if self.phase:
            return f"[{self.phase}] {message}"
        return message


class ConfigurationError(ResearchError):
    """Missing or invalid credentials/settings."""


class BudgetExceededError(ResearchError):
    """The cost gate refused the run before any work started."""


class NoSourcesError(ResearchError):
    """Source gathering, including the emergency query, found nothing."""


class ProviderError(ResearchError):
    """A search or LLM call failed."""


class RetryExhaustedError(ProviderError):
    def __init__(self, label: str, attempts: int, last_error: BaseException | None):
        super().__init__(
            f"{label or 'operation'} still rate limited after {attempts} attempts: {last_error}"
        )
        self.label = label
        self.attempts = attempts
        self.last_error = last_error


class EmptyContentError(ProviderError):
    """An LLM response had no usable content."""
