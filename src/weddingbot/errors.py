"""Exception hierarchy shared by the intake pipeline and storage layer."""

from __future__ import annotations


class WeddingBotError(Exception):
    """Base class for every error raised by weddingbot."""


class ConfigurationError(WeddingBotError):
    """Configuration is missing or inconsistent."""


class LocalIOFailure(WeddingBotError):
    """Writing, reading or removing a local media file failed."""


class ProviderError(WeddingBotError):
    """An error reported by the remote storage provider.

    Attributes:
        status:  HTTP status code (0 when the request never got a response).
        reasons: Provider-specific reason strings, e.g. ``rateLimitExceeded``.
    """

    def __init__(
        self,
        message: str,
        status: int = 0,
        reasons: list[str] | tuple[str, ...] = (),
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.reasons = tuple(reasons)

    def __str__(self) -> str:
        if self.reasons:
            return f"[{self.status}] {self.message} ({', '.join(self.reasons)})"
        return f"[{self.status}] {self.message}"


class TransientProviderError(ProviderError):
    """Provider signalled a quota / rate-limit condition."""


class FatalProviderError(ProviderError):
    """Any other provider failure; never retried."""


class RetriesExhaustedError(ProviderError):
    """A rate-limited operation kept failing until the policy ran out."""

    def __init__(self, label: str, attempts: int, last_error: ProviderError) -> None:
        super().__init__(
            f"{label}: retries exhausted after {attempts} attempts: {last_error.message}",
            status=last_error.status,
            reasons=last_error.reasons,
        )
        self.attempts = attempts
        self.last_error = last_error
