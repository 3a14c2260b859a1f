"""Exception taxonomy for the generation pipeline.

Adapters and collaborators raise these; the public entry points
(:class:`~imageharvest.core.prompt_engine.PromptTemplateEngine` and
:class:`~imageharvest.core.orchestrator.ProviderOrchestrator`) catch them and
convert them into result objects, so callers never see a stack trace.

Every exception carries an :class:`ErrorCode`, a user-legible message, optional
provider-supplied ``details`` and a ``retryable`` flag consumed by
:class:`~imageharvest.core.retry.RetryPolicy`.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Normalized failure categories shared by every provider kind."""

    MISSING_CREDENTIALS = "MISSING_CREDENTIALS"
    INVALID_PARAMS = "INVALID_PARAMS"
    CONTENT_POLICY = "CONTENT_POLICY"
    AUTH_FAILED = "AUTH_FAILED"
    RATE_LIMIT = "RATE_LIMIT"
    TIMEOUT = "TIMEOUT"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    UNKNOWN = "UNKNOWN"


class HarvestError(Exception):
    """Base class for all pipeline errors.

    The message is intended to be displayed directly to the user.
    """

    code: ErrorCode = ErrorCode.UNKNOWN
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        details: str | None = None,
        retryable: bool | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        self.details = details
        self.status = status


class ValidationError(HarvestError):
    """Malformed input: empty prompt, guidance out of range, unknown provider."""

    code = ErrorCode.INVALID_PARAMS


class ConfigurationError(HarvestError):
    """Missing credentials or endpoint for a provider.

    Treated as a "skip" so callers can try another provider.
    """

    code = ErrorCode.MISSING_CREDENTIALS


class ProviderError(HarvestError):
    """A provider call failed. Subclasses fix the retry classification."""


class TransientProviderError(ProviderError):
    """Network failure, timeout or a 499/503 response."""

    code = ErrorCode.NETWORK_ERROR
    retryable = True


class ContentPolicyError(ProviderError):
    """The provider rejected the prompt's content. Never retried."""

    code = ErrorCode.CONTENT_POLICY


class TerminalProviderError(ProviderError):
    """Any other 4xx/5xx response or an unusable payload."""

    code = ErrorCode.SERVER_ERROR


class InternalTemplatingError(HarvestError):
    """Unexpected failure while expanding a prompt template."""

    code = ErrorCode.UNKNOWN


class QueueClearedError(HarvestError):
    """Raised into pending queue futures when the queue is cleared."""

    code = ErrorCode.PROVIDER_UNAVAILABLE
