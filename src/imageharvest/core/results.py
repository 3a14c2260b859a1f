"""Data models flowing through the generation pipeline."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from .errors import ErrorCode, HarvestError

if TYPE_CHECKING:
    from .prompt_engine import PromptOptions


# Fallback message returned by the prompt engine for any failure.
PROMPT_BUILD_ERROR = "Error generating image"


def new_request_id() -> str:
    """Short random identifier for log correlation."""
    return uuid.uuid4().hex[:9]


@dataclass(frozen=True)
class GenerationRequest:
    """One caller request, immutable once enqueued.

    ``original_prompt`` is what the user typed. ``prompt`` is the text handed
    to the template engine by the queue worker (the same text unless the caller
    resolved it already); ``options`` carries the build options for that step.
    """

    prompt: str
    original_prompt: str
    provider_candidates: tuple[str, ...]
    guidance: float | None = None
    user_id: str = "undefined"
    seed: int | None = None
    options: PromptOptions | None = None
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def summary(self) -> dict[str, Any]:
        """Loggable summary with the prompt truncated to 50 characters."""
        return {
            "prompt": f"{self.prompt[:50]}...",
            "providers": list(self.provider_candidates),
            "submitted_at": self.submitted_at.isoformat(),
        }


@dataclass(frozen=True)
class PromptBuildResult:
    """Outcome of :meth:`PromptTemplateEngine.build`.

    Exactly one of ``prompt`` or ``error`` is set.
    """

    original: str | None = None
    prompt: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, str]:
        if self.error is not None:
            return {"error": self.error}
        return {"original": self.original or "", "prompt": self.prompt or ""}


@dataclass(frozen=True)
class ResultError:
    """Normalized failure attached to a :class:`GenerationResult`."""

    kind: ErrorCode
    message: str
    retryable: bool = False
    details: str | None = None
    status: int | None = None

    @classmethod
    def from_exception(cls, exc: HarvestError) -> ResultError:
        return cls(
            kind=exc.code,
            message=exc.message,
            retryable=exc.retryable,
            details=exc.details,
            status=exc.status,
        )


@dataclass
class GenerationResult:
    """Provider-independent outcome of one generation.

    The same shape is produced by every adapter kind, so callers never branch
    on which provider handled the request.

    Attributes:
        provider_id: Provider that handled (or refused) the request
        success: True when ``image_data`` holds a base64 image
        image_data: Base64 encoded image, or None on failure
        error: Normalized failure, or None on success
        duration_ms: Wall-clock time spent in the orchestrator
        request_id: Correlation id used in log lines
        attempts: Number of adapter calls made (0 when validation failed)
        record_id: Identifier returned by the persistence collaborator
        meta: Adapter-supplied extras (model, endpoint)
    """

    provider_id: str | None
    success: bool
    image_data: str | None = None
    error: ResultError | None = None
    duration_ms: int = 0
    request_id: str = field(default_factory=new_request_id)
    attempts: int = 0
    record_id: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def succeeded(cls, provider_id: str, image_data: str, **kwargs: Any) -> GenerationResult:
        return cls(provider_id=provider_id, success=True, image_data=image_data, **kwargs)

    @classmethod
    def failure(
        cls, provider_id: str | None, exc: HarvestError, **kwargs: Any
    ) -> GenerationResult:
        return cls(
            provider_id=provider_id,
            success=False,
            error=ResultError.from_exception(exc),
            **kwargs,
        )

    @property
    def skipped(self) -> bool:
        """True when the provider was not attempted for lack of configuration."""
        return self.error is not None and self.error.kind is ErrorCode.MISSING_CREDENTIALS

    def to_dict(self, include_image: bool = True) -> dict[str, Any]:
        data = asdict(self)
        if self.error is not None:
            data["error"]["kind"] = self.error.kind.value
        if not include_image:
            data.pop("image_data", None)
        return data
