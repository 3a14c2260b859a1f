"""Provider orchestration: validate, dispatch, retry, classify.

The orchestrator turns ``(provider_id, prompt, guidance, user_id)`` into a
:class:`~imageharvest.core.results.GenerationResult`. It never raises: every
failure, including unexpected exceptions inside an adapter, is returned as a
failed result carrying a normalized :class:`ResultError`.

Generation Flow
---------------
1. Validate prompt, guidance (0-20) and that the provider is known and active
2. Normalize guidance for the provider's model family
3. Dispatch to the adapter registered for ``provider.kind``
4. Retry retryable failures for flaky providers (linear backoff)
5. Wrap the outcome in a GenerationResult

Candidate Selection
-------------------
``generate_from_candidates`` picks one provider uniformly at random (or
``abs(seed) % len(candidates)`` when a seed is given). If that provider is
skipped for missing credentials the remaining candidates are tried in random
order; any real failure is returned as-is.
"""

from __future__ import annotations

import logging
import math
import random
import time
from collections.abc import Callable, Sequence

from .adapters import AdapterRegistry, AdapterRequest, ProviderAdapterBase
from .errors import ConfigurationError, ErrorCode, HarvestError, ValidationError
from .guidance import MAX_GUIDANCE, normalize_guidance
from .provider_config import ProviderConfig, ProviderConfigSource
from .results import GenerationResult, new_request_id
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class ProviderOrchestrator:
    """Drives generation against the configured providers.

    Args:
        providers: Provider-configuration collaborator
        adapters: Registry with one adapter per ProviderKind
        retry_policy: Base retry policy (backoff unit, predicate, sleep)
        rng: Random source for candidate selection
        flaky_max_attempts: Total attempts for providers flagged flaky
        slow_model_max_attempts: Total attempts for slow flaky models
        clock: Monotonic clock used for durations
    """

    def __init__(
        self,
        providers: ProviderConfigSource,
        adapters: AdapterRegistry,
        retry_policy: RetryPolicy | None = None,
        rng: random.Random | None = None,
        flaky_max_attempts: int = 2,
        slow_model_max_attempts: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.providers = providers
        self.adapters = adapters
        self.retry_policy = retry_policy or RetryPolicy()
        self._rng = rng if rng is not None else random.Random()
        self.flaky_max_attempts = flaky_max_attempts
        self.slow_model_max_attempts = slow_model_max_attempts
        self._clock = clock

    # ------------------------------------------------------------------
    # Provider discovery
    # ------------------------------------------------------------------

    async def list_available_providers(self) -> list[str]:
        return await self.providers.list_active_providers()

    async def is_provider_available(self, provider_id: str) -> bool:
        provider = await self.providers.get_config(provider_id)
        return provider is not None and provider.is_active

    def select_provider(
        self,
        candidates: Sequence[str],
        seed: int | None = None,
        rng: random.Random | None = None,
    ) -> str:
        """Pick one candidate: ``abs(seed) % n`` with a seed, else uniformly at random."""
        if not candidates:
            raise ValidationError("No provider candidates given")
        if seed is not None:
            return candidates[abs(seed) % len(candidates)]
        return (rng or self._rng).choice(list(candidates))

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def _validate(
        self, provider_id: str, prompt: str, guidance: float | None
    ) -> ProviderConfig:
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValidationError("Prompt is required")

        if guidance is not None:
            if (
                isinstance(guidance, bool)
                or not isinstance(guidance, (int, float))
                or math.isnan(guidance)
                or not 0 <= guidance <= MAX_GUIDANCE
            ):
                raise ValidationError(
                    f"Guidance must be between 0 and {MAX_GUIDANCE:g}", details=str(guidance)
                )

        try:
            provider = await self.providers.get_config(provider_id)
        except Exception as e:
            raise ConfigurationError(
                f"Provider configuration unavailable: {e}",
                code=ErrorCode.PROVIDER_UNAVAILABLE,
                details=type(e).__name__,
            ) from e
        if provider is None:
            raise ValidationError(f"Unknown provider: {provider_id}")
        if not provider.is_active:
            raise ValidationError(f"Provider is not active: {provider_id}")
        return provider

    def _adapter_for(self, provider: ProviderConfig) -> ProviderAdapterBase:
        try:
            return self.adapters.get(provider.kind)
        except KeyError as e:
            raise ConfigurationError(
                f"No adapter registered for provider kind '{provider.kind.value}'",
                code=ErrorCode.PROVIDER_UNAVAILABLE,
            ) from e

    async def generate(
        self,
        provider_id: str,
        prompt: str,
        guidance: float | None = None,
        user_id: str = "undefined",
        seed: int | None = None,
    ) -> GenerationResult:
        """Generate one image with one provider.

        Args:
            provider_id: Provider to use
            prompt: Fully resolved prompt
            guidance: Caller guidance in [0, 20], or None for provider defaults
            user_id: Passed through to providers that accept it
            seed: Optional generation seed for providers that take one

        Returns:
            GenerationResult; ``success`` is False with ``error`` set on failure
        """
        request_id = new_request_id()
        started = self._clock()
        attempts = 0

        def elapsed_ms() -> int:
            return int((self._clock() - started) * 1000)

        try:
            provider = await self._validate(provider_id, prompt, guidance)
            adapter = self._adapter_for(provider)
            policy = self.retry_policy.for_provider(
                provider, self.flaky_max_attempts, self.slow_model_max_attempts
            )
            adapter_request = AdapterRequest(
                prompt=prompt,
                guidance=normalize_guidance(provider, guidance),
                user_id=user_id,
                seed=seed,
            )
        except HarvestError as e:
            logger.warning(f"[{request_id}] Rejected request for {provider_id}: {e.message}")
            return GenerationResult.failure(
                provider_id, e, request_id=request_id, duration_ms=elapsed_ms()
            )
        except Exception as e:
            logger.exception(f"[{request_id}] Unexpected error preparing {provider_id}")
            return GenerationResult.failure(
                provider_id,
                HarvestError(f"Unexpected error: {e}"),
                request_id=request_id,
                duration_ms=elapsed_ms(),
            )

        async def attempt():
            nonlocal attempts
            attempts += 1
            return await adapter.generate(provider, adapter_request)

        logger.info(
            f"[{request_id}] Generating with {provider.id} ({provider.kind.value}), "
            f"max attempts {policy.max_attempts}: {prompt[:50]}..."
        )

        try:
            response = await policy.run(attempt, label=f"[{request_id}] {provider.id}")
        except HarvestError as e:
            if e.code is ErrorCode.MISSING_CREDENTIALS:
                logger.warning(f"[{request_id}] Skipping {provider.id}: {e.message}")
            else:
                logger.error(
                    f"[{request_id}] {provider.id} failed after {attempts} attempt(s): "
                    f"{e.code.value} {e.message}"
                )
            return GenerationResult.failure(
                provider.id,
                e,
                request_id=request_id,
                attempts=attempts,
                duration_ms=elapsed_ms(),
            )
        except Exception as e:
            logger.exception(f"[{request_id}] Unexpected error from {provider.id}")
            return GenerationResult.failure(
                provider.id,
                HarvestError(f"Unexpected error: {e}"),
                request_id=request_id,
                attempts=attempts,
                duration_ms=elapsed_ms(),
            )

        duration = elapsed_ms()
        logger.info(f"[{request_id}] {provider.id} succeeded in {duration}ms")
        return GenerationResult.succeeded(
            provider.id,
            response.image_data,
            request_id=request_id,
            attempts=attempts,
            duration_ms=duration,
            meta={
                "kind": provider.kind.value,
                "guidance": adapter_request.guidance,
                **response.meta,
            },
        )

    async def generate_from_candidates(
        self,
        candidates: Sequence[str],
        prompt: str,
        guidance: float | None = None,
        user_id: str = "undefined",
        seed: int | None = None,
        rng: random.Random | None = None,
    ) -> GenerationResult:
        """Generate with one randomly selected candidate.

        Candidates skipped for missing credentials fall through to the others;
        the first non-skip result is returned.
        """
        if not candidates:
            return GenerationResult.failure(None, ValidationError("No provider candidates given"))

        source = rng or self._rng
        first = self.select_provider(candidates, seed=seed, rng=source)
        remaining = [c for c in candidates if c != first]
        order = [first, *(source.sample(remaining, len(remaining)))]

        result = await self.generate(first, prompt, guidance, user_id, seed)
        for provider_id in order[1:]:
            if not result.skipped:
                break
            logger.info(f"{result.provider_id} skipped, falling back to {provider_id}")
            result = await self.generate(provider_id, prompt, guidance, user_id, seed)

        return result
