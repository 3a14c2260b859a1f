"""Generation service: the facade consumed by the routing layer.

Wires the prompt engine, provider orchestrator, request queue and the
optional persistence collaborator together and exposes three operations:

- ``build_prompt``: expand a template without generating
- ``generate_image``: enqueue a request; the worker builds the prompt and
  generates with one of the candidate providers
- ``get_queue_status``: queue length, worker state and pending summaries

Usage Example
-------------
    >>> async with httpx.AsyncClient() as client:
    ...     service = await GenerationService.from_config(config, client)
    ...     ticket = service.generate_image("a ${color} cat", ["flux", "dalle"])
    ...     result = await ticket
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import random
import sqlite3
from collections.abc import Sequence
from typing import Any

import httpx

from .adapters import AdapterRegistry
from .config import HarvestConfig
from .credentials import CredentialProvider
from .errors import ErrorCode, HarvestError
from .generation_store import GenerationStore, SqliteGenerationStore
from .orchestrator import ProviderOrchestrator
from .prompt_engine import PromptOptions, PromptTemplateEngine, StyleFlags
from .provider_config import build_provider_source
from .request_queue import QueueTicket, RequestQueue
from .results import GenerationRequest, GenerationResult, PromptBuildResult
from .retry import RetryPolicy
from .variable_resolver import VariableResolver
from .word_lookup import build_word_lookup

logger = logging.getLogger(__name__)


class GenerationService:
    """Facade over engine, orchestrator, queue and store.

    Args:
        engine: Prompt template engine
        orchestrator: Provider orchestrator
        store: Optional persistence collaborator
        average_processing_seconds: Queue wait estimate per item
        item_timeout_seconds: Queue-level timeout per item (None disables)
    """

    def __init__(
        self,
        engine: PromptTemplateEngine,
        orchestrator: ProviderOrchestrator,
        store: GenerationStore | None = None,
        average_processing_seconds: float = 30.0,
        item_timeout_seconds: float | None = None,
    ):
        self.engine = engine
        self.orchestrator = orchestrator
        self.store = store
        self.queue = RequestQueue(
            self.process,
            average_processing_seconds=average_processing_seconds,
            item_timeout_seconds=item_timeout_seconds,
        )

    @classmethod
    async def from_config(
        cls,
        settings: HarvestConfig,
        client: httpx.AsyncClient,
        rng: random.Random | None = None,
    ) -> GenerationService:
        """Build the full pipeline from configuration and warm the word cache."""
        rng = rng if rng is not None else random.Random()

        word_lookup = build_word_lookup(
            settings.words_dir, settings.word_db_path, settings.word_cache_size
        )
        await word_lookup.warmup()

        credentials = CredentialProvider(settings)
        registry = AdapterRegistry.default(
            credentials, client, settings.max_payload_bytes, rng=rng
        )
        orchestrator = ProviderOrchestrator(
            build_provider_source(settings.providers_file, settings.provider_config_ttl_seconds),
            registry,
            retry_policy=RetryPolicy(backoff_seconds=settings.retry_backoff_seconds),
            rng=rng,
            flaky_max_attempts=settings.flaky_max_attempts,
            slow_model_max_attempts=settings.slow_model_max_attempts,
        )
        store = (
            SqliteGenerationStore(settings.generation_db_path)
            if settings.generation_db_path is not None
            else None
        )

        logger.info("Generation service initialized")
        return cls(
            PromptTemplateEngine(VariableResolver(word_lookup), rng=rng),
            orchestrator,
            store=store,
            average_processing_seconds=settings.average_processing_seconds,
            item_timeout_seconds=settings.queue_item_timeout_seconds,
        )

    async def build_prompt(
        self,
        prompt: str,
        multiplier: str | bool | None = None,
        group_shuffle: bool = False,
        word_shuffle: bool = False,
        custom_variables: str | None = "",
        style: StyleFlags | None = None,
    ) -> PromptBuildResult:
        return await self.engine.build(
            prompt, multiplier, group_shuffle, word_shuffle, custom_variables, style
        )

    def generate_image(
        self,
        prompt: str,
        provider_candidates: Sequence[str],
        guidance: float | None = None,
        user_id: str = "undefined",
        options: PromptOptions | None = None,
        seed: int | None = None,
    ) -> QueueTicket:
        """Enqueue a generation. Await the returned ticket for the result."""
        request = GenerationRequest(
            prompt=prompt,
            original_prompt=prompt,
            provider_candidates=tuple(provider_candidates),
            guidance=guidance,
            user_id=user_id or "undefined",
            seed=seed,
            options=options or PromptOptions(),
        )
        return self.queue.enqueue(request)

    async def process(self, request: GenerationRequest) -> GenerationResult:
        """Queue worker step: build the prompt, generate, persist."""
        options = request.options or PromptOptions()
        built = await self.engine.build(
            request.prompt,
            options.multiplier,
            options.group_shuffle,
            options.word_shuffle,
            options.custom_variables,
            options.style,
        )
        if not built.ok:
            return GenerationResult.failure(
                None, HarvestError(built.error or "", code=ErrorCode.INVALID_PARAMS)
            )

        resolved = dataclasses.replace(request, prompt=built.prompt)
        result = await self.orchestrator.generate_from_candidates(
            resolved.provider_candidates,
            resolved.prompt,
            resolved.guidance,
            resolved.user_id,
            seed=resolved.seed,
        )
        result.meta.setdefault("prompt", resolved.prompt)

        if self.store is not None:
            try:
                result.record_id = await asyncio.to_thread(self.store.save, resolved, result)
            except sqlite3.Error as e:
                logger.error(f"Failed to store generation {result.request_id}: {e}")

        return result

    def get_queue_status(self) -> dict[str, Any]:
        return self.queue.get_queue_status()

    def get_queue_health(self) -> dict[str, Any]:
        return self.queue.get_health()

    async def list_available_providers(self) -> list[str]:
        return await self.orchestrator.list_available_providers()

    async def close(self) -> None:
        await self.queue.close()
