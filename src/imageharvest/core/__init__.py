"""Core prompt-templating and provider-orchestration pipeline.

Architecture Overview
---------------------
1. **Configuration Layer** (config.py):
   - Environment-based configuration using Pydantic Settings
   - All settings prefixed with IMAGEHARVEST_ in .env files

2. **Templating Layer** (word_lookup.py, variable_resolver.py, prompt_engine.py):
   - ``${word}`` / ``$${word}`` / inline array substitution
   - Style injection, multiplier, group and word shuffles

3. **Provider Layer** (provider_config.py, credentials.py, guidance.py,
   retry.py, adapters/, orchestrator.py):
   - Closed adapter registry keyed by ProviderKind
   - Shared retry policy and HTTP error classification

4. **Serving Layer** (request_queue.py, generation_store.py, service.py):
   - Single-worker FIFO queue
   - Optional SQLite generation records
   - GenerationService facade

Usage Example
-------------
    from imageharvest.core import GenerationService, config

    service = await GenerationService.from_config(config, client)
    built = await service.build_prompt("a $${color} cat with a $${color} hat")
    result = await service.generate_image(built.prompt, ["flux", "dalle"])

See Also
--------
- HarvestConfig: Configuration options and environment variables
- ProviderOrchestrator: Validation, dispatch and retry
"""

from imageharvest.core.config import HarvestConfig, config
from imageharvest.core.errors import ErrorCode, HarvestError
from imageharvest.core.orchestrator import ProviderOrchestrator
from imageharvest.core.prompt_engine import PromptOptions, PromptTemplateEngine, StyleFlags
from imageharvest.core.provider_config import ProviderConfig, ProviderKind
from imageharvest.core.request_queue import RequestQueue
from imageharvest.core.results import GenerationRequest, GenerationResult, PromptBuildResult
from imageharvest.core.service import GenerationService

__all__ = [
    "ErrorCode",
    "GenerationRequest",
    "GenerationResult",
    "GenerationService",
    "HarvestConfig",
    "HarvestError",
    "PromptBuildResult",
    "PromptOptions",
    "PromptTemplateEngine",
    "ProviderConfig",
    "ProviderKind",
    "ProviderOrchestrator",
    "RequestQueue",
    "StyleFlags",
    "config",
]
