"""Provider adapters and the registry that maps each ProviderKind to one.

The registry is closed over :class:`ProviderKind`: ``AdapterRegistry.default``
registers one adapter per kind and :meth:`AdapterRegistry.verify_complete`
fails loudly if a kind is left without an adapter.

Usage Example
-------------
    >>> registry = AdapterRegistry.default(credentials, client)
    >>> adapter = registry.get(ProviderKind.MULTIPART_FORM)
    >>> response = await adapter.generate(provider, AdapterRequest("a cat", 7.5))
"""

from __future__ import annotations

import logging
import random
from typing import Any

import httpx

from ..credentials import CredentialProvider
from ..provider_config import ProviderKind
from .base import (
    AdapterRequest,
    AdapterResponse,
    ProviderAdapterBase,
    classify_http_error,
)
from .cloud_predict import CloudPredictAdapter
from .direct_json import DirectJsonAdapter
from .multipart_form import MultipartFormAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Mapping from :class:`ProviderKind` to its adapter instance.

    Notes
    -----
    - Registering a second adapter for a kind replaces the first (with a warning)
    - ``get`` raises KeyError for a kind without an adapter
    """

    def __init__(self) -> None:
        self._adapters: dict[ProviderKind, ProviderAdapterBase] = {}

    def register(self, adapter: ProviderAdapterBase) -> None:
        if adapter.kind in self._adapters:
            logger.warning(f"Adapter for '{adapter.kind.value}' is already registered, overwriting")
        self._adapters[adapter.kind] = adapter
        logger.info(f"Registered provider adapter: {adapter.kind.value} ({adapter.name})")

    def get(self, kind: ProviderKind) -> ProviderAdapterBase:
        if kind not in self._adapters:
            available = ", ".join(k.value for k in self._adapters)
            raise KeyError(f"No adapter registered for '{kind.value}'. Available: {available}")
        return self._adapters[kind]

    def list_kinds(self) -> list[ProviderKind]:
        return list(self._adapters)

    def verify_complete(self) -> None:
        """Raise ValueError unless every ProviderKind has an adapter."""
        missing = [kind.value for kind in ProviderKind if kind not in self._adapters]
        if missing:
            raise ValueError(f"No adapter registered for provider kinds: {', '.join(missing)}")

    def get_adapter_info(self) -> list[dict[str, Any]]:
        return [adapter.get_adapter_info() for adapter in self._adapters.values()]

    @classmethod
    def default(
        cls,
        credentials: CredentialProvider,
        client: httpx.AsyncClient,
        max_payload_bytes: int = 20 * 1024 * 1024,
        rng: random.Random | None = None,
    ) -> AdapterRegistry:
        """Registry with the three built-in adapters."""
        registry = cls()
        registry.register(DirectJsonAdapter(credentials, client, max_payload_bytes))
        registry.register(MultipartFormAdapter(credentials, client, max_payload_bytes, rng=rng))
        registry.register(CloudPredictAdapter(credentials, client, max_payload_bytes))
        registry.verify_complete()
        return registry


__all__ = [
    "AdapterRegistry",
    "AdapterRequest",
    "AdapterResponse",
    "CloudPredictAdapter",
    "DirectJsonAdapter",
    "MultipartFormAdapter",
    "ProviderAdapterBase",
    "classify_http_error",
]
