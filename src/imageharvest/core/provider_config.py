"""Provider configuration collaborator.

A :class:`ProviderConfig` describes one generation provider: which adapter
kind talks to it, where its endpoint lives and which model it runs. The
orchestrator only ever reads these records.

Sources
-------
- **StaticProviderTable**: In-process table; ``StaticProviderTable.default()``
  returns the built-in providers
- **JsonFileProviderSource**: Table loaded from a JSON file (list of records,
  or a mapping of id -> record)
- **CachedProviderSource**: TTL cache in front of any source

Every source answers two questions:

    await source.get_config("flux")       # ProviderConfig | None
    await source.list_active_providers()  # ["dalle", "flux", ...]
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterable
from enum import Enum
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class ProviderKind(str, Enum):
    """Closed set of adapter kinds."""

    DIRECT_JSON = "direct-json"
    MULTIPART_FORM = "multipart-form"
    CLOUD_PREDICT = "cloud-predict"


class ProviderConfig(BaseModel):
    """Read-only description of one provider."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., min_length=1)
    kind: ProviderKind
    endpoint: str = Field(..., min_length=1)
    model_identifier: str | None = None
    image_size: str = "1024x1024"
    is_active: bool = True
    flaky: bool = Field(default=False, description="Retry transient failures")
    display_name: str | None = None


class ProviderConfigSource(Protocol):
    async def get_config(self, provider_id: str) -> ProviderConfig | None: ...

    async def list_active_providers(self) -> list[str]: ...


DEZGO_TEXT2IMAGE = "https://api.dezgo.com/text2image"
DEZGO_SDXL = "https://api.dezgo.com/text2image_sdxl"
OPENAI_IMAGES = "https://api.openai.com/v1/images/generations"
VERTEX_PREDICT = (
    "https://{location}-aiplatform.googleapis.com/v1/projects/{project_id}"
    "/locations/{location}/publishers/google/models/imagegeneration:predict"
)


def _dezgo(provider_id: str, model: str, endpoint: str = DEZGO_TEXT2IMAGE) -> ProviderConfig:
    return ProviderConfig(
        id=provider_id,
        kind=ProviderKind.MULTIPART_FORM,
        endpoint=endpoint,
        model_identifier=model,
        flaky=True,
    )


BUILTIN_PROVIDERS: tuple[ProviderConfig, ...] = (
    ProviderConfig(
        id="dalle",
        kind=ProviderKind.DIRECT_JSON,
        endpoint=OPENAI_IMAGES,
        model_identifier="dall-e-3",
        display_name="DALL-E 3",
    ),
    ProviderConfig(
        id="dalle2",
        kind=ProviderKind.DIRECT_JSON,
        endpoint=OPENAI_IMAGES,
        model_identifier="dall-e-2",
        display_name="DALL-E 2",
    ),
    ProviderConfig(
        id="imagen",
        kind=ProviderKind.CLOUD_PREDICT,
        endpoint=VERTEX_PREDICT,
        model_identifier="imagegeneration",
        display_name="Google Imagen",
    ),
    _dezgo("flux", "flux_1_schnell", "https://api.dezgo.com/text2image_flux"),
    _dezgo("juggernaut", "juggernautxl_1024px", DEZGO_SDXL),
    _dezgo("dreamshaper", "dreamshaperxl_1024px", DEZGO_SDXL),
    _dezgo(
        "dreamshaperLightning",
        "dreamshaperxl_lightning_1024px",
        "https://api.dezgo.com/text2image_sdxl_lightning",
    ),
    _dezgo("bluepencil", "bluepencilxl_1024px", DEZGO_SDXL),
    _dezgo("tshirt", "tshirtdesignredmond_1024px", DEZGO_SDXL),
    _dezgo("juggernautReborn", "juggernaut_reborn"),
    _dezgo("absolute", "absolute_reality_1_8_1"),
    _dezgo("realisticvision", "realistic_vision_5_1"),
    _dezgo("icbinp", "icbinp"),
    _dezgo("hasdx", "hasdx"),
    _dezgo("redshift", "redshift_diffusion_768px"),
    _dezgo("analogmadness", "analogmadness_7"),
    _dezgo("portraitplus", "portrait_plus"),
    _dezgo("nightmareshaper", "nightmareshaper"),
    _dezgo("openjourney", "openjourney_2"),
    _dezgo("abyssorange", "abyss_orange_mix_2"),
    _dezgo("cyber", "cyberrealistic_3_1"),
    _dezgo("disco", "disco_diffusion_style"),
    _dezgo("synthwave", "synthwavepunk_v2"),
    _dezgo("lowpoly", "lowpoly_world"),
    _dezgo("ink", "inkpunk_diffusion"),
)


class StaticProviderTable:
    """Provider source backed by an in-memory table."""

    def __init__(self, configs: Iterable[ProviderConfig]):
        self._configs = {c.id: c for c in configs}

    @classmethod
    def default(cls) -> StaticProviderTable:
        return cls(BUILTIN_PROVIDERS)

    async def get_config(self, provider_id: str) -> ProviderConfig | None:
        return self._configs.get(provider_id)

    async def list_active_providers(self) -> list[str]:
        return [pid for pid, c in self._configs.items() if c.is_active]


class JsonFileProviderSource(StaticProviderTable):
    """Provider table read once from a JSON file.

    Accepts either a list of records or an object keyed by provider id (in
    which case the key supplies a missing ``id``).

    Raises:
        FileNotFoundError: If the file does not exist
        pydantic.ValidationError: If a record is malformed
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        with open(self.path, encoding="utf-8") as f:
            raw = json.load(f)

        if isinstance(raw, dict):
            records = [{"id": key, **value} for key, value in raw.items()]
        else:
            records = list(raw)

        super().__init__(ProviderConfig.model_validate(r) for r in records)
        logger.info(f"Loaded {len(records)} providers from {self.path}")


class CachedProviderSource:
    """TTL cache in front of another provider source.

    Entries are cached per provider id, including misses. Cached configs are
    immutable, so a refresh never affects a generation already holding one.
    """

    def __init__(
        self,
        inner: ProviderConfigSource,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._inner = inner
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._configs: dict[str, tuple[float, ProviderConfig | None]] = {}
        self._active: tuple[float, list[str]] | None = None

    def _fresh(self, stored_at: float) -> bool:
        return self._clock() - stored_at < self.ttl_seconds

    async def get_config(self, provider_id: str) -> ProviderConfig | None:
        cached = self._configs.get(provider_id)
        if cached is not None and self._fresh(cached[0]):
            return cached[1]

        provider = await self._inner.get_config(provider_id)
        self._configs[provider_id] = (self._clock(), provider)
        return provider

    async def list_active_providers(self) -> list[str]:
        if self._active is not None and self._fresh(self._active[0]):
            return list(self._active[1])

        active = await self._inner.list_active_providers()
        self._active = (self._clock(), list(active))
        return list(active)

    def invalidate(self) -> None:
        self._configs.clear()
        self._active = None


def build_provider_source(
    providers_file: Path | None, ttl_seconds: float
) -> CachedProviderSource:
    """Create the configured provider source with its TTL cache."""
    inner: ProviderConfigSource
    if providers_file is not None:
        inner = JsonFileProviderSource(providers_file)
    else:
        inner = StaticProviderTable.default()
    return CachedProviderSource(inner, ttl_seconds=ttl_seconds)
