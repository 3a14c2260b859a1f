"""Shared pytest fixtures for Image Harvest tests."""

from __future__ import annotations

import base64
import io
import random
import shutil
import tempfile
from collections.abc import Generator, Iterable
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from imageharvest.api.main import create_app
from imageharvest.core.adapters import AdapterRegistry, AdapterRequest, AdapterResponse
from imageharvest.core.config import HarvestConfig
from imageharvest.core.orchestrator import ProviderOrchestrator
from imageharvest.core.prompt_engine import PromptTemplateEngine
from imageharvest.core.provider_config import ProviderConfig, ProviderKind, StaticProviderTable
from imageharvest.core.retry import RetryPolicy
from imageharvest.core.variable_resolver import VariableResolver
from imageharvest.core.word_lookup import InMemoryWordLookup

CREDENTIAL_ENV_VARS = (
    "OPENAI_API_KEY",
    "DEZGO_API_KEY",
    "GOOGLE_CLOUD_PROJECT_ID",
    "GOOGLE_APPLICATION_CREDENTIALS",
    "IMAGEHARVEST_OPENAI_API_KEY",
    "IMAGEHARVEST_DEZGO_API_KEY",
    "IMAGEHARVEST_GOOGLE_CLOUD_PROJECT_ID",
    "IMAGEHARVEST_GOOGLE_APPLICATION_CREDENTIALS",
)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def clean_env(monkeypatch) -> None:
    """Remove provider credentials from the environment."""
    for name in CREDENTIAL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def test_words_dir(temp_dir: Path) -> Path:
    """Create a words directory with a few category files."""
    words_dir = temp_dir / "words"
    words_dir.mkdir()
    (words_dir / "color.txt").write_text("red\nblue\n")
    (words_dir / "animal.txt").write_text("# animals\ncat\n\ndog\n")
    (words_dir / "eye_color.txt").write_text("green\n")
    (words_dir / "styles").mkdir()
    (words_dir / "styles" / "painter.txt").write_text("monet\n")
    return words_dir


@pytest.fixture
def test_config(temp_dir: Path, test_words_dir: Path, clean_env) -> HarvestConfig:
    """Create a test configuration with temporary directories and no credentials."""
    return HarvestConfig(
        _env_file=None,
        data_dir=temp_dir / "data",
        words_dir=test_words_dir,
        average_processing_seconds=30.0,
        retry_backoff_seconds=0.0,
    )


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source."""
    return random.Random(1234)


@pytest.fixture
def word_lookup() -> InMemoryWordLookup:
    return InMemoryWordLookup(
        {
            "color": ["red", "blue"],
            "animal": ["cat", "dog"],
            "eye color": ["green", "brown"],
        }
    )


@pytest.fixture
def engine(word_lookup: InMemoryWordLookup, rng: random.Random) -> PromptTemplateEngine:
    return PromptTemplateEngine(VariableResolver(word_lookup), rng=rng)


@pytest.fixture
def png_bytes() -> bytes:
    """A tiny valid PNG image."""
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), color=(200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_b64(png_bytes: bytes) -> str:
    return base64.b64encode(png_bytes).decode("ascii")


# ---------------------------------------------------------------------------
# Fake provider adapters.
# ---------------------------------------------------------------------------


class FakeAdapter:
    """Adapter double that replays a script of outcomes.

    Each call pops the next outcome: an exception instance is raised, a
    string is returned as the image data. The last outcome repeats.
    """

    name = "Fake"

    def __init__(self, kind: ProviderKind, outcomes: Iterable[str | Exception] = ("aW1hZ2U=",)):
        self.kind = kind
        self.outcomes = list(outcomes)
        self.calls: list[tuple[ProviderConfig, AdapterRequest]] = []

    async def generate(self, provider: ProviderConfig, request: AdapterRequest) -> AdapterResponse:
        self.calls.append((provider, request))
        index = min(len(self.calls) - 1, len(self.outcomes) - 1)
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        return AdapterResponse(image_data=outcome, meta={"fake": True})

    def get_adapter_info(self) -> dict:
        return {"kind": self.kind.value, "name": self.name, "description": "fake"}


def make_registry(**overrides: FakeAdapter) -> AdapterRegistry:
    """Registry with a FakeAdapter for every kind, overridable by kind name."""
    registry = AdapterRegistry()
    for kind in ProviderKind:
        registry.register(overrides.get(kind.name.lower()) or FakeAdapter(kind))
    return registry


@pytest.fixture
def fake_adapter() -> type[FakeAdapter]:
    """The FakeAdapter class, for building scripted adapters in tests."""
    return FakeAdapter


async def no_sleep(seconds: float) -> None:
    no_sleep.calls.append(seconds)


no_sleep.calls = []


@pytest.fixture
def sleeps() -> list[float]:
    """Backoff delays requested through ``no_sleep`` during one test."""
    no_sleep.calls = []
    return no_sleep.calls


@pytest.fixture
def provider_table() -> StaticProviderTable:
    return StaticProviderTable(
        [
            ProviderConfig(
                id="p1",
                kind=ProviderKind.DIRECT_JSON,
                endpoint="https://images.example.test/v1/generate",
                model_identifier="dall-e-3",
            ),
            ProviderConfig(
                id="flaky",
                kind=ProviderKind.MULTIPART_FORM,
                endpoint="https://api.dezgo.com/text2image_sdxl",
                model_identifier="juggernautxl_1024px",
                flaky=True,
            ),
            ProviderConfig(
                id="slow",
                kind=ProviderKind.MULTIPART_FORM,
                endpoint="https://api.dezgo.com/text2image",
                model_identifier="redshift_diffusion_768px",
                flaky=True,
            ),
            ProviderConfig(
                id="cloud",
                kind=ProviderKind.CLOUD_PREDICT,
                endpoint="https://{location}-predict.example.test/{project_id}:predict",
            ),
            ProviderConfig(
                id="retired",
                kind=ProviderKind.DIRECT_JSON,
                endpoint="https://images.example.test/v1/generate",
                is_active=False,
            ),
        ]
    )


@pytest.fixture
def make_orchestrator(provider_table: StaticProviderTable, sleeps: list[float]):
    """Factory building an orchestrator over ``provider_table`` and fake adapters.

    Adapters are passed by kind name (``direct_json=...``); kinds left out get
    a FakeAdapter that always succeeds.
    """

    def factory(
        flaky_max_attempts: int = 2,
        slow_model_max_attempts: int = 3,
        rng: random.Random | None = None,
        **adapters: FakeAdapter,
    ) -> ProviderOrchestrator:
        return ProviderOrchestrator(
            provider_table,
            make_registry(**adapters),
            retry_policy=RetryPolicy(backoff_seconds=5.0, sleep=no_sleep),
            rng=rng or random.Random(7),
            flaky_max_attempts=flaky_max_attempts,
            slow_model_max_attempts=slow_model_max_attempts,
        )

    return factory


# ---------------------------------------------------------------------------
# API client.
# ---------------------------------------------------------------------------


@pytest.fixture
def test_client(test_config: HarvestConfig) -> Generator[TestClient, None, None]:
    """FastAPI TestClient over an app built from ``test_config``.

    Entering the client runs the lifespan, so the generation service is
    built from the test words directory with no provider credentials.
    """
    with TestClient(create_app(test_config)) as client:
        yield client
