"""Tests for imageharvest.core.adapters: wire formats and error classification.

HTTP traffic goes through ``httpx.MockTransport`` so no network is used.
"""

from __future__ import annotations

import json
import random

import httpx
import pytest

from imageharvest.core.adapters import (
    AdapterRegistry,
    AdapterRequest,
    CloudPredictAdapter,
    DirectJsonAdapter,
    MultipartFormAdapter,
)
from imageharvest.core.adapters.multipart_form import FLUX_FIELDS
from imageharvest.core.errors import (
    ConfigurationError,
    ContentPolicyError,
    ErrorCode,
    TerminalProviderError,
    TransientProviderError,
)
from imageharvest.core.provider_config import ProviderConfig, ProviderKind


class StubCredentials:
    """Credential double with fixed values; None means "not configured"."""

    def __init__(self, api_key="key-123", project=("proj-1", "europe-west4"), token="tok-abc"):
        self._api_key = api_key
        self._project = project
        self._token = token

    def api_key(self, kind):
        if not self._api_key:
            raise ConfigurationError(f"API key for {kind.value} not configured")
        return self._api_key

    def cloud_project(self):
        if not self._project:
            raise ConfigurationError("GOOGLE_CLOUD_PROJECT_ID not configured")
        return self._project

    async def bearer_token(self):
        return self._token


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, response: httpx.Response | Exception):
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def client_for(handler: Recorder) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


DALLE = ProviderConfig(
    id="dalle",
    kind=ProviderKind.DIRECT_JSON,
    endpoint="https://api.openai.com/v1/images/generations",
    model_identifier="dall-e-3",
)
FLUX = ProviderConfig(
    id="flux",
    kind=ProviderKind.MULTIPART_FORM,
    endpoint="https://api.dezgo.com/text2image_flux",
    model_identifier="flux_1_schnell",
    flaky=True,
)
SDXL = ProviderConfig(
    id="juggernaut",
    kind=ProviderKind.MULTIPART_FORM,
    endpoint="https://api.dezgo.com/text2image_sdxl",
    model_identifier="juggernautxl_1024px",
    flaky=True,
)
IMAGEN = ProviderConfig(
    id="imagen",
    kind=ProviderKind.CLOUD_PREDICT,
    endpoint="https://{location}-aiplatform.example.test/v1/projects/{project_id}:predict",
    model_identifier="imagegeneration",
)


class TestDirectJsonAdapter:
    @pytest.mark.asyncio
    async def test_success(self):
        handler = Recorder(httpx.Response(200, json={"data": [{"b64_json": "aW1n"}]}))
        async with client_for(handler) as client:
            adapter = DirectJsonAdapter(StubCredentials(), client)
            response = await adapter.generate(DALLE, AdapterRequest("a cat", 7.5, "u1"))

        assert response.image_data == "aW1n"
        assert response.meta["model"] == "dall-e-3"

        sent = handler.requests[0]
        assert sent.headers["Authorization"] == "Bearer key-123"
        payload = json.loads(sent.content)
        assert payload["prompt"] == "a cat"
        assert payload["user"] == "u1"
        assert payload["response_format"] == "b64_json"
        assert payload["n"] == 1

    @pytest.mark.asyncio
    async def test_content_policy(self):
        body = {
            "error": {
                "message": "Your request was rejected as a result of our safety system.",
                "code": "content_policy_violation",
            }
        }
        handler = Recorder(httpx.Response(400, json=body))
        async with client_for(handler) as client:
            adapter = DirectJsonAdapter(StubCredentials(), client)
            with pytest.raises(ContentPolicyError) as excinfo:
                await adapter.generate(DALLE, AdapterRequest("banned content", 7.5))

        assert excinfo.value.code is ErrorCode.CONTENT_POLICY
        assert not excinfo.value.retryable
        assert "safety system" in excinfo.value.message

    @pytest.mark.asyncio
    async def test_plain_bad_request(self):
        handler = Recorder(httpx.Response(400, json={"error": {"message": "size invalid"}}))
        async with client_for(handler) as client:
            adapter = DirectJsonAdapter(StubCredentials(), client)
            with pytest.raises(TerminalProviderError) as excinfo:
                await adapter.generate(DALLE, AdapterRequest("a cat", 7.5))

        assert excinfo.value.code is ErrorCode.INVALID_PARAMS
        assert excinfo.value.details == "size invalid"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,code",
        [
            (401, ErrorCode.AUTH_FAILED),
            (403, ErrorCode.AUTH_FAILED),
            (404, ErrorCode.PROVIDER_UNAVAILABLE),
            (429, ErrorCode.RATE_LIMIT),
            (500, ErrorCode.SERVER_ERROR),
        ],
    )
    async def test_terminal_statuses(self, status, code):
        handler = Recorder(httpx.Response(status, text="nope"))
        async with client_for(handler) as client:
            adapter = DirectJsonAdapter(StubCredentials(), client)
            with pytest.raises(TerminalProviderError) as excinfo:
                await adapter.generate(DALLE, AdapterRequest("a cat", 7.5))

        assert excinfo.value.code is code
        assert excinfo.value.status == status
        assert not excinfo.value.retryable

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [499, 503])
    async def test_retryable_statuses(self, status):
        handler = Recorder(httpx.Response(status, text="busy"))
        async with client_for(handler) as client:
            adapter = DirectJsonAdapter(StubCredentials(), client)
            with pytest.raises(TransientProviderError) as excinfo:
                await adapter.generate(DALLE, AdapterRequest("a cat", 7.5))

        assert excinfo.value.retryable

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body", [{"data": []}, {"data": ["aW1hZ2U="]}, {"data": [None]}, {"data": "x"}]
    )
    async def test_missing_image(self, body):
        handler = Recorder(httpx.Response(200, json=body))
        async with client_for(handler) as client:
            adapter = DirectJsonAdapter(StubCredentials(), client)
            with pytest.raises(TerminalProviderError) as excinfo:
                await adapter.generate(DALLE, AdapterRequest("a cat", 7.5))

        assert excinfo.value.code is ErrorCode.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_missing_key_makes_no_request(self):
        handler = Recorder(httpx.Response(200, json={}))
        async with client_for(handler) as client:
            adapter = DirectJsonAdapter(StubCredentials(api_key=None), client)
            with pytest.raises(ConfigurationError):
                await adapter.generate(DALLE, AdapterRequest("a cat", 7.5))

        assert handler.requests == []


class TestMultipartFormAdapter:
    def test_flux_fields(self):
        adapter = MultipartFormAdapter(StubCredentials(), httpx.AsyncClient())
        fields = adapter.build_fields(FLUX, AdapterRequest("a cat", None))
        assert fields == {"prompt": "a cat", **FLUX_FIELDS}
        assert "guidance" not in fields
        assert "model" not in fields

    def test_standard_fields(self):
        adapter = MultipartFormAdapter(
            StubCredentials(), httpx.AsyncClient(), rng=random.Random(1)
        )
        fields = adapter.build_fields(SDXL, AdapterRequest("a cat", 7.5))
        assert fields["model"] == "juggernautxl_1024px"
        assert fields["guidance"] == "7.5"
        assert fields["negative_prompt"] == ""
        assert len(fields["seed"]) == 9

    def test_explicit_seed(self):
        adapter = MultipartFormAdapter(StubCredentials(), httpx.AsyncClient())
        fields = adapter.build_fields(SDXL, AdapterRequest("a cat", 7.5, seed=42))
        assert fields["seed"] == "42"

    @pytest.mark.asyncio
    async def test_success_encodes_png(self, png_bytes: bytes, png_b64: str):
        handler = Recorder(
            httpx.Response(200, content=png_bytes, headers={"Content-Type": "image/png"})
        )
        async with client_for(handler) as client:
            adapter = MultipartFormAdapter(StubCredentials(), client)
            response = await adapter.generate(SDXL, AdapterRequest("a cat", 7.5, seed=7))

        assert response.image_data == png_b64
        assert response.meta["format"] == "PNG"
        assert response.meta["seed"] == "7"

        sent = handler.requests[0]
        assert sent.headers["X-Dezgo-Key"] == "key-123"
        assert sent.headers["Content-Type"].startswith("multipart/form-data")
        assert b'name="prompt"' in sent.content
        assert b'name="guidance"' in sent.content

    @pytest.mark.asyncio
    async def test_non_image_body(self):
        handler = Recorder(httpx.Response(200, content=b"<html>oops</html>"))
        async with client_for(handler) as client:
            adapter = MultipartFormAdapter(StubCredentials(), client)
            with pytest.raises(TerminalProviderError) as excinfo:
                await adapter.generate(SDXL, AdapterRequest("a cat", 7.5))

        assert excinfo.value.code is ErrorCode.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_payload_too_large(self, png_bytes: bytes):
        handler = Recorder(httpx.Response(200, content=png_bytes))
        async with client_for(handler) as client:
            adapter = MultipartFormAdapter(StubCredentials(), client, max_payload_bytes=10)
            with pytest.raises(TerminalProviderError) as excinfo:
                await adapter.generate(SDXL, AdapterRequest("a cat", 7.5))

        assert excinfo.value.code is ErrorCode.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        handler = Recorder(httpx.ReadTimeout("slow"))
        async with client_for(handler) as client:
            adapter = MultipartFormAdapter(StubCredentials(), client)
            with pytest.raises(TransientProviderError) as excinfo:
                await adapter.generate(SDXL, AdapterRequest("a cat", 7.5))

        assert excinfo.value.code is ErrorCode.TIMEOUT
        assert excinfo.value.retryable

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self):
        handler = Recorder(httpx.ConnectError("refused"))
        async with client_for(handler) as client:
            adapter = MultipartFormAdapter(StubCredentials(), client)
            with pytest.raises(TransientProviderError) as excinfo:
                await adapter.generate(SDXL, AdapterRequest("a cat", 7.5))

        assert excinfo.value.code is ErrorCode.NETWORK_ERROR


class TestCloudPredictAdapter:
    @pytest.mark.asyncio
    async def test_success(self):
        handler = Recorder(
            httpx.Response(200, json={"predictions": [{"bytesBase64Encoded": "aW1n"}]})
        )
        async with client_for(handler) as client:
            adapter = CloudPredictAdapter(StubCredentials(), client)
            response = await adapter.generate(IMAGEN, AdapterRequest("a cat", 7.5))

        assert response.image_data == "aW1n"
        assert response.meta["location"] == "europe-west4"

        sent = handler.requests[0]
        assert str(sent.url) == (
            "https://europe-west4-aiplatform.example.test/v1/projects/proj-1:predict"
        )
        assert sent.headers["Authorization"] == "Bearer tok-abc"
        payload = json.loads(sent.content)
        assert payload["instances"] == [{"prompt": "a cat"}]
        assert payload["parameters"]["sampleCount"] == 1

    @pytest.mark.asyncio
    async def test_missing_project_makes_no_request(self):
        handler = Recorder(httpx.Response(200, json={}))
        async with client_for(handler) as client:
            adapter = CloudPredictAdapter(StubCredentials(project=None), client)
            with pytest.raises(ConfigurationError):
                await adapter.generate(IMAGEN, AdapterRequest("a cat", 7.5))

        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_empty_predictions(self):
        handler = Recorder(httpx.Response(200, json={"predictions": []}))
        async with client_for(handler) as client:
            adapter = CloudPredictAdapter(StubCredentials(), client)
            with pytest.raises(TerminalProviderError) as excinfo:
                await adapter.generate(IMAGEN, AdapterRequest("a cat", 7.5))

        assert excinfo.value.code is ErrorCode.INVALID_RESPONSE


class TestAdapterRegistry:
    def test_default_covers_every_kind(self):
        registry = AdapterRegistry.default(StubCredentials(), httpx.AsyncClient())
        assert set(registry.list_kinds()) == set(ProviderKind)
        assert isinstance(registry.get(ProviderKind.DIRECT_JSON), DirectJsonAdapter)

    def test_incomplete_registry(self):
        registry = AdapterRegistry()
        registry.register(DirectJsonAdapter(StubCredentials(), httpx.AsyncClient()))
        with pytest.raises(ValueError, match="multipart-form"):
            registry.verify_complete()
        with pytest.raises(KeyError):
            registry.get(ProviderKind.CLOUD_PREDICT)

    def test_adapter_info(self):
        registry = AdapterRegistry.default(StubCredentials(), httpx.AsyncClient())
        names = {info["name"] for info in registry.get_adapter_info()}
        assert names == {"OpenAI", "Dezgo", "Imagen"}
