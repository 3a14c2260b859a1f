"""Direct-JSON adapter (OpenAI images API)."""

from __future__ import annotations

import logging

from ..guidance import request_timeout
from ..provider_config import ProviderConfig, ProviderKind
from .base import AdapterRequest, AdapterResponse, ProviderAdapterBase

logger = logging.getLogger(__name__)


class DirectJsonAdapter(ProviderAdapterBase):
    """Single JSON request, base64 image returned in ``data[0].b64_json``."""

    kind = ProviderKind.DIRECT_JSON
    name = "OpenAI"
    description = "JSON image API returning base64 image data"

    def build_payload(self, provider: ProviderConfig, request: AdapterRequest) -> dict:
        return {
            "prompt": request.prompt,
            "n": 1,
            "size": provider.image_size,
            "response_format": "b64_json",
            "model": provider.model_identifier,
            "user": request.user_id,
            "quality": "standard",
        }

    async def generate(self, provider: ProviderConfig, request: AdapterRequest) -> AdapterResponse:
        api_key = self.credentials.api_key(self.kind)
        payload = self.build_payload(provider, request)

        logger.info(
            f"Requesting {provider.model_identifier} image for prompt: {request.prompt[:50]}..."
        )
        response = await self._post(
            provider.endpoint,
            json=payload,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=request_timeout(provider),
        )

        body = self._json_body(response)
        items = body.get("data")
        item = items[0] if isinstance(items, list) and items else {}
        image_data = item.get("b64_json") if isinstance(item, dict) else None
        if not image_data:
            raise self._missing_image(body)

        return AdapterResponse(
            image_data=image_data,
            meta={"model": provider.model_identifier, "size": provider.image_size},
        )
