"""Multipart-form adapter (Dezgo text2image endpoints).

Two request shapes share this adapter:

- **flux**: self-describing endpoint; fixed 1024x1024, 4 steps, empty seed,
  no model or guidance field
- **standard**: model identifier, guidance (already normalized) and a random
  nine-digit seed

Both return raw image bytes which are validated and base64 encoded.
"""

from __future__ import annotations

import logging
import random

import httpx

from ..credentials import CredentialProvider
from ..guidance import detect_features, request_timeout
from ..provider_config import ProviderConfig, ProviderKind
from .base import AdapterRequest, AdapterResponse, ProviderAdapterBase

logger = logging.getLogger(__name__)

FLUX_FIELDS: dict[str, str] = {
    "width": "1024",
    "height": "1024",
    "steps": "4",
    "seed": "",
    "format": "png",
    "transparent_background": "false",
    "lora1": "",
    "lora1_strength": "0.7",
    "lora2": "",
    "lora2_strength": "0.7",
}


class MultipartFormAdapter(ProviderAdapterBase):
    """Multipart form request, binary image response."""

    kind = ProviderKind.MULTIPART_FORM
    name = "Dezgo"
    description = "Form-multipart image API returning binary image data"

    def __init__(
        self,
        credentials: CredentialProvider,
        client: httpx.AsyncClient,
        max_payload_bytes: int = 20 * 1024 * 1024,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(credentials, client, max_payload_bytes)
        self._rng = rng if rng is not None else random.Random()

    def random_seed(self) -> int:
        return self._rng.randint(100_000_000, 999_999_999)

    def build_fields(self, provider: ProviderConfig, request: AdapterRequest) -> dict[str, str]:
        if detect_features(provider).flux:
            return {"prompt": request.prompt, **FLUX_FIELDS}

        seed = request.seed if request.seed is not None else self.random_seed()
        fields = {
            "prompt": request.prompt,
            "negative_prompt": "",
            "seed": str(seed),
            "model": provider.model_identifier or "",
        }
        if request.guidance is not None:
            fields["guidance"] = f"{request.guidance:g}"
        return fields

    async def generate(self, provider: ProviderConfig, request: AdapterRequest) -> AdapterResponse:
        api_key = self.credentials.api_key(self.kind)
        fields = self.build_fields(provider, request)

        logger.info(
            f"Requesting {provider.model_identifier} image "
            f"(guidance={fields.get('guidance', '-')}, seed={fields['seed'] or '-'}) "
            f"for prompt: {request.prompt[:50]}..."
        )
        response = await self._post(
            provider.endpoint,
            files={name: (None, value) for name, value in fields.items()},
            headers={"X-Dezgo-Key": api_key, "Accept": "image/*"},
            timeout=request_timeout(provider),
        )

        image_data, image_format = self._encode_image(response.content)
        return AdapterResponse(
            image_data=image_data,
            meta={
                "model": provider.model_identifier,
                "format": image_format,
                "seed": fields["seed"] or None,
                "guidance": fields.get("guidance"),
            },
        )
