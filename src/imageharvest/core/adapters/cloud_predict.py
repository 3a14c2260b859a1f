"""Cloud-predict adapter (Vertex AI Imagen)."""

from __future__ import annotations

import logging

from ..guidance import request_timeout
from ..provider_config import ProviderConfig, ProviderKind
from .base import AdapterRequest, AdapterResponse, ProviderAdapterBase

logger = logging.getLogger(__name__)


class CloudPredictAdapter(ProviderAdapterBase):
    """Bearer-token predict call; image in ``predictions[0].bytesBase64Encoded``.

    The provider endpoint may contain ``{project_id}`` and ``{location}``
    placeholders, filled from the credential collaborator. Missing project or
    service-account settings raise ConfigurationError before any network call.
    """

    kind = ProviderKind.CLOUD_PREDICT
    name = "Imagen"
    description = "Cloud predict API with service-account authentication"

    def build_payload(self, provider: ProviderConfig, request: AdapterRequest) -> dict:
        return {
            "instances": [{"prompt": request.prompt}],
            "parameters": {"sampleCount": 1, "imageSize": provider.image_size},
        }

    async def generate(self, provider: ProviderConfig, request: AdapterRequest) -> AdapterResponse:
        project_id, location = self.credentials.cloud_project()
        token = await self.credentials.bearer_token()
        url = provider.endpoint.format(project_id=project_id, location=location)

        logger.info(f"Requesting Imagen image for prompt: {request.prompt[:50]}...")
        response = await self._post(
            url,
            json=self.build_payload(provider, request),
            headers={"Authorization": f"Bearer {token}"},
            timeout=request_timeout(provider),
        )

        body = self._json_body(response)
        predictions = body.get("predictions")
        prediction = predictions[0] if isinstance(predictions, list) and predictions else {}
        image_data = prediction.get("bytesBase64Encoded") if isinstance(prediction, dict) else None
        if not image_data:
            raise self._missing_image(body)

        return AdapterResponse(
            image_data=image_data,
            meta={"model": provider.model_identifier, "location": location},
        )
