"""Base class for provider adapters.

Provider adapters translate the canonical ``(prompt, guidance, user_id)``
request into one provider family's wire format and turn the response into a
base64 image. Failures are raised as :mod:`imageharvest.core.errors`
exceptions; the orchestrator converts them into results.

Adapter Kinds
-------------
- **direct-json**: One JSON request, base64 image in the JSON response
- **multipart-form**: Multipart form request, binary image response
- **cloud-predict**: Bearer-token ``instances/parameters`` predict call

HTTP Error Classification
-------------------------
Shared by every adapter:

==========================  ====================  =========
Condition                   ErrorCode             Retryable
==========================  ====================  =========
connect/read/DNS failure    NETWORK_ERROR         yes
request timeout             TIMEOUT               yes
499, 503                    NETWORK_ERROR         yes
400 with policy rejection   CONTENT_POLICY        no
400                         INVALID_PARAMS        no
401, 403                    AUTH_FAILED           no
404                         PROVIDER_UNAVAILABLE  no
429                         RATE_LIMIT            no
other 4xx/5xx               SERVER_ERROR          no
==========================  ====================  =========

See Also
--------
- AdapterRegistry: Closed mapping from ProviderKind to adapter
- RetryPolicy: Applied by the orchestrator around ``generate``
"""

from __future__ import annotations

import base64
import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx
from PIL import Image, UnidentifiedImageError

from ..credentials import CredentialProvider
from ..errors import (
    ContentPolicyError,
    ErrorCode,
    ProviderError,
    TerminalProviderError,
    TransientProviderError,
)
from ..provider_config import ProviderConfig, ProviderKind

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({499, 503})
POLICY_MARKERS = ("content_policy_violation", "content policy", "safety system", "blocked")


@dataclass(frozen=True)
class AdapterRequest:
    """Canonical generation request handed to every adapter."""

    prompt: str
    guidance: float | None
    user_id: str = "undefined"
    seed: int | None = None


@dataclass
class AdapterResponse:
    """Base64 image plus adapter-specific metadata."""

    image_data: str
    meta: dict[str, Any] = field(default_factory=dict)


def _error_detail(response: httpx.Response) -> str:
    """Best-effort human-readable detail from an error response body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        if body.get("message"):
            return str(body["message"])
    return response.text[:500]


def classify_http_error(response: httpx.Response, label: str) -> ProviderError:
    """Map an error response to the matching pipeline exception."""
    status = response.status_code
    detail = _error_detail(response)

    if status in RETRYABLE_STATUSES:
        return TransientProviderError(
            f"{label} temporarily unavailable (HTTP {status})", details=detail, status=status
        )
    if status == 400:
        lowered = f"{response.text} {detail}".lower()
        if any(marker in lowered for marker in POLICY_MARKERS):
            return ContentPolicyError(detail or "Content policy violation", status=status)
        return TerminalProviderError(
            f"Invalid request to {label}",
            code=ErrorCode.INVALID_PARAMS,
            details=detail,
            status=status,
        )
    if status in (401, 403):
        return TerminalProviderError(
            f"{label} authentication failed",
            code=ErrorCode.AUTH_FAILED,
            details=detail,
            status=status,
        )
    if status == 404:
        return TerminalProviderError(
            f"{label} endpoint not found",
            code=ErrorCode.PROVIDER_UNAVAILABLE,
            details=detail,
            status=status,
        )
    if status == 429:
        return TerminalProviderError(
            f"{label} rate limit exceeded. Please try again later.",
            code=ErrorCode.RATE_LIMIT,
            details=detail,
            status=status,
        )
    return TerminalProviderError(
        f"{label} server error (HTTP {status})", details=detail, status=status
    )


class ProviderAdapterBase(ABC):
    """Abstract base class for provider adapters.

    Subclasses set ``kind`` and implement :meth:`generate`. The shared
    :meth:`_post` helper applies timeouts and error classification so
    adapters only shape requests and parse successful responses.

    Attributes
    ----------
    kind : ProviderKind
        Adapter kind this class serves
    name : str
        Human-readable adapter name used in messages
    credentials : CredentialProvider
        Source of API keys and bearer tokens
    client : httpx.AsyncClient
        Shared HTTP client
    max_payload_bytes : int
        Largest accepted image payload
    """

    kind: ProviderKind
    name: str = "Provider"
    description: str = "Base class for provider adapters"

    def __init__(
        self,
        credentials: CredentialProvider,
        client: httpx.AsyncClient,
        max_payload_bytes: int = 20 * 1024 * 1024,
    ) -> None:
        self.credentials = credentials
        self.client = client
        self.max_payload_bytes = max_payload_bytes

    @abstractmethod
    async def generate(self, provider: ProviderConfig, request: AdapterRequest) -> AdapterResponse:
        """Generate one image.

        Returns
        -------
        AdapterResponse
            Base64 image data and metadata

        Raises
        ------
        ConfigurationError
            Credentials or project settings are missing
        ProviderError
            The provider call failed (see classification table)
        """

    async def _post(self, url: str, *, timeout: float, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.post(url, timeout=timeout, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientProviderError(
                f"{self.name} request timed out", code=ErrorCode.TIMEOUT, details=str(e)
            ) from e
        except httpx.TransportError as e:
            raise TransientProviderError(
                f"Network error contacting {self.name}", details=str(e)
            ) from e

        if response.is_error:
            raise classify_http_error(response, self.name)
        return response

    def _check_size(self, size: int) -> None:
        if size > self.max_payload_bytes:
            raise TerminalProviderError(
                f"{self.name} response too large ({size} bytes)",
                code=ErrorCode.INVALID_RESPONSE,
            )

    def _json_body(self, response: httpx.Response) -> dict[str, Any]:
        self._check_size(len(response.content))
        try:
            body = response.json()
        except ValueError as e:
            raise TerminalProviderError(
                f"Invalid response from {self.name}",
                code=ErrorCode.INVALID_RESPONSE,
                details=response.text[:500],
            ) from e
        if not isinstance(body, dict):
            raise TerminalProviderError(
                f"Invalid response from {self.name}", code=ErrorCode.INVALID_RESPONSE
            )
        return body

    def _encode_image(self, content: bytes) -> tuple[str, str | None]:
        """Validate binary image bytes and return ``(base64, format)``."""
        if not content:
            raise TerminalProviderError(
                f"Empty response from {self.name}", code=ErrorCode.INVALID_RESPONSE
            )
        self._check_size(len(content))

        try:
            with Image.open(io.BytesIO(content)) as image:
                image_format = image.format
                image.verify()
        except (UnidentifiedImageError, OSError) as e:
            raise TerminalProviderError(
                f"{self.name} returned data that is not an image",
                code=ErrorCode.INVALID_RESPONSE,
                details=str(e),
            ) from e

        return base64.b64encode(content).decode("ascii"), image_format

    def _missing_image(self, body: dict[str, Any]) -> TerminalProviderError:
        return TerminalProviderError(
            f"No image data found in {self.name} response",
            code=ErrorCode.INVALID_RESPONSE,
            details=str(body)[:500],
        )

    def get_adapter_info(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "name": self.name, "description": self.description}
