"""Credential collaborator: API keys and bearer tokens per provider kind.

Missing configuration raises :class:`ConfigurationError`, which the
orchestrator reports as a skip rather than a failure.

Cloud-predict providers authenticate with a Google service account. The key
may be given as a file path or as inline JSON (``\\n`` escapes in the private
key are expanded). Access tokens are cached for 50 minutes.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable
from typing import Any

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from .config import HarvestConfig
from .errors import ConfigurationError, ErrorCode, ProviderError
from .provider_config import ProviderKind

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
TOKEN_CACHE_SECONDS = 50 * 60


class CredentialProvider:
    """Supplies secrets from a :class:`HarvestConfig`.

    Args:
        settings: Configuration holding keys and service-account settings
        clock: Monotonic clock used for token expiry
    """

    def __init__(
        self,
        settings: HarvestConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self._clock = clock
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    def api_key(self, kind: ProviderKind) -> str:
        """Return the API key for a key-authenticated provider kind.

        Raises:
            ConfigurationError: If the key is not configured
        """
        if kind is ProviderKind.DIRECT_JSON:
            key, name = self.settings.openai_api_key, "OPENAI_API_KEY"
        elif kind is ProviderKind.MULTIPART_FORM:
            key, name = self.settings.dezgo_api_key, "DEZGO_API_KEY"
        else:
            raise ConfigurationError(f"Provider kind {kind.value} does not use an API key")

        if not key:
            raise ConfigurationError(f"{name} not configured")
        return key

    def cloud_project(self) -> tuple[str, str]:
        """Return ``(project_id, location)`` for cloud-predict providers.

        Raises:
            ConfigurationError: If the project or service account is missing
        """
        if not self.settings.google_cloud_project_id:
            raise ConfigurationError("GOOGLE_CLOUD_PROJECT_ID not configured")
        if not self.settings.google_application_credentials:
            raise ConfigurationError("GOOGLE_APPLICATION_CREDENTIALS not configured")
        return self.settings.google_cloud_project_id, self.settings.google_cloud_location

    async def bearer_token(self) -> str:
        """Return a cached or freshly minted service-account access token."""
        async with self._token_lock:
            if self._token and self._clock() < self._token_expires_at:
                return self._token

            self.cloud_project()
            token = await asyncio.to_thread(self._fetch_token)
            self._token = token
            self._token_expires_at = self._clock() + TOKEN_CACHE_SECONDS
            logger.info("Obtained new cloud access token")
            return token

    def clear_token(self) -> None:
        self._token = None
        self._token_expires_at = 0.0

    def _service_account_credentials(self) -> service_account.Credentials:
        raw = self.settings.google_application_credentials or ""
        scopes = [CLOUD_PLATFORM_SCOPE]

        if raw.lstrip().startswith("{"):
            try:
                info: dict[str, Any] = json.loads(raw)
            except json.JSONDecodeError as e:
                raise ConfigurationError(
                    "GOOGLE_APPLICATION_CREDENTIALS is not valid JSON", details=str(e)
                ) from e
            if "private_key" in info:
                info["private_key"] = info["private_key"].replace("\\n", "\n")
            return service_account.Credentials.from_service_account_info(info, scopes=scopes)

        try:
            return service_account.Credentials.from_service_account_file(raw, scopes=scopes)
        except FileNotFoundError as e:
            raise ConfigurationError(
                "Service account key file not found", details=str(e)
            ) from e

    def _fetch_token(self) -> str:
        credentials = self._service_account_credentials()
        try:
            credentials.refresh(Request())
        except GoogleAuthError as e:
            raise ProviderError(
                "Failed to obtain access token",
                code=ErrorCode.AUTH_FAILED,
                details=str(e),
            ) from e
        if not credentials.token:
            raise ProviderError("Failed to obtain access token", code=ErrorCode.AUTH_FAILED)
        return credentials.token
