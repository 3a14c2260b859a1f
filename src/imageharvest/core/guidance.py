"""Model feature detection and guidance normalization.

Features are derived from a provider's endpoint and model identifier:

=============  ====================================================
flux           endpoint contains ``text2image_flux``
lightning      endpoint contains ``text2image_sdxl_lightning`` or
               model contains ``lightning``
sdxl           endpoint contains ``text2image_sdxl``
redshift       model contains ``redshift``
slow           model contains ``redshift`` or ``abyss``
=============  ====================================================

Guidance rules, first match wins:

- lightning: fixed at 1
- sdxl: ``guidance`` (default 7.5) clamped to [1, 20]
- redshift: ``guidance`` (default 5) clamped to [1, 15]
- anything else: ``guidance`` (default 7.5) clamped to [1, 20]

Flux endpoints take no guidance field at all.
"""

from __future__ import annotations

from dataclasses import dataclass

from .provider_config import ProviderConfig, ProviderKind

MIN_GUIDANCE = 1.0
MAX_GUIDANCE = 20.0
DEFAULT_GUIDANCE = 7.5
LIGHTNING_GUIDANCE = 1.0
REDSHIFT_DEFAULT_GUIDANCE = 5.0
REDSHIFT_MAX_GUIDANCE = 15.0

FLUX_TIMEOUT_SECONDS = 120.0
STANDARD_TIMEOUT_SECONDS = 300.0
SLOW_TIMEOUT_SECONDS = 600.0
API_TIMEOUT_SECONDS = 120.0


@dataclass(frozen=True)
class ModelFeatures:
    flux: bool = False
    lightning: bool = False
    sdxl: bool = False
    redshift: bool = False
    slow: bool = False


def detect_features(provider: ProviderConfig) -> ModelFeatures:
    url = provider.endpoint.lower()
    model = (provider.model_identifier or "").lower()
    return ModelFeatures(
        flux="text2image_flux" in url,
        lightning="text2image_sdxl_lightning" in url or "lightning" in model,
        sdxl="text2image_sdxl" in url,
        redshift="redshift" in model,
        slow="redshift" in model or "abyss" in model,
    )


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def normalize_guidance(provider: ProviderConfig, guidance: float | None) -> float | None:
    """Return the guidance value to send, or None when the endpoint takes none."""
    features = detect_features(provider)

    if features.flux:
        return None
    if features.lightning:
        return LIGHTNING_GUIDANCE
    if features.sdxl:
        value = DEFAULT_GUIDANCE if guidance is None else guidance
        return _clamp(value, MIN_GUIDANCE, MAX_GUIDANCE)
    if features.redshift:
        value = REDSHIFT_DEFAULT_GUIDANCE if guidance is None else guidance
        return _clamp(value, MIN_GUIDANCE, REDSHIFT_MAX_GUIDANCE)

    value = DEFAULT_GUIDANCE if guidance is None else guidance
    return _clamp(value, MIN_GUIDANCE, MAX_GUIDANCE)


def request_timeout(provider: ProviderConfig) -> float:
    """Per-request network timeout in seconds."""
    if provider.kind is not ProviderKind.MULTIPART_FORM:
        return API_TIMEOUT_SECONDS

    features = detect_features(provider)
    if features.flux:
        return FLUX_TIMEOUT_SECONDS
    if features.redshift:
        return SLOW_TIMEOUT_SECONDS
    return STANDARD_TIMEOUT_SECONDS
