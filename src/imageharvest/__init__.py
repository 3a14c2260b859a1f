"""Image Harvest - prompt templating and multi-provider image generation."""

__version__ = "0.3.0"

from imageharvest.core.config import HarvestConfig, config
from imageharvest.core.service import GenerationService

__all__ = [
    "GenerationService",
    "HarvestConfig",
    "config",
]
