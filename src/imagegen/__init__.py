"""Image Gen MCP - remote image generation, download and compression tools."""

__version__ = "1.0.0"

from imagegen.core.config import ImageGenConfig, get_config
from imagegen.core.models import ModelDescriptor, ModelRegistry, load_default_registry

__all__ = [
    "ImageGenConfig",
    "get_config",
    "ModelDescriptor",
    "ModelRegistry",
    "load_default_registry",
]
