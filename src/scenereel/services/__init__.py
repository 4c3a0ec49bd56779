"""External service integrations."""

from .anthropic import AnthropicClient
from .imagen import ImagenClient, ImagePayload, ImageSynthesizer

__all__ = [
    "AnthropicClient",
    "ImagenClient",
    "ImagePayload",
    "ImageSynthesizer",
]
