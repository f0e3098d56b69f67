"""
Image generation client layer with multi-backend support.
"""
from .base import (
    GenerationResult,
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
    RetryConfig,
    card_image_filename,
)
from .failure_types import (
    BackendConnectionError,
    BackendTimeoutError,
    ClientError,
    FailureType,
    ImageGenerationError,
    RateLimitError,
    ServerError,
    UnknownGenerationError,
)
from .factory import ImageProviderFactory
from .generator import ImageGenerator
from .prompt import PromptGenerator
from .providers.mock import FailureMode, MockFailureConfig, MockProvider
from .runner import generate_with_retry

__all__ = [
    "GenerationResult",
    "ImageGenerationProvider",
    "ImageGenerationRequest",
    "ImageGenerationResponse",
    "RetryConfig",
    "card_image_filename",
    "BackendConnectionError",
    "BackendTimeoutError",
    "ClientError",
    "FailureType",
    "ImageGenerationError",
    "RateLimitError",
    "ServerError",
    "UnknownGenerationError",
    "ImageProviderFactory",
    "ImageGenerator",
    "PromptGenerator",
    "FailureMode",
    "MockFailureConfig",
    "MockProvider",
    "generate_with_retry",
]
