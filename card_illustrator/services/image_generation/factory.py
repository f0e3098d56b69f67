"""
Factory for creating image generation providers based on mode.
"""
from typing import Any, Optional
import logging

from card_illustrator.services.image_generation.base import ImageGenerationProvider
from card_illustrator.services.image_generation.providers.gemini import GeminiProvider
from card_illustrator.services.image_generation.providers.huggingface_space import HuggingFaceSpaceProvider
from card_illustrator.services.image_generation.providers.mock import (
    FailureMode,
    MockFailureConfig,
    MockProvider,
)
from card_illustrator.services.image_generation.providers.pollinations import PollinationsProvider

logger = logging.getLogger(__name__)


class ImageProviderFactory:
    """Factory for creating image generation providers."""

    PROVIDERS: dict[str, type[ImageGenerationProvider]] = {
        "mock": MockProvider,
        "gemini": GeminiProvider,
        "pollinations": PollinationsProvider,
        "huggingface": HuggingFaceSpaceProvider,
    }

    @classmethod
    def create(cls, mode: str, config: dict, **kwargs: Any) -> ImageGenerationProvider:
        """
        Create provider instance by mode.

        Args:
            mode: One of mock, gemini, pollinations, huggingface
            config: Provider-specific configuration dict
            **kwargs: Passed to the provider constructor (transport, failure_config, ...)

        Returns:
            Initialized provider instance

        Raises:
            ValueError: If mode is unknown
        """
        provider_class = cls.PROVIDERS.get(mode.strip().lower())

        if not provider_class:
            available = ", ".join(cls.PROVIDERS.keys())
            raise ValueError(
                f"Unknown image mode: {mode}. "
                f"Available modes: {available}"
            )

        logger.info("Creating image provider", extra={"mode": mode})
        provider = provider_class(config, **kwargs)

        if not provider.is_available():
            logger.warning("Provider created but not fully configured", extra={"mode": mode})

        return provider

    @classmethod
    def create_from_settings(cls, settings, mode_override: Optional[str] = None) -> ImageGenerationProvider:
        """
        Create provider from application settings.

        Args:
            settings: Application settings object
            mode_override: If set, use this mode instead of settings.image_mode
        """
        mode = (mode_override or "").strip().lower() or settings.image_mode
        kwargs: dict[str, Any] = {}

        if mode == "gemini":
            config = {
                "api_key": settings.gemini_api_key,
                "api_endpoint": settings.gemini_api_endpoint,
                "model": settings.gemini_image_model,
                "timeout": settings.gemini_timeout,
            }
        elif mode == "pollinations":
            config = {
                "api_url": settings.pollinations_api_url,
                "timeout": settings.pollinations_timeout,
            }
        elif mode == "huggingface":
            config = {
                "space_id": settings.huggingface_space_id,
                "timeout": settings.huggingface_timeout,
            }
        elif mode == "mock":
            config = {}
            kwargs["failure_config"] = MockFailureConfig(
                failure_mode=FailureMode(settings.mock_failure_mode),
                failure_rate=settings.mock_failure_rate,
                max_attempts_before_success=settings.mock_max_attempts_before_success,
            )
        else:
            raise ValueError(f"Mode {mode} not supported in settings")

        return cls.create(mode, config, **kwargs)

    @classmethod
    def get_available_modes(cls) -> list[str]:
        """Get list of all available mode names."""
        return list(cls.PROVIDERS.keys())
