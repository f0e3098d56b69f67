"""
Image generator: builds the prompt for a card, runs the retry-wrapped backend and writes
card-NNN.png. This is the error boundary: generate_image never raises.
"""
import logging
import os
import tempfile
import time
from typing import Callable

from card_illustrator.services.image_generation.base import (
    GenerationResult,
    ImageGenerationProvider,
    ImageGenerationRequest,
    RetryConfig,
    card_image_filename,
)
from card_illustrator.services.image_generation.factory import ImageProviderFactory
from card_illustrator.services.image_generation.prompt import PromptGenerator
from card_illustrator.services.image_generation.providers.mock import MockFailureConfig
from card_illustrator.services.image_generation.runner import RetryHook, generate_with_retry
from card_illustrator.utils.metrics import cards_generated_total

logger = logging.getLogger(__name__)

# Per-mode retry defaults; the queue-based space needs longer waits.
DEFAULT_RETRY_CONFIGS: dict[str, RetryConfig] = {
    "mock": RetryConfig(max_attempts=3, delays=(0.0,), timeout=30.0),
    "gemini": RetryConfig(max_attempts=3, delays=(1.0, 2.0, 4.0), timeout=30.0),
    "pollinations": RetryConfig(max_attempts=3, delays=(1.0, 2.0, 4.0), timeout=30.0),
    "huggingface": RetryConfig(max_attempts=3, delays=(2.0, 5.0, 10.0), timeout=60.0),
}


class ImageGenerator:
    """Single entry point for per-card image generation; the mode is fixed per instance."""

    def __init__(
        self,
        mode: str,
        style: str = "educational",
        *,
        api_key: str | None = None,
        retry_config: RetryConfig | None = None,
        mock_config: MockFailureConfig | None = None,
        on_retry: RetryHook | None = None,
        provider: ImageGenerationProvider | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.mode = mode.strip().lower()
        self.prompt_generator = PromptGenerator(style)
        self.retry_config = retry_config or DEFAULT_RETRY_CONFIGS.get(self.mode, RetryConfig())
        self.on_retry = on_retry
        self._sleep = sleep
        self.provider = provider or self._create_provider(api_key, mock_config)
        logger.info("image generator ready", extra={"mode": self.mode, "provider": self.provider.name})

    @classmethod
    def from_settings(
        cls,
        settings,
        mode_override: str | None = None,
        *,
        on_retry: RetryHook | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "ImageGenerator":
        """
        Build the generator from application settings: backend config, style and retry budget.

        Args:
            settings: Application settings object
            mode_override: If set, use this mode instead of settings.image_mode
        """
        mode = (mode_override or "").strip().lower() or settings.image_mode
        return cls(
            mode,
            settings.image_style,
            retry_config=settings.retry_config(mode),
            on_retry=on_retry,
            provider=ImageProviderFactory.create_from_settings(settings, mode),
            sleep=sleep,
        )

    def _create_provider(
        self,
        api_key: str | None,
        mock_config: MockFailureConfig | None,
    ) -> ImageGenerationProvider:
        config: dict = {"timeout": self.retry_config.timeout}
        kwargs: dict = {}
        if self.mode == "gemini":
            config["api_key"] = api_key or ""
        elif self.mode == "mock":
            kwargs["failure_config"] = mock_config
        return ImageProviderFactory.create(self.mode, config, **kwargs)

    def generate_image(
        self,
        card_id: int,
        question: str,
        answer: str,
        output_dir: str,
    ) -> GenerationResult:
        try:
            prompt = self.prompt_generator.generate_prompt(question, answer)
            response = generate_with_retry(
                self.provider,
                ImageGenerationRequest(prompt=prompt, card_id=card_id),
                self.retry_config,
                on_retry=self.on_retry,
                sleep=self._sleep,
            )
            image_path = self.save_image(card_id, response.image_content, output_dir)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.warning(
                "card image generation failed",
                extra={"card_id": card_id, "mode": self.mode, "error": message},
            )
            cards_generated_total.labels(mode=self.mode, status="failed").inc()
            return GenerationResult.failed(card_id, message)

        cards_generated_total.labels(mode=self.mode, status="success").inc()
        logger.info("card image saved", extra={"card_id": card_id, "image_path": image_path})
        return GenerationResult.succeeded(card_id, image_path)

    @staticmethod
    def save_image(card_id: int, image_data: bytes, output_dir: str) -> str:
        """Write card-NNN.png atomically: temp file in the same directory, then os.replace."""
        os.makedirs(output_dir, exist_ok=True)
        path = os.path.join(output_dir, card_image_filename(card_id))
        with tempfile.NamedTemporaryFile(dir=output_dir, suffix=".tmp", delete=False) as tmp:
            tmp_path = tmp.name
        try:
            with open(tmp_path, "wb") as f:
                f.write(image_data)
            os.replace(tmp_path, path)
        except OSError:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise
        return path

    def close(self) -> None:
        self.provider.close()

    def __enter__(self) -> "ImageGenerator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
