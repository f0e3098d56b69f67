"""
Base classes and types for image generation backends.
Used by factory, runner, generator and all providers (gemini, pollinations, huggingface, mock).
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field, field_validator

from card_illustrator.services.image_generation.failure_types import ImageGenerationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageGenerationRequest:
    """Request for image generation. Providers other than mock only read the prompt."""
    prompt: str
    card_id: int | None = None


@dataclass
class ImageGenerationResponse:
    """Response from image generation."""
    image_content: bytes
    provider: str
    model: str | None = None
    image_url: str | None = None


def card_image_filename(card_id: int) -> str:
    """card-007.png for card 7."""
    return f"card-{card_id:03d}.png"


@dataclass(frozen=True)
class GenerationResult:
    """Per-card outcome returned by the generator; exactly one of image_path/error is set."""
    card_id: int
    success: bool
    image_path: str | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.success and (not self.image_path or self.error is not None):
            raise ValueError("successful result needs image_path and no error")
        if not self.success and (self.error is None or self.image_path is not None):
            raise ValueError("failed result needs error and no image_path")

    @classmethod
    def succeeded(cls, card_id: int, image_path: str) -> "GenerationResult":
        return cls(card_id=card_id, success=True, image_path=image_path)

    @classmethod
    def failed(cls, card_id: int, error: str) -> "GenerationResult":
        return cls(card_id=card_id, success=False, error=error or "Unknown error")


class RetryConfig(BaseModel):
    """
    Retry budget for the runner.

    Args:
        max_attempts: Total attempts including the first call
        delays: Backoff per attempt index in seconds; the last value repeats
        timeout: Per-attempt request timeout in seconds (passed to providers)
        jitter: Upper bound of random seconds added to each delay
        respect_retry_after: Use RateLimitError.retry_after instead of the table
    """

    model_config = {"frozen": True}

    max_attempts: int = Field(default=3, ge=1)
    delays: tuple[float, ...] = (1.0, 2.0, 4.0)
    timeout: float = Field(default=30.0, gt=0)
    jitter: float = Field(default=0.0, ge=0.0)
    respect_retry_after: bool = True

    @field_validator("delays")
    @classmethod
    def validate_delays(cls, v: tuple[float, ...]) -> tuple[float, ...]:
        if not v:
            raise ValueError("delays must contain at least one value")
        if any(d < 0 for d in v):
            raise ValueError("delays must be non-negative")
        return v

    def delay_for(self, attempt: int) -> float:
        """Configured delay after the given (1-indexed) failed attempt."""
        index = min(max(attempt, 1), len(self.delays)) - 1
        return self.delays[index]


class ImageGenerationProvider(ABC):
    """Base class for image generation backends."""

    name: str = "base"
    connection_test_prompt: str = "test image"

    def __init__(self, config: dict) -> None:
        self.config = config

    @abstractmethod
    def is_available(self) -> bool:
        """Check if provider is configured and available."""
        pass

    @abstractmethod
    def get_supported_models(self) -> list[str]:
        """Return list of supported model names."""
        pass

    def get_service_info(self) -> dict[str, Any]:
        """Human-facing description of the backend."""
        return {"name": self.name}

    def close(self) -> None:
        """Release cached connections. Safe to call more than once."""
        return None

    @abstractmethod
    def generate(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        """Generate image from request. Raises ImageGenerationError on failure; never retries."""
        pass

    def test_connection(self) -> bool:
        """Live check: one generation with a throwaway prompt, no retries."""
        try:
            self.generate(ImageGenerationRequest(prompt=self.connection_test_prompt))
        except ImageGenerationError as e:
            logger.warning(
                "connection test failed",
                extra={"provider": self.name, "failure_type": e.failure_type.value, "error": str(e)},
            )
            return False
        return True
