"""
Mock provider: deterministic offline stand-in with failure simulation.
Failure state is keyed by (card_id, prompt). Once a key reaches
max_attempts_before_success attempts it always succeeds, whatever the mode,
so retry tests terminate.
"""
import base64
import hashlib
import logging
import os
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from card_illustrator.services.image_generation.base import (
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
    card_image_filename,
)
from card_illustrator.services.image_generation.failure_types import (
    BackendConnectionError,
    BackendTimeoutError,
    ImageGenerationError,
    RateLimitError,
    ServerError,
)

logger = logging.getLogger(__name__)

# 1x1 PNG
PLACEHOLDER_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


class FailureMode(str, Enum):
    NONE = "none"
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    RATE_LIMIT = "ratelimit"
    SERVER = "server"
    RANDOM = "random"


CONCRETE_FAILURE_MODES = (
    FailureMode.CONNECTION,
    FailureMode.TIMEOUT,
    FailureMode.RATE_LIMIT,
    FailureMode.SERVER,
)


@dataclass(frozen=True)
class MockFailureConfig:
    failure_mode: FailureMode = FailureMode.NONE
    failure_rate: float = 0.0  # used only in RANDOM mode
    max_attempts_before_success: int = 3
    latency_seconds: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "failure_mode", FailureMode(self.failure_mode))
        if not 0.0 <= self.failure_rate <= 1.0:
            raise ValueError("failure_rate must be within [0, 1]")
        if self.max_attempts_before_success < 1:
            raise ValueError("max_attempts_before_success must be >= 1")
        if self.latency_seconds < 0:
            raise ValueError("latency_seconds must be >= 0")


def fingerprint(card_id: int | None, prompt: str) -> str:
    return hashlib.sha256(f"{card_id}:{prompt}".encode("utf-8")).hexdigest()


def simulated_error(mode: FailureMode) -> ImageGenerationError:
    if mode == FailureMode.CONNECTION:
        return BackendConnectionError("Simulated connection failure")
    if mode == FailureMode.TIMEOUT:
        return BackendTimeoutError(30)
    if mode == FailureMode.RATE_LIMIT:
        return RateLimitError(retry_after=None)
    if mode == FailureMode.SERVER:
        return ServerError("Simulated server error: 503 - Service Unavailable")
    raise ValueError(f"No simulated error for mode {mode.value}")


class MockProvider(ImageGenerationProvider):
    """Placeholder images with no network calls."""

    name = "mock"

    def __init__(
        self,
        config: dict | None = None,
        failure_config: MockFailureConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(config or {})
        self.failure_config = failure_config or MockFailureConfig()
        self._rng = rng or random.Random()
        self._attempts: dict[str, int] = {}

    def is_available(self) -> bool:
        return True

    def get_supported_models(self) -> list[str]:
        return ["placeholder"]

    def get_service_info(self) -> dict[str, Any]:
        return {
            "name": "Mock",
            "free": True,
            "requires_auth": False,
            "failure_mode": self.failure_config.failure_mode.value,
        }

    def attempt_count(self, card_id: int | None, prompt: str) -> int:
        return self._attempts.get(fingerprint(card_id, prompt), 0)

    def reset(self) -> None:
        """Forget every per-card attempt counter."""
        self._attempts.clear()

    def set_failure_mode(self, mode: FailureMode | str, failure_rate: float | None = None) -> None:
        current = self.failure_config
        self.failure_config = MockFailureConfig(
            failure_mode=FailureMode(mode),
            failure_rate=current.failure_rate if failure_rate is None else failure_rate,
            max_attempts_before_success=current.max_attempts_before_success,
            latency_seconds=current.latency_seconds,
        )
        logger.info("mock failure mode changed", extra={"failure_type": self.failure_config.failure_mode.value})

    def generate(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        key = fingerprint(request.card_id, request.prompt)
        attempt = self._attempts.get(key, 0) + 1
        self._attempts[key] = attempt

        if self.failure_config.latency_seconds:
            time.sleep(self.failure_config.latency_seconds)

        error = self._pick_failure(attempt)
        if error is not None:
            logger.debug(
                "mock failure simulated",
                extra={"card_id": request.card_id, "attempt": attempt, "failure_type": error.failure_type.value},
            )
            raise error

        return ImageGenerationResponse(
            image_content=PLACEHOLDER_PNG,
            provider=self.name,
            model="placeholder",
        )

    def generate_mock_image(self, card_id: int, prompt: str, output_dir: str) -> str:
        """Run one simulated attempt and write the placeholder to output_dir; returns the path."""
        response = self.generate(ImageGenerationRequest(prompt=prompt, card_id=card_id))
        os.makedirs(output_dir, exist_ok=True)
        path = os.path.join(output_dir, card_image_filename(card_id))
        with open(path, "wb") as f:
            f.write(response.image_content)
        return path

    def _pick_failure(self, attempt: int) -> ImageGenerationError | None:
        config = self.failure_config
        if attempt >= config.max_attempts_before_success:
            return None
        if config.failure_mode == FailureMode.NONE:
            return None
        if config.failure_mode == FailureMode.RANDOM:
            if self._rng.random() >= config.failure_rate:
                return None
            return simulated_error(self._rng.choice(CONCRETE_FAILURE_MODES))
        return simulated_error(config.failure_mode)
