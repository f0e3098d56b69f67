"""
Application configuration.
All settings are loaded from environment variables (or a local .env file).
Use env.example as a reference.
Resolving the api key happens here, never inside the providers.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings

from card_illustrator.services.image_generation.base import RetryConfig

IMAGE_MODES = ("mock", "gemini", "pollinations", "huggingface")
MOCK_FAILURE_MODES = ("none", "connection", "timeout", "ratelimit", "server", "random")


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    # ===========================================
    # IMAGE GENERATION - BACKEND SELECTION
    # ===========================================
    image_mode: str = "pollinations"  # mock, gemini, pollinations, huggingface
    image_style: str = "educational"  # educational, medical, colorful, minimal, iconic

    # ===========================================
    # GOOGLE GEMINI (mode: gemini)
    # ===========================================
    gemini_api_key: str = ""  # Get from https://aistudio.google.com/apikey
    gemini_api_endpoint: str = "https://generativelanguage.googleapis.com"
    gemini_image_model: str = "gemini-2.0-flash-preview-image-generation"
    gemini_timeout: float = 30.0

    # ===========================================
    # POLLINATIONS (mode: pollinations)
    # ===========================================
    pollinations_api_url: str = "https://pollinations.ai"
    pollinations_timeout: float = 30.0

    # ===========================================
    # HUGGING FACE SPACE (mode: huggingface)
    # ===========================================
    huggingface_space_id: str = "ehristoforu/dalle-3-xl-lora-v2"
    huggingface_timeout: float = 60.0

    # ===========================================
    # IMAGE GENERATION - RETRY
    # ===========================================
    image_generation_retry_max_attempts: int = 3
    # Seconds per attempt, comma-separated; the last value repeats
    image_generation_retry_delays: str = "1,2,4"
    image_generation_retry_respect_retry_after: bool = True
    image_generation_retry_jitter_seconds: float = 0.0

    # ===========================================
    # MOCK BACKEND (mode: mock)
    # ===========================================
    mock_failure_mode: str = "none"
    mock_failure_rate: float = 0.0
    mock_max_attempts_before_success: int = 3

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_file: str = ""
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 3

    @field_validator("image_mode")
    @classmethod
    def validate_image_mode(cls, v: str) -> str:
        value = v.strip().lower()
        if value not in IMAGE_MODES:
            raise ValueError(f"image_mode must be one of: {', '.join(IMAGE_MODES)}")
        return value

    @field_validator("mock_failure_mode")
    @classmethod
    def validate_mock_failure_mode(cls, v: str) -> str:
        value = v.strip().lower()
        if value not in MOCK_FAILURE_MODES:
            raise ValueError(f"mock_failure_mode must be one of: {', '.join(MOCK_FAILURE_MODES)}")
        return value

    @field_validator("image_generation_retry_delays")
    @classmethod
    def validate_retry_delays(cls, v: str) -> str:
        try:
            delays = [float(item) for item in v.split(",") if item.strip()]
        except ValueError:
            raise ValueError("image_generation_retry_delays must be comma-separated numbers")
        if not delays or any(d < 0 for d in delays):
            raise ValueError("image_generation_retry_delays needs at least one non-negative value")
        return v

    @property
    def retry_delays(self) -> tuple[float, ...]:
        return tuple(float(item) for item in self.image_generation_retry_delays.split(",") if item.strip())

    def timeout_for_mode(self, mode: str | None = None) -> float:
        mode = mode or self.image_mode
        return {
            "gemini": self.gemini_timeout,
            "pollinations": self.pollinations_timeout,
            "huggingface": self.huggingface_timeout,
        }.get(mode, 30.0)

    def retry_config(self, mode: str | None = None) -> RetryConfig:
        """Retry budget for the runner, built from the retry settings."""
        return RetryConfig(
            max_attempts=self.image_generation_retry_max_attempts,
            delays=self.retry_delays,
            timeout=self.timeout_for_mode(mode),
            jitter=self.image_generation_retry_jitter_seconds,
            respect_retry_after=self.image_generation_retry_respect_retry_after,
        )

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
