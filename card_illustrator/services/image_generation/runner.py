"""
Image generation runner: centralized generate-with-retry and observability.
The runner is the only retry authority; providers raise classified errors and never loop.
Delay per retry comes from RetryConfig.delays, or from RateLimitError.retry_after when present.
"""
import logging
import random
import time
from typing import Any, Callable

from card_illustrator.services.image_generation.base import (
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
    RetryConfig,
)
from card_illustrator.services.image_generation.failure_types import (
    ImageGenerationError,
    RateLimitError,
)
from card_illustrator.utils.metrics import (
    image_generation_attempts_total,
    image_generation_duration_seconds,
    image_generation_retries_total,
)

logger = logging.getLogger(__name__)

# on_retry(attempt, delay_seconds, error) is called right before the runner sleeps.
RetryHook = Callable[[int, float, ImageGenerationError], None]

# Keys for structured logging
LOG_KEYS = (
    "provider",
    "card_id",
    "attempt",
    "max_attempts",
    "success_after_retry",
    "failure_type",
    "retryable",
    "error",
)


def compute_delay(config: RetryConfig, attempt: int, error: ImageGenerationError) -> float:
    """Seconds to wait after a failed attempt: provider hint first, then the delay table."""
    if (
        config.respect_retry_after
        and isinstance(error, RateLimitError)
        and error.retry_after is not None
    ):
        delay = float(error.retry_after)
    else:
        delay = config.delay_for(attempt)
    if config.jitter > 0:
        delay += random.uniform(0, config.jitter)
    return delay


def generate_with_retry(
    provider: ImageGenerationProvider,
    request: ImageGenerationRequest,
    retry_config: RetryConfig | None = None,
    *,
    on_retry: RetryHook | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ImageGenerationResponse:
    """
    Call provider.generate with a bounded retry budget.
    Non-retryable errors are raised after the first attempt; the last error is raised
    once attempts are exhausted. Exceptions outside the taxonomy propagate untouched.
    """
    config = retry_config or RetryConfig()
    provider_name = getattr(provider, "name", type(provider).__name__)
    attempt = 0

    while True:
        attempt += 1
        started = time.monotonic()
        try:
            result = provider.generate(request)
        except ImageGenerationError as e:
            image_generation_duration_seconds.labels(provider=provider_name).observe(
                time.monotonic() - started
            )
            image_generation_attempts_total.labels(
                provider=provider_name, outcome=e.failure_type.value
            ).inc()
            _log_structured(
                provider=provider_name,
                card_id=request.card_id,
                attempt=attempt,
                max_attempts=config.max_attempts,
                success_after_retry=False,
                failure_type=e.failure_type.value,
                retryable=e.retryable,
                error=e.message,
            )

            if not e.retryable or attempt >= config.max_attempts:
                raise

            delay = compute_delay(config, attempt, e)
            image_generation_retries_total.labels(
                provider=provider_name, failure_type=e.failure_type.value
            ).inc()
            logger.info(
                "image_generation_retry_scheduled",
                extra={
                    "provider": provider_name,
                    "card_id": request.card_id,
                    "attempt": attempt,
                    "max_attempts": config.max_attempts,
                    "delay_seconds": round(delay, 2),
                    "failure_type": e.failure_type.value,
                },
            )
            if on_retry is not None:
                on_retry(attempt, delay, e)
            sleep(delay)
            continue

        image_generation_duration_seconds.labels(provider=provider_name).observe(
            time.monotonic() - started
        )
        image_generation_attempts_total.labels(provider=provider_name, outcome="success").inc()
        if attempt > 1:
            _log_structured(
                provider=provider_name,
                card_id=request.card_id,
                attempt=attempt,
                max_attempts=config.max_attempts,
                success_after_retry=True,
            )
        return result


def _log_structured(**kwargs: Any) -> None:
    """Emit one structured log line per attempt outcome."""
    extra = {k: v for k, v in kwargs.items() if k in LOG_KEYS and v is not None}
    logger.info("image_generation_result", extra=extra)
