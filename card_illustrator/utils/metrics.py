"""
Prometheus-based metrics for image generation.
Exposed through prometheus_client's default registry; the caller decides how to scrape or push.
"""
from prometheus_client import Counter, Histogram


# Counters
image_generation_attempts_total = Counter(
    "image_generation_attempts_total",
    "Total backend generate() attempts",
    ["provider", "outcome"],  # success, <failure_type>
)

image_generation_retries_total = Counter(
    "image_generation_retries_total",
    "Total retries scheduled by the runner",
    ["provider", "failure_type"],
)

cards_generated_total = Counter(
    "cards_generated_total",
    "Total cards processed by the generator",
    ["mode", "status"],  # success, failed
)

# Histograms
image_generation_duration_seconds = Histogram(
    "image_generation_duration_seconds",
    "Single backend generate() duration",
    ["provider"],
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30, 60, 120],
)
