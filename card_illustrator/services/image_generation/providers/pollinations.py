"""
Pollinations provider: free image generation, no registration or api key.
A single GET with the prompt url-encoded into the path returns the image bytes.
"""
import logging
from typing import Any
from urllib.parse import quote

import httpx

from card_illustrator.services.image_generation.base import (
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
)
from card_illustrator.services.image_generation.failure_types import (
    ClientError,
    classify_http_status,
    classify_transport_error,
)

logger = logging.getLogger(__name__)

USER_AGENT = "Card-Illustrator/1.0"


class PollinationsProvider(ImageGenerationProvider):
    """Pollinations AI provider."""

    name = "pollinations"

    def __init__(self, config: dict, transport: httpx.BaseTransport | None = None) -> None:
        super().__init__(config)
        self.api_url = (config.get("api_url") or "https://pollinations.ai").rstrip("/")
        self.timeout = float(config.get("timeout", 30.0))
        self._transport = transport

    def is_available(self) -> bool:
        return True

    def get_supported_models(self) -> list[str]:
        return ["default"]

    def get_service_info(self) -> dict[str, Any]:
        return {
            "name": "Pollinations AI",
            "url": self.api_url,
            "free": True,
            "requires_auth": False,
        }

    def generate(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        url = f"{self.api_url}/p/{quote(request.prompt, safe='')}"
        logger.debug("pollinations request", extra={"provider": self.name, "card_id": request.card_id})

        try:
            with httpx.Client(
                timeout=self.timeout,
                transport=self._transport,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
            ) as client:
                resp = client.get(url)
        except httpx.TransportError as e:
            raise classify_transport_error(e, self.timeout, "Pollinations image generation service") from e

        if resp.status_code != 200:
            raise classify_http_status(
                resp.status_code,
                resp.reason_phrase,
                retry_after=resp.headers.get("Retry-After"),
            )

        # Status alone is not enough: an empty 200 body carries no image.
        content = resp.content
        if not content:
            raise ClientError("No image data received from API", detail={"http_status": 200})

        return ImageGenerationResponse(
            image_content=content,
            provider=self.name,
            image_url=url,
        )
