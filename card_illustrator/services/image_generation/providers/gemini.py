"""
Gemini provider (Google AI generateContent image generation).
Uses generativelanguage.googleapis.com with the api key as a query parameter.
200 OK with empty content is never a silent success.
"""
import base64
import binascii
import logging
from typing import Any

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

DEFAULT_ENDPOINT = "https://generativelanguage.googleapis.com"
DEFAULT_MODEL = "gemini-2.0-flash-preview-image-generation"
DEFAULT_TIMEOUT = 30.0
IMAGE_SIGNATURES = (b"\x89PNG\r\n\x1a\n", b"\xff\xd8\xff", b"GIF87a", b"GIF89a")


def looks_like_image(data: bytes) -> bool:
    """Magic-byte check for PNG, JPEG, GIF and WebP bodies."""
    if data.startswith(IMAGE_SIGNATURES):
        return True
    return data[:4] == b"RIFF" and data[8:12] == b"WEBP"


def build_gemini_error_detail(result: dict[str, Any]) -> dict[str, Any]:
    """
    Extract error-related fields from a raw Gemini response for logging.
    Normalized keys: block_reason, finish_reason, finish_message.
    """
    detail: dict[str, Any] = {}
    if not result:
        return detail
    prompt_feedback = result.get("promptFeedback") or {}
    if prompt_feedback.get("blockReason"):
        detail["block_reason"] = prompt_feedback.get("blockReason")
    candidates = result.get("candidates") or []
    if candidates:
        c0 = candidates[0]
        if "finishReason" in c0:
            detail["finish_reason"] = c0["finishReason"]
        if "finishMessage" in c0:
            detail["finish_message"] = c0["finishMessage"]
    return detail


def extract_inline_image(result: dict[str, Any]) -> bytes | None:
    """Return the first inline base64 image part of a generateContent response."""
    for candidate in result.get("candidates") or []:
        content = candidate.get("content") or {}
        for part in content.get("parts") or []:
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and isinstance(inline.get("data"), str):
                try:
                    return base64.b64decode(inline["data"], validate=True)
                except (binascii.Error, ValueError):
                    logger.warning("gemini inline image is not valid base64")
    return None


class GeminiProvider(ImageGenerationProvider):
    """Gemini image generation via Google AI generateContent API."""

    name = "gemini"

    def __init__(self, config: dict, transport: httpx.BaseTransport | None = None) -> None:
        super().__init__(config)
        self.api_key = (config.get("api_key") or "").strip()
        endpoint = (config.get("api_endpoint") or DEFAULT_ENDPOINT).rstrip("/")
        self.base_url = f"{endpoint}/v1beta/models"
        self.timeout = float(config.get("timeout", DEFAULT_TIMEOUT))
        self.model_name = (config.get("model") or DEFAULT_MODEL).strip()
        self._transport = transport

    def is_available(self) -> bool:
        return bool(self.api_key)

    def get_supported_models(self) -> list[str]:
        return [
            "gemini-2.0-flash-preview-image-generation",
            "gemini-2.5-flash-image",
        ]

    def get_service_info(self) -> dict[str, Any]:
        return {
            "name": "Google Gemini",
            "url": DEFAULT_ENDPOINT,
            "free": False,
            "requires_auth": True,
            "model": self.model_name,
        }

    def generate(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        if not self.is_available():
            raise ClientError("No API key provided")

        payload = {
            "contents": [{"parts": [{"text": request.prompt}]}],
            "generationConfig": {
                "responseModalities": ["TEXT", "IMAGE"],
                "temperature": 0.4,
                "topK": 32,
                "topP": 1,
            },
        }
        url = f"{self.base_url}/{self.model_name}:generateContent"

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.post(url, params={"key": self.api_key}, json=payload)
        except httpx.TransportError as e:
            raise classify_transport_error(e, self.timeout, "Gemini image generation service") from e

        if resp.status_code != 200:
            try:
                err_body = resp.json()
            except ValueError:
                err_body = {}
            detail = build_gemini_error_detail(err_body if isinstance(err_body, dict) else {})
            raise classify_http_status(
                resp.status_code,
                resp.reason_phrase,
                retry_after=resp.headers.get("Retry-After"),
                detail=detail,
            )

        content_type = resp.headers.get("content-type", "")
        if content_type.startswith("image/"):
            image = resp.content
        else:
            image = self._image_from_json(resp)

        if not image:
            raise ClientError("No image data received from API")

        logger.info(
            "gemini image generated",
            extra={"provider": self.name, "bytes": len(image)},
        )
        return ImageGenerationResponse(
            image_content=image,
            provider=self.name,
            model=self.model_name,
        )

    def _image_from_json(self, resp: httpx.Response) -> bytes | None:
        try:
            result = resp.json()
        except ValueError:
            # Unlabelled body: only accept it when the bytes are an image.
            if looks_like_image(resp.content):
                return resp.content
            logger.warning(
                "gemini response is neither json nor an image",
                extra={"provider": self.name, "bytes": len(resp.content)},
            )
            return None
        if not isinstance(result, dict):
            return None

        prompt_feedback = result.get("promptFeedback") or {}
        if prompt_feedback.get("blockReason"):
            raise ClientError(
                f"Content policy violation: {prompt_feedback['blockReason']}",
                detail=build_gemini_error_detail(result),
            )

        image = extract_inline_image(result)
        if image is None:
            detail = build_gemini_error_detail(result)
            if detail:
                logger.warning("gemini response without image", extra={"error": str(detail)})
        return image
