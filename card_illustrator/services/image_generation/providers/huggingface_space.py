"""
Hugging Face Space provider (queue-based Gradio inference, no api key).
The Gradio client is connected lazily, cached on the instance and reused serially;
close() drops it. The callable endpoint is discovered once per connection.
"""
import base64
import binascii
import concurrent.futures
import logging
import random
from pathlib import Path
from typing import Any, Callable

import httpx
from gradio_client import Client

from card_illustrator.services.image_generation.base import (
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
)
from card_illustrator.services.image_generation.failure_types import (
    BackendConnectionError,
    BackendTimeoutError,
    ClientError,
    ImageGenerationError,
    RateLimitError,
    ServerError,
    UnknownGenerationError,
    classify_transport_error,
    parse_retry_after_seconds,
)

logger = logging.getLogger(__name__)

DEFAULT_SPACE_ID = "ehristoforu/dalle-3-xl-lora-v2"
DEFAULT_ENDPOINT = "/predict"
ENDPOINT_PREFERENCE = ("predict", "generate", "run", "infer")
NEGATIVE_PROMPT = "deformed, ugly, blurry, low quality, text, watermark, nsfw, inappropriate"
IMAGE_WIDTH = 1024
IMAGE_HEIGHT = 1024
GUIDANCE_SCALE = 6
MAX_SEED = 2147483646

ImageFetcher = Callable[[str], bytes]


def space_origin(space_id: str) -> str:
    """https://{owner}-{name}.hf.space for a space id like owner/name."""
    return f"https://{space_id.replace('/', '-').replace('.', '-').lower()}.hf.space"


def select_endpoint(named_endpoints: list[str]) -> str:
    """Pick the generation endpoint from the names a space exposes."""
    for keyword in ENDPOINT_PREFERENCE:
        for endpoint in named_endpoints:
            if keyword in endpoint:
                return endpoint
    if named_endpoints:
        return named_endpoints[0]
    return DEFAULT_ENDPOINT


def decode_data_uri(value: str) -> bytes | None:
    if not value.startswith("data:image/") or "," not in value:
        return None
    try:
        return base64.b64decode(value.split(",", 1)[1], validate=True)
    except (binascii.Error, ValueError):
        return None


class SpaceResponseParser:
    """
    Ordered extractor strategies over heterogeneous Gradio payloads.
    Each strategy returns bytes or None; the first hit wins. A failed download only
    ends its own strategy; when nothing is found, the last download error is raised.
    """

    def __init__(self, origin: str, fetch: ImageFetcher) -> None:
        self.origin = origin
        self.fetch = fetch
        self.strategies: list[Callable[[Any], bytes | None]] = [
            self.from_gallery_url,
            self.from_gallery_path,
            self.from_data_entries,
            self.from_data_uri,
            self.from_local_file,
        ]
        self._download_errors: list[ImageGenerationError] = []

    def parse(self, result: Any) -> bytes:
        self._download_errors = []
        for strategy in self.strategies:
            image = strategy(result)
            if image:
                logger.debug("space image extracted", extra={"strategy": strategy.__name__})
                return image
        if self._download_errors:
            raise self._download_errors[-1]
        raise ClientError("No image data received from Hugging Face Space")

    @staticmethod
    def _gallery_items(result: Any) -> list[Any]:
        data = result.get("data") if isinstance(result, dict) else result
        if isinstance(data, (list, tuple)) and data and isinstance(data[0], (list, tuple)):
            return list(data[0])
        return []

    def from_gallery_url(self, result: Any) -> bytes | None:
        for item in self._gallery_items(result):
            image = item.get("image") if isinstance(item, dict) else None
            if isinstance(image, dict) and isinstance(image.get("url"), str):
                downloaded = self.download(image["url"])
                if downloaded:
                    return downloaded
        return None

    def from_gallery_path(self, result: Any) -> bytes | None:
        for item in self._gallery_items(result):
            image = item.get("image") if isinstance(item, dict) else item
            if isinstance(image, dict):
                image = image.get("path")
            if isinstance(image, str) and image:
                downloaded = self.load_reference(image)
                if downloaded:
                    return downloaded
        return None

    def from_data_entries(self, result: Any) -> bytes | None:
        if not isinstance(result, dict) or not isinstance(result.get("data"), (list, tuple)):
            return None
        for entry in result["data"]:
            if isinstance(entry, str):
                image = decode_data_uri(entry)
                if image:
                    return image
            elif isinstance(entry, dict) and isinstance(entry.get("url"), str):
                image = self.download(entry["url"])
                if image:
                    return image
        return None

    def from_data_uri(self, result: Any) -> bytes | None:
        if isinstance(result, str):
            return decode_data_uri(result)
        return None

    def from_local_file(self, result: Any) -> bytes | None:
        if isinstance(result, (list, tuple)) and result and isinstance(result[0], str):
            result = result[0]
        if isinstance(result, str) and not result.startswith(("http://", "https://", "data:")):
            path = Path(result)
            if path.is_file():
                return path.read_bytes()
        return None

    def load_reference(self, reference: str) -> bytes | None:
        """Resolve a gallery image reference: data uri, local download, absolute or relative url."""
        if reference.startswith("data:"):
            return decode_data_uri(reference)
        if reference.startswith(("http://", "https://")):
            return self.download(reference)
        path = Path(reference)
        if path.is_file():
            return path.read_bytes()
        return self.download(f"{self.origin}/file={reference}")

    def download(self, url: str) -> bytes | None:
        try:
            return self.fetch(url)
        except ImageGenerationError as e:
            logger.warning("space image download failed", extra={"error": f"{url}: {e}"})
            self._download_errors.append(e)
            return None


def classify_space_error(exc: Exception, timeout_seconds: float) -> ImageGenerationError:
    """Classify a Gradio/space failure once, where it is caught."""
    if isinstance(exc, ImageGenerationError):
        return exc
    if isinstance(exc, httpx.TransportError):
        return classify_transport_error(exc, timeout_seconds, "Hugging Face Space")
    if isinstance(exc, (TimeoutError, concurrent.futures.TimeoutError)):
        return BackendTimeoutError(timeout_seconds)

    message = str(exc)
    lowered = message.lower()
    if "queue" in lowered or "capacity" in lowered:
        return BackendConnectionError("Hugging Face Space is busy (queue full)")
    if "offline" in lowered or "building" in lowered:
        return BackendConnectionError("Hugging Face Space is currently unavailable")
    if "timeout" in lowered or "timed out" in lowered or "aborted" in lowered:
        return BackendTimeoutError(timeout_seconds)
    if "inappropriate" in lowered or "policy" in lowered:
        return ClientError(f"Content policy violation: {message}")
    return UnknownGenerationError(message or type(exc).__name__)


def _download_error(resp: httpx.Response) -> ImageGenerationError:
    """Space file downloads carry no credentials, so 401/403 are plain download failures."""
    status = resp.status_code
    detail = {"http_status": status, "url": str(resp.request.url)}
    suffix = f" - {resp.reason_phrase}" if resp.reason_phrase else ""
    if status == 429:
        return RateLimitError(parse_retry_after_seconds(resp.headers.get("Retry-After")), detail)
    if status >= 500:
        return ServerError(f"Hugging Face Space file server error: {status}{suffix}", detail)
    return ClientError(f"Could not download generated image from Hugging Face Space: {status}{suffix}", detail)


def _connect(space_id: str) -> Any:
    return Client(space_id, verbose=False)


class HuggingFaceSpaceProvider(ImageGenerationProvider):
    """DALL-E 3 XL style generation through a public Hugging Face Space."""

    name = "huggingface"
    connection_test_prompt = "simple test image"

    def __init__(
        self,
        config: dict,
        client_factory: Callable[[str], Any] | None = None,
        transport: httpx.BaseTransport | None = None,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(config)
        self.space_id = config.get("space_id") or DEFAULT_SPACE_ID
        self.timeout = float(config.get("timeout", 60.0))
        self._client_factory = client_factory or _connect
        self._transport = transport
        self._rng = rng or random.Random()
        self._client: Any = None
        self._endpoint: str | None = None
        self._parser = SpaceResponseParser(space_origin(self.space_id), self._fetch)

    def is_available(self) -> bool:
        return bool(self.space_id)

    def get_supported_models(self) -> list[str]:
        return [self.space_id]

    def get_service_info(self) -> dict[str, Any]:
        return {
            "name": "Hugging Face DALL-E 3 XL LoRA v2",
            "url": f"https://huggingface.co/spaces/{self.space_id}",
            "free": True,
            "requires_auth": False,
            "rate_limit": "Queue-based (may have waiting times)",
        }

    @property
    def endpoint(self) -> str | None:
        return self._endpoint

    @property
    def connected(self) -> bool:
        return self._client is not None

    def close(self) -> None:
        if self._client is not None:
            logger.info("disconnected from space", extra={"space_id": self.space_id})
        self._client = None
        self._endpoint = None

    def generate(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        try:
            client = self._ensure_client()
            endpoint = self._endpoint or DEFAULT_ENDPOINT
            seed = self._rng.randint(0, MAX_SEED)
            logger.info(
                "space generation started",
                extra={"space_id": self.space_id, "endpoint": endpoint, "card_id": request.card_id},
            )
            job = client.submit(
                request.prompt,
                NEGATIVE_PROMPT,
                True,
                seed,
                IMAGE_WIDTH,
                IMAGE_HEIGHT,
                GUIDANCE_SCALE,
                True,
                api_name=endpoint,
            )
            try:
                result = job.result(timeout=self.timeout)
            except (TimeoutError, concurrent.futures.TimeoutError):
                # Drop the abandoned job from the space queue.
                job.cancel()
                raise
            image = self._parser.parse(result)
        except Exception as e:
            error = classify_space_error(e, self.timeout)
            if error is e:
                raise
            raise error from e

        return ImageGenerationResponse(
            image_content=image,
            provider=self.name,
            model=self.space_id,
        )

    def _ensure_client(self) -> Any:
        if self._client is None:
            logger.info("connecting to space", extra={"space_id": self.space_id})
            self._client = self._client_factory(self.space_id)
            self._endpoint = self._discover_endpoint(self._client)
        return self._client

    def _discover_endpoint(self, client: Any) -> str:
        try:
            api_info = client.view_api(print_info=False, return_format="dict")
            named = list((api_info or {}).get("named_endpoints") or {})
        except Exception as e:
            logger.warning(
                "endpoint discovery failed, using default",
                extra={"space_id": self.space_id, "error": str(e)},
            )
            return DEFAULT_ENDPOINT
        endpoint = select_endpoint(named)
        logger.info("space endpoint selected", extra={"space_id": self.space_id, "endpoint": endpoint})
        return endpoint

    def _fetch(self, url: str) -> bytes:
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport, follow_redirects=True) as client:
                resp = client.get(url)
        except httpx.TransportError as e:
            raise classify_transport_error(e, self.timeout, "Hugging Face Space") from e
        if resp.status_code != 200:
            raise _download_error(resp)
        return resp.content
