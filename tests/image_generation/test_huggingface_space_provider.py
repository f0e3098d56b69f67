"""Tests for HuggingFaceSpaceProvider: lazy connection, endpoint discovery, payload extraction, error mapping."""
import base64
import concurrent.futures
import random
from unittest.mock import MagicMock

import httpx
import pytest

from card_illustrator.services.image_generation.base import ImageGenerationRequest
from card_illustrator.services.image_generation.failure_types import (
    BackendConnectionError,
    BackendTimeoutError,
    ClientError,
    UnknownGenerationError,
)
from card_illustrator.services.image_generation.providers.huggingface_space import (
    DEFAULT_ENDPOINT,
    HuggingFaceSpaceProvider,
    SpaceResponseParser,
    classify_space_error,
    select_endpoint,
    space_origin,
)

PNG = b"\x89PNG\r\n\x1a\nspace"
DATA_URI = "data:image/png;base64," + base64.b64encode(PNG).decode()
REQUEST = ImageGenerationRequest(prompt="a mitochondrion", card_id=3)


def _gradio_client(result=DATA_URI, endpoints=("/run",)):
    client = MagicMock()
    client.view_api.return_value = {"named_endpoints": {name: {} for name in endpoints}, "unnamed_endpoints": {}}
    client.submit.return_value.result.return_value = result
    return client


def _provider(client, handler=None):
    factory = MagicMock(return_value=client)
    transport = httpx.MockTransport(handler or (lambda r: httpx.Response(404)))
    provider = HuggingFaceSpaceProvider(
        {"timeout": 15},
        client_factory=factory,
        transport=transport,
        rng=random.Random(1),
    )
    return provider, factory


class TestEndpointSelection:
    def test_preference_order(self):
        assert select_endpoint(["/lambda", "/infer", "/run"]) == "/run"
        assert select_endpoint(["/generate_image", "/run"]) == "/generate_image"
        assert select_endpoint(["/predict_1", "/generate"]) == "/predict_1"
        assert select_endpoint(["/infer"]) == "/infer"

    def test_fallbacks(self):
        assert select_endpoint(["/lambda", "/lambda_1"]) == "/lambda"
        assert select_endpoint([]) == DEFAULT_ENDPOINT

    def test_space_origin(self):
        assert space_origin("ehristoforu/dalle-3-xl-lora-v2") == "https://ehristoforu-dalle-3-xl-lora-v2.hf.space"


class TestGenerate:
    def test_positional_arguments_and_endpoint(self):
        client = _gradio_client()
        provider, _ = _provider(client)

        result = provider.generate(REQUEST)

        assert result.image_content == PNG
        args, kwargs = client.submit.call_args
        assert args[0] == "a mitochondrion"
        assert "watermark" in args[1]
        assert args[2] is True
        assert isinstance(args[3], int) and 0 <= args[3] <= 2147483646
        assert args[4:] == (1024, 1024, 6, True)
        assert kwargs == {"api_name": "/run"}
        client.submit.return_value.result.assert_called_once_with(timeout=15.0)

    def test_connection_is_lazy_cached_and_disposable(self):
        client = _gradio_client()
        provider, factory = _provider(client)
        assert provider.connected is False
        factory.assert_not_called()

        provider.generate(REQUEST)
        provider.generate(REQUEST)
        assert factory.call_count == 1
        assert client.view_api.call_count == 1
        assert provider.endpoint == "/run"

        provider.close()
        assert provider.connected is False
        assert provider.endpoint is None
        provider.generate(REQUEST)
        assert factory.call_count == 2

    def test_discovery_failure_defaults_to_predict(self):
        client = _gradio_client()
        client.view_api.side_effect = RuntimeError("no api info")
        provider, _ = _provider(client)

        provider.generate(REQUEST)

        assert client.submit.call_args.kwargs["api_name"] == "/predict"

    def test_no_named_endpoints_defaults_to_predict(self):
        client = _gradio_client(endpoints=())
        provider, _ = _provider(client)
        provider.generate(REQUEST)
        assert provider.endpoint == "/predict"

    def test_connect_failure_is_classified_and_not_cached(self):
        provider, factory = _provider(_gradio_client())
        factory.side_effect = [RuntimeError("Space is building"), _gradio_client()]

        with pytest.raises(BackendConnectionError, match="currently unavailable"):
            provider.generate(REQUEST)
        assert provider.connected is False

        assert provider.generate(REQUEST).image_content == PNG

    @pytest.mark.parametrize(
        "exc,error_type",
        [
            (RuntimeError("Queue is full, try later"), BackendConnectionError),
            (RuntimeError("not enough capacity"), BackendConnectionError),
            (RuntimeError("space is offline"), BackendConnectionError),
            (RuntimeError("request aborted"), BackendTimeoutError),
            (TimeoutError(), BackendTimeoutError),
            (concurrent.futures.TimeoutError(), BackendTimeoutError),
            (RuntimeError("inappropriate content detected"), ClientError),
            (RuntimeError("something odd"), UnknownGenerationError),
        ],
    )
    def test_job_failures_are_classified(self, exc, error_type):
        client = _gradio_client()
        client.submit.return_value.result.side_effect = exc
        provider, _ = _provider(client)

        with pytest.raises(error_type):
            provider.generate(REQUEST)

    def test_job_timeout_cancels_the_job(self):
        client = _gradio_client()
        client.submit.return_value.result.side_effect = concurrent.futures.TimeoutError()
        provider, _ = _provider(client)

        with pytest.raises(BackendTimeoutError, match="timed out after 15s"):
            provider.generate(REQUEST)
        client.submit.return_value.cancel.assert_called_once_with()

    def test_connection_check(self):
        client = _gradio_client()
        provider, _ = _provider(client)
        assert provider.test_connection() is True
        assert client.submit.call_args.args[0] == "simple test image"

        client.submit.return_value.result.side_effect = RuntimeError("Queue is full")
        assert provider.test_connection() is False

    def test_policy_violation_is_terminal(self):
        err = classify_space_error(RuntimeError("blocked by content policy"), 10)
        assert isinstance(err, ClientError)
        assert err.retryable is False
        assert err.message.startswith("Content policy violation:")

    def test_unparseable_result(self):
        provider, _ = _provider(_gradio_client(result={"data": [42]}))
        with pytest.raises(ClientError, match="No image data received from Hugging Face Space"):
            provider.generate(REQUEST)


class TestSpaceResponseParser:
    ORIGIN = "https://owner-space.hf.space"

    def _parser(self):
        fetched = []

        def fetch(url):
            fetched.append(url)
            return b"fetched:" + url.encode()

        return SpaceResponseParser(self.ORIGIN, fetch), fetched

    def test_gallery_url(self):
        parser, fetched = self._parser()
        result = {"data": [[{"image": {"url": "https://cdn/x.png", "path": "/tmp/x.png"}, "caption": None}], 123]}
        assert parser.parse(result) == b"fetched:https://cdn/x.png"
        assert fetched == ["https://cdn/x.png"]

    def test_gallery_relative_path_gets_origin(self):
        parser, fetched = self._parser()
        result = [[{"image": {"path": "tmp/gradio/abc.png"}}], 7]
        parser.parse(result)
        assert fetched == [f"{self.ORIGIN}/file=tmp/gradio/abc.png"]

    def test_gallery_plain_string_image(self):
        parser, fetched = self._parser()
        parser.parse([[{"image": "tmp/y.webp", "caption": None}]])
        assert fetched == [f"{self.ORIGIN}/file=tmp/y.webp"]

    def test_gallery_local_download(self, tmp_path):
        image = tmp_path / "image.webp"
        image.write_bytes(PNG)
        parser, fetched = self._parser()
        assert parser.parse(([{"image": str(image), "caption": None}], 99)) == PNG
        assert fetched == []

    def test_data_entries(self):
        parser, _ = self._parser()
        assert parser.parse({"data": ["seed", DATA_URI]}) == PNG
        assert parser.parse({"data": [{"url": "https://cdn/z.png"}]}) == b"fetched:https://cdn/z.png"

    def test_direct_data_uri(self):
        parser, _ = self._parser()
        assert parser.parse(DATA_URI) == PNG

    def test_local_file_result(self, tmp_path):
        image = tmp_path / "out.png"
        image.write_bytes(PNG)
        parser, _ = self._parser()
        assert parser.parse(str(image)) == PNG

    def test_nothing_found(self):
        parser, _ = self._parser()
        with pytest.raises(ClientError):
            parser.parse(None)

    def test_fetch_uses_transport_and_maps_status(self):
        client = _gradio_client(result=[[{"image": {"url": "https://cdn.test/a.png"}}]])

        def handler(request):
            if request.url.host == "cdn.test":
                return httpx.Response(200, content=PNG)
            return httpx.Response(404)

        provider, _ = _provider(client, handler)
        assert provider.generate(REQUEST).image_content == PNG

        failing = _gradio_client(result=[[{"image": {"url": "https://cdn.test/a.png"}}]])
        provider, _ = _provider(failing, lambda r: httpx.Response(503))
        with pytest.raises(Exception) as ei:
            provider.generate(REQUEST)
        assert ei.value.retryable is True

    def test_failed_download_falls_through_to_next_strategy(self):
        client = _gradio_client(result={"data": [[{"image": {"url": "https://cdn.test/x.png"}}], DATA_URI]})
        provider, _ = _provider(client, lambda r: httpx.Response(401))

        assert provider.generate(REQUEST).image_content == PNG

    def test_download_errors_do_not_mention_credentials(self):
        client = _gradio_client(result=[[{"image": {"url": "https://cdn.test/x.png"}}]])
        provider, _ = _provider(client, lambda r: httpx.Response(401))

        with pytest.raises(ClientError) as ei:
            provider.generate(REQUEST)
        assert "API key" not in ei.value.message
        assert ei.value.message.startswith("Could not download generated image from Hugging Face Space: 401")
        assert ei.value.retryable is False
