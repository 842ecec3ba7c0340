"""
Tests for the image generation dispatcher and both provider clients.

Both endpoints are faked with `httpx.MockTransport`.
"""

import base64
import json

import httpx
import pytest

from vca.core.errors import MissingCredential, ProviderRequestFailed, ProviderTimeout, SafetyBlocked
from vca.image.service import ImageGenerationDispatcher
from vca.settings.provider_config import GEMINI_URL_TEMPLATE, REPLICATE_API_BASE, GenerationConfig

from tests.conftest import PNG_BYTES


def _dispatcher(handler, **kwargs):
    kwargs.setdefault("poll_interval", 0)
    return ImageGenerationDispatcher(transport=httpx.MockTransport(handler), **kwargs)


def _gemini_response(finish_reason="STOP", parts=None, status=200):
    body = {
        "candidates": [
            {
                "finishReason": finish_reason,
                "content": {"parts": parts if parts is not None else []},
            }
        ]
    }
    return httpx.Response(status, json=body)


class TestGeminiProvider:
    """Tests for the synchronous provider path."""

    async def test_returns_first_inline_image_as_data_uri(self, gemini_config):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["body"] = json.loads(request.content)
            return _gemini_response(parts=[
                {"text": "Here is your image"},
                {"inlineData": {"mimeType": "image/png", "data": "QUJD"}},
                {"inlineData": {"mimeType": "image/png", "data": "REVG"}},
            ])

        result = await _dispatcher(handler).generate("stage it", [PNG_BYTES, b"\xff\xd8jpeg"], gemini_config)

        assert result.uri == "data:image/png;base64,QUJD"
        assert result.mime_type == "image/png"
        assert seen["url"] == GEMINI_URL_TEMPLATE.format(model="gemini-3-pro-image-preview")
        assert seen["key"] == "test-key"

        parts = seen["body"]["contents"][0]["parts"]
        assert [list(p) for p in parts] == [["inline_data"], ["inline_data"], ["text"]]
        assert parts[0]["inline_data"]["mime_type"] == "image/png"
        assert parts[1]["inline_data"]["mime_type"] == "image/jpeg"
        assert base64.b64decode(parts[0]["inline_data"]["data"]) == PNG_BYTES
        assert parts[2]["text"].startswith("stage it")
        assert seen["body"]["generationConfig"]["responseModalities"] == ["IMAGE"]

    async def test_safety_finish_reason_raises(self, gemini_config):
        dispatcher = _dispatcher(lambda request: _gemini_response(finish_reason="SAFETY"))

        with pytest.raises(SafetyBlocked) as info:
            await dispatcher.generate("p", [], gemini_config)
        assert info.value.reason == "SAFETY"

    async def test_prompt_block_raises(self, gemini_config):
        dispatcher = _dispatcher(
            lambda request: httpx.Response(200, json={"promptFeedback": {"blockReason": "OTHER"}})
        )
        with pytest.raises(SafetyBlocked):
            await dispatcher.generate("p", [], gemini_config)

    async def test_text_only_response_is_no_result(self, gemini_config):
        dispatcher = _dispatcher(lambda request: _gemini_response(parts=[{"text": "sorry"}]))

        assert await dispatcher.generate("p", [], gemini_config) is None

    async def test_http_error_raises_request_failed(self, gemini_config):
        dispatcher = _dispatcher(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(ProviderRequestFailed) as info:
            await dispatcher.generate("p", [], gemini_config)
        assert info.value.status_code == 500

    async def test_transport_error_raises_request_failed(self, gemini_config):
        def handler(request):
            raise httpx.ConnectError("down")

        with pytest.raises(ProviderRequestFailed):
            await _dispatcher(handler).generate("p", [], gemini_config)

    async def test_missing_key(self):
        calls = []
        dispatcher = _dispatcher(lambda request: calls.append(request) or httpx.Response(200))

        with pytest.raises(MissingCredential):
            await dispatcher.generate("p", [], GenerationConfig())
        assert calls == []


class TestReplicateProvider:
    """Tests for the create-then-poll provider path."""

    def _handler(self, statuses, created, polls, output=("https://x/img.png",), error=None):
        statuses = iter(statuses)

        def handler(request):
            if request.method == "POST":
                created.append((str(request.url), json.loads(request.content), request.headers))
                return httpx.Response(201, json={"id": "pred-1", "status": "starting"})
            polls.append(str(request.url))
            status = next(statuses)
            body = {"status": status, "output": None, "error": None}
            if status == "succeeded":
                body["output"] = list(output)
            if status == "failed":
                body["error"] = error
            return httpx.Response(200, json=body)

        return handler

    async def test_polls_until_succeeded(self):
        created, polls = [], []
        handler = self._handler(["starting", "processing", "succeeded"], created, polls)
        config = GenerationConfig(model_id="replicate:google/nano-banana", replicate_api_key="r8_test")

        result = await _dispatcher(handler).generate("stage it", [PNG_BYTES], config)

        assert result.uri == "https://x/img.png"
        assert len(polls) == 3
        assert polls[0] == f"{REPLICATE_API_BASE}/predictions/pred-1"

        url, body, headers = created[0]
        assert url == f"{REPLICATE_API_BASE}/models/google/nano-banana/predictions"
        assert headers["authorization"] == "Bearer r8_test"
        assert body["input"]["prompt"] == "stage it"
        assert body["input"]["image_input"][0].startswith("data:image/png;base64,")
        assert body["input"]["aspect_ratio"] == "match_input_image"
        assert body["input"]["output_format"] == "jpg"
        assert "resolution" not in body["input"]
        assert "safety_filter_level" not in body["input"]

    async def test_pro_variant_adds_parameters(self):
        created, polls = [], []
        handler = self._handler(["succeeded"], created, polls)
        config = GenerationConfig(
            model_id="replicate:google/nano-banana-pro",
            replicate_api_key="r8_test",
            replicate_resolution="4K",
        )

        await _dispatcher(handler).generate("p", [], config)

        body = created[0][1]["input"]
        assert body["resolution"] == "4K"
        assert body["safety_filter_level"] == "block_only_high"

    async def test_failed_job_raises_with_provider_message(self):
        handler = self._handler(["processing", "failed"], [], [], error="NSFW detected")
        config = GenerationConfig(model_id="replicate:google/nano-banana", replicate_api_key="t")

        with pytest.raises(ProviderRequestFailed, match="NSFW detected"):
            await _dispatcher(handler).generate("p", [], config)

    async def test_canceled_job_raises(self):
        handler = self._handler(["canceled"], [], [])
        config = GenerationConfig(model_id="replicate:google/nano-banana", replicate_api_key="t")

        with pytest.raises(ProviderRequestFailed, match="canceled"):
            await _dispatcher(handler).generate("p", [], config)

    async def test_times_out_after_attempt_budget(self):
        polls = []
        handler = self._handler(["processing"] * 10, [], polls)
        config = GenerationConfig(model_id="replicate:google/nano-banana", replicate_api_key="t")

        with pytest.raises(ProviderTimeout):
            await _dispatcher(handler, max_poll_attempts=3).generate("p", [], config)
        assert len(polls) == 3

    async def test_sleeps_between_polls(self):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        handler = self._handler(["processing", "succeeded"], [], [])
        config = GenerationConfig(model_id="replicate:google/nano-banana", replicate_api_key="t")
        dispatcher = _dispatcher(handler, poll_interval=1.0, sleep=fake_sleep)

        await dispatcher.generate("p", [], config)
        assert delays == [1.0, 1.0]

    async def test_create_error(self):
        config = GenerationConfig(model_id="replicate:google/nano-banana", replicate_api_key="t")
        dispatcher = _dispatcher(lambda request: httpx.Response(422, text="bad input"))

        with pytest.raises(ProviderRequestFailed, match="bad input"):
            await dispatcher.generate("p", [], config)

    async def test_non_json_create_body_is_a_provider_failure(self):
        config = GenerationConfig(model_id="replicate:google/nano-banana", replicate_api_key="t")
        dispatcher = _dispatcher(lambda request: httpx.Response(201, text="<html>gateway</html>"))

        with pytest.raises(ProviderRequestFailed, match="non-JSON create") as info:
            await dispatcher.generate("p", [], config)
        assert info.value.category == "provider"

    async def test_non_object_status_body_is_a_provider_failure(self):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(201, json={"id": "pred-1"})
            return httpx.Response(200, json=["processing"])

        config = GenerationConfig(model_id="replicate:google/nano-banana", replicate_api_key="t")
        with pytest.raises(ProviderRequestFailed, match="unexpected status"):
            await _dispatcher(handler).generate("p", [], config)

    async def test_missing_token(self):
        config = GenerationConfig(model_id="replicate:google/nano-banana")
        with pytest.raises(MissingCredential):
            await _dispatcher(lambda request: httpx.Response(200)).generate("p", [], config)


class TestFetchReference:

    async def test_downloads_url(self):
        dispatcher = _dispatcher(lambda request: httpx.Response(200, content=PNG_BYTES))
        assert await dispatcher.fetch_reference("https://cdn.example.com/a.png") == PNG_BYTES

    async def test_decodes_data_uri_without_network(self):
        def handler(request):
            raise AssertionError("no request expected")

        data_uri = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()
        assert await _dispatcher(handler).fetch_reference(data_uri) == PNG_BYTES

    async def test_http_error_propagates(self):
        dispatcher = _dispatcher(lambda request: httpx.Response(404))
        with pytest.raises(httpx.HTTPStatusError):
            await dispatcher.fetch_reference("https://cdn.example.com/missing.png")
