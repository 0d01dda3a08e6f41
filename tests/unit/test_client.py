"""
Unit tests for DewatermarkClient request orchestration and response mapping.

The remote service is simulated with httpx.MockTransport.

Tests for:
1. Authentication and request shape
2. erase_watermark response mapping
3. save_large_image request and response
4. Error normalization
5. Local failures issue no requests
6. Concurrent calls
7. Client construction
8. Library logging
"""
import asyncio
import base64
import json
import logging
import re
from unittest.mock import patch

import httpx
import pytest

from dewatermark.client import DewatermarkClient
from dewatermark.exceptions import (
    ApiConnectionError,
    ApiError,
    ApiTimeoutError,
    ConfigurationError,
    ResponseFormatError,
)
from dewatermark.infra.settings import Settings
from dewatermark.schemas import EraseWatermarkResult, SaveLargeImageResult

# ============================================================================
# Test Constants
# ============================================================================

TEST_API_KEY = "test-api-key-123"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x01" * 16
PNG_BASE64 = base64.b64encode(PNG_BYTES).decode("ascii")

ERASE_RESPONSE = {
    "session_id": "abc",
    "edited_image": {"image": "A", "mask": "B", "watermark_mask": "C"},
}


# ============================================================================
# Helpers
# ============================================================================


def parse_multipart(request: httpx.Request) -> list[tuple[str, str | None, bytes]]:
    """Split a multipart request body into (name, filename, data) parts."""
    content_type = request.headers["content-type"]
    assert content_type.startswith("multipart/form-data")
    boundary = content_type.split("boundary=")[1].encode()

    parts = []
    for chunk in request.content.split(b"--" + boundary):
        chunk = chunk.removeprefix(b"\r\n")
        if not chunk or chunk.startswith(b"--"):
            continue
        headers, data = chunk.split(b"\r\n\r\n", 1)
        name = re.search(rb'; name="([^"]*)"', headers).group(1).decode()
        filename_match = re.search(rb'; filename="([^"]*)"', headers)
        filename = filename_match.group(1).decode() if filename_match else None
        parts.append((name, filename, data.removesuffix(b"\r\n")))
    return parts


class RecordingHandler:
    """MockTransport handler that records requests and replies with a fixed response."""

    def __init__(self, status_code=200, json_body=None, content=None):
        self.status_code = status_code
        self.json_body = json_body
        self.content = content
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.content is not None:
            return httpx.Response(self.status_code, content=self.content)
        return httpx.Response(self.status_code, json=self.json_body)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / "input.jpeg"
    path.write_bytes(PNG_BYTES)
    return str(path)


def make_client(handler) -> DewatermarkClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DewatermarkClient(api_key=TEST_API_KEY, http_client=http_client)


# ============================================================================
# 1. Authentication and Request Shape
# ============================================================================


class TestRequestShape:
    """Tests for the outbound HTTP request."""

    @pytest.mark.asyncio
    async def test_api_key_sent_as_header_only(self):
        """The key travels in x-api-key, never in the body or query."""
        handler = RecordingHandler(json_body=ERASE_RESPONSE)
        client = make_client(handler)

        await client.erase_watermark(PNG_BYTES)

        request = handler.requests[0]
        assert request.headers["x-api-key"] == TEST_API_KEY
        assert TEST_API_KEY.encode() not in request.content
        assert not request.url.query

    @pytest.mark.asyncio
    async def test_erase_posts_to_erase_endpoint(self):
        handler = RecordingHandler(json_body=ERASE_RESPONSE)
        client = make_client(handler)

        await client.erase_watermark(session_id="abc")

        request = handler.requests[0]
        assert request.method == "POST"
        assert str(request.url) == (
            "https://platform.dewatermark.ai/api/object_removal/v1/erase_watermark"
        )

    @pytest.mark.asyncio
    async def test_custom_base_url(self):
        handler = RecordingHandler(json_body={"large_image_to_save": "X"})
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = DewatermarkClient(
            api_key=TEST_API_KEY,
            base_url="http://localhost:8080/",
            http_client=http_client,
        )

        await client.save_large_image(session_id="abc")

        assert str(handler.requests[0].url) == (
            "http://localhost:8080/api/object_removal/v1/save_large_image"
        )

    @pytest.mark.asyncio
    async def test_file_path_uploaded_with_its_name(self, image_file):
        handler = RecordingHandler(json_body=ERASE_RESPONSE)
        client = make_client(handler)

        await client.erase_watermark(image_file, remove_text=False)

        parts = parse_multipart(handler.requests[0])
        assert parts == [
            ("original_preview_image", "input.jpeg", PNG_BYTES),
            ("remove_text", None, b"false"),
        ]

    @pytest.mark.asyncio
    async def test_base64_string_uploaded_as_binary(self):
        handler = RecordingHandler(json_body=ERASE_RESPONSE)
        client = make_client(handler)

        await client.erase_watermark(PNG_BASE64)

        parts = parse_multipart(handler.requests[0])
        assert parts[0] == ("original_preview_image", "image.png", PNG_BYTES)
        assert parts[1] == ("remove_text", None, b"true")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["missing.png", "-_8=", "photos/cat.jpeg"])
    async def test_non_path_string_is_decoded_and_sent(self, value):
        """A mistyped path or URL-safe base64 still reaches the service."""
        handler = RecordingHandler(json_body=ERASE_RESPONSE)
        client = make_client(handler)

        await client.erase_watermark(value)

        assert len(handler.requests) == 1
        name, filename, _ = parse_multipart(handler.requests[0])[0]
        assert (name, filename) == ("original_preview_image", "image.png")


# ============================================================================
# 2. erase_watermark Mapping
# ============================================================================


class TestEraseWatermarkMapping:
    """Tests for erase response mapping."""

    @pytest.mark.asyncio
    async def test_fields_are_renamed_not_transformed(self):
        client = make_client(RecordingHandler(json_body=ERASE_RESPONSE))

        result = await client.erase_watermark(session_id="abc")

        assert isinstance(result, EraseWatermarkResult)
        assert result.model_dump(by_alias=True) == {
            "sessionId": "abc",
            "imageBase64": "A",
            "maskBase": "B",
            "watermarkMask": "C",
        }

    @pytest.mark.asyncio
    async def test_extra_response_keys_ignored(self):
        body = dict(ERASE_RESPONSE, credits_left=42)
        client = make_client(RecordingHandler(json_body=body))

        result = await client.erase_watermark(session_id="abc")

        assert result.session_id == "abc"

    @pytest.mark.asyncio
    async def test_session_id_forwarded_verbatim(self):
        """The session handle is opaque and sent unchanged."""
        opaque = "  sess/with spaces==  "
        handler = RecordingHandler(json_body=ERASE_RESPONSE)
        client = make_client(handler)

        await client.erase_watermark(session_id=opaque)

        parts = parse_multipart(handler.requests[0])
        assert parts[0] == ("session_id", None, opaque.encode())


# ============================================================================
# 3. save_large_image
# ============================================================================


class TestSaveLargeImage:
    """Tests for the save_large_image operation."""

    @pytest.mark.asyncio
    async def test_session_and_preview_only(self):
        """Exactly the supplied parts plus remove_text are sent."""
        handler = RecordingHandler(json_body={"large_image_to_save": "X"})
        client = make_client(handler)

        result = await client.save_large_image(
            session_id="abc",
            preview_image_to_save=PNG_BASE64,
        )

        parts = parse_multipart(handler.requests[0])
        assert parts == [
            ("preview_image_to_save", "preview_image_to_save.jpeg", PNG_BYTES),
            ("session_id", None, b"abc"),
            ("remove_text", None, b"true"),
        ]
        assert isinstance(result, SaveLargeImageResult)
        assert result.model_dump(by_alias=True) == {"largeImageToSave": "X"}

    @pytest.mark.asyncio
    async def test_save_large_image_for_chains_erase_result(self, image_file):
        handler = RecordingHandler(json_body={"large_image_to_save": "X"})
        client = make_client(handler)
        erase_result = EraseWatermarkResult(
            session_id="abc",
            image_base64=PNG_BASE64,
            mask_base=base64.b64encode(b"mask").decode(),
            watermark_mask="C",
        )

        result = await client.save_large_image_for(erase_result, image_file)

        names = [name for name, _, _ in parse_multipart(handler.requests[0])]
        assert names == [
            "original_large_image",
            "preview_image_to_save",
            "preview_mask_to_save",
            "session_id",
            "remove_text",
        ]
        assert result.large_image_to_save == "X"


# ============================================================================
# 4. Error Normalization
# ============================================================================


class TestErrorNormalization:
    """Tests for transport/service error mapping."""

    @pytest.mark.asyncio
    async def test_remote_message_preferred(self):
        handler = RecordingHandler(status_code=429, json_body={"message": "quota exceeded"})
        client = make_client(handler)

        with pytest.raises(ApiError, match="quota exceeded") as exc_info:
            await client.erase_watermark(session_id="abc")

        error = exc_info.value
        assert error.status_code == 429
        assert error.status_text == "Too Many Requests"
        assert error.response_body == {"message": "quota exceeded"}
        assert isinstance(error.__cause__, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_non_json_error_body_kept_as_text(self):
        handler = RecordingHandler(status_code=502, content=b"Bad gateway")
        client = make_client(handler)

        with pytest.raises(ApiError) as exc_info:
            await client.save_large_image(session_id="abc")

        error = exc_info.value
        assert error.status_code == 502
        assert error.response_body == "Bad gateway"
        # No remote message, so the transport description is used
        assert error.message == f"API Error: {error.__cause__}"
        assert "502 Bad Gateway" in error.message

    @pytest.mark.asyncio
    async def test_json_error_without_message_uses_transport_description(self):
        handler = RecordingHandler(status_code=400, json_body={"detail": "bad mask"})
        client = make_client(handler)

        with pytest.raises(ApiError) as exc_info:
            await client.erase_watermark(session_id="abc")

        error = exc_info.value
        assert error.message == f"API Error: {error.__cause__}"
        assert "400 Bad Request" in error.message
        assert error.response_body == {"detail": "bad mask"}

    @pytest.mark.asyncio
    async def test_other_transport_errors_are_api_errors(self):
        def handler(request):
            raise httpx.RemoteProtocolError("server disconnected", request=request)

        client = make_client(handler)

        with pytest.raises(ApiError) as exc_info:
            await client.save_large_image(session_id="abc")

        error = exc_info.value
        assert type(error) is ApiError
        assert error.message == "API Error: server disconnected"
        assert error.status_code is None
        assert isinstance(error.original_error, httpx.RemoteProtocolError)

    @pytest.mark.asyncio
    async def test_connect_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(ApiConnectionError, match="connection refused") as exc_info:
            await client.erase_watermark(session_id="abc")

        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.original_error, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        client = make_client(handler)

        with pytest.raises(ApiTimeoutError):
            await client.save_large_image(session_id="abc")

    @pytest.mark.asyncio
    async def test_success_without_json_body(self):
        client = make_client(RecordingHandler(content=b"<html>ok</html>"))

        with pytest.raises(ResponseFormatError):
            await client.erase_watermark(session_id="abc")

    @pytest.mark.asyncio
    async def test_success_with_unexpected_shape(self):
        client = make_client(RecordingHandler(json_body={"session_id": "abc"}))

        with pytest.raises(ResponseFormatError) as exc_info:
            await client.erase_watermark(session_id="abc")

        assert exc_info.value.response_body == {"session_id": "abc"}

    @pytest.mark.asyncio
    async def test_error_is_logged_before_raising(self):
        handler = RecordingHandler(status_code=500, json_body={"message": "boom"})
        client = make_client(handler)

        with patch("dewatermark.client.logger") as mock_logger:
            bound = mock_logger.bind.return_value
            with pytest.raises(ApiError):
                await client.erase_watermark(session_id="abc")

        bound.error.assert_called_once()
        args, kwargs = bound.error.call_args
        assert args[0] == "api_error"
        assert kwargs["status"] == 500
        assert kwargs["data"] == {"message": "boom"}

    @pytest.mark.asyncio
    async def test_unexpected_errors_propagate_unchanged(self):
        def handler(request):
            raise RuntimeError("handler bug")

        client = make_client(handler)

        with pytest.raises(RuntimeError, match="handler bug"):
            await client.erase_watermark(session_id="abc")


# ============================================================================
# 5. Local Failures
# ============================================================================


class TestLocalFailures:
    """Local errors are raised before any request is sent."""

    @pytest.mark.asyncio
    async def test_missing_image_and_session_sends_nothing(self):
        handler = RecordingHandler(json_body=ERASE_RESPONSE)
        client = make_client(handler)

        with pytest.raises(ConfigurationError):
            await client.erase_watermark()

        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_missing_mask_brush_file_sends_nothing(self, tmp_path):
        handler = RecordingHandler(json_body=ERASE_RESPONSE)
        client = make_client(handler)

        with pytest.raises(FileNotFoundError):
            await client.erase_watermark(
                session_id="abc",
                mask_brush=str(tmp_path / "missing.png"),
            )

        assert handler.requests == []


# ============================================================================
# 6. Concurrency
# ============================================================================


class TestConcurrentCalls:
    """Concurrent calls on one client do not interfere."""

    @pytest.mark.asyncio
    async def test_each_call_maps_its_own_response(self):
        async def handler(request):
            session_id = dict(
                (name, data) for name, _, data in parse_multipart(request)
            )["session_id"].decode()
            # Let the other request overtake this one
            await asyncio.sleep(0.01 if session_id == "first" else 0)
            return httpx.Response(
                200,
                json={
                    "session_id": session_id,
                    "edited_image": {
                        "image": f"image-{session_id}",
                        "mask": f"mask-{session_id}",
                        "watermark_mask": f"wm-{session_id}",
                    },
                },
            )

        client = make_client(handler)

        first, second = await asyncio.gather(
            client.erase_watermark(session_id="first"),
            client.erase_watermark(session_id="second"),
        )

        assert first.session_id == "first"
        assert first.image_base64 == "image-first"
        assert second.session_id == "second"
        assert second.watermark_mask == "wm-second"


# ============================================================================
# 7. Client Construction
# ============================================================================


class TestClientConstruction:
    """Tests for client configuration."""

    def test_empty_api_key_rejected(self):
        with pytest.raises(ConfigurationError):
            DewatermarkClient(api_key="")

    def test_api_key_is_read_only(self):
        client = DewatermarkClient(api_key=TEST_API_KEY)

        with pytest.raises(AttributeError):
            client.api_key = "other"

    def test_repr_hides_api_key(self):
        client = DewatermarkClient(api_key=TEST_API_KEY)

        assert TEST_API_KEY not in repr(client)

    def test_from_settings(self):
        settings = Settings(
            DEWATERMARK_API_KEY="env-key",
            DEWATERMARK_BASE_URL="http://staging.local/",
            DEWATERMARK_TIMEOUT_SECONDS=30.0,
        )

        client = DewatermarkClient.from_settings(settings)

        assert client.api_key == "env-key"
        assert client.base_url == "http://staging.local"

    def test_from_settings_without_key(self):
        with pytest.raises(ConfigurationError, match="DEWATERMARK_API_KEY"):
            DewatermarkClient.from_settings(Settings(DEWATERMARK_API_KEY=None))

    @pytest.mark.asyncio
    async def test_short_lived_http_client_per_call(self):
        """Without an injected client each call opens and closes its own."""
        transport = httpx.MockTransport(RecordingHandler(json_body=ERASE_RESPONSE))
        created = []
        real_async_client = httpx.AsyncClient

        def factory(**kwargs):
            instance = real_async_client(transport=transport, **kwargs)
            created.append(instance)
            return instance

        client = DewatermarkClient(api_key=TEST_API_KEY, timeout=5.0)
        with patch("dewatermark.client.httpx.AsyncClient", side_effect=factory):
            await client.erase_watermark(session_id="one")
            await client.erase_watermark(session_id="two")

        assert len(created) == 2
        assert all(instance.is_closed for instance in created)
        assert created[0].timeout.read == 5.0
        assert created[0].follow_redirects is True

    @pytest.mark.asyncio
    async def test_per_call_client_follows_redirects(self):
        moved_to = "https://edge.dewatermark.ai/api/object_removal/v1/erase_watermark"
        seen_urls = []

        def handler(request):
            seen_urls.append(str(request.url))
            if str(request.url) != moved_to:
                return httpx.Response(307, headers={"location": moved_to})
            return httpx.Response(200, json=ERASE_RESPONSE)

        transport = httpx.MockTransport(handler)
        real_async_client = httpx.AsyncClient

        def factory(**kwargs):
            return real_async_client(transport=transport, **kwargs)

        client = DewatermarkClient(api_key=TEST_API_KEY)
        with patch("dewatermark.client.httpx.AsyncClient", side_effect=factory):
            result = await client.erase_watermark(session_id="abc")

        assert result.session_id == "abc"
        assert seen_urls == [client.erase_watermark_url, moved_to]


# ============================================================================
# 8. Library Logging
# ============================================================================


class TestLibraryLogging:
    """The client logs through stdlib logging and is silent by default."""

    def test_package_logger_has_null_handler(self):
        handlers = logging.getLogger("dewatermark").handlers

        assert any(isinstance(handler, logging.NullHandler) for handler in handlers)

    @pytest.mark.asyncio
    async def test_unconfigured_call_writes_nothing(self, capsys):
        client = make_client(RecordingHandler(json_body=ERASE_RESPONSE))

        await client.erase_watermark(session_id="abc")

        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err == ""

    @pytest.mark.asyncio
    async def test_events_reach_host_logging(self, caplog):
        caplog.set_level(logging.DEBUG, logger="dewatermark")
        client = make_client(RecordingHandler(json_body=ERASE_RESPONSE))

        await client.erase_watermark(session_id="abc")

        records = [r for r in caplog.records if r.name == "dewatermark.client"]
        messages = [r.getMessage() for r in records]
        assert any("erase_watermark_request" in m for m in messages)
        assert any("erase_watermark_completed" in m for m in messages)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
