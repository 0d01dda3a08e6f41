"""
Async HTTP client for the dewatermark.ai object-removal API.

Handles:
- POST /api/object_removal/v1/erase_watermark - Watermark removal
- POST /api/object_removal/v1/save_large_image - High-resolution render

Each call sends exactly one multipart request authenticated with the
``x-api-key`` header. Failures from the transport or the remote service are
logged and re-raised as ``ApiError``; anything else propagates unchanged.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx
from pydantic import ValidationError

from dewatermark.exceptions import (
    ApiConnectionError,
    ApiError,
    ApiTimeoutError,
    ConfigurationError,
    ResponseFormatError,
)
from dewatermark.infra.logging import get_logger, new_request_id
from dewatermark.infra.settings import (
    DEFAULT_BASE_URL,
    ERASE_WATERMARK_PATH,
    SAVE_LARGE_IMAGE_PATH,
    Settings,
    get_settings,
)
from dewatermark.payload import (
    MultipartPayload,
    build_erase_payload,
    build_save_large_image_payload,
)
from dewatermark.schemas import (
    EraseWatermarkRequest,
    EraseWatermarkResponse,
    EraseWatermarkResult,
    ImageInput,
    SaveLargeImageRequest,
    SaveLargeImageResponse,
    SaveLargeImageResult,
)

logger = get_logger(__name__)

API_KEY_HEADER = "x-api-key"


def _response_body(response: httpx.Response) -> Any:
    """Parsed JSON body, falling back to text."""
    try:
        return response.json()
    except ValueError:
        return response.text


def _remote_message(body: Any) -> Optional[str]:
    if isinstance(body, dict):
        message = body.get("message")
        if message:
            return str(message)
    return None


class DewatermarkClient:
    """
    Async client for watermark removal.

    Holds only read-only configuration, so one instance can serve concurrent
    calls. Without an injected ``http_client`` every call opens and closes
    its own ``httpx.AsyncClient`` (following redirects); an injected client
    is owned and configured by the caller.

    Usage:
        client = DewatermarkClient(api_key="...")
        result = await client.erase_watermark("input.jpeg")
        large = await client.save_large_image_for(result, "input.jpeg")
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: Dewatermark API key
            base_url: Platform URL (default: https://platform.dewatermark.ai)
            timeout: Request timeout in seconds (default: httpx default)
            http_client: Caller-owned httpx client to send requests with

        Raises:
            ConfigurationError: If the API key is empty
        """
        if not api_key:
            raise ConfigurationError("An API key is required")

        self._api_key = api_key
        self._base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._timeout = timeout
        self._http_client = http_client

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "DewatermarkClient":
        """
        Build a client from environment configuration.

        Raises:
            ConfigurationError: If DEWATERMARK_API_KEY is not set
        """
        settings = settings or get_settings()
        api_key = settings.get_api_key()
        if not api_key:
            raise ConfigurationError("DEWATERMARK_API_KEY is not configured")
        return cls(
            api_key=api_key,
            base_url=settings.DEWATERMARK_BASE_URL,
            timeout=settings.DEWATERMARK_TIMEOUT_SECONDS,
            http_client=http_client,
        )

    @property
    def api_key(self) -> str:
        return self._api_key

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def erase_watermark_url(self) -> str:
        return f"{self._base_url}{ERASE_WATERMARK_PATH}"

    @property
    def save_large_image_url(self) -> str:
        return f"{self._base_url}{SAVE_LARGE_IMAGE_PATH}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(base_url={self._base_url!r})"

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the injected client, or a short-lived one for this call."""
        if self._http_client is not None:
            yield self._http_client
            return

        kwargs: dict[str, Any] = {"follow_redirects": True}
        if self._timeout is not None:
            kwargs["timeout"] = httpx.Timeout(self._timeout)
        async with httpx.AsyncClient(**kwargs) as client:
            yield client

    async def _post(self, url: str, payload: MultipartPayload, log) -> Any:
        """
        POST a multipart payload and return the decoded JSON body.

        Raises:
            ApiError: On transport failure or non-2xx status
            ResponseFormatError: If a 2xx body is not JSON
        """
        headers = {API_KEY_HEADER: self._api_key}

        try:
            async with self._session() as client:
                response = await client.post(url, files=payload.parts, headers=headers)
                response.raise_for_status()

        except httpx.HTTPStatusError as e:
            body = _response_body(e.response)
            log.error(
                "api_error",
                status=e.response.status_code,
                status_text=e.response.reason_phrase,
                data=body,
            )
            raise ApiError(
                f"API Error: {_remote_message(body) or e}",
                status_code=e.response.status_code,
                status_text=e.response.reason_phrase,
                response_body=body,
                original_error=e,
            ) from e
        except httpx.TimeoutException as e:
            log.error("api_timeout", error=str(e) or type(e).__name__)
            raise ApiTimeoutError(
                f"API Error: {str(e) or 'request timed out'}",
                original_error=e,
            ) from e
        except httpx.ConnectError as e:
            log.error("api_connect_error", error=str(e))
            raise ApiConnectionError(
                f"API Error: {str(e) or 'connection failed'}",
                original_error=e,
            ) from e
        except httpx.HTTPError as e:
            log.error("api_transport_error", error=str(e), error_type=type(e).__name__)
            raise ApiError(f"API Error: {e}", original_error=e) from e

        try:
            return response.json()
        except ValueError as e:
            log.error(
                "api_response_not_json",
                status=response.status_code,
                data=response.text,
            )
            raise ResponseFormatError(
                "API Error: response body is not valid JSON",
                status_code=response.status_code,
                status_text=response.reason_phrase,
                response_body=response.text,
                original_error=e,
            ) from e

    @staticmethod
    def _unexpected_shape(data: Any, error: ValidationError, log) -> ResponseFormatError:
        log.error("api_response_unexpected_shape", data=data, errors=error.errors())
        return ResponseFormatError(
            "API Error: response body does not match the expected format",
            response_body=data,
            original_error=error,
        )

    async def erase_watermark(
        self,
        original_preview_image: Optional[ImageInput] = None,
        *,
        session_id: Optional[str] = None,
        mask_base: Optional[str] = None,
        mask_brush: Optional[str] = None,
        remove_text: Optional[bool] = None,
    ) -> EraseWatermarkResult:
        """
        Remove the watermark from an image.

        Args:
            original_preview_image: Existing file path, raw bytes, base64
                string, or a PathRef/BinaryData/Base64Data
            session_id: Session handle from an earlier call, used instead of
                re-uploading the image
            mask_base: Base64-encoded base mask
            mask_brush: Path to a manually brushed mask
            remove_text: Also remove text overlays (default: true)

        Returns:
            EraseWatermarkResult with the processed image and session handle

        Raises:
            ConfigurationError: If neither image nor session_id is given
            ApiError: On communication failure or non-2xx response
        """
        request = EraseWatermarkRequest(
            original_preview_image=original_preview_image,
            session_id=session_id,
            mask_base=mask_base,
            mask_brush=mask_brush,
            remove_text=remove_text,
        )
        log = logger.bind(operation="erase_watermark", request_id=new_request_id())

        with build_erase_payload(request) as payload:
            log.debug("erase_watermark_request", fields=payload.field_names)
            data = await self._post(self.erase_watermark_url, payload, log)

        try:
            result = EraseWatermarkResponse.model_validate(data).to_result()
        except ValidationError as e:
            raise self._unexpected_shape(data, e, log) from e

        log.info("erase_watermark_completed", session_id=result.session_id)
        return result

    async def save_large_image(
        self,
        original_large_image: Optional[ImageInput] = None,
        *,
        preview_image_to_save: Optional[str] = None,
        preview_mask_to_save: Optional[str] = None,
        session_id: Optional[str] = None,
        remove_text: Optional[bool] = None,
    ) -> SaveLargeImageResult:
        """
        Render a high-resolution version of a processed image.

        The service decides which combination of inputs is sufficient;
        nothing is required locally.

        Args:
            original_large_image: Full-resolution original (path, bytes,
                base64 string, or tagged source)
            preview_image_to_save: Base64 image from erase_watermark
            preview_mask_to_save: Base64 mask from erase_watermark
            session_id: Session handle from erase_watermark
            remove_text: Also remove text overlays (default: true)

        Returns:
            SaveLargeImageResult with the large image (base64)

        Raises:
            ApiError: On communication failure or non-2xx response
        """
        request = SaveLargeImageRequest(
            original_large_image=original_large_image,
            preview_image_to_save=preview_image_to_save,
            preview_mask_to_save=preview_mask_to_save,
            session_id=session_id,
            remove_text=remove_text,
        )
        log = logger.bind(operation="save_large_image", request_id=new_request_id())

        with build_save_large_image_payload(request) as payload:
            log.debug("save_large_image_request", fields=payload.field_names)
            data = await self._post(self.save_large_image_url, payload, log)

        try:
            result = SaveLargeImageResponse.model_validate(data).to_result()
        except ValidationError as e:
            raise self._unexpected_shape(data, e, log) from e

        log.info("save_large_image_completed")
        return result

    async def save_large_image_for(
        self,
        result: EraseWatermarkResult,
        original_large_image: Optional[ImageInput] = None,
        remove_text: Optional[bool] = None,
    ) -> SaveLargeImageResult:
        """
        Save the high-resolution version of an erase_watermark result.

        Forwards the result's session id, processed image and base mask.
        """
        return await self.save_large_image(
            original_large_image,
            preview_image_to_save=result.image_base64,
            preview_mask_to_save=result.mask_base,
            session_id=result.session_id,
            remove_text=remove_text,
        )
