"""
Async Python client for the dewatermark.ai watermark removal API.

Usage:
    from dewatermark import DewatermarkClient

    client = DewatermarkClient(api_key="...")
    result = await client.erase_watermark("input.jpeg")
    large = await client.save_large_image(
        "input.jpeg",
        session_id=result.session_id,
        preview_image_to_save=result.image_base64,
        preview_mask_to_save=result.mask_base,
    )
"""

import logging

__version__ = "1.0.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from dewatermark.client import DewatermarkClient
from dewatermark.exceptions import (
    ApiConnectionError,
    ApiError,
    ApiTimeoutError,
    ConfigurationError,
    DewatermarkError,
    ResponseFormatError,
)
from dewatermark.schemas import (
    Base64Data,
    BinaryData,
    EraseWatermarkRequest,
    EraseWatermarkResult,
    PathRef,
    SaveLargeImageRequest,
    SaveLargeImageResult,
    as_image_source,
)

__all__ = [
    "__version__",
    # Client
    "DewatermarkClient",
    # Image sources
    "PathRef",
    "BinaryData",
    "Base64Data",
    "as_image_source",
    # Request/Result schemas
    "EraseWatermarkRequest",
    "EraseWatermarkResult",
    "SaveLargeImageRequest",
    "SaveLargeImageResult",
    # Exceptions
    "DewatermarkError",
    "ConfigurationError",
    "ApiError",
    "ApiTimeoutError",
    "ApiConnectionError",
    "ResponseFormatError",
]
