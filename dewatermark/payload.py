"""
Multipart payload construction for the dewatermark endpoints.

Turns request models into the ordered list of parts httpx expects for its
``files=`` argument. Every field, text included, becomes a multipart part,
so bodies are always ``multipart/form-data`` even when no file is attached.

File-backed parts keep an open handle until the payload is closed; use the
payload as a context manager around the request that consumes it.
"""
from __future__ import annotations

import base64
import os
import re
from contextlib import ExitStack
from typing import IO, Any, Optional, Union

from dewatermark.exceptions import ConfigurationError
from dewatermark.infra.logging import get_logger
from dewatermark.schemas import (
    Base64Data,
    BinaryData,
    EraseWatermarkRequest,
    PathRef,
    SaveLargeImageRequest,
)

logger = get_logger(__name__)

# Filenames the service sees for parts that have no path of their own
DEFAULT_IMAGE_FILENAME = "image.png"
MASK_BASE_FILENAME = "mask_base.jpeg"
MASK_BRUSH_FILENAME = "mask_brush.png"
PREVIEW_IMAGE_FILENAME = "preview_image_to_save.jpeg"
PREVIEW_MASK_FILENAME = "preview_mask_to_save.jpeg"

FileContent = Union[bytes, str, IO[bytes]]


def format_flag(value: Optional[bool]) -> str:
    """Serialize a boolean form flag; unset means ``"true"``."""
    if value is None:
        return "true"
    return "true" if value else "false"


_URL_SAFE_TO_STANDARD = str.maketrans("-_", "+/")
_NON_BASE64 = re.compile(r"[^A-Za-z0-9+/]")


def decode_base64(value: str) -> bytes:
    """
    Decode a base64 form value leniently; never raises.

    Both the standard and URL-safe alphabets are accepted. Decoding stops at
    the first ``=``, characters outside the alphabet are skipped, and a
    dangling single character (not enough for a whole byte) is dropped.
    Any string therefore yields some bytes, possibly empty.
    """
    cleaned = _NON_BASE64.sub(
        "", value.split("=", 1)[0].translate(_URL_SAFE_TO_STANDARD)
    )
    if len(cleaned) % 4 == 1:
        cleaned = cleaned[:-1]
    cleaned += "=" * (-len(cleaned) % 4)
    return base64.b64decode(cleaned)


def filename_for(path: str, default: str) -> str:
    """Final path segment, or ``default`` when the path ends with a separator."""
    return os.path.basename(path) or default


def _present(value: Any) -> bool:
    return value is not None and value != ""


class MultipartPayload:
    """
    Ordered multipart parts plus the file handles backing them.

    Usage:
        with build_erase_payload(request) as payload:
            await client.post(url, files=payload.parts)
    """

    def __init__(self) -> None:
        self.parts: list[tuple[str, tuple[Optional[str], FileContent]]] = []
        self._files = ExitStack()

    @property
    def field_names(self) -> list[str]:
        return [name for name, _ in self.parts]

    def add_text(self, field: str, value: str) -> None:
        """Plain form field (no filename, no content type)."""
        self.parts.append((field, (None, value)))

    def add_bytes(self, field: str, data: bytes, filename: str) -> None:
        self.parts.append((field, (filename, data)))

    def add_base64(self, field: str, value: str, filename: str) -> None:
        """Field that is always base64 on input and binary on the wire."""
        self.add_bytes(field, decode_base64(value), filename)

    def add_path(self, field: str, path: str, default_filename: str) -> None:
        """
        Stream a file from disk.

        OS errors (missing file, permissions) propagate unchanged.
        """
        handle = self._files.enter_context(open(path, "rb"))
        self.parts.append((field, (filename_for(path, default_filename), handle)))

    def add_image_source(
        self,
        field: str,
        source: Union[PathRef, BinaryData, Base64Data],
        default_filename: str = DEFAULT_IMAGE_FILENAME,
    ) -> None:
        """Attach a tagged image source under ``field``."""
        if isinstance(source, PathRef):
            self.add_path(field, source.path, default_filename)
        elif isinstance(source, BinaryData):
            self.add_bytes(field, source.data, default_filename)
        else:
            self.add_base64(field, source.value, default_filename)

    def close(self) -> None:
        """Close every file opened for this payload."""
        self._files.close()

    def __enter__(self) -> "MultipartPayload":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def build_erase_payload(request: EraseWatermarkRequest) -> MultipartPayload:
    """
    Build the erase_watermark form body.

    Parts, in order: ``original_preview_image`` or ``session_id``,
    ``mask_base``, ``mask_brush``, ``remove_text``.

    Args:
        request: Erase request

    Returns:
        Payload ready to send; caller must close it

    Raises:
        ConfigurationError: If neither an image nor a session id is given
    """
    if request.original_preview_image is None and not _present(request.session_id):
        raise ConfigurationError(
            "Either original_preview_image or session_id must be provided"
        )

    payload = MultipartPayload()
    try:
        if request.original_preview_image is not None:
            if _present(request.session_id):
                logger.warning(
                    "session_id_ignored",
                    reason="original_preview_image takes precedence",
                )
            payload.add_image_source(
                "original_preview_image", request.original_preview_image
            )
        else:
            payload.add_text("session_id", request.session_id)

        if _present(request.mask_base):
            payload.add_base64("mask_base", request.mask_base, MASK_BASE_FILENAME)

        if _present(request.mask_brush):
            payload.add_path("mask_brush", request.mask_brush, MASK_BRUSH_FILENAME)

        payload.add_text("remove_text", format_flag(request.remove_text))
    except Exception:
        payload.close()
        raise

    return payload


def build_save_large_image_payload(request: SaveLargeImageRequest) -> MultipartPayload:
    """
    Build the save_large_image form body.

    Parts, in order: ``original_large_image``, ``preview_image_to_save``,
    ``preview_mask_to_save``, ``session_id``, ``remove_text``; absent inputs
    are skipped. ``remove_text`` is always sent.
    """
    payload = MultipartPayload()
    try:
        if request.original_large_image is not None:
            payload.add_image_source(
                "original_large_image", request.original_large_image
            )

        if _present(request.preview_image_to_save):
            payload.add_base64(
                "preview_image_to_save",
                request.preview_image_to_save,
                PREVIEW_IMAGE_FILENAME,
            )

        if _present(request.preview_mask_to_save):
            payload.add_base64(
                "preview_mask_to_save",
                request.preview_mask_to_save,
                PREVIEW_MASK_FILENAME,
            )

        if _present(request.session_id):
            payload.add_text("session_id", request.session_id)

        payload.add_text("remove_text", format_flag(request.remove_text))
    except Exception:
        payload.close()
        raise

    return payload
