"""
Pydantic schemas for dewatermark requests, responses and results.

Three groups:
- Image source variants: tagged union of path / raw binary / base64 inputs
- Request models: what the caller asks for, before it becomes multipart
- Wire and result models: the service JSON and the public result shape

Results are frozen and serialize by alias to the camelCase public shape,
e.g. ``{"sessionId": ..., "imageBase64": ...}``.
"""
from __future__ import annotations

import os
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DewatermarkBaseModel(BaseModel):
    """Base model for request-side schemas."""

    model_config = ConfigDict(
        validate_assignment=True,
        extra="forbid",
    )


# =============================================================================
# Image Sources
# =============================================================================


class PathRef(DewatermarkBaseModel):
    """Image stored on the local filesystem; streamed at request time."""

    kind: Literal["path"] = "path"
    path: str = Field(..., description="Filesystem path to the image")

    @field_validator("path", mode="before")
    @classmethod
    def coerce_path(cls, v):
        """Accept any os.PathLike."""
        if isinstance(v, os.PathLike):
            return os.fspath(v)
        return v


class BinaryData(DewatermarkBaseModel):
    """Image bytes already in memory."""

    kind: Literal["binary"] = "binary"
    data: bytes = Field(..., description="Raw image bytes")


class Base64Data(DewatermarkBaseModel):
    """Base64-encoded image; decoded to bytes when the payload is built."""

    kind: Literal["base64"] = "base64"
    value: str = Field(..., description="Base64-encoded image")


ImageSource = Annotated[
    Union[PathRef, BinaryData, Base64Data],
    Field(discriminator="kind"),
]

# Anything as_image_source accepts
ImageInput = Union[PathRef, BinaryData, Base64Data, "os.PathLike[str]", bytes, str]


def as_image_source(value: Any) -> Union[PathRef, BinaryData, Base64Data]:
    """
    Coerce a raw caller input into a tagged image source.

    Strings are checked against the filesystem first: an existing path wins,
    anything else is taken to be base64.

    Args:
        value: PathRef/BinaryData/Base64Data, os.PathLike, bytes, or str

    Returns:
        Tagged image source

    Raises:
        TypeError: If the value is none of the accepted forms
    """
    if isinstance(value, (PathRef, BinaryData, Base64Data)):
        return value
    if isinstance(value, os.PathLike):
        return PathRef(path=value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return BinaryData(data=bytes(value))
    if isinstance(value, str):
        # os.path.exists swallows "name too long" errors from long base64 strings
        if os.path.exists(value):
            return PathRef(path=value)
        return Base64Data(value=value)
    raise TypeError(
        f"Unsupported image source type: {type(value).__name__}. "
        "Expected a path, bytes, or a base64 string."
    )


def _optional_image_source(v):
    if v is None or (isinstance(v, str) and v == ""):
        return None
    return as_image_source(v)


# =============================================================================
# Requests
# =============================================================================


class EraseWatermarkRequest(DewatermarkBaseModel):
    """
    Inputs for one erase_watermark call.

    Either ``original_preview_image`` or ``session_id`` is needed; the
    payload builder enforces it. When both are given the image is sent
    and the session id is not.
    """

    original_preview_image: Optional[ImageSource] = Field(
        None,
        description="Image to clean (path, bytes, or base64)"
    )
    session_id: Optional[str] = Field(
        None,
        description="Session handle from a previous erase_watermark call"
    )
    mask_base: Optional[str] = Field(
        None,
        description="Base64-encoded base mask"
    )
    mask_brush: Optional[str] = Field(
        None,
        description="Path to a manually brushed mask image"
    )
    remove_text: Optional[bool] = Field(
        None,
        description="Also remove text overlays (service default: true)"
    )

    @field_validator("original_preview_image", mode="before")
    @classmethod
    def coerce_image(cls, v):
        """Turn raw path/bytes/base64 input into a tagged source."""
        return _optional_image_source(v)

    @field_validator("mask_brush", mode="before")
    @classmethod
    def coerce_mask_brush(cls, v):
        """Accept any os.PathLike."""
        if isinstance(v, os.PathLike):
            return os.fspath(v)
        return v


class SaveLargeImageRequest(DewatermarkBaseModel):
    """
    Inputs for one save_large_image call.

    No field is required locally; the service decides what is sufficient.
    """

    original_large_image: Optional[ImageSource] = Field(
        None,
        description="Full-resolution original (path, bytes, or base64)"
    )
    preview_image_to_save: Optional[str] = Field(
        None,
        description="Base64 preview returned by erase_watermark"
    )
    preview_mask_to_save: Optional[str] = Field(
        None,
        description="Base64 mask returned by erase_watermark"
    )
    session_id: Optional[str] = Field(
        None,
        description="Session handle from erase_watermark"
    )
    remove_text: Optional[bool] = Field(
        None,
        description="Also remove text overlays (service default: true)"
    )

    @field_validator("original_large_image", mode="before")
    @classmethod
    def coerce_image(cls, v):
        return _optional_image_source(v)


# =============================================================================
# Results
# =============================================================================


class DewatermarkResultModel(BaseModel):
    """Base model for public results: immutable, camelCase aliases."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
    )


class EraseWatermarkResult(DewatermarkResultModel):
    """Processed image, masks and the session handle for further calls."""

    session_id: str = Field(..., alias="sessionId")
    image_base64: str = Field(..., alias="imageBase64")
    mask_base: str = Field(..., alias="maskBase")
    watermark_mask: str = Field(..., alias="watermarkMask")


class SaveLargeImageResult(DewatermarkResultModel):
    """High-resolution render of a previously processed image."""

    large_image_to_save: str = Field(..., alias="largeImageToSave")


# =============================================================================
# Wire Format
# =============================================================================


class WireModel(BaseModel):
    """Base model for service JSON; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")


class EditedImage(WireModel):
    image: str
    mask: str
    watermark_mask: str


class EraseWatermarkResponse(WireModel):
    """JSON body returned by the erase endpoint."""

    session_id: str
    edited_image: EditedImage

    def to_result(self) -> EraseWatermarkResult:
        return EraseWatermarkResult(
            session_id=self.session_id,
            image_base64=self.edited_image.image,
            mask_base=self.edited_image.mask,
            watermark_mask=self.edited_image.watermark_mask,
        )


class SaveLargeImageResponse(WireModel):
    """JSON body returned by the save-large-image endpoint."""

    large_image_to_save: str

    def to_result(self) -> SaveLargeImageResult:
        return SaveLargeImageResult(large_image_to_save=self.large_image_to_save)
