"""Pydantic argument models for the remote tools.

These models validate the argument object of every tool call and provide
the JSON schema advertised in the tool listing.

Models
------
GenerateImageArgs
    Arguments of ``generate_image``.
CompressImageArgs
    Arguments of ``compress_image``.
ImageInfoArgs
    Arguments of ``get_image_info``.
NoArgs
    Shared by ``list_models``, ``list_generated_images`` and
    ``get_output_directory``; any supplied keys are ignored.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from imagegen.core.pipeline import AspectRatio


class GenerateImageArgs(BaseModel):
    """Arguments for ``generate_image``.

    Attributes:
        prompt: Text description of the image to generate.
        model: Registry key; ``None`` selects the configured default.
        reference_image: Local path of a reference image.
        aspect_ratio: One of the supported ratios, default ``"1:1"``.
        compression_quality: JPEG quality; ``None`` uses the configured default.
        num_outputs: Number of images, clamped to 1-4.
        prompt_strength: Prompt influence when a reference image is used.
    """

    prompt: str = Field(
        ...,
        description="Text description of the image to generate",
    )
    model: str | None = Field(
        default=None,
        description="Model to use. Use nano-banana-pro for best text rendering or when using reference images.",
    )
    reference_image: str | None = Field(
        default=None,
        description="Local file path to a reference image (only models that support reference images)",
    )
    aspect_ratio: AspectRatio = Field(
        default="1:1",
        description="Aspect ratio for the generated image. Default is 1:1",
    )
    compression_quality: int | None = Field(
        default=None,
        ge=1,
        le=100,
        description="JPEG compression quality (1-100). Default is 85",
    )
    num_outputs: int = Field(
        default=1,
        description="Number of images to generate (1-4). Default is 1",
    )
    prompt_strength: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="When using reference image, controls prompt influence (0.0-1.0). Default is 0.8",
    )


class CompressImageArgs(BaseModel):
    """Arguments for ``compress_image``."""

    input_path: str = Field(
        ...,
        description="Path to the image file to compress",
    )
    output_path: str | None = Field(
        default=None,
        description="Path for the compressed image. Default: adds '_compressed.jpg' suffix",
    )
    quality: int | None = Field(
        default=None,
        ge=1,
        le=100,
        description="Compression quality (1-100). Default is 85",
    )
    max_width: int | None = Field(
        default=None,
        ge=1,
        description="Maximum width in pixels (maintains aspect ratio)",
    )
    max_height: int | None = Field(
        default=None,
        ge=1,
        description="Maximum height in pixels (maintains aspect ratio)",
    )


class ImageInfoArgs(BaseModel):
    """Arguments for ``get_image_info``."""

    image_path: str = Field(
        ...,
        description="Path to the image file",
    )


class NoArgs(BaseModel):
    """Arguments for tools that take none."""

    model_config = ConfigDict(extra="ignore")
