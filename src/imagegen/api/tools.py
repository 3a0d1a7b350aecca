"""Tool catalogue and dispatcher.

The six remote operations are plain async handlers behind
:class:`ToolDispatcher`. A call names a tool and passes an argument object;
the dispatcher validates the arguments with the models in
:mod:`imagegen.api.models`, runs the handler, and wraps the outcome in a
result envelope::

    {"content": [{"type": "text", "text": "<indented JSON>"}], "isError": false}

Failures never escape as exceptions. Whatever goes wrong is reported as
``{"success": false, "error": "<message>"}`` with ``isError`` set, so every
caller receives a well-formed envelope.

Tools
-----
generate_image
    Generate, download and compress one to four images.
compress_image
    Re-encode a local image as JPEG, optionally resizing it.
get_image_info
    Dimensions, format and size of a local image.
list_models
    The model catalogue and the default model.
list_generated_images
    Images in the output directory, newest first.
get_output_directory
    The output directory and whether it exists.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from imagegen.api.gallery_store import format_percent, format_size, list_output_images
from imagegen.api.models import CompressImageArgs, GenerateImageArgs, ImageInfoArgs, NoArgs
from imagegen.core.compressor import compress_image, get_image_info
from imagegen.core.config import ImageGenConfig
from imagegen.core.errors import ImageGenError, UnknownToolError, ValidationError
from imagegen.core.models import ModelRegistry
from imagegen.core.pipeline import GenerationPipeline, GenerationRequest

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[dict]]


@dataclass(frozen=True)
class ToolSpec:
    """Static description of one tool."""

    name: str
    description: str
    args_model: type[BaseModel]


def text_result(data: dict, is_error: bool = False) -> dict:
    """Wrap ``data`` in the tool result envelope."""
    return {
        "content": [{"type": "text", "text": json.dumps(data, indent=2)}],
        "isError": is_error,
    }


def error_result(message: str) -> dict:
    """Build the uniform failure envelope."""
    return text_result({"success": False, "error": message}, is_error=True)


def format_validation_error(exc: PydanticValidationError) -> str:
    """Condense a pydantic error into a single readable line."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "arguments"
        problems.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "Invalid arguments: " + "; ".join(problems)


def default_compressed_path(input_path: str) -> Path:
    """``photo.png`` -> ``photo_compressed.jpg`` in the same directory."""
    source = Path(input_path)
    return source.with_name(f"{source.stem}_compressed.jpg")


def _build_input_schema(args_model: type[BaseModel]) -> dict:
    """Flatten a pydantic JSON schema into the tool ``inputSchema`` shape."""
    schema = args_model.model_json_schema()
    properties: dict[str, dict] = {}
    for name, prop in schema.get("properties", {}).items():
        prop = {k: v for k, v in prop.items() if k not in ("title", "default")}
        variants = prop.pop("anyOf", None)
        if variants:
            # Optional[X] renders as anyOf [X, null]; advertise X only.
            concrete = [v for v in variants if v.get("type") != "null"]
            if concrete:
                prop = {**concrete[0], **prop}
        properties[name] = prop
    return {
        "type": "object",
        "properties": properties,
        "required": list(schema.get("required", [])),
    }


class ToolDispatcher:
    """Route tool calls to their handlers.

    Args:
        config: Application configuration (output directory, defaults).
        registry: Model catalogue.
        pipeline: Generation pipeline used by ``generate_image``.
    """

    def __init__(
        self,
        config: ImageGenConfig,
        registry: ModelRegistry,
        pipeline: GenerationPipeline,
    ) -> None:
        self.config = config
        self.registry = registry
        self.pipeline = pipeline
        self.default_model = registry.resolve(config.default_model or registry.default_key).key

        self._specs = {
            spec.name: spec
            for spec in (
                ToolSpec(
                    "generate_image",
                    self._generate_description(),
                    GenerateImageArgs,
                ),
                ToolSpec(
                    "compress_image",
                    "Compress an existing image to reduce file size. Outputs as JPG.",
                    CompressImageArgs,
                ),
                ToolSpec(
                    "get_image_info",
                    "Get metadata about an image file including dimensions, format, and file size",
                    ImageInfoArgs,
                ),
                ToolSpec("list_models", "List all available image generation models", NoArgs),
                ToolSpec(
                    "list_generated_images",
                    "List all previously generated images in the output directory",
                    NoArgs,
                ),
                ToolSpec(
                    "get_output_directory",
                    "Get the directory path where generated images are saved",
                    NoArgs,
                ),
            )
        }
        self._handlers: dict[str, Handler] = {
            "generate_image": self.generate_image,
            "compress_image": self.compress_image,
            "get_image_info": self.get_image_info,
            "list_models": self.list_models,
            "list_generated_images": self.list_generated_images,
            "get_output_directory": self.get_output_directory,
        }

    def _generate_description(self) -> str:
        lines = [
            "Generate an image using AI. Images are automatically compressed and saved as JPG.",
            "",
            "Available models (with cost per image):",
        ]
        for descriptor in self.registry.list_models():
            marker = " (default)" if descriptor.key == self.default_model else ""
            lines.append(f"- {descriptor.key}: {descriptor.name} - {descriptor.cost}{marker}")
        lines += ["", "Returns the local file path where the compressed image is saved."]
        return "\n".join(lines)

    # Catalogue -----------------------------------------------------------

    @property
    def tool_names(self) -> list[str]:
        return list(self._specs)

    def list_tools(self) -> list[dict]:
        """Return the ``{name, description, inputSchema}`` descriptors."""
        tools = []
        for spec in self._specs.values():
            schema = _build_input_schema(spec.args_model)
            if spec.name == "generate_image":
                schema["properties"]["model"]["enum"] = self.registry.list_available()
                schema["properties"]["model"]["description"] = (
                    f"Model to use. Default: {self.default_model}. "
                    + schema["properties"]["model"].get("description", "")
                )
            tools.append(
                {"name": spec.name, "description": spec.description, "inputSchema": schema}
            )
        return tools

    # Dispatch ------------------------------------------------------------

    async def call(self, name: str, arguments: dict | None = None) -> dict:
        """Run tool ``name`` and return its result envelope."""
        try:
            spec = self._specs.get(name)
            if spec is None:
                raise UnknownToolError(name)
            try:
                args = spec.args_model.model_validate(arguments or {})
            except PydanticValidationError as e:
                raise ValidationError(format_validation_error(e)) from e
            return text_result(await self._handlers[name](args))
        except ImageGenError as e:
            logger.warning(f"Tool {name} failed: {e}")
            return error_result(str(e))
        except Exception as e:
            logger.exception(f"Tool {name} failed unexpectedly")
            return error_result(str(e))

    # Handlers ------------------------------------------------------------

    async def generate_image(self, args: GenerateImageArgs) -> dict:
        quality = args.compression_quality or self.config.default_compression_quality
        try:
            request = GenerationRequest(
                prompt=args.prompt,
                model=args.model or self.default_model,
                reference_image=args.reference_image or None,
                aspect_ratio=args.aspect_ratio,
                compression_quality=quality,
                num_outputs=args.num_outputs,
                prompt_strength=args.prompt_strength,
            )
        except PydanticValidationError as e:
            raise ValidationError(format_validation_error(e)) from e

        result = await self.pipeline.generate(request)
        images = [
            {
                "path": str(image.path),
                "original_size": format_size(image.original_size),
                "compressed_size": format_size(image.compressed_size),
                "saved": format_percent(image.percent_saved),
            }
            for image in result.images
        ]
        return {
            "success": True,
            "message": f"Generated {len(images)} image(s)",
            "images": images,
            "prompt": request.prompt,
            "model": {
                "key": result.model.key,
                "name": result.model.name,
                "provider": result.model.provider,
                "cost_per_image": result.model.cost,
            },
            "settings": {
                "aspect_ratio": request.aspect_ratio,
                "compression_quality": request.compression_quality,
                "had_reference_image": request.reference_image is not None,
            },
        }

    async def compress_image(self, args: CompressImageArgs) -> dict:
        output_path = (
            Path(args.output_path) if args.output_path else default_compressed_path(args.input_path)
        )
        result = await asyncio.to_thread(
            compress_image,
            args.input_path,
            output_path,
            args.quality or self.config.default_compression_quality,
            args.max_width,
            args.max_height,
        )
        return {
            "success": True,
            "input_path": args.input_path,
            "output_path": str(output_path),
            "original_size": format_size(result.original_size),
            "compressed_size": format_size(result.compressed_size),
            "saved": format_percent(result.percent_saved),
        }

    async def get_image_info(self, args: ImageInfoArgs) -> dict:
        info = await asyncio.to_thread(get_image_info, args.image_path)
        return {
            "path": str(info.path),
            "width": info.width,
            "height": info.height,
            "format": info.format,
            "size": format_size(info.size),
        }

    async def list_models(self, args: NoArgs) -> dict:
        return {
            "default_model": self.default_model,
            "models": [d.to_listing() for d in self.registry.list_models()],
        }

    async def list_generated_images(self, args: NoArgs) -> dict:
        output_dir = self.config.output_dir
        images = await asyncio.to_thread(list_output_images, output_dir)
        return {
            "output_directory": str(output_dir),
            "image_count": len(images),
            "images": images,
        }

    async def get_output_directory(self, args: NoArgs) -> dict:
        output_dir = self.config.output_dir
        return {"output_directory": str(output_dir), "exists": output_dir.is_dir()}
