"""Generation pipeline: request -> backend -> download -> JPEG files.

:class:`GenerationPipeline` is the only place where the core pieces meet:

1. Resolve the requested model in the :class:`~imagegen.core.models.ModelRegistry`.
2. Reject reference images for models that cannot use them.
3. Build the backend payload, embedding a reference image as a base64
   data URI when one is supplied.
4. Run the backend and normalise its output to an ordered list of URLs.
5. For each URL: derive a filename from the prompt, stream the image to a
   temporary file, compress it to ``<name>.jpg``, and delete the temporary
   file whether compression succeeded or not.

Outputs are processed by a bounded worker pool. With the default
concurrency of 1 they run strictly one after another; higher values overlap
downloads. Either way results come back in backend URL order.

Failure policy
--------------
Any failure aborts the whole call and cancels outputs that have not finished.
Downloads in flight are cut off and their temporary files removed; a
compression already running in a worker thread cannot be interrupted, so the
call waits for it. Files written for other outputs of the call stay on disk
unless the pipeline was built with ``rollback_on_failure=True``, in which
case every output file of the call is deleted before the error propagates.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import secrets
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, get_args

from pydantic import BaseModel, Field, field_validator

from imagegen.core.backend import GenerationBackend
from imagegen.core.compressor import DEFAULT_QUALITY, CompressionResult, compress_image
from imagegen.core.config import ImageGenConfig
from imagegen.core.errors import BackendError, NotFoundError, UnsupportedReferenceImageError
from imagegen.core.fetcher import ImageFetcher, discard_file
from imagegen.core.filenames import derive_filename
from imagegen.core.models import ModelDescriptor, ModelRegistry

logger = logging.getLogger(__name__)

AspectRatio = Literal["1:1", "16:9", "9:16", "4:3", "3:4", "21:9", "9:21"]
ASPECT_RATIOS: tuple[str, ...] = get_args(AspectRatio)

MIN_OUTPUTS = 1
MAX_OUTPUTS = 4

_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


class GenerationRequest(BaseModel):
    """One image generation request.

    Attributes:
        prompt: Text description of the image; must not be blank.
        model: Registry key of the model to use.
        reference_image: Optional local image to guide the generation.
        aspect_ratio: Requested width:height ratio.
        compression_quality: JPEG quality for the saved files (1-100).
        num_outputs: Number of images; clamped to 1-4 rather than rejected.
        prompt_strength: Prompt influence when a reference image is given.
    """

    prompt: str = Field(..., min_length=1)
    model: str = "imagen-3"
    reference_image: Path | None = None
    aspect_ratio: AspectRatio = "1:1"
    compression_quality: int = Field(default=DEFAULT_QUALITY, ge=1, le=100)
    num_outputs: int = 1
    prompt_strength: float = Field(default=0.8, ge=0.0, le=1.0)

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("prompt must not be empty")
        return value

    @field_validator("num_outputs")
    @classmethod
    def _clamp_outputs(cls, value: int) -> int:
        return min(max(value, MIN_OUTPUTS), MAX_OUTPUTS)


@dataclass(frozen=True)
class GenerationResult:
    """Files produced by one successful :meth:`GenerationPipeline.generate` call."""

    request: GenerationRequest
    model: ModelDescriptor
    images: list[CompressionResult]


def mime_type_for(path: Path) -> str:
    """Guess an image MIME type from the file extension, defaulting to PNG."""
    return _MIME_TYPES.get(path.suffix.lower(), "image/png")


def encode_data_uri(path: Path) -> str:
    """Read a local image and return it as a base64 ``data:`` URI.

    Raises:
        NotFoundError: ``path`` does not exist.
    """
    path = Path(path).expanduser().resolve()
    if not path.is_file():
        raise NotFoundError(f"Reference image not found: {path}")
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime_type_for(path)};base64,{encoded}"


def normalize_output(output: Any) -> list[str]:
    """Turn a backend output (one URL or a sequence of URLs) into a list."""
    if isinstance(output, (list, tuple)):
        urls = [item if isinstance(item, str) else str(item) for item in output]
    else:
        urls = [output if isinstance(output, str) else str(output)]
    if not urls:
        raise BackendError("Backend returned no images")
    return urls


class GenerationPipeline:
    """Drive a generation request from validation to compressed files.

    Args:
        registry: Model catalogue used to resolve request model keys.
        backend: Generation service.
        fetcher: Downloader for the backend's result URLs.
        output_dir: Directory receiving temporary and final files.
        concurrency: Maximum outputs fetched and compressed at once.
        rollback_on_failure: Delete earlier outputs when a later one fails.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        backend: GenerationBackend,
        fetcher: ImageFetcher,
        output_dir: Path,
        concurrency: int = 1,
        rollback_on_failure: bool = False,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.registry = registry
        self.backend = backend
        self.fetcher = fetcher
        self.output_dir = Path(output_dir)
        self.concurrency = concurrency
        self.rollback_on_failure = rollback_on_failure

    @classmethod
    def from_config(
        cls,
        config: ImageGenConfig,
        registry: ModelRegistry,
        backend: GenerationBackend,
        fetcher: ImageFetcher,
    ) -> GenerationPipeline:
        return cls(
            registry=registry,
            backend=backend,
            fetcher=fetcher,
            output_dir=config.output_dir,
            concurrency=config.download_concurrency,
            rollback_on_failure=config.rollback_on_failure,
        )

    def resolve_model(self, request: GenerationRequest) -> ModelDescriptor:
        """Resolve and capability-check the request's model.

        Raises:
            UnknownModelError: The model key is not registered.
            UnsupportedReferenceImageError: A reference image was given for a
                model without reference image support.
        """
        descriptor = self.registry.resolve(request.model)
        if request.reference_image is not None and not descriptor.supports_reference_image:
            raise UnsupportedReferenceImageError(
                descriptor.key, self.registry.reference_image_models()
            )
        return descriptor

    async def build_payload(
        self, request: GenerationRequest, descriptor: ModelDescriptor
    ) -> dict[str, Any]:
        """Build the backend input for ``request``."""
        payload: dict[str, Any] = {
            "prompt": request.prompt,
            "aspect_ratio": request.aspect_ratio,
            "num_outputs": request.num_outputs,
        }
        if request.reference_image is not None and descriptor.supports_reference_image:
            payload["image"] = await asyncio.to_thread(encode_data_uri, request.reference_image)
            payload["prompt_strength"] = request.prompt_strength
        return payload

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Run ``request`` end to end.

        Returns:
            :class:`GenerationResult` with one compressed file per backend URL,
            in backend order.
        """
        descriptor = self.resolve_model(request)
        payload = await self.build_payload(request, descriptor)

        logger.info(
            f"Generating {request.num_outputs} image(s) with {descriptor.key} "
            f"({request.aspect_ratio}, quality {request.compression_quality})"
        )
        urls = normalize_output(await self.backend.run(descriptor.backend_id, payload))

        timestamp_ms = time.time_ns() // 1_000_000
        images = await self._process_all(request, urls, timestamp_ms)

        logger.info(f"Saved {len(images)} image(s) to {self.output_dir}")
        return GenerationResult(request=request, model=descriptor, images=images)

    def final_path(self, base_name: str) -> Path:
        """Return the output file for ``base_name``."""
        return self.output_dir / f"{base_name}.jpg"

    async def _process_all(
        self, request: GenerationRequest, urls: Sequence[str], timestamp_ms: int
    ) -> list[CompressionResult]:
        semaphore = asyncio.Semaphore(self.concurrency)
        names = [derive_filename(request.prompt, i, timestamp_ms) for i in range(len(urls))]

        async def worker(name: str, url: str) -> CompressionResult:
            async with semaphore:
                return await self.process_url(url, name, request.compression_quality)

        tasks = [asyncio.create_task(worker(name, url)) for name, url in zip(names, urls)]
        try:
            return list(await asyncio.gather(*tasks))
        except Exception:
            for task in tasks:
                task.cancel()
            # Cancelled workers only finish once their compression thread has.
            await asyncio.gather(*tasks, return_exceptions=True)
            written = [path for path in map(self.final_path, names) if path.exists()]
            if self.rollback_on_failure:
                for path in written:
                    discard_file(path)
                logger.warning(f"Generation failed; removed {len(written)} earlier output(s)")
            elif written:
                logger.warning(f"Generation failed; keeping {len(written)} earlier output(s)")
            raise

    async def process_url(self, url: str, base_name: str, quality: int) -> CompressionResult:
        """Download ``url`` and compress it to ``<base_name>.jpg``.

        The temporary download is removed on every exit path, cancellation
        included. A cancelled call returns only after any compression already
        running in a worker thread has finished, so callers can clean up its
        output.
        """
        temp_path = self.output_dir / f"temp_{time.time_ns() // 1_000_000}_{secrets.token_hex(6)}"
        final_path = self.final_path(base_name)

        try:
            fetched = await self.fetcher.fetch(url, temp_path)
            compression = asyncio.ensure_future(
                asyncio.to_thread(compress_image, fetched.path, final_path, quality)
            )
            try:
                return await asyncio.shield(compression)
            except asyncio.CancelledError:
                await asyncio.gather(compression, return_exceptions=True)
                raise
        finally:
            discard_file(temp_path)
