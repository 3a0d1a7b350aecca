"""Core image acquisition and normalisation pipeline.

This package holds everything between "a generation request arrived" and
"compressed JPEG files sit in the output directory":

- **Configuration** (config.py): environment-based settings using Pydantic
  Settings, including the backend API token and the output directory.
- **Model catalogue** (models.py): immutable registry of backend models and
  their capabilities, loaded from a JSON file once at startup.
- **Filenames** (filenames.py): prompt-derived, timestamped base filenames.
- **Fetcher** (fetcher.py): streaming HTTP(S) download with bounded redirects,
  a fixed timeout, and partial-file cleanup.
- **Compressor** (compressor.py): Pillow-based "fit inside" resize and JPEG
  re-encode, plus image metadata inspection.
- **Backend** (backend.py): the remote generative service client.
- **Pipeline** (pipeline.py): validates a request, builds the backend
  payload, and drives fetch + compress over every returned URL.

Architecture Overview
---------------------
The pipeline receives its collaborators explicitly::

    config = get_config()
    registry = load_default_registry(config.models_file)
    async with httpx.AsyncClient() as client:
        pipeline = GenerationPipeline.from_config(
            config,
            registry,
            backend=ReplicateBackend.from_config(config, client),
            fetcher=ImageFetcher(client, timeout=config.download_timeout),
        )
        result = await pipeline.generate(request)

Nothing in this package refers to ambient global state, which keeps tests
free to swap in alternate catalogues, fake backends, and mock transports.
"""

from imagegen.core.backend import GenerationBackend, ReplicateBackend
from imagegen.core.compressor import CompressionResult, ImageInfo, compress_image, get_image_info
from imagegen.core.config import ImageGenConfig, get_config
from imagegen.core.fetcher import FetchedImage, ImageFetcher
from imagegen.core.filenames import derive_filename
from imagegen.core.models import ModelDescriptor, ModelRegistry, load_default_registry
from imagegen.core.pipeline import GenerationPipeline, GenerationRequest

__all__ = [
    "CompressionResult",
    "FetchedImage",
    "GenerationBackend",
    "GenerationPipeline",
    "GenerationRequest",
    "ImageFetcher",
    "ImageGenConfig",
    "ImageInfo",
    "ModelDescriptor",
    "ModelRegistry",
    "ReplicateBackend",
    "compress_image",
    "derive_filename",
    "get_config",
    "get_image_info",
    "load_default_registry",
]
