"""Model catalogue for the generation backend.

Each backend model the tools can target is described by a
:class:`ModelDescriptor`. Descriptors are grouped in a :class:`ModelRegistry`,
a read-only mapping keyed by the short model key (``"imagen-3"``,
``"flux-schnell"``...) that preserves catalogue order.

The catalogue is data, not code: the packaged ``data/models.json`` lists the
default models, and deployments can point ``IMAGEGEN_MODELS_FILE`` at their
own file. The registry is built once at startup and handed to the pipeline
and the tool dispatcher explicitly.

Usage Example
-------------
    >>> from imagegen.core.models import load_default_registry
    >>> registry = load_default_registry()
    >>> registry.resolve("flux-redux").supports_reference_image
    True
    >>> registry.list_available()[:2]
    ['imagen-3', 'imagen-3-fast']
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator, Mapping
from importlib import resources
from pathlib import Path
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from imagegen.core.errors import ConfigurationError, UnknownModelError

logger = logging.getLogger(__name__)


class ModelDescriptor(BaseModel):
    """Immutable description of one backend model.

    Attributes:
        key: Short identifier, unique within a registry.
        backend_id: Opaque identifier passed to the backend
            (``owner/name`` for Replicate).
        name: Human-readable display name.
        provider: Backend that serves the model.
        supports_reference_image: Whether the model accepts an input image.
        cost: Approximate cost per generated image, as display text.
        description: One-line summary of the model's strengths.
    """

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., min_length=1)
    backend_id: str = Field(..., min_length=1)
    name: str
    provider: str = "replicate"
    supports_reference_image: bool = False
    cost: str = ""
    description: str = ""

    def to_listing(self) -> dict:
        """Return the public listing shape used by ``list_models``."""
        return {
            "key": self.key,
            "name": self.name,
            "provider": self.provider,
            "cost": self.cost,
            "supports_reference_image": self.supports_reference_image,
            "description": self.description,
        }


class ModelRegistry(Mapping[str, ModelDescriptor]):
    """Read-only, ordered catalogue of :class:`ModelDescriptor` objects."""

    def __init__(self, descriptors: Iterable[ModelDescriptor], default_key: str | None = None):
        models: dict[str, ModelDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.key in models:
                raise ConfigurationError(f"Duplicate model key in catalogue: {descriptor.key}")
            models[descriptor.key] = descriptor

        if not models:
            raise ConfigurationError("Model catalogue is empty")

        default_key = default_key or next(iter(models))
        if default_key not in models:
            raise ConfigurationError(f"Default model {default_key!r} is not in the catalogue")

        self._models = MappingProxyType(models)
        self._default_key = default_key

    # Mapping protocol -----------------------------------------------------

    def __getitem__(self, key: str) -> ModelDescriptor:
        return self._models[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    # Lookups -------------------------------------------------------------

    @property
    def default_key(self) -> str:
        """Catalogue default, used when the configuration names no model."""
        return self._default_key

    def resolve(self, key: str) -> ModelDescriptor:
        """Return the descriptor for ``key``.

        Raises:
            UnknownModelError: If ``key`` is not registered.
        """
        descriptor = self._models.get(key)
        if descriptor is None:
            raise UnknownModelError(key, self.list_available())
        return descriptor

    def list_models(self) -> list[ModelDescriptor]:
        """Return all descriptors in catalogue order."""
        return list(self._models.values())

    def list_available(self) -> list[str]:
        """Return all model keys in catalogue order."""
        return list(self._models)

    def reference_image_models(self) -> list[str]:
        """Return the keys of models that accept a reference image."""
        return [key for key, d in self._models.items() if d.supports_reference_image]

    # Construction --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict) -> ModelRegistry:
        """Build a registry from the ``models.json`` document shape.

        Raises:
            ConfigurationError: If the document is malformed.
        """
        try:
            descriptors = [ModelDescriptor(**entry) for entry in data.get("models", [])]
        except (PydanticValidationError, TypeError) as exc:
            raise ConfigurationError(f"Invalid model catalogue: {exc}") from exc
        return cls(descriptors, default_key=data.get("default_model"))

    @classmethod
    def from_json(cls, path: Path) -> ModelRegistry:
        """Load a registry from a JSON file on disk."""
        try:
            with open(path, encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Cannot read model catalogue {path}: {exc}") from exc
        return cls.from_dict(data)


def load_default_registry(models_file: Path | None = None) -> ModelRegistry:
    """Load the model catalogue.

    Args:
        models_file: Optional JSON file replacing the packaged catalogue.

    Returns:
        The loaded :class:`ModelRegistry`.
    """
    if models_file is not None:
        registry = ModelRegistry.from_json(Path(models_file))
        logger.info(f"Loaded {len(registry)} models from {models_file}")
        return registry

    text = resources.files("imagegen").joinpath("data/models.json").read_text(encoding="utf-8")
    return ModelRegistry.from_dict(json.loads(text))
