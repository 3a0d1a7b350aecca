"""Shared pytest fixtures for Image Gen MCP tests."""

import io
import shutil
import tempfile
from pathlib import Path
from typing import Any, Generator

import httpx
import pytest
from PIL import Image

from imagegen.api.tools import ToolDispatcher
from imagegen.core.backend import GenerationBackend
from imagegen.core.config import ImageGenConfig
from imagegen.core.fetcher import ImageFetcher
from imagegen.core.models import ModelRegistry, load_default_registry
from imagegen.core.pipeline import GenerationPipeline


def make_image_bytes(
    size: tuple[int, int] = (64, 64),
    color: tuple[int, ...] = (200, 30, 30),
    fmt: str = "PNG",
    mode: str = "RGB",
) -> bytes:
    """Encode a solid-colour image in memory.

    Args:
        size: Width and height in pixels
        color: Fill colour
        fmt: Pillow format name
        mode: Pillow image mode

    Returns:
        Encoded image bytes
    """
    buffer = io.BytesIO()
    Image.new(mode, size, color=color).save(buffer, format=fmt)
    return buffer.getvalue()


def write_image(path: Path, **kwargs) -> Path:
    """Write a synthetic image to ``path`` and return it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(make_image_bytes(**kwargs))
    return path


class FakeBackend(GenerationBackend):
    """In-memory backend that returns canned output and records calls."""

    name = "fake"

    def __init__(self, output: Any = None, error: Exception | None = None) -> None:
        self.output = output
        self.error = error
        self.calls: list[tuple[str, dict]] = []

    async def run(self, model_id: str, payload: dict) -> Any:
        self.calls.append((model_id, payload))
        if self.error is not None:
            raise self.error
        return self.output


class ImageServer:
    """Route table behind an ``httpx.MockTransport``.

    Each route maps a URL to ``(status, headers, body)``. Requests for
    unknown URLs get a 404. Every requested URL is recorded in ``requests``.
    """

    def __init__(self) -> None:
        self.routes: dict[str, tuple[int, dict, bytes]] = {}
        self.requests: list[str] = []

    def add(self, url: str, body: bytes = b"", status: int = 200, headers: dict | None = None):
        self.routes[url] = (status, headers or {}, body)

    def add_image(self, url: str, **kwargs) -> bytes:
        body = make_image_bytes(**kwargs)
        self.add(url, body, headers={"content-type": "image/png"})
        return body

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        status, headers, body = self.routes.get(url, (404, {}, b"not found"))
        return httpx.Response(status, headers=headers, content=body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path, monkeypatch) -> ImageGenConfig:
    """Create a test configuration writing into a temporary directory.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        ImageGenConfig instance for testing
    """
    for name in ("REPLICATE_API_TOKEN", "IMAGE_OUTPUT_DIR", "IMAGEGEN_DEFAULT_MODEL"):
        monkeypatch.delenv(name, raising=False)

    return ImageGenConfig(
        _env_file=None,
        replicate_api_token="test-token",
        output_dir=str(temp_dir / "generated-images"),
    )


@pytest.fixture
def registry() -> ModelRegistry:
    """The packaged model catalogue."""
    return load_default_registry()


@pytest.fixture
def image_server() -> ImageServer:
    """Empty mock image host."""
    return ImageServer()


@pytest.fixture
def fake_backend() -> FakeBackend:
    """Backend returning a single URL on the mock image host."""
    return FakeBackend(output="https://cdn.example.com/out-0.png")


@pytest.fixture
def pipeline(
    test_config: ImageGenConfig,
    registry: ModelRegistry,
    fake_backend: FakeBackend,
    image_server: ImageServer,
) -> GenerationPipeline:
    """Pipeline wired to the fake backend and the mock image host."""
    fetcher = ImageFetcher(image_server.client(), timeout=5.0, max_redirects=5)
    return GenerationPipeline.from_config(test_config, registry, fake_backend, fetcher)


@pytest.fixture
def dispatcher(
    test_config: ImageGenConfig, registry: ModelRegistry, pipeline: GenerationPipeline
) -> ToolDispatcher:
    """Tool dispatcher backed by the test pipeline."""
    return ToolDispatcher(test_config, registry, pipeline)


@pytest.fixture
def sample_image(temp_dir: Path) -> Path:
    """A 1000x1000 PNG on disk."""
    return write_image(temp_dir / "inputs" / "sample.png", size=(1000, 1000))
