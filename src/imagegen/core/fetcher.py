"""Streaming image downloads.

:class:`ImageFetcher` copies a remote image to a local file without holding
the whole payload in memory. It follows ``301``/``302`` redirects with an
explicit hop counter, enforces one deadline for the whole download, and
removes the partially written file whenever the transfer fails.

Error mapping:

- Non-2xx status, or a redirect without a ``Location`` header:
  :class:`~imagegen.core.errors.DownloadError` (carries ``status_code``).
- Deadline expiry or an httpx timeout:
  :class:`~imagegen.core.errors.DownloadTimeoutError`.
- Redirect chain longer than ``max_redirects``:
  :class:`~imagegen.core.errors.TooManyRedirectsError`.
- Connection and protocol failures: :class:`~imagegen.core.errors.NetworkError`.

Local write errors (``OSError``) and task cancellation propagate unchanged;
the partial file is removed in those cases too.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from imagegen.core.errors import (
    DownloadError,
    DownloadTimeoutError,
    NetworkError,
    TooManyRedirectsError,
)

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset({301, 302})
SUPPORTED_SCHEMES = frozenset({"http", "https"})

DEFAULT_TIMEOUT = 60.0
DEFAULT_MAX_REDIRECTS = 5
CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class FetchedImage:
    """A downloaded file awaiting compression.

    Attributes:
        path: Local file the body was written to.
        byte_size: Number of bytes written.
        url: Final URL after redirects.
        redirects: Number of redirects followed.
    """

    path: Path
    byte_size: int
    url: str
    redirects: int = 0


def discard_file(path: Path) -> None:
    """Delete ``path`` if it exists; failures are logged, not raised."""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove {path}: {e}")


class ImageFetcher:
    """Download remote images to local files.

    Args:
        client: Shared ``httpx.AsyncClient``. The fetcher never closes it.
        timeout: Seconds allowed per download, redirects included.
        max_redirects: Redirect hops followed before giving up.
        chunk_size: Bytes requested from the stream per iteration.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: float = DEFAULT_TIMEOUT,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        self._client = client
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.chunk_size = chunk_size

    async def fetch(self, url: str, destination: Path) -> FetchedImage:
        """Stream ``url`` into ``destination``.

        Args:
            url: ``http`` or ``https`` URL of the image.
            destination: File to create; its parent directory is created if
                needed.

        Returns:
            :class:`FetchedImage` describing the written file.

        Raises:
            DownloadError: Non-2xx status or unusable redirect.
            DownloadTimeoutError: The deadline passed.
            TooManyRedirectsError: The redirect bound was exceeded.
            NetworkError: Connection or protocol failure.
        """
        destination = Path(destination)
        try:
            return await asyncio.wait_for(self._follow(url, destination), self.timeout)
        except asyncio.TimeoutError:
            discard_file(destination)
            raise DownloadTimeoutError() from None
        except httpx.TimeoutException as e:
            discard_file(destination)
            raise DownloadTimeoutError() from e
        except httpx.HTTPError as e:
            discard_file(destination)
            raise NetworkError(f"Failed to download image: {e}") from e

    async def _follow(self, url: str, destination: Path) -> FetchedImage:
        current = httpx.URL(url)

        for redirects in range(self.max_redirects + 1):
            if current.scheme not in SUPPORTED_SCHEMES:
                raise NetworkError(f"Unsupported URL scheme: {current.scheme or '(none)'}")

            async with self._client.stream(
                "GET", current, follow_redirects=False, timeout=self.timeout
            ) as response:
                if response.status_code in REDIRECT_STATUSES:
                    location = response.headers.get("location")
                    if not location:
                        raise DownloadError(response.status_code)
                    current = current.join(location)
                    logger.debug(f"Redirect {response.status_code} -> {current}")
                    continue

                if not response.is_success:
                    raise DownloadError(response.status_code)

                size = await self._write_body(response, destination)
                logger.debug(f"Downloaded {size} bytes from {current} to {destination}")
                return FetchedImage(
                    path=destination, byte_size=size, url=str(current), redirects=redirects
                )

        raise TooManyRedirectsError(self.max_redirects)

    async def _write_body(self, response: httpx.Response, destination: Path) -> int:
        destination.parent.mkdir(parents=True, exist_ok=True)
        written = 0
        try:
            with open(destination, "wb") as handle:
                async for chunk in response.aiter_bytes(self.chunk_size):
                    handle.write(chunk)
                    written += len(chunk)
        except BaseException:
            # Cancellation included.
            discard_file(destination)
            raise
        return written
