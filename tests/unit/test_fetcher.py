"""Tests for imagegen.core.fetcher — streaming downloads.

Network access is replaced with ``httpx.MockTransport`` so every test runs
offline. Tests cover:

- Successful streaming to disk.
- Redirect following (absolute and relative Location headers).
- Redirect bound enforcement.
- Status code failures and redirects without a Location header.
- Timeout handling and partial file cleanup.
- Stream errors midway through the body.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import pytest

from imagegen.core.errors import (
    DownloadError,
    DownloadTimeoutError,
    NetworkError,
    TooManyRedirectsError,
)
from imagegen.core.fetcher import ImageFetcher, discard_file

URL = "https://cdn.example.com/image.png"


def _fetch(fetcher: ImageFetcher, url: str, destination: Path):
    return asyncio.run(fetcher.fetch(url, destination))


class TestSuccessfulFetch:
    """Plain 200 responses."""

    def test_writes_body_to_destination(self, image_server, temp_dir: Path):
        body = image_server.add_image(URL)
        fetcher = ImageFetcher(image_server.client())
        destination = temp_dir / "download.tmp"

        fetched = _fetch(fetcher, URL, destination)

        assert destination.read_bytes() == body
        assert fetched.byte_size == len(body)
        assert fetched.path == destination
        assert fetched.redirects == 0

    def test_creates_parent_directory(self, image_server, temp_dir: Path):
        image_server.add_image(URL)
        destination = temp_dir / "nested" / "dir" / "file.tmp"
        _fetch(ImageFetcher(image_server.client()), URL, destination)
        assert destination.exists()

    def test_streams_in_chunks(self, image_server, temp_dir: Path):
        body = bytes(range(256)) * 1000
        image_server.add(URL, body)
        fetcher = ImageFetcher(image_server.client(), chunk_size=1024)
        fetched = _fetch(fetcher, URL, temp_dir / "big.tmp")
        assert fetched.byte_size == len(body)

    def test_accepts_any_2xx(self, image_server, temp_dir: Path):
        image_server.add(URL, b"partial", status=203)
        fetched = _fetch(ImageFetcher(image_server.client()), URL, temp_dir / "x.tmp")
        assert fetched.byte_size == len(b"partial")


class TestRedirects:
    """Location-based redirect handling."""

    @pytest.mark.parametrize("status", [301, 302])
    def test_follows_redirect(self, image_server, temp_dir: Path, status):
        final = "https://files.example.com/real.png"
        image_server.add(URL, status=status, headers={"location": final})
        body = image_server.add_image(final)

        fetched = _fetch(ImageFetcher(image_server.client()), URL, temp_dir / "r.tmp")

        assert (temp_dir / "r.tmp").read_bytes() == body
        assert fetched.url == final
        assert fetched.redirects == 1
        assert image_server.requests == [URL, final]

    def test_relative_location(self, image_server, temp_dir: Path):
        image_server.add(URL, status=302, headers={"location": "/moved/image.png"})
        body = image_server.add_image("https://cdn.example.com/moved/image.png")
        _fetch(ImageFetcher(image_server.client()), URL, temp_dir / "rel.tmp")
        assert (temp_dir / "rel.tmp").read_bytes() == body

    def test_redirect_without_location_fails(self, image_server, temp_dir: Path):
        image_server.add(URL, status=302)
        with pytest.raises(DownloadError) as excinfo:
            _fetch(ImageFetcher(image_server.client()), URL, temp_dir / "x.tmp")
        assert excinfo.value.status_code == 302

    def test_other_3xx_is_not_followed(self, image_server, temp_dir: Path):
        image_server.add(URL, status=307, headers={"location": "https://elsewhere/x.png"})
        with pytest.raises(DownloadError) as excinfo:
            _fetch(ImageFetcher(image_server.client()), URL, temp_dir / "x.tmp")
        assert excinfo.value.status_code == 307

    def test_redirect_loop_is_bounded(self, image_server, temp_dir: Path):
        image_server.add(URL, status=302, headers={"location": URL})
        fetcher = ImageFetcher(image_server.client(), max_redirects=2)

        with pytest.raises(TooManyRedirectsError):
            _fetch(fetcher, URL, temp_dir / "loop.tmp")

        # One initial request plus two followed redirects.
        assert len(image_server.requests) == 3
        assert not (temp_dir / "loop.tmp").exists()

    def test_zero_redirects_allowed(self, image_server, temp_dir: Path):
        image_server.add(URL, status=301, headers={"location": "https://cdn.example.com/b"})
        with pytest.raises(TooManyRedirectsError):
            _fetch(ImageFetcher(image_server.client(), max_redirects=0), URL, temp_dir / "z")


class TestFailures:
    """Status, scheme, connection and timeout failures."""

    @pytest.mark.parametrize("status", [400, 403, 404, 500, 503])
    def test_error_status(self, image_server, temp_dir: Path, status):
        image_server.add(URL, b"nope", status=status)
        with pytest.raises(DownloadError, match=f"HTTP {status}") as excinfo:
            _fetch(ImageFetcher(image_server.client()), URL, temp_dir / "e.tmp")
        assert excinfo.value.status_code == status
        assert not (temp_dir / "e.tmp").exists()

    def test_unsupported_scheme(self, image_server, temp_dir: Path):
        with pytest.raises(NetworkError, match="Unsupported URL scheme"):
            _fetch(ImageFetcher(image_server.client()), "ftp://host/x.png", temp_dir / "f")
        assert image_server.requests == []

    def test_connection_error(self, temp_dir: Path):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
        with pytest.raises(NetworkError, match="connection refused"):
            _fetch(ImageFetcher(client), URL, temp_dir / "c.tmp")

    def test_timeout(self, temp_dir: Path):
        async def slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, content=b"late")

        client = httpx.AsyncClient(transport=httpx.MockTransport(slow))
        fetcher = ImageFetcher(client, timeout=0.05)

        with pytest.raises(DownloadTimeoutError, match="Download timeout"):
            _fetch(fetcher, URL, temp_dir / "slow.tmp")
        assert not (temp_dir / "slow.tmp").exists()

    def test_timeout_is_a_network_error(self):
        assert issubclass(DownloadTimeoutError, NetworkError)

    def test_httpx_timeout_maps_to_download_timeout(self, temp_dir: Path):
        def time_out(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(time_out))
        with pytest.raises(DownloadTimeoutError):
            _fetch(ImageFetcher(client), URL, temp_dir / "t.tmp")

    def test_stream_error_removes_partial_file(self, temp_dir: Path):
        async def broken_body():
            yield b"first chunk of data"
            raise httpx.ReadError("connection reset")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=broken_body())

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        destination = temp_dir / "partial.tmp"

        with pytest.raises(NetworkError, match="connection reset"):
            _fetch(ImageFetcher(client), URL, destination)
        assert not destination.exists()

    def test_cancellation_removes_partial_file(self, temp_dir: Path):
        async def stalled_body():
            yield b"first chunk of data"
            await asyncio.sleep(5)
            yield b"never arrives"

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=stalled_body())

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        destination = temp_dir / "cancelled.tmp"

        async def fetch_then_cancel():
            task = asyncio.create_task(ImageFetcher(client).fetch(URL, destination))
            await asyncio.sleep(0.1)
            assert destination.exists()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(fetch_then_cancel())
        assert not destination.exists()


class TestDiscardFile:
    """Best-effort file removal."""

    def test_removes_existing_file(self, temp_dir: Path):
        path = temp_dir / "gone.tmp"
        path.write_bytes(b"x")
        discard_file(path)
        assert not path.exists()

    def test_missing_file_is_fine(self, temp_dir: Path):
        discard_file(temp_dir / "never-existed.tmp")

    def test_failure_is_logged_not_raised(self, temp_dir: Path, caplog):
        directory = temp_dir / "a-directory"
        directory.mkdir()
        discard_file(directory)
        assert directory.exists()
        assert "Could not remove" in caplog.text
