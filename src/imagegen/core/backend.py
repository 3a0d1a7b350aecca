"""Clients for the remote generation backend.

The pipeline only needs one capability from a backend: submit a model
identifier and an input payload, get back one URL or a list of URLs.
:class:`GenerationBackend` is that contract; :class:`ReplicateBackend`
implements it against the Replicate HTTP API.

Replicate flow
--------------
1. ``POST /models/{owner}/{name}/predictions`` (or ``POST /predictions``
   with a ``version`` when the identifier is pinned as ``owner/name:version``)
   with ``Prefer: wait`` so short generations complete in one round trip.
2. If the prediction is not finished, poll its ``urls.get`` link every
   ``poll_interval`` seconds until it succeeds, fails, is canceled, or the
   overall ``timeout`` passes.
3. ``succeeded`` returns ``output``; anything else raises
   :class:`~imagegen.core.errors.BackendError` with the backend's message.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

import httpx

from imagegen.core.config import ImageGenConfig
from imagegen.core.errors import BackendError

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"succeeded", "failed", "canceled"})


class GenerationBackend(ABC):
    """Abstract generation service."""

    name: str = "base"

    @abstractmethod
    async def run(self, model_id: str, payload: dict[str, Any]) -> str | Sequence[Any]:
        """Run ``model_id`` with ``payload`` and return its output URL(s).

        Raises:
            BackendError: If the backend rejects or fails the generation.
        """


class ReplicateBackend(GenerationBackend):
    """Replicate predictions API over a shared ``httpx.AsyncClient``.

    Args:
        client: HTTP client; not closed by the backend.
        api_token: Replicate API token.
        base_url: API root, without trailing slash.
        poll_interval: Seconds between status polls.
        timeout: Seconds allowed for one prediction, polling included.
    """

    name = "replicate"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_token: str,
        base_url: str = "https://api.replicate.com/v1",
        poll_interval: float = 1.0,
        timeout: float = 300.0,
    ) -> None:
        self._client = client
        self._api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: ImageGenConfig, client: httpx.AsyncClient) -> ReplicateBackend:
        """Build a backend from configuration; requires the API token."""
        return cls(
            client,
            api_token=config.require_api_token(),
            base_url=config.replicate_api_base,
            poll_interval=config.backend_poll_interval,
            timeout=config.backend_timeout,
        )

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_token}",
            "Content-Type": "application/json",
            "Prefer": "wait",
        }

    def _create_request(self, model_id: str, payload: dict[str, Any]) -> tuple[str, dict]:
        model, _, version = model_id.partition(":")
        if version:
            return f"{self.base_url}/predictions", {"version": version, "input": payload}
        return f"{self.base_url}/models/{model}/predictions", {"input": payload}

    async def run(self, model_id: str, payload: dict[str, Any]) -> str | Sequence[Any]:
        url, body = self._create_request(model_id, payload)
        logger.info(f"Submitting prediction to {model_id} (inputs: {sorted(payload)})")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        prediction = await self._request("POST", url, json=body)
        while prediction.get("status") not in TERMINAL_STATUSES:
            if loop.time() >= deadline:
                raise BackendError(
                    f"Prediction {prediction.get('id', '?')} did not finish within "
                    f"{self.timeout:.0f}s"
                )
            await asyncio.sleep(self.poll_interval)
            poll_url = (prediction.get("urls") or {}).get("get") or (
                f"{self.base_url}/predictions/{prediction.get('id')}"
            )
            prediction = await self._request("GET", poll_url)

        status = prediction["status"]
        if status != "succeeded":
            raise BackendError(str(prediction.get("error") or f"Prediction {status}"))

        output = prediction.get("output")
        if output is None:
            raise BackendError("Prediction succeeded but returned no output")
        logger.info(f"Prediction {prediction.get('id', '?')} succeeded")
        return output

    async def _request(self, method: str, url: str, **kwargs) -> dict:
        try:
            response = await self._client.request(
                method, url, headers=self._headers, timeout=self.timeout, **kwargs
            )
        except httpx.HTTPError as e:
            raise BackendError(f"Backend request failed: {e}") from e

        if response.is_error:
            raise BackendError(self._error_detail(response))

        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"Backend returned invalid JSON: {e}") from e

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            detail = data.get("detail") or data.get("title") or data.get("error")
            if detail:
                return str(detail)
        return f"Backend request failed with status {response.status_code}: {response.text}"
