"""Image Gen MCP — FastAPI application.

This module is the single entry point for the network service. It defines
the FastAPI ``app`` instance, the HTTP routes that expose the tool
dispatcher, and the ``main()`` CLI function that launches the uvicorn
server.

Architecture
------------
- **Configuration** comes from :func:`~imagegen.core.config.get_config`.
  The backend API token is checked when the application starts; a missing
  token aborts startup with a :class:`~imagegen.core.errors.ConfigurationError`.
- **One shared ``httpx.AsyncClient``** serves both the backend client and
  the image fetcher. It is opened in the lifespan handler and closed on
  shutdown.
- **Tool calls** are handled by :class:`~imagegen.api.tools.ToolDispatcher`,
  stored on ``app.state``. Routes only translate between HTTP and the
  dispatcher; tool failures come back as ``isError`` envelopes, never as
  HTTP errors.

Endpoints
---------
========  ========================  =========================================
Method    Path                      Purpose
========  ========================  =========================================
GET       ``/health``               Liveness check
GET       ``/api/tools``            Tool descriptors
POST      ``/api/tools/{name}``     Call a tool; body is the argument object
POST      ``/mcp``                  JSON-RPC 2.0 (initialize, tools/list,
                                    tools/call, ping)
========  ========================  =========================================

Usage
-----
CLI (installed entry point)::

    image-gen-mcp

Direct invocation::

    python -m imagegen.api.main
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import Body, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from imagegen import __version__
from imagegen.api.tools import ToolDispatcher
from imagegen.core.backend import ReplicateBackend
from imagegen.core.config import ImageGenConfig, get_config
from imagegen.core.errors import ConfigurationError
from imagegen.core.fetcher import ImageFetcher
from imagegen.core.models import load_default_registry
from imagegen.core.pipeline import GenerationPipeline

logger = logging.getLogger(__name__)

SERVER_NAME = "image-gen-mcp"
PROTOCOL_VERSIONS = ("2024-11-05", "2025-03-26")

# JSON-RPC error codes.
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601


def build_dispatcher(config: ImageGenConfig, client: httpx.AsyncClient) -> ToolDispatcher:
    """Wire registry, backend, fetcher and pipeline into a dispatcher.

    Raises:
        ConfigurationError: The API token is missing or the catalogue is invalid.
    """
    registry = load_default_registry(config.models_file)
    backend = ReplicateBackend.from_config(config, client)
    fetcher = ImageFetcher(
        client, timeout=config.download_timeout, max_redirects=config.max_redirects
    )
    pipeline = GenerationPipeline.from_config(config, registry, backend, fetcher)
    return ToolDispatcher(config, registry, pipeline)


def create_app(dispatcher: ToolDispatcher | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        dispatcher: Pre-built dispatcher. When omitted, one is built from the
            global configuration at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # --- Startup -------------------------------------------------------
        if dispatcher is not None:
            app.state.dispatcher = dispatcher
            yield
            return

        config = get_config()
        config.require_api_token()
        async with httpx.AsyncClient(timeout=config.download_timeout) as client:
            app.state.dispatcher = build_dispatcher(config, client)
            logger.info(f"Output directory: {config.output_dir}")
            logger.info(f"Default model: {app.state.dispatcher.default_model}")
            logger.info(
                f"Available models: {', '.join(app.state.dispatcher.registry.list_available())}"
            )

            yield  # Application runs here.

        # --- Shutdown ------------------------------------------------------
        logger.info("HTTP client closed on shutdown.")

    app = FastAPI(
        title="Image Gen MCP",
        description="Generate, download, compress and catalogue AI images.",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health(request: Request) -> dict:
        """Liveness check with the number of registered tools."""
        dispatcher_: ToolDispatcher = request.app.state.dispatcher
        return {"ok": True, "version": __version__, "tools": len(dispatcher_.tool_names)}

    @app.get("/api/tools")
    async def list_tools(request: Request) -> dict:
        """Return every tool descriptor."""
        return {"tools": request.app.state.dispatcher.list_tools()}

    @app.post("/api/tools/{name}")
    async def call_tool(
        name: str,
        request: Request,
        arguments: dict[str, Any] | None = Body(default=None),
    ) -> dict:
        """Call tool ``name``; the request body is its argument object.

        Always answers 200; failures are reported inside the envelope.
        """
        return await request.app.state.dispatcher.call(name, arguments)

    @app.post("/mcp")
    async def mcp(request: Request) -> Response:
        """JSON-RPC 2.0 endpoint for MCP clients over plain HTTP."""
        body = await request.body()
        try:
            rpc = json.loads(body)
        except json.JSONDecodeError:
            return JSONResponse(_rpc_error(None, PARSE_ERROR, "Parse error"), status_code=400)

        if not isinstance(rpc, dict):
            return JSONResponse(
                _rpc_error(None, INVALID_REQUEST, "Invalid request"), status_code=400
            )

        response = await handle_rpc(request.app.state.dispatcher, rpc)
        if response is None:
            return Response(status_code=202)
        return JSONResponse(response)

    return app


def _rpc_error(req_id: Any, code: int, message: str) -> dict:
    return {"jsonrpc": "2.0", "id": req_id, "error": {"code": code, "message": message}}


async def handle_rpc(dispatcher: ToolDispatcher, rpc: dict) -> dict | None:
    """Process one JSON-RPC request; returns ``None`` for notifications."""
    req_id = rpc.get("id")
    method = rpc.get("method", "")
    params = rpc.get("params") or {}

    def ok(result: Any) -> dict:
        return {"jsonrpc": "2.0", "id": req_id, "result": result}

    if method == "initialize":
        requested = params.get("protocolVersion", PROTOCOL_VERSIONS[0])
        agreed = requested if requested in PROTOCOL_VERSIONS else PROTOCOL_VERSIONS[0]
        return ok(
            {
                "protocolVersion": agreed,
                "capabilities": {"tools": {}},
                "serverInfo": {"name": SERVER_NAME, "version": __version__},
            }
        )

    if method in ("notifications/initialized", "initialized"):
        return None

    if method == "tools/list":
        return ok({"tools": dispatcher.list_tools()})

    if method == "tools/call":
        return ok(await dispatcher.call(params.get("name", ""), params.get("arguments")))

    if method == "ping":
        return ok({})

    if req_id is None:
        return None
    return _rpc_error(req_id, METHOD_NOT_FOUND, f"Method not found: {method}")


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from the configuration
    (``IMAGEGEN_SERVER_HOST``, ``IMAGEGEN_SERVER_PORT``,
    ``IMAGEGEN_LOG_LEVEL``). Exits with a message when
    ``REPLICATE_API_TOKEN`` is not set.

    This function is registered as the ``image-gen-mcp`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    config = get_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config.require_api_token()
    except ConfigurationError as e:
        logger.error(str(e))
        raise SystemExit(1) from e

    uvicorn.run(
        "imagegen.api.main:app",
        host=config.server_host,
        port=config.server_port,
        log_level=config.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    main()
