"""Image Gen MCP — remote invocation layer.

This package exposes the core pipeline as six remotely invocable tools.

Modules
-------
main
    FastAPI application (HTTP + JSON-RPC routes) and the ``main()`` CLI
    entry point.
tools
    Tool catalogue and :class:`ToolDispatcher`, which validates arguments,
    runs handlers and builds result envelopes.
models
    Pydantic argument models for every tool.
gallery_store
    Output directory listing and size formatting helpers.
"""
