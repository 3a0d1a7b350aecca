"""Exception hierarchy for Image Gen MCP.

Every failure raised by the core pipeline derives from :class:`ImageGenError`
so the tool dispatcher can convert it into a uniform error envelope. The
subclasses mirror how callers should react:

- ``ValidationError``: bad input, never retried.
- ``NotFoundError``: a local file is missing, never retried.
- ``NetworkError``: download failures, surfaced after a single attempt.
- ``BackendError``: the generation service failed; message passed through.
- ``CompressionError``: the image could not be decoded or re-encoded.
- ``ConfigurationError``: the process is misconfigured (startup time).
"""

from __future__ import annotations


class ImageGenError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(ImageGenError):
    """Required configuration is missing or invalid."""


class ValidationError(ImageGenError):
    """A request or argument failed validation."""


class UnknownModelError(ValidationError):
    """The requested model key is not in the registry."""

    def __init__(self, key: str, available: list[str]) -> None:
        self.key = key
        self.available = available
        super().__init__(f"Unknown model: {key}. Available models: {', '.join(available)}")


class UnsupportedReferenceImageError(ValidationError):
    """A reference image was supplied for a model that cannot use one."""

    def __init__(self, key: str, supported: list[str]) -> None:
        self.key = key
        self.supported = supported
        alternatives = " or ".join(supported) if supported else "a model that accepts them"
        super().__init__(
            f"Model {key} does not support reference images. Use {alternatives} instead."
        )


class UnknownToolError(ValidationError):
    """A remote call named a tool that does not exist."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class NotFoundError(ImageGenError):
    """A local file required by the operation does not exist."""


class NetworkError(ImageGenError):
    """A download could not be completed."""


class DownloadError(NetworkError):
    """The remote server answered with an unusable HTTP status."""

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"Failed to download image: HTTP {status_code}")


class DownloadTimeoutError(NetworkError):
    """The download did not finish within the allowed time."""

    def __init__(self, message: str = "Download timeout") -> None:
        super().__init__(message)


class TooManyRedirectsError(NetworkError):
    """The redirect chain exceeded the configured bound."""

    def __init__(self, max_redirects: int) -> None:
        self.max_redirects = max_redirects
        super().__init__(f"Too many redirects (limit {max_redirects})")


class BackendError(ImageGenError):
    """The generation backend reported a failure."""


class CompressionError(ImageGenError):
    """An image could not be decoded, resized, or encoded."""
