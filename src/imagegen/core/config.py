"""Configuration management for Image Gen MCP.

This module provides centralized configuration management using Pydantic Settings.
Configuration is loaded from environment variables with the IMAGEGEN_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Explicit keyword arguments (tests, embedding applications)
2. Environment variables
3. .env file in the working directory
4. Default values defined in ImageGenConfig

Two settings keep the unprefixed names that existing deployments already
export:

- ``REPLICATE_API_TOKEN``: API credential for the generation backend.
- ``IMAGE_OUTPUT_DIR``: where generated and compressed images are written.

Example .env file:
    REPLICATE_API_TOKEN=r8_...
    IMAGE_OUTPUT_DIR=/srv/images
    IMAGEGEN_DEFAULT_MODEL=flux-schnell
    IMAGEGEN_DOWNLOAD_CONCURRENCY=2

Usage Example
-------------
    from imagegen.core.config import get_config

    config = get_config()
    print(config.output_dir)

    # Configuration is immutable after initialization.
    # To change values, set environment variables and restart.

Directory Management
--------------------
The output directory is created on initialization if it does not exist.

See Also
--------
- ImageGenConfig: Full configuration class documentation
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from imagegen.core.errors import ConfigurationError

#: Token page shown to operators when the credential is missing.
API_TOKEN_HELP_URL = "https://replicate.com/account/api-tokens"


def _default_output_dir() -> Path:
    return Path.cwd() / "generated-images"


class ImageGenConfig(BaseSettings):
    """Main configuration for Image Gen MCP.

    Attributes
    ----------
    Backend Settings:
        replicate_api_token : SecretStr | None
            API token for the generation backend (``REPLICATE_API_TOKEN``).
            Optional at construction so that offline tools work, but required
            before the server starts (see :meth:`require_api_token`).
        replicate_api_base : str
            Base URL of the backend REST API.
        backend_poll_interval : float
            Seconds between prediction status polls.
        backend_timeout : float
            Upper bound in seconds for a single generation on the backend.

    Model Settings:
        default_model : str | None
            Registry key used when a request names no model. Unset means the
            catalogue's own ``default_model`` (``imagen-3`` in the packaged one).
        models_file : Path | None
            Optional JSON catalogue replacing the packaged model list.

    Output Settings:
        output_dir : Path
            Directory for generated images (``IMAGE_OUTPUT_DIR``).
        default_compression_quality : int
            JPEG quality used when a request does not specify one (1-100).

    Download Settings:
        download_timeout : float
            Seconds allowed for a single image download, redirects included.
        max_redirects : int
            Redirect hops followed before a download is abandoned.
        download_concurrency : int
            Result URLs fetched and compressed at the same time (1 = sequential).
        rollback_on_failure : bool
            Delete files already written by a generation call when a later
            output of the same call fails.

    Server Settings:
        server_host : str
            Bind address for the HTTP transport.
        server_port : int
            Port for the HTTP transport (1024-65535).
        log_level : Literal["DEBUG", "INFO", "WARNING", "ERROR"]
            Root log level applied by the CLI entry point.

    Examples
    --------
    Create a custom configuration:

        >>> cfg = ImageGenConfig(output_dir="/tmp/images", download_concurrency=2)
        >>> cfg.download_concurrency
        2
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="IMAGEGEN_",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Backend settings
    replicate_api_token: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("REPLICATE_API_TOKEN", "IMAGEGEN_REPLICATE_API_TOKEN"),
        description="API token for the generation backend",
    )
    replicate_api_base: str = Field(
        default="https://api.replicate.com/v1",
        description="Base URL of the generation backend REST API",
    )
    backend_poll_interval: float = Field(default=1.0, gt=0)
    backend_timeout: float = Field(default=300.0, gt=0)

    # Model settings
    default_model: str | None = Field(
        default=None,
        description="Registry key of the model used when none is requested; "
        "unset falls back to the catalogue default",
    )
    models_file: Path | None = Field(
        default=None,
        description="JSON model catalogue overriding the packaged one",
    )

    # Output settings
    output_dir: Path = Field(
        default_factory=_default_output_dir,
        validation_alias=AliasChoices("IMAGE_OUTPUT_DIR", "IMAGEGEN_OUTPUT_DIR"),
        description="Directory to save generated images",
    )
    default_compression_quality: int = Field(default=85, ge=1, le=100)

    # Download settings
    download_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Seconds allowed for one download, measured from request start",
    )
    max_redirects: int = Field(default=5, ge=0, le=20)
    download_concurrency: int = Field(default=1, ge=1, le=4)
    rollback_on_failure: bool = Field(
        default=False,
        description="Remove earlier outputs of a generation call when a later one fails",
    )

    # Server settings
    server_host: str = Field(default="127.0.0.1")
    server_port: int = Field(default=8765, ge=1024, le=65535)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    def __init__(self, **kwargs):
        """Initialize configuration and create the output directory.

        Args:
            **kwargs: Configuration overrides (typically from tests)
        """
        super().__init__(**kwargs)

        self.output_dir = self.output_dir.expanduser().resolve()
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def require_api_token(self) -> str:
        """Return the backend API token or fail with a configuration error.

        Raises:
            ConfigurationError: If ``REPLICATE_API_TOKEN`` is unset or empty.
        """
        token = self.replicate_api_token.get_secret_value() if self.replicate_api_token else ""
        if not token:
            raise ConfigurationError(
                "REPLICATE_API_TOKEN environment variable is required. "
                f"Get your API token from {API_TOKEN_HELP_URL}"
            )
        return token


@lru_cache(maxsize=1)
def get_config() -> ImageGenConfig:
    """Return the process-wide configuration, built on first use."""
    return ImageGenConfig()
