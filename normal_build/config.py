"""Build configuration loaded from environment variables and host options.

Uses ``pydantic-settings`` for env-var loading, type coercion, and
``.env`` file support.  Every variable is prefixed with ``NORMAL_BUILD_``
so it never collides with the host's own settings.

Host options are the ``custom["normal-esbuild"]`` block of the service
definition; they are parsed into ``PluginOptions``.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from normal_build.errors import ConfigurationError

OPTIONS_KEY = "normal-esbuild"


class Settings(BaseSettings):
    """Process-level settings — sourced from environment / ``.env`` file."""

    model_config = SettingsConfigDict(
        env_prefix="NORMAL_BUILD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # External tools.  Split on whitespace; first token is the executable.
    TYPECHECK_COMMAND: str = "npx tsc --noEmit"
    BUNDLE_COMMAND: str = "npx etsc"
    NODE_COMMAND: str = "node"

    # 0 disables the timeout (a hung tool then stalls the pipeline).
    BUILD_TIMEOUT_S: int = Field(default=600, ge=0)
    WATCH_POLL_INTERVAL_S: float = Field(default=0.5, gt=0)

    ARTIFACT_DIR: str = ".serverless"
    LOG_LEVEL: str = "INFO"


settings = Settings()


class PluginOptions(BaseModel):
    """Options recognised in the host's ``normal-esbuild`` block."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    node_modules: bool = True
    # Reserved for lockfile handling; only npm is accepted and it changes nothing.
    packager: Literal["npm"] = "npm"


def load_plugin_options(custom: dict[str, Any] | None) -> PluginOptions:
    """Extract ``PluginOptions`` from the host's ``custom`` section.

    A missing section or block yields the defaults.  Invalid values are a
    ``ConfigurationError`` because the host asked for something we
    cannot honour.
    """
    block = (custom or {}).get(OPTIONS_KEY)
    if block is None:
        return PluginOptions()
    if not isinstance(block, dict):
        raise ConfigurationError(
            f"custom.{OPTIONS_KEY} must be a mapping, got {type(block).__name__}"
        )
    try:
        return PluginOptions.model_validate(block)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid custom.{OPTIONS_KEY} options: {exc}") from exc
