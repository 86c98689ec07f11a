"""Settings for manifest reconciliation.

Values come from explicit constructor arguments, then ``RECONCILE_*``
environment variables, then a ``.env`` file, then the defaults below.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReconcileSettings(BaseSettings):
    """Runtime configuration for the reconciler and its front ends."""

    model_config = SettingsConfigDict(
        env_prefix="RECONCILE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    json_indent: int = Field(
        default=4,
        ge=0,
        description="Indentation used when writing manifests (composer uses 4)",
    )
    backup_prefix: str = Field(
        default="backup",
        min_length=1,
        description="Leading component of backup file names",
    )
    backup_timestamp_format: str = Field(
        default="%Y%m%d%H%M%S",
        description="strftime format for the backup timestamp",
    )
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level for the command line and web front ends",
    )
    web_host: str = Field(
        default="127.0.0.1",
        description="Interface the web API binds to",
    )
    web_port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port the web API listens on",
    )
    web_reload: bool = Field(
        default=False,
        description="Restart the web API when source files change",
    )


@lru_cache(maxsize=1)
def get_settings() -> ReconcileSettings:
    """Return the process-wide settings, loaded once."""
    return ReconcileSettings()
