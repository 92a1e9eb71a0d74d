"""Runtime settings with typed configuration and fail-fast validation.

This module provides :class:`ClientSettings` (pydantic_settings.BaseSettings)
with nested models and environment variable support. Validation failures are
converted to :class:`~retrying_client.errors.SettingsError`.

Examples
--------
>>> from retrying_client.settings import load_settings
>>> settings = load_settings()
>>> settings.default_policy.max_attempts
3
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from retrying_client.errors import SettingsError
from retrying_client.logging import get_logger
from retrying_client.policy import RetryPolicy, default_policy

__all__ = [
    "ClientSettings",
    "DefaultPolicyConfig",
    "ObservabilityConfig",
    "TransportConfig",
    "load_settings",
]

logger = get_logger(__name__)


class TransportConfig(BaseSettings):
    """Transport timeouts (``RETRYING_CLIENT_TRANSPORT_*``)."""

    model_config = SettingsConfigDict(env_prefix="RETRYING_CLIENT_TRANSPORT_", extra="forbid")

    connect_timeout_s: float = Field(
        default=30 * 60.0, gt=0, description="Connection timeout in seconds"
    )
    read_timeout_s: float = Field(default=90 * 60.0, gt=0, description="Read timeout in seconds")


class DefaultPolicyConfig(BaseSettings):
    """Parameters of the policy seeded under the default name (``RETRYING_CLIENT_DEFAULT_POLICY_*``)."""

    model_config = SettingsConfigDict(env_prefix="RETRYING_CLIENT_DEFAULT_POLICY_", extra="forbid")

    max_attempts: int = Field(default=3, ge=1, description="Attempts including the initial call")
    wait_s: float = Field(default=2.0, ge=0, description="Fixed wait between attempts in seconds")

    def build(self) -> RetryPolicy:
        """Return the default policy described by these settings."""
        return default_policy(max_attempts=self.max_attempts, wait_s=self.wait_s)


class ObservabilityConfig(BaseSettings):
    """Logging toggles (``RETRYING_CLIENT_*`` namespace)."""

    model_config = SettingsConfigDict(env_prefix="RETRYING_CLIENT_", extra="forbid")

    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    json_logs: bool = Field(default=True, description="Render log records as JSON")


class ClientSettings(BaseSettings):
    """Aggregate client configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="RETRYING_CLIENT_",
        env_nested_delimiter="__",
        extra="forbid",
        case_sensitive=False,
    )

    transport: TransportConfig = Field(
        default_factory=TransportConfig, description="Transport configuration"
    )
    default_policy: DefaultPolicyConfig = Field(
        default_factory=DefaultPolicyConfig, description="Default retry policy"
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig, description="Logging configuration"
    )
    policies_dir: Path | None = Field(
        default=None, description="Directory of YAML retry policy documents"
    )


def load_settings(**overrides: object) -> ClientSettings:
    """Load :class:`ClientSettings` with optional overrides.

    Raises
    ------
    SettingsError
        If the environment or overrides fail validation.
    """
    try:
        return ClientSettings(**overrides)  # type: ignore[arg-type]  # BaseSettings accepts arbitrary kwargs
    except Exception as exc:
        msg = f"Configuration validation failed: {exc}"
        logger.exception(
            "Settings validation failed",
            extra={"operation": "load_settings", "error_type": type(exc).__name__},
        )
        raise SettingsError(msg, cause=exc, context={"validation_error": str(exc)}) from exc
