"""Resolve client configuration from profile, environment, and overrides."""

from __future__ import annotations

import os
from typing import Any

from pydantic import ValidationError

from s3stream.config.helpers import parse_bool, parse_bytes
from s3stream.config.profiles import ProfileManager
from s3stream.config.s3_config import S3Config
from s3stream.exceptions import ConfigError

_ENV_MAP: dict[str, str] = {
    "bucket": "S3STREAM_BUCKET",
    "access_key": "S3STREAM_ACCESS_KEY",
    "secret_key": "S3STREAM_SECRET_KEY",
    "prefix": "S3STREAM_PREFIX",
    "host": "S3STREAM_HOST",
    "secure": "S3STREAM_SECURE",
    "path_style": "S3STREAM_PATH_STYLE",
    "concurrency": "S3STREAM_CONCURRENCY",
    "part_attempts": "S3STREAM_PART_ATTEMPTS",
    "retry_delay": "S3STREAM_RETRY_DELAY",
    "min_part_size": "S3STREAM_MIN_PART_SIZE",
    "timeout": "S3STREAM_TIMEOUT",
}

_INT_FIELDS = {"concurrency", "part_attempts"}
_FLOAT_FIELDS = {"retry_delay", "timeout"}
_BOOL_FIELDS = {"secure", "path_style"}


class ConfigManager:
    """Build effective configuration from profile, env, and explicit overrides."""

    def __init__(
        self, profile_manager: ProfileManager, profile: str | None = None
    ) -> None:
        """Initialise ConfigManager.

        Args:
            profile_manager: ProfileManager instance
            profile: Name of the profile to load as the base configuration.
        """
        self.profile_manager = profile_manager
        self.profile = profile

    def _read_env_overrides(self) -> dict[str, Any]:
        """Read configuration overrides from environment variables.

        Values that fail to parse are skipped.

        Returns:
            A dictionary of configuration field names to override values.
        """
        overrides: dict[str, Any] = {}

        for field_name, env_var_name in _ENV_MAP.items():
            env_value = os.getenv(env_var_name)
            if env_value is None:
                continue

            try:
                if field_name == "min_part_size":
                    overrides[field_name] = parse_bytes(env_value)
                elif field_name in _INT_FIELDS:
                    overrides[field_name] = int(env_value)
                elif field_name in _FLOAT_FIELDS:
                    overrides[field_name] = float(env_value)
                elif field_name in _BOOL_FIELDS:
                    overrides[field_name] = parse_bool(env_value)
                else:
                    overrides[field_name] = env_value
            except ValueError:
                continue

        return overrides

    def resolve_effective_config(
        self, overrides: dict[str, Any] | None = None
    ) -> S3Config:
        """Resolve the effective configuration.

        Args:
            overrides: Explicit values, e.g. from the command line. ``None``
                values are ignored.

        Returns:
            The resolved, validated ``S3Config``.
        """
        base_config = self.profile_manager.get_profile(self.profile)

        update = self._read_env_overrides()
        if overrides is not None:
            update.update(
                {name: value for name, value in overrides.items() if value is not None}
            )

        merged = base_config.model_dump()
        merged.update(update)
        try:
            return S3Config(**merged)
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc
