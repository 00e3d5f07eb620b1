"""Named configuration profiles stored as YAML files."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from s3stream.config.helpers import parse_bytes
from s3stream.config.s3_config import S3Config
from s3stream.exceptions import ConfigError


class ProfileNotFound(ConfigError):
    """Raised when a requested profile cannot be found on disk."""


class ProfileAlreadyExist(ConfigError):
    """Raised when attempting to create a profile that already exists."""


class ProfileManager:
    """Manage configuration profiles stored on disk."""

    def __init__(
        self,
        home_path: Path | None = None,
    ) -> None:
        """Initialise ProfileManager."""
        self._home_path = home_path or Path.home()

    @property
    def home_path(self) -> Path:
        """Return the home path used for resolving configuration."""
        return self._home_path

    def _profiles_dir(self) -> Path:
        """Return the directory where profiles are stored."""
        return self._home_path / ".s3stream" / "profiles"

    def _get_profile_path(self, profile: str) -> Path:
        """Return the filesystem path for a given profile name.

        Args:
            profile: Name of the profile.

        Returns:
            Path to the profile YAML file.
        """
        profiles_dir = self._profiles_dir()
        profiles_dir.mkdir(parents=True, exist_ok=True)
        return profiles_dir / f"{profile}.yaml"

    def list_profiles(self) -> list[str]:
        """List available profile names.

        Returns:
            List of profile names without the ``.yaml`` suffix.
        """
        profiles_dir = self._profiles_dir()
        if not profiles_dir.exists():
            return []

        names: list[str] = []
        for path in profiles_dir.iterdir():
            if path.is_file() and path.suffix == ".yaml":
                names.append(path.stem)
        return sorted(names)

    def get_profile(self, profile: str | None = None) -> S3Config:
        """Load a profile configuration from disk.

        Args:
            profile: Name of the profile to load. ``None`` returns defaults.

        Returns:
            Parsed configuration for the profile.

        Raises:
            ProfileNotFound:
                If the profile YAML file does not exist.
        """
        if profile is None:
            return S3Config()

        profile_path = self._get_profile_path(profile)

        try:
            with profile_path.open("r") as profile_file:
                profile_data = yaml.safe_load(profile_file) or {}
        except FileNotFoundError as exc:
            raise ProfileNotFound(f"Profile {profile!r} not found.") from exc

        raw_part_size = profile_data.get("min_part_size")
        if raw_part_size is not None:
            profile_data["min_part_size"] = parse_bytes(raw_part_size)

        try:
            return S3Config(**profile_data)
        except ValidationError as exc:
            raise ConfigError(f"Invalid profile {profile!r}: {exc}") from exc

    def create_profile(self, profile: str, config: S3Config | None = None) -> None:
        """Create a new profile.

        Args:
            profile: Name of the profile to create.
            config: Initial values, defaults to an empty configuration.

        Raises:
            ProfileAlreadyExist:
                If a profile with the same name already exists.
        """
        profile_path = self._get_profile_path(profile)
        config = config or S3Config()

        try:
            with profile_path.open("x") as profile_file:
                yaml.safe_dump(config.model_dump(), profile_file)
        except FileExistsError as exc:
            raise ProfileAlreadyExist(f"Profile {profile!r} already exists.") from exc

    def update_profile(self, profile: str, updates: dict[str, Any]) -> S3Config:
        """Update an existing profile with the provided field values.

        Args:
            profile: Name of the profile to update.
            updates: Mapping of field names to new values. Fields with a value of
                ``None`` are ignored and do not overwrite existing values.

        Returns:
            The updated configuration.

        Raises:
            ProfileNotFound:
                If the profile YAML file does not exist.
        """
        profile_path = self._get_profile_path(profile)

        current = self.get_profile(profile)
        filtered_updates = {
            name: value for name, value in updates.items() if value is not None
        }
        new_config = current.model_copy(update=filtered_updates)

        with profile_path.open("w") as profile_file:
            yaml.safe_dump(new_config.model_dump(), profile_file)

        return new_config
