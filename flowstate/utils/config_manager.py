"""Configuration management utilities."""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from ..core.constants import DATA_DIR_ENV_VAR, DATA_DIR_NAME, SETTINGS_FILE_NAME
from ..models.config import Settings


def default_data_dir() -> Path:
    """Data directory from FLOWSTATE_HOME, else ~/.flowstate."""
    override = os.environ.get(DATA_DIR_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / DATA_DIR_NAME


class ConfigManager:
    """Manages engine settings stored as YAML."""

    def __init__(self, data_dir: Optional[Path] = None):
        """Initialize config manager."""
        self.data_dir = Path(data_dir) if data_dir else default_data_dir()
        self.settings_file = self.data_dir / SETTINGS_FILE_NAME

    def load_settings(self) -> Settings:
        """Load settings, returning defaults when no file exists."""
        if not self.settings_file.exists():
            return Settings()

        try:
            with open(self.settings_file, 'r') as f:
                data = yaml.safe_load(f) or {}
            return Settings.model_validate(data)
        except (yaml.YAMLError, ValidationError) as e:
            raise ValueError(f"Invalid settings file: {e}")

    def save_settings(self, settings: Settings) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        with open(self.settings_file, 'w') as f:
            yaml.safe_dump(settings.model_dump(), f, default_flow_style=False, sort_keys=True)

    def update(self, key: str, value: Any) -> Settings:
        """Set one setting from a string or typed value and save.

        Raises:
            KeyError: If ``key`` is not a setting
            ValueError: If the value does not fit the setting's type
        """
        settings = self.load_settings()
        if key not in Settings.model_fields:
            raise KeyError(key)

        data = settings.model_dump()
        data[key] = yaml.safe_load(value) if isinstance(value, str) else value
        try:
            updated = Settings.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Invalid value for {key}: {e}")

        self.save_settings(updated)
        return updated
