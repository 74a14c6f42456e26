"""YAML configuration loader layered beneath environment overrides.

``config/config.yaml`` holds static defaults checked into the repo.  Its
``leaderboard:`` section is plugged into pydantic-settings as the lowest
priority source, so environment variables and ``.env`` always win::

    leaderboard:
      request_delay_min: 3.0
      stale_lock_seconds: 3600

A missing file is fine (built-in defaults apply); a file that is not valid
YAML, or values that fail validation, raise :class:`ConfigurationError`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from leaderboard.config.settings import Settings
from leaderboard.utils.errors import ConfigurationError

DEFAULT_CONFIG_PATH = "config/config.yaml"
_SECTION = "leaderboard"


def read_yaml_section(path: str | Path, section: str = _SECTION) -> dict[str, Any]:
    """Return the mapping under *section* in the YAML file at *path*.

    Returns an empty dict when the file does not exist.
    """
    config_path = Path(path)
    if not config_path.exists():
        return {}
    try:
        with open(config_path, encoding="utf-8") as f:
            # safe_load only; config files never need arbitrary objects.
            document = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"{config_path} is not valid YAML: {exc}") from exc

    if not isinstance(document, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping at the top level")
    values = document.get(section) or {}
    if not isinstance(values, dict):
        raise ConfigurationError(f"'{section}' in {config_path} must be a mapping")
    return values


class YamlSectionSource(PydanticBaseSettingsSource):
    """Settings source backed by an already-parsed YAML section."""

    def __init__(self, settings_cls: type[BaseSettings], values: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._values = values

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return self._values.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return {
            name: value
            for name, value in self._values.items()
            if name in self.settings_cls.model_fields and value is not None
        }


def load_settings(path: str | Path = DEFAULT_CONFIG_PATH, **overrides: Any) -> Settings:
    """Build :class:`Settings` from YAML defaults, ``.env``, env vars and *overrides*.

    Args:
        path: Path to the YAML configuration file.
        **overrides: Explicit values taking precedence over every other layer.

    Returns:
        A validated :class:`Settings` instance.
    """
    yaml_values = read_yaml_section(path)

    class _LayeredSettings(Settings):
        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,
            file_secret_settings: PydanticBaseSettingsSource,
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            return (
                init_settings,
                env_settings,
                dotenv_settings,
                YamlSectionSource(settings_cls, yaml_values),
                file_secret_settings,
            )

    try:
        return _LayeredSettings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
