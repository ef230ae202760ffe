"""Configuration loading with pydantic-settings.

Supports loading configuration from multiple sources with precedence:
1. Direct kwargs (highest priority)
2. Environment variables (QUARRY__SECTION__KEY)
3. Data-dir config (<data_dir>/config.yaml)
4. Global config (~/.config/quarry/config.yaml)
5. Built-in defaults (lowest priority)
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from quarry.config.models import (
    ChunkingConfig,
    EmbeddingConfig,
    LoggingConfig,
    QuarryConfig,
    ReindexConfig,
    SearchConfig,
    StorageConfig,
)
from quarry.core.errors import ConfigError

GLOBAL_CONFIG_PATH = Path("~/.config/quarry/config.yaml").expanduser()


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class _YamlSource(PydanticBaseSettingsSource):
    """Settings source that reads from pre-loaded YAML config."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(
        self,
        field: Any,  # noqa: ARG002
        field_name: str,
    ) -> tuple[Any, str, bool]:
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return self._yaml_config


def _make_settings_class(yaml_config: dict[str, Any]) -> type[BaseSettings]:
    """Create a Settings class with instance-based YAML source (thread-safe)."""

    class QuarrySettings(BaseSettings):
        """Root config. Env vars: QUARRY__LOGGING__LEVEL, QUARRY__SEARCH__DEFAULT_LIMIT, etc."""

        model_config = SettingsConfigDict(
            env_prefix="QUARRY__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        storage: StorageConfig = StorageConfig()
        embedding: EmbeddingConfig = EmbeddingConfig()
        chunking: ChunkingConfig = ChunkingConfig()
        search: SearchConfig = SearchConfig()
        reindex: ReindexConfig = ReindexConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > yaml files
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return QuarrySettings


def load_config(data_dir: Path | None = None, **kwargs: Any) -> QuarryConfig:
    """Load config: defaults < global yaml < data-dir yaml < env vars < kwargs.

    Args:
        data_dir: Directory holding the stores and an optional config.yaml.
                  When given, it also becomes ``storage.data_dir`` unless
                  overridden by kwargs or env.
        **kwargs: Override values (highest precedence).

    Returns:
        Fully resolved configuration object.

    Raises:
        ConfigError: On invalid YAML syntax or validation errors.
    """
    yaml_config = _load_yaml(GLOBAL_CONFIG_PATH)

    if data_dir is not None:
        local = _load_yaml(data_dir / "config.yaml")
        local = _deep_merge({"storage": {"data_dir": str(data_dir)}}, local)
        yaml_config = _deep_merge(yaml_config, local)

    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        raise ConfigError.invalid_value(field, err.get("input"), err["msg"]) from e
    return QuarryConfig.model_validate(settings.model_dump())
