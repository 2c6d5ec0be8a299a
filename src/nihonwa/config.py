"""Application configuration using pydantic-settings."""

import functools
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


def _find_project_root() -> Path:
    """Find project root by locating pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path(__file__).resolve().parent.parent.parent


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from settings.yaml."""

    def get_field_value(self, field_name: str) -> tuple[Any, str, bool]:
        """Not used - we implement __call__ instead."""
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        """Load settings from YAML file."""
        yaml_path = _find_project_root() / "config" / "settings.yaml"
        if not yaml_path.exists():
            return {}

        with open(yaml_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        return flatten_settings(data)


def flatten_settings(data: dict) -> dict[str, Any]:
    """Flatten the nested YAML layout onto Settings field names."""
    flattened = {}
    if 'server' in data:
        flattened['host'] = data['server'].get('host')
        flattened['port'] = data['server'].get('port')
    if 'storage' in data:
        flattened['data_dir'] = data['storage'].get('data_dir')
        flattened['storage_key'] = data['storage'].get('key')
    if 'lessons' in data:
        lessons = data['lessons']
        flattened['lesson_pass_percentage'] = lessons.get('pass_percentage')
        flattened['xp_per_percent'] = lessons.get('xp_per_percent')
    if 'mastery' in data:
        mastery = data['mastery']
        flattened['grammar_pass_percentage'] = mastery.get('grammar_pass_percentage')
        flattened['reading_pass_percentage'] = mastery.get('reading_pass_percentage')
        flattened['grammar_patterns_per_level'] = mastery.get('grammar_patterns_per_level')
        flattened['reading_passages_per_level'] = mastery.get('reading_passages_per_level')

    # Remove None values
    return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_prefix="NIHONWA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)

    # Storage
    data_dir: Path | None = Field(default=None)
    storage_key: str = Field(default="nihonwa-storage")

    # Lessons
    lesson_pass_percentage: float = Field(default=70.0)
    xp_per_percent: int = Field(default=10)

    # Mastery
    grammar_pass_percentage: float = Field(default=80.0)
    reading_pass_percentage: float = Field(default=80.0)
    grammar_patterns_per_level: int = Field(default=10, gt=0)
    reading_passages_per_level: int = Field(default=10, gt=0)

    # Paths
    project_root: Path = Field(default_factory=_find_project_root)

    @property
    def storage_dir(self) -> Path:
        d = self.data_dir or self.project_root / "data" / "storage"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def content_dir(self) -> Path:
        d = (self.data_dir or self.project_root / "data") / "content"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings sources to include YAML file.

        Priority order (highest to lowest):
        1. init_settings (arguments passed to Settings())
        2. env_settings (environment variables)
        3. dotenv_settings (.env file)
        4. YamlSettingsSource (settings.yaml)
        5. file_secret_settings
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )


@functools.lru_cache
def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()
