"""Configuration management for ClawHub Skills."""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from clawhub_skills.exceptions import ConfigurationError


# Paths
DEFAULT_CONFIG_PATH = Path("~/.clawhub/config.yaml").expanduser()
LOCAL_CONFIG_FILENAME = "clawhub.yaml"
DEFAULT_REGISTRY_URL = "https://clawhub.ai"
CONTROL_DIR_NAME = ".clawhub"


class SkillsConfig(BaseModel):
    """Local skill store configuration."""

    dir: str = "./skills"
    auto_load: bool = True


class HubConfig(BaseModel):
    """Remote registry configuration."""

    registry_url: str = DEFAULT_REGISTRY_URL
    timeout_seconds: float = 30.0
    page_size: int = 100
    max_package_bytes: int = 10 * 1024 * 1024
    user_agent: str = "ClawHub Skills/0.1.0"


class CacheConfig(BaseModel):
    """Default freshness windows per cached entity type."""

    catalog_ttl_seconds: float = 60 * 60
    details_ttl_seconds: float = 30 * 60
    search_ttl_seconds: float = 5 * 60


class SyncConfig(BaseModel):
    """Periodic catalog sync configuration."""

    enabled: bool = True
    startup_delay_seconds: float = 5.0
    interval_seconds: float = 60 * 60


class GuidanceConfig(BaseModel):
    """Scoring weights and thresholds for guidance resolution."""

    slug_match_points: int = 10
    name_match_points: int = 8
    description_word_points: int = 1
    min_query_word_length: int = 3
    min_fuzzy_word_length: int = 4
    min_description_word_length: int = 6
    local_strong_threshold: int = 8
    remote_confidence_floor: float = 0.25
    remote_score_scale: float = 30.0
    search_limit: int = 5
    min_query_chars: int = 3
    max_instructions_chars: int = 3500


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"


class Config(BaseSettings):
    """Main configuration for ClawHub Skills."""

    skills: SkillsConfig = Field(default_factory=SkillsConfig)
    hub: HubConfig = Field(default_factory=HubConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    guidance: GuidanceConfig = Field(default_factory=GuidanceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="CLAWHUB_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")

        return cls(**data)

    @classmethod
    def load(cls) -> "Config":
        """Load configuration, preferring env vars over YAML."""
        # Pydantic-settings applies CLAWHUB_* overrides on construction
        return cls.from_yaml()

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def resolved_skills_dir(self, runtime_base: Path | str | None = None) -> Path:
        """Resolve the skills root, anchoring relative paths to runtime base/cwd."""
        raw = Path(self.skills.dir).expanduser()
        if raw.is_absolute():
            return raw.resolve()
        anchor = Path(runtime_base).expanduser().resolve() if runtime_base is not None else Path.cwd().resolve()
        return (anchor / raw).resolve()

    def control_dir(self, runtime_base: Path | str | None = None) -> Path:
        """Hidden directory holding the lock record and cached snapshots."""
        return self.resolved_skills_dir(runtime_base) / CONTROL_DIR_NAME


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
