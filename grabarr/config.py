"""Configuration management with YAML and environment variables."""
import os
from pathlib import Path
from typing import Optional, List
import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProwlarrConfig(BaseModel):
    url: str
    api_key: str
    timeout: float = 30.0


class QBittorrentConfig(BaseModel):
    url: str
    username: str
    password: str
    movie_category: str = "grabarr-movies"
    series_category: str = "grabarr-tv"


class SearchConfig(BaseModel):
    # Some indexers answer empty on a cold first query
    max_attempts: int = 3
    retry_delay_seconds: float = 1.5
    timeout_seconds: float = 30.0
    limit: int = 100
    movie_category: int = 2000
    series_category: int = 5000


class MonitoringConfig(BaseModel):
    default_check_interval_minutes: int = 60
    min_check_interval_minutes: int = 15
    entity_delay_seconds: float = 1.0
    episode_delay_seconds: float = 3.0
    startup_delay_seconds: float = 10.0
    submit_timeout_seconds: float = 30.0
    stalled_download_minutes: int = 1440


class WatcherConfig(BaseModel):
    default_interval_seconds: int = 30
    min_interval_seconds: int = 10
    stability_wait_seconds: float = 2.0
    recent_files_limit: int = 20


class RenameConfig(BaseModel):
    default_interval_minutes: int = 60
    min_interval_minutes: int = 15


class LibraryConfig(BaseModel):
    min_movie_size_mb: int = 50
    min_episode_size_mb: int = 20
    max_depth: int = 3


class SchedulerConfig(BaseModel):
    enabled: bool = True
    global_sweep_minutes: int = 360
    timezone: str = "UTC"


class DefaultsConfig(BaseModel):
    """Per-user settings used until the user saves their own."""
    movie_file_format: str = "{Movie Title} ({Release Year})"
    series_file_format: str = (
        "{Series Title}/Season {season:00}/{Series Title} - S{season:00}E{episode:00} - {Episode Title}"
    )
    quality_profile: str = "any"
    auto_download: bool = True
    auto_rename: bool = False
    watcher_auto_approve: bool = False


class AppConfig(BaseModel):
    data_dir: str = "/data"
    log_level: str = "INFO"


class Config(BaseSettings):
    prowlarr: Optional[ProwlarrConfig] = None
    qbittorrent: Optional[QBittorrentConfig] = None
    search: SearchConfig = Field(default_factory=SearchConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    rename: RenameConfig = Field(default_factory=RenameConfig)
    library: LibraryConfig = Field(default_factory=LibraryConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    app: AppConfig = Field(default_factory=AppConfig)

    model_config = SettingsConfigDict(env_file=".env", env_nested_delimiter="__")

    @classmethod
    def load_from_yaml(cls, yaml_path: str) -> "Config":
        """Load configuration from YAML file, override with env vars."""
        config_path = Path(yaml_path)
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {yaml_path}\n"
                f"Please create config/config.yaml from config.example.yaml\n"
                f"Make sure the volume is mounted: -v ./config:/config:ro"
            )

        with open(config_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f) or {}

        # Credentials may come from the environment instead of the file
        for key in ["prowlarr", "qbittorrent"]:
            section = yaml_data.get(key)
            if not isinstance(section, dict):
                continue
            for subkey in list(section.keys()):
                env_value = os.getenv(f"{key.upper()}__{subkey.upper()}")
                if env_value:
                    section[subkey] = env_value

        return cls(**yaml_data)


# Global config instance (initialized in main.py)
config: Optional[Config] = None


def get_config() -> Config:
    """Get the global config instance."""
    if config is None:
        raise RuntimeError("Config not initialized. Call init_config() first.")
    return config


def init_config(config_path: str = "/config/config.yaml") -> Config:
    """Initialize global config from YAML file."""
    global config
    config = Config.load_from_yaml(config_path)
    return config


def candidate_config_paths() -> List[str]:
    """Paths tried in order when looking for the config file."""
    return [
        os.getenv("CONFIG_PATH", "/config/config.yaml"),
        "/config/config.yaml",
        "./config/config.yaml",
        os.path.join(os.path.dirname(__file__), "..", "config", "config.yaml"),
    ]
