"""
Centralized Configuration for LearnAI

This module provides the configuration system for the progress engine.
Each section is a pydantic-settings model bound to its own environment
prefix; a YAML or JSON file may supply values for any section, and
environment variables always take precedence over the file.
"""

import os
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type

import yaml
from dotenv import load_dotenv
from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from learnai.common.logger import app_logger

logger = app_logger.getChild("common.config")

CONFIG_FILE_ENV = "LEARNAI_CONFIG_FILE"


class _EnvFirstSettings(BaseSettings):
    """Settings base where environment variables override constructor values."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, dotenv_settings, init_settings, file_secret_settings


class DatabaseConfig(_EnvFirstSettings):
    """Database configuration"""
    model_config = SettingsConfigDict(env_prefix="DB_", extra="ignore", populate_by_name=True)

    url: str = "sqlite+aiosqlite:///./learnai.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    create_schema: bool = True

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


class RedisConfig(_EnvFirstSettings):
    """Redis configuration"""
    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore", populate_by_name=True)

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    use_ssl: bool = False
    connection_timeout: int = 10

    @property
    def connection_string(self) -> str:
        protocol = "rediss" if self.use_ssl else "redis"
        auth = f":{self.password}@" if self.password else ""
        return f"{protocol}://{auth}{self.host}:{self.port}/{self.db}"


class CacheConfig(_EnvFirstSettings):
    """Cache configuration"""
    model_config = SettingsConfigDict(env_prefix="CACHE_", extra="ignore", populate_by_name=True)

    enabled: bool = True
    use_redis: bool = False
    default_ttl: int = 300
    progress_ttl: int = 300
    recommendations_ttl: int = 300
    memory_max_size: int = 10000
    key_prefix: str = "learnai"


class LoggingConfig(_EnvFirstSettings):
    """Logging configuration"""
    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore", populate_by_name=True)

    level: str = "INFO"
    json_format: bool = Field(default=False, validation_alias=AliasChoices("LOG_JSON", "json_format"))
    file_path: Optional[str] = Field(default=None, validation_alias=AliasChoices("LOG_FILE", "file_path"))

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class RetryConfig(_EnvFirstSettings):
    """Retry policy shared by database and cache calls"""
    model_config = SettingsConfigDict(env_prefix="RETRY_", extra="ignore", populate_by_name=True)

    max_retries: int = 3
    base_delay: float = 0.2
    backoff_factor: float = 2.0
    jitter: float = 0.1

    @field_validator('max_retries')
    @classmethod
    def validate_max_retries(cls, v):
        if v < 0:
            raise ValueError("max_retries must not be negative")
        return v


class LearningConfig(_EnvFirstSettings):
    """Tunables of the progress engine"""
    model_config = SettingsConfigDict(env_prefix="LEARNING_", extra="ignore", populate_by_name=True)

    streak_history_days: int = 30
    default_recommendation_limit: int = 5
    max_path_depth: int = 10


class APIConfig(_EnvFirstSettings):
    """API configuration"""
    model_config = SettingsConfigDict(env_prefix="API_", extra="ignore", populate_by_name=True)

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    prefix: str = "/api"
    allow_origins: List[str] = Field(default_factory=lambda: ["*"])


class EnvironmentConfig(_EnvFirstSettings):
    """Environment configuration"""
    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    env: str = "development"

    @field_validator('env')
    @classmethod
    def validate_env(cls, v):
        valid_envs = ['development', 'testing', 'staging', 'production']
        if v.lower() not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of {valid_envs}")
        return v.lower()


class AppConfig(BaseModel):
    """Main application configuration"""
    app_name: str = "LearnAI Progress Engine"
    version: str = "0.1.0"
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    learning: LearningConfig = Field(default_factory=LearningConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)

    @property
    def is_production(self) -> bool:
        return self.environment.env == "production"


SECTIONS: Dict[str, Type[BaseSettings]] = {
    "database": DatabaseConfig,
    "redis": RedisConfig,
    "cache": CacheConfig,
    "logging": LoggingConfig,
    "retry": RetryConfig,
    "learning": LearningConfig,
    "api": APIConfig,
    "environment": EnvironmentConfig,
}


class ConfigLoader:
    """
    Configuration loader for the application.

    Loads configuration from:
    1. Default values
    2. ``.env`` file (python-dotenv)
    3. Config file (YAML or JSON)
    4. Environment variables (highest priority)
    """

    def __init__(self, config_path: Optional[str] = None, env_file: Optional[str] = ".env"):
        self.config_path = config_path or os.environ.get(CONFIG_FILE_ENV)
        self.env_file = env_file
        self._config: Optional[AppConfig] = None

    def load(self) -> AppConfig:
        if self._config is not None:
            return self._config

        if self.env_file and Path(self.env_file).exists():
            load_dotenv(self.env_file, override=False)

        file_config: Dict[str, Any] = {}
        if self.config_path:
            file_config = self._load_from_file(self.config_path)

        sections = {
            name: section_cls(**(file_config.get(name) or {}))
            for name, section_cls in SECTIONS.items()
        }
        top_level = {k: v for k, v in file_config.items() if k not in SECTIONS}
        self._config = AppConfig(**top_level, **sections)
        return self._config

    def _load_from_file(self, path: str) -> Dict[str, Any]:
        path = Path(path)
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return {}

        try:
            with open(path, 'r') as f:
                if path.suffix.lower() in ['.yaml', '.yml']:
                    return yaml.safe_load(f) or {}
                if path.suffix.lower() == '.json':
                    return json.load(f)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            logger.error(f"Error loading config file {path}: {e}")
            return {}

        logger.warning(f"Unsupported config file format: {path.suffix}")
        return {}


_config_loader: Optional[ConfigLoader] = None


def get_config() -> AppConfig:
    """Get the process-wide configuration, loading it on first use."""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader.load()


def reload_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Reload the configuration.

    Args:
        config_path: Path to config file

    Returns:
        Reloaded configuration
    """
    global _config_loader
    _config_loader = ConfigLoader(config_path)
    return _config_loader.load()
