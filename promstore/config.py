"""Configuration models using Pydantic for validation."""
from typing import Optional, Literal
from pydantic import BaseModel, Field, field_validator
import os


class RedisConfig(BaseModel):
    """Connection settings for the Redis server holding the metrics."""
    url: Optional[str] = None  # Takes precedence over host/port/db when set
    host: str = "127.0.0.1"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    socket_timeout: Optional[float] = 0.1
    socket_connect_timeout: Optional[float] = 0.1


class StorageConfig(BaseModel):
    """Key layout and connection for one metric store."""
    prefix: str = "PROMETHEUS_"
    redis: RedisConfig = Field(default_factory=RedisConfig)

    @field_validator('prefix')
    @classmethod
    def validate_prefix(cls, v):
        """An empty prefix would make wipe_all() clear the whole database."""
        if not v:
            raise ValueError("Storage prefix must not be empty")
        return v


class ServerConfig(BaseModel):
    """HTTP control API configuration."""
    port: int = 9091
    bind_address: str = "0.0.0.0"


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"


class Config(BaseModel):
    """Root configuration model."""
    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    model_config = {"populate_by_name": True}


def load_config(config_path: str) -> Config:
    """Load and validate configuration from YAML file."""
    import yaml

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f) or {}

    # Apply environment variable overrides
    if env_url := os.getenv('REDIS_URL'):
        raw_config.setdefault('storage', {}).setdefault('redis', {})['url'] = env_url

    if env_prefix := os.getenv('PROMSTORE_PREFIX'):
        raw_config.setdefault('storage', {})['prefix'] = env_prefix

    if env_log_level := os.getenv('LOG_LEVEL'):
        raw_config.setdefault('global', {})['log_level'] = env_log_level

    try:
        config = Config(**raw_config)
        return config
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")
