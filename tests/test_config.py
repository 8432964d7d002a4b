#!/usr/bin/env python3
"""Tests for configuration loading."""
import pytest

from promstore.config import Config, StorageConfig, load_config


def write_config(tmp_path, text):
    path = tmp_path / "promstore.yaml"
    path.write_text(text)
    return str(path)


def test_defaults():
    config = Config()
    assert config.storage.prefix == "PROMETHEUS_"
    assert config.storage.redis.port == 6379
    assert config.global_.log_level == "INFO"


def test_load_yaml(tmp_path, monkeypatch):
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("PROMSTORE_PREFIX", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    path = write_config(tmp_path, """
global:
  log_level: DEBUG
storage:
  prefix: APP_
  redis:
    host: redis.internal
    db: 3
server:
  port: 8080
""")
    config = load_config(path)
    assert config.global_.log_level == "DEBUG"
    assert config.storage.prefix == "APP_"
    assert config.storage.redis.host == "redis.internal"
    assert config.storage.redis.db == 3
    assert config.server.port == 8080


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("REDIS_URL", "redis://cache:6380/1")
    monkeypatch.setenv("PROMSTORE_PREFIX", "ENV_")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    config = load_config(write_config(tmp_path, ""))
    assert config.storage.redis.url == "redis://cache:6380/1"
    assert config.storage.prefix == "ENV_"
    assert config.global_.log_level == "WARNING"


def test_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config("/nonexistent/promstore.yaml")


def test_invalid_config_is_reported(tmp_path, monkeypatch):
    monkeypatch.delenv("PROMSTORE_PREFIX", raising=False)
    path = write_config(tmp_path, "storage:\n  prefix: ''\n")
    with pytest.raises(ValueError, match="Configuration validation failed"):
        load_config(path)


def test_empty_prefix_rejected():
    with pytest.raises(ValueError):
        StorageConfig(prefix="")
