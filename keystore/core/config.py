"""
Configuration management for keystore.
"""

import logging
import os
from functools import lru_cache
from typing import Any, Dict, Optional
import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict
from keystore.models.schemas import MongoDBConfig

logger = logging.getLogger("keystore.config")


class Settings(BaseSettings):
    """Key store settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_prefix="KEYSTORE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Backend selection: mongodb, memory
    backend: str = "mongodb"

    # MongoDB settings
    mongodb_connection_string: str = "mongodb://localhost:27017"
    mongodb_database: str = "kes"
    mongodb_collection: str = "keys"
    mongodb_connect_timeout_ms: int = 10000
    mongodb_server_selection_timeout_ms: int = 10000
    mongodb_ping_on_connect: bool = True

    # Default per-operation deadline in seconds
    operation_timeout: Optional[float] = None

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Observability
    enable_metrics: bool = True

    # Config file path
    config_file: Optional[str] = None


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings."""
    return load_merged_config()


def create_mongodb_config(settings: Settings) -> MongoDBConfig:
    """
    Create MongoDBConfig from Settings.

    Raises:
        pydantic.ValidationError: If a required value is empty or out of range
    """
    return MongoDBConfig(
        connection_string=settings.mongodb_connection_string,
        database=settings.mongodb_database,
        collection=settings.mongodb_collection,
        connect_timeout_ms=settings.mongodb_connect_timeout_ms,
        server_selection_timeout_ms=settings.mongodb_server_selection_timeout_ms,
        ping_on_connect=settings.mongodb_ping_on_connect,
        operation_timeout=settings.operation_timeout,
    )


def load_config_from_file(config_path: str) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file

    Returns:
        Configuration dictionary, empty if the file is missing or unreadable
    """
    if not os.path.exists(config_path):
        return {}

    try:
        with open(config_path, 'r') as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load config file {config_path}: {e}")
        return {}


def get_config_file_paths() -> list[str]:
    """Get list of potential config file paths in order of preference."""
    return [
        os.environ.get("KEYSTORE_CONFIG_FILE", ""),
        "/etc/keystore/config.yaml",
        os.path.expanduser("~/.config/keystore/config.yaml"),
        "./config.yaml"
    ]


def flatten_config(config_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert the nested YAML layout to flat Settings field names.

    Layout::

        keystore:
          backend: mongodb
          mongodb:
            connection_string: mongodb://localhost:27017
            database: kes
            collection: keys
        operation_timeout: 5
        log:
          level: INFO
          format: json
        enable_metrics: true
    """
    flat_config: Dict[str, Any] = {}

    keystore_config = config_data.get("keystore") or {}
    if "backend" in keystore_config:
        flat_config["backend"] = keystore_config["backend"]

    mongodb_config = keystore_config.get("mongodb") or {}
    for key in ["connection_string", "database", "collection", "connect_timeout_ms",
                "server_selection_timeout_ms", "ping_on_connect"]:
        if key in mongodb_config:
            flat_config[f"mongodb_{key}"] = mongodb_config[key]

    log_config = config_data.get("log") or {}
    if "level" in log_config:
        flat_config["log_level"] = log_config["level"]
    if "format" in log_config:
        flat_config["log_format"] = log_config["format"]

    for key in ["operation_timeout", "enable_metrics"]:
        if key in config_data:
            flat_config[key] = config_data[key]

    return flat_config


def load_merged_config(config_file: Optional[str] = None, **overrides: Any) -> Settings:
    """
    Load configuration from multiple sources with precedence:
    1. Explicit overrides (CLI flags)
    2. Environment variables
    3. Configuration file
    4. Defaults
    """
    settings = Settings()

    paths = [config_file] if config_file else get_config_file_paths()
    if settings.config_file and not config_file:
        paths.insert(0, settings.config_file)

    config_data: Dict[str, Any] = {}
    for config_path in paths:
        if config_path and os.path.exists(config_path):
            config_data = load_config_from_file(config_path)
            break

    flat_config = flatten_config(config_data)

    # Environment variables win over the file
    env_keys = {
        name for name in Settings.model_fields
        if f"KEYSTORE_{name.upper()}" in {k.upper() for k in os.environ}
    }
    for key in env_keys:
        flat_config.pop(key, None)

    flat_config.update({k: v for k, v in overrides.items() if v is not None})

    if flat_config:
        settings = Settings(**flat_config)

    return settings
