"""Application configuration helpers."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Type


class BaseConfig:
    """Base configuration shared across environments."""

    PROJECT_ROOT = Path(__file__).resolve().parent.parent
    STORE_URL = os.getenv("STORE_URL") or f"sqlite:///{PROJECT_ROOT / 'vista_buena.db'}"
    STORE_LATENCY_MS = int(os.getenv("STORE_LATENCY_MS", "0"))
    NAMESPACE_PREFIX = os.getenv("NAMESPACE_PREFIX", "vista_buena")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class DevelopmentConfig(BaseConfig):
    """Configuration tweaks for local development."""

    DEBUG = True
    TESTING = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")


class TestingConfig(BaseConfig):
    """In-memory store configuration for pytest."""

    DEBUG = False
    TESTING = True
    STORE_URL = "sqlite:///:memory:"
    STORE_LATENCY_MS = 0
    LOG_LEVEL = "WARNING"


class ProductionConfig(BaseConfig):
    """Production configuration."""

    DEBUG = False
    TESTING = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")


def get_config() -> Type[BaseConfig]:
    """Return the configuration class based on VISTA_BUENA_ENV (or FLASK_ENV)."""

    env = (os.getenv("VISTA_BUENA_ENV") or os.getenv("FLASK_ENV") or "development").lower()
    if env == "production":
        return ProductionConfig
    if env == "testing":
        return TestingConfig
    return DevelopmentConfig
