# donorhub/config/__init__.py
from __future__ import annotations

from typing import Dict, Type

from .config import BaseConfig, DevelopmentConfig, ProductionConfig, TestingConfig

CONFIG_BY_NAME: Dict[str, Type[BaseConfig]] = {
    "base": BaseConfig,
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}

__all__ = [
    "CONFIG_BY_NAME",
    "BaseConfig",
    "DevelopmentConfig",
    "ProductionConfig",
    "TestingConfig",
]
