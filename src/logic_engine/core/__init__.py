"""Core package initialization."""

from logic_engine.core.config import EngineSettings, get_settings
from logic_engine.core.logging import configure_logging

__all__ = [
    "EngineSettings",
    "configure_logging",
    "get_settings",
]
