"""Configuration for the logic engine.

Configuration is loaded from:
- environment variables (prefixed with ``LOGIC_ENGINE_``)
- and a local `.env` file (if present)
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from logic_engine.core.logging import configure_logging

DEFAULT_MAX_WORKFLOW_STEPS = 1000


class EngineSettings(BaseSettings):
    """Settings for the logic engine.

    Environment variables:
    - LOGIC_ENGINE_LOG_LEVEL            (optional)
    - LOGIC_ENGINE_LOG_FORMAT           (optional, ``json`` or ``text``)
    - LOGIC_ENGINE_DEBUG                (optional)
    - LOGIC_ENGINE_MAX_WORKFLOW_STEPS   (optional)
    - LOGIC_ENGINE_WORKFLOW_STATE_PATH  (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `EngineSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        description="Root logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug logging for the logic_engine package",
    )

    max_workflow_steps: int = Field(
        default=DEFAULT_MAX_WORKFLOW_STEPS,
        gt=0,
        description=(
            "Hard cap on node executions per workflow instance. Guards against "
            "cyclic graphs. A workflow definition may override it."
        ),
    )

    workflow_state_path: Path = Field(
        default=Path("workflow/state.json"),
        description="Path where the JSON workflow store persists instances and tasks",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOGIC_ENGINE_",
        env_file=".env",
        extra="ignore",
    )

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        configure_logging(self.log_level, self.log_format)

        if self.debug:
            logging.getLogger("logic_engine").setLevel(logging.DEBUG)


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    """Return the process-wide settings, loaded once."""

    return EngineSettings()
