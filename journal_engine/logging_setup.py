"""Loguru sink configuration for processes that embed the engine."""

import os
import sys
from typing import Optional

from loguru import logger

from journal_engine.config import EngineSettings


def configure_logging(settings: Optional[EngineSettings] = None) -> None:
    """
    Replace loguru's default sink with the engine's sinks.

    stderr always receives records at the configured level. When a log
    directory is configured, a daily-rotated file sink is added as well.
    """
    settings = settings or EngineSettings.from_env()

    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)

    if settings.log_dir:
        os.makedirs(settings.log_dir, exist_ok=True)
        logger.add(
            os.path.join(settings.log_dir, "engine_{time}.log"),
            rotation="1 day",
            retention="7 days",
            level=settings.log_level,
        )

    logger.debug(
        f"Logging configured: level={settings.log_level} dir={settings.log_dir or '-'}"
    )
