"""Logging utilities."""

import logging

from sfxdupe.core.config import LoggingConfig


def setup_logging(config: LoggingConfig) -> None:
    """Setup application logging.

    Records go both to ``config.file`` and to stderr.

    Args:
        config: Logging configuration

    Raises:
        ValueError: If the level name is unknown
    """
    level = logging.getLevelName(config.level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {config.level}")

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.FileHandler(config.file), logging.StreamHandler()],
        force=True,
    )
    logging.getLogger(__name__).debug("[Logging] Level %s, file %s", config.level, config.file)
