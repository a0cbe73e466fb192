"""Process-wide logging setup for the bridge."""

import logging
import os
import sys

from pydantic import BaseModel

QUIET_LOGGERS = ("anthropic", "httpx", "httpcore", "uvicorn.access")


def _env_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


class LogConfig(BaseModel):
    """Root handler settings, usually derived from Settings.log_level."""

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
    date_format: str = "%H:%M:%S"
    quiet_level: str = "WARNING"


def setup_logging(config: LogConfig | None = None) -> None:
    """Install a single stdout handler on the root logger."""
    config = config or LogConfig(level=_env_level())
    root_level = logging.getLevelName(config.level.upper())
    if not isinstance(root_level, int):
        root_level = logging.INFO

    logging.basicConfig(
        level=root_level,
        format=config.format,
        datefmt=config.date_format,
        stream=sys.stdout,
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(config.quiet_level)


def get_logger(name: str, level: str | None = None) -> logging.Logger:
    """Return the named logger with LOG_LEVEL applied unless `level` overrides it."""
    logger = logging.getLogger(name)
    logger.setLevel(level.upper() if level else _env_level())
    return logger
