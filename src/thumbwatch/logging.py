import logging
import os

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_LEVEL_ENV = "THUMBWATCH_LOG_LEVEL"

_PACKAGE = "thumbwatch"


def _resolve_level(level_name: str, fallback: int) -> int:
    level = logging.getLevelName(level_name.upper())
    return level if isinstance(level, int) else fallback


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)

    # Quiet for library use, chatty for the CLI.
    # THUMBWATCH_LOG_LEVEL wins over both.
    default_level = logging.INFO if name.endswith('.cli') else logging.WARNING
    env_level = os.getenv(LOG_LEVEL_ENV)
    level = _resolve_level(env_level, default_level) if env_level else default_level

    logger.setLevel(level)
    return logger


def set_log_level(level_name: str) -> None:
    """Apply a level to every thumbwatch logger created so far (CLI --log-level)."""
    level = _resolve_level(level_name, logging.INFO)
    for name in list(logging.root.manager.loggerDict):
        if name == _PACKAGE or name.startswith(_PACKAGE + "."):
            logging.getLogger(name).setLevel(level)
