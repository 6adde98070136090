import logging
from typing import Dict

import coloredlogs

_loggers: Dict[str, logging.Logger] = {}


def _log_format(entity_name: str, level: int) -> str:
    if level == logging.DEBUG:
        return f'[%(asctime)s.%(msecs)03d][%(levelname)s][{entity_name}]: %(message)s'
    return f'[%(asctime)s][%(levelname)s][{entity_name}]: %(message)s'


def create_logger(name: str, entity_name: str, level=logging.INFO) -> logging.Logger:
    """Creates and configures a named logger with colored output."""
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    if not logger.handlers:
        coloredlogs.install(level=level, logger=logger, fmt=_log_format(entity_name, level))
    _loggers[name] = logger
    return logger


def set_log_level(level: int) -> None:
    """
    Applies a new level to every logger made by create_logger. Module loggers
    are created at import time, before the app reads APP_LOG_LEVEL.
    """
    for logger in _loggers.values():
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)
