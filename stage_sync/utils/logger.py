# stage_sync/utils/logger.py
import logging
import os
import sys

LEVELS = {"ERROR": 40, "WARN": 30, "INFO": 20, "DEBUG": 10, "NONE": 100}
LOG_FORMAT = "[%(asctime)s][%(levelname)s] %(message)s"

logger = logging.getLogger("stage_sync")


def level_from_name(name: str | None) -> int:
    return LEVELS.get((name or "INFO").upper(), 20)


def configure(level_name: str | None = None, extra_handlers=None) -> logging.Logger:
    """Attach a stdout handler (plus any host handlers, e.g. gunicorn's) once."""
    level = level_from_name(level_name or os.getenv("LOG_LEVEL", "INFO"))
    logger.setLevel(level)

    for h in extra_handlers or []:
        if h not in logger.handlers:
            logger.addHandler(h)

    if not any(getattr(h, "_stage_sync_stdout", False) for h in logger.handlers):
        sh = logging.StreamHandler(sys.stdout)
        sh.setFormatter(logging.Formatter(LOG_FORMAT, "%H:%M:%S"))
        sh._stage_sync_stdout = True
        logger.addHandler(sh)
    return logger


def debug(msg): logger.debug(msg)
def info(msg):  logger.info(msg)
def warn(msg):  logger.warning(msg)
def error(msg): logger.error(msg)
