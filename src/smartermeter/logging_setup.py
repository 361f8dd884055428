"""Logging configuration for the daemon"""
import sys
import logging

from pythonjsonlogger import jsonlogger

LOG_FORMAT = '%(asctime)s %(name)s %(levelname)s %(message)s'


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Logger:
    """
    Configure the root logger with a single stdout handler

    Args:
        level: Logging level name
        fmt: "json" for JSON lines, "text" for plain text
    """
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    if fmt == "text":
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    else:
        formatter = jsonlogger.JsonFormatter(LOG_FORMAT, timestamp=True)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger
