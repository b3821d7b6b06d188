import logging
import sys

from src.config import Config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = None) -> logging.Logger:
    """
    Configures the package logger with a single console handler (stdout).
    Safe to call more than once: existing handlers are replaced, not stacked.
    """
    logger = logging.getLogger("src")
    logger.setLevel(level or Config.get_log_level())

    formatter = logging.Formatter(LOG_FORMAT)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    if logger.hasHandlers():
        logger.handlers.clear()

    logger.addHandler(console_handler)
    return logger
