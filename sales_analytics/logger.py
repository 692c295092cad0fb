import logging
import sys
from logging.handlers import RotatingFileHandler
from . import settings

# Chatty third-party loggers kept at WARNING so report output stays readable.
QUIET_LOGGERS = ("urllib3", "asyncio")


class ConsoleFormatter(logging.Formatter):
    """Plain messages for INFO and below; warnings and errors get their level name."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if record.levelno >= logging.WARNING:
            return f"[{record.levelname}] {message}"
        return message


def setup_logger(name: str | None = None, log_level: int | str | None = None) -> logging.Logger:
    """
    Configures the root logger (or `name`) for the reports and the live feed:
    console on stdout plus a rotating file under LOG_DIR. Calling it again is
    a no-op.
    """
    level = log_level if log_level is not None else settings.LOG_LEVEL
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.hasHandlers():
        return logger

    # 1. Console
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ConsoleFormatter("%(message)s"))
    logger.addHandler(console_handler)

    # 2. File (5 MB x 3)
    settings.LOG_DIR.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        settings.LOG_DIR / settings.LOG_FILENAME,
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logger.addHandler(file_handler)

    for noisy in QUIET_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger
