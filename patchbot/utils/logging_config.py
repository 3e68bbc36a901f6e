import logging
import sys
import os
from datetime import datetime

# Engine stdout/stderr is forwarded here line by line while it runs
ENGINE_LOGGER_NAME = "patchbot.engine"


class ColoredFormatter(logging.Formatter):
    """Custom formatter to add colors to console output."""

    cyan = "\x1b[36m"
    green = "\x1b[32m"
    yellow = "\x1b[33m"
    red = "\x1b[31m"
    bold_red = "\x1b[31;1m"
    grey = "\x1b[38;5;245m"
    reset = "\x1b[0m"

    format_str = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s"
    engine_format_str = "%(asctime)s | ENGINE   | %(message)s"

    FORMATS = {
        logging.DEBUG: cyan + format_str + reset,
        logging.INFO: green + format_str + reset,
        logging.WARNING: yellow + format_str + reset,
        logging.ERROR: red + format_str + reset,
        logging.CRITICAL: bold_red + format_str + reset
    }

    def format(self, record):
        if record.name == ENGINE_LOGGER_NAME:
            log_fmt = self.grey + self.engine_format_str + self.reset
        else:
            log_fmt = self.FORMATS.get(record.levelno, self.format_str)
        formatter = logging.Formatter(log_fmt, datefmt="%Y-%m-%d %H:%M:%S")
        return formatter.format(record)


def get_engine_logger() -> logging.Logger:
    return logging.getLogger(ENGINE_LOGGER_NAME)


def setup_logging(level=logging.INFO, log_dir: str = "logs"):
    """Setup centralized logging configuration."""
    root_logger = logging.getLogger()

    # Clear existing handlers to prevent duplicate logs
    if root_logger.handlers:
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

    root_logger.setLevel(level)

    # 1. Console handler (using stderr for uvicorn compatibility)
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(ColoredFormatter())
    root_logger.addHandler(console_handler)

    # 2. File handler for persistence, one file per day
    os.makedirs(log_dir, exist_ok=True)
    file_handler = logging.FileHandler(
        os.path.join(log_dir, f"patchbot_{datetime.now().strftime('%Y%m%d')}.log")
    )
    file_fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    file_handler.setFormatter(file_fmt)
    root_logger.addHandler(file_handler)

    # Force propagation for all relevant internal loggers
    for logger_name in ["patchbot", ENGINE_LOGGER_NAME, "uvicorn", "uvicorn.error", "uvicorn.access", "main"]:
        l = logging.getLogger(logger_name)
        l.setLevel(level)
        l.propagate = True

    root_logger.info("Logging initialized (console + file in %s).", log_dir)
