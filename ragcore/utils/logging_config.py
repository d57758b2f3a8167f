"""
Centralized logging configuration for the application.
Provides consistent logging setup with proper file paths and rotation.
"""

import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def setup_logger(
    module_name: str,
    level: int = logging.INFO,
    log_dir: Optional[str] = None
) -> logging.Logger:
    """
    Configure a logger with console and rotating file handlers.

    Args:
        module_name: Name of the logger; also names the log file
        level: Logging level for the logger and both handlers
        log_dir: Directory for log files, defaults to ``LOG_DIR`` or ./logs

    Returns:
        Configured logger instance
    """
    log_dir = log_dir or os.getenv("LOG_DIR", "logs")
    os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger(module_name)
    logger.setLevel(level)

    # Clear existing handlers to avoid duplicates when reconfiguring
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    log_file = os.path.join(log_dir, f"{module_name.replace('.', '_')}.log")
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10*1024*1024,  # 10MB
        backupCount=5
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    logger.debug(f"Logger initialized. Log file: {log_file}")

    return logger
