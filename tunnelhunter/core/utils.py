"""
Core utilities and helper functions.

This module contains logging setup and small filesystem helpers used
throughout TunnelHunter.
"""

import logging
import os
import sys
from typing import Optional

from colorama import Fore, Style, init

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """Formatter with colors for different log levels."""

    FORMATS = {
        logging.DEBUG: Fore.CYAN + LOG_FORMAT + Style.RESET_ALL,
        logging.INFO: Fore.GREEN + LOG_FORMAT + Style.RESET_ALL,
        logging.WARNING: Fore.YELLOW + LOG_FORMAT + Style.RESET_ALL,
        logging.ERROR: Fore.RED + LOG_FORMAT + Style.RESET_ALL,
        logging.CRITICAL: Fore.RED + Style.BRIGHT + LOG_FORMAT + Style.RESET_ALL,
    }

    def format(self, record):
        log_fmt = self.FORMATS.get(record.levelno, LOG_FORMAT)
        formatter = logging.Formatter(log_fmt, datefmt=LOG_DATEFMT)
        # Clear the status line before writing over it.
        return "\r\033[K" + formatter.format(record)


def setup_logging(log_file: Optional[str] = None, verbose: bool = False):
    """Setup colored console logging and an optional plain log file."""
    init(autoreset=True)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(ColoredFormatter())

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.addHandler(console_handler)

    if log_file:
        try:
            ensure_directory(os.path.dirname(log_file))
            file_handler = logging.FileHandler(log_file, encoding="utf-8", mode="a")
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(logging.Formatter(
                "%(asctime)s | %(levelname)-7s | %(message)s", datefmt=LOG_DATEFMT
            ))
            root.addHandler(file_handler)
        except OSError as e:
            root.warning(f"File logging disabled: {e}")

    # Reduce noise from external libraries
    logging.getLogger("urllib3.connectionpool").setLevel(logging.ERROR)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def ensure_directory(path: str) -> str:
    """Create ``path`` if needed and return it."""
    if path:
        os.makedirs(path, exist_ok=True)
    return path
