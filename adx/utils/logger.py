"""
Centralized logging configuration for ADX.

All exchange loggers live under the "adx" namespace (adx.access,
adx.batch, adx.bridge, adx.oracle, adx.storage.*). Console output goes to
stderr so command output on stdout (e.g. `adx config`) stays parseable.

Library use gets a default INFO console handler on first `get_logger`.
The CLI then reconfigures from ExchangeConfig with `force=True`.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

import colorlog

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE = "adx.log"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


class _StderrHandler(colorlog.StreamHandler):
    """Console handler bound to the current sys.stderr at emit time."""

    @property
    def stream(self):
        return sys.stderr

    @stream.setter
    def stream(self, value):
        pass


def parse_level(level: Union[int, str]) -> int:
    """Accept a logging level as int or name ("debug", "INFO", ...)."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


class ADXLogger:
    """Centralized logger for ADX components"""

    _initialized = False
    _log_file: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: Union[int, str] = logging.INFO,
        log_dir: Optional[Union[str, Path]] = None,
        log_to_file: bool = False,
        force: bool = False,
    ):
        """
        Setup logging configuration.

        Args:
            level: Logging level, as int or name
            log_dir: Directory for the log file. If None, uses ./logs
            log_to_file: Also write plain-text logs to <log_dir>/adx.log
            force: Replace an existing configuration
        """
        if cls._initialized and not force:
            return

        level = parse_level(level)

        root_logger = logging.getLogger("adx")
        root_logger.setLevel(level)
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

        console_handler = _StderrHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(colorlog.ColoredFormatter(
            "%(log_color)s" + LOG_FORMAT.replace(" %(message)s", "%(reset)s %(message)s"),
            datefmt=DATE_FORMAT,
            log_colors=LOG_COLORS,
        ))
        root_logger.addHandler(console_handler)

        cls._log_file = None
        if log_to_file:
            log_path = Path(log_dir) if log_dir else Path("logs")
            log_path.mkdir(parents=True, exist_ok=True)
            cls._log_file = log_path / LOG_FILE

            file_handler = logging.FileHandler(cls._log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
            root_logger.addHandler(file_handler)

        cls._initialized = True

    @classmethod
    def log_file(cls) -> Optional[Path]:
        """Path of the active log file, if file logging is on."""
        return cls._log_file

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Get a logger for a specific subsystem.

        Args:
            name: Subsystem name (e.g., 'batch', 'bridge', 'storage.events')

        Returns:
            Logger instance
        """
        if not cls._initialized:
            cls.setup()

        return logging.getLogger(f"adx.{name}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific subsystem"""
    return ADXLogger.get_logger(name)


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[Union[str, Path]] = None,
    log_to_file: bool = False,
    force: bool = True,
):
    """(Re)configure ADX logging. Explicit calls replace the default setup."""
    ADXLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file, force=force)
