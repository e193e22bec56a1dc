import logging
import os
import sys
from typing import Optional


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class Logger:
    """
    Process-wide logger for pkpublish.

    Every module logs through one named logger so the level taken from
    LOG_LEVEL at startup applies to rule loading, key lookups, publishing and
    metrics alike. Records go to stderr, leaving stdout free for the host.
    """

    _instance: Optional["Logger"] = None

    def __init__(self, log_level: str = "INFO", logger_name: Optional[str] = None):
        """
        Args:
            log_level (str): Initial level name. Defaults to "INFO".
            logger_name (str, optional): Name of the logger. Defaults to
                APP_NAME or "pkpublish".
        """
        self.logger_name = logger_name or os.getenv("APP_NAME", "pkpublish")
        self.logger = logging.getLogger(self.logger_name)
        self.logger.propagate = False

        self.logger.handlers.clear()
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        self.logger.addHandler(handler)

        self.set_level(log_level)

    def set_level(self, log_level: str) -> None:
        """
        Change the level. Unknown names fall back to INFO with a warning.

        Args:
            log_level (str): Level name, in any case.
        """
        name = log_level.upper()
        if name not in LEVELS:
            self.logger.setLevel(logging.INFO)
            self.logger.warning(f"Unknown log level {log_level!r}, using INFO")
            return

        self.logger.setLevel(getattr(logging, name))
        self.logger.debug(f"Logging level set to {name}")

    @classmethod
    def get_logger(cls, log_level: str = "INFO") -> logging.Logger:
        """Return the shared logger, creating it on first use."""
        if cls._instance is None:
            cls._instance = Logger(log_level=log_level)
        return cls._instance.logger

    @classmethod
    def update_level(cls, log_level: str) -> None:
        if cls._instance is None:
            cls.get_logger(log_level=log_level)
        else:
            cls._instance.set_level(log_level)


logger = Logger.get_logger()
