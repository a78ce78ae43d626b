"""
Logging infrastructure for the arena.

Logs organized by type:
  - matches_<timestamp>.log: match engine and turn resolution
  - arenas_<timestamp>.log: scheduler, lobbies, matchmaker
  - gateway_<timestamp>.log: decision provider calls and cooldowns
  - arena_<timestamp>.log: everything else
"""

import logging
import logging.handlers
import os
import sys
from datetime import datetime
from typing import Dict


class ArenaLogManager:
    """Manages logging for arena components."""

    LOG_DIR = "logs/arena"

    SIMPLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    DETAILED_FORMAT = "%(asctime)s - %(name)s - [%(filename)s:%(lineno)d] - %(levelname)s - %(message)s"

    FILE_PREFIXES = {
        "match": "matches",
        "arena": "arenas",
        "gateway": "gateway",
    }

    _loggers: Dict[str, logging.Logger] = {}
    _initialized = False

    @classmethod
    def initialize(cls) -> None:
        if cls._initialized:
            return
        os.makedirs(cls.LOG_DIR, exist_ok=True)
        cls._initialized = True

    @classmethod
    def get_logger(
        cls,
        name: str,
        log_type: str = "general",
        level: int = logging.INFO,
    ) -> logging.Logger:
        """
        Get or create a logger for a component.

        Args:
            name: Logger name (e.g., "arena.scheduler")
            log_type: Type of log ('match', 'arena', 'gateway', 'general')
            level: Logging level

        Returns:
            Configured logger instance
        """
        cls.initialize()

        logger_key = f"{name}_{log_type}"
        if logger_key in cls._loggers:
            return cls._loggers[logger_key]

        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.handlers.clear()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(logging.Formatter(cls.SIMPLE_FORMAT))
        logger.addHandler(console_handler)

        prefix = cls.FILE_PREFIXES.get(log_type, "arena")
        filename = f"{prefix}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        # 10MB per file, keep last 5
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(cls.LOG_DIR, filename),
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(cls.DETAILED_FORMAT))
        logger.addHandler(file_handler)

        cls._loggers[logger_key] = logger
        return logger

    @classmethod
    def reset(cls) -> None:
        for logger in cls._loggers.values():
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)
        cls._loggers.clear()
        cls._initialized = False


def get_logger(
    name: str,
    log_type: str = "general",
    level: int = logging.INFO,
) -> logging.Logger:
    """Convenience wrapper around ArenaLogManager.get_logger."""
    return ArenaLogManager.get_logger(name, log_type, level)
