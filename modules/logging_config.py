"""
Centralized logging configuration for the Settlement persistence layer.
"""

import functools
import logging
import logging.handlers
import os
import sys
from typing import Optional

LOG_FORMAT = '[%(asctime)s] %(levelname)-8s %(name)-20s: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# ANSI codes for console output
RESET = '\033[0m'
LEVEL_COLORS = {
    logging.DEBUG: '\033[90m',
    logging.INFO: '\033[94m',
    logging.WARNING: '\033[93m',
    logging.ERROR: '\033[91m',
    logging.CRITICAL: '\033[1;31m',
}


class ColoredFormatter(logging.Formatter):
    """Formatter that colors each console line by its level."""

    def format(self, record):
        line = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        if color is None:
            return line
        return f"{color}{line}{RESET}"


class SettlementLogger:
    """Centralized logging configuration for all Settlement modules."""

    _instance = None
    _loggers = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(SettlementLogger, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._initialized = True
        self.log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
        self.logs_dir = os.getenv('LOG_DIR', 'logs')
        os.makedirs(self.logs_dir, exist_ok=True)

        self._configure_root_logger()

    def _rotating_handler(self, filename: str, max_bytes: int, backups: int) -> logging.Handler:
        handler = logging.handlers.RotatingFileHandler(
            filename=os.path.join(self.logs_dir, filename),
            maxBytes=max_bytes,
            backupCount=backups,
            encoding='utf-8'
        )
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        return handler

    def _configure_root_logger(self):
        """Install the console and settlement.log handlers on the root logger."""
        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)

        # Only replace handlers we installed ourselves; test runners add their own
        for handler in list(root_logger.handlers):
            if getattr(handler, '_settlement', False):
                root_logger.removeHandler(handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, self.log_level, logging.INFO))
        if sys.stdout.isatty() and not os.getenv('NO_COLOR'):
            console_handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        else:
            console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

        main_file_handler = self._rotating_handler('settlement.log', 50*1024*1024, 5)

        for handler in (console_handler, main_file_handler):
            handler._settlement = True
            root_logger.addHandler(handler)

    def get_logger(self, name: str, log_file: Optional[str] = None) -> logging.Logger:
        """
        Get a logger instance for a specific module.

        Args:
            name: Logger name, dotted under ``settlement``
            log_file: Optional extra log file for this logger's records
        """
        if name in self._loggers:
            return self._loggers[name]

        logger = logging.getLogger(name)
        logger.setLevel(logging.DEBUG)
        if log_file:
            logger.addHandler(self._rotating_handler(log_file, 10*1024*1024, 3))

        self._loggers[name] = logger
        return logger


def get_logger(name: str, log_file: Optional[str] = None) -> logging.Logger:
    """Convenience function to get a logger."""
    return SettlementLogger().get_logger(name, log_file)


def log_function_call(logger: logging.Logger):
    """Decorator that logs entry to, and failures of, the wrapped call."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger.debug(f"Calling {func.__qualname__}")
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(f"{func.__qualname__} failed: {e}")
                raise
            logger.debug(f"{func.__qualname__} completed")
            return result

        return wrapper
    return decorator


class DatabaseLogger:
    """Logger for statements, connection events and driver errors."""

    # Statements whose parameters carry a password
    SENSITIVE_MARKERS = ('password',)

    def __init__(self):
        self.logger = get_logger('settlement.database', 'database.log')

    def log_query(self, query: str, params: tuple = None):
        """Log a statement. Parameters of password statements are masked."""
        if params:
            if any(marker in query.lower() for marker in self.SENSITIVE_MARKERS):
                params = tuple('***' for _ in params)
            self.logger.debug(f"SQL Query: {query} | Params: {params}")
        else:
            self.logger.debug(f"SQL Query: {query}")

    def log_connection(self, operation: str):
        self.logger.debug(f"Database connection: {operation}")

    def log_error(self, operation: str, error: Exception):
        self.logger.error(f"Database error in {operation}: {error}", exc_info=True)
