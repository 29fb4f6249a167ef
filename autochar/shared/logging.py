"""
Shared logging configuration.
Provides consistent logging format and behavior across the backend.
"""
import logging
import sys
from typing import Optional

from .config import base_config


def setup_logging(
    service_name: str,
    log_level: Optional[str] = None,
    log_format: Optional[str] = None
) -> logging.Logger:
    """
    Set up logging for a service component.

    Args:
        service_name: Name of the component for log identification
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Custom log format string

    Returns:
        Configured logger instance
    """
    log_level = log_level or base_config.log_level
    log_format = log_format or base_config.log_format

    logger = logging.getLogger(service_name)
    logger.setLevel(getattr(logging, log_level.upper()))

    # Clear existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level.upper()))
    console_handler.setFormatter(logging.Formatter(log_format))
    logger.addHandler(console_handler)

    # Prevent duplicate logs
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with consistent configuration.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


class ServiceLogger:
    """
    Service logger wrapper with common log patterns.
    """

    def __init__(self, service_name: str):
        self.logger = setup_logging(service_name)
        self.service_name = service_name

    def service_start(self, port: int):
        """Log service startup"""
        self.logger.info(f"🚀 {self.service_name} starting on port {port}")

    def service_ready(self, port: int):
        """Log service ready"""
        self.logger.info(f"✅ {self.service_name} ready and listening on port {port}")

    def service_stop(self):
        """Log service shutdown"""
        self.logger.info(f"🛑 {self.service_name} shutting down")

    def request_completed(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: int,
        request_id: Optional[str] = None,
    ):
        """One line per HTTP request, warning level for error statuses"""
        request_info = f" [{request_id}]" if request_id else ""
        message = f"📤 {method} {path}{request_info} -> {status_code} in {duration_ms}ms"
        if status_code >= 500:
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def error(self, message: str, exception: Exception = None):
        """Log error with optional exception"""
        if exception:
            self.logger.error(f"❌ {message}: {str(exception)}")
        else:
            self.logger.error(f"❌ {message}")

    def exception(self, message: str):
        """Log error with the active traceback"""
        self.logger.exception(f"❌ {message}")

    def warning(self, message: str):
        """Log warning"""
        self.logger.warning(f"⚠️ {message}")

    def info(self, message: str):
        """Log info"""
        self.logger.info(f"ℹ️ {message}")

    def debug(self, message: str):
        """Log debug"""
        self.logger.debug(f"🔍 {message}")

    def success(self, message: str):
        """Log success"""
        self.logger.info(f"✅ {message}")
