"""Logging setup with colored console output and progress summaries."""

import copy
import logging
import logging.handlers
import time
from typing import Any, Dict, Optional

import colorlog

ROOT_LOGGER_NAME = 'blockshare'

DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

SENSITIVE_KEYS = ('password', 'secret', 'token', 'api_key', 'access_key')


def setup_logging(
    verbosity: int = 0,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    level: Optional[str] = None
) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        verbosity: Verbosity level (0=WARNING, 1=INFO, 2+=DEBUG)
        log_file: Optional path to a rotating log file
        log_format: Optional custom log format string
        date_format: Optional custom date format string
        level: Optional explicit level name, overrides verbosity

    Returns:
        The configured ``blockshare`` logger

    Raises:
        ValueError: If ``level`` is not a standard level name
    """
    if level:
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level_upper = level.upper()
        if level_upper not in allowed_levels:
            raise ValueError(
                f"Invalid log level '{level}'. Must be one of: {sorted(allowed_levels)}"
            )
        log_level = getattr(logging, level_upper)
    elif verbosity >= 2:
        log_level = logging.DEBUG
    elif verbosity >= 1:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    log_format = log_format or DEFAULT_LOG_FORMAT
    date_format = date_format or DEFAULT_DATE_FORMAT

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(colorlog.ColoredFormatter(
        fmt='%(log_color)s' + log_format,
        datefmt=date_format,
        log_colors={
            'DEBUG': 'cyan',
            'INFO': 'green',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'red,bg_white',
        }
    ))
    logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding='utf-8'
            )
        except OSError as e:
            logger.warning(f"Failed to set up file logging: {e}")
        else:
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter(fmt=log_format, datefmt=date_format))
            logger.addHandler(file_handler)
            logger.info(f"Logging to file: {log_file}")

    logger.debug(f"Log level: {logging.getLevelName(log_level)}")
    return logger


class ProgressTracker:
    """Context manager counting per-item outcomes and logging a summary on exit."""

    def __init__(self, total_items: int, item_type: str = "items"):
        self.total_items = total_items
        self.item_type = item_type
        self.processed_items = 0
        self.successful_items = 0
        self.failed_items = 0
        self.start_time: Optional[float] = None
        self.logger = logging.getLogger(ROOT_LOGGER_NAME)

    def __enter__(self) -> 'ProgressTracker':
        self.start_time = time.time()
        self.logger.info(f"Starting processing of {self.total_items} {self.item_type}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is None:
            return

        if self.failed_items > 0 and self.failed_items == self.total_items:
            log_method = self.logger.error
        elif self.failed_items > 0:
            log_method = self.logger.warning
        else:
            log_method = self.logger.info

        stats = self.get_stats()
        log_method(
            f"{self.item_type.capitalize()}: {stats['successful']}/{stats['total']} succeeded, "
            f"{stats['failed']} failed in {stats['elapsed_time_formatted']}"
        )

    def increment(self, success: bool = True) -> None:
        """
        Record one processed item.

        Args:
            success: Whether the item was processed successfully
        """
        self.processed_items += 1
        if success:
            self.successful_items += 1
        else:
            self.failed_items += 1

        if self.processed_items % 10 == 0 or not success:
            status = "Success" if success else "Failed"
            self.logger.info(
                f"Processed {self.processed_items}/{self.total_items} {self.item_type} - Last: {status}"
            )

    def get_stats(self) -> Dict[str, Any]:
        elapsed = 0.0 if self.start_time is None else time.time() - self.start_time
        return {
            'total': self.total_items,
            'processed': self.processed_items,
            'successful': self.successful_items,
            'failed': self.failed_items,
            'elapsed_time': elapsed,
            'elapsed_time_formatted': self._format_elapsed(elapsed),
        }

    @staticmethod
    def _format_elapsed(seconds: float) -> str:
        if seconds < 60:
            return f"{seconds:.1f}s"
        minutes = int(seconds // 60)
        seconds = int(seconds % 60)
        if minutes < 60:
            return f"{minutes}m {seconds}s"
        return f"{minutes // 60}h {minutes % 60}m {seconds}s"


def log_section(title: str) -> None:
    """Log a banner header."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    separator = "=" * 60
    logger.info(separator)
    logger.info(f"  {title.upper()}")
    logger.info(separator)


def log_config(config: Dict[str, Any]) -> None:
    """
    Log the effective configuration with secrets masked.

    Args:
        config: Configuration dictionary to log
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    sanitized = _sanitize_config(config)

    log_section("Configuration")

    kernel = sanitized.get('kernel', {})
    logger.info(f"Kernel URL: {kernel.get('base_url', 'Not Set')}")
    logger.info(f"Kernel Token: {kernel.get('token') or 'Not Set'}")

    share = sanitized.get('share', {})
    logger.info(f"Share Server: {share.get('server_url', 'Not Set')}")
    logger.info(f"Share API Token: {share.get('api_token') or 'Not Set'}")

    storage = sanitized.get('storage', {})
    if storage.get('enabled'):
        logger.info(f"Storage Provider: {storage.get('provider', 'aws')}")
        logger.info(f"Storage Endpoint: {storage.get('endpoint', 'Not Set')}")
        logger.info(f"Storage Bucket: {storage.get('bucket', 'Not Set')}")
        logger.info(f"Storage Region: {storage.get('region', 'Not Set')}")
        logger.info(f"Storage Addressing: {storage.get('addressing', 'auto')}")
        logger.info(f"Access Key ID: {storage.get('access_key_id') or 'Not Set'}")
        logger.info(f"Secret Access Key: {storage.get('secret_access_key') or 'Not Set'}")
        if storage.get('custom_domain'):
            logger.info(f"Custom Domain: {storage.get('custom_domain')}")
    else:
        logger.info("Storage: disabled")

    resolver = sanitized.get('resolver', {})
    logger.info(f"Reference Max Depth: {resolver.get('max_depth', 5)}")


def _sanitize_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of ``config`` with sensitive string values masked.

    Args:
        config: Configuration dictionary

    Returns:
        Sanitized configuration copy
    """
    def mask_sensitive(data: Any) -> Any:
        if isinstance(data, dict):
            masked = {}
            for key, value in data.items():
                is_sensitive = any(marker in str(key).lower() for marker in SENSITIVE_KEYS)
                if is_sensitive and isinstance(value, str) and value:
                    masked[key] = "***REDACTED***"
                else:
                    masked[key] = mask_sensitive(value)
            return masked
        if isinstance(data, list):
            return [mask_sensitive(item) for item in data]
        return data

    return mask_sensitive(copy.deepcopy(config))


__all__ = [
    'setup_logging',
    'ProgressTracker',
    'log_section',
    'log_config',
]
