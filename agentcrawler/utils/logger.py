"""
Logging utilities for the crawler.
"""

import logging
import logging.handlers
import json
import sys
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime, timezone

from .config import LoggingConfig


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    # Attributes every LogRecord carries; anything else came in through `extra`
    _RESERVED = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        for key, value in vars(record).items():
            if key not in self._RESERVED and not key.startswith('_'):
                log_entry[key] = value

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class CrawlerLogAdapter(logging.LoggerAdapter):
    """Logger adapter that adds agent context to every message."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        """Prefix the message with the agent name and merge extra fields."""
        extra = dict(self.extra)
        extra.update(kwargs.get('extra') or {})
        kwargs['extra'] = extra

        agent = extra.get('agent')
        if agent:
            msg = f"[{agent}] {msg}"
        return msg, kwargs

    def log_url_event(self, level: int, url: str, message: str, **kwargs):
        """Log an event about one URL, attaching the URL as a structured field."""
        kwargs['extra'] = {**kwargs.get('extra', {}), 'url': url, 'event_type': 'url_event'}
        self.log(level, f"{message}: {url}", **kwargs)


class PerformanceFilter(logging.Filter):
    """Filter to suppress noisy third-party logs."""

    def __init__(self, suppress_modules: Optional[list] = None):
        super().__init__()
        self.suppress_modules = suppress_modules or [
            'aiohttp.access',
            'aiohttp.internal',
        ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter out noisy log records."""
        if any(record.name.startswith(module) for module in self.suppress_modules):
            return False

        if record.levelno == logging.DEBUG:
            message = record.getMessage().lower()
            if 'connection pool' in message or 'resetting dropped connection' in message:
                return False

        return True


QUIET_LOGGERS = ('aiohttp', 'redis', 'asyncio')


def _rotating_handler(path: Path, max_mb: int, backups: int, level: int,
                      formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_mb * 1024 * 1024, backupCount=backups, encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(config: LoggingConfig,
                  enable_performance_filtering: bool = True) -> logging.Logger:
    """
    Configure the root logger from the logging section.

    Records go to stdout and to a rotating log file. ERROR and above are
    also written to errors.log next to it.

    Args:
        config: Logging configuration section
        enable_performance_filtering: Drop noisy third-party records from
            the console and main log file

    Returns:
        Configured root logger
    """
    log_file = Path(config.file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    formatter = JSONFormatter() if config.json else logging.Formatter(config.format)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    main_handler = _rotating_handler(log_file, 50, 5, logging.DEBUG, formatter)
    error_handler = _rotating_handler(log_file.parent / 'errors.log', 10, 3, logging.ERROR, formatter)

    if enable_performance_filtering:
        for handler in (console_handler, main_handler):
            handler.addFilter(PerformanceFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    root_logger.handlers.clear()
    for handler in (console_handler, main_handler, error_handler):
        root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(f"Logging to {log_file} at level {config.level} (json={config.json})")
    return root_logger


def get_crawler_logger(name: str, **extra_context) -> CrawlerLogAdapter:
    """
    Get a crawler logger with additional context.

    Args:
        name: Logger name
        **extra_context: Context fields included in all log messages

    Returns:
        CrawlerLogAdapter instance
    """
    return CrawlerLogAdapter(logging.getLogger(name), extra_context)
