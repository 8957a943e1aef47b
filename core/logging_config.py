"""
Structured Logging Configuration for the Retrieval Core

Provides:
- JSON structured logging for production
- Colorized console output for development
- A performance decorator for timing calls
- Audit logging of searches and index builds

Usage:
    from core.logging_config import setup_logging, get_logger

    # At application startup
    setup_logging(level='INFO', json_format=True)

    # In modules
    logger = get_logger(__name__)
    logger.info('Index rebuilt', extra={'engine': 'lexical', 'documents': 42})
"""

import json
import logging
import sys
import time
import traceback
from datetime import datetime, timezone
from functools import wraps

# LogRecord attributes that are not user-supplied extras
_RESERVED_ATTRS = frozenset({
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'pathname', 'process',
    'processName', 'relativeCreated', 'stack_info', 'exc_info', 'exc_text',
    'thread', 'threadName', 'message', 'taskName',
})


# =============================================================================
# Custom Formatters
# =============================================================================

class JSONFormatter(logging.Formatter):
    """JSON structured log formatter for production."""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        # Add any extra attributes from the record
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith('_'):
                continue
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = repr(value)
            log_entry[key] = value

        # Add exception info if present
        if record.exc_info:
            log_entry['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': traceback.format_exception(*record.exc_info)
            }

        return json.dumps(log_entry, ensure_ascii=False)


class ColoredFormatter(logging.Formatter):
    """Colorized console formatter for development."""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.COLORS.get(record.levelname, '')
        reset = self.RESET

        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')

        parts = [
            f'{color}[{timestamp}]{reset}',
            f'{color}{record.levelname:8}{reset}',
            f'{record.name}:',
            record.getMessage()
        ]

        if hasattr(record, 'engine'):
            parts.insert(2, f'[{record.engine}]')

        if hasattr(record, 'duration_ms'):
            parts.append(f'({record.duration_ms}ms)')

        message = ' '.join(parts)

        if record.exc_info:
            message += '\n' + ''.join(traceback.format_exception(*record.exc_info))

        return message


# =============================================================================
# Logger Setup
# =============================================================================

def setup_logging(level='INFO', json_format=False, stream=None):
    """
    Configure root logging for the retrieval core.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format instead of colored console output
        stream: Output stream (defaults to stdout)

    Returns:
        The configured root logger
    """
    numeric_level = getattr(logging, str(level).upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(numeric_level)

    if json_format:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(ColoredFormatter())

    root_logger.addHandler(console_handler)

    root_logger.debug('Logging configured', extra={
        'format': 'json' if json_format else 'colored',
        'log_level': str(level).upper()
    })

    return root_logger


def get_logger(name):
    """Get a logger with the given name."""
    return logging.getLogger(name)


# =============================================================================
# Performance Logging
# =============================================================================

def log_performance(logger_name=None):
    """
    Decorator to log function performance.

    Usage:
        @log_performance('retrieval.index')
        def build(self, documents):
            ...
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(logger_name or func.__module__)
            start_time = time.time()

            try:
                result = func(*args, **kwargs)
                duration_ms = int((time.time() - start_time) * 1000)

                logger.debug(
                    f'{func.__name__} completed',
                    extra={
                        'function': func.__name__,
                        'duration_ms': duration_ms,
                    }
                )

                return result

            except Exception as e:
                duration_ms = int((time.time() - start_time) * 1000)

                logger.error(
                    f'{func.__name__} failed: {str(e)}',
                    extra={
                        'function': func.__name__,
                        'duration_ms': duration_ms,
                        'error_type': type(e).__name__,
                    }
                )
                raise

        return wrapper
    return decorator


# =============================================================================
# Audit Logging
# =============================================================================

class AuditLogger:
    """
    Audit logger for searches and index rebuilds.

    Usage:
        audit = AuditLogger()
        audit.log_search('contraseña', results_count=2, mode='lexical')
    """

    def __init__(self, name='retrieval.audit'):
        self.logger = get_logger(name)

    def log_search(self, query, results_count, mode='lexical', fallback_from=None):
        """Log a search operation."""
        self.logger.info(
            'Search performed',
            extra={
                'audit_type': 'search',
                'query': query[:100] if query else None,
                'results_count': results_count,
                'search_mode': mode,
                'fallback_from': fallback_from,
            }
        )

    def log_index_build(self, engine, documents, duration_ms):
        """Log a completed index build."""
        self.logger.info(
            'Index built',
            extra={
                'audit_type': 'index_build',
                'engine': engine,
                'documents': documents,
                'duration_ms': round(duration_ms, 3),
            }
        )
