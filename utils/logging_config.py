"""Logging configuration for the receipt pipeline."""

import os
import logging.config
import json
from datetime import datetime
from typing import Dict, Any, List, Optional

# Top-level packages that get their own logger configuration
PIPELINE_LOGGERS = ['ocr', 'handlers', 'utils', 'services', 'config']

MAX_LOG_BYTES = 10 * 1024 * 1024  # 10MB
LOG_BACKUPS = 5


def _rotating_file(filename: str, level: str, formatter: str) -> Dict[str, Any]:
    return {
        'class': 'logging.handlers.RotatingFileHandler',
        'level': level,
        'formatter': formatter,
        'filename': filename,
        'maxBytes': MAX_LOG_BYTES,
        'backupCount': LOG_BACKUPS
    }


def build_logging_config(
    log_dir: str = 'logs',
    debug_mode: bool = False,
    log_to_file: bool = False,
    json_format: bool = False
) -> Dict[str, Any]:
    """
    Build the ``dictConfig`` mapping used by ``setup_logging``.

    The console handler writes to stderr. With ``log_to_file`` errors go to
    ``error_<date>.log`` and every pipeline record to ``pipeline_<date>.log``
    as one JSON object per line.
    """
    level = 'DEBUG' if debug_mode else 'INFO'
    stamp = datetime.now().strftime('%Y%m%d')

    handlers: Dict[str, Any] = {
        'console': {
            'class': 'logging.StreamHandler',
            'level': level,
            'formatter': 'json' if json_format else 'standard',
            'stream': 'ext://sys.stderr'
        }
    }
    if log_to_file:
        handlers['error_file'] = _rotating_file(
            os.path.join(log_dir, f'error_{stamp}.log'), 'ERROR', 'detailed')
        handlers['pipeline_file'] = _rotating_file(
            os.path.join(log_dir, f'pipeline_{stamp}.log'), level, 'json')
    handler_names: List[str] = list(handlers)

    loggers: Dict[str, Any] = {
        '': {'handlers': handler_names, 'level': level, 'propagate': True}
    }
    for name in PIPELINE_LOGGERS:
        loggers[name] = {'handlers': list(handler_names), 'level': level, 'propagate': False}

    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'standard': {
                'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
            },
            'detailed': {
                'format': '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s'
            },
            'json': {
                '()': 'utils.logging_config.JsonFormatter'
            }
        },
        'handlers': handlers,
        'loggers': loggers
    }


def setup_logging(
    log_dir: str = 'logs',
    debug_mode: bool = False,
    log_to_file: bool = False,
    json_format: bool = False
) -> None:
    """
    Set up logging for the pipeline.

    Console output goes to stderr so that stdout stays free for results.

    Args:
        log_dir: Directory to store log files
        debug_mode: Whether to enable debug logging
        log_to_file: Whether to log to files
        json_format: Whether console records are emitted as JSON
    """
    if log_to_file:
        os.makedirs(log_dir, exist_ok=True)

    logging.config.dictConfig(build_logging_config(log_dir, debug_mode, log_to_file, json_format))

    logger = logging.getLogger(__name__)
    logger.debug(f"Logging initialized (debug={debug_mode}, files={log_to_file}, json={json_format})")


class JsonFormatter(logging.Formatter):
    """One JSON object per record, including context from ``log_with_context``."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage()
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'data'):
            log_data['data'] = record.data

        # Context may hold datetimes and enums
        return json.dumps(log_data, default=str)


def log_with_context(
    logger: logging.Logger,
    level: int,
    msg: str,
    context: Optional[Dict[str, Any]] = None,
    **kwargs
) -> None:
    """
    Log message with additional context data.

    The context is attached to the record as ``data`` and rendered by
    ``JsonFormatter``.
    """
    if context:
        kwargs.setdefault('extra', {})['data'] = context
    logger.log(level, msg, **kwargs)
