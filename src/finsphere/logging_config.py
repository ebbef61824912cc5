"""API Logging Configuration and Utilities."""

import sys
import uuid
import json
import logging
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Optional

_correlation_id: ContextVar[str] = ContextVar('correlation_id', default='-')


def new_correlation_id(value: Optional[str] = None) -> str:
    correlation_id = value or str(uuid.uuid4())[:8]
    _correlation_id.set(correlation_id)
    return correlation_id


class CorrelationFilter(logging.Filter):
    def filter(self, record):
        record.correlation_id = _correlation_id.get()
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_data = {
            'timestamp': datetime.utcnow().isoformat() + 'Z',
            'level': record.levelname,
            'correlation_id': getattr(record, 'correlation_id', 'N/A'),
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'event'):
            log_data['event'] = record.event

        return json.dumps(log_data)


LOGGER_TREES = ('finsphere', 'cache')


def configure_logging(level: str = 'INFO', log_dir: Optional[str] = None) -> logging.Logger:
    """Attach console (and optional JSON file) handlers to the app and cache loggers."""
    handlers = []
    correlation_filter = CorrelationFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_format = logging.Formatter(
        '%(asctime)s | %(levelname)-5s | [%(correlation_id)s] | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(console_format)
    console_handler.addFilter(correlation_filter)
    handlers.append(console_handler)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(path / f'api_{datetime.now().strftime("%Y%m%d")}.log')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(correlation_filter)
        handlers.append(file_handler)

        error_handler = logging.FileHandler(path / 'api_errors.log')
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(JSONFormatter())
        error_handler.addFilter(correlation_filter)
        handlers.append(error_handler)

    for name in LOGGER_TREES:
        tree = logging.getLogger(name)
        tree.setLevel(level)
        tree.handlers.clear()
        for handler in handlers:
            tree.addHandler(handler)
        tree.propagate = False
    return logging.getLogger(LOGGER_TREES[0])
