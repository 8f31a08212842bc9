"""
Logging setup for Fleet Manager

Console logging always, JSON lines in production, optional rotating log files,
and a per-request correlation id that is echoed back as X-Request-ID.
"""

import os
import sys
import json
import time
import uuid
import logging
import traceback
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Dict, Any, List
from flask import has_request_context, request, g

LOG_DIR = 'logs'
SLOW_REQUEST_SECONDS = 5.0
VALID_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')

# Attributes every LogRecord carries; anything else was passed via extra=
_STANDARD_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {
    'message', 'asctime', 'correlation_id',
}


def _env_flag(name: str) -> bool:
    return os.environ.get(name, 'false').lower() == 'true'


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with request details when inside a request"""

    application = 'fleet_manager'

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'application': self.application,
            'environment': os.environ.get('FLASK_ENV', 'development'),
        }

        if getattr(record, 'correlation_id', None):
            entry['correlation_id'] = record.correlation_id

        if has_request_context():
            entry['request'] = {'method': request.method, 'path': request.path,
                                'remote_addr': request.remote_addr}

        if record.exc_info and record.exc_info[0]:
            exc_type, exc_value, exc_tb = record.exc_info
            entry['exception'] = {
                'type': exc_type.__name__,
                'message': str(exc_value),
                'traceback': traceback.format_exception(exc_type, exc_value, exc_tb),
            }

        extra = {key: value for key, value in vars(record).items() if key not in _STANDARD_ATTRS}
        if extra:
            entry['extra'] = extra

        if record.levelno >= logging.ERROR:
            entry['location'] = f"{record.pathname}:{record.lineno} in {record.funcName}"

        return json.dumps(entry, ensure_ascii=False, default=str)


class RequestContextFilter(logging.Filter):
    """Stamp each record with the current request's correlation id"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = g.get('correlation_id') if has_request_context() else None
        return True


def _build_handlers(level: str) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    handlers[0].setLevel(level)

    if _env_flag('ENABLE_FILE_LOGGING'):
        os.makedirs(LOG_DIR, exist_ok=True)
        app_file = RotatingFileHandler(os.path.join(LOG_DIR, 'application.log'),
                                       maxBytes=10 * 1024 * 1024, backupCount=5)
        app_file.setLevel(level)
        error_file = RotatingFileHandler(os.path.join(LOG_DIR, 'error.log'),
                                         maxBytes=10 * 1024 * 1024, backupCount=5)
        error_file.setLevel(logging.ERROR)
        handlers.extend([app_file, error_file])

    return handlers


def setup_logging(app=None):
    """
    Configure the root logger.

    LOG_LEVEL sets the level. USE_JSON_LOGGING, or FLASK_ENV=production,
    switches to JSON lines. ENABLE_FILE_LOGGING also writes logs/application.log
    and logs/error.log. Calling this again replaces the handlers it installed.
    """
    level = os.environ.get('LOG_LEVEL', 'INFO').upper()
    if level not in VALID_LEVELS:
        level = 'INFO'

    production = os.environ.get('FLASK_ENV') == 'production'
    json_lines = _env_flag('USE_JSON_LOGGING') or production
    formatter = JSONFormatter() if json_lines else logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(name)s: %(message)s'
    )

    root = logging.getLogger()
    root.setLevel(level)
    for stale in [h for h in root.handlers if getattr(h, '_fleet_manager', False)]:
        root.removeHandler(stale)

    for handler in _build_handlers(level):
        handler.setFormatter(formatter)
        handler.addFilter(RequestContextFilter())
        handler._fleet_manager = True
        root.addHandler(handler)

    if production:
        for noisy in ('werkzeug', 'sqlalchemy.engine'):
            logging.getLogger(noisy).setLevel(logging.WARNING)

    if app:
        app.logger.info(f"Logging configured: level={level}, json={json_lines}")


def log_request_start():
    g.correlation_id = request.headers.get('X-Request-ID') or uuid.uuid4().hex
    g.request_started = time.perf_counter()


def log_request_end(response):
    """after_request hook: log status and duration, echo the correlation id"""
    started = g.get('request_started')
    if started is not None:
        duration = time.perf_counter() - started
        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400 or duration > SLOW_REQUEST_SECONDS:
            level = logging.WARNING
        else:
            level = logging.INFO

        logging.getLogger('requests').log(
            level,
            f"{request.method} {request.path} {response.status_code}",
            extra={'status_code': response.status_code, 'duration_ms': round(duration * 1000, 2)},
        )

    if 'correlation_id' in g:
        response.headers['X-Request-ID'] = g.correlation_id
    return response
