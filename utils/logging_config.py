"""
Logging setup for the fleet compliance service.

Plain text lines in development, one JSON object per line in production
(or with USE_JSON_LOGGING=true). Every record emitted during a request
carries the request's correlation id; request completion is logged with
its status code and duration.
"""

import os
import sys
import json
import logging
import traceback
from datetime import datetime, timezone
from typing import Dict, Any
from flask import has_request_context, request, g

LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')

# Component loggers; services log under these names
COMPONENT_LOGGERS = ('app', 'services', 'requests', 'audit', 'email')

SLOW_REQUEST_SECONDS = 5.0

_STANDARD_ATTRS = frozenset(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {
    'message', 'asctime', 'taskName', 'correlation_id',
}


class JSONFormatter(logging.Formatter):
    """One JSON document per record"""

    def __init__(self, environment: str = 'production'):
        super().__init__()
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'service': 'fleet_compliance',
            'environment': self.environment,
        }

        correlation_id = getattr(record, 'correlation_id', None)
        if correlation_id:
            entry['correlation_id'] = correlation_id

        if has_request_context():
            entry['request'] = {'method': request.method, 'path': request.path}

        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info),
            }

        # Fields passed through `extra=`
        extra = {key: value for key, value in vars(record).items() if key not in _STANDARD_ATTRS}
        if extra:
            entry['extra'] = extra

        if record.levelno >= logging.ERROR:
            entry['location'] = f"{record.pathname}:{record.lineno} in {record.funcName}"

        return json.dumps(entry, ensure_ascii=False, default=str)


class CorrelationIdFilter(logging.Filter):
    """Copies g.correlation_id onto records logged inside a request"""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context() and 'correlation_id' in g:
            record.correlation_id = g.correlation_id
        return True


def setup_logging(app=None) -> Dict[str, logging.Logger]:
    """
    Install the console handler on the root logger.

    Safe to call once per app factory run: existing root handlers are
    replaced, not duplicated.

    Returns:
        dict: component name -> logger
    """
    level = os.environ.get('LOG_LEVEL', 'INFO').upper()
    if level not in LEVELS:
        level = 'INFO'

    environment = os.environ.get('FLASK_ENV', 'production')
    json_output = os.environ.get('USE_JSON_LOGGING', 'false').lower() == 'true' or environment == 'production'

    if json_output:
        formatter = JSONFormatter(environment)
    else:
        formatter = logging.Formatter('[%(asctime)s] %(levelname)s in %(name)s: %(message)s')

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    loggers = {name: logging.getLogger(name) for name in COMPONENT_LOGGERS}

    if environment == 'production':
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    if app is not None:
        app.logger.info(f"Logging configured: level={level}, json={json_output}")

    return loggers


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_request_start():
    g.request_start_time = datetime.now().timestamp()


def log_request_end(response):
    """Log status and duration of the finished request"""
    started = g.get('request_start_time')
    if started is None:
        return response

    duration = datetime.now().timestamp() - started
    if response.status_code >= 500:
        level = logging.ERROR
    elif response.status_code >= 400 or duration > SLOW_REQUEST_SECONDS:
        level = logging.WARNING
    else:
        level = logging.INFO

    get_logger('requests').log(
        level,
        f"{request.method} {request.path} -> {response.status_code}",
        extra={'status_code': response.status_code, 'duration_ms': round(duration * 1000, 2)},
    )
    return response
