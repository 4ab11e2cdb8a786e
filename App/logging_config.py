"""
Logging setup for the coverage scheduler.

Every module logs through ``logging.getLogger(__name__)`` and passes its
structured fields through ``extra``. The ``event`` field names what happened:

* requests: ``request_started``, ``request_completed``, ``request_exception``
  (``request_id``, ``method``, ``path``, ``status_code``, ``duration_ms``)
* signups: ``signup_created``, ``signup_transition`` (``signup_id``,
  ``shift_id``, ``user_id``, ``role_type``, ``status``)
* dispatchers: ``dispatcher_assigned``, ``dispatcher_updated``,
  ``dispatcher_deleted``, ``dispatcher_promoted`` and
  ``dispatcher_bulk_assigned`` (``assignment_id``, ``scope``, ``is_backup``,
  per-county ``created``/``skipped``/``failed``)
* regional leads: ``regional_lead_assigned``, ``regional_lead_updated``,
  ``regional_lead_deleted``, ``regional_lead_promoted``
* configuration: ``date_override_created``, ``date_override_deleted``,
  ``coverage_requirements_set``
* reads: ``week_coverage`` (``week_start``, ``cells``, ``coverage_percent``)
* write paths: ``write_rejected`` for scheduling errors, ``write_failed`` for
  anything else, ``write_race_lost`` when a unique index catches a
  concurrent claim
* timing: ``operation_completed``, ``operation_slow``, ``operation_failed``
* API and auth: ``api_error``, ``security_auth_failure``,
  ``security_token_expired``, ``login``, ``login_failed``

Records logged while a request is in flight are stamped with that request's
``request_id`` so controller events line up with the request that caused them.
Production renders one JSON object per line; development prints a header line
followed by the structured fields.
"""
from __future__ import annotations

import json
import logging
import os
import socket
import sys
import time
from typing import Any, Dict

from flask import Flask, g, has_request_context, request

_LOG_RECORD_RESERVED = {
    'args',
    'asctime',
    'created',
    'exc_info',
    'exc_text',
    'filename',
    'funcName',
    'levelname',
    'levelno',
    'lineno',
    'module',
    'msecs',
    'message',
    'msg',
    'name',
    'pathname',
    'process',
    'processName',
    'relativeCreated',
    'stack_info',
    'taskName',
    'thread',
    'threadName',
}

NOISY_LOGGERS = ('werkzeug', 'sqlalchemy.engine', 'urllib3')


def _extract_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _LOG_RECORD_RESERVED and not key.startswith('_')
    }


class RequestContextFilter(logging.Filter):
    """Copy the current request id and path onto records that lack them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, 'request_id', None) is None:
                record.request_id = getattr(g, 'request_id', None)
            if getattr(record, 'path', None) is None:
                record.path = request.path
        return True


class JsonLogFormatter(logging.Formatter):
    """One JSON object per record; ``event`` sits next to the message."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service = service_name
        self._host = socket.gethostname()

    def format(self, record: logging.LogRecord) -> str:
        extras = _extract_extras(record)
        payload: Dict[str, Any] = {
            'timestamp': int(record.created * 1000),
            'status': record.levelname.lower(),
            'event': extras.pop('event', None),
            'msg': record.getMessage(),
            'logger': record.name,
            'host': self._host,
            'service': self._service,
            'thread': record.threadName,
        }
        payload.update(extras)

        if record.exc_info:
            payload['exception'] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class HybridDevFormatter(logging.Formatter):
    """Readable header line with the event name, then the remaining fields."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(record.created))
        extras = _extract_extras(record)
        event = extras.pop('event', None)
        label = f"{event}: " if event else ""
        header = f"[{timestamp}] | {record.levelname} | [{record.name}] {label}{record.getMessage()}"

        extras = {key: value for key, value in extras.items() if value is not None}
        lines = [header]
        if extras:
            lines.append(json.dumps(extras, ensure_ascii=False, indent=2, default=str))
        if record.exc_info:
            lines.append(self.formatException(record.exc_info))
        return '\n'.join(lines)


def _select_formatter(env: str, log_format: str, service_name: str) -> logging.Formatter:
    if log_format == 'json' or (log_format == 'auto' and env in {'production', 'staging'}):
        return JsonLogFormatter(service_name)
    return HybridDevFormatter()


def configure_logging(app: Flask) -> None:
    """
    Configure the root logger from ``SERVICE_NAME``, ``LOG_LEVEL``, ``LOG_FORMAT``
    ('json', 'dev' or 'auto') and ``ENV``; everything lands on one stdout handler.
    """
    service_name = app.config.get('SERVICE_NAME', 'zone-coverage-scheduler')
    log_level = str(app.config.get('LOG_LEVEL', os.environ.get('LOG_LEVEL', 'INFO'))).upper()
    log_format = str(app.config.get('LOG_FORMAT', os.environ.get('LOG_FORMAT', 'auto'))).lower()
    env = app.config.get('ENV', os.environ.get('ENV', 'development'))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in tuple(root_logger.handlers):
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_select_formatter(env, log_format, service_name))
    handler.addFilter(RequestContextFilter())
    root_logger.addHandler(handler)

    if log_level != 'DEBUG':
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.captureWarnings(True)

    root_logger.info(
        'Logging initialized',
        extra={
            'event': 'logging_initialized',
            'service': service_name,
            'environment': env,
            'level': log_level,
            'format': log_format,
        },
    )
