"""
Performance monitoring and transactional write helpers.

Operations are timed and counted in-process, slow ones are logged as
warnings, and every scheduling write runs inside ``write_transaction`` so it
commits or rolls back as a unit.
"""

import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Optional

from flask import g, has_request_context

from coverage_engine import SchedulingError

logger = logging.getLogger('coverage_app.performance')


def _request_fields() -> Dict[str, Any]:
    if not has_request_context():
        return {}
    return {'request_id': getattr(g, 'request_id', None)}


class MetricsCollector:
    """Per-process operation metrics."""

    def __init__(self):
        self.metrics: Dict[str, Dict[str, Any]] = {}

    def record_operation(self, operation: str, duration: float, success: bool = True, error: Optional[str] = None):
        entry = self.metrics.setdefault(operation, {
            'count': 0,
            'total_duration': 0.0,
            'success_count': 0,
            'error_count': 0,
            'avg_duration': 0.0,
            'last_executed': None,
            'last_error': None,
        })
        entry['count'] += 1
        entry['total_duration'] += duration
        entry['avg_duration'] = entry['total_duration'] / entry['count']
        entry['last_executed'] = datetime.now(timezone.utc).isoformat()
        if success:
            entry['success_count'] += 1
        else:
            entry['error_count'] += 1
            entry['last_error'] = error

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        return {key: dict(value) for key, value in self.metrics.items()}

    def get_operation_metrics(self, operation: str) -> Optional[Dict[str, Any]]:
        return self.metrics.get(operation)

    def reset(self):
        self.metrics.clear()


metrics_collector = MetricsCollector()


def performance_monitor(operation_name: str, log_slow_threshold: float = 1.0):
    """
    Decorator that times a call, records it and logs slow operations.

    Args:
        operation_name: Name of the operation for metrics
        log_slow_threshold: Threshold in seconds to log as slow operation
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            success = True
            error_msg = None
            try:
                return func(*args, **kwargs)
            except Exception as e:
                success = False
                error_msg = str(e)
                logger.error(
                    'Operation failed',
                    extra={
                        'event': 'operation_failed',
                        'operation': operation_name,
                        'function': func.__name__,
                        'error': error_msg,
                        **_request_fields(),
                    },
                )
                raise
            finally:
                duration = time.perf_counter() - start_time
                metrics_collector.record_operation(operation_name, duration, success, error_msg)
                if duration > log_slow_threshold:
                    logger.warning(
                        'Slow operation',
                        extra={
                            'event': 'operation_slow',
                            'operation': operation_name,
                            'duration_seconds': round(duration, 3),
                            'success': success,
                            **_request_fields(),
                        },
                    )
                else:
                    logger.debug(
                        'Operation completed',
                        extra={
                            'event': 'operation_completed',
                            'operation': operation_name,
                            'duration_seconds': round(duration, 3),
                            'success': success,
                        },
                    )
        return wrapper
    return decorator


@contextmanager
def write_transaction(operation_name: str):
    """
    Run a block of database writes as one transaction.

    Commits when the block exits normally; rolls back, logs and re-raises on
    any exception, including rejected scheduling writes.

    Usage:
        with write_transaction("create_signup"):
            db.session.add(signup)
    """
    from App.database import db

    start_time = time.perf_counter()
    try:
        yield db.session
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        duration = time.perf_counter() - start_time
        code = e.code if isinstance(e, SchedulingError) else None
        logger.info(
            'Write rejected' if code else 'Write failed',
            extra={
                'event': 'write_rejected' if code else 'write_failed',
                'operation': operation_name,
                'error': str(e),
                'error_code': code,
                'duration_seconds': round(duration, 3),
                **_request_fields(),
            },
        )
        metrics_collector.record_operation(f'db_transaction.{operation_name}', duration, False, str(e))
        raise
    else:
        metrics_collector.record_operation(
            f'db_transaction.{operation_name}', time.perf_counter() - start_time, True
        )


def get_performance_summary() -> Dict[str, Any]:
    """Summarize collected metrics for the performance endpoint."""
    all_metrics = metrics_collector.get_metrics()
    operations = []
    for name, data in all_metrics.items():
        operations.append({
            'name': name,
            'count': data['count'],
            'avg_duration': round(data['avg_duration'], 4),
            'error_count': data['error_count'],
            'success_rate': data['success_count'] / max(data['count'], 1) * 100,
        })
    operations.sort(key=lambda op: op['count'], reverse=True)

    db_ops = [op for op in operations if op['name'].startswith('db_transaction.')]
    return {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'total_operations': sum(op['count'] for op in operations),
        'slow_operations': [op for op in operations if op['avg_duration'] > 2.0],
        'error_operations': [op for op in operations if op['error_count']],
        'most_frequent_operations': operations[:10],
        'database_operations': {
            'total_transactions': sum(op['count'] for op in db_ops),
            'failed_transactions': sum(op['error_count'] for op in db_ops),
        },
    }
