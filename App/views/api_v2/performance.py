import logging

from sqlalchemy import text

from App.database import db
from App.middleware import coordinator_required
from App.utils.performance_monitor import get_performance_summary
from App.views.api_v2 import api_v2
from App.views.api_v2.utils import api_error, api_success, jwt_required_secure

logger = logging.getLogger(__name__)


@api_v2.route('/admin/performance/metrics', methods=['GET'])
@jwt_required_secure()
@coordinator_required
def api_get_performance_metrics():
    """Summarized timings for coverage reads and scheduling writes."""
    try:
        return api_success(data=get_performance_summary())
    except Exception as exc:
        logger.exception('API v2: Failed to retrieve performance metrics')
        return api_error(
            'Failed to retrieve performance metrics',
            errors={'detail': str(exc)},
            status_code=500,
        )


@api_v2.route('/admin/performance/health', methods=['GET'])
@jwt_required_secure()
@coordinator_required
def api_performance_health_check():
    try:
        db.session.execute(text('SELECT 1'))
    except Exception as exc:
        logger.exception('API v2: Database health check failed')
        return api_error('Database unavailable', errors={'detail': str(exc)}, status_code=503)

    summary = get_performance_summary()
    slow_count = len(summary.get('slow_operations', []))
    return api_success({
        'database': 'ok',
        'total_operations': summary.get('total_operations', 0),
        'slow_operations': slow_count,
        'status': 'degraded' if slow_count else 'healthy',
    })
