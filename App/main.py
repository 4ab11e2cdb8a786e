import uuid
from time import perf_counter

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from flask_cors import CORS
from flask_migrate import Migrate
from sqlalchemy import inspect, text

from App.config import load_config
from App.controllers import setup_jwt
from App.database import db, init_db
from App.logging_config import configure_logging
from App.utils.time_utils import utc_now
from App.views import register_api_v2


def _register_request_logging(app):
    @app.before_request
    def _structured_request_logging() -> None:
        g.request_timer = perf_counter()
        g.request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())
        app.logger.info(
            'Incoming request',
            extra={
                'event': 'request_started',
                'request_id': g.request_id,
                'method': request.method,
                'path': request.path,
                'remote_addr': request.remote_addr,
            },
        )

    @app.after_request
    def _structured_response_logging(response):
        duration_ms = None
        if hasattr(g, 'request_timer'):
            duration_ms = round((perf_counter() - g.request_timer) * 1000, 2)
        request_id = getattr(g, 'request_id', None)
        if request_id:
            response.headers['X-Request-ID'] = request_id
        app.logger.info(
            'Completed request',
            extra={
                'event': 'request_completed',
                'request_id': request_id,
                'method': request.method,
                'path': request.path,
                'status_code': response.status_code,
                'duration_ms': duration_ms,
            },
        )
        return response

    @app.teardown_request
    def _structured_request_teardown(exc):
        if exc is not None:
            app.logger.error(
                'Unhandled request exception',
                exc_info=exc,
                extra={
                    'event': 'request_exception',
                    'request_id': getattr(g, 'request_id', None),
                    'method': getattr(request, 'method', None),
                    'path': getattr(request, 'path', None),
                },
            )


def _register_jwt_responses(app, jwt):
    @jwt.invalid_token_loader
    @jwt.unauthorized_loader
    def custom_unauthorized_response(error):
        app.logger.warning(
            'Unauthorized access attempt',
            extra={
                'event': 'security_auth_failure',
                'reason': error,
                'path': request.path,
                'request_id': getattr(g, 'request_id', None),
            },
        )
        return jsonify(success=False, message="Authentication required", errors={'auth': error}), 401

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_data):
        app.logger.info(
            'JWT token expired',
            extra={
                'event': 'security_token_expired',
                'identity': jwt_data.get('sub') if isinstance(jwt_data, dict) else None,
                'path': request.path,
                'request_id': getattr(g, 'request_id', None),
            },
        )
        return jsonify(success=False, message="Token has expired", errors={'auth': 'expired'}), 401


def _sync_schema(app):
    """Create any missing tables; migrations own changes to existing ones."""
    existing_tables = set(inspect(db.engine).get_table_names())
    missing = [name for name in db.metadata.tables if name not in existing_tables]
    if missing:
        db.create_all()
    app.logger.info(
        'Database schema checked',
        extra={'event': 'db_schema_sync', 'tables': missing, 'mode': 'initial' if missing else 'noop'},
    )


def create_app(overrides={}):
    # Load environment variables from .env if present
    load_dotenv()
    app = Flask(__name__)
    load_config(app, overrides)

    configure_logging(app)
    app.logger.info(
        'Flask application configured',
        extra={
            'event': 'app_boot',
            'environment': app.config.get('ENV'),
            'debug': app.debug,
            'service': app.config.get('SERVICE_NAME', 'zone-coverage-scheduler'),
        },
    )

    _register_request_logging(app)

    CORS(app, resources={
        r"/api/*": {
            "origins": app.config.get('CORS_ORIGINS', []),
            "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "supports_credentials": True
        }
    })

    register_api_v2(app)
    init_db(app)
    # Initialize migration extension early so Alembic env can access metadata
    Migrate(app, db)
    jwt = setup_jwt(app)
    _register_jwt_responses(app, jwt)

    with app.app_context():
        _sync_schema(app)

    @app.get("/healthcheck")
    def healthcheck():
        checks = {'app': {'ok': True, 'time': utc_now().isoformat() + "Z"}}
        overall_ok = True

        if app.config.get('SECRET_KEY') and app.config.get('JWT_SECRET_KEY'):
            checks['config'] = {'ok': True}
        else:
            checks['config'] = {'ok': False, 'missing': ['SECRET_KEY']}
            overall_ok = False

        try:
            db.session.execute(text("SELECT 1"))
            checks['db'] = {'ok': True}
        except Exception as e:
            db.session.rollback()
            checks['db'] = {'ok': False, 'error': str(e)}
            overall_ok = False

        status_code = 200 if overall_ok else 503
        app.logger.info(
            'Healthcheck completed',
            extra={
                'event': 'healthcheck_completed',
                'overall_ok': overall_ok,
                'request_id': getattr(g, 'request_id', None),
            },
        )
        return jsonify(status='ok' if overall_ok else 'fail', checks=checks), status_code

    app.app_context().push()
    return app
