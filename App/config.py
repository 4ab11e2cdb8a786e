import os
from datetime import timedelta

POSTGRES_SCHEME = 'postgres://'
POSTGRESQL_SCHEME = 'postgresql://'


def _normalize_db_url(db_url):
    if db_url and db_url.startswith(POSTGRES_SCHEME):
        return db_url.replace(POSTGRES_SCHEME, POSTGRESQL_SCHEME, 1)
    return db_url


def load_config(app, overrides):
    if os.path.exists(os.path.join('./App', 'custom_config.py')):
        app.config.from_object('App.custom_config')
    else:
        app.config.from_object('App.default_config')

    # FLASK_SECRET_KEY, FLASK_DEFAULT_TIMEZONE, ...
    app.config.from_prefixed_env()
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['PREFERRED_URL_SCHEME'] = 'https'

    db_url = (
        os.environ.get('DATABASE_URL') or
        os.environ.get('DATABASE_URI_SQLITE') or
        app.config.get('SQLALCHEMY_DATABASE_URI')
    )
    if db_url:
        app.config['SQLALCHEMY_DATABASE_URI'] = _normalize_db_url(db_url)

    # JWT Configuration
    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(hours=1)
    app.config['JWT_ACCESS_COOKIE_NAME'] = 'access_token'
    app.config["JWT_TOKEN_LOCATION"] = ["headers", "cookies"]

    is_production = os.environ.get('ENV', app.config.get('ENV', 'development')) == 'production'
    app.config["JWT_COOKIE_SECURE"] = is_production
    app.config["JWT_COOKIE_CSRF_PROTECT"] = is_production
    app.config.setdefault('JWT_SECRET_KEY', app.config['SECRET_KEY'])

    for key in overrides:
        app.config[key] = overrides[key]

    final_db_uri = _normalize_db_url(app.config.get('SQLALCHEMY_DATABASE_URI') or '')
    app.config['SQLALCHEMY_DATABASE_URI'] = final_db_uri

    engine_options = app.config.setdefault('SQLALCHEMY_ENGINE_OPTIONS', {})
    if final_db_uri.startswith('sqlite'):
        # SQLite pools differently; these options break in-memory test databases
        for key in ('pool_pre_ping', 'pool_recycle', 'pool_timeout'):
            engine_options.pop(key, None)
    else:
        engine_options.setdefault('pool_pre_ping', True)
        engine_options.setdefault('pool_recycle', 280)
        engine_options.setdefault('pool_timeout', 30)
