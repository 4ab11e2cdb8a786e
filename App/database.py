from sqlite3 import Connection as SQLite3Connection

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()


def get_migrate(app):
    return Migrate(app, db)


def create_db():
    db.create_all()


def init_db(app):
    db.init_app(app)


def lock_row(model, ident):
    """Load ``model`` by primary key with a row lock held until commit.

    SQLite has no ``FOR UPDATE``; its writes are serialized by the database lock.
    """
    return db.session.query(model).filter(model.id == ident).with_for_update().first()


@event.listens_for(Engine, "connect")
def _enable_sqlite_fk(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, SQLite3Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()
