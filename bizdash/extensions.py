"""
Flask extension instances for bizdash.

Created unbound here and attached to the application in create_app(), so models,
the storage layer and the blueprints can import them without importing the app.

- db: ORM + scoped session used by Storage and the session store
- migrate: `flask db ...` commands
- login_manager: current_user / login_required (JSON 401 handler set in create_app)
- csrf: token check on mutating requests of the cookie-authenticated API

SQLite connections get PRAGMA foreign_keys=ON so the declared references and
ON DELETE rules hold on the development database as they do on PostgreSQL.
"""

import sqlite3

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
